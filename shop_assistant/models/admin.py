from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from shop_assistant.db.database import Base
from shop_assistant.models.account import AccountStatus


class AdminRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"


class Admin(Base):
    __tablename__ = "admins"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    real_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[AccountStatus] = mapped_column(
        SQLEnum(AccountStatus, values_callable=lambda e: [m.value for m in e]),
        default=AccountStatus.ACTIVE,
        nullable=False,
    )
    role: Mapped[AdminRole] = mapped_column(
        SQLEnum(AdminRole, values_callable=lambda e: [m.value for m in e]),
        default=AdminRole.ADMIN,
        nullable=False,
    )
    last_login_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_login_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        onupdate=datetime.now,
        nullable=False,
    )
