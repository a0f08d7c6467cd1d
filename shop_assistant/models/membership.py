from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shop_assistant.db.database import Base

if TYPE_CHECKING:
    from shop_assistant.models.account import User


class RewardType(str, Enum):
    FREE_MALLS = "free_malls"
    DISCOUNT = "discount"
    CASH = "cash"
    POINTS = "points"


class RewardStatus(str, Enum):
    PENDING = "pending"
    GRANTED = "granted"
    EXPIRED = "expired"


class PluginStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DEPRECATED = "deprecated"


class MembershipPackage(Base):
    __tablename__ = "membership_packages"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    package_name: Mapped[str] = mapped_column(String(255), nullable=False)
    package_desc: Mapped[str | None] = mapped_column(Text, nullable=True)
    package_type: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    original_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    duration_months: Mapped[int] = mapped_column(default=1, nullable=False)
    max_bind_mall: Mapped[int] = mapped_column(default=1, nullable=False)
    discount_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    discount_start_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    discount_end_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        onupdate=datetime.now,
        nullable=False,
    )


class UserPackage(Base):
    __tablename__ = "user_packages"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    package_id: Mapped[int] = mapped_column(ForeignKey("membership_packages.id"), index=True)
    order_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    expire_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        onupdate=datetime.now,
        nullable=False,
    )

    package: Mapped[MembershipPackage] = relationship()


class Invitation(Base):
    __tablename__ = "invitations"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    inviter_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    invitee_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default="registered", nullable=False)
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    inviter: Mapped["User"] = relationship(foreign_keys=[inviter_id])
    invitee: Mapped["User"] = relationship(foreign_keys=[invitee_id])


class InvitationReward(Base):
    __tablename__ = "invitation_rewards"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    inviter_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    invitee_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    mall_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True, nullable=False)
    mall_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reward_type: Mapped[RewardType] = mapped_column(
        SQLEnum(RewardType, values_callable=lambda e: [m.value for m in e]),
        default=RewardType.FREE_MALLS,
        nullable=False,
    )
    reward_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("1"), nullable=False)
    status: Mapped[RewardStatus] = mapped_column(
        SQLEnum(RewardStatus, values_callable=lambda e: [m.value for m in e]),
        default=RewardStatus.GRANTED,
        nullable=False,
    )
    granted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    invitee: Mapped["User"] = relationship(foreign_keys=[invitee_id])


class PluginVersion(Base):
    __tablename__ = "plugin_versions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    version: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    release_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    download_url: Mapped[str] = mapped_column(String(500), nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    changelog: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_latest: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    status: Mapped[PluginStatus] = mapped_column(
        SQLEnum(PluginStatus, values_callable=lambda e: [m.value for m in e]),
        default=PluginStatus.ACTIVE,
        nullable=False,
    )
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        onupdate=datetime.now,
        nullable=False,
    )
