import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CLEANUP_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["EMAIL_PROVIDER"] = "console"
os.environ["PLUGIN_MODE_ENABLED"] = "true"

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shop_assistant.core.cache import query_cache
from shop_assistant.core.security import create_access_token, create_admin_token, hash_password
from shop_assistant.db.database import Base, get_db
from shop_assistant.main import app
from shop_assistant.models.account import AccountStatus, SubAccount, SubAccountRole, User, UserMallBinding
from shop_assistant.models.admin import Admin, AdminRole
from shop_assistant.models.membership import MembershipPackage, UserPackage

PASSWORD = "secret123"

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    query_cache.clear()
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        query_cache.clear()


@pytest.fixture
def client(db_session):
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def user_headers(user: User) -> dict[str, str]:
    return auth_headers(create_access_token(user.id, user.username, "user"))


def sub_account_headers(sub_account: SubAccount) -> dict[str, str]:
    return auth_headers(
        create_access_token(
            sub_account.id,
            sub_account.username,
            "sub_account",
            parent_user_id=sub_account.parent_user_id,
            role=sub_account.role.value,
        )
    )


def admin_headers(admin: Admin) -> dict[str, str]:
    return auth_headers(create_admin_token(admin.id, admin.username, admin.role.value))


def create_package(db, package_type: str = "basic", max_bind_mall: int = 3, **overrides) -> MembershipPackage:
    package = MembershipPackage(
        package_name=overrides.pop("package_name", f"{package_type.title()} plan"),
        package_type=package_type,
        original_price=overrides.pop("original_price", Decimal("99.00")),
        duration_months=overrides.pop("duration_months", 12),
        max_bind_mall=max_bind_mall,
        **overrides,
    )
    db.add(package)
    db.commit()
    db.refresh(package)
    return package


def create_user(
    db,
    username: str,
    mall_ids: tuple[int, ...] = (),
    package: MembershipPackage | None = None,
    invite_code: str | None = None,
    email: str | None = None,
) -> User:
    user = User(
        username=username,
        password_hash=hash_password(PASSWORD),
        email=email or f"{username}@example.com",
        invite_code=invite_code or username.upper()[:8],
        status=AccountStatus.ACTIVE,
    )
    db.add(user)
    db.flush()
    base_time = datetime.now() - timedelta(days=1)
    for offset, mall_id in enumerate(mall_ids):
        db.add(
            UserMallBinding(
                user_id=user.id,
                mall_id=mall_id,
                mall_name=f"Mall {mall_id}",
                bind_time=base_time + timedelta(minutes=offset),
                created_time=base_time + timedelta(minutes=offset),
            )
        )
    if package:
        db.add(
            UserPackage(
                user_id=user.id,
                package_id=package.id,
                order_time=datetime.now(),
                expire_time=datetime.now() + timedelta(days=30),
                is_active=True,
            )
        )
    db.commit()
    db.refresh(user)
    return user


def create_sub_account(db, parent: User, username: str, responsible_malls: list[str]) -> SubAccount:
    sub_account = SubAccount(
        parent_user_id=parent.id,
        username=username,
        password_hash=hash_password(PASSWORD),
        role=SubAccountRole.OPERATOR,
        status=AccountStatus.ACTIVE,
        responsible_malls=responsible_malls,
        permissions=["settlement:view"],
    )
    db.add(sub_account)
    db.commit()
    db.refresh(sub_account)
    return sub_account


def create_admin(db, username: str, role: AdminRole) -> Admin:
    admin = Admin(
        username=username,
        password_hash=hash_password(PASSWORD),
        role=role,
        status=AccountStatus.ACTIVE,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


@pytest.fixture
def basic_package(db_session):
    return create_package(db_session)


@pytest.fixture
def owner(db_session, basic_package):
    return create_user(db_session, "owner", mall_ids=(1001, 1002), package=basic_package)


@pytest.fixture
def owner_headers(owner):
    return user_headers(owner)


@pytest.fixture
def sub_account(db_session, owner):
    return create_sub_account(db_session, owner, "clerk", ["1002", "9999"])


@pytest.fixture
def sub_headers(sub_account):
    return sub_account_headers(sub_account)


@pytest.fixture
def stranger(db_session, basic_package):
    return create_user(db_session, "stranger", mall_ids=(2001,), package=basic_package)


@pytest.fixture
def super_admin(db_session):
    return create_admin(db_session, "root", AdminRole.SUPER_ADMIN)


@pytest.fixture
def regular_admin(db_session):
    return create_admin(db_session, "support", AdminRole.ADMIN)
