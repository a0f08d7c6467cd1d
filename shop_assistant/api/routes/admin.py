import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shop_assistant.api.deps import ADMIN_COOKIE, get_current_admin, require_super_admin
from shop_assistant.core.config import settings
from shop_assistant.core.security import create_admin_token, verify_password
from shop_assistant.db.database import get_db
from shop_assistant.models.account import AccountStatus, SubAccount, User, UserMallBinding, UserOperationLog
from shop_assistant.models.admin import Admin
from shop_assistant.models.membership import MembershipPackage, PluginStatus, PluginVersion, UserPackage
from shop_assistant.schemas.account import OperationLogOut
from shop_assistant.schemas.admin import AdminLoginRequest, AdminOut, AdminSessionOut, DashboardStatsOut
from shop_assistant.schemas.common import ApiResponse, Page, ok
from shop_assistant.schemas.membership import (
    PackageCreate,
    PackageOut,
    PackageUpdate,
    PluginVersionCreate,
    PluginVersionOut,
    PluginVersionUpdate,
)
from shop_assistant.services.operation_log import get_client_ip
from shop_assistant.services.query_optimizer import paginate_statement

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])

RECENT_ACTIVITY_LIMIT = 10
NULLABLE_PACKAGE_FIELDS = {"package_desc", "discount_percent", "discount_start_time", "discount_end_time"}


@router.post("/login", response_model=ApiResponse[AdminSessionOut])
def admin_login(payload: AdminLoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    admin = db.scalar(select(Admin).where(Admin.username == payload.username.strip()))
    if not admin:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")
    if admin.status != AccountStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is disabled")
    if not verify_password(payload.password, admin.password_hash):
        logger.warning("Failed admin login for %s from %s", admin.username, get_client_ip(request))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")

    admin.last_login_time = datetime.now()
    admin.last_login_ip = get_client_ip(request)
    db.commit()
    db.refresh(admin)

    token = create_admin_token(admin.id, admin.username, admin.role.value)
    response.set_cookie(
        key=ADMIN_COOKIE,
        value=token,
        max_age=settings.access_token_expire_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )
    return ok(AdminSessionOut(admin=AdminOut.model_validate(admin), token=token), "Login successful")


@router.post("/logout", response_model=ApiResponse[None])
def admin_logout(response: Response):
    response.delete_cookie(ADMIN_COOKIE, httponly=True, secure=settings.cookie_secure, samesite="strict")
    return ok(None, "Logged out")


@router.get("/profile", response_model=ApiResponse[AdminOut])
def admin_profile(admin: Admin = Depends(get_current_admin)):
    return ok(AdminOut.model_validate(admin))


@router.get("/dashboard/stats", response_model=ApiResponse[DashboardStatsOut])
def dashboard_stats(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
    latest_plugin = db.scalar(
        select(PluginVersion.version)
        .where(PluginVersion.is_latest.is_(True), PluginVersion.status == PluginStatus.ACTIVE)
        .limit(1)
    )
    return ok(
        DashboardStatsOut(
            total_users=db.scalar(select(func.count(User.id))) or 0,
            active_users=db.scalar(select(func.count(User.id)).where(User.status == AccountStatus.ACTIVE)) or 0,
            total_sub_accounts=db.scalar(select(func.count(SubAccount.id))) or 0,
            total_mall_bindings=db.scalar(select(func.count(UserMallBinding.id))) or 0,
            active_user_packages=db.scalar(
                select(func.count(UserPackage.id)).where(
                    UserPackage.is_active.is_(True),
                    UserPackage.expire_time > datetime.now(),
                )
            )
            or 0,
            latest_plugin_version=latest_plugin,
        )
    )


@router.get("/dashboard/activities", response_model=ApiResponse[list[OperationLogOut]])
def dashboard_activities(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
    logs = db.scalars(
        select(UserOperationLog)
        .order_by(UserOperationLog.created_time.desc(), UserOperationLog.id.desc())
        .limit(RECENT_ACTIVITY_LIMIT)
    ).all()
    return ok([OperationLogOut.model_validate(log) for log in logs])


# ---------------------------------------------------------------------------
# Membership packages
# ---------------------------------------------------------------------------


def _get_package(db: Session, package_id: int) -> MembershipPackage:
    package = db.get(MembershipPackage, package_id)
    if not package:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Package not found")
    return package


@router.get("/packages", response_model=ApiResponse[list[PackageOut]])
def admin_list_packages(
    is_active: bool | None = Query(default=None, alias="isActive"),
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    query = select(MembershipPackage)
    if is_active is not None:
        query = query.where(MembershipPackage.is_active.is_(is_active))
    packages = db.scalars(query.order_by(MembershipPackage.id.asc())).all()
    return ok([PackageOut.model_validate(package) for package in packages])


@router.post("/packages", response_model=ApiResponse[PackageOut], status_code=status.HTTP_201_CREATED)
def admin_create_package(
    payload: PackageCreate,
    admin: Admin = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    package = MembershipPackage(**payload.model_dump())
    db.add(package)
    db.commit()
    db.refresh(package)
    logger.info("Admin %s created package %s", admin.username, package.package_name)
    return ok(PackageOut.model_validate(package), "Package created")


@router.put("/packages/{package_id}", response_model=ApiResponse[PackageOut])
def admin_update_package(
    package_id: int,
    payload: PackageUpdate,
    admin: Admin = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    package = _get_package(db, package_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is not None or key in NULLABLE_PACKAGE_FIELDS:
            setattr(package, key, value)
    if (
        package.discount_start_time
        and package.discount_end_time
        and package.discount_end_time < package.discount_start_time
    ):
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Discount window ends before it starts")
    db.commit()
    db.refresh(package)
    return ok(PackageOut.model_validate(package), "Package updated")


@router.delete("/packages/{package_id}", response_model=ApiResponse[None])
def admin_delete_package(
    package_id: int,
    admin: Admin = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    package = _get_package(db, package_id)
    in_use = db.scalar(select(func.count(UserPackage.id)).where(UserPackage.package_id == package.id)) or 0
    if in_use:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Package is assigned to users, deactivate it instead",
        )
    db.delete(package)
    db.commit()
    logger.info("Admin %s deleted package %s", admin.username, package_id)
    return ok(None, "Package deleted")


# ---------------------------------------------------------------------------
# Plugin versions
# ---------------------------------------------------------------------------


def _get_plugin(db: Session, plugin_id: int) -> PluginVersion:
    plugin = db.get(PluginVersion, plugin_id)
    if not plugin:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plugin version not found")
    return plugin


def _clear_latest_flag(db: Session, keep_id: int | None = None) -> None:
    statement = update(PluginVersion).where(PluginVersion.is_latest.is_(True))
    if keep_id is not None:
        statement = statement.where(PluginVersion.id != keep_id)
    db.execute(statement.values(is_latest=False))


@router.get("/plugins", response_model=ApiResponse[Page[PluginVersionOut]])
def admin_list_plugins(
    page_index: int | None = Query(default=None, alias="pageIndex", ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1),
    plugin_status: PluginStatus | None = Query(default=None, alias="status"),
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    query = select(PluginVersion)
    if plugin_status:
        query = query.where(PluginVersion.status == plugin_status)
    query = query.order_by(PluginVersion.release_date.desc(), PluginVersion.id.desc())
    items, page = paginate_statement(db, query, page_index, page_size)
    return ok({"data": [PluginVersionOut.model_validate(item) for item in items], **page})


@router.post("/plugins", response_model=ApiResponse[PluginVersionOut], status_code=status.HTTP_201_CREATED)
def admin_create_plugin(
    payload: PluginVersionCreate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    if db.scalar(select(PluginVersion.id).where(PluginVersion.version == payload.version)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Version already exists")
    if payload.is_latest:
        _clear_latest_flag(db)
    plugin = PluginVersion(**payload.model_dump(), status=PluginStatus.ACTIVE)
    db.add(plugin)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Version already exists") from exc
    db.refresh(plugin)
    logger.info("Admin %s published plugin %s", admin.username, plugin.version)
    return ok(PluginVersionOut.model_validate(plugin), "Plugin version created")


@router.put("/plugins/{plugin_id}", response_model=ApiResponse[PluginVersionOut])
def admin_update_plugin(
    plugin_id: int,
    payload: PluginVersionUpdate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    plugin = _get_plugin(db, plugin_id)
    changes = payload.model_dump(exclude_unset=True)
    version = changes.get("version")
    if version and version != plugin.version:
        if db.scalar(select(PluginVersion.id).where(PluginVersion.version == version)):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Version already exists")
    if changes.get("is_latest"):
        _clear_latest_flag(db, keep_id=plugin.id)
    for key, value in changes.items():
        if value is not None:
            setattr(plugin, key, value)
    db.commit()
    db.refresh(plugin)
    return ok(PluginVersionOut.model_validate(plugin), "Plugin version updated")


@router.delete("/plugins/{plugin_id}", response_model=ApiResponse[None])
def admin_delete_plugin(
    plugin_id: int,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    plugin = _get_plugin(db, plugin_id)
    version = plugin.version
    db.delete(plugin)
    db.commit()
    logger.info("Admin %s deleted plugin %s", admin.username, version)
    return ok(None, "Plugin version deleted")
