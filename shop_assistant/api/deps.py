import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.orm import Session

from shop_assistant.core.config import settings
from shop_assistant.core.security import decode_admin_token, decode_token
from shop_assistant.db.database import get_db
from shop_assistant.models.account import AccountStatus, SubAccount, User
from shop_assistant.models.admin import Admin, AdminRole
from shop_assistant.services.mall_scope import Account, MallScope, build_mall_scope, normalize_mall_id
from shop_assistant.services.plugin_auth import PluginAuthError, verify_storefront_cookies

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

USER_COOKIE = "token"
ADMIN_COOKIE = "admin_token"


def _clean_candidate(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = value.strip().strip("\"'").strip()
    # Normalize accidental duplicated prefixes like: "Bearer Bearer <jwt>"
    while cleaned.lower().startswith("bearer "):
        cleaned = cleaned[7:].strip().strip("\"'").strip()
    return cleaned or None


def extract_token(request: Request, bearer_token: str | None, cookie_name: str) -> str | None:
    return _clean_candidate(bearer_token) or _clean_candidate(request.cookies.get(cookie_name))


def _credentials_exception(detail: str = "Invalid authentication credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def load_account(db: Session, payload: dict) -> Account:
    try:
        account_id = int(payload.get("sub"))
    except (TypeError, ValueError) as exc:
        raise _credentials_exception() from exc

    account_type = payload.get("type")
    if account_type == "user":
        user = db.get(User, account_id)
        if not user or user.status != AccountStatus.ACTIVE:
            raise _credentials_exception("Account is missing or disabled")
        return Account(id=user.id, username=user.username, account_type="user", owner_user_id=user.id)

    if account_type == "sub_account":
        sub_account = db.get(SubAccount, account_id)
        if not sub_account or sub_account.status != AccountStatus.ACTIVE:
            raise _credentials_exception("Account is missing or disabled")
        parent = db.get(User, sub_account.parent_user_id)
        if not parent or parent.status != AccountStatus.ACTIVE:
            raise _credentials_exception("Parent account is disabled")
        return Account(
            id=sub_account.id,
            username=sub_account.username,
            account_type="sub_account",
            owner_user_id=parent.id,
            role=sub_account.role.value,
            permissions=tuple(sub_account.permissions or ()),
            responsible_malls=tuple(str(mall_id) for mall_id in sub_account.responsible_malls or ()),
        )

    raise _credentials_exception()


def get_current_account(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Account:
    raw_token = extract_token(request, token, USER_COOKIE)
    if not raw_token:
        raise _credentials_exception("Not logged in")
    try:
        payload = decode_token(raw_token)
    except JWTError as exc:
        raise _credentials_exception() from exc
    return load_account(db, payload)


def require_main_account(account: Account = Depends(get_current_account)) -> Account:
    if not account.is_main_account:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the main account can perform this operation",
        )
    return account


def get_mall_scope(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> MallScope:
    params = request.query_params
    storefront_cookies = params.get("temuCookies")
    plugin_mall_id = normalize_mall_id(params.get("mall_id"))
    if params.get("end") == "plugin" and storefront_cookies and plugin_mall_id:
        if settings.plugin_mode_enabled:
            try:
                verify_storefront_cookies(storefront_cookies)
            except PluginAuthError as exc:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
            return MallScope(allowed_mall_ids=(plugin_mall_id,), is_plugin_mode=True)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Plugin access is disabled")

    account = get_current_account(request, token, db)
    return build_mall_scope(db, account)


def get_current_admin(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Admin:
    raw_token = extract_token(request, token, ADMIN_COOKIE)
    if not raw_token:
        raise _credentials_exception("Admin login required")
    try:
        payload = decode_admin_token(raw_token)
        admin_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError) as exc:
        raise _credentials_exception() from exc
    if payload.get("type") != "admin":
        raise _credentials_exception()

    admin = db.scalar(select(Admin).where(Admin.id == admin_id))
    if not admin or admin.status != AccountStatus.ACTIVE:
        raise _credentials_exception("Admin account is missing or disabled")
    return admin


def require_super_admin(admin: Admin = Depends(get_current_admin)) -> Admin:
    if admin.role != AdminRole.SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin role required",
        )
    return admin
