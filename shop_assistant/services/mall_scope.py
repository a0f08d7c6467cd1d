"""Mall visibility rules.

Every storefront read and write is restricted to the caller's allowed mall
set: the account's own bindings for a main account, the parent's bindings
narrowed to ``responsible_malls`` for a sub-account, or exactly the single
mall named by a verified browser-extension request.
"""

from dataclasses import dataclass

from fastapi import HTTPException, status
from sqlalchemy import false, select
from sqlalchemy.orm import Session

from shop_assistant.models.account import UserMallBinding

NO_MALLS_BOUND = "No malls are bound to this account"
MALL_ACCESS_DENIED = "No access to the requested mall"


@dataclass(frozen=True)
class Account:
    id: int
    username: str
    account_type: str
    owner_user_id: int
    role: str | None = None
    permissions: tuple[str, ...] = ()
    responsible_malls: tuple[str, ...] = ()

    @property
    def is_main_account(self) -> bool:
        return self.account_type == "user"


@dataclass(frozen=True)
class MallScope:
    allowed_mall_ids: tuple[str, ...]
    account: Account | None = None
    is_plugin_mode: bool = False

    def allows(self, mall_id) -> bool:
        normalized = normalize_mall_id(mall_id)
        return normalized is not None and normalized in self.allowed_mall_ids

    @property
    def default_mall_id(self) -> str | None:
        return self.allowed_mall_ids[0] if self.allowed_mall_ids else None


def normalize_mall_id(value) -> str | None:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def resolve_allowed_mall_ids(db: Session, account: Account) -> list[str]:
    bindings = db.scalars(
        select(UserMallBinding)
        .where(UserMallBinding.user_id == account.owner_user_id)
        .order_by(UserMallBinding.bind_time.asc(), UserMallBinding.id.asc())
    ).all()
    mall_ids = [str(binding.mall_id) for binding in bindings]
    if account.is_main_account:
        return mall_ids
    responsible = {str(mall_id) for mall_id in account.responsible_malls}
    return [mall_id for mall_id in mall_ids if mall_id in responsible]


def build_mall_scope(db: Session, account: Account) -> MallScope:
    allowed = resolve_allowed_mall_ids(db, account)
    if not allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NO_MALLS_BOUND)
    return MallScope(allowed_mall_ids=tuple(allowed), account=account)


def build_mall_filters(
    scope: MallScope,
    mall_id_column,
    mall_name_column,
    requested_mall_id=None,
    requested_mall_name: str | None = None,
) -> tuple[list, dict]:
    """Return SQL conditions plus a JSON-friendly signature of the effective filter.

    A requested id outside the allowed set produces a condition matching no
    rows rather than an error.
    """
    conditions = [mall_id_column.in_(scope.allowed_mall_ids)]
    signature: dict = {"allowed": sorted(scope.allowed_mall_ids)}

    mall_id = normalize_mall_id(requested_mall_id)
    if mall_id is not None:
        if scope.allows(mall_id):
            conditions.append(mall_id_column == mall_id)
            signature["mall_id"] = mall_id
        else:
            conditions.append(false())
            signature["mall_id"] = None

    mall_name = (requested_mall_name or "").strip()
    if mall_name:
        conditions.append(mall_name_column.like(f"%{mall_name}%"))
        signature["mall_name"] = mall_name

    return conditions, signature


def validate_mall_access(
    db: Session,
    scope: MallScope,
    mall_id=None,
    mall_name: str | None = None,
) -> None:
    mall_id = normalize_mall_id(mall_id)
    mall_name = (mall_name or "").strip() or None

    if scope.is_plugin_mode:
        if not scope.allows(mall_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=MALL_ACCESS_DENIED)
        return

    if scope.account is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials")

    query = select(UserMallBinding.mall_id).where(UserMallBinding.user_id == scope.account.owner_user_id)
    if mall_id is not None:
        if not mall_id.isdigit() or not scope.allows(mall_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=MALL_ACCESS_DENIED)
        query = query.where(UserMallBinding.mall_id == int(mall_id))
    if mall_name is not None:
        query = query.where(UserMallBinding.mall_name.like(f"%{mall_name}%"))

    bound_ids = {str(value) for value in db.scalars(query).all()}
    if not any(scope.allows(value) for value in bound_ids):
        detail = MALL_ACCESS_DENIED if (mall_id or mall_name) else NO_MALLS_BOUND
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
