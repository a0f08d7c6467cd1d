import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shop_assistant.api.deps import require_main_account
from shop_assistant.api.routes.auth import username_taken
from shop_assistant.core.security import hash_password
from shop_assistant.db.database import get_db
from shop_assistant.models.account import AccountStatus, SubAccount, SubAccountRole, UserMallBinding
from shop_assistant.schemas.account import PasswordResetBody, SubAccountCreate, SubAccountOut, SubAccountUpdate
from shop_assistant.schemas.common import ApiResponse, Page, ok
from shop_assistant.services.mall_scope import Account
from shop_assistant.services.operation_log import log_operation
from shop_assistant.services.query_optimizer import paginate_statement

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sub-accounts", tags=["Sub-accounts"])


def _get_owned_sub_account(db: Session, owner: Account, sub_account_id: int) -> SubAccount:
    sub_account = db.scalar(
        select(SubAccount).where(
            SubAccount.id == sub_account_id,
            SubAccount.parent_user_id == owner.id,
        )
    )
    if not sub_account:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sub-account not found")
    return sub_account


def _check_responsible_malls(db: Session, owner: Account, mall_ids: list[str]) -> list[str]:
    bound_ids = db.scalars(select(UserMallBinding.mall_id).where(UserMallBinding.user_id == owner.id)).all()
    bound = {str(mall_id) for mall_id in bound_ids}
    unknown = [mall_id for mall_id in mall_ids if mall_id not in bound]
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Malls not bound to this account: {', '.join(unknown)}",
        )
    return list(dict.fromkeys(mall_ids))


@router.get("", response_model=ApiResponse[Page[SubAccountOut]])
def list_sub_accounts(
    page_index: int | None = Query(default=None, alias="pageIndex", ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1),
    account_status: AccountStatus | None = Query(default=None, alias="status"),
    role: SubAccountRole | None = None,
    owner: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    query = select(SubAccount).where(SubAccount.parent_user_id == owner.id)
    if account_status:
        query = query.where(SubAccount.status == account_status)
    if role:
        query = query.where(SubAccount.role == role)
    query = query.order_by(SubAccount.created_time.desc(), SubAccount.id.desc())
    items, page = paginate_statement(db, query, page_index, page_size)
    return ok({"data": [SubAccountOut.model_validate(item) for item in items], **page})


@router.post("", response_model=ApiResponse[SubAccountOut], status_code=status.HTTP_201_CREATED)
def create_sub_account(
    payload: SubAccountCreate,
    request: Request,
    owner: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    if username_taken(db, payload.username):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")

    sub_account = SubAccount(
        parent_user_id=owner.id,
        username=payload.username,
        password_hash=hash_password(payload.password),
        real_name=payload.real_name,
        phone=payload.phone,
        email=payload.email,
        role=payload.role,
        status=AccountStatus.ACTIVE,
        responsible_malls=_check_responsible_malls(db, owner, payload.responsible_malls),
        permissions=payload.permissions,
    )
    db.add(sub_account)
    log_operation(db, owner.id, "sub_account_create", f"Created sub-account {payload.username}", request)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists") from exc
    db.refresh(sub_account)
    logger.info("User %s created sub-account %s", owner.id, sub_account.username)
    return ok(SubAccountOut.model_validate(sub_account), "Sub-account created")


@router.get("/{sub_account_id}", response_model=ApiResponse[SubAccountOut])
def get_sub_account(
    sub_account_id: int,
    owner: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    return ok(SubAccountOut.model_validate(_get_owned_sub_account(db, owner, sub_account_id)))


@router.put("/{sub_account_id}", response_model=ApiResponse[SubAccountOut])
def update_sub_account(
    sub_account_id: int,
    payload: SubAccountUpdate,
    request: Request,
    owner: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    sub_account = _get_owned_sub_account(db, owner, sub_account_id)
    changes = payload.model_dump(exclude_unset=True)

    username = changes.pop("username", None)
    if username and username != sub_account.username:
        if username_taken(db, username):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")
        sub_account.username = username

    password = changes.pop("password", None)
    if password:
        sub_account.password_hash = hash_password(password)

    if changes.get("responsible_malls") is not None:
        changes["responsible_malls"] = _check_responsible_malls(db, owner, changes["responsible_malls"])
    for key, value in changes.items():
        if value is not None:
            setattr(sub_account, key, value)

    log_operation(db, owner.id, "sub_account_update", f"Updated sub-account {sub_account.username}", request)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists") from exc
    db.refresh(sub_account)
    return ok(SubAccountOut.model_validate(sub_account), "Sub-account updated")


@router.delete("/{sub_account_id}", response_model=ApiResponse[None])
def delete_sub_account(
    sub_account_id: int,
    request: Request,
    owner: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    sub_account = _get_owned_sub_account(db, owner, sub_account_id)
    db.delete(sub_account)
    log_operation(db, owner.id, "sub_account_delete", f"Deleted sub-account {sub_account.username}", request)
    db.commit()
    return ok(None, "Sub-account deleted")


@router.post("/{sub_account_id}/reset-password", response_model=ApiResponse[None])
def reset_sub_account_password(
    sub_account_id: int,
    payload: PasswordResetBody,
    request: Request,
    owner: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    sub_account = _get_owned_sub_account(db, owner, sub_account_id)
    sub_account.password_hash = hash_password(payload.new_password)
    log_operation(
        db,
        owner.id,
        "sub_account_reset_password",
        f"Reset password of sub-account {sub_account.username}",
        request,
    )
    db.commit()
    return ok(None, "Sub-account password reset")
