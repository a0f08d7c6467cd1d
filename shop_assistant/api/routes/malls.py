import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shop_assistant.api.deps import get_current_account, require_main_account
from shop_assistant.db.database import get_db
from shop_assistant.models.account import User, UserMallBinding
from shop_assistant.models.membership import Invitation, InvitationReward, RewardStatus, RewardType
from shop_assistant.schemas.account import MallBindingOut, MallBindRequest, MallQuotaOut, PackageSummaryOut
from shop_assistant.schemas.common import ApiResponse, Page, ok
from shop_assistant.services.mall_scope import Account
from shop_assistant.services.operation_log import log_operation
from shop_assistant.services.query_optimizer import paginate_statement
from shop_assistant.services.quota import compute_mall_quota

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/malls", tags=["Malls"])

QUOTA_EXHAUSTED = "Mall quota reached, upgrade your package or invite friends to unlock more malls"


@router.get("", response_model=ApiResponse[Page[MallBindingOut]])
def list_malls(
    page_index: int | None = Query(default=None, alias="pageIndex", ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1),
    mall_name: str | None = Query(default=None, alias="mallName"),
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    query = select(UserMallBinding).where(UserMallBinding.user_id == account.owner_user_id)
    if mall_name:
        query = query.where(UserMallBinding.mall_name == mall_name.strip())
    query = query.order_by(UserMallBinding.created_time.desc(), UserMallBinding.id.desc())
    items, page = paginate_statement(db, query, page_index, page_size)
    return ok({"data": [MallBindingOut.model_validate(item) for item in items], **page})


@router.get("/quota", response_model=ApiResponse[MallQuotaOut])
def get_mall_quota(account: Account = Depends(get_current_account), db: Session = Depends(get_db)):
    quota = compute_mall_quota(db, account.owner_user_id)
    package_info = None
    if quota.active_package:
        package_info = PackageSummaryOut(
            id=quota.active_package.id,
            package_name=quota.active_package.package.package_name if quota.active_package.package else None,
            expire_time=quota.active_package.expire_time,
        )
    return ok(
        MallQuotaOut(
            total_quota=quota.total_quota,
            current_bind_count=quota.current_bind_count,
            remaining_quota=quota.remaining_quota,
            package_quota=quota.package_quota,
            reward_quota=quota.reward_quota,
            can_bind=quota.can_bind,
            package_info=package_info,
        )
    )


@router.post("", response_model=ApiResponse[MallBindingOut])
def bind_mall(
    payload: MallBindRequest,
    request: Request,
    account: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    # Concurrent binds for one account serialize on the user row.
    user = db.scalar(select(User).where(User.id == account.id).with_for_update())
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    quota = compute_mall_quota(db, user.id)
    if not quota.can_bind:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=QUOTA_EXHAUSTED)

    if db.scalar(select(UserMallBinding.id).where(UserMallBinding.mall_id == payload.mall_id)):
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This mall is already bound")

    now = datetime.now()
    binding = UserMallBinding(user_id=user.id, mall_id=payload.mall_id, mall_name=payload.mall_name, bind_time=now)
    db.add(binding)

    invitation = db.scalar(select(Invitation).where(Invitation.invitee_id == user.id))
    if invitation:
        rewarded = db.scalar(select(InvitationReward.id).where(InvitationReward.mall_id == payload.mall_id))
        if not rewarded:
            db.add(
                InvitationReward(
                    inviter_id=invitation.inviter_id,
                    invitee_id=user.id,
                    mall_id=payload.mall_id,
                    mall_name=payload.mall_name,
                    reward_type=RewardType.FREE_MALLS,
                    reward_value=1,
                    status=RewardStatus.GRANTED,
                    granted_at=now,
                )
            )
            logger.info("Granted free mall reward to user %s for mall %s", invitation.inviter_id, payload.mall_id)

    log_operation(db, user.id, "mall_binding", f"Bound mall {payload.mall_id} ({payload.mall_name})", request)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This mall is already bound") from exc
    db.refresh(binding)
    return ok(MallBindingOut.model_validate(binding), "Mall bound")


@router.delete("", response_model=ApiResponse[None])
def unbind_mall(
    request: Request,
    binding_id: int = Query(alias="id"),
    account: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    binding = db.scalar(
        select(UserMallBinding).where(
            UserMallBinding.id == binding_id,
            UserMallBinding.user_id == account.id,
        )
    )
    if not binding:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mall not found or not yours to remove")

    db.delete(binding)
    log_operation(db, account.id, "mall_unbinding", f"Removed mall {binding.mall_name}", request)
    db.commit()
    return ok(None, "Mall removed")
