import logging
from datetime import datetime
from itertools import zip_longest

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from shop_assistant.api.deps import get_current_account, require_main_account
from shop_assistant.core.config import settings
from shop_assistant.db.database import get_db
from shop_assistant.models.account import User, UserOperationLog
from shop_assistant.models.membership import (
    Invitation,
    InvitationReward,
    MembershipPackage,
    PluginStatus,
    PluginVersion,
    RewardStatus,
    RewardType,
    UserPackage,
)
from shop_assistant.schemas.account import OperationLogOut
from shop_assistant.schemas.common import ApiResponse, Page, ok
from shop_assistant.schemas.membership import (
    InvitationInfoOut,
    InvitationLinkOut,
    InvitationOut,
    InvitationRewardOut,
    InvitationRewardPage,
    LatestPluginOut,
    PackageOrderRequest,
    PackageOut,
    PluginCheckOut,
    PluginVersionOut,
    RewardClaimRequest,
    RewardStatsOut,
    UserPackageOut,
)
from shop_assistant.services.mall_scope import Account
from shop_assistant.services.operation_log import log_operation
from shop_assistant.services.query_optimizer import paginate_statement
from shop_assistant.services.quota import compute_mall_quota, package_expire_time

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Membership"])


def compare_versions(left: str, right: str) -> int:
    """Compare dotted version strings numerically; missing parts count as zero."""
    def parts(version: str) -> list[int]:
        return [int(part) if part.isdecimal() else 0 for part in version.strip().split(".")]

    for a, b in zip_longest(parts(left), parts(right), fillvalue=0):
        if a != b:
            return 1 if a > b else -1
    return 0


@router.get("/packages", response_model=ApiResponse[list[PackageOut]])
def list_active_packages(db: Session = Depends(get_db)):
    packages = db.scalars(
        select(MembershipPackage)
        .where(MembershipPackage.is_active.is_(True))
        .order_by(MembershipPackage.original_price.asc(), MembershipPackage.id.asc())
    ).all()
    return ok([PackageOut.model_validate(package) for package in packages])


@router.get("/user-packages", response_model=ApiResponse[list[UserPackageOut]])
def list_user_packages(account: Account = Depends(get_current_account), db: Session = Depends(get_db)):
    user_packages = db.scalars(
        select(UserPackage)
        .options(selectinload(UserPackage.package))
        .where(UserPackage.user_id == account.owner_user_id)
        .order_by(UserPackage.expire_time.desc())
    ).all()
    return ok([UserPackageOut.model_validate(user_package) for user_package in user_packages])


@router.post("/user-packages", response_model=ApiResponse[UserPackageOut], status_code=status.HTTP_201_CREATED)
def order_package(
    payload: PackageOrderRequest,
    request: Request,
    account: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    package = db.get(MembershipPackage, payload.package_id)
    if not package:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Package not found")
    if not package.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Package is no longer offered")

    now = datetime.now()
    user_package = UserPackage(
        user_id=account.id,
        package_id=package.id,
        order_time=now,
        expire_time=package_expire_time(now, package.duration_months),
        is_active=True,
    )
    db.add(user_package)
    log_operation(
        db,
        account.id,
        "package_purchase",
        f"Ordered package {package.package_name} via {payload.payment_method}",
        request,
    )
    db.commit()
    db.refresh(user_package)
    logger.info("User %s ordered package %s", account.username, package.package_name)
    return ok(UserPackageOut.model_validate(user_package), "Package ordered, awaiting payment")


@router.get("/invitations", response_model=ApiResponse[Page[InvitationOut]])
def list_invitations(
    page_index: int | None = Query(default=None, alias="pageIndex", ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1),
    direction: str = Query(default="sent", alias="type", pattern="^(sent|received)$"),
    invitation_status: str | None = Query(default=None, alias="status"),
    account: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    column = Invitation.invitee_id if direction == "received" else Invitation.inviter_id
    query = (
        select(Invitation)
        .options(selectinload(Invitation.inviter), selectinload(Invitation.invitee))
        .where(column == account.id)
    )
    if invitation_status:
        query = query.where(Invitation.status == invitation_status)
    query = query.order_by(Invitation.created_time.desc(), Invitation.id.desc())
    items, page = paginate_statement(db, query, page_index, page_size)
    return ok({"data": [InvitationOut.model_validate(item) for item in items], **page})


@router.post("/invitations", response_model=ApiResponse[InvitationLinkOut])
def create_invitation_link(
    request: Request,
    account: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    user = db.get(User, account.id)
    link = f"{settings.frontend_base_url.rstrip('/')}/login?invitation_code={user.invite_code}"
    log_operation(db, user.id, "invitation_link_generate", "Generated invitation link", request)
    db.commit()
    return ok(InvitationLinkOut(invite_code=user.invite_code, invitation_link=link))


@router.get("/invitations/info", response_model=ApiResponse[InvitationInfoOut])
@router.get("/invitations/user-info", response_model=ApiResponse[InvitationInfoOut])
def invitation_info(account: Account = Depends(require_main_account), db: Session = Depends(get_db)):
    user = db.get(User, account.id)
    total_invitees = db.scalar(select(func.count(Invitation.id)).where(Invitation.inviter_id == user.id)) or 0
    return ok(
        InvitationInfoOut(
            invite_code=user.invite_code,
            total_invitees=total_invitees,
            reward_mall_count=compute_mall_quota(db, user.id).reward_quota,
        )
    )


def _reward_count(db: Session, inviter_id: int, reward_status: RewardStatus | None = None) -> int:
    query = select(func.count(InvitationReward.id)).where(InvitationReward.inviter_id == inviter_id)
    if reward_status:
        query = query.where(InvitationReward.status == reward_status)
    return db.scalar(query) or 0


@router.get("/invitation-rewards", response_model=ApiResponse[InvitationRewardPage])
def list_invitation_rewards(
    page_index: int | None = Query(default=None, alias="pageIndex", ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1),
    reward_status: RewardStatus | None = Query(default=None, alias="status"),
    reward_type: RewardType | None = Query(default=None, alias="rewardType"),
    account: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    query = (
        select(InvitationReward)
        .options(selectinload(InvitationReward.invitee))
        .where(InvitationReward.inviter_id == account.id)
    )
    if reward_status:
        query = query.where(InvitationReward.status == reward_status)
    if reward_type:
        query = query.where(InvitationReward.reward_type == reward_type)
    query = query.order_by(InvitationReward.created_time.desc(), InvitationReward.id.desc())
    items, page = paginate_statement(db, query, page_index, page_size)
    stats = RewardStatsOut(
        total=_reward_count(db, account.id),
        granted=_reward_count(db, account.id, RewardStatus.GRANTED),
        pending=_reward_count(db, account.id, RewardStatus.PENDING),
        reward_mall_count=compute_mall_quota(db, account.id).reward_quota,
    )
    return ok({"data": [InvitationRewardOut.model_validate(item) for item in items], **page, "stats": stats})


@router.post("/invitation-rewards", response_model=ApiResponse[InvitationRewardOut])
def claim_invitation_reward(
    payload: RewardClaimRequest,
    request: Request,
    account: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    reward = db.scalar(
        select(InvitationReward)
        .options(selectinload(InvitationReward.invitee))
        .where(
            InvitationReward.id == payload.reward_id,
            InvitationReward.inviter_id == account.id,
            InvitationReward.status == RewardStatus.PENDING,
        )
        .with_for_update()
    )
    if not reward:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reward not found or already claimed")

    reward.status = RewardStatus.GRANTED
    reward.granted_at = datetime.now()
    log_operation(db, account.id, "invitation_reward_claim", f"Claimed {reward.reward_type.value} reward", request)
    db.commit()
    db.refresh(reward)
    return ok(InvitationRewardOut.model_validate(reward), "Reward claimed")


@router.get("/operation-logs", response_model=ApiResponse[Page[OperationLogOut]])
def list_operation_logs(
    page_index: int | None = Query(default=None, alias="pageIndex", ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1),
    operation_type: str | None = Query(default=None, alias="operationType"),
    account: Account = Depends(require_main_account),
    db: Session = Depends(get_db),
):
    query = select(UserOperationLog).where(UserOperationLog.user_id == account.id)
    if operation_type:
        query = query.where(UserOperationLog.operation_type == operation_type)
    query = query.order_by(UserOperationLog.created_time.desc(), UserOperationLog.id.desc())
    items, page = paginate_statement(db, query, page_index, page_size)
    return ok({"data": [OperationLogOut.model_validate(item) for item in items], **page})


@router.get("/plugin-versions", response_model=ApiResponse[PluginCheckOut | Page[PluginVersionOut]])
def plugin_versions(
    action: str | None = None,
    current_version: str | None = Query(default=None, alias="currentVersion"),
    page_index: int | None = Query(default=None, alias="pageIndex", ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1),
    plugin_status: PluginStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
):
    if action == "check":
        latest = db.scalar(
            select(PluginVersion)
            .where(PluginVersion.status == PluginStatus.ACTIVE, PluginVersion.is_latest.is_(True))
            .order_by(PluginVersion.release_date.desc())
            .limit(1)
        )
        if not latest:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No plugin version available")
        has_update = compare_versions(latest.version, current_version) > 0 if current_version else True
        return ok(
            PluginCheckOut(
                has_update=has_update,
                current_version=current_version,
                latest_version=LatestPluginOut.model_validate(latest),
            )
        )

    query = select(PluginVersion)
    if plugin_status:
        query = query.where(PluginVersion.status == plugin_status)
    query = query.order_by(PluginVersion.release_date.desc(), PluginVersion.id.desc())
    items, page = paginate_statement(db, query, page_index, page_size)
    return ok({"data": [PluginVersionOut.model_validate(item) for item in items], **page})
