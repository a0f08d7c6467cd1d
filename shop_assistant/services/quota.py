import calendar
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from shop_assistant.models.account import UserMallBinding
from shop_assistant.models.membership import InvitationReward, RewardStatus, RewardType, UserPackage


@dataclass(frozen=True)
class MallQuota:
    package_quota: int
    reward_quota: int
    current_bind_count: int
    active_package: UserPackage | None = None

    @property
    def total_quota(self) -> int:
        return self.package_quota + self.reward_quota

    @property
    def remaining_quota(self) -> int:
        return max(0, self.total_quota - self.current_bind_count)

    @property
    def can_bind(self) -> bool:
        return self.remaining_quota > 0


def package_expire_time(start: datetime, months: int) -> datetime:
    """Add calendar months to ``start`` and run to the end of that day."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day, hour=23, minute=59, second=59, microsecond=0)


def get_active_package(db: Session, user_id: int) -> UserPackage | None:
    return db.scalar(
        select(UserPackage)
        .where(
            UserPackage.user_id == user_id,
            UserPackage.is_active.is_(True),
            UserPackage.expire_time > datetime.now(),
        )
        .order_by(UserPackage.expire_time.desc())
        .limit(1)
    )


def compute_mall_quota(db: Session, user_id: int) -> MallQuota:
    """Quota is the active package's ``max_bind_mall`` plus granted free-mall rewards."""
    active_package = get_active_package(db, user_id)
    package_quota = active_package.package.max_bind_mall if active_package and active_package.package else 0

    reward_total = db.scalar(
        select(func.coalesce(func.sum(InvitationReward.reward_value), 0)).where(
            InvitationReward.inviter_id == user_id,
            InvitationReward.reward_type == RewardType.FREE_MALLS,
            InvitationReward.status == RewardStatus.GRANTED,
        )
    )
    current = db.scalar(select(func.count(UserMallBinding.id)).where(UserMallBinding.user_id == user_id)) or 0
    return MallQuota(
        package_quota=int(package_quota or 0),
        reward_quota=int(reward_total or 0),
        current_bind_count=int(current),
        active_package=active_package,
    )
