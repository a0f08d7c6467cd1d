import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, or_, update
from sqlalchemy.orm import Session

from shop_assistant.core.cache import TTLCache, query_cache
from shop_assistant.models.account import PasswordResetToken
from shop_assistant.models.membership import UserPackage

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    expired_packages: int = 0
    purged_reset_tokens: int = 0
    evicted_cache_entries: int = 0


def expire_user_packages(db: Session, now: datetime | None = None) -> int:
    result = db.execute(
        update(UserPackage)
        .where(UserPackage.is_active.is_(True), UserPackage.expire_time <= (now or datetime.now()))
        .values(is_active=False)
    )
    return result.rowcount or 0


def purge_reset_tokens(db: Session, now: datetime | None = None) -> int:
    result = db.execute(
        delete(PasswordResetToken).where(
            or_(
                PasswordResetToken.used.is_(True),
                PasswordResetToken.expires_time < (now or datetime.now()),
            )
        )
    )
    return result.rowcount or 0


def run_maintenance(db: Session, cache: TTLCache | None = None) -> CleanupReport:
    now = datetime.now()
    report = CleanupReport(
        expired_packages=expire_user_packages(db, now),
        purged_reset_tokens=purge_reset_tokens(db, now),
    )
    db.commit()
    report.evicted_cache_entries = (cache or query_cache).purge_expired()
    return report
