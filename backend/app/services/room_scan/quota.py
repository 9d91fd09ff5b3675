"""Daily room scan caps per user and per property.

Counts are derived from existing session rows; the session created for an
admitted scan is itself the increment.  There is no locking, so a burst of
concurrent requests can over-admit slightly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.models.inventory import RoomScanSession

logger = logging.getLogger(__name__)

USER_DAILY_CAP = "user_daily"
PROPERTY_DAILY_CAP = "property_daily"


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    reason: Optional[str] = None
    cap_name: Optional[str] = None
    retry_after_seconds: int = 0


ALLOW = QuotaDecision(allowed=True)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_day_window(now: datetime) -> tuple[datetime, datetime]:
    """Start of the current UTC day and start of the next one."""
    now = _as_utc(now)
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _count_since(db: Session, since: datetime, *criteria) -> int:
    return int(
        db.execute(
            select(func.count(RoomScanSession.id)).where(RoomScanSession.created_at >= since, *criteria)
        ).scalar_one()
    )


def check_scan_quota(
    db: Session,
    *,
    user_id: str,
    property_id: str,
    now: Optional[datetime] = None,
    settings: Settings | None = None,
) -> QuotaDecision:
    """Decide whether a new scan may start.

    Database errors propagate: a failed count never admits a scan.
    """
    settings = settings or get_settings()
    if settings.room_scan_disable_daily_caps:
        return ALLOW

    now = _as_utc(now or datetime.now(timezone.utc))
    day_start, next_day = utc_day_window(now)
    retry_after = max(1, int((next_day - now).total_seconds()))

    user_cap = settings.room_scan_max_scans_per_user_per_day
    user_count = _count_since(db, day_start, RoomScanSession.user_id == str(user_id))
    if user_count >= user_cap:
        logger.info("Room scan denied cap=%s user_id=%s count=%d limit=%d", USER_DAILY_CAP, user_id, user_count, user_cap)
        return QuotaDecision(
            allowed=False,
            reason=f"Daily room scan limit reached ({user_cap}/day). Try again tomorrow.",
            cap_name=USER_DAILY_CAP,
            retry_after_seconds=retry_after,
        )

    property_cap = settings.room_scan_max_scans_per_property_per_day
    property_count = _count_since(db, day_start, RoomScanSession.property_id == str(property_id))
    if property_count >= property_cap:
        logger.info(
            "Room scan denied cap=%s property_id=%s count=%d limit=%d",
            PROPERTY_DAILY_CAP,
            property_id,
            property_count,
            property_cap,
        )
        return QuotaDecision(
            allowed=False,
            reason=f"This property reached its daily room scan limit ({property_cap}/day). Try again tomorrow.",
            cap_name=PROPERTY_DAILY_CAP,
            retry_after_seconds=retry_after,
        )

    return ALLOW
