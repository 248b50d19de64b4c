"""Sync health classification from product count and sync_log history."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

NO_DATA = "no_data"
NEVER_SYNCED = "never_synced"
UNHEALTHY = "unhealthy"
STALE = "stale"
AGING = "aging"
HEALTHY = "healthy"

STALE_AFTER_HOURS = 48
AGING_AFTER_HOURS = 24


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def calculate_sync_health(
    total_products: int,
    last_sync: Optional[Dict[str, Any]],
    last_successful: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Classify sync health.

    Args:
        total_products: Rows in the products table
        last_sync: Most recent sync_log row (any status)
        last_successful: Most recent completed sync_log row; defaults to
            last_sync when that one completed
        now: Reference time (tests)
    """
    if not total_products:
        return NO_DATA
    if not last_sync:
        return NEVER_SYNCED
    if last_sync.get("status") == "failed":
        return UNHEALTHY

    if last_successful is None and last_sync.get("status") == "completed":
        last_successful = last_sync
    completed_at = _parse_ts(last_successful.get("completed_at")) if last_successful else None
    if completed_at is None:
        return STALE

    now = now or datetime.now(timezone.utc)
    hours_since = (now - completed_at).total_seconds() / 3600
    if hours_since > STALE_AFTER_HOURS:
        return STALE
    if hours_since > AGING_AFTER_HOURS:
        return AGING
    return HEALTHY
