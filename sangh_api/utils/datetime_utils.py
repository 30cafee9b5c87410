# sangh_api/utils/datetime_utils.py
from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_aware(dt):
    # Mongo hands back naive datetimes that are already UTC
    if dt is None:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def epoch_millis(dt: datetime | None = None) -> int:
    """Milliseconds since the epoch; used to build blob names."""
    return int((dt or now_utc()).timestamp() * 1000)
