from datetime import datetime, timezone as dt_timezone
from functools import lru_cache
from typing import Dict, Optional
from zoneinfo import ZoneInfo, available_timezones

from medreminders.core.config import settings

# Fallback when neither the candidate nor the configured default is usable
DEFAULT_TIMEZONE = "America/Chicago"


@lru_cache(maxsize=1)
def _canonical_zone_names() -> Dict[str, str]:
    """Map lower-cased IANA identifiers to their canonical spelling."""
    return {name.lower(): name for name in available_timezones()}


def normalize_timezone(candidate: Optional[str]) -> Optional[str]:
    """
    Return the canonical IANA identifier for ``candidate`` or None.

    - Absent, blank and non-string values return None
    - Matching is case-insensitive and ignores surrounding whitespace
    - Identifiers unknown to the runtime tz database return None

    Never raises: user-entered and legacy values are routinely malformed.
    """
    if not isinstance(candidate, str):
        return None
    value = candidate.strip()
    if not value:
        return None
    return _canonical_zone_names().get(value.lower())


def default_timezone() -> str:
    """The configured fallback zone, or America/Chicago if that is not valid."""
    return normalize_timezone(settings.DEFAULT_TIMEZONE) or DEFAULT_TIMEZONE


def resolve_timezone_or_default(candidate: Optional[str]) -> str:
    """Normalize ``candidate``; substitute the default zone when that fails."""
    return normalize_timezone(candidate) or default_timezone()


def get_zoneinfo(tz_name: Optional[str]) -> ZoneInfo:
    return ZoneInfo(resolve_timezone_or_default(tz_name))


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def now_in_timezone(tz_name: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Current (or given) instant expressed on the clock of ``tz_name``."""
    instant = to_utc_aware(now) if now is not None else datetime.now(dt_timezone.utc)
    return instant.astimezone(get_zoneinfo(tz_name))
