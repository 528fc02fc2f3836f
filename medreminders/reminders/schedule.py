"""
Schedule helpers: default reminder times and due-time evaluation
"""
from dataclasses import dataclass
import re
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Union

from medreminders.utils.timezone import (
    normalize_timezone,
    now_in_timezone,
    resolve_timezone_or_default,
    to_utc_aware,
)
from .policy_models import TimingMode
from .timing_policy import coerce_timing_mode

MINUTES_PER_DAY = 24 * 60
_AM_HINT = re.compile(r"\bam\b")


@dataclass(frozen=True)
class DueEvaluation:
    reminder_id: str
    evaluation_timezone: str
    scheduled_time: str
    due_reason: str = "schedule"


def default_reminder_times(frequency: Optional[str]) -> Optional[List[str]]:
    """
    Map medication frequency text to default reminder times (HH:MM, 24h).
    Returns None if the frequency doesn't warrant a reminder (PRN, as needed).
    """
    if not frequency or not frequency.strip():
        return ["08:00"]

    freq = frequency.lower().strip()

    if "prn" in freq or "as needed" in freq or "when needed" in freq:
        return None

    # Mealtime patterns
    if any(k in freq for k in ("with meals", "with food", "at meals", "at mealtimes")):
        return ["08:00", "12:00", "18:00"]

    # Multiple doses per day are checked before "daily" ("twice daily")
    if any(k in freq for k in ("twice", "bid", "2x", "two times", "every 12")):
        return ["08:00", "20:00"]

    if any(k in freq for k in ("three times", "tid", "3x", "every 8")):
        return ["08:00", "14:00", "20:00"]

    if any(k in freq for k in ("four times", "qid", "4x", "every 6")):
        return ["08:00", "12:00", "16:00", "20:00"]

    # Once daily, with optional time-of-day hint
    if any(k in freq for k in ("once daily", "once a day", "qd", "daily")) or freq == "qday":
        if "morning" in freq or "breakfast" in freq or _AM_HINT.search(freq):
            return ["08:00"]
        if any(k in freq for k in ("evening", "pm", "night", "bedtime", "dinner")):
            return ["20:00"]
        return ["08:00"]

    if "weekly" in freq or "once a week" in freq:
        return ["08:00"]

    if any(k in freq for k in ("bedtime", "at night", "before bed", "nightly")):
        return ["21:00"]

    if "morning" in freq or "breakfast" in freq:
        return ["08:00"]
    if "lunch" in freq or "noon" in freq or "midday" in freq:
        return ["12:00"]
    if "dinner" in freq or "supper" in freq or "evening" in freq:
        return ["18:00"]

    return ["08:00"]


def parse_hhmm(value: str) -> Optional[int]:
    """Minutes after midnight for an ``HH:MM`` string, or None if malformed."""
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        return None
    hour, minute = int(parts[0]), int(parts[1])
    if hour > 23 or minute > 59:
        return None
    return hour * 60 + minute


def normalize_reminder_times(times: Iterable[str]) -> List[str]:
    """Zero-pad valid HH:MM entries, drop malformed ones, dedupe and sort."""
    minutes = {m for m in (parse_hhmm(t) for t in times) if m is not None}
    return [f"{m // 60:02d}:{m % 60:02d}" for m in sorted(minutes)]


def is_time_within_window(reminder_time: str, current_time: str, window_minutes: int = 7) -> bool:
    reminder_minutes = parse_hhmm(reminder_time)
    current_minutes = parse_hhmm(current_time)
    if reminder_minutes is None or current_minutes is None:
        return False
    diff = abs(reminder_minutes - current_minutes)
    # Handle midnight wrap
    diff = min(diff, MINUTES_PER_DAY - diff)
    return diff <= window_minutes


def was_recently_sent(last_sent_at: Optional[datetime], now: datetime, within_minutes: int = 30) -> bool:
    if last_sent_at is None:
        return False
    return to_utc_aware(last_sent_at) > to_utc_aware(now) - timedelta(minutes=within_minutes)


def evaluation_timezone(
    timing_mode: Optional[Union[TimingMode, str]],
    anchor_timezone: Optional[str],
    user_timezone: Optional[str],
) -> str:
    """The zone whose wall clock a reminder's times are compared against."""
    if coerce_timing_mode(timing_mode) == TimingMode.ANCHOR:
        # Unusable stored anchor degrades to the user's zone, as the resolver does
        return normalize_timezone(anchor_timezone) or resolve_timezone_or_default(user_timezone)
    return resolve_timezone_or_default(user_timezone)


def evaluate_reminder_due(
    reminder_id: str,
    times: Iterable[str],
    timing_mode: Optional[Union[TimingMode, str]],
    anchor_timezone: Optional[str],
    user_timezone: Optional[str],
    now: datetime,
    last_sent_at: Optional[datetime] = None,
    window_minutes: int = 7,
    resend_guard_minutes: int = 30,
) -> Optional[DueEvaluation]:
    """Return a DueEvaluation when one of ``times`` falls in the window on the evaluation clock."""
    tz_name = evaluation_timezone(timing_mode, anchor_timezone, user_timezone)
    current_time = now_in_timezone(tz_name, now).strftime("%H:%M")

    matching = next(
        (t for t in normalize_reminder_times(times or []) if is_time_within_window(t, current_time, window_minutes)),
        None,
    )
    if matching is None:
        return None
    if was_recently_sent(last_sent_at, now, resend_guard_minutes):
        return None
    return DueEvaluation(reminder_id=reminder_id, evaluation_timezone=tz_name, scheduled_time=matching)
