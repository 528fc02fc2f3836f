"""
Timing policy resolution for medication reminders.

Decides whether a reminder fires on the user's local clock or on a clock
anchored to a fixed IANA timezone, and whether it is time-sensitive. Pure and
total: malformed input always degrades to a valid policy.
"""
import logging
from typing import Optional, Union

from medreminders.utils.timezone import normalize_timezone, resolve_timezone_or_default
from .criticality import classify_medication_criticality
from .metrics import anchor_timezone_fallbacks_total, timing_policies_resolved_total
from .policy_models import ReminderCriticality, ResolutionInput, TimingMode, TimingPolicy

logger = logging.getLogger(__name__)


def coerce_timing_mode(value: Optional[Union[TimingMode, str]]) -> Optional[TimingMode]:
    """Map a requested mode to TimingMode; unrecognized values count as absent."""
    if isinstance(value, TimingMode):
        return value
    if not isinstance(value, str):
        return None
    try:
        return TimingMode(value.strip().lower())
    except ValueError:
        return None


def resolve_reminder_timing_policy(data: ResolutionInput) -> TimingPolicy:
    criticality = classify_medication_criticality(data.medication_name)
    requested_mode = coerce_timing_mode(data.requested_timing_mode)

    if requested_mode == TimingMode.ANCHOR:
        anchor = normalize_timezone(data.requested_anchor_timezone)
        if anchor is None:
            # Keep the caller's anchor intent; degrade to the user's own zone
            anchor = resolve_timezone_or_default(data.user_timezone)
            anchor_timezone_fallbacks_total.inc()
            logger.info(
                "Requested anchor timezone %r is invalid; anchoring to %s",
                data.requested_anchor_timezone,
                anchor,
            )
        policy = TimingPolicy(
            timing_mode=TimingMode.ANCHOR,
            anchor_timezone=anchor,
            criticality=criticality,
        )
    elif requested_mode == TimingMode.LOCAL:
        policy = TimingPolicy(timing_mode=TimingMode.LOCAL, anchor_timezone=None, criticality=criticality)
    elif criticality == ReminderCriticality.TIME_SENSITIVE:
        policy = TimingPolicy(
            timing_mode=TimingMode.ANCHOR,
            anchor_timezone=resolve_timezone_or_default(data.user_timezone),
            criticality=criticality,
        )
    else:
        policy = TimingPolicy(timing_mode=TimingMode.LOCAL, anchor_timezone=None, criticality=criticality)

    timing_policies_resolved_total.labels(
        timing_mode=policy.timing_mode.value,
        criticality=policy.criticality.value,
    ).inc()
    logger.debug(
        "Resolved timing policy for %r: mode=%s anchor=%s criticality=%s",
        data.medication_name,
        policy.timing_mode.value,
        policy.anchor_timezone,
        policy.criticality.value,
    )
    return policy
