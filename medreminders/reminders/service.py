"""
Medication reminder service: persistence flows around the timing policy resolver
"""
import logging
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from medreminders.core.config import settings
from medreminders.utils.timezone import normalize_timezone, to_utc_aware
from . import repository
from .metrics import backfill_records_updated_total, backfill_runs_total
from .models import MedicationReminder
from .policy_models import ResolutionInput, TimingPolicy
from .schedule import DueEvaluation, default_reminder_times, evaluate_reminder_due, normalize_reminder_times
from .schemas import (
    BackfillResult,
    BackfillStatus,
    MedicationReminderCreate,
    MedicationReminderUpdate,
    TimingPolicyRequest,
)
from .timing_policy import resolve_reminder_timing_policy

logger = logging.getLogger(__name__)

TIMING_BACKFILL_STATE_KEY = "medicationReminderTimingPolicyBackfill"
TIMING_FIELDS = ("timing_mode", "anchor_timezone", "criticality")


class ReminderServiceError(Exception):
    """Base exception for medication reminder service failures"""
    pass


class ReminderNotFoundError(ReminderServiceError):
    pass


class ReminderValidationError(ReminderServiceError):
    pass


class TimezoneValidationError(ReminderValidationError):
    pass


def policy_values(policy: TimingPolicy) -> Dict[str, Optional[str]]:
    """Column values for a resolved policy."""
    return {
        "timing_mode": policy.timing_mode.value,
        "anchor_timezone": policy.anchor_timezone,
        "criticality": policy.criticality.value,
    }


class MedicationReminderService:
    """Creates, updates and maintains medication reminders and their timing policies"""

    def __init__(self, db: Session):
        self.db = db

    def _resolve_times(self, times: Optional[List[str]], frequency: Optional[str]) -> List[str]:
        if times is not None:
            normalized = normalize_reminder_times(times)
            if not normalized:
                raise ReminderValidationError("times must contain at least one valid HH:MM value")
            return normalized
        defaults = default_reminder_times(frequency)
        if defaults is None:
            raise ReminderValidationError(
                f"Frequency '{frequency}' is as-needed; provide explicit times to create a reminder"
            )
        return defaults

    def preview_timing_policy(self, data: TimingPolicyRequest) -> TimingPolicy:
        """Resolve a policy without persisting anything."""
        user_timezone = repository.get_user_timezone_value(self.db, data.user_id) or data.user_timezone
        return resolve_reminder_timing_policy(
            ResolutionInput(
                medication_name=data.medication_name,
                user_timezone=user_timezone,
                requested_timing_mode=data.timing_mode,
                requested_anchor_timezone=data.anchor_timezone,
            )
        )

    def create_reminder(self, data: MedicationReminderCreate) -> MedicationReminder:
        times = self._resolve_times(data.times, data.frequency)
        user_timezone = repository.get_user_timezone_value(self.db, data.user_id)
        policy = resolve_reminder_timing_policy(
            ResolutionInput(
                medication_name=data.medication_name,
                user_timezone=user_timezone,
                requested_timing_mode=data.timing_mode,
                requested_anchor_timezone=data.anchor_timezone,
            )
        )
        reminder = repository.create_reminder(
            self.db,
            {
                "user_id": data.user_id,
                "medication_id": data.medication_id,
                "medication_name": data.medication_name.strip(),
                "medication_dose": data.medication_dose,
                "times": times,
                "enabled": data.enabled,
                **policy_values(policy),
            },
        )
        logger.info(
            "Created reminder %s for medication %s with times %s",
            reminder.id,
            reminder.medication_id,
            ", ".join(times),
            extra=policy_values(policy),
        )
        return reminder

    def update_reminder(self, reminder_id: str, data: MedicationReminderUpdate) -> MedicationReminder:
        reminder = repository.get_reminder(self.db, reminder_id)
        if reminder is None:
            raise ReminderNotFoundError(f"Reminder {reminder_id} not found")

        fields_set = data.model_fields_set
        values: Dict[str, object] = {}
        timing_relevant = False

        if "medication_name" in fields_set and data.medication_name is not None:
            name = data.medication_name.strip()
            if name != reminder.medication_name:
                values["medication_name"] = name
                timing_relevant = True
        if "medication_dose" in fields_set:
            values["medication_dose"] = data.medication_dose or None
        if "times" in fields_set and data.times is not None:
            values["times"] = self._resolve_times(data.times, None)
        if "enabled" in fields_set and data.enabled is not None:
            values["enabled"] = data.enabled

        # Omitted overrides keep the stored value; explicit null clears them
        requested_mode = reminder.timing_mode
        requested_anchor = reminder.anchor_timezone
        if "timing_mode" in fields_set:
            requested_mode = data.timing_mode
            timing_relevant = True
        if "anchor_timezone" in fields_set:
            requested_anchor = data.anchor_timezone
            timing_relevant = True

        if timing_relevant or not reminder.has_timing_policy():
            policy = resolve_reminder_timing_policy(
                ResolutionInput(
                    medication_name=values.get("medication_name", reminder.medication_name),
                    user_timezone=repository.get_user_timezone_value(self.db, reminder.user_id),
                    requested_timing_mode=requested_mode,
                    requested_anchor_timezone=requested_anchor,
                )
            )
            values.update(policy_values(policy))

        if not values:
            return reminder
        reminder = repository.update_reminder_fields(self.db, reminder, values)
        logger.info("Updated reminder %s fields: %s", reminder.id, ", ".join(sorted(values)))
        return reminder

    def set_user_timezone(self, user_id: str, tz_name: str) -> str:
        canonical = normalize_timezone(tz_name)
        if canonical is None:
            raise TimezoneValidationError(f"'{tz_name}' is not a recognized IANA timezone")
        repository.set_user_timezone(self.db, user_id, canonical)
        return canonical

    def list_due_reminders(self, now: Optional[datetime] = None) -> List[Tuple[MedicationReminder, DueEvaluation]]:
        """Enabled reminders due at ``now`` on their policy's evaluation clock."""
        now = to_utc_aware(now) if now is not None else datetime.now(dt_timezone.utc)
        user_timezone_cache: Dict[str, Optional[str]] = {}
        due: List[Tuple[MedicationReminder, DueEvaluation]] = []

        for reminder in repository.list_enabled_reminders(self.db):
            if reminder.user_id not in user_timezone_cache:
                user_timezone_cache[reminder.user_id] = repository.get_user_timezone_value(self.db, reminder.user_id)
            user_timezone = user_timezone_cache[reminder.user_id]

            timing_mode, anchor_timezone = reminder.timing_mode, reminder.anchor_timezone
            if not reminder.has_timing_policy():
                # Stored values act as overrides, as in the backfill
                policy = resolve_reminder_timing_policy(
                    ResolutionInput(
                        medication_name=reminder.medication_name,
                        user_timezone=user_timezone,
                        requested_timing_mode=reminder.timing_mode,
                        requested_anchor_timezone=reminder.anchor_timezone,
                    )
                )
                timing_mode, anchor_timezone = policy.timing_mode, policy.anchor_timezone

            evaluation = evaluate_reminder_due(
                reminder_id=reminder.id,
                times=reminder.times or [],
                timing_mode=timing_mode,
                anchor_timezone=anchor_timezone,
                user_timezone=user_timezone,
                now=now,
                last_sent_at=reminder.last_sent_at,
                window_minutes=settings.REMINDER_WINDOW_MINUTES,
                resend_guard_minutes=settings.REMINDER_RESEND_GUARD_MINUTES,
            )
            if evaluation is not None:
                due.append((reminder, evaluation))

        logger.debug("Found %d due reminder(s) at %s", len(due), now.isoformat())
        return due

    def backfill_timing_policy(
        self,
        page_size: Optional[int] = None,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> BackfillResult:
        """
        Re-resolve one page of reminders and patch records whose stored policy
        is missing or differs. The cursor is persisted between runs, so repeated
        invocations walk the whole collection and then start over.

        Stored policy fields are fed back as request overrides, so already
        correct records resolve to the same policy and are left untouched.
        """
        started_at = to_utc_aware(now) if now is not None else datetime.now(dt_timezone.utc)
        limit = page_size or settings.BACKFILL_PAGE_SIZE
        state = repository.get_maintenance_state(self.db, TIMING_BACKFILL_STATE_KEY)
        cursor = state.cursor if state else None

        logger.info("Running timing policy backfill (cursor=%s, limit=%d, dry_run=%s)", cursor, limit, dry_run)
        try:
            page = repository.list_timing_backfill_page(self.db, cursor, limit)
            user_timezone_cache: Dict[str, Optional[str]] = {}
            updates = []

            for reminder in page.items:
                if reminder.user_id not in user_timezone_cache:
                    user_timezone_cache[reminder.user_id] = repository.get_user_timezone_value(
                        self.db, reminder.user_id
                    )
                policy = resolve_reminder_timing_policy(
                    ResolutionInput(
                        medication_name=reminder.medication_name,
                        user_timezone=user_timezone_cache[reminder.user_id],
                        requested_timing_mode=reminder.timing_mode,
                        requested_anchor_timezone=reminder.anchor_timezone,
                    )
                )
                values = policy_values(policy)
                if any(getattr(reminder, field) != values[field] for field in TIMING_FIELDS):
                    updates.append((reminder.id, values))

            updated = len(updates) if dry_run else repository.apply_reminder_updates(self.db, updates)
        except Exception as exc:
            self.db.rollback()
            failed_at = started_at if now is not None else datetime.now(dt_timezone.utc)
            if not dry_run:
                repository.save_maintenance_state(
                    self.db,
                    TIMING_BACKFILL_STATE_KEY,
                    {
                        "last_run_started_at": started_at,
                        "last_run_finished_at": failed_at,
                        "last_run_status": "error",
                        "last_run_error_at": failed_at,
                        "last_run_error_message": str(exc)[:500],
                    },
                )
            backfill_runs_total.labels(status="error").inc()
            logger.exception("Timing policy backfill failed at cursor %s", cursor)
            raise

        result = BackfillResult(
            processed=page.processed_count,
            updated=updated,
            has_more=page.has_more,
            next_cursor=page.next_cursor,
            dry_run=dry_run,
        )
        if not dry_run:
            finished_at = started_at if now is not None else datetime.now(dt_timezone.utc)
            repository.save_maintenance_state(
                self.db,
                TIMING_BACKFILL_STATE_KEY,
                {
                    "cursor": page.next_cursor,
                    "last_processed_at": finished_at,
                    "last_processed": result.processed,
                    "last_updated": result.updated,
                    "completed_at": None if page.has_more else finished_at,
                    "last_run_started_at": started_at,
                    "last_run_finished_at": finished_at,
                    "last_run_status": "success",
                    "last_run_error_at": None,
                    "last_run_error_message": None,
                },
            )
            backfill_records_updated_total.inc(result.updated)
        backfill_runs_total.labels(status="success").inc()
        logger.info(
            "Timing policy backfill page done: processed=%d updated=%d has_more=%s",
            result.processed,
            result.updated,
            result.has_more,
        )
        return result

    def get_backfill_status(self, now: Optional[datetime] = None) -> BackfillStatus:
        now = to_utc_aware(now) if now is not None else datetime.now(dt_timezone.utc)
        state = repository.get_maintenance_state(self.db, TIMING_BACKFILL_STATE_KEY)
        if state is None:
            return BackfillStatus(has_more=False, stale=False, needs_attention=False)

        has_more = bool(state.cursor)
        last_processed_at = to_utc_aware(state.last_processed_at)
        stale_after = timedelta(hours=settings.BACKFILL_STALE_AFTER_HOURS)
        stale = has_more and (last_processed_at is None or now - last_processed_at > stale_after)

        return BackfillStatus(
            cursor=state.cursor,
            has_more=has_more,
            stale=stale,
            needs_attention=stale or state.last_run_status == "error",
            last_run_status=state.last_run_status,
            last_processed_count=state.last_processed or 0,
            last_updated_count=state.last_updated or 0,
            last_processed_at=last_processed_at,
            completed_at=to_utc_aware(state.completed_at),
            last_run_started_at=to_utc_aware(state.last_run_started_at),
            last_run_finished_at=to_utc_aware(state.last_run_finished_at),
            last_run_error_at=to_utc_aware(state.last_run_error_at),
            last_run_error_message=state.last_run_error_message,
        )
