"""
Tests for the resumable timing policy backfill and its ops status.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from medreminders.reminders import repository
from medreminders.reminders.service import MedicationReminderService, TIMING_BACKFILL_STATE_KEY

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)


def test_backfill_fills_legacy_record_and_completes(db, add_user, add_reminder) -> None:
    add_user("user-1", "America/New_York")
    reminder = add_reminder(medication_name="Tacrolimus")

    result = MedicationReminderService(db).backfill_timing_policy(now=T0)

    assert result.processed == 1
    assert result.updated == 1
    assert result.has_more is False
    assert result.next_cursor is None

    db.refresh(reminder)
    assert reminder.timing_mode == "anchor"
    assert reminder.anchor_timezone == "America/New_York"
    assert reminder.criticality == "time_sensitive"

    state = repository.get_maintenance_state(db, TIMING_BACKFILL_STATE_KEY)
    assert state.cursor is None
    assert state.last_run_status == "success"
    assert state.completed_at is not None


def test_backfill_is_idempotent(db, add_user, add_reminder) -> None:
    add_user("user-1", "Europe/London")
    add_reminder(medication_name="Warfarin")
    add_reminder(medication_id="med-2", medication_name="Vitamin D")
    service = MedicationReminderService(db)

    assert service.backfill_timing_policy(now=T0).updated == 2
    second = service.backfill_timing_policy(now=T0)
    assert second.processed == 2
    assert second.updated == 0


def test_backfill_keeps_valid_overrides(db, add_user, add_reminder) -> None:
    add_user("user-1", "America/New_York")
    reminder = add_reminder(
        medication_name="Warfarin",
        timing_mode="local",
        anchor_timezone=None,
        criticality="time_sensitive",
    )

    result = MedicationReminderService(db).backfill_timing_policy(now=T0)

    assert result.updated == 0
    db.refresh(reminder)
    assert reminder.timing_mode == "local"


def test_backfill_repairs_invalid_anchor(db, add_user, add_reminder) -> None:
    add_user("user-1", "Asia/Tokyo")
    reminder = add_reminder(
        medication_name="Digoxin",
        timing_mode="anchor",
        anchor_timezone="Mars/Olympus",
        criticality="time_sensitive",
    )

    MedicationReminderService(db).backfill_timing_policy(now=T0)

    db.refresh(reminder)
    assert reminder.anchor_timezone == "Asia/Tokyo"


def test_backfill_pages_through_cursor(db, add_reminder) -> None:
    ids = sorted(add_reminder(medication_id=f"med-{i}").id for i in range(3))
    service = MedicationReminderService(db)

    first = service.backfill_timing_policy(page_size=2, now=T0)
    assert first.processed == 2
    assert first.has_more is True
    assert first.next_cursor == ids[1]
    assert repository.get_maintenance_state(db, TIMING_BACKFILL_STATE_KEY).cursor == ids[1]

    second = service.backfill_timing_policy(page_size=2, now=T0)
    assert second.processed == 1
    assert second.has_more is False
    assert repository.get_maintenance_state(db, TIMING_BACKFILL_STATE_KEY).cursor is None

    # Exhausted cursor restarts from the beginning
    third = service.backfill_timing_policy(page_size=2, now=T0)
    assert third.processed == 2
    assert third.updated == 0


def test_dry_run_writes_nothing(db, add_reminder) -> None:
    reminder = add_reminder(medication_name="Lithium")

    result = MedicationReminderService(db).backfill_timing_policy(dry_run=True, now=T0)

    assert result.dry_run is True
    assert result.updated == 1
    db.refresh(reminder)
    assert reminder.timing_mode is None
    assert repository.get_maintenance_state(db, TIMING_BACKFILL_STATE_KEY) is None


def test_backfill_failure_records_error_state(db, add_reminder, monkeypatch) -> None:
    add_reminder()

    def _boom(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(repository, "list_timing_backfill_page", _boom)
    service = MedicationReminderService(db)

    with pytest.raises(RuntimeError):
        service.backfill_timing_policy(now=T0)

    state = repository.get_maintenance_state(db, TIMING_BACKFILL_STATE_KEY)
    assert state.last_run_status == "error"
    assert state.last_run_error_message == "database went away"

    status = service.get_backfill_status(now=T0)
    assert status.needs_attention is True
    assert status.stale is False


def test_status_without_any_run(db) -> None:
    status = MedicationReminderService(db).get_backfill_status(now=T0)
    assert status.has_more is False
    assert status.stale is False
    assert status.needs_attention is False
    assert status.last_run_status is None


@pytest.mark.parametrize(
    "elapsed, expected_stale",
    [
        (timedelta(hours=1), False),
        (timedelta(hours=6), False),
        (timedelta(hours=7), True),
    ],
)
def test_status_reports_stale_pending_cursor(db, add_reminder, elapsed, expected_stale) -> None:
    for i in range(2):
        add_reminder(medication_id=f"med-{i}")
    service = MedicationReminderService(db)
    service.backfill_timing_policy(page_size=1, now=T0)

    status = service.get_backfill_status(now=T0 + elapsed)

    assert status.has_more is True
    assert status.stale is expected_stale
    assert status.needs_attention is expected_stale
    assert status.last_processed_count == 1
    assert status.last_processed_at == T0


def test_completed_backfill_is_never_stale(db, add_reminder) -> None:
    add_reminder()
    service = MedicationReminderService(db)
    service.backfill_timing_policy(now=T0)

    status = service.get_backfill_status(now=T0 + timedelta(days=3))

    assert status.has_more is False
    assert status.stale is False
    assert status.completed_at == T0
