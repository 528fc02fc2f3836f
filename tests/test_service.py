"""
Tests for MedicationReminderService create/update flows and due selection.
"""
from __future__ import annotations

from datetime import datetime, timezone as dt_timezone

import pytest
from pydantic import ValidationError

from medreminders.reminders.schemas import (
    MedicationReminderCreate,
    MedicationReminderUpdate,
    TimingPolicyRequest,
)
from medreminders.reminders.service import (
    MedicationReminderService,
    ReminderNotFoundError,
    ReminderValidationError,
    TimezoneValidationError,
)


def test_create_resolves_policy_from_user_timezone(db, add_user) -> None:
    add_user("user-1", "America/New_York")
    service = MedicationReminderService(db)

    reminder = service.create_reminder(
        MedicationReminderCreate(
            user_id="user-1",
            medication_id="med-1",
            medication_name="Tacrolimus 1mg",
            frequency="twice daily",
        )
    )

    assert reminder.times == ["08:00", "20:00"]
    assert reminder.timing_mode == "anchor"
    assert reminder.anchor_timezone == "America/New_York"
    assert reminder.criticality == "time_sensitive"


def test_create_without_profile_uses_default_zone(db) -> None:
    reminder = MedicationReminderService(db).create_reminder(
        MedicationReminderCreate(user_id="ghost", medication_id="m", medication_name="Warfarin")
    )
    assert reminder.anchor_timezone == "America/Chicago"


def test_create_honors_requested_local_mode(db, add_user) -> None:
    add_user("user-1", "Europe/London")
    reminder = MedicationReminderService(db).create_reminder(
        MedicationReminderCreate(
            user_id="user-1",
            medication_id="med-1",
            medication_name="Warfarin",
            times=["9:30"],
            timing_mode="local",
        )
    )
    assert reminder.times == ["09:30"]
    assert reminder.timing_mode == "local"
    assert reminder.anchor_timezone is None
    assert reminder.criticality == "time_sensitive"


def test_create_rejects_prn_without_times(db) -> None:
    with pytest.raises(ReminderValidationError):
        MedicationReminderService(db).create_reminder(
            MedicationReminderCreate(user_id="u", medication_id="m", medication_name="Ibuprofen", frequency="PRN")
        )


def test_update_missing_reminder_raises(db) -> None:
    with pytest.raises(ReminderNotFoundError):
        MedicationReminderService(db).update_reminder("missing", MedicationReminderUpdate(enabled=False))


def test_update_omitted_overrides_keep_stored_policy(db, add_user, add_reminder) -> None:
    add_user("user-1", "America/New_York")
    reminder = add_reminder(
        medication_name="Warfarin",
        timing_mode="anchor",
        anchor_timezone="Asia/Tokyo",
        criticality="time_sensitive",
    )

    updated = MedicationReminderService(db).update_reminder(reminder.id, MedicationReminderUpdate(medication_dose="5 mg"))

    assert updated.medication_dose == "5 mg"
    assert updated.anchor_timezone == "Asia/Tokyo"


def test_update_explicit_null_mode_clears_override(db, add_user, add_reminder) -> None:
    add_user("user-1", "America/New_York")
    reminder = add_reminder(
        medication_name="Warfarin",
        timing_mode="local",
        anchor_timezone=None,
        criticality="time_sensitive",
    )

    updated = MedicationReminderService(db).update_reminder(
        reminder.id, MedicationReminderUpdate.model_validate({"timing_mode": None})
    )

    assert updated.timing_mode == "anchor"
    assert updated.anchor_timezone == "America/New_York"


def test_update_rename_reclassifies_criticality(db, add_user, add_reminder) -> None:
    add_user("user-1", "America/New_York")
    reminder = add_reminder(
        medication_name="Metformin",
        timing_mode="local",
        criticality="standard",
    )

    updated = MedicationReminderService(db).update_reminder(
        reminder.id, MedicationReminderUpdate(medication_name="Tacrolimus")
    )

    assert updated.medication_name == "Tacrolimus"
    assert updated.criticality == "time_sensitive"
    assert updated.timing_mode == "local"


def test_update_fills_missing_policy_on_legacy_record(db, add_user, add_reminder) -> None:
    add_user("user-1", "Europe/London")
    reminder = add_reminder(medication_name="Lithium")

    updated = MedicationReminderService(db).update_reminder(reminder.id, MedicationReminderUpdate(enabled=False))

    assert updated.enabled is False
    assert updated.timing_mode == "anchor"
    assert updated.anchor_timezone == "Europe/London"
    assert updated.criticality == "time_sensitive"


def test_preview_prefers_stored_user_timezone(db, add_user) -> None:
    add_user("user-1", "Asia/Tokyo")
    policy = MedicationReminderService(db).preview_timing_policy(
        TimingPolicyRequest(medication_name="Warfarin", user_id="user-1", user_timezone="Europe/London")
    )
    assert policy.anchor_timezone == "Asia/Tokyo"


def test_set_user_timezone_validates_and_canonicalizes(db) -> None:
    service = MedicationReminderService(db)
    assert service.set_user_timezone("user-1", "america/denver") == "America/Denver"
    with pytest.raises(TimezoneValidationError):
        service.set_user_timezone("user-1", "Not/AZone")


def test_list_due_reminders_uses_policy_clock(db, add_user, add_reminder) -> None:
    add_user("user-1", "America/Los_Angeles")
    local = add_reminder(
        medication_id="med-local",
        medication_name="Vitamin D",
        times=["21:00"],
        timing_mode="local",
        criticality="standard",
    )
    add_reminder(
        medication_id="med-anchor",
        medication_name="Tacrolimus",
        times=["21:00"],
        timing_mode="anchor",
        anchor_timezone="America/New_York",
        criticality="time_sensitive",
    )
    add_reminder(medication_id="med-off", medication_name="Vitamin C", times=["21:00"], enabled=False)

    due = MedicationReminderService(db).list_due_reminders(datetime(2026, 3, 1, 5, 0, tzinfo=dt_timezone.utc))

    assert [(r.id, e.evaluation_timezone) for r, e in due] == [(local.id, "America/Los_Angeles")]


def test_list_due_repairs_invalid_stored_anchor(db, add_user, add_reminder) -> None:
    add_user("user-1", "Asia/Tokyo")
    reminder = add_reminder(
        medication_name="Vitamin D",
        times=["09:00"],
        timing_mode="anchor",
        anchor_timezone="Mars/Olympus",
        criticality="standard",
    )
    assert reminder.has_timing_policy() is False

    due = MedicationReminderService(db).list_due_reminders(datetime(2026, 3, 1, 0, 0, tzinfo=dt_timezone.utc))

    assert [(r.id, e.evaluation_timezone, e.scheduled_time) for r, e in due] == [(reminder.id, "Asia/Tokyo", "09:00")]


def test_update_repairs_invalid_stored_anchor(db, add_user, add_reminder) -> None:
    add_user("user-1", "Asia/Tokyo")
    reminder = add_reminder(
        medication_name="Warfarin",
        timing_mode="anchor",
        anchor_timezone="Mars/Olympus",
        criticality="time_sensitive",
    )

    updated = MedicationReminderService(db).update_reminder(reminder.id, MedicationReminderUpdate(medication_dose="1 mg"))

    assert updated.timing_mode == "anchor"
    assert updated.anchor_timezone == "Asia/Tokyo"


@pytest.mark.parametrize("name", ["   ", "\t"])
def test_blank_medication_name_is_rejected(name) -> None:
    with pytest.raises(ValidationError):
        MedicationReminderCreate(user_id="u", medication_id="m", medication_name=name)
    with pytest.raises(ValidationError):
        MedicationReminderUpdate(medication_name=name)


def test_medication_name_is_stripped(db) -> None:
    reminder = MedicationReminderService(db).create_reminder(
        MedicationReminderCreate(user_id="u", medication_id="m", medication_name="  Tacrolimus  ")
    )
    assert reminder.medication_name == "Tacrolimus"
    assert reminder.criticality == "time_sensitive"
