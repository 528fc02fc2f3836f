from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .models import MaintenanceState, MedicationReminder, UserProfile

MAX_BATCH_SIZE = 500


@dataclass
class TimingBackfillPage:
    items: List[MedicationReminder]
    has_more: bool
    next_cursor: Optional[str]

    @property
    def processed_count(self) -> int:
        return len(self.items)


def get_reminder(db: Session, reminder_id: str) -> Optional[MedicationReminder]:
    return db.get(MedicationReminder, reminder_id)


def list_reminders(
    db: Session,
    user_id: Optional[str] = None,
    medication_id: Optional[str] = None,
    enabled: Optional[bool] = None,
    limit: int = 100,
) -> List[MedicationReminder]:
    stmt = select(MedicationReminder).order_by(MedicationReminder.created_at.desc()).limit(limit)
    if user_id:
        stmt = stmt.where(MedicationReminder.user_id == user_id)
    if medication_id:
        stmt = stmt.where(MedicationReminder.medication_id == medication_id)
    if enabled is not None:
        stmt = stmt.where(MedicationReminder.enabled == enabled)
    return list(db.execute(stmt).scalars())


def list_enabled_reminders(db: Session) -> List[MedicationReminder]:
    stmt = select(MedicationReminder).where(MedicationReminder.enabled == True)  # noqa: E712
    return list(db.execute(stmt).scalars())


def create_reminder(db: Session, values: Dict[str, Any]) -> MedicationReminder:
    reminder = MedicationReminder(**values)
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder


def update_reminder_fields(db: Session, reminder: MedicationReminder, values: Dict[str, Any]) -> MedicationReminder:
    for field, value in values.items():
        setattr(reminder, field, value)
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder


def get_user_timezone_value(db: Session, user_id: Optional[str]) -> Optional[str]:
    """Raw stored timezone for a user; None if the user or value is missing."""
    if not user_id:
        return None
    profile = db.get(UserProfile, user_id)
    if profile is None or not isinstance(profile.timezone, str):
        return None
    return profile.timezone


def set_user_timezone(db: Session, user_id: str, tz_name: str) -> UserProfile:
    profile = db.get(UserProfile, user_id)
    if profile is None:
        profile = UserProfile(user_id=user_id, timezone=tz_name)
    else:
        profile.timezone = tz_name
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def list_timing_backfill_page(db: Session, cursor: Optional[str], limit: int) -> TimingBackfillPage:
    """Id-ordered page of reminders starting after ``cursor``."""
    query_limit = max(1, int(limit))
    stmt = select(MedicationReminder).order_by(MedicationReminder.id.asc()).limit(query_limit)
    cursor = cursor.strip() if isinstance(cursor, str) else None
    if cursor:
        stmt = stmt.where(MedicationReminder.id > cursor)

    items = list(db.execute(stmt).scalars())
    has_more = len(items) == query_limit
    next_cursor = items[-1].id if has_more and items else None
    return TimingBackfillPage(items=items, has_more=has_more, next_cursor=next_cursor)


def apply_reminder_updates(db: Session, updates: Sequence[Tuple[str, Dict[str, Any]]]) -> int:
    """Apply (reminder_id, values) updates in chunks; returns rows written."""
    if not updates:
        return 0

    updated = 0
    now = datetime.now(dt_timezone.utc)
    for index in range(0, len(updates), MAX_BATCH_SIZE):
        chunk = updates[index:index + MAX_BATCH_SIZE]
        for reminder_id, values in chunk:
            db.execute(
                update(MedicationReminder)
                .where(MedicationReminder.id == reminder_id)
                .values(**values, updated_at=now)
            )
        db.commit()
        updated += len(chunk)
    return updated


def get_maintenance_state(db: Session, key: str) -> Optional[MaintenanceState]:
    return db.get(MaintenanceState, key)


def save_maintenance_state(db: Session, key: str, values: Dict[str, Any]) -> MaintenanceState:
    state = db.get(MaintenanceState, key)
    if state is None:
        state = MaintenanceState(key=key)
    for field, value in values.items():
        setattr(state, field, value)
    db.add(state)
    db.commit()
    db.refresh(state)
    return state
