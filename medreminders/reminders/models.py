"""
Medication reminder persistence models
"""
from datetime import datetime, timezone as dt_timezone
import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Index, JSON

from medreminders.db.base import Base
from medreminders.utils.timezone import normalize_timezone


def _utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


class UserProfile(Base):
    """Minimal user profile; only the stored timezone is needed here"""
    __tablename__ = "user_profiles"

    user_id = Column(String, primary_key=True)
    timezone = Column(String, nullable=True)  # raw value, may be malformed legacy data
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class MedicationReminder(Base):
    """Daily medication reminder with its resolved timing policy"""
    __tablename__ = "medication_reminders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    medication_id = Column(String, nullable=False, index=True)
    medication_name = Column(String, nullable=False)
    medication_dose = Column(String, nullable=True)
    times = Column(JSON, nullable=False, default=list)  # ["08:00", "20:00"]
    enabled = Column(Boolean, nullable=False, default=True)

    # Timing policy (NULL on legacy records until backfilled)
    timing_mode = Column(String, nullable=True)
    anchor_timezone = Column(String, nullable=True)
    criticality = Column(String, nullable=True)

    last_sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_medication_reminders_user_medication", "user_id", "medication_id"),
        Index("ix_medication_reminders_enabled", "enabled"),
    )

    def has_timing_policy(self) -> bool:
        """True when all policy columns are present, valid and mutually consistent."""
        if self.timing_mode not in ("local", "anchor") or not self.criticality:
            return False
        if self.timing_mode == "local":
            return self.anchor_timezone is None
        return normalize_timezone(self.anchor_timezone) is not None


class MaintenanceState(Base):
    """Cursor and run bookkeeping for resumable maintenance jobs"""
    __tablename__ = "maintenance_state"

    key = Column(String, primary_key=True)
    cursor = Column(String, nullable=True)
    last_processed_at = Column(DateTime(timezone=True), nullable=True)
    last_processed = Column(Integer, nullable=False, default=0)
    last_updated = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    last_run_started_at = Column(DateTime(timezone=True), nullable=True)
    last_run_finished_at = Column(DateTime(timezone=True), nullable=True)
    last_run_status = Column(String, nullable=True)  # success | error
    last_run_error_at = Column(DateTime(timezone=True), nullable=True)
    last_run_error_message = Column(String, nullable=True)
