"""
Request/response schemas for medication reminders
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .policy_models import ReminderCriticality, TimingMode


def _non_blank_name(value: str) -> str:
    name = value.strip()
    if not name:
        raise ValueError("medication_name must not be blank")
    return name


class TimingPolicyRequest(BaseModel):
    """Schema for previewing the timing policy of a medication"""
    medication_name: Optional[str] = None
    user_id: Optional[str] = None
    user_timezone: Optional[str] = None  # used when user_id is absent or has no stored zone
    timing_mode: Optional[str] = None
    anchor_timezone: Optional[str] = None


class TimingPolicyRead(BaseModel):
    timing_mode: TimingMode
    anchor_timezone: Optional[str] = None
    criticality: ReminderCriticality


class MedicationReminderCreate(BaseModel):
    """Schema for creating a medication reminder"""
    user_id: str = Field(..., min_length=1)
    medication_id: str = Field(..., min_length=1)
    medication_name: str = Field(..., min_length=1, max_length=200)
    medication_dose: Optional[str] = Field(default=None, max_length=100)
    frequency: Optional[str] = Field(default=None, max_length=100)
    times: Optional[List[str]] = None  # derived from frequency when omitted
    enabled: bool = True

    # Caller timing overrides; criticality is always derived
    timing_mode: Optional[str] = None
    anchor_timezone: Optional[str] = None

    @field_validator("medication_name")
    @classmethod
    def _strip_medication_name(cls, v: str) -> str:
        return _non_blank_name(v)


class MedicationReminderUpdate(BaseModel):
    """
    Schema for updating a medication reminder.

    Omitted fields keep their stored value; an explicit null on timing_mode or
    anchor_timezone clears the override (see ``model_fields_set``).
    """
    medication_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    medication_dose: Optional[str] = Field(default=None, max_length=100)
    times: Optional[List[str]] = None
    enabled: Optional[bool] = None
    timing_mode: Optional[str] = None
    anchor_timezone: Optional[str] = None

    @field_validator("medication_name")
    @classmethod
    def _strip_medication_name(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _non_blank_name(v)


class MedicationReminderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    medication_id: str
    medication_name: str
    medication_dose: Optional[str] = None
    times: List[str]
    enabled: bool
    timing_mode: Optional[str] = None
    anchor_timezone: Optional[str] = None
    criticality: Optional[str] = None
    last_sent_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class DueReminderRead(BaseModel):
    reminder_id: str
    user_id: str
    medication_id: str
    medication_name: str
    evaluation_timezone: str
    scheduled_time: str
    due_reason: str


class UserTimezoneUpdate(BaseModel):
    timezone: str


class UserTimezoneRead(BaseModel):
    user_id: str
    timezone: str  # canonical identifier as stored


class BackfillRequest(BaseModel):
    page_size: Optional[int] = Field(default=None, ge=1, le=1000)
    dry_run: bool = False


class BackfillResult(BaseModel):
    processed: int
    updated: int
    has_more: bool
    next_cursor: Optional[str] = None
    dry_run: bool = False


class BackfillStatus(BaseModel):
    cursor: Optional[str] = None
    has_more: bool
    stale: bool
    needs_attention: bool
    last_run_status: Optional[str] = None
    last_processed_count: int = 0
    last_updated_count: int = 0
    last_processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_run_started_at: Optional[datetime] = None
    last_run_finished_at: Optional[datetime] = None
    last_run_error_at: Optional[datetime] = None
    last_run_error_message: Optional[str] = None
