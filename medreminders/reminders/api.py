from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from medreminders.db.session import get_db
from .repository import get_reminder, list_reminders
from .schemas import (
    BackfillRequest,
    BackfillResult,
    BackfillStatus,
    DueReminderRead,
    MedicationReminderCreate,
    MedicationReminderRead,
    MedicationReminderUpdate,
    TimingPolicyRead,
    TimingPolicyRequest,
    UserTimezoneRead,
    UserTimezoneUpdate,
)
from .service import MedicationReminderService, ReminderNotFoundError, ReminderValidationError
from .metrics import reminders_created_total, reminders_updated_total


router = APIRouter()


@router.get("/health")
def health_check():
    return {"status": "healthy", "service": "medication-reminders"}


@router.post("/timing-policy/resolve", response_model=TimingPolicyRead)
def resolve_timing_policy_endpoint(payload: TimingPolicyRequest, db: Session = Depends(get_db)):
    """Preview the timing policy a reminder for this medication would get."""
    policy = MedicationReminderService(db).preview_timing_policy(payload)
    return TimingPolicyRead(**policy.model_dump())


@router.put("/users/{user_id}/timezone", response_model=UserTimezoneRead)
def set_user_timezone_endpoint(user_id: str, payload: UserTimezoneUpdate, db: Session = Depends(get_db)):
    try:
        canonical = MedicationReminderService(db).set_user_timezone(user_id, payload.timezone)
    except ReminderValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return UserTimezoneRead(user_id=user_id, timezone=canonical)


@router.post("/ops/timing-backfill", response_model=BackfillResult)
def run_timing_backfill_endpoint(payload: BackfillRequest, db: Session = Depends(get_db)):
    """Run one page of the timing policy backfill synchronously."""
    return MedicationReminderService(db).backfill_timing_policy(
        page_size=payload.page_size,
        dry_run=payload.dry_run,
    )


@router.get("/ops/timing-backfill-status", response_model=BackfillStatus)
def timing_backfill_status_endpoint(response: Response, db: Session = Depends(get_db)):
    response.headers["Cache-Control"] = "private, max-age=15"
    return MedicationReminderService(db).get_backfill_status()


@router.post("/", response_model=MedicationReminderRead, status_code=201)
def create_reminder_endpoint(payload: MedicationReminderCreate, db: Session = Depends(get_db)):
    try:
        reminder = MedicationReminderService(db).create_reminder(payload)
    except ReminderValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    reminders_created_total.inc()
    return MedicationReminderRead.model_validate(reminder)


@router.get("/", response_model=List[MedicationReminderRead])
def list_reminders_endpoint(
    user_id: Optional[str] = None,
    medication_id: Optional[str] = None,
    enabled: Optional[bool] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    items = list_reminders(db, user_id=user_id, medication_id=medication_id, enabled=enabled, limit=limit)
    return [MedicationReminderRead.model_validate(i) for i in items]


@router.get("/due", response_model=List[DueReminderRead])
def list_due_reminders_endpoint(at: Optional[datetime] = None, db: Session = Depends(get_db)):
    """Reminders due now (or at ``at``) on their timing policy's clock."""
    due = MedicationReminderService(db).list_due_reminders(now=at)
    return [
        DueReminderRead(
            reminder_id=reminder.id,
            user_id=reminder.user_id,
            medication_id=reminder.medication_id,
            medication_name=reminder.medication_name,
            evaluation_timezone=evaluation.evaluation_timezone,
            scheduled_time=evaluation.scheduled_time,
            due_reason=evaluation.due_reason,
        )
        for reminder, evaluation in due
    ]


@router.get("/{reminder_id}", response_model=MedicationReminderRead)
def get_reminder_endpoint(reminder_id: str, db: Session = Depends(get_db)):
    r = get_reminder(db, reminder_id)
    if not r:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return MedicationReminderRead.model_validate(r)


@router.patch("/{reminder_id}", response_model=MedicationReminderRead)
def update_reminder_endpoint(reminder_id: str, payload: MedicationReminderUpdate, db: Session = Depends(get_db)):
    try:
        r = MedicationReminderService(db).update_reminder(reminder_id, payload)
    except ReminderNotFoundError:
        raise HTTPException(status_code=404, detail="Reminder not found")
    except ReminderValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    reminders_updated_total.inc()
    return MedicationReminderRead.model_validate(r)
