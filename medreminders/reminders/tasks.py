import logging

from sqlalchemy.orm import Session

from medreminders.db.session import SessionLocal
from .celery_app import celery_app
from .service import MedicationReminderService

logger = logging.getLogger(__name__)


@celery_app.task(name="reminders.backfill_timing_policy")
def backfill_timing_policy_task(page_size: int | None = None, dry_run: bool = False) -> dict:
    """Run one page of the timing policy backfill. Returns the page result."""
    db: Session = SessionLocal()
    try:
        result = MedicationReminderService(db).backfill_timing_policy(page_size=page_size, dry_run=dry_run)
        logger.info("Timing policy backfill task complete: %s", result.model_dump())
        return result.model_dump()
    finally:
        db.close()
