#!/usr/bin/env python3
"""
Backfill timing policy fields (timing_mode, anchor_timezone, criticality) for
existing medication reminders.

Walks the reminders collection page by page from the persisted cursor. Records
whose stored policy already matches the resolved policy are left untouched, so
the script is safe to run multiple times.
"""
import argparse
import logging
import sys

from medreminders.db.base import Base
from medreminders.db.session import SessionLocal, engine
from medreminders.reminders import models  # noqa: F401
from medreminders.reminders.service import MedicationReminderService

logger = logging.getLogger("backfill_reminder_timing")


def run_backfill(page_size=None, dry_run=False, max_pages=None):
    """
    Run backfill pages until the collection is exhausted or max_pages is hit.

    Returns:
        Tuple of (records_processed, records_updated, pages)
    """
    db = SessionLocal()
    processed = updated = pages = 0
    try:
        service = MedicationReminderService(db)
        while True:
            result = service.backfill_timing_policy(page_size=page_size, dry_run=dry_run)
            pages += 1
            processed += result.processed
            updated += result.updated
            prefix = "[DRY RUN] Would update" if dry_run else "Updated"
            logger.info(
                "Page %d: processed=%d %s=%d next_cursor=%s",
                pages, result.processed, prefix, result.updated, result.next_cursor,
            )
            # A dry run never advances the cursor, so one page is all it can show
            if dry_run or not result.has_more:
                break
            if max_pages is not None and pages >= max_pages:
                logger.info("Stopping after %d page(s); cursor saved for the next run", pages)
                break
    finally:
        db.close()
    return processed, updated, pages


def main(argv=None):
    parser = argparse.ArgumentParser(description="Backfill medication reminder timing policies")
    parser.add_argument("--page-size", type=int, default=None, help="Records per page (default: settings)")
    parser.add_argument("--dry-run", action="store_true", help="Show what would change without writing")
    parser.add_argument("--max-pages", type=int, default=None, help="Stop after this many pages")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    Base.metadata.create_all(bind=engine)

    try:
        processed, updated, pages = run_backfill(args.page_size, args.dry_run, args.max_pages)
    except Exception as e:
        logger.error("Backfill failed: %s", e)
        return 1

    logger.info("Done: %d record(s) processed, %d updated across %d page(s)", processed, updated, pages)
    return 0


if __name__ == "__main__":
    sys.exit(main())
