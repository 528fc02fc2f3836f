from prometheus_client import Counter


timing_policies_resolved_total = Counter(
    "reminder_timing_policies_resolved_total",
    "Total timing policies resolved",
    ["timing_mode", "criticality"],
)

anchor_timezone_fallbacks_total = Counter(
    "reminder_anchor_timezone_fallbacks_total",
    "Anchor requests whose anchor timezone was invalid and fell back to the user timezone",
)

reminders_created_total = Counter(
    "medication_reminders_created_total",
    "Total medication reminders created via API",
)

reminders_updated_total = Counter(
    "medication_reminders_updated_total",
    "Total medication reminders updated via API",
)

backfill_runs_total = Counter(
    "reminder_timing_backfill_runs_total",
    "Total timing policy backfill runs",
    ["status"],
)

backfill_records_updated_total = Counter(
    "reminder_timing_backfill_records_updated_total",
    "Total reminder records patched by the timing policy backfill",
)
