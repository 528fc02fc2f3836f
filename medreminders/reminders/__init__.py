"""Medication reminder timing (policy resolver, API, backfill jobs).

The resolver decides whether a reminder fires on the user's local clock or on a
timezone-anchored clock and whether the medication is time-sensitive. The API
and the Celery backfill task persist its decisions onto reminder records.
"""
