"""Medication reminder timing service.

Resolves the timing policy (local clock vs. timezone anchor, standard vs.
time-sensitive) for medication reminders, and exposes HTTP APIs plus a
periodic backfill job that classifies legacy reminders.
"""

__version__ = "0.1.0"
