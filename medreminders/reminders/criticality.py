from typing import Optional

from medreminders.configurations.medication_criticality import TIME_SENSITIVE_MEDICATION_FRAGMENTS
from .policy_models import ReminderCriticality


def normalize_medication_name(name: Optional[str]) -> str:
    if not isinstance(name, str):
        return ""
    return name.strip().lower()


def classify_medication_criticality(medication_name: Optional[str]) -> ReminderCriticality:
    """
    Classify a medication as time-sensitive when its name contains a
    narrow-therapeutic-index fragment, otherwise standard.

    Absent or blank names are standard.
    """
    normalized = normalize_medication_name(medication_name)
    if not normalized:
        return ReminderCriticality.STANDARD
    if any(fragment in normalized for fragment in TIME_SENSITIVE_MEDICATION_FRAGMENTS):
        return ReminderCriticality.TIME_SENSITIVE
    return ReminderCriticality.STANDARD
