#!/usr/bin/env python3
"""
Medication Criticality Configuration
Narrow-therapeutic-index drug name fragments that mark a reminder as time-sensitive.

Fragments are lower-case and matched as substrings of the normalized medication
name, so brand names and combination products containing a generic name match too.
Maintain this table clinically; classification logic does nothing beyond
substring containment.
"""

# Immunosuppressants
_IMMUNOSUPPRESSANTS = (
    "tacrolimus",
    "cyclosporine",
    "ciclosporin",
    "sirolimus",
    "everolimus",
)

# Anticoagulants
_ANTICOAGULANTS = (
    "warfarin",
)

# Anti-epileptics
_ANTIEPILEPTICS = (
    "phenytoin",
    "carbamazepine",
    "valproate",
    "valproic",
    "divalproex",
)

# Other narrow-therapeutic-index agents
_OTHER_NTI = (
    "lithium",
    "levothyroxine",
    "digoxin",
    "theophylline",
)

TIME_SENSITIVE_MEDICATION_FRAGMENTS = frozenset(
    _IMMUNOSUPPRESSANTS + _ANTICOAGULANTS + _ANTIEPILEPTICS + _OTHER_NTI
)

# Export all configurations
__all__ = [
    'TIME_SENSITIVE_MEDICATION_FRAGMENTS',
]
