"""
Value objects for medication reminder timing policies
"""
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class TimingMode(str, Enum):
    """How a reminder's clock time is interpreted."""
    LOCAL = "local"    # user's current timezone; shifts when the user travels
    ANCHOR = "anchor"  # fixed to anchor_timezone regardless of location


class ReminderCriticality(str, Enum):
    STANDARD = "standard"
    TIME_SENSITIVE = "time_sensitive"


class TimingPolicy(BaseModel):
    """Resolved timing policy persisted onto a reminder record."""
    model_config = ConfigDict(frozen=True)

    timing_mode: TimingMode
    anchor_timezone: Optional[str] = None
    criticality: ReminderCriticality

    @model_validator(mode="after")
    def _anchor_only_in_anchor_mode(self) -> "TimingPolicy":
        if (self.anchor_timezone is not None) != (self.timing_mode == TimingMode.ANCHOR):
            raise ValueError("anchor_timezone must be set exactly when timing_mode is 'anchor'")
        return self

    def as_resolution_input(self, medication_name: Optional[str], user_timezone: Optional[str]) -> "ResolutionInput":
        """Feed this policy back as request overrides (used by the backfill)."""
        return ResolutionInput(
            medication_name=medication_name,
            user_timezone=user_timezone,
            requested_timing_mode=self.timing_mode,
            requested_anchor_timezone=self.anchor_timezone,
        )


class ResolutionInput(BaseModel):
    """
    Per-call input to the resolver.

    Requested values come from route payloads and legacy records, so they are
    kept loosely typed: an unrecognized requested mode is carried as a plain
    string and treated as "not requested" by the resolver.
    """
    model_config = ConfigDict(frozen=True)

    medication_name: Optional[str] = None
    user_timezone: Optional[str] = None
    requested_timing_mode: Optional[Union[TimingMode, str]] = None
    requested_anchor_timezone: Optional[str] = None

    @field_validator("medication_name", "user_timezone", "requested_anchor_timezone", mode="before")
    @classmethod
    def _drop_non_strings(cls, v):
        return v if isinstance(v, str) else None

    @field_validator("requested_timing_mode", mode="before")
    @classmethod
    def _drop_unusable_mode(cls, v):
        return v if isinstance(v, (TimingMode, str)) else None
