"""
Scheduling parameters for one learner.

Validated with pydantic and threaded explicitly through every scheduler
call. Instances are frozen; settings changes produce a new instance.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from srs_core.errors import ValidationError
from srs_core.fsrs.constants import (
    DEFAULT_ALGORITHM_VERSION,
    DEFAULT_ENABLE_FUZZ,
    DEFAULT_LEARNING_STEPS,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_RELEARNING_STEPS,
    DEFAULT_REQUEST_RETENTION,
    FALLBACK_DWELL_SECONDS,
    WEIGHT_SETS,
)


_STEP_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_STEP_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_step(step: str) -> timedelta:
    """
    Parse a step delay such as "1m", "10m", "1h" or "2d".

    Raises:
        ValidationError: for malformed or non-positive delays
    """
    if not isinstance(step, str):
        raise ValidationError(f"Step delay must be a string, got {step!r}")
    match = _STEP_PATTERN.match(step)
    if match is None:
        raise ValidationError(f"Malformed step delay {step!r} (expected e.g. '1m', '10m', '1h', '1d')")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValidationError(f"Step delay must be positive: {step!r}")
    return timedelta(**{_STEP_UNITS[match.group(2)]: amount})


def parse_steps(value: Any) -> tuple[str, ...]:
    """Accept a comma separated string or a sequence of step strings."""
    if isinstance(value, str):
        value = [part for part in value.split(",") if part.strip()]
    steps = tuple(str(step).strip() for step in value)
    for step in steps:
        parse_step(step)
    return steps


class SchedulingParameters(BaseModel):
    """
    Per-learner scheduling settings.

    Construction with invalid values raises srs_core.errors.ValidationError.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    request_retention: float = Field(DEFAULT_REQUEST_RETENTION, gt=0.0, lt=1.0)
    maximum_interval: int = Field(DEFAULT_MAXIMUM_INTERVAL, ge=1)
    enable_fuzz: bool = DEFAULT_ENABLE_FUZZ
    learning_steps: tuple[str, ...] = DEFAULT_LEARNING_STEPS
    relearning_steps: tuple[str, ...] = DEFAULT_RELEARNING_STEPS
    algorithm_version: str = DEFAULT_ALGORITHM_VERSION
    weights: Optional[tuple[float, ...]] = None

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid scheduling parameters: {exc}") from exc

    @field_validator("learning_steps", "relearning_steps", mode="before")
    @classmethod
    def _check_steps(cls, value: Any) -> tuple[str, ...]:
        return parse_steps(value)

    @model_validator(mode="after")
    def _check_weights(self) -> "SchedulingParameters":
        if self.algorithm_version not in WEIGHT_SETS:
            raise ValueError(
                f"Unknown algorithm version {self.algorithm_version!r}; "
                f"known: {sorted(WEIGHT_SETS)}"
            )
        if self.weights is not None:
            expected = len(WEIGHT_SETS[self.algorithm_version])
            if len(self.weights) != expected:
                raise ValueError(
                    f"{self.algorithm_version} needs {expected} weights, got {len(self.weights)}"
                )
            if any(w != w for w in self.weights):
                raise ValueError("weights must not contain NaN")
        return self

    # ---- Derived values ----

    @property
    def w(self) -> tuple[float, ...]:
        """Active weight vector."""
        if self.weights is not None:
            return self.weights
        return WEIGHT_SETS[self.algorithm_version]

    @property
    def learning_delays(self) -> tuple[timedelta, ...]:
        return tuple(parse_step(step) for step in self.learning_steps)

    @property
    def relearning_delays(self) -> tuple[timedelta, ...]:
        return tuple(parse_step(step) for step in self.relearning_steps)

    @property
    def dwell_time(self) -> timedelta:
        """Minimum wait before a card failed in-session is shown again."""
        if self.learning_steps:
            return parse_step(self.learning_steps[0])
        return timedelta(seconds=FALLBACK_DWELL_SECONDS)

    def updated(self, **changes: Any) -> "SchedulingParameters":
        """Return a validated copy with `changes` applied."""
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise ValidationError(f"Unknown scheduling parameters: {sorted(unknown)}")
        values = self.model_dump()
        values.update(changes)
        return SchedulingParameters(**values)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, record: Optional[dict[str, Any]]) -> "SchedulingParameters":
        return cls(**(record or {}))
