"""
Time entry and generation result models.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from .lexicon import get_lexicon


class InputValidationError(ValueError):
    """Raised when a time entry is missing or has invalid required fields."""


class GenerationMethod(Enum):
    """How a narrative was produced."""
    AI = "ai"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class TimeEntryInput:
    """A single user submission describing billable work.

    Created per submission and consumed once. Subject and goal must be
    non-empty after trimming; time, when given, is a positive number of
    hours in 0.1 increments.
    """
    activity: str
    subject: str
    goal: str
    time: Optional[Decimal] = None
    client_matter: Optional[str] = None

    def __post_init__(self):
        """Validate the entry against the known activities."""
        known = get_lexicon().activity_ids
        if self.activity not in known:
            raise InputValidationError(
                f"Unknown activity '{self.activity}'. Expected one of: {', '.join(known)}"
            )
        if not isinstance(self.subject, str) or not self.subject.strip():
            raise InputValidationError("subject is required and cannot be empty")
        if not isinstance(self.goal, str) or not self.goal.strip():
            raise InputValidationError("goal is required and cannot be empty")

        if self.time is not None:
            try:
                hours = Decimal(str(self.time))
            except InvalidOperation:
                raise InputValidationError(f"time must be a number, got {self.time!r}")
            if not hours.is_finite():
                raise InputValidationError("time must be a finite number")
            if hours <= 0:
                raise InputValidationError("time must be > 0")
            if hours % Decimal("0.1") != 0:
                raise InputValidationError("time must be in 0.1 hour increments")
            object.__setattr__(self, "time", hours)


@dataclass(frozen=True)
class GenerationResult:
    """Immutable outcome of a narrative generation."""
    output: str
    method: GenerationMethod

    def __post_init__(self):
        if not self.output:
            raise ValueError("output cannot be empty")

    def to_dict(self) -> dict:
        return {"output": self.output, "method": self.method.value}
