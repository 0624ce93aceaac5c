"""
Result models.

Every step of the build sequence returns a StepResult instead of raising, so
each failure path is visible at the call site in the job controller.
"""

from dataclasses import dataclass
from typing import Optional

from ..validation import BuildJobError


@dataclass(frozen=True)
class StepResult:
    """Outcome of one build-sequence step: success, or the error that stopped it."""

    error: Optional[BuildJobError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        return self.error.message if self.error is not None else ""

    @classmethod
    def success(cls) -> "StepResult":
        return cls()

    @classmethod
    def failure(cls, error: BuildJobError) -> "StepResult":
        return cls(error=error)
