"""Core value types shared across the engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class RuleStatus(str, Enum):
    """Rule-level outcome."""

    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"
    NOT_APPLICABLE = "not_applicable"
    WAIVED = "waived"


class Applicability(str, Enum):
    """Whether a rule was evaluated at all."""

    APPLICABLE = "applicable"
    NOT_APPLICABLE = "not_applicable"
    WAIVED = "waived"


class AssertionOutcome(str, Enum):
    """Outcome of one assertion.

    FAILED means the target state violates policy; ERRORED means the target
    state could not be determined. SKIPPED only appears with stop-on-failure.
    """

    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"
    SKIPPED = "skipped"


class ExitClassification(str, Enum):
    """Run-level classification mapped onto the process exit code."""

    ALL_PASSED = "AllPassed"
    SOME_FAILED = "SomeFailed"
    EXECUTION_ERROR = "ExecutionError"

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self]


class ComplianceTier(str, Enum):
    """Compliance tier classification based on score."""

    EXCELLENT = "excellent"  # 90-100%
    GOOD = "good"  # 75-89%
    FAIR = "fair"  # 60-74%
    POOR = "poor"  # <60%


EXIT_CODES = {
    ExitClassification.ALL_PASSED: 0,
    ExitClassification.SOME_FAILED: 100,
    ExitClassification.EXECUTION_ERROR: 1,
}
EXIT_LOAD_ERROR = 1


def severity_label(impact: float) -> str:
    """Map a 0.0-1.0 impact onto a severity label.

    Example:
    -------
        >>> severity_label(0.9)
        'critical'
        >>> severity_label(0.5)
        'medium'

    """
    if impact <= 0.0:
        return "none"
    if impact < 0.4:
        return "low"
    if impact < 0.7:
        return "medium"
    if impact < 0.9:
        return "high"
    return "critical"


@dataclass(frozen=True)
class Fact:
    """One fact about the target, as returned by an accessor.

    ``exists`` distinguishes an absent resource from one that is present but
    empty (e.g. a missing file versus an empty one). Record-style resources
    carry a mapping as ``value``; use :meth:`attribute` to project one field.
    """

    exists: bool
    value: Any = None

    @classmethod
    def absent(cls) -> Fact:
        return cls(exists=False, value=None)

    def attribute(self, name: str) -> Fact:
        """Project a named attribute out of a record-valued fact.

        Absent records and missing (or ``None``) fields project to an absent
        fact. The pseudo-attribute ``exists`` always projects to a present
        boolean fact.
        """
        if name == "exists":
            return Fact(exists=True, value=self.exists)
        if not self.exists or not isinstance(self.value, Mapping):
            return Fact.absent()
        value = self.value.get(name)
        if value is None:
            return Fact.absent()
        return Fact(exists=True, value=value)


@dataclass
class Result:
    """Result of a command executed on the target."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        """Return True if command succeeded (exit code 0)."""
        return self.exit_code == 0
