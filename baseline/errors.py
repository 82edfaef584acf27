"""Exception taxonomy for the evaluation engine.

Only ``LoadError`` and ``TargetConnectionError`` ever escape a run. Accessor
failures and cancellations are recovered into errored rule results, and a
failed assertion is an ordinary outcome, not an exception at all.
"""

from __future__ import annotations

from dataclasses import dataclass


class BaselineError(Exception):
    """Base class for all engine errors."""


@dataclass(frozen=True)
class LoadProblem:
    """A single structural problem found while loading a profile.

    Attributes:
        rule_id: Offending rule id, or None for profile-level problems.
        reason: Human-readable description of the problem.
        source: File (or other source label) the problem was found in.

    """

    rule_id: str | None
    reason: str
    source: str = ""

    def as_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {"rule_id": self.rule_id, "reason": self.reason, "source": self.source}

    def __str__(self) -> str:
        where = f"{self.source}: " if self.source else ""
        who = f"[{self.rule_id}] " if self.rule_id else ""
        return f"{where}{who}{self.reason}"


class LoadError(BaselineError):
    """Malformed profile, rule, parameter, or waiver source.

    Carries every problem found, not just the first, so an author sees all
    mistakes in one pass.
    """

    def __init__(self, problems: list[LoadProblem]):
        self.problems = list(problems)
        count = len(self.problems)
        head = f"{count} problem{'s' if count != 1 else ''} found while loading"
        super().__init__("\n".join([head, *(f"  - {p}" for p in self.problems)]))


class TargetConnectionError(BaselineError):
    """The target host could not be reached or authenticated."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"{target}: {reason}")


class AccessorError(BaselineError):
    """A single fact query failed (unreachable, permission denied, unsupported)."""

    def __init__(self, kind: str, selector: str, reason: str):
        self.kind = kind
        self.selector = selector
        self.reason = reason
        super().__init__(f"{kind}({selector!r}): {reason}")


class EvaluationCancelled(BaselineError):
    """The run was cancelled (timeout) while a rule was being evaluated."""

    reason = "evaluation-cancelled"


class PredicateError(BaselineError):
    """A comparison could not be carried out on the values it was given."""
