"""Report model: the wire schema of a compliance run.

The report is immutable (frozen pydantic models, tuples for sequences) and
round-trips through JSON unchanged::

    report == Report.from_json(report.to_json())

Results keep rule declaration order regardless of how rules were scheduled.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from baseline._types import (
    Applicability,
    AssertionOutcome,
    ComplianceTier,
    ExitClassification,
    RuleStatus,
)

UNDEFINED = "undefined"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class AssertionReport(_Frozen):
    """Outcome of one assertion with the values it compared."""

    description: str = Field(..., description="Assertion label")
    kind: str = Field(..., description="Accessor kind")
    selector: str = Field(..., description="Accessor selector")
    attribute: Optional[str] = Field(default=None, description="Projected attribute")
    matcher: str = Field(..., description="Matcher name")
    expected: Any = Field(default=None, description="Resolved expected value")
    actual: Any = Field(default=None, description="Observed value (None when absent)")
    outcome: AssertionOutcome
    detail: str = Field(default="", description="Human-readable explanation")


class WaiverInfo(_Frozen):
    justification: str
    approver: str = ""
    expiry: Optional[datetime] = None


class RuleResult(_Frozen):
    """Result of one rule (the evaluation result of the run)."""

    rule_id: str
    title: str
    severity: float = Field(..., ge=0.0, le=1.0)
    severity_label: str
    tags: tuple[str, ...] = ()
    status: RuleStatus
    applicability: Applicability
    reason: str = Field(default="", description="Why the rule is errored, skipped or not applicable")
    waiver: Optional[WaiverInfo] = None
    assertions: tuple[AssertionReport, ...] = ()
    started_at: datetime
    finished_at: datetime

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


class StatusCounts(_Frozen):
    total: int = 0
    passed: int = 0
    failed: int = 0
    errored: int = 0
    not_applicable: int = 0
    waived: int = 0


class Summary(_Frozen):
    counts: StatusCounts
    compliance_score: Union[float, Literal["undefined"]] = Field(
        ..., description="Severity-weighted score (0-100) or 'undefined'"
    )
    exit_classification: ExitClassification
    tier: Optional[ComplianceTier] = Field(default=None, description="Absent when the score is undefined")

    @property
    def exit_code(self) -> int:
        return self.exit_classification.exit_code


class ProfileMeta(_Frozen):
    name: str
    title: str = ""
    version: str = ""
    maintainer: str = ""
    summary: str = ""


class Report(_Frozen):
    """A complete compliance run against one target."""

    profile: ProfileMeta
    target: str
    results: tuple[RuleResult, ...]
    summary: Summary
    parameters: dict[str, Any] = Field(default_factory=dict, description="Resolved parameter values")
    warnings: tuple[str, ...] = ()
    generated_at: datetime
    engine_version: str = ""

    def to_json(self, *, indent: int | None = 2) -> str:
        return self.model_dump_json(indent=indent)

    @classmethod
    def from_json(cls, data: str | bytes) -> Report:
        return cls.model_validate_json(data)

    def by_status(self, status: RuleStatus) -> list[RuleResult]:
        return [r for r in self.results if r.status == status]
