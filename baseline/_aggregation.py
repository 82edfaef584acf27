"""Aggregation of rule results into a report.

Compliance score:
    100 * sum(severity of passed) / sum(severity of passed + failed + errored)

rounded to two decimals. Not-applicable and waived rules are left out of
both sums. When nothing is eligible (or every eligible rule has severity 0)
the score is the string ``"undefined"``, never 0 or 100.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any, Union

from baseline import __version__
from baseline._types import ComplianceTier, ExitClassification, RuleStatus
from baseline.report import UNDEFINED, ProfileMeta, Report, RuleResult, StatusCounts, Summary

SCORED = (RuleStatus.PASSED, RuleStatus.FAILED, RuleStatus.ERRORED)


def compliance_score(results: Iterable[RuleResult]) -> Union[float, str]:
    """Severity-weighted compliance percentage, or ``"undefined"``.

    One passed and one failed rule of equal severity score 50.0; a passed
    rule of severity 1.0 next to a failed one of 0.5 scores 66.67.
    """
    weights = [(r.severity, r.status) for r in results if r.status in SCORED]
    # fsum is exact, so the score does not depend on result order.
    denominator = math.fsum(w for w, _ in weights)
    if denominator <= 0:
        return UNDEFINED
    numerator = math.fsum(w for w, status in weights if status == RuleStatus.PASSED)
    return round(numerator / denominator * 100.0, 2)


def get_compliance_tier(score: Union[float, str]) -> ComplianceTier | None:
    """Classify a compliance score into a tier.

    Tiers:
    - EXCELLENT: 90-100%
    - GOOD: 75-89%
    - FAIR: 60-74%
    - POOR: <60%
    """
    if score == UNDEFINED:
        return None
    if score >= 90:
        return ComplianceTier.EXCELLENT
    elif score >= 75:
        return ComplianceTier.GOOD
    elif score >= 60:
        return ComplianceTier.FAIR
    else:
        return ComplianceTier.POOR


def classify_exit(results: Iterable[RuleResult]) -> ExitClassification:
    """Errored outranks failed: an undetermined state is worse than a violation."""
    statuses = {r.status for r in results}
    if RuleStatus.ERRORED in statuses:
        return ExitClassification.EXECUTION_ERROR
    if RuleStatus.FAILED in statuses:
        return ExitClassification.SOME_FAILED
    return ExitClassification.ALL_PASSED


def count_statuses(results: Sequence[RuleResult]) -> StatusCounts:
    counts = {status.value: 0 for status in RuleStatus}
    for r in results:
        counts[r.status.value] += 1
    return StatusCounts(total=len(results), **counts)


def summarize(results: Sequence[RuleResult]) -> Summary:
    score = compliance_score(results)
    return Summary(
        counts=count_statuses(results),
        compliance_score=score,
        exit_classification=classify_exit(results),
        tier=get_compliance_tier(score),
    )


def aggregate(
    results: Sequence[RuleResult],
    *,
    profile: ProfileMeta,
    target: str,
    parameters: dict[str, Any] | None = None,
    warnings: Iterable[str] = (),
    generated_at: datetime | None = None,
) -> Report:
    """Build the immutable report for one run.

    ``results`` must already be in rule declaration order.
    """
    results = tuple(results)
    return Report(
        profile=profile,
        target=target,
        results=results,
        summary=summarize(results),
        parameters=dict(parameters or {}),
        warnings=tuple(warnings),
        generated_at=generated_at or datetime.now(timezone.utc),
        engine_version=__version__,
    )
