"""CSV output formatter.

One row per target+rule+assertion, for spreadsheets and grep. Rules with no
assertion outcomes (waived, not applicable, cancelled before starting) get a
single row with empty assertion columns.

Output::

    target,rule_id,title,severity,status,reason,assertion,matcher,expected,actual,outcome,detail
    local,filesystem-02,Ensure /etc/shadow permissions are configured,critical,failed,...

"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from baseline.report import AssertionReport, Report, RuleResult


COLUMNS = [
    "target",
    "rule_id",
    "title",
    "severity",
    "status",
    "reason",
    "assertion",
    "matcher",
    "expected",
    "actual",
    "outcome",
    "detail",
]


def format_csv(reports: Sequence[Report]) -> str:
    """Format reports as CSV with a header row."""
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=COLUMNS)
    writer.writeheader()

    for report in reports:
        for result in report.results:
            if not result.assertions:
                writer.writerow(_build_row(report.target, result, None))
                continue
            for assertion in result.assertions:
                writer.writerow(_build_row(report.target, result, assertion))

    return output.getvalue()


def _cell(value: Any) -> str:
    """Render a value for a CSV cell (structured values as compact JSON)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True)


def _build_row(target: str, result: RuleResult, assertion: AssertionReport | None) -> dict:
    row = {
        "target": target,
        "rule_id": result.rule_id,
        "title": result.title,
        "severity": result.severity_label,
        "status": result.status.value,
        "reason": result.reason,
        "assertion": "",
        "matcher": "",
        "expected": "",
        "actual": "",
        "outcome": "",
        "detail": "",
    }
    if assertion is not None:
        row.update(
            {
                "assertion": assertion.description,
                "matcher": assertion.matcher,
                "expected": _cell(assertion.expected),
                "actual": _cell(assertion.actual),
                "outcome": assertion.outcome.value,
                "detail": assertion.detail,
            }
        )
    return row
