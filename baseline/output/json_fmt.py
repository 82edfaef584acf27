"""JSON output formatter.

A single report is written as the report document itself, which
``Report.from_json`` reads back unchanged. Several reports (one per target)
are written as a JSON array of report documents.

Example::

    from baseline.output import format_json
    from baseline.report import Report

    assert Report.from_json(format_json([report])) == report

"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from baseline.report import Report


def format_json(reports: Sequence[Report]) -> str:
    """Format one or more reports as JSON (2-space indent)."""
    if len(reports) == 1:
        return reports[0].to_json(indent=2)
    return "[\n" + ",\n".join(r.to_json(indent=2) for r in reports) + "\n]"
