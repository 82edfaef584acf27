"""
Unit tests for JSON and CSV output.
"""

import csv
import io
import json
from pathlib import Path

import pytest
from conftest import FIXED_NOW, make_result

from baseline._aggregation import aggregate
from baseline._types import AssertionOutcome, RuleStatus
from baseline.output import format_csv, format_json, parse_output_spec, write_output
from baseline.report import AssertionReport, ProfileMeta, Report


def _report(target: str = "local") -> Report:
    failed = make_result("shadow-perms", RuleStatus.FAILED).model_copy(
        update={
            "assertions": (
                AssertionReport(
                    description="file(/etc/shadow).mode cmp",
                    kind="file",
                    selector="/etc/shadow",
                    attribute="mode",
                    matcher="cmp",
                    expected="0600",
                    actual="0644",
                    outcome=AssertionOutcome.FAILED,
                    detail="mismatch",
                ),
                AssertionReport(
                    description="mount(/tmp).options contains",
                    kind="mount",
                    selector="/tmp",
                    attribute="options",
                    matcher="contains",
                    expected="noexec",
                    actual=["rw", "nosuid"],
                    outcome=AssertionOutcome.FAILED,
                ),
            )
        }
    )
    results = [make_result("a", RuleStatus.PASSED), failed, make_result("n", RuleStatus.NOT_APPLICABLE)]
    return aggregate(results, profile=ProfileMeta(name="p"), target=target, generated_at=FIXED_NOW)


@pytest.mark.unit
class TestJsonOutput:
    """One report is a document, several are an array."""

    def test_single_report_is_a_document(self) -> None:
        report = _report()
        text = format_json([report])
        assert Report.from_json(text) == report

    def test_multiple_reports_are_an_array(self) -> None:
        text = format_json([_report("ssh://web01"), _report("ssh://web02")])
        data = json.loads(text)
        assert isinstance(data, list)
        assert [d["target"] for d in data] == ["ssh://web01", "ssh://web02"]


@pytest.mark.unit
class TestCsvOutput:
    """One row per assertion, one row for rules without assertions."""

    def test_rows(self) -> None:
        rows = list(csv.DictReader(io.StringIO(format_csv([_report()]))))
        assert [r["rule_id"] for r in rows] == ["a", "shadow-perms", "shadow-perms", "n"]
        assert rows[1]["actual"] == "0644"
        assert rows[1]["outcome"] == "failed"
        assert rows[2]["actual"] == '["rw", "nosuid"]'
        assert rows[3]["status"] == "not_applicable"
        assert rows[3]["assertion"] == ""

    def test_header_only_for_empty_report(self) -> None:
        report = aggregate([], profile=ProfileMeta(name="p"), target="local", generated_at=FIXED_NOW)
        assert format_csv([report]).strip() == (
            "target,rule_id,title,severity,status,reason,assertion,matcher,expected,actual,outcome,detail"
        )


@pytest.mark.unit
class TestWriteOutput:
    """Test format dispatch and file output."""

    def test_parse_output_spec(self) -> None:
        assert parse_output_spec("json") == ("json", None)
        assert parse_output_spec("CSV:out/results.csv") == ("csv", "out/results.csv")
        assert parse_output_spec("json:") == ("json", None)

    def test_write_to_file(self, tmp_path: Path) -> None:
        path = tmp_path / "report.json"
        text = write_output([_report()], "json", str(path))
        assert path.read_text() == text

    def test_unknown_format(self) -> None:
        with pytest.raises(ValueError, match="Unknown output format"):
            write_output([_report()], "pdf")
