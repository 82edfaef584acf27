"""
Unit tests for the command-line interface.

Targets are replaced with scripted sessions, so ``check`` runs end to end
(load, resolve, evaluate, aggregate, render, exit code) without touching
the host.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner
from conftest import FakeSession, fail, ok

from baseline import __version__, cli
from baseline._types import ExitClassification
from baseline.errors import TargetConnectionError
from baseline.report import Report

RULES = """
- id: aslr
  title: Ensure address space layout randomization is enabled
  severity: 0.7
  tags: [kernel]
  assertions:
    - {kind: kernel_parameter, selector: kernel.randomize_va_space, matcher: eq, expected: 2}

- id: password-age
  title: Ensure password expiration is configured
  tags: [accounts]
  assertions:
    - {kind: login_defs, selector: PASS_MAX_DAYS, matcher: le, expected: {param: max_password_age}}
"""

MANIFEST = """
name: cli-profile
version: 0.3.0
parameters:
  max_password_age: 90
"""


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def profile(write_profile) -> Path:
    return write_profile(RULES, MANIFEST)


@pytest.fixture
def target(monkeypatch: pytest.MonkeyPatch):
    """Route every connection to a scripted session built from ``responses``."""
    state = {"responses": {}, "sessions": []}

    def _connect(target, **kwargs):
        session = FakeSession(state["responses"], target=target)
        state["sessions"].append(session)
        return session

    monkeypatch.setattr(cli, "connect", _connect)
    return state


def _compliant(target) -> None:
    target["responses"] = {
        "sysctl -n": ok("2"),
        "test -e": ok(),
        "test -r": ok(),
        "grep": ok("PASS_MAX_DAYS 60"),
    }


@pytest.mark.unit
class TestMain:
    """Test the command group."""

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli.main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_exit_codes(self, runner: CliRunner) -> None:
        result = runner.invoke(cli.main, ["--help"])
        assert result.exit_code == 0
        assert "Exit codes" in result.output
        for command in ("validate", "detect", "check", "show"):
            assert command in result.output

    def test_worst_classification(self) -> None:
        assert cli.worst_classification([]) == ExitClassification.ALL_PASSED
        assert (
            cli.worst_classification([ExitClassification.SOME_FAILED, ExitClassification.EXECUTION_ERROR, ExitClassification.ALL_PASSED])
            == ExitClassification.EXECUTION_ERROR
        )


@pytest.mark.unit
class TestValidate:
    """Test the validate command."""

    def test_bundled_profile(self, runner: CliRunner, bundled_profile: Path) -> None:
        result = runner.invoke(cli.main, ["validate", str(bundled_profile)])
        assert result.exit_code == 0, result.output
        assert "OK" in result.output
        assert "linux-baseline" in result.output

    def test_invalid_profile(self, runner: CliRunner, write_profile) -> None:
        result = runner.invoke(cli.main, ["validate", str(write_profile("id: r1\ntitle: R1\nassertions: []\n"))])
        assert result.exit_code == 1
        assert "problem(s) found" in result.output

    def test_dangling_waiver_is_a_warning(self, runner: CliRunner, profile: Path, tmp_path: Path) -> None:
        waivers = tmp_path / "waivers.yml"
        waivers.write_text("retired-rule:\n  justification: gone\n")
        result = runner.invoke(cli.main, ["validate", str(profile), "-w", str(waivers)])
        assert result.exit_code == 0
        assert "retired-rule" in result.output


@pytest.mark.unit
class TestCheck:
    """Test check exit codes and outputs."""

    def test_all_passed(self, runner: CliRunner, profile: Path, target) -> None:
        _compliant(target)
        result = runner.invoke(cli.main, ["check", str(profile), "-t", "local"])
        assert result.exit_code == 0, result.output
        assert "AllPassed" in result.output

    def test_some_failed(self, runner: CliRunner, profile: Path, target) -> None:
        _compliant(target)
        target["responses"]["sysctl -n"] = ok("0")
        result = runner.invoke(cli.main, ["check", str(profile)])
        assert result.exit_code == 100
        assert "SomeFailed" in result.output

    def test_no_fail(self, runner: CliRunner, profile: Path, target) -> None:
        _compliant(target)
        target["responses"]["sysctl -n"] = ok("0")
        result = runner.invoke(cli.main, ["check", str(profile), "--no-fail"])
        assert result.exit_code == 0

    def test_errored_rule(self, runner: CliRunner, profile: Path, target) -> None:
        _compliant(target)
        target["responses"]["sysctl -n"] = fail("sysctl: command not found", 127)
        result = runner.invoke(cli.main, ["check", str(profile)])
        assert result.exit_code == 1

    def test_input_override_changes_outcome(self, runner: CliRunner, profile: Path, target) -> None:
        _compliant(target)
        result = runner.invoke(cli.main, ["check", str(profile), "-i", "max_password_age=30"])
        assert result.exit_code == 100

    def test_bad_input_is_usage_error(self, runner: CliRunner, profile: Path, target) -> None:
        result = runner.invoke(cli.main, ["check", str(profile), "-i", "max_password_age"])
        assert result.exit_code == 2

    def test_unknown_parameter_is_load_error(self, runner: CliRunner, profile: Path, target) -> None:
        result = runner.invoke(cli.main, ["check", str(profile), "-i", "nope=1"])
        assert result.exit_code == 1
        assert target["sessions"] == []

    def test_invalid_profile_never_connects(self, runner: CliRunner, write_profile, target) -> None:
        bad = write_profile("id: r1\ntitle: R1\nassertions:\n  - {kind: registry, selector: x, matcher: exists}\n")
        result = runner.invoke(cli.main, ["check", str(bad)])
        assert result.exit_code == 1
        assert target["sessions"] == []

    def test_waived_failure_passes(self, runner: CliRunner, profile: Path, target, tmp_path: Path) -> None:
        _compliant(target)
        target["responses"]["sysctl -n"] = ok("0")
        waivers = tmp_path / "waivers.yml"
        waivers.write_text("aslr:\n  justification: Legacy JIT workload\n")
        result = runner.invoke(cli.main, ["check", str(profile), "-w", str(waivers)])
        assert result.exit_code == 0, result.output
        assert not any("sysctl" in c for c in target["sessions"][0].commands)

    def test_tag_selection(self, runner: CliRunner, profile: Path, target, tmp_path: Path) -> None:
        _compliant(target)
        target["responses"]["sysctl -n"] = ok("0")
        out = tmp_path / "report.json"
        result = runner.invoke(cli.main, ["check", str(profile), "--tag", "accounts", "-o", f"json:{out}"])
        assert result.exit_code == 0
        report = Report.from_json(out.read_text())
        assert [r.rule_id for r in report.results] == ["password-age"]

    def test_unreachable_target(self, runner: CliRunner, profile: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def _refuse(target, **kwargs):
            raise TargetConnectionError(target, "connection refused")

        monkeypatch.setattr(cli, "connect", _refuse)
        result = runner.invoke(cli.main, ["check", str(profile), "-t", "web01"])
        assert result.exit_code == 1
        assert "connection refused" in result.output

    def test_multiple_targets_write_array(self, runner: CliRunner, profile: Path, target, tmp_path: Path) -> None:
        _compliant(target)
        out = tmp_path / "reports.json"
        result = runner.invoke(cli.main, ["check", str(profile), "-t", "web01", "-t", "web02", "-o", f"json:{out}", "-q"])
        assert result.exit_code == 0
        data = json.loads(out.read_text())
        assert [d["target"] for d in data] == ["web01", "web02"]

    def test_csv_output_file(self, runner: CliRunner, profile: Path, target, tmp_path: Path) -> None:
        _compliant(target)
        out = tmp_path / "report.csv"
        result = runner.invoke(cli.main, ["check", str(profile), "-o", f"csv:{out}", "-q"])
        assert result.exit_code == 0
        assert out.read_text().splitlines()[0].startswith("target,rule_id")

    def test_unknown_output_format(self, runner: CliRunner, profile: Path, target) -> None:
        _compliant(target)
        result = runner.invoke(cli.main, ["check", str(profile), "-o", "pdf", "-q"])
        assert result.exit_code == 2


@pytest.mark.unit
class TestDetect:
    """Test environment probing."""

    def test_detect(self, runner: CliRunner, target) -> None:
        target["responses"] = {
            "stat -c": fail("stat: cannot statx: No such file or directory"),
            "os-release": ok('ID=rocky\nID_LIKE="rhel centos fedora"\nVERSION_ID="9.3"\nPRETTY_NAME="Rocky Linux 9.3"\n'),
            "systemd-detect-virt": ok("kvm"),
        }
        result = runner.invoke(cli.main, ["detect"])
        assert result.exit_code == 0, result.output
        assert "os_family" in result.output
        assert "rhel" in result.output

    def test_detect_unreachable(self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        def _refuse(target, **kwargs):
            raise TargetConnectionError(target, "no route to host")

        monkeypatch.setattr(cli, "connect", _refuse)
        result = runner.invoke(cli.main, ["detect", "-t", "web01"])
        assert result.exit_code == 1
        assert "no route to host" in result.output


@pytest.mark.unit
class TestShow:
    """Saved reports keep their exit classification."""

    def _save(self, runner: CliRunner, profile: Path, path: Path) -> None:
        runner.invoke(cli.main, ["check", str(profile), "-o", f"json:{path}", "-q"])

    def test_show_failed_report(self, runner: CliRunner, profile: Path, target, tmp_path: Path) -> None:
        _compliant(target)
        target["responses"]["sysctl -n"] = ok("0")
        path = tmp_path / "report.json"
        self._save(runner, profile, path)

        result = runner.invoke(cli.main, ["show", str(path)])
        assert result.exit_code == 100
        assert "aslr" in result.output

    def test_show_no_fail(self, runner: CliRunner, profile: Path, target, tmp_path: Path) -> None:
        _compliant(target)
        target["responses"]["sysctl -n"] = ok("0")
        path = tmp_path / "report.json"
        self._save(runner, profile, path)
        assert runner.invoke(cli.main, ["show", str(path), "--no-fail", "-q"]).exit_code == 0

    def test_show_rejects_non_report(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "bogus.json"
        path.write_text('{"hello": "world"}')
        result = runner.invoke(cli.main, ["show", str(path)])
        assert result.exit_code == 1
        assert "not a report" in result.output
