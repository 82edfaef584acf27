"""
Shared test fixtures and fakes.

Provides lightweight fakes for unit testing that do NOT require a real
target host, SSH server or container runtime:
- FakeSession: scripted command -> Result session
- FakeFacade: accessor facade serving canned facts
- Builders for rules, rule results and reports
"""

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Union

import pytest

from baseline._model import Assertion, Rule, RuleSet
from baseline._types import Applicability, Fact, Result, RuleStatus
from baseline.accessors import AccessorFacade
from baseline.expressions import Literal
from baseline.report import RuleResult

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

Response = Union[Result, Callable[[str], Result]]


class FakeSession:
    """Session that answers commands from a script.

    Responses are matched by substring in insertion order; the first
    pattern contained in the command wins. Unmatched commands exit 1.
    """

    def __init__(self, responses: Optional[dict[str, Response]] = None, target: str = "fake://host"):
        self.responses = dict(responses or {})
        self.target = target
        self.commands: list[str] = []
        self.timeouts: list[Optional[float]] = []
        self.closed = False
        self._lock = threading.Lock()

    def run(self, cmd: str, *, timeout: Optional[float] = None) -> Result:
        with self._lock:
            self.commands.append(cmd)
            self.timeouts.append(timeout)
        for pattern, response in self.responses.items():
            if pattern in cmd:
                return response(cmd) if callable(response) else response
        return Result(exit_code=1, stdout="", stderr="")

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class FakeFacade(AccessorFacade):
    """Facade that serves facts from a table instead of running commands.

    Table values may be a ``Fact``, an exception instance (raised), or a
    callable returning either. Missing entries are absent facts. ``delay``
    makes every query block (until cancelled) to simulate a slow target.
    """

    def __init__(self, facts: Optional[dict[tuple[str, str], Any]] = None, *, delay: float = 0.0, **kwargs: Any):
        super().__init__(FakeSession(), **kwargs)
        self.facts = dict(facts or {})
        self.delay = delay
        self.queries: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def query(self, kind: str, selector: str) -> Fact:
        self.check_cancelled()
        with self._lock:
            self.queries.append((kind, selector))
        if self.delay:
            self.cancel_event.wait(self.delay)
            self.check_cancelled()
        value = self.facts.get((kind, selector), Fact.absent())
        if callable(value) and not isinstance(value, Fact):
            value = value()
        if isinstance(value, Exception):
            raise value
        return value


def ok(stdout: str = "") -> Result:
    return Result(exit_code=0, stdout=stdout, stderr="")


def fail(stderr: str = "", exit_code: int = 1) -> Result:
    return Result(exit_code=exit_code, stdout="", stderr=stderr)


def make_rule(
    rule_id: str,
    *assertions: Assertion,
    severity: float = 0.5,
    only_if: Any = None,
    tags: tuple[str, ...] = (),
) -> Rule:
    if not assertions:
        assertions = (Assertion(kind="file", selector=f"/etc/{rule_id}", matcher="exists"),)
    return Rule(
        id=rule_id,
        title=f"Rule {rule_id}",
        assertions=tuple(assertions),
        severity=severity,
        tags=frozenset(tags),
        only_if=only_if,
    )


def make_assertion(kind: str, selector: str, matcher: str, expected: Any = None, prop: Optional[str] = None) -> Assertion:
    return Assertion(kind=kind, selector=selector, matcher=matcher, expected=Literal(expected), attribute=prop)


def make_result(rule_id: str, status: RuleStatus, severity: float = 0.5) -> RuleResult:
    applicability = {
        RuleStatus.NOT_APPLICABLE: Applicability.NOT_APPLICABLE,
        RuleStatus.WAIVED: Applicability.WAIVED,
    }.get(status, Applicability.APPLICABLE)
    return RuleResult(
        rule_id=rule_id,
        title=f"Rule {rule_id}",
        severity=severity,
        severity_label="medium",
        status=status,
        applicability=applicability,
        started_at=FIXED_NOW,
        finished_at=FIXED_NOW,
    )


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_facade() -> FakeFacade:
    return FakeFacade()


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def bundled_profile() -> Path:
    """Path to the profile shipped with the package."""
    return Path(__file__).resolve().parent.parent / "profiles" / "linux-baseline"


@pytest.fixture
def write_profile(tmp_path: Path) -> Callable[..., Path]:
    """Write a profile directory from YAML text and return its path."""

    def _write(rules: str, manifest: Optional[str] = "name: test-profile\n", **extra_rule_files: str) -> Path:
        root = tmp_path / "profile"
        controls = root / "controls"
        controls.mkdir(parents=True, exist_ok=True)
        if manifest is not None:
            (root / "profile.yml").write_text(manifest)
        (controls / "01_rules.yml").write_text(rules)
        for name, text in extra_rule_files.items():
            (controls / f"{name}.yml").write_text(text)
        return root

    return _write


def ruleset(*rules: Rule) -> RuleSet:
    return RuleSet(rules=tuple(rules))
