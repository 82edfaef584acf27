"""Single-rule evaluation.

``evaluate_rule`` is a pure function of (rule, parameters, facts): it checks
applicability, evaluates every assertion in declared order and reduces the
outcomes to a rule status (errored > failed > passed).

An accessor failure makes an assertion ERRORED, never FAILED: FAILED means
the target violates policy, ERRORED means its state could not be
determined. Failed assertions are ordinary outcomes and are only logged at
DEBUG.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from baseline._types import Applicability, AssertionOutcome, Fact, RuleStatus
from baseline.errors import AccessorError, EvaluationCancelled, PredicateError
from baseline.expressions import ParamRef, describe, evaluate, truthy
from baseline.helpers import call_helper
from baseline.predicates import apply_matcher
from baseline.report import AssertionReport, RuleResult, WaiverInfo

if TYPE_CHECKING:
    from baseline._model import Assertion, Rule
    from baseline.accessors import AccessorFacade
    from baseline.waivers import Waiver

logger = logging.getLogger(__name__)

CANCELLED_REASON = EvaluationCancelled.reason


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def jsonable(value: Any) -> Any:
    """Normalize a fact value to plain JSON types (for stable round-trips)."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Mapping):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted((jsonable(v) for v in value), key=str)
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return str(value)


class _Scope:
    """Expression environment with a private fact cache.

    A scope lives for one assertion (or one applicability check), so a fact
    referenced twice in the same assertion is queried once, while separate
    assertions always see fresh facts.
    """

    def __init__(self, parameters: Mapping[str, Any], facade: AccessorFacade):
        self.parameters = parameters
        self.facade = facade
        self._facts: dict[tuple[str, str], Fact] = {}

    def param(self, name: str) -> Any:
        return self.parameters.get(name)

    def fact(self, kind: str, selector: str) -> Fact:
        key = (kind, selector)
        if key not in self._facts:
            self._facts[key] = self.facade.query(kind, selector)
        return self._facts[key]

    def helper(self, name: str, args: list[Any]) -> Any:
        return call_helper(name, self.facade, args)


# ── Assertions ─────────────────────────────────────────────────────────────


def _selector_text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def resolve_selectors(assertion: Assertion, parameters: Mapping[str, Any]) -> list[str]:
    """Concrete selectors of an assertion.

    A literal selector is used as written. A parameter selector resolves to
    the parameter's value, or to each element of a list value.

    Raises:
        PredicateError: The parameter has no value.

    """
    selector = assertion.selector
    if not isinstance(selector, ParamRef):
        return [selector]
    value = parameters.get(selector.name)
    if value is None:
        raise PredicateError(f"parameter {selector.name!r} has no value to select by")
    if isinstance(value, (list, tuple)):
        return [_selector_text(v) for v in value]
    return [_selector_text(value)]


def _shown(selector: str | ParamRef) -> str:
    return f"{{param: {selector.name}}}" if isinstance(selector, ParamRef) else selector


def evaluate_assertion(
    assertion: Assertion,
    parameters: Mapping[str, Any],
    facade: AccessorFacade,
    selector: str | None = None,
) -> AssertionReport:
    """Evaluate one assertion against fresh facts.

    ``selector`` replaces a parameter selector with one of its resolved
    values (see ``check_assertion``).

    Raises:
        EvaluationCancelled: If the run was cancelled mid-query.

    """
    target = assertion.selector if selector is None else selector
    if isinstance(target, ParamRef):
        raise TypeError("parameter selectors must be resolved first; use check_assertion()")

    label = assertion.label_for(target)
    scope = _Scope(parameters, facade)
    actual: Any = None
    expected: Any = describe(assertion.expected)

    def report(outcome: AssertionOutcome, detail: str) -> AssertionReport:
        return AssertionReport(
            description=label,
            kind=assertion.kind,
            selector=target,
            attribute=assertion.attribute,
            matcher=assertion.matcher,
            expected=jsonable(expected),
            actual=jsonable(actual),
            outcome=outcome,
            detail=detail,
        )

    try:
        fact = scope.fact(assertion.kind, target)
        if assertion.attribute:
            fact = fact.attribute(assertion.attribute)
        actual = fact.value
        expected = evaluate(assertion.expected, scope)
        passed, detail = apply_matcher(assertion.matcher, fact, expected)
    except EvaluationCancelled:
        raise
    except AccessorError as exc:
        logger.debug("%s: errored: %s", label, exc)
        return report(AssertionOutcome.ERRORED, exc.reason)
    except PredicateError as exc:
        return report(AssertionOutcome.ERRORED, str(exc))
    except Exception as exc:
        logger.debug("%s: unexpected error", label, exc_info=True)
        return report(AssertionOutcome.ERRORED, f"Error: {exc}")

    if not passed:
        logger.debug("%s: failed: %s", label, detail)
    return report(AssertionOutcome.PASSED if passed else AssertionOutcome.FAILED, detail)


def check_assertion(assertion: Assertion, parameters: Mapping[str, Any], facade: AccessorFacade) -> list[AssertionReport]:
    """Evaluate an assertion once per concrete selector.

    An empty list parameter leaves nothing to check and passes.

    Raises:
        EvaluationCancelled: If the run was cancelled mid-query.

    """
    try:
        selectors = resolve_selectors(assertion, parameters)
    except PredicateError as exc:
        return [_unresolved(assertion, AssertionOutcome.ERRORED, str(exc))]
    if not selectors:
        name = assertion.selector.name if isinstance(assertion.selector, ParamRef) else ""
        return [_unresolved(assertion, AssertionOutcome.PASSED, f"parameter {name!r} is empty; nothing to check")]
    return [evaluate_assertion(assertion, parameters, facade, selector=s) for s in selectors]


def _unresolved(assertion: Assertion, outcome: AssertionOutcome, detail: str) -> AssertionReport:
    return AssertionReport(
        description=assertion.label,
        kind=assertion.kind,
        selector=_shown(assertion.selector),
        attribute=assertion.attribute,
        matcher=assertion.matcher,
        expected=jsonable(describe(assertion.expected)),
        outcome=outcome,
        detail=detail,
    )


def _skipped(assertion: Assertion) -> AssertionReport:
    return _unresolved(assertion, AssertionOutcome.SKIPPED, "skipped after an earlier assertion did not pass")


def rule_status(outcomes: list[AssertionOutcome]) -> RuleStatus:
    """Reduce assertion outcomes: errored > failed > passed."""
    if AssertionOutcome.ERRORED in outcomes:
        return RuleStatus.ERRORED
    if AssertionOutcome.FAILED in outcomes:
        return RuleStatus.FAILED
    return RuleStatus.PASSED


# ── Rules ──────────────────────────────────────────────────────────────────


def _result(rule: Rule, started: datetime, **fields: Any) -> RuleResult:
    return RuleResult(
        rule_id=rule.id,
        title=rule.title,
        severity=rule.severity,
        severity_label=rule.severity_label,
        tags=tuple(sorted(rule.tags)),
        started_at=started,
        finished_at=utcnow(),
        **fields,
    )


def evaluate_rule(
    rule: Rule,
    parameters: Mapping[str, Any],
    facade: AccessorFacade,
    *,
    stop_on_failure: bool = False,
) -> RuleResult:
    """Evaluate a rule: applicability first, then every assertion in order.

    A false ``only_if`` makes the rule not applicable without querying any
    assertion fact. A failure while evaluating ``only_if`` marks the rule
    errored. Cancellation at any point yields an errored result with reason
    ``"evaluation-cancelled"``.
    """
    started = utcnow()
    reports: list[AssertionReport] = []
    try:
        if rule.only_if is not None:
            try:
                applicable = truthy(evaluate(rule.only_if, _Scope(parameters, facade)))
            except EvaluationCancelled:
                raise
            except Exception as exc:
                return _result(
                    rule,
                    started,
                    status=RuleStatus.ERRORED,
                    applicability=Applicability.APPLICABLE,
                    reason=f"applicability check failed: {exc}",
                )
            if not applicable:
                return _result(
                    rule,
                    started,
                    status=RuleStatus.NOT_APPLICABLE,
                    applicability=Applicability.NOT_APPLICABLE,
                    reason="only_if condition not met",
                )

        stop = False
        for assertion in rule.assertions:
            if stop:
                reports.append(_skipped(assertion))
                continue
            outcomes = check_assertion(assertion, parameters, facade)
            reports.extend(outcomes)
            if stop_on_failure and any(o.outcome != AssertionOutcome.PASSED for o in outcomes):
                stop = True
    except EvaluationCancelled:
        return cancelled_result(rule, started, tuple(reports))

    status = rule_status([r.outcome for r in reports])
    reason = ""
    if status == RuleStatus.ERRORED:
        reason = next(r.detail for r in reports if r.outcome == AssertionOutcome.ERRORED)
    elif status == RuleStatus.FAILED:
        failed = sum(1 for r in reports if r.outcome == AssertionOutcome.FAILED)
        reason = f"{failed} of {len(reports)} assertion(s) failed"
    return _result(
        rule,
        started,
        status=status,
        applicability=Applicability.APPLICABLE,
        reason=reason,
        assertions=tuple(reports),
    )


def cancelled_result(rule: Rule, started: datetime | None = None, reports: tuple[AssertionReport, ...] = ()) -> RuleResult:
    """Errored result for a rule whose evaluation was cancelled or never ran."""
    return _result(
        rule,
        started or utcnow(),
        status=RuleStatus.ERRORED,
        applicability=Applicability.APPLICABLE,
        reason=CANCELLED_REASON,
        assertions=reports,
    )


def waived_result(rule: Rule, waiver: Waiver) -> RuleResult:
    """Result for a rule skipped by an active waiver (no facts queried)."""
    return _result(
        rule,
        utcnow(),
        status=RuleStatus.WAIVED,
        applicability=Applicability.WAIVED,
        reason=f"waived: {waiver.justification}",
        waiver=WaiverInfo(justification=waiver.justification, approver=waiver.approver, expiry=waiver.expiry),
    )
