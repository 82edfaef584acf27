"""Run orchestration: waivers, the worker pool, ordering and cancellation."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeout
from datetime import datetime
from typing import TYPE_CHECKING, Any

from baseline._evaluation import cancelled_result, evaluate_rule, utcnow, waived_result
from baseline._types import Applicability, RuleStatus
from baseline.report import RuleResult
from baseline.waivers import Skip, Waiver, resolve_waiver

if TYPE_CHECKING:
    from baseline._model import Rule, RuleSet
    from baseline.accessors import AccessorFacade

logger = logging.getLogger(__name__)


def _collect(future: Future, rule: Rule) -> RuleResult:
    try:
        return future.result()
    except Exception as exc:
        logger.error("Rule %s crashed: %s", rule.id, exc, exc_info=True)
        started = utcnow()
        return RuleResult(
            rule_id=rule.id,
            title=rule.title,
            severity=rule.severity,
            severity_label=rule.severity_label,
            tags=tuple(sorted(rule.tags)),
            status=RuleStatus.ERRORED,
            applicability=Applicability.APPLICABLE,
            reason=f"Error: {exc}",
            started_at=started,
            finished_at=started,
        )


def run_rules(
    ruleset: RuleSet,
    parameters: Mapping[str, Any],
    facade: AccessorFacade,
    *,
    waivers: Mapping[str, Waiver] | None = None,
    now: datetime | None = None,
    concurrency: int = 4,
    timeout: float | None = None,
    stop_on_failure: bool = False,
) -> list[RuleResult]:
    """Evaluate every rule of a rule set against one target.

    Waivers are resolved first; waived rules are never scheduled and their
    facts are never queried. The remaining rules run on a thread pool of at
    most ``concurrency`` workers. Each result lands in the slot of its rule's
    index, so the returned list is in declaration order whatever the
    completion order.

    ``timeout`` (seconds) sets a run deadline on the facade. When it passes,
    outstanding work is cancelled and every rule without a result is
    recorded errored with reason ``"evaluation-cancelled"``. The returned
    list always holds exactly one result per rule.
    """
    now = now or utcnow()
    waivers = waivers or {}
    slots: list[RuleResult | None] = [None] * len(ruleset)
    pending: list[tuple[int, Rule]] = []

    for index, rule in enumerate(ruleset):
        decision = resolve_waiver(rule.id, waivers, now)
        if isinstance(decision, Skip):
            logger.info("Rule %s waived: %s", rule.id, decision.justification)
            slots[index] = waived_result(rule, decision.waiver)
        else:
            pending.append((index, rule))

    if timeout is not None:
        deadline = time.monotonic() + timeout
        facade.deadline = deadline if facade.deadline is None else min(facade.deadline, deadline)

    if pending:
        workers = max(1, min(concurrency, len(pending)))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="baseline-rule")
        futures: dict[Future, tuple[int, Rule]] = {}
        try:
            for index, rule in pending:
                future = executor.submit(evaluate_rule, rule, parameters, facade, stop_on_failure=stop_on_failure)
                futures[future] = (index, rule)
            try:
                for future in as_completed(futures, timeout=facade.remaining()):
                    index, rule = futures[future]
                    slots[index] = _collect(future, rule)
            except FuturesTimeout:
                unfinished = sum(1 for f in futures if not f.done())
                logger.warning("Run deadline reached; cancelling %d unfinished rule(s)", unfinished)
                for future, (index, rule) in futures.items():
                    if slots[index] is None and future.done() and not future.cancelled():
                        slots[index] = _collect(future, rule)
        finally:
            if any(not f.done() for f in futures):
                facade.cancel_event.set()
            executor.shutdown(wait=False, cancel_futures=True)

    for index, rule in pending:
        if slots[index] is None:
            slots[index] = cancelled_result(rule)

    return [result for result in slots if result is not None]
