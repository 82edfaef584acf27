"""Evaluation engine: re-export facade and convenience functions.

Public symbols are defined in sub-modules and re-exported here so callers
(and the CLI) import from one place.

This module also provides the entry points for common use cases:
- scan(): Load a profile, connect to a target, run and aggregate
- run_profile(): Run a loaded rule set over an already open session
- describe_target(): Helper facts about a target in one call

Example:
-------
    Full scan::

        from baseline.engine import scan

        report = scan("profiles/linux-baseline", "ssh://admin@10.0.0.5", settings=EngineSettings(sudo=True))
        print(report.summary.compliance_score, report.summary.exit_classification)

    Over an open session with overrides::

        from baseline.engine import load_profile, resolve_parameters, run_profile
        from baseline.transport import connect

        ruleset = load_profile("profiles/linux-baseline")
        params = resolve_parameters(ruleset.parameters, cli_overrides={"max_password_age": "60"})
        with connect("local") as session:
            report = run_profile(ruleset, session, params)

"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from baseline._aggregation import aggregate, classify_exit, compliance_score, get_compliance_tier  # noqa: F401
from baseline._config import ParameterSet, parse_input_overrides, resolve_parameters  # noqa: F401
from baseline._evaluation import evaluate_rule, jsonable  # noqa: F401
from baseline._loading import load_profile, load_rules  # noqa: F401
from baseline._model import Assertion, ParameterDecl, ProfileInfo, Rule, RuleSet  # noqa: F401
from baseline._orchestration import run_rules  # noqa: F401
from baseline.accessors import ACCESSORS, AccessorFacade  # noqa: F401
from baseline.errors import AccessorError
from baseline.helpers import HELPERS, call_helper
from baseline.report import ProfileMeta, Report, RuleResult  # noqa: F401
from baseline.settings import EngineSettings
from baseline.transport import connect
from baseline.waivers import Waiver, dangling_waivers, load_waivers, resolve_waiver  # noqa: F401

if TYPE_CHECKING:
    from baseline.transport import Session

logger = logging.getLogger(__name__)

TARGET_FACTS = (
    "os_family",
    "is_container",
    "is_virtual_machine",
    "cloud_provider",
    "selinux_available",
    "apparmor_available",
)


def profile_meta(ruleset: RuleSet) -> ProfileMeta:
    info = ruleset.info
    return ProfileMeta(
        name=info.name,
        title=info.title,
        version=info.version,
        maintainer=info.maintainer,
        summary=info.summary,
    )


def run_profile(
    ruleset: RuleSet,
    session: Session,
    parameters: Mapping[str, Any] | None = None,
    *,
    waivers: Mapping[str, Waiver] | None = None,
    settings: EngineSettings | None = None,
    warnings: Sequence[str] = (),
    now: datetime | None = None,
) -> Report:
    """Evaluate a rule set over an open session and build the report.

    The session is not closed here; the caller owns it.
    """
    settings = settings or EngineSettings()
    if parameters is None:
        parameters = resolve_parameters(ruleset.parameters, environ={})

    facade = AccessorFacade(session, command_timeout=settings.command_timeout)
    results = run_rules(
        ruleset,
        parameters,
        facade,
        waivers=waivers,
        now=now,
        concurrency=settings.concurrency,
        timeout=settings.timeout,
        stop_on_failure=settings.stop_on_first_failure,
    )
    report = aggregate(
        results,
        profile=profile_meta(ruleset),
        target=session.target,
        parameters=jsonable(dict(parameters)),
        warnings=warnings,
    )
    logger.info(
        "%s: %d rule(s), score %s, %s",
        report.target,
        report.summary.counts.total,
        report.summary.compliance_score,
        report.summary.exit_classification.value,
    )
    return report


def scan(
    profile: str | Path | RuleSet,
    target: str = "local",
    *,
    waivers: str | Path | Mapping[str, Waiver] | None = None,
    input_files: Sequence[str] = (),
    inputs: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
    tags: Sequence[str] | None = None,
    rule_ids: Sequence[str] | None = None,
    settings: EngineSettings | None = None,
    password: str | None = None,
    now: datetime | None = None,
) -> Report:
    """Load a profile, evaluate it against one target and return the report.

    Everything that can fail before evaluation (profile, parameters,
    waivers) is checked before the target is contacted.

    Raises:
        LoadError: If the profile, parameters or waivers are malformed.
        TargetConnectionError: If the target cannot be reached.

    """
    settings = settings or EngineSettings()
    ruleset = profile if isinstance(profile, RuleSet) else load_profile(profile)
    parameters = resolve_parameters(
        ruleset.parameters,
        input_files=input_files,
        environ=environ,
        cli_overrides=inputs,
    )

    if waivers is None:
        table: Mapping[str, Waiver] = {}
    elif isinstance(waivers, Mapping):
        table = waivers
    else:
        table = load_waivers(waivers)
    warnings = dangling_waivers(table, ruleset.ids)

    selected = ruleset.select(tags=list(tags or []), rule_ids=list(rule_ids or []))

    with connect(
        target,
        user=settings.user,
        key_path=settings.key_path,
        password=password,
        sudo=settings.sudo,
        timeout=settings.command_timeout,
    ) as session:
        return run_profile(
            selected,
            session,
            parameters,
            waivers=table,
            settings=settings,
            warnings=warnings,
            now=now,
        )


def describe_target(session: Session, *, command_timeout: float | None = None) -> dict[str, Any]:
    """Evaluate the environment helpers against a target.

    A helper that cannot be evaluated maps to its error message.
    """
    facade = AccessorFacade(session, command_timeout=command_timeout)
    facts: dict[str, Any] = {}
    for name in TARGET_FACTS:
        try:
            facts[name] = call_helper(name, facade, [])
        except Exception as exc:
            facts[name] = f"error: {exc}"
    try:
        os_fact = facade.query("os", "")
    except AccessorError as exc:
        facts["os"] = f"error: {exc.reason}"
    else:
        if os_fact.exists:
            facts["os"] = os_fact.value
    return facts


__all__ = [
    "HELPERS",
    "TARGET_FACTS",
    "describe_target",
    "profile_meta",
    "run_profile",
    "scan",
]
