"""Profile and rule loading.

A profile is a directory::

    linux-baseline/
      profile.yml          # name, title, version, maintainer, summary, parameters
      controls/
        01_filesystem.yml  # one rule mapping or a list of them
        02_users.yml

Rules keep declaration order: sorted file name, then order within a file.
A single rule file, or a directory of rule files without ``profile.yml``,
loads as an ad-hoc profile with no parameters.

Loading validates every document against the JSON Schemas in
``baseline._schema`` and then checks cross-references (accessor kinds and
properties, matchers, helpers, parameter references, regexes, duplicate
ids). Every problem found is collected and raised together in one
``LoadError``; nothing is evaluated from a profile that fails to load.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from baseline._config import declare_parameters
from baseline._model import Assertion, ParameterDecl, ProfileInfo, Rule, RuleSet
from baseline._schema import PROFILE_SCHEMA, RULE_SCHEMA
from baseline.accessors import accessor_kinds
from baseline.errors import LoadError, LoadProblem
from baseline.expressions import Literal, ParamRef, ParseContext, check_fact_reference, parse_expression
from baseline.helpers import HELPERS
from baseline.predicates import MATCHERS

logger = logging.getLogger(__name__)

PROFILE_FILE = "profile.yml"
CONTROLS_DIR = "controls"
RULE_SUFFIXES = (".yml", ".yaml")

_RULE_VALIDATOR = jsonschema.Draft202012Validator(RULE_SCHEMA)
_PROFILE_VALIDATOR = jsonschema.Draft202012Validator(PROFILE_SCHEMA)


# ── Parsing helpers ────────────────────────────────────────────────────────


def _read_yaml(path: Path, problems: list[LoadProblem]) -> Any:
    try:
        return yaml.safe_load(path.read_text())
    except OSError as exc:
        problems.append(LoadProblem(None, f"cannot read file: {exc.strerror}", str(path)))
    except yaml.YAMLError as exc:
        problems.append(LoadProblem(None, f"failed to parse YAML: {exc}", str(path)))
    return None


def _schema_problems(
    validator: jsonschema.Draft202012Validator,
    data: Any,
    rule_id: str | None,
    source: str,
) -> list[LoadProblem]:
    problems = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(map(str, e.path))):
        path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"
        problems.append(LoadProblem(rule_id, f"{path}: {error.message}", source))
    return problems


def _rule_documents(data: Any, source: str, problems: list[LoadProblem]) -> list[Any]:
    if data is None:
        problems.append(LoadProblem(None, "file contains no rules", source))
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return [data]
    problems.append(LoadProblem(None, f"expected a rule mapping or a list of rules, got {type(data).__name__}", source))
    return []


# ── Rule construction ──────────────────────────────────────────────────────


def _build_selector(raw: Any, ctx: ParseContext, where: str) -> str | ParamRef:
    if not isinstance(raw, dict):
        return str(raw)
    selector = parse_expression(raw, ctx, where)
    if not isinstance(selector, ParamRef):
        ctx.problem(where, "selector must be a string or {param: name}")
        return ""
    return selector


def _build_assertion(raw: dict, index: int, ctx: ParseContext) -> Assertion:
    where = f"assertions[{index}]"
    kind = raw["kind"]
    prop = raw.get("property")
    check_fact_reference(kind, prop, ctx, where)

    name = raw["matcher"]
    matcher = MATCHERS.get(name)
    if matcher is None:
        ctx.problem(where, f"unknown matcher: {name!r}")
    elif matcher.needs_expected and "expected" not in raw:
        ctx.problem(where, f"matcher {name!r} requires 'expected'")
    elif not matcher.needs_expected and "expected" in raw:
        ctx.problem(where, f"matcher {name!r} takes no 'expected'")

    expected = parse_expression(raw["expected"], ctx, f"{where}.expected") if "expected" in raw else Literal(None)
    if name in ("matches", "not_matches") and isinstance(expected, Literal) and expected.value is not None:
        try:
            re.compile(str(expected.value))
        except re.error as exc:
            ctx.problem(f"{where}.expected", f"invalid regular expression {expected.value!r}: {exc}")

    return Assertion(
        kind=kind,
        selector=_build_selector(raw["selector"], ctx, f"{where}.selector"),
        matcher=name,
        expected=expected,
        attribute=prop,
        description=raw.get("description", ""),
    )


def _build_rule(raw: dict, source: str, kinds: dict, parameters: frozenset[str]) -> tuple[Rule, list[LoadProblem]]:
    ctx = ParseContext(kinds=kinds, helpers=frozenset(HELPERS), parameters=parameters)
    if not raw["assertions"]:
        ctx.problems.append("rule has no assertions")

    assertions = tuple(_build_assertion(a, i, ctx) for i, a in enumerate(raw["assertions"]))
    only_if = parse_expression(raw["only_if"], ctx, "only_if") if raw.get("only_if") is not None else None

    rule = Rule(
        id=raw["id"],
        title=raw["title"],
        assertions=assertions,
        severity=float(raw.get("severity", 0.5)),
        description=raw.get("description", "").strip(),
        tags=frozenset(raw.get("tags", [])),
        only_if=only_if,
        source=source,
    )
    return rule, [LoadProblem(rule.id, message, source) for message in ctx.problems]


def _collect_rules(
    files: Iterable[Path],
    decls: Sequence[ParameterDecl],
    problems: list[LoadProblem],
) -> list[Rule]:
    kinds = accessor_kinds()
    parameter_names = frozenset(d.name for d in decls)
    rules: list[Rule] = []
    first_seen: dict[str, str] = {}

    for path in files:
        source = str(path)
        before = len(problems)
        data = _read_yaml(path, problems)
        if len(problems) > before:
            continue
        for doc in _rule_documents(data, source, problems):
            rule_id = doc.get("id") if isinstance(doc, dict) and isinstance(doc.get("id"), str) else None
            if rule_id is not None:
                if rule_id in first_seen:
                    problems.append(LoadProblem(rule_id, f"duplicate rule id (first defined in {first_seen[rule_id]})", source))
                else:
                    first_seen[rule_id] = source

            schema_problems = _schema_problems(_RULE_VALIDATOR, doc, rule_id, source)
            if schema_problems:
                problems.extend(schema_problems)
                continue

            rule, rule_problems = _build_rule(doc, source, kinds, parameter_names)
            problems.extend(rule_problems)
            rules.append(rule)

    return rules


# ── Public API ─────────────────────────────────────────────────────────────


def rule_files(directory: Path) -> list[Path]:
    """Rule files of a directory, sorted by file name."""
    return sorted((p for p in directory.iterdir() if p.is_file() and p.suffix in RULE_SUFFIXES), key=lambda p: p.name)


def load_rules(
    sources: Iterable[str | Path],
    *,
    parameters: Sequence[ParameterDecl] = (),
    info: ProfileInfo | None = None,
) -> RuleSet:
    """Load and validate rules from rule files, in the order given.

    Args:
        sources: Rule files.
        parameters: Declared parameters that rule expressions may reference.
        info: Profile metadata to attach to the rule set.

    Raises:
        LoadError: Listing every problem found.

    """
    problems: list[LoadProblem] = []
    rules = _collect_rules([Path(s) for s in sources], parameters, problems)
    if problems:
        raise LoadError(problems)
    return RuleSet(rules=tuple(rules), info=info or ProfileInfo(name="adhoc"), parameters=tuple(parameters))


def load_profile(path: str | Path) -> RuleSet:
    """Load a profile directory, a directory of rule files, or one rule file.

    Raises:
        LoadError: Listing every problem found in the profile and its rules.

    """
    p = Path(path)
    problems: list[LoadProblem] = []

    if p.is_file():
        info = ProfileInfo(name=p.stem)
        decls: list[ParameterDecl] = []
        files = [p]
    elif p.is_dir():
        info, decls = _load_profile_metadata(p, problems)
        controls = p / CONTROLS_DIR if (p / PROFILE_FILE).is_file() else p
        files = rule_files(controls) if controls.is_dir() else []
        if not files:
            problems.append(LoadProblem(None, "no rule files found", str(controls)))
    else:
        raise LoadError([LoadProblem(None, "profile path not found", str(p))])

    rules = _collect_rules(files, decls, problems)
    if problems:
        raise LoadError(problems)

    logger.info("Loaded %d rule(s) from %s", len(rules), p)
    return RuleSet(rules=tuple(rules), info=info, parameters=tuple(decls))


def _load_profile_metadata(directory: Path, problems: list[LoadProblem]) -> tuple[ProfileInfo, list[ParameterDecl]]:
    manifest = directory / PROFILE_FILE
    if not manifest.is_file():
        return ProfileInfo(name=directory.name), []

    source = str(manifest)
    before = len(problems)
    data = _read_yaml(manifest, problems)
    if len(problems) > before:
        return ProfileInfo(name=directory.name), []
    if data is None:
        problems.append(LoadProblem(None, "profile.yml is empty", source))
        return ProfileInfo(name=directory.name), []

    schema_problems = _schema_problems(_PROFILE_VALIDATOR, data, None, source)
    problems.extend(schema_problems)
    if not isinstance(data, dict):
        return ProfileInfo(name=directory.name), []

    decls, param_problems = declare_parameters(data.get("parameters"), source)
    problems.extend(param_problems)
    info = ProfileInfo(
        name=str(data.get("name") or directory.name),
        title=str(data.get("title", "")),
        version=str(data.get("version", "")),
        maintainer=str(data.get("maintainer", "")),
        summary=str(data.get("summary", "")).strip(),
    )
    return info, decls
