"""Profile parameter (input) declaration and resolution.

A profile declares its parameters with defaults in ``profile.yml``::

    parameters:
      max_password_age: 90                 # shorthand, type inferred
      allowed_ciphers:
        type: list
        default: [aes256-gcm@openssh.com]
        description: Ciphers sshd may offer

Values are resolved once per run with this priority (highest first):

1. ``--input NAME=VALUE`` flags
2. ``BASELINE_INPUT_<NAME>`` environment variables
3. ``--input-file`` YAML files (later files override earlier)
4. Declared defaults

Override keys must name a declared parameter and carry a value of the
declared type. String overrides (flags, environment) are coerced to the
declared type; typed overrides (YAML files) must already match it. Every
violation is collected into a single ``LoadError``.

Example::

    from baseline._config import resolve_parameters

    params = resolve_parameters(ruleset.parameters, cli_overrides={"max_password_age": "60"})
    params["max_password_age"]  # 60, coerced to the declared number type

"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from baseline._model import PARAMETER_TYPES, ParameterDecl
from baseline.errors import LoadError, LoadProblem
from baseline.predicates import FALSE_WORDS, TRUE_WORDS, to_number

logger = logging.getLogger(__name__)

ENV_INPUT_PREFIX = "BASELINE_INPUT_"


# ── Types ──────────────────────────────────────────────────────────────────


def infer_type(value: Any) -> str | None:
    """Infer a declared parameter type from a default value."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "list"
    return None


def matches_type(value: Any, type_: str) -> bool:
    """Return True if ``value`` is a valid value of declared type ``type_``."""
    if type_ == "boolean":
        return isinstance(value, bool)
    if type_ == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if type_ == "string":
        return isinstance(value, str)
    if type_ == "list":
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    return False


def coerce_string(value: str, type_: str) -> Any:
    """Coerce a string override (flag or environment) to a declared type.

    Raises:
        ValueError: If the string has no reading as ``type_``.

    """
    if type_ == "string":
        return value
    if type_ == "number":
        number = to_number(value)
        if number is None:
            raise ValueError(f"{value!r} is not a number")
        return number
    if type_ == "boolean":
        word = value.strip().lower()
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False
        raise ValueError(f"{value!r} is not a boolean")
    if type_ == "list":
        return [item.strip() for item in value.split(",") if item.strip()]
    raise ValueError(f"unknown type {type_!r}")


# ── Declarations ───────────────────────────────────────────────────────────


def declare_parameters(raw: Any, source: str = "") -> tuple[list[ParameterDecl], list[LoadProblem]]:
    """Parse the ``parameters`` section of a profile.

    Returns:
        Tuple of (declarations, problems).

    """
    decls: list[ParameterDecl] = []
    problems: list[LoadProblem] = []
    if raw is None:
        return decls, problems
    if not isinstance(raw, Mapping):
        return decls, [LoadProblem(None, "'parameters' must be a mapping", source)]

    for name, spec in raw.items():
        where = f"parameter {name!r}"
        if isinstance(spec, Mapping) and ("type" in spec or "default" in spec):
            unknown = set(spec) - {"type", "default", "description"}
            if unknown:
                problems.append(LoadProblem(None, f"{where}: unknown fields {sorted(map(str, unknown))}", source))
            default = spec.get("default")
            type_ = spec.get("type") or infer_type(default)
            description = str(spec.get("description", ""))
        else:
            default = spec
            type_ = infer_type(spec)
            description = ""

        if type_ not in PARAMETER_TYPES:
            problems.append(
                LoadProblem(None, f"{where}: type must be one of {', '.join(PARAMETER_TYPES)}, got {type_!r}", source)
            )
            continue
        if default is not None and not matches_type(default, type_):
            problems.append(LoadProblem(None, f"{where}: default {default!r} is not a {type_}", source))
            continue
        decls.append(ParameterDecl(name=str(name), type=type_, default=default, description=description))

    return decls, problems


# ── Parameter set ──────────────────────────────────────────────────────────


class ParameterSet(Mapping):
    """Resolved, read-only parameter values for one run."""

    def __init__(self, values: Mapping[str, Any], sources: Mapping[str, str] | None = None):
        self._values = MappingProxyType(dict(values))
        self.sources = MappingProxyType(dict(sources or {}))

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParameterSet({dict(self._values)!r})"


def load_input_file(path: str | Path) -> dict[str, Any]:
    """Load a YAML file of parameter overrides.

    Raises:
        LoadError: If the file is missing, unparseable, or not a mapping.

    """
    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text())
    except OSError as exc:
        raise LoadError([LoadProblem(None, f"cannot read input file: {exc.strerror}", str(p))]) from exc
    except yaml.YAMLError as exc:
        raise LoadError([LoadProblem(None, f"failed to parse YAML: {exc}", str(p))]) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise LoadError([LoadProblem(None, "input file must contain a mapping", str(p))])
    return data


def inputs_from_environ(environ: Mapping[str, str] | None = None, *, prefix: str = ENV_INPUT_PREFIX) -> dict[str, str]:
    """Collect ``BASELINE_INPUT_<NAME>`` variables as lower-cased names."""
    env = os.environ if environ is None else environ
    return {key[len(prefix) :].lower(): value for key, value in env.items() if key.startswith(prefix) and key != prefix}


def parse_input_overrides(flags: tuple[str, ...] | list[str]) -> dict[str, str]:
    """Parse ``--input NAME=VALUE`` flags into a dict.

    Raises:
        ValueError: If a flag is malformed.

    """
    result = {}
    for flag in flags:
        if "=" not in flag:
            raise ValueError(f"Invalid --input format: {flag} (expected NAME=VALUE)")
        key, value = flag.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid --input format: {flag} (empty name)")
        result[key] = value
    return result


def resolve_parameters(
    decls: tuple[ParameterDecl, ...] | list[ParameterDecl],
    *,
    input_files: tuple[str, ...] | list[str] = (),
    environ: Mapping[str, str] | None = None,
    cli_overrides: Mapping[str, str] | None = None,
) -> ParameterSet:
    """Merge defaults and overrides into a ``ParameterSet``.

    Raises:
        LoadError: Listing every unknown key and type mismatch.

    """
    by_name = {d.name: d for d in decls}
    values: dict[str, Any] = {d.name: d.default for d in decls}
    sources: dict[str, str] = {d.name: "default" for d in decls}
    problems: list[LoadProblem] = []

    def overlay(overrides: Mapping[str, Any], origin: str, *, typed: bool) -> None:
        for key, value in overrides.items():
            decl = by_name.get(key)
            if decl is None:
                problems.append(LoadProblem(None, f"unknown parameter {key!r}", origin))
                continue
            if not typed and isinstance(value, str):
                try:
                    value = coerce_string(value, decl.type)
                except ValueError as exc:
                    problems.append(LoadProblem(None, f"parameter {key!r}: {exc} (declared {decl.type})", origin))
                    continue
            if not matches_type(value, decl.type):
                problems.append(
                    LoadProblem(None, f"parameter {key!r}: {value!r} is not a {decl.type}", origin)
                )
                continue
            values[key] = value
            sources[key] = origin

    for path in input_files:
        overlay(load_input_file(path), str(path), typed=True)

    env_inputs = inputs_from_environ(environ)
    if env_inputs:
        # Environment names are case-insensitive; map back to declared spelling.
        lowered = {name.lower(): name for name in by_name}
        overlay({lowered.get(k, k): v for k, v in env_inputs.items()}, "environment", typed=False)

    if cli_overrides:
        overlay(cli_overrides, "command line", typed=False)

    if problems:
        raise LoadError(problems)

    for name, origin in sources.items():
        if origin != "default":
            logger.debug("Parameter %s=%r (from %s)", name, values[name], origin)
    return ParameterSet(values, sources)
