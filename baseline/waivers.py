"""Waiver table loading and resolution.

A waiver file maps rule ids to waiver records::

    ssh-root-login:
      justification: Break-glass access on the bastion, ticket SEC-412
      approver: security-team
      expiry: 2026-12-31          # optional; date-only means 00:00 UTC
    tmp-noexec:
      active: false               # kept for the record, not applied
      justification: Pending fstab migration

An active waiver with no expiry, or an expiry strictly after ``now``,
skips the rule. Expired and inactive waivers leave the rule evaluated, so a
lapsed exception shows up as a finding again.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Union

import jsonschema
import yaml

from baseline._schema import WAIVER_SCHEMA
from baseline.errors import LoadError, LoadProblem

logger = logging.getLogger(__name__)

_WAIVER_VALIDATOR = jsonschema.Draft202012Validator(WAIVER_SCHEMA)


@dataclass(frozen=True)
class Waiver:
    rule_id: str
    justification: str
    active: bool = True
    approver: str = ""
    expiry: datetime | None = None

    def in_effect(self, now: datetime) -> bool:
        """True if this waiver skips its rule at ``now``."""
        if not self.active:
            return False
        return self.expiry is None or self.expiry > now


@dataclass(frozen=True)
class Evaluate:
    """Decision: evaluate the rule normally."""

    reason: str = ""


@dataclass(frozen=True)
class Skip:
    """Decision: skip the rule and record it as waived."""

    waiver: Waiver

    @property
    def justification(self) -> str:
        return self.waiver.justification


WaiverDecision = Union[Evaluate, Skip]


def parse_expiry(value: Any) -> datetime:
    """Parse a waiver expiry into an aware UTC datetime.

    Dates without a time mean midnight UTC of that day; naive datetimes are
    taken as UTC.

    Raises:
        ValueError: If ``value`` is not a date, datetime or ISO 8601 string.

    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        try:
            moment = datetime.fromisoformat(text[:-1] + "+00:00" if text.endswith("Z") else text)
        except ValueError:
            raise ValueError(f"invalid expiry {value!r} (expected ISO 8601 date or datetime)") from None
    else:
        raise ValueError(f"invalid expiry {value!r} (expected ISO 8601 date or datetime)")
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_waivers(data: Any, source: str = "") -> dict[str, Waiver]:
    """Build a waiver table from parsed YAML.

    Raises:
        LoadError: Listing every malformed entry.

    """
    if data is None:
        return {}
    problems = []
    for error in _WAIVER_VALIDATOR.iter_errors(data):
        path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"
        rule_id = str(error.absolute_path[0]) if error.absolute_path else None
        problems.append(LoadProblem(rule_id, f"{path}: {error.message}", source))
    if problems:
        raise LoadError(problems)

    table = {}
    for rule_id, entry in data.items():
        rule_id = str(rule_id)
        expiry = None
        if entry.get("expiry") is not None:
            try:
                expiry = parse_expiry(entry["expiry"])
            except ValueError as exc:
                problems.append(LoadProblem(rule_id, str(exc), source))
                continue
        table[rule_id] = Waiver(
            rule_id=rule_id,
            justification=entry["justification"],
            active=entry.get("active", True),
            approver=entry.get("approver", ""),
            expiry=expiry,
        )
    if problems:
        raise LoadError(problems)
    return table


def load_waivers(path: str | Path) -> dict[str, Waiver]:
    """Load a YAML waiver file.

    Raises:
        LoadError: If the file cannot be read or is malformed.

    """
    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text())
    except OSError as exc:
        raise LoadError([LoadProblem(None, f"cannot read waiver file: {exc.strerror}", str(p))]) from exc
    except yaml.YAMLError as exc:
        raise LoadError([LoadProblem(None, f"failed to parse YAML: {exc}", str(p))]) from exc
    return parse_waivers(data, str(p))


def resolve_waiver(rule_id: str, waivers: Mapping[str, Waiver], now: datetime) -> WaiverDecision:
    """Decide whether a rule is skipped or evaluated at ``now``.

    Example:
    -------
        >>> w = Waiver("r1", "accepted risk", expiry=datetime(2030, 1, 1, tzinfo=timezone.utc))
        >>> isinstance(resolve_waiver("r1", {"r1": w}, datetime(2029, 1, 1, tzinfo=timezone.utc)), Skip)
        True
        >>> resolve_waiver("r1", {"r1": w}, datetime(2031, 1, 1, tzinfo=timezone.utc)).reason
        'waiver expired 2030-01-01T00:00:00+00:00'

    """
    waiver = waivers.get(rule_id)
    if waiver is None:
        return Evaluate()
    if waiver.in_effect(now):
        return Skip(waiver)
    if not waiver.active:
        return Evaluate(reason="waiver inactive")
    logger.info("Waiver for %s expired at %s; evaluating", rule_id, waiver.expiry.isoformat())
    return Evaluate(reason=f"waiver expired {waiver.expiry.isoformat()}")


def dangling_waivers(waivers: Mapping[str, Waiver], rule_ids: Iterable[str]) -> list[str]:
    """Warnings for waivers that name no loaded rule.

    Rules may be renamed or removed between profile versions, so these are
    reported, never fatal.
    """
    known = set(rule_ids)
    warnings = []
    for rule_id in waivers:
        if rule_id not in known:
            message = f"waiver references unknown rule {rule_id!r}"
            logger.warning("Dangling waiver: %s", message)
            warnings.append(message)
    return warnings
