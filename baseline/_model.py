"""Rule model: immutable rules, assertions, parameter declarations, profiles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from baseline._types import severity_label
from baseline.expressions import Expr, Literal, ParamRef


@dataclass(frozen=True)
class Assertion:
    """One concrete comparison within a rule.

    Attributes:
        kind: Accessor kind (e.g. "file", "kernel_parameter").
        selector: Identifying argument (file path, service name, key...), or a
            parameter reference resolved at evaluation time. A list-valued
            parameter checks every element.
        matcher: Matcher name (see ``baseline.predicates.MATCHERS``).
        expected: Expected value expression (literal, parameter, helper, fact).
        attribute: Attribute projected out of a record-valued fact, if any.
            Written as ``property`` in rule YAML.
        description: Optional human label shown in reports.

    """

    kind: str
    selector: str | ParamRef
    matcher: str
    expected: Expr = field(default_factory=lambda: Literal(None))
    attribute: str | None = None
    description: str = ""

    @property
    def label(self) -> str:
        return self.label_for(self.selector)

    def label_for(self, selector: str | ParamRef) -> str:
        """Report label for one concrete selector of this assertion."""
        shown = f"{{param: {selector.name}}}" if isinstance(selector, ParamRef) else selector
        if self.description:
            if isinstance(self.selector, ParamRef) and not isinstance(selector, ParamRef):
                return f"{self.description} ({shown})"
            return self.description
        target = f"{self.kind}({shown})"
        if self.attribute:
            target = f"{target}.{self.attribute}"
        return f"{target} {self.matcher}"


@dataclass(frozen=True)
class Rule:
    """One named, independently evaluable compliance check."""

    id: str
    title: str
    assertions: tuple[Assertion, ...]
    severity: float = 0.5
    description: str = ""
    tags: frozenset[str] = frozenset()
    only_if: Expr | None = None
    source: str = ""

    @property
    def severity_label(self) -> str:
        return severity_label(self.severity)


PARAMETER_TYPES = ("number", "string", "list", "boolean")


@dataclass(frozen=True)
class ParameterDecl:
    """A parameter (input) declared by a profile, with its default."""

    name: str
    type: str
    default: Any = None
    description: str = ""


@dataclass(frozen=True)
class ProfileInfo:
    """Profile metadata."""

    name: str
    title: str = ""
    version: str = ""
    maintainer: str = ""
    summary: str = ""


@dataclass(frozen=True)
class RuleSet:
    """The validated rules of one profile, in declaration order."""

    rules: tuple[Rule, ...]
    info: ProfileInfo = field(default_factory=lambda: ProfileInfo(name="adhoc"))
    parameters: tuple[ParameterDecl, ...] = ()

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)

    @property
    def ids(self) -> list[str]:
        return [r.id for r in self.rules]

    def get(self, rule_id: str) -> Rule | None:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def select(
        self,
        *,
        tags: list[str] | None = None,
        rule_ids: list[str] | None = None,
        severity: list[str] | None = None,
    ) -> RuleSet:
        """Return a rule set narrowed by tag (OR), id, and severity label.

        Declaration order is preserved.
        """
        rules = list(self.rules)
        if tags:
            tag_set = {t.lower() for t in tags}
            rules = [r for r in rules if tag_set & {t.lower() for t in r.tags}]
        if rule_ids:
            wanted = set(rule_ids)
            rules = [r for r in rules if r.id in wanted]
        if severity:
            sev_set = {s.lower() for s in severity}
            rules = [r for r in rules if r.severity_label in sev_set]
        return RuleSet(rules=tuple(rules), info=self.info, parameters=self.parameters)
