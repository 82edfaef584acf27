"""Expression trees for applicability predicates and expected values.

Expressions are written in rule YAML as plain scalars (literals) or as
single-key mappings naming an operator::

    only_if:
      all:
        - exists: {kind: file, selector: /etc/ssh/sshd_config}
        - not: {helper: is_container}
        - ne: [{fact: {kind: kernel_parameter, selector: net.ipv6.conf.all.disable_ipv6}}, 1]

    expected: {param: max_password_age}

They are parsed once at load time into a small tree of frozen dataclasses
and evaluated by a recursive interpreter. Nothing is ever ``eval``'d.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

from baseline._types import Fact
from baseline.predicates import COMPARISON_OPERATORS, compare, to_bool

# ── Nodes ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class ParamRef:
    name: str


@dataclass(frozen=True)
class FactRef:
    """The value of a fact (``None`` when the fact is absent)."""

    kind: str
    selector: str
    attribute: str | None = None


@dataclass(frozen=True)
class Exists:
    """Whether a fact (or one of its attributes) is present."""

    kind: str
    selector: str
    attribute: str | None = None


@dataclass(frozen=True)
class HelperCall:
    name: str
    args: tuple[Expr, ...] = ()


@dataclass(frozen=True)
class Compare:
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True)
class AllOf:
    items: tuple[Expr, ...]


@dataclass(frozen=True)
class AnyOf:
    items: tuple[Expr, ...]


@dataclass(frozen=True)
class Not:
    operand: Expr


Expr = Union[Literal, ParamRef, FactRef, Exists, HelperCall, Compare, AllOf, AnyOf, Not]

OPERATORS = frozenset({"all", "any", "not", "param", "fact", "exists", "helper", "literal"}) | COMPARISON_OPERATORS


# ── Parsing ────────────────────────────────────────────────────────────────


@dataclass
class ParseContext:
    """What a parsed expression may refer to.

    Attributes:
        kinds: Accessor kind -> set of attribute names it exposes.
        helpers: Names of the registered helper predicates.
        parameters: Names of the declared profile parameters.
        problems: Collected problem descriptions (parsing never stops early).

    """

    kinds: Mapping[str, frozenset[str]]
    helpers: frozenset[str]
    parameters: frozenset[str]
    problems: list[str] = field(default_factory=list)

    def problem(self, where: str, message: str) -> None:
        self.problems.append(f"{where}: {message}")


_SCALARS = (str, int, float, bool, type(None))


def parse_expression(raw: Any, ctx: ParseContext, where: str) -> Expr:
    """Parse the YAML form of an expression, recording problems in ``ctx``.

    Always returns a node, even for malformed input, so the caller can keep
    going and report every problem at once.
    """
    if isinstance(raw, _SCALARS):
        return Literal(raw)

    if isinstance(raw, list):
        if not all(isinstance(item, _SCALARS) for item in raw):
            ctx.problem(where, "list literals may only contain scalar values")
        return Literal(list(raw))

    if not isinstance(raw, Mapping):
        ctx.problem(where, f"unsupported expression of type {type(raw).__name__}")
        return Literal(None)

    if len(raw) != 1:
        ctx.problem(where, f"expression must have exactly one operator key, got {sorted(map(str, raw))}")
        return Literal(None)

    op, arg = next(iter(raw.items()))
    here = f"{where}.{op}"

    if op not in OPERATORS:
        ctx.problem(where, f"unknown expression operator: {op!r}")
        return Literal(None)

    if op == "literal":
        return Literal(arg)

    if op in ("all", "any"):
        if not isinstance(arg, list) or not arg:
            ctx.problem(here, "expects a non-empty list of expressions")
            return Literal(None)
        items = tuple(parse_expression(item, ctx, f"{here}[{i}]") for i, item in enumerate(arg))
        return AllOf(items) if op == "all" else AnyOf(items)

    if op == "not":
        return Not(parse_expression(arg, ctx, here))

    if op == "param":
        if not isinstance(arg, str):
            ctx.problem(here, "expects a parameter name")
            return Literal(None)
        if arg not in ctx.parameters:
            ctx.problem(here, f"unknown parameter: {arg!r}")
        return ParamRef(arg)

    if op in ("fact", "exists"):
        ref = _parse_fact_ref(arg, ctx, here)
        if ref is None:
            return Literal(None)
        kind, selector, prop = ref
        return FactRef(kind, selector, prop) if op == "fact" else Exists(kind, selector, prop)

    if op == "helper":
        return _parse_helper(arg, ctx, here)

    # Binary comparison
    if not isinstance(arg, list) or len(arg) != 2:
        ctx.problem(here, "expects a list of exactly two operands")
        return Literal(None)
    return Compare(op, parse_expression(arg[0], ctx, f"{here}[0]"), parse_expression(arg[1], ctx, f"{here}[1]"))


def _parse_fact_ref(arg: Any, ctx: ParseContext, where: str) -> tuple[str, str, str | None] | None:
    if not isinstance(arg, Mapping):
        ctx.problem(where, "expects a mapping with 'kind' and 'selector'")
        return None
    unknown = set(arg) - {"kind", "selector", "property"}
    if unknown:
        ctx.problem(where, f"unknown fields: {sorted(map(str, unknown))}")
    kind = arg.get("kind")
    selector = arg.get("selector")
    prop = arg.get("property")
    if not isinstance(kind, str) or not isinstance(selector, (str, int)):
        ctx.problem(where, "'kind' and 'selector' are required")
        return None
    check_fact_reference(kind, prop, ctx, where)
    return kind, str(selector), prop


def check_fact_reference(kind: str, prop: Any, ctx: ParseContext, where: str) -> None:
    """Record a problem if ``kind`` is unknown or has no attribute ``prop``."""
    if kind not in ctx.kinds:
        ctx.problem(where, f"unknown accessor kind: {kind!r}")
        return
    if prop is None:
        return
    if not isinstance(prop, str):
        ctx.problem(where, "'property' must be a string")
    elif prop != "exists" and prop not in ctx.kinds[kind]:
        ctx.problem(where, f"accessor {kind!r} has no property {prop!r}")


def _parse_helper(arg: Any, ctx: ParseContext, where: str) -> Expr:
    if isinstance(arg, str):
        name, raw_args = arg, []
    elif isinstance(arg, list) and arg and isinstance(arg[0], str):
        name, raw_args = arg[0], arg[1:]
    else:
        ctx.problem(where, "expects a helper name or [name, args...]")
        return Literal(None)
    if name not in ctx.helpers:
        ctx.problem(where, f"unknown helper: {name!r}")
    args = tuple(parse_expression(a, ctx, f"{where}[{i + 1}]") for i, a in enumerate(raw_args))
    return HelperCall(name, args)


# ── Evaluation ─────────────────────────────────────────────────────────────


class Environment(Protocol):
    """What the interpreter needs from its caller."""

    def param(self, name: str) -> Any: ...

    def fact(self, kind: str, selector: str) -> Fact: ...

    def helper(self, name: str, args: list[Any]) -> Any: ...


def truthy(value: Any) -> bool:
    """Boolean reading of an expression value (``"0"``/``"no"`` are false)."""
    if value is None:
        return False
    b = to_bool(value)
    return bool(value) if b is None else b


def evaluate(expr: Expr, env: Environment) -> Any:
    """Evaluate an expression tree.

    Accessor errors and comparison errors propagate to the caller, which
    decides how they are recorded.
    """
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, ParamRef):
        return env.param(expr.name)
    if isinstance(expr, FactRef):
        fact = env.fact(expr.kind, expr.selector)
        if expr.attribute:
            fact = fact.attribute(expr.attribute)
        return fact.value if fact.exists else None
    if isinstance(expr, Exists):
        fact = env.fact(expr.kind, expr.selector)
        if expr.attribute:
            fact = fact.attribute(expr.attribute)
        return fact.exists
    if isinstance(expr, HelperCall):
        return env.helper(expr.name, [evaluate(a, env) for a in expr.args])
    if isinstance(expr, Compare):
        return compare(expr.op, evaluate(expr.left, env), evaluate(expr.right, env))
    if isinstance(expr, AllOf):
        return all(truthy(evaluate(item, env)) for item in expr.items)
    if isinstance(expr, AnyOf):
        return any(truthy(evaluate(item, env)) for item in expr.items)
    if isinstance(expr, Not):
        return not truthy(evaluate(expr.operand, env))
    raise TypeError(f"not an expression node: {expr!r}")


def describe(expr: Expr) -> Any:
    """Render an expression back to a JSON-friendly form for reports."""
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, ParamRef):
        return {"param": expr.name}
    if isinstance(expr, (FactRef, Exists)):
        ref: dict[str, Any] = {"kind": expr.kind, "selector": expr.selector}
        if expr.attribute:
            ref["property"] = expr.attribute
        return {"fact" if isinstance(expr, FactRef) else "exists": ref}
    if isinstance(expr, HelperCall):
        return {"helper": [expr.name, *(describe(a) for a in expr.args)] if expr.args else expr.name}
    if isinstance(expr, Compare):
        return {expr.op: [describe(expr.left), describe(expr.right)]}
    if isinstance(expr, AllOf):
        return {"all": [describe(i) for i in expr.items]}
    if isinstance(expr, AnyOf):
        return {"any": [describe(i) for i in expr.items]}
    if isinstance(expr, Not):
        return {"not": describe(expr.operand)}
    raise TypeError(f"not an expression node: {expr!r}")
