"""Matchers: typed comparison of an actual fact against an expected value.

Numeric comparison is done on numbers, never on strings: a fact read from
the target as ``"9"`` compares as ``9`` against a threshold of ``10``. Strings
that do not look like numbers cannot be ordered and raise ``PredicateError``,
which the evaluator records as an errored assertion.

Absent facts fail positive matchers (``eq``, ``contains``, ``matches``...) and
satisfy negative ones (``ne``, ``not_contains``, ``not_in``, ``empty``).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable

from baseline._types import Fact
from baseline.errors import PredicateError

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_OCTAL_RE = re.compile(r"^0[0-7]+$")

TRUE_WORDS = frozenset({"true", "yes", "on", "1", "enabled"})
FALSE_WORDS = frozenset({"false", "no", "off", "0", "disabled"})


# ── Coercion ───────────────────────────────────────────────────────────────


def to_number(value: Any) -> int | float | None:
    """Return ``value`` as an int/float, or None if it is not numeric.

    Booleans are not numbers here, even though Python says they are.

    Example:
    -------
        >>> to_number("9")
        9
        >>> to_number(" 1.5 ")
        1.5
        >>> to_number("0644")
        644
        >>> to_number(True) is None
        True

    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if _INT_RE.match(text):
            return int(text)
        if _FLOAT_RE.match(text):
            return float(text)
    return None


def to_bool(value: Any) -> bool | None:
    """Return ``value`` as a bool, or None if it has no boolean reading."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        word = value.strip().lower()
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False
    return None


def values_equal(actual: Any, expected: Any) -> bool:
    """Strict equality, except that numbers and numeric strings compare as numbers."""
    if isinstance(actual, list) and isinstance(expected, list):
        return len(actual) == len(expected) and all(values_equal(a, e) for a, e in zip(actual, expected))
    if isinstance(actual, bool) or isinstance(expected, bool):
        return actual == expected
    if isinstance(actual, (int, float)) or isinstance(expected, (int, float)):
        a, e = to_number(actual), to_number(expected)
        if a is not None and e is not None:
            return a == e
    return actual == expected


def _octal_pair(actual: Any, expected: Any) -> tuple[int, int] | None:
    """Pair a zero-padded octal string with an integer, if that is what we have.

    File modes are read as strings like ``"0600"`` while YAML reads an unquoted
    ``0600`` as the integer 384.
    """
    for text, number in ((actual, expected), (expected, actual)):
        if isinstance(number, bool) or not isinstance(number, int) or not isinstance(text, str):
            continue
        if _OCTAL_RE.match(text.strip()):
            return int(text.strip(), 8), number
    return None


def loosely_equal(actual: Any, expected: Any) -> bool:
    """Loose comparison (``cmp``).

    A zero-padded octal string against an integer compares as octal, so a
    mode of ``"0600"`` matches ``expected: 0600``. Other numbers and numeric
    strings compare numerically, boolean words compare as booleans, and other
    strings compare case-insensitively.

    Example:
    -------
        >>> loosely_equal("0600", 0o600)
        True
        >>> loosely_equal("0644", 0o600)
        False
        >>> loosely_equal("9", 9)
        True

    """
    if isinstance(actual, list) and isinstance(expected, list):
        return len(actual) == len(expected) and all(loosely_equal(a, e) for a, e in zip(actual, expected))
    if isinstance(actual, list) and len(actual) == 1:
        return loosely_equal(actual[0], expected)
    octal = _octal_pair(actual, expected)
    if octal is not None:
        return octal[0] == octal[1]
    a_num, e_num = to_number(actual), to_number(expected)
    if a_num is not None and e_num is not None:
        return a_num == e_num
    if isinstance(actual, bool) or isinstance(expected, bool):
        return to_bool(actual) is not None and to_bool(actual) == to_bool(expected)
    if isinstance(actual, str) and isinstance(expected, str):
        return actual.strip().lower() == expected.strip().lower()
    return actual == expected


def _ordered(op: str, actual: Any, expected: Any) -> bool:
    a, e = to_number(actual), to_number(expected)
    if a is None or e is None:
        raise PredicateError(f"cannot compare {actual!r} {op} {expected!r}: both sides must be numeric")
    if op == "lt":
        return a < e
    if op == "le":
        return a <= e
    if op == "gt":
        return a > e
    return a >= e


def compare(op: str, left: Any, right: Any) -> bool:
    """Apply a binary comparison operator.

    Shared by assertion matchers and the applicability expression tree so both
    order values the same way.
    """
    if op == "eq":
        return values_equal(left, right)
    if op == "ne":
        return not values_equal(left, right)
    if op == "cmp":
        return loosely_equal(left, right)
    if op in ("lt", "le", "gt", "ge"):
        return _ordered(op, left, right)
    if op == "contains":
        return _contains(left, right)
    if op == "in":
        return _contains(right, left)
    if op == "matches":
        return _matches(left, right)
    raise PredicateError(f"unknown comparison operator: {op}")


def _contains(container: Any, item: Any) -> bool:
    if isinstance(item, list) and not isinstance(container, str):
        return all(_contains(container, i) for i in item)
    if isinstance(container, str):
        if isinstance(item, list):
            return all(str(i) in container for i in item)
        return str(item) in container
    if isinstance(container, Mapping):
        return item in container
    if isinstance(container, (list, tuple, set, frozenset)):
        return any(values_equal(element, item) for element in container)
    if container is None:
        return False
    raise PredicateError(f"{container!r} is not a container")


def _matches(actual: Any, pattern: Any) -> bool:
    if isinstance(actual, list):
        return any(_matches(a, pattern) for a in actual)
    return re.search(str(pattern), str(actual), flags=re.MULTILINE) is not None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    raise PredicateError(f"{value!r} has no length")


def _truth(value: Any) -> bool:
    b = to_bool(value)
    if b is None:
        raise PredicateError(f"{value!r} has no boolean reading")
    return b


# ── Matcher registry ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Matcher:
    """A named matcher.

    Attributes:
        name: Matcher name as written in rule YAML.
        needs_expected: Whether the assertion must provide ``expected``.
        passes_when_absent: Outcome when the fact does not exist.
        test: ``(actual, expected) -> bool`` applied to present facts.

    """

    name: str
    needs_expected: bool
    passes_when_absent: bool
    test: Callable[[Any, Any], bool]


MATCHERS: dict[str, Matcher] = {
    m.name: m
    for m in (
        Matcher("eq", True, False, lambda a, e: compare("eq", a, e)),
        Matcher("ne", True, True, lambda a, e: compare("ne", a, e)),
        Matcher("cmp", True, False, loosely_equal),
        Matcher("lt", True, False, lambda a, e: _ordered("lt", a, e)),
        Matcher("le", True, False, lambda a, e: _ordered("le", a, e)),
        Matcher("gt", True, False, lambda a, e: _ordered("gt", a, e)),
        Matcher("ge", True, False, lambda a, e: _ordered("ge", a, e)),
        Matcher("contains", True, False, _contains),
        Matcher("not_contains", True, True, lambda a, e: not _contains(a, e)),
        Matcher("in", True, False, lambda a, e: _contains(e, a)),
        Matcher("not_in", True, True, lambda a, e: not _contains(e, a)),
        Matcher("matches", True, False, _matches),
        Matcher("not_matches", True, True, lambda a, e: not _matches(a, e)),
        Matcher("exists", False, False, lambda a, e: True),
        Matcher("absent", False, True, lambda a, e: False),
        Matcher("is_true", False, False, lambda a, e: _truth(a)),
        Matcher("is_false", False, False, lambda a, e: not _truth(a)),
        Matcher("empty", False, True, lambda a, e: _is_empty(a)),
        Matcher("not_empty", False, False, lambda a, e: not _is_empty(a)),
    )
}

COMPARISON_OPERATORS = frozenset({"eq", "ne", "cmp", "lt", "le", "gt", "ge", "contains", "in", "matches"})


def apply_matcher(name: str, fact: Fact, expected: Any = None) -> tuple[bool, str]:
    """Apply a matcher to a fact.

    Returns:
        Tuple of (passed, detail).

    Raises:
        PredicateError: If the values cannot be compared with this matcher.

    """
    matcher = MATCHERS.get(name)
    if matcher is None:
        raise PredicateError(f"unknown matcher: {name}")

    if not fact.exists:
        if matcher.passes_when_absent:
            return True, "not present (as required)" if name == "absent" else "not present"
        return False, "not present"

    if name == "exists":
        return True, "present"
    if name == "absent":
        return False, "present (should be absent)"

    passed = matcher.test(fact.value, expected)
    if matcher.needs_expected:
        verb = "satisfies" if passed else "does not satisfy"
        return passed, f"{fact.value!r} {verb} {name} {expected!r}"
    return passed, f"{fact.value!r} is {'' if passed else 'not '}{name.replace('_', ' ')}"
