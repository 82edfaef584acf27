"""
Unit tests for matchers and typed comparison.

Numeric thresholds must compare as numbers even when the target reports
them as strings, and absent facts must fail positive matchers while
satisfying negative ones.
"""

import pytest
import yaml

from baseline._types import Fact
from baseline.errors import PredicateError
from baseline.predicates import MATCHERS, apply_matcher, compare, loosely_equal, to_bool, to_number


@pytest.mark.unit
class TestCoercion:
    """Test number and boolean coercion."""

    def test_to_number_parses_numeric_strings(self) -> None:
        assert to_number("9") == 9
        assert to_number(" 10 ") == 10
        assert to_number("1.5") == 1.5

    def test_to_number_rejects_booleans_and_words(self) -> None:
        assert to_number(True) is None
        assert to_number("nine") is None
        assert to_number(None) is None

    def test_to_bool_words(self) -> None:
        assert to_bool("yes") is True
        assert to_bool("No") is False
        assert to_bool("maybe") is None


@pytest.mark.unit
class TestNumericComparison:
    """Numeric matchers never compare lexicographically."""

    def test_integer_actual_within_threshold(self) -> None:
        passed, _ = apply_matcher("le", Fact(True, 9), 60)
        assert passed is True

    def test_string_actual_compares_as_integer(self) -> None:
        # "9" < "10" is False as strings; it must be True as numbers.
        passed, _ = apply_matcher("le", Fact(True, "9"), 10)
        assert passed is True
        assert compare("lt", "9", "10") is True

    def test_string_threshold_compares_as_integer(self) -> None:
        passed, _ = apply_matcher("gt", Fact(True, 100), "99")
        assert passed is True

    def test_non_numeric_ordering_raises(self) -> None:
        with pytest.raises(PredicateError, match="numeric"):
            apply_matcher("le", Fact(True, "1m"), 60)

    def test_eq_numeric_string_equals_number(self) -> None:
        assert apply_matcher("eq", Fact(True, "0"), 0)[0] is True
        assert apply_matcher("eq", Fact(True, "1"), 0)[0] is False


@pytest.mark.unit
class TestMatchers:
    """Test individual matcher semantics."""

    def test_cmp_is_case_insensitive(self) -> None:
        assert loosely_equal("No", "no") is True
        assert apply_matcher("cmp", Fact(True, "NO"), "no")[0] is True

    def test_cmp_file_mode(self) -> None:
        assert apply_matcher("cmp", Fact(True, "0644"), "0600")[0] is False
        assert apply_matcher("cmp", Fact(True, "0600"), "0600")[0] is True

    def test_cmp_unquoted_octal_mode(self) -> None:
        # YAML 1.1 reads an unquoted 0600 as the integer 384
        expected = yaml.safe_load("expected: 0600")["expected"]
        assert expected == 384
        assert apply_matcher("cmp", Fact(True, "0600"), expected)[0] is True
        assert apply_matcher("cmp", Fact(True, "0644"), expected)[0] is False

    def test_cmp_octal_either_side(self) -> None:
        assert loosely_equal(0o440, "0440") is True
        assert loosely_equal("0640", 0o600) is False

    def test_cmp_decimal_strings_stay_decimal(self) -> None:
        assert loosely_equal("90", 90) is True
        assert loosely_equal("0090", 90) is True

    def test_contains_list_and_string(self) -> None:
        assert apply_matcher("contains", Fact(True, ["nodev", "noexec"]), "noexec")[0] is True
        assert apply_matcher("contains", Fact(True, "PermitRootLogin no"), "no")[0] is True

    def test_in_matcher(self) -> None:
        assert apply_matcher("in", Fact(True, "/sbin/nologin"), ["/sbin/nologin", "/bin/false"])[0] is True
        assert apply_matcher("in", Fact(True, 3), [1, 2])[0] is False

    def test_matches_uses_multiline_search(self) -> None:
        content = "# comment\nPASS_MAX_DAYS 90\n"
        assert apply_matcher("matches", Fact(True, content), r"^PASS_MAX_DAYS\s+\d+")[0] is True

    def test_empty_and_not_empty(self) -> None:
        assert apply_matcher("empty", Fact(True, ""), None)[0] is True
        assert apply_matcher("empty", Fact(True, []), None)[0] is True
        assert apply_matcher("not_empty", Fact(True, "x"), None)[0] is True

    def test_empty_on_number_raises(self) -> None:
        with pytest.raises(PredicateError):
            apply_matcher("empty", Fact(True, 3), None)

    def test_is_true_requires_boolean_reading(self) -> None:
        assert apply_matcher("is_true", Fact(True, "yes"), None)[0] is True
        with pytest.raises(PredicateError):
            apply_matcher("is_true", Fact(True, "sometimes"), None)

    def test_unknown_matcher_raises(self) -> None:
        with pytest.raises(PredicateError, match="unknown matcher"):
            apply_matcher("approximately", Fact(True, 1), 1)


@pytest.mark.unit
class TestAbsentFacts:
    """Absent facts fail positive matchers and satisfy negative ones."""

    @pytest.mark.parametrize("name", ["eq", "cmp", "contains", "matches", "exists", "is_true", "not_empty", "le"])
    def test_positive_matchers_fail(self, name: str) -> None:
        passed, detail = apply_matcher(name, Fact.absent(), 1)
        assert passed is False
        assert detail == "not present"

    @pytest.mark.parametrize("name", ["ne", "not_contains", "not_in", "not_matches", "absent", "empty"])
    def test_negative_matchers_pass(self, name: str) -> None:
        passed, _ = apply_matcher(name, Fact.absent(), 1)
        assert passed is True

    def test_present_fact_fails_absent(self) -> None:
        passed, detail = apply_matcher("absent", Fact(True, {"installed": True}))
        assert passed is False
        assert "absent" in detail

    def test_registry_covers_negations(self) -> None:
        for name in ("contains", "in", "matches", "empty"):
            assert f"not_{name}" in MATCHERS
