"""Unit tests for loopwright.engine.conditions -- DOM and variable predicates."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import FakeBrowser, run_async
from loopwright.engine.browser import PlaywrightBrowser
from loopwright.engine.conditions import apply_transforms, compare_values, evaluate_dom_condition, evaluate_variable_condition
from loopwright.engine.graph import DomCondition, VariableCondition
from loopwright.engine.variables import VariableScope
from loopwright.errors import GraphConfigurationError, StepExecutionError


# ---------------------------------------------------------------------------
# 1. Transforms
# ---------------------------------------------------------------------------

class TestApplyTransforms:
    def test_strip_currency(self):
        assert apply_transforms("$1,234.56", ("stripCurrency",)) == "1234.56"

    def test_strip_non_numeric(self):
        assert apply_transforms("Price: 99.90 USD", ("stripNonNumeric",)) == "99.90"

    def test_pipeline_order_is_fixed(self):
        # regexReplace listed first still runs after stripCurrency
        result = apply_transforms("$1,000", ("regexReplace", "stripCurrency"), pattern=r"^1", replacement="2")
        assert result == "2000"

    def test_remove_chars(self):
        assert apply_transforms("a-b-c", ("removeChars",), chars="-") == "abc"

    def test_regex_group_reference(self):
        assert apply_transforms("2024-05", ("regexReplace",), pattern=r"(\d+)-(\d+)", replacement="$2/$1") == "05/2024"

    def test_invalid_regex_leaves_value(self):
        assert apply_transforms("abc", ("regexReplace",), pattern="(") == "abc"


# ---------------------------------------------------------------------------
# 2. compare_values
# ---------------------------------------------------------------------------

class TestCompareValues:
    def test_numeric_equals(self):
        assert compare_values("1234.56", "1234.56", "equals", True) is True

    def test_string_equals_is_strict(self):
        assert compare_values("$1,234.56", "1234.56", "equals", False) is False

    def test_numeric_greater_and_less(self):
        assert compare_values("10", "9", "greaterThan", True) is True
        assert compare_values("10", "9", "lessThan", True) is False

    def test_numeric_contains_is_substring_on_text(self):
        assert compare_values("1234.56", "34", "contains", True) is True

    def test_numeric_unparseable_is_false(self):
        assert compare_values("n/a", "1", "equals", True) is False


# ---------------------------------------------------------------------------
# 3. DOM conditions
# ---------------------------------------------------------------------------

class TestDomCondition:
    def test_value_matches_with_currency_transforms(self):
        page = FakeBrowser({".price": "$1,234.56"})
        cond = DomCondition.from_dict(
            {
                "browserConditionType": "valueMatches",
                "selector": ".price",
                "condition": "equals",
                "expectedValue": "1234.56",
                "transformType": ["stripCurrency", "stripNonNumeric"],
                "parseAsNumber": True,
            }
        )
        assert run_async(evaluate_dom_condition(cond, page, VariableScope())) is True

    def test_value_matches_without_transform_string_mode_fails(self):
        page = FakeBrowser({".price": "$1,234.56"})
        cond = DomCondition.from_dict(
            {
                "browserConditionType": "valueMatches",
                "selector": ".price",
                "condition": "equals",
                "expectedValue": "1234.56",
            }
        )
        assert run_async(evaluate_dom_condition(cond, page, VariableScope())) is False

    def test_element_exists_soft_miss(self):
        page = FakeBrowser({"#here": ""})
        exists = DomCondition(condition_type="elementExists", selector="#here")
        missing = DomCondition(condition_type="elementExists", selector="#gone")
        assert run_async(evaluate_dom_condition(exists, page, VariableScope())) is True
        assert run_async(evaluate_dom_condition(missing, page, VariableScope())) is False

    def test_value_matches_missing_element_is_soft_miss(self):
        page = FakeBrowser({".ok": "fine"})
        contains = DomCondition(
            condition_type="valueMatches", selector=".err", expected_value="oops", operator="contains"
        )
        empty = DomCondition(condition_type="valueMatches", selector=".err", expected_value="", operator="equals")
        assert run_async(evaluate_dom_condition(contains, page, VariableScope())) is False
        assert run_async(evaluate_dom_condition(empty, page, VariableScope())) is True

    def test_value_matches_on_playwright_page_without_match(self):
        page = MagicMock()
        page.locator.return_value.count = AsyncMock(return_value=0)
        surface = PlaywrightBrowser.attach(page)
        cond = DomCondition(condition_type="valueMatches", selector=".err", expected_value="oops", operator="contains")
        assert run_async(evaluate_dom_condition(cond, surface, VariableScope())) is False
        with pytest.raises(StepExecutionError, match="Element not found: .err"):
            run_async(surface.extract_text(".err"))

    def test_value_matches_on_playwright_page_reads_stripped_text(self):
        page = MagicMock()
        locator = page.locator.return_value
        locator.count = AsyncMock(return_value=1)
        locator.first.text_content = AsyncMock(return_value="  oops, failed  ")
        surface = PlaywrightBrowser.attach(page)
        cond = DomCondition(condition_type="valueMatches", selector=".err", expected_value="oops", operator="contains")
        assert run_async(evaluate_dom_condition(cond, surface, VariableScope())) is True
        assert run_async(surface.read_text(".err")) == "oops, failed"

    def test_selector_and_expected_are_substituted(self):
        page = FakeBrowser({"#total": "15"})
        cond = DomCondition(
            condition_type="valueMatches",
            selector="#{{field}}",
            expected_value="{{limit}}",
            operator="greaterThan",
            parse_as_number=True,
        )
        scope = VariableScope({"field": "total", "limit": 10})
        assert run_async(evaluate_dom_condition(cond, page, scope)) is True

    def test_unknown_type_raises(self):
        cond = DomCondition(condition_type="bogus", selector="x")
        with pytest.raises(GraphConfigurationError):
            run_async(evaluate_dom_condition(cond, FakeBrowser(), VariableScope()))


# ---------------------------------------------------------------------------
# 4. Variable conditions
# ---------------------------------------------------------------------------

class TestVariableCondition:
    def test_exists(self):
        scope = VariableScope({"a": "x", "blank": ""})
        assert evaluate_variable_condition(VariableCondition("variableExists", "a"), scope) is True
        assert evaluate_variable_condition(VariableCondition("variableExists", "blank"), scope) is False
        assert evaluate_variable_condition(VariableCondition("variableExists", "nope"), scope) is False

    def test_numeric_greater_than(self):
        scope = VariableScope({"count": 7})
        cond = VariableCondition("variableGreaterThan", "count", "5", parse_as_number=True)
        assert evaluate_variable_condition(cond, scope) is True

    def test_string_mode_compares_lexically(self):
        scope = VariableScope({"count": "10"})
        cond = VariableCondition("variableGreaterThan", "count", "9")
        assert evaluate_variable_condition(cond, scope) is False

    def test_contains_and_equals(self):
        scope = VariableScope({"title": "Hello World"})
        assert evaluate_variable_condition(VariableCondition("variableContains", "title", "World"), scope) is True
        assert evaluate_variable_condition(VariableCondition("variableEquals", "title", "Hello"), scope) is False

    def test_missing_name_raises(self):
        with pytest.raises(GraphConfigurationError):
            evaluate_variable_condition(VariableCondition("variableEquals", ""), VariableScope())
