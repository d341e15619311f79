"""Loopwright Conditional Evaluator -- branch predicates for conditional nodes.

Two families of predicates:

- DOM conditions (``elementExists``, ``valueMatches``) query the page through
  a :class:`~loopwright.engine.protocols.PageQuery`, optionally transform the
  extracted text, then compare it with an expected value.
- Variable conditions (``variableExists``, ``variableEquals``,
  ``variableGreaterThan``, ``variableLessThan``, ``variableContains``) read the
  run's :class:`~loopwright.engine.variables.VariableScope`.

The evaluator returns a bool and never looks at edges; the graph executor
picks the ``if`` or ``else`` edge from the result. Numeric parsing failures
evaluate to False rather than raising.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from loopwright.engine.variables import VariableScope, parse_float, stringify
from loopwright.errors import GraphConfigurationError

if TYPE_CHECKING:
    from loopwright.engine.graph import DomCondition, VariableCondition
    from loopwright.engine.protocols import PageQuery

logger = logging.getLogger("loopwright.engine.conditions")

# Fixed pipeline order; a condition selects one or more of these kinds.
TRANSFORM_ORDER = ("stripCurrency", "stripNonNumeric", "removeChars", "regexReplace")

_CURRENCY_RE = re.compile(r"[$€£,\s]")
_NON_NUMERIC_RE = re.compile(r"[^0-9.-]")

DOM_CONDITION_TYPES = ("elementExists", "valueMatches")
VARIABLE_CONDITION_TYPES = (
    "variableExists",
    "variableEquals",
    "variableGreaterThan",
    "variableLessThan",
    "variableContains",
)
OPERATORS = ("equals", "contains", "greaterThan", "lessThan")


def apply_transforms(
    raw: str,
    kinds: tuple[str, ...] | list[str],
    chars: str = "",
    pattern: str = "",
    replacement: str = "",
) -> str:
    """Apply the selected transform kinds to ``raw`` in pipeline order."""
    if not raw:
        return raw
    selected = set(kinds)
    value = raw
    for kind in TRANSFORM_ORDER:
        if kind not in selected:
            continue
        if kind == "stripCurrency":
            value = _CURRENCY_RE.sub("", value)
        elif kind == "stripNonNumeric":
            value = _NON_NUMERIC_RE.sub("", value)
        elif kind == "removeChars" and chars:
            for char in chars:
                value = value.replace(char, "")
        elif kind == "regexReplace" and pattern:
            try:
                value = re.sub(pattern, _js_replacement(replacement), value)
            except re.error as exc:
                logger.warning("Invalid transform regex %r: %s", pattern, exc)
    return value


def _js_replacement(replacement: str) -> str:
    """Translate ``$1``-style group references into Python's ``\\g<1>``."""
    escaped = replacement.replace("\\", "\\\\")
    return re.sub(r"\$(\d+)", r"\\g<\1>", escaped)


def compare_values(actual: str, expected: str, operator: str, parse_as_number: bool) -> bool:
    """Compare an already-transformed DOM value with the expected value.

    Numeric mode strips both sides to ``[0-9.-]`` and compares floats; if
    either side is not a number the result is False. ``contains`` in numeric
    mode is still a substring test on the transformed text.
    """
    if parse_as_number:
        a = parse_float(_NON_NUMERIC_RE.sub("", actual))
        b = parse_float(_NON_NUMERIC_RE.sub("", expected))
        if a is None or b is None:
            return False
        if operator == "greaterThan":
            return a > b
        if operator == "lessThan":
            return a < b
        if operator == "contains":
            return expected in actual
        return a == b

    if operator == "contains":
        return expected in actual
    if operator in ("greaterThan", "lessThan"):
        a = parse_float(actual)
        b = parse_float(expected)
        if a is None or b is None:
            return False
        return a > b if operator == "greaterThan" else a < b
    return actual == expected


async def evaluate_dom_condition(condition: DomCondition, page: PageQuery, scope: VariableScope) -> bool:
    """Evaluate ``elementExists`` / ``valueMatches`` against the current page."""
    if condition.condition_type not in DOM_CONDITION_TYPES:
        raise GraphConfigurationError(f"Unknown browser condition type: {condition.condition_type}")
    if not condition.selector:
        raise GraphConfigurationError("browserConditionType and selector are required")

    selector = scope.substitute(condition.selector)

    if condition.condition_type == "elementExists":
        found = await page.element_exists(selector)
        logger.debug("Element %s: %s", "found" if found else "not found", selector)
        return bool(found)

    raw = await page.read_text(selector) or ""
    transformed = apply_transforms(
        raw,
        condition.transforms,
        chars=condition.transform_chars,
        pattern=condition.transform_pattern,
        replacement=condition.transform_replace,
    )
    expected = scope.substitute(condition.expected_value)
    operator = condition.operator or "equals"
    result = compare_values(transformed, expected, operator, condition.parse_as_number)
    logger.debug(
        "Value match raw=%r transformed=%r %s expected=%r -> %s",
        raw,
        transformed,
        operator,
        expected,
        result,
    )
    return result


def evaluate_variable_condition(condition: VariableCondition, scope: VariableScope) -> bool:
    """Evaluate a variable-based predicate against the run's scope."""
    kind = condition.condition_type
    if kind not in VARIABLE_CONDITION_TYPES:
        raise GraphConfigurationError(f"Unknown variable condition type: {kind}")
    if not condition.variable_name:
        raise GraphConfigurationError("variableConditionType and variableName are required")

    name = scope.substitute(condition.variable_name)
    value = scope.get(name)

    if kind == "variableExists":
        return value is not None and value != ""

    expected = scope.substitute(condition.expected_value)
    actual = stringify(value)

    if condition.parse_as_number:
        a = parse_float(actual)
        b = parse_float(expected)
        if a is None or b is None:
            logger.warning("Cannot compare %s as numbers: %r vs %r", name, actual, expected)
            return False
        if kind == "variableEquals":
            return a == b
        if kind == "variableGreaterThan":
            return a > b
        if kind == "variableLessThan":
            return a < b
        return expected in actual

    if kind == "variableEquals":
        return actual == expected
    if kind == "variableContains":
        return expected in actual
    if kind == "variableGreaterThan":
        return actual > expected
    return actual < expected
