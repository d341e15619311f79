"""Unit tests for loopwright.engine.graph and loopwright.engine.steps."""

from __future__ import annotations

import pytest

from fakes import edge, step_node
from loopwright.engine.graph import (
    Automation,
    CronSchedule,
    DomCondition,
    Edge,
    IntervalSchedule,
    ManualSchedule,
    Node,
    OnceSchedule,
    VariableCondition,
    parse_schedule,
    validate_automation,
)
from loopwright.engine.steps import STEP_TYPES, ApiCall, Extract, Navigate, SlackSendMessage, parse_step
from loopwright.errors import GraphConfigurationError, ScheduleError


# ---------------------------------------------------------------------------
# 1. Step records
# ---------------------------------------------------------------------------

class TestParseStep:
    def test_navigate(self):
        step = parse_step({"type": "navigate", "value": "https://x", "id": 3})
        assert isinstance(step, Navigate)
        assert step.value == "https://x"
        assert step.id == "3"

    def test_camel_case_fields_map_to_snake_case(self):
        step = parse_step({"type": "extract", "selector": "h1", "storeKey": "title"})
        assert isinstance(step, Extract)
        assert step.store_key == "title"

    def test_unknown_keys_are_ignored(self):
        step = parse_step({"type": "apiCall", "url": "https://api", "somethingElse": 1})
        assert isinstance(step, ApiCall)
        assert step.method == "GET"

    def test_unknown_type_raises(self):
        with pytest.raises(GraphConfigurationError, match="Unknown step type: teleport"):
            parse_step({"type": "teleport"})

    def test_non_object_raises(self):
        with pytest.raises(GraphConfigurationError):
            parse_step(["navigate"])

    def test_string_numbers_are_coerced(self):
        step = parse_step({"type": "scroll", "scrollType": "byAmount", "scrollAmount": "400"})
        assert step.scroll_amount == 400

    def test_to_dict_round_trip(self):
        data = {"type": "slackSendMessage", "channelId": "C123", "text": "hi", "storeKey": "msg"}
        step = parse_step(data)
        assert isinstance(step, SlackSendMessage)
        again = parse_step(step.to_dict())
        assert again == step

    def test_every_step_kind_has_a_type(self):
        assert all(cls.step_type == name for name, cls in STEP_TYPES.items())


# ---------------------------------------------------------------------------
# 2. Nodes and edges
# ---------------------------------------------------------------------------

class TestNodes:
    def test_step_node(self):
        node = Node.from_dict(step_node("1", {"type": "navigate", "value": "https://x"}))
        assert node.step is not None
        assert not node.is_branch
        assert node.needs_browser

    def test_variable_conditional_node(self):
        node = Node.from_dict(
            step_node("2", {"type": "variableConditional", "variableConditionType": "variableExists", "variableName": "a"})
        )
        assert node.is_branch
        assert isinstance(node.condition, VariableCondition)
        assert not node.needs_browser

    def test_browser_conditional_node_needs_browser(self):
        node = Node.from_dict(
            step_node("2", {"type": "browserConditional", "browserConditionType": "elementExists", "selector": "#a"})
        )
        assert isinstance(node.condition, DomCondition)
        assert node.needs_browser

    def test_bad_step_is_reported_with_node_id(self):
        with pytest.raises(GraphConfigurationError, match="Node 9"):
            Node.from_dict(step_node("9", {"type": "teleport"}))

    def test_missing_id_raises(self):
        with pytest.raises(GraphConfigurationError):
            Node.from_dict({"data": {}})

    @pytest.mark.parametrize("handle, expected", [("if", "if"), ("true", "if"), ("else", "else"), ("false", "else")])
    def test_edge_branch_aliases(self, handle, expected):
        assert Edge.from_dict(edge("1", "2", handle)).branch == expected

    def test_unlabelled_edge(self):
        assert Edge.from_dict(edge("1", "2")).branch is None


class TestAddEdge:
    @pytest.fixture
    def automation(self) -> Automation:
        return Automation.from_dict(
            {
                "id": "a",
                "nodes": [
                    step_node("1", {"type": "setVariable", "variableName": "x", "value": "1"}),
                    step_node("2", {"type": "variableConditional", "variableConditionType": "variableExists", "variableName": "x"}),
                    step_node("3", {"type": "setVariable", "variableName": "y", "value": "1"}),
                    step_node("4", {"type": "setVariable", "variableName": "z", "value": "1"}),
                ],
            }
        )

    def test_action_node_single_outgoing_edge(self, automation):
        automation.add_edge(Edge("e1", "1", "2"))
        with pytest.raises(GraphConfigurationError, match="already has an outgoing edge"):
            automation.add_edge(Edge("e2", "1", "3"))

    def test_action_node_rejects_labels(self, automation):
        with pytest.raises(GraphConfigurationError):
            automation.add_edge(Edge("e1", "1", "2", "if"))

    def test_branch_node_if_and_else(self, automation):
        automation.add_edge(Edge("e1", "2", "3", "if"))
        automation.add_edge(Edge("e2", "2", "4", "else"))
        assert len(automation.edges) == 2

    def test_branch_node_rejects_second_if(self, automation):
        automation.add_edge(Edge("e1", "2", "3", "if"))
        with pytest.raises(GraphConfigurationError, match="already has an 'if' edge"):
            automation.add_edge(Edge("e2", "2", "4", "if"))

    def test_branch_node_rejects_unlabelled(self, automation):
        with pytest.raises(GraphConfigurationError):
            automation.add_edge(Edge("e1", "2", "3"))

    def test_duplicate_node(self, automation):
        with pytest.raises(GraphConfigurationError, match="Duplicate node id"):
            automation.add_node(Node(id="1"))


class TestValidateAutomation:
    def test_clean_graph(self, variable_automation):
        assert validate_automation(Automation.from_dict(variable_automation)) == []

    def test_dangling_edge_reported(self, variable_automation):
        variable_automation["edges"].append(edge("4", "99"))
        problems = validate_automation(Automation.from_dict(variable_automation))
        assert any("unknown node" in p for p in problems)

    def test_double_if_reported(self, variable_automation):
        variable_automation["edges"].append({"id": "dup", "source": "2", "target": "4", "sourceHandle": "if"})
        problems = validate_automation(Automation.from_dict(variable_automation))
        assert any("two if edges" in p for p in problems)


# ---------------------------------------------------------------------------
# 3. Automation documents
# ---------------------------------------------------------------------------

class TestAutomation:
    def test_defaults(self):
        automation = Automation.from_dict({"id": "x"})
        assert isinstance(automation.schedule, ManualSchedule)
        assert automation.headless is True
        assert automation.enabled is True
        assert automation.nodes == []

    def test_needs_browser(self, linear_automation, variable_automation):
        assert Automation.from_dict(linear_automation).needs_browser()
        assert not Automation.from_dict(variable_automation).needs_browser()

    def test_to_dict_round_trip(self, variable_automation):
        automation = Automation.from_dict(variable_automation)
        assert Automation.from_dict(automation.to_dict()) == automation

    def test_missing_id(self):
        with pytest.raises(GraphConfigurationError):
            Automation.from_dict({"name": "no id"})


# ---------------------------------------------------------------------------
# 4. Schedules
# ---------------------------------------------------------------------------

class TestParseSchedule:
    def test_missing_is_manual(self):
        assert isinstance(parse_schedule(None), ManualSchedule)
        assert isinstance(parse_schedule({}), ManualSchedule)

    def test_interval(self):
        schedule = parse_schedule({"type": "interval", "interval": 2, "unit": "hours"})
        assert isinstance(schedule, IntervalSchedule)
        assert schedule.interval_ms == 2 * 60 * 60 * 1000

    def test_legacy_interval_minutes(self):
        schedule = parse_schedule({"type": "interval", "intervalMinutes": 5})
        assert schedule.unit == "minutes"
        assert schedule.interval_ms == 300_000

    def test_interval_must_be_positive(self):
        with pytest.raises(ScheduleError):
            parse_schedule({"type": "interval", "interval": 0})

    def test_unknown_unit(self):
        with pytest.raises(ScheduleError, match="Unknown interval unit"):
            parse_schedule({"type": "interval", "interval": 1, "unit": "weeks"})

    def test_cron_and_once(self):
        assert parse_schedule({"type": "cron", "expression": "*/5 * * * *"}) == CronSchedule("*/5 * * * *")
        assert parse_schedule({"type": "once", "datetime": "2030-01-01T00:00:00Z"}) == OnceSchedule(
            "2030-01-01T00:00:00Z"
        )

    def test_cron_requires_expression(self):
        with pytest.raises(ScheduleError):
            parse_schedule({"type": "cron"})

    def test_unknown_type(self):
        with pytest.raises(ScheduleError, match="Unknown schedule type"):
            parse_schedule({"type": "hourly"})
