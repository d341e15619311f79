"""Automation graph model -- nodes, edges, branch conditions and schedules.

Stored automation JSON (one document per automation)::

    {
      "id": "1712", "name": "Price watch", "headless": true, "enabled": true,
      "schedule": {"type": "interval", "interval": 30, "unit": "minutes"},
      "variables": {"threshold": "100"},
      "nodes": [
        {"id": "1", "type": "automationStep",
         "data": {"step": {"type": "navigate", "value": "https://shop.test"}}},
        {"id": "2", "type": "automationStep",
         "data": {"step": {"type": "browserConditional",
                           "browserConditionType": "valueMatches",
                           "selector": ".price", "condition": "lessThan",
                           "expectedValue": "{{threshold}}",
                           "transformType": "stripCurrency", "parseAsNumber": true}}}
      ],
      "edges": [{"id": "e1-2", "source": "1", "target": "2"},
                {"id": "e2-3", "source": "2", "target": "3", "sourceHandle": "if"}]
    }
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Union

from loopwright.engine.steps import Step, parse_step
from loopwright.errors import GraphConfigurationError, ScheduleError
from loopwright.models import BROWSER_STEP_TYPES, INTERVAL_UNIT_MS

logger = logging.getLogger("loopwright.engine.graph")

BRANCH_LABELS = ("if", "else")
_BRANCH_ALIASES = {"if": "if", "then": "if", "true": "if", "else": "else", "false": "else"}


# -- Branch conditions -------------------------------------------------------


@dataclasses.dataclass
class DomCondition:
    """``elementExists`` / ``valueMatches`` evaluated against the page."""

    condition_type: str
    selector: str = ""
    expected_value: str = ""
    operator: str = "equals"
    transforms: tuple[str, ...] = ()
    transform_chars: str = ""
    transform_pattern: str = ""
    transform_replace: str = ""
    parse_as_number: bool = False

    needs_browser = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DomCondition:
        raw_transform = data.get("transformType") or "none"
        if isinstance(raw_transform, str):
            transforms: tuple[str, ...] = () if raw_transform == "none" else (raw_transform,)
        else:
            transforms = tuple(t for t in raw_transform if t and t != "none")
        return cls(
            condition_type=str(data.get("browserConditionType") or data.get("conditionType") or ""),
            selector=str(data.get("selector") or ""),
            expected_value=str(data.get("expectedValue") if data.get("expectedValue") is not None else ""),
            operator=str(data.get("condition") or "equals"),
            transforms=transforms,
            transform_chars=str(data.get("transformChars") or ""),
            transform_pattern=str(data.get("transformPattern") or ""),
            transform_replace=str(data.get("transformReplace") or ""),
            parse_as_number=bool(data.get("parseAsNumber", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        transform: Any = "none"
        if len(self.transforms) == 1:
            transform = self.transforms[0]
        elif self.transforms:
            transform = list(self.transforms)
        return {
            "type": "browserConditional",
            "browserConditionType": self.condition_type,
            "selector": self.selector,
            "expectedValue": self.expected_value,
            "condition": self.operator,
            "transformType": transform,
            "transformChars": self.transform_chars,
            "transformPattern": self.transform_pattern,
            "transformReplace": self.transform_replace,
            "parseAsNumber": self.parse_as_number,
        }


@dataclasses.dataclass
class VariableCondition:
    """Predicate over a run variable."""

    condition_type: str
    variable_name: str = ""
    expected_value: str = ""
    parse_as_number: bool = False

    needs_browser = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VariableCondition:
        return cls(
            condition_type=str(data.get("variableConditionType") or ""),
            variable_name=str(data.get("variableName") or ""),
            expected_value=str(data.get("expectedValue") if data.get("expectedValue") is not None else ""),
            parse_as_number=bool(data.get("parseAsNumber", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "variableConditional",
            "variableConditionType": self.condition_type,
            "variableName": self.variable_name,
            "expectedValue": self.expected_value,
            "parseAsNumber": self.parse_as_number,
        }


BranchCondition = Union[DomCondition, VariableCondition]


def parse_condition(data: dict[str, Any]) -> BranchCondition:
    if data.get("type") == "variableConditional" or data.get("variableConditionType"):
        return VariableCondition.from_dict(data)
    return DomCondition.from_dict(data)


# -- Nodes and edges ---------------------------------------------------------


@dataclasses.dataclass
class Node:
    """One unit of graph work: an action step or a branch condition."""

    id: str
    step: Step | None = None
    condition: BranchCondition | None = None
    position: dict[str, Any] = dataclasses.field(default_factory=dict)

    @property
    def is_branch(self) -> bool:
        return self.condition is not None

    @property
    def needs_browser(self) -> bool:
        if self.condition is not None:
            return self.condition.needs_browser
        return self.step is not None and self.step.type in BROWSER_STEP_TYPES

    @property
    def label(self) -> str:
        if self.condition is not None:
            return self.condition.condition_type
        return self.step.type if self.step is not None else "empty"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        if "id" not in data:
            raise GraphConfigurationError("Node is missing an id")
        node_id = str(data["id"])
        payload = data.get("data") or {}
        position = data.get("position") or {}
        step_data = payload.get("step")
        try:
            if isinstance(step_data, dict) and step_data.get("type") in ("browserConditional", "variableConditional"):
                return cls(id=node_id, condition=parse_condition(step_data), position=position)
            if data.get("type") == "conditional":
                return cls(id=node_id, condition=parse_condition(payload), position=position)
            if isinstance(step_data, dict):
                return cls(id=node_id, step=parse_step(step_data), position=position)
        except GraphConfigurationError as exc:
            raise GraphConfigurationError(f"Node {node_id}: {exc}") from exc
        return cls(id=node_id, position=position)

    def to_dict(self) -> dict[str, Any]:
        if self.condition is not None:
            payload: dict[str, Any] = {"step": self.condition.to_dict()}
        elif self.step is not None:
            payload = {"step": self.step.to_dict()}
        else:
            payload = {}
        return {"id": self.id, "type": "automationStep", "data": payload, "position": self.position}


@dataclasses.dataclass
class Edge:
    """Directed link; ``branch`` is ``"if"``, ``"else"`` or None."""

    id: str
    source: str
    target: str
    branch: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Edge:
        source = str(data.get("source", ""))
        target = str(data.get("target", ""))
        handle = data.get("sourceHandle", data.get("branch"))
        branch = _BRANCH_ALIASES.get(str(handle).lower()) if handle else None
        return cls(id=str(data.get("id") or f"e{source}-{target}"), source=source, target=target, branch=branch)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "source": self.source, "target": self.target}
        if self.branch:
            data["sourceHandle"] = self.branch
        return data


# -- Schedules ---------------------------------------------------------------


@dataclasses.dataclass
class ManualSchedule:
    kind = "manual"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "manual"}


@dataclasses.dataclass
class IntervalSchedule:
    interval: float
    unit: str = "minutes"
    kind = "interval"

    @property
    def interval_ms(self) -> int:
        return int(self.interval * INTERVAL_UNIT_MS[self.unit])

    def to_dict(self) -> dict[str, Any]:
        return {"type": "interval", "interval": self.interval, "unit": self.unit}


@dataclasses.dataclass
class CronSchedule:
    expression: str
    kind = "cron"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "cron", "expression": self.expression}


@dataclasses.dataclass
class OnceSchedule:
    datetime: str  # ISO 8601
    kind = "once"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "once", "datetime": self.datetime}


ScheduleSpec = Union[ManualSchedule, IntervalSchedule, CronSchedule, OnceSchedule]


def parse_schedule(data: dict[str, Any] | None) -> ScheduleSpec:
    """Parse a schedule object. Missing or empty means manual."""
    if not data:
        return ManualSchedule()
    kind = data.get("type", "manual")
    if kind == "manual":
        return ManualSchedule()
    if kind == "interval":
        unit = str(data.get("unit") or "minutes")
        raw = data.get("interval", data.get("intervalMinutes"))
        if "intervalMinutes" in data and "interval" not in data:
            unit = "minutes"
        if unit not in INTERVAL_UNIT_MS:
            raise ScheduleError(f"Unknown interval unit: {unit}")
        try:
            interval = float(raw)
        except (TypeError, ValueError):
            raise ScheduleError(f"Invalid interval value: {raw!r}")
        if interval <= 0:
            raise ScheduleError(f"Interval must be positive, got {raw!r}")
        return IntervalSchedule(interval=interval, unit=unit)
    if kind == "cron":
        expression = str(data.get("expression") or "").strip()
        if not expression:
            raise ScheduleError("Cron schedule requires an expression")
        return CronSchedule(expression=expression)
    if kind == "once":
        when = str(data.get("datetime") or "").strip()
        if not when:
            raise ScheduleError("One-time schedule requires a datetime")
        return OnceSchedule(datetime=when)
    raise ScheduleError(f"Unknown schedule type: {kind}")


# -- Automation --------------------------------------------------------------


@dataclasses.dataclass
class Automation:
    """A stored graph plus its scheduling flags."""

    id: str
    name: str = ""
    description: str = ""
    nodes: list[Node] = dataclasses.field(default_factory=list)
    edges: list[Edge] = dataclasses.field(default_factory=list)
    schedule: ScheduleSpec = dataclasses.field(default_factory=ManualSchedule)
    headless: bool = True
    enabled: bool = True
    variables: dict[str, Any] = dataclasses.field(default_factory=dict)

    def node_map(self) -> dict[str, Node]:
        return {node.id: node for node in self.nodes}

    def needs_browser(self) -> bool:
        return any(node.needs_browser for node in self.nodes)

    def add_node(self, node: Node) -> None:
        if any(existing.id == node.id for existing in self.nodes):
            raise GraphConfigurationError(f"Duplicate node id: {node.id}")
        self.nodes.append(node)

    def add_edge(self, edge: Edge) -> None:
        """Append an edge, rejecting a second ``if``/``else`` edge from the same branch node."""
        check_edge_allowed(self, edge)
        self.edges.append(edge)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Automation:
        if not isinstance(data, dict):
            raise GraphConfigurationError("Automation must be a JSON object")
        if "id" not in data:
            raise GraphConfigurationError("Automation is missing an id")
        nodes = [Node.from_dict(n) for n in data.get("nodes") or []]
        edges = [Edge.from_dict(e) for e in data.get("edges") or []]
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            nodes=nodes,
            edges=edges,
            schedule=parse_schedule(data.get("schedule")),
            headless=bool(data.get("headless", True)),
            enabled=bool(data.get("enabled", True)),
            variables=dict(data.get("variables") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "schedule": self.schedule.to_dict(),
            "headless": self.headless,
            "enabled": self.enabled,
            "variables": self.variables,
        }


def check_edge_allowed(automation: Automation, edge: Edge) -> None:
    """Enforce the outgoing-edge label rules for ``edge.source``.

    A branch node may have at most one ``if`` and one ``else`` edge and no
    unlabelled edges. An action node may have at most one unlabelled edge
    and no labelled ones.
    """
    source = automation.node_map().get(edge.source)
    siblings = [e for e in automation.edges if e.source == edge.source]
    if source is not None and source.is_branch:
        if edge.branch not in BRANCH_LABELS:
            raise GraphConfigurationError(
                f"Edge {edge.id}: conditional node {edge.source} needs an 'if' or 'else' label"
            )
        if any(e.branch == edge.branch for e in siblings):
            raise GraphConfigurationError(
                f"Edge {edge.id}: node {edge.source} already has an '{edge.branch}' edge"
            )
    elif edge.branch is not None:
        raise GraphConfigurationError(f"Edge {edge.id}: only conditional nodes may have '{edge.branch}' edges")
    elif any(e.branch is None for e in siblings):
        raise GraphConfigurationError(f"Edge {edge.id}: node {edge.source} already has an outgoing edge")


def validate_automation(automation: Automation) -> list[str]:
    """Return human-readable problems with the graph (empty list when valid)."""
    problems: list[str] = []
    ids = automation.node_map()
    if len(ids) != len(automation.nodes):
        problems.append("Duplicate node ids")
    seen: dict[tuple[str, str], str] = {}
    for edge in automation.edges:
        if edge.source not in ids or edge.target not in ids:
            problems.append(f"Edge {edge.id} references an unknown node and will be ignored")
            continue
        if edge.branch is not None and not ids[edge.source].is_branch:
            problems.append(f"Edge {edge.id}: only conditional nodes may have '{edge.branch}' edges")
        if edge.branch is None and ids[edge.source].is_branch:
            problems.append(f"Edge {edge.id}: unlabelled edge from conditional node {edge.source} is never followed")
        key = (edge.source, edge.branch or "")
        if key in seen:
            label = edge.branch or "unlabelled"
            problems.append(f"Node {edge.source} has two {label} edges ({seen[key]}, {edge.id})")
        seen[key] = edge.id
    for node in automation.nodes:
        if node.step is None and node.condition is None:
            problems.append(f"Node {node.id} has no step or condition")
    return problems
