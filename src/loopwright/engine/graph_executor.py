"""Loopwright Graph Executor -- depth-first traversal with if/else branching.

Each run walks every node reachable from every start node (in-degree zero),
executing action steps through the :class:`StepDispatcher` and evaluating
branch conditions against the page or the variable scope. Traversal uses an
explicit stack; successors are pushed in reverse so the visit order matches a
recursive walk. Cycles are legal and are bounded only by the visit cap.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Any, Callable

from loopwright.engine.conditions import evaluate_dom_condition, evaluate_variable_condition
from loopwright.engine.dispatcher import IOSurface, StepDispatcher
from loopwright.engine.graph import Automation, DomCondition, Edge, Node
from loopwright.errors import GraphConfigurationError, IterationLimitError, LoopwrightError, StepExecutionError
from loopwright.models import MAX_NODE_VISITS

logger = logging.getLogger("loopwright.engine.graph_executor")

StatusCallback = Callable[[str, str, "str | None"], Any]


@dataclasses.dataclass
class RunResult:
    """Outcome of one run."""

    success: bool
    error: str | None = None
    steps_executed: int = 0
    steps_succeeded: int = 0
    visits: int = 0
    stopped: bool = False
    duration_ms: int = 0
    variables: dict[str, Any] = dataclasses.field(default_factory=dict)
    failed_node: str | None = None
    visited: set[str] = dataclasses.field(default_factory=set)


def usable_edges(automation: Automation) -> list[Edge]:
    """Edges whose endpoints both exist; the rest are dropped with a warning."""
    ids = {node.id for node in automation.nodes}
    edges: list[Edge] = []
    for edge in automation.edges:
        if edge.source in ids and edge.target in ids:
            edges.append(edge)
        else:
            logger.warning("Dropping edge %s: references unknown node (%s -> %s)", edge.id, edge.source, edge.target)
    return edges


def find_start_nodes(automation: Automation, edges: list[Edge] | None = None) -> list[Node]:
    """Nodes with no incoming edge, in document order."""
    if edges is None:
        edges = usable_edges(automation)
    targets = {edge.target for edge in edges}
    starts = [node for node in automation.nodes if node.id not in targets]
    if not starts:
        raise GraphConfigurationError("No start nodes found in workflow. All nodes have incoming edges.")
    return starts


class GraphExecutor:
    """Runs one automation graph against one :class:`IOSurface`."""

    def __init__(self, dispatcher: StepDispatcher | None = None, max_visits: int = MAX_NODE_VISITS) -> None:
        self._dispatcher = dispatcher or StepDispatcher()
        self._max_visits = max_visits

    async def run(
        self,
        automation: Automation,
        io: IOSurface,
        on_status: StatusCallback | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Execute the graph.

        Raises GraphConfigurationError when the graph has no start node.
        Node failures and the visit cap end the run with ``success=False``;
        the error message is kept on the result.
        """
        edges = usable_edges(automation)
        starts = find_start_nodes(automation, edges)
        nodes = automation.node_map()
        outgoing: dict[str, list[Edge]] = {}
        for edge in edges:
            outgoing.setdefault(edge.source, []).append(edge)

        result = RunResult(success=True)
        stack: list[str] = [node.id for node in reversed(starts)]
        started = time.monotonic()
        logger.info(
            "Running automation %s (%s): %d nodes, %d start node(s)",
            automation.id,
            automation.name,
            len(nodes),
            len(starts),
        )

        try:
            while stack:
                if stop_event is not None and stop_event.is_set():
                    logger.info("Stop requested; halting automation %s", automation.id)
                    result.stopped = True
                    break
                node_id = stack.pop()
                if result.visits >= self._max_visits:
                    raise IterationLimitError("Maximum iteration limit reached")
                result.visits += 1
                result.visited.add(node_id)
                node = nodes[node_id]

                self._notify(on_status, node_id, "running")
                try:
                    outcome = await self._execute_node(node, io)
                except LoopwrightError as exc:
                    result.failed_node = node_id
                    self._notify(on_status, node_id, "error", str(exc))
                    raise
                except Exception as exc:
                    logger.exception("Node %s raised an unexpected error", node_id)
                    result.failed_node = node_id
                    error = StepExecutionError(f"{node.label} failed: {exc}")
                    self._notify(on_status, node_id, "error", str(error))
                    raise error from exc
                result.steps_executed += 1
                result.steps_succeeded += 1
                self._notify(on_status, node_id, "success")

                for target in reversed(self._next_targets(node, outgoing.get(node_id, []), outcome)):
                    stack.append(target)
        except LoopwrightError as exc:
            logger.warning("Automation %s failed: %s", automation.id, exc)
            result.success = False
            result.error = str(exc)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        result.variables = io.scope.snapshot()
        logger.info(
            "Automation %s finished: success=%s, %d/%d nodes succeeded, %d visits, %dms",
            automation.id,
            result.success,
            result.steps_succeeded,
            result.steps_executed,
            result.visits,
            result.duration_ms,
        )
        return result

    async def _execute_node(self, node: Node, io: IOSurface) -> bool | None:
        """Run a step (returns None) or evaluate a condition (returns its verdict)."""
        if node.condition is not None:
            if isinstance(node.condition, DomCondition):
                page = io.require_browser(node.condition.condition_type)
                verdict = await evaluate_dom_condition(node.condition, page, io.scope)
            else:
                verdict = evaluate_variable_condition(node.condition, io.scope)
            logger.info("Node %s (%s) -> %s", node.id, node.label, "if" if verdict else "else")
            return verdict
        if node.step is None:
            logger.debug("Node %s has no step; passing through", node.id)
            return None
        logger.info("Node %s: executing %s", node.id, node.label)
        await self._dispatcher.execute(node.step, io)
        return None

    @staticmethod
    def _next_targets(node: Node, edges: list[Edge], outcome: bool | None) -> list[str]:
        if node.is_branch:
            label = "if" if outcome else "else"
            return [edge.target for edge in edges if edge.branch == label]
        return [edge.target for edge in edges if edge.branch is None]

    @staticmethod
    def _notify(on_status: StatusCallback | None, node_id: str, status: str, message: str | None = None) -> None:
        if on_status is not None:
            on_status(node_id, status, message)
