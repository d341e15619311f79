"""Loopwright execution engine."""

from loopwright.engine.dispatcher import IOSurface, StepDispatcher, StepResult
from loopwright.engine.graph import Automation, Edge, Node, parse_schedule, validate_automation
from loopwright.engine.graph_executor import GraphExecutor, RunResult, find_start_nodes
from loopwright.engine.runner import AutomationRunner
from loopwright.engine.steps import STEP_TYPES, parse_step
from loopwright.engine.variables import VariableScope

__all__ = [
    "Automation",
    "AutomationRunner",
    "Edge",
    "GraphExecutor",
    "IOSurface",
    "Node",
    "RunResult",
    "STEP_TYPES",
    "StepDispatcher",
    "StepResult",
    "VariableScope",
    "find_start_nodes",
    "parse_schedule",
    "parse_step",
    "validate_automation",
]
