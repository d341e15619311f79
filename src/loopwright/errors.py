"""Exception hierarchy shared by the engine, stores, and scheduler.

Every exception carries a human-readable message; callers surface it as
"this node/run failed: <message>".
"""

from __future__ import annotations


class LoopwrightError(Exception):
    """Base class for all Loopwright errors."""

    pass


class GraphConfigurationError(LoopwrightError):
    """Raised for malformed automations: no start node, bad records, bad branch labels."""

    pass


class CapabilityUnavailableError(LoopwrightError):
    """Raised when a step needs a facility that is not present in this build or edition."""

    def __init__(self, message: str, capability: str | None = None) -> None:
        super().__init__(message)
        self.capability = capability


class CredentialError(CapabilityUnavailableError):
    """Raised when a referenced credential is missing or incomplete."""

    pass


class StepExecutionError(LoopwrightError):
    """Raised when a step fails for a domain reason (bad response, invalid input)."""

    pass


class IterationLimitError(LoopwrightError):
    """Raised when a run exceeds the node visit cap."""

    pass


class ScheduleError(LoopwrightError):
    """Raised when a schedule cannot be activated."""

    pass
