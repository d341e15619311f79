"""Loopwright Step Dispatcher -- routes a step record to its handler.

Every handler has the same contract::

    async def handler(step: <StepClass>, io: IOSurface) -> StepResult

and receives everything it may touch through :class:`IOSurface`: the run's
variable scope, the outbound HTTP client, the browser surface (when the run
has one) and the credential lookup. Handlers substitute ``{{path}}`` tokens in
every free-text field before it reaches a DOM call or a request.

If the step has a ``store_key``, the dispatcher writes the handler's result
into the scope under that key once the handler returns.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Awaitable, Callable

from loopwright.credentials import CredentialLookup
from loopwright.engine.protocols import BrowserActions, HttpClient
from loopwright.engine.steps import STEP_TYPES, Step
from loopwright.engine.variables import VariableScope
from loopwright.errors import CapabilityUnavailableError, GraphConfigurationError
from loopwright.models import ENTERPRISE_STEP_FEATURES

logger = logging.getLogger("loopwright.engine.dispatcher")


@dataclasses.dataclass
class StepResult:
    """What a handler produced.

    ``stored`` replaces ``value`` as the stored variable when
    ``use_stored`` is set (e.g. a system command stores only its stdout).
    """

    value: Any = None
    stored: Any = None
    use_stored: bool = False

    @classmethod
    def storing(cls, value: Any, stored: Any) -> StepResult:
        return cls(value=value, stored=stored, use_stored=True)

    @property
    def store_value(self) -> Any:
        return self.stored if self.use_stored else self.value


@dataclasses.dataclass
class IOSurface:
    """Capabilities available to handlers during one run."""

    scope: VariableScope
    http: HttpClient
    browser: BrowserActions | None = None
    credentials: CredentialLookup | None = None
    edition: str = "community"
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    def require_browser(self, step_type: str) -> BrowserActions:
        if self.browser is None:
            raise CapabilityUnavailableError(
                f"Cannot execute step type: {step_type} - browser surface not available",
                capability="browser",
            )
        return self.browser

    def sub(self, template: Any) -> str:
        """Shorthand for ``scope.substitute``; None becomes ''."""
        if template is None:
            return ""
        return self.scope.substitute(str(template))


Handler = Callable[[Any, IOSurface], Awaitable[StepResult]]


def _default_handlers() -> dict[str, Handler]:
    from loopwright.engine.handlers import ai, api, browser, data, discord, enterprise, slack, twitter

    handlers: dict[str, Handler] = {}
    for module in (browser, data, api, ai, twitter, slack, discord, enterprise):
        handlers.update({cls.step_type: fn for cls, fn in module.HANDLERS.items()})
    return handlers


class StepDispatcher:
    """Exhaustive switch from step type to handler."""

    def __init__(self, handlers: dict[str, Handler] | None = None) -> None:
        self._handlers = handlers if handlers is not None else _default_handlers()

    def unhandled_step_types(self) -> set[str]:
        """Registered step kinds with no handler (always empty for the default table)."""
        return set(STEP_TYPES) - set(self._handlers)

    async def execute(self, step: Step, io: IOSurface) -> StepResult:
        handler = self._handlers.get(step.type)
        if handler is None:
            raise GraphConfigurationError(f"No handler registered for step type: {step.type}")

        feature = ENTERPRISE_STEP_FEATURES.get(step.type)
        if feature is not None and io.edition != "enterprise":
            raise CapabilityUnavailableError(
                f"Step type '{step.type}' requires the enterprise edition ({feature} is not available)",
                capability=feature,
            )

        logger.debug("Dispatching step %s (%s)", step.id or "?", step.type)
        result = await handler(step, io)
        if result is None:
            result = StepResult()

        store_key = getattr(step, "store_key", None)
        if store_key:
            io.scope.set(store_key, result.store_value)
            logger.debug("Stored %s result in variable: %s", step.type, store_key)
        return result
