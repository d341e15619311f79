"""Unit tests for loopwright.engine.dispatcher and the browser/data/api handlers."""

from __future__ import annotations

import base64

import pytest

from fakes import run_async
from loopwright.engine.dispatcher import StepDispatcher, StepResult
from loopwright.engine.steps import STEP_TYPES, parse_step
from loopwright.errors import CapabilityUnavailableError, CredentialError, GraphConfigurationError, StepExecutionError


@pytest.fixture
def dispatcher() -> StepDispatcher:
    return StepDispatcher()


def execute(dispatcher, io, step_data):
    return run_async(dispatcher.execute(parse_step(step_data), io))


# ---------------------------------------------------------------------------
# 1. Routing
# ---------------------------------------------------------------------------

class TestRouting:
    def test_every_step_kind_has_a_handler(self, dispatcher):
        assert dispatcher.unhandled_step_types() == set()
        assert len(STEP_TYPES) > 50

    def test_missing_handler_is_configuration_error(self, make_io):
        empty = StepDispatcher(handlers={})
        with pytest.raises(GraphConfigurationError, match="No handler registered"):
            execute(empty, make_io(), {"type": "navigate", "value": "https://x"})

    def test_store_key_writes_result(self, dispatcher, make_io):
        io = make_io()
        execute(dispatcher, io, {"type": "extract", "selector": "h1", "storeKey": "title"})
        assert io.scope.get("title") == "Hello World"

    def test_extract_missing_element_fails_step(self, dispatcher, make_io):
        with pytest.raises(StepExecutionError, match="Element not found: #nope"):
            execute(dispatcher, make_io(), {"type": "extract", "selector": "#nope", "storeKey": "x"})

    def test_custom_handler_result_none_is_tolerated(self, make_io):
        async def noop(step, io):
            return None

        result = execute(StepDispatcher(handlers={"click": noop}), make_io(), {"type": "click", "selector": "a"})
        assert isinstance(result, StepResult)
        assert result.value is None


# ---------------------------------------------------------------------------
# 2. Edition gating
# ---------------------------------------------------------------------------

class TestEditionGating:
    @pytest.mark.parametrize("step_type", ["fileSystem", "systemCommand", "environmentVariable", "dataTransform"])
    def test_enterprise_steps_rejected_in_community(self, dispatcher, make_io, step_type):
        with pytest.raises(CapabilityUnavailableError, match="requires the enterprise edition") as exc_info:
            execute(dispatcher, make_io(), {"type": step_type})
        assert exc_info.value.capability

    def test_enterprise_step_allowed_in_enterprise(self, dispatcher, make_io, monkeypatch):
        monkeypatch.setenv("LOOPWRIGHT_TEST_VAR", "on")
        io = make_io(edition="enterprise")
        result = execute(
            dispatcher,
            io,
            {"type": "environmentVariable", "operation": "get", "variableName": "LOOPWRIGHT_TEST_VAR", "storeKey": "v"},
        )
        assert result.value == "on"
        assert io.scope.get("v") == "on"

    def test_webhook_is_not_gated(self, dispatcher, make_io, http):
        execute(dispatcher, make_io(), {"type": "webhook", "url": "https://hook"})
        assert http.last.method == "POST"


# ---------------------------------------------------------------------------
# 3. Variable steps
# ---------------------------------------------------------------------------

class TestVariableSteps:
    def test_set_variable_auto_types(self, dispatcher, make_io):
        io = make_io()
        execute(dispatcher, io, {"type": "setVariable", "variableName": "n", "value": "42"})
        assert io.scope.get("n") == 42

    def test_set_variable_substitutes(self, dispatcher, make_io):
        io = make_io({"name": "Ada"})
        execute(dispatcher, io, {"type": "setVariable", "variableName": "greeting", "value": "Hi {{name}}"})
        assert io.scope.get("greeting") == "Hi Ada"

    def test_set_variable_requires_name(self, dispatcher, make_io):
        with pytest.raises(GraphConfigurationError):
            execute(dispatcher, make_io(), {"type": "setVariable", "value": "1"})

    def test_increment_absent_variable_defaults(self, dispatcher, make_io):
        io = make_io()
        execute(dispatcher, io, {"type": "modifyVariable", "variableName": "i", "operation": "increment"})
        assert io.scope.get("i") == 1

    def test_decrement_by_amount(self, dispatcher, make_io):
        io = make_io({"i": 10})
        execute(dispatcher, io, {"type": "modifyVariable", "variableName": "i", "operation": "decrement", "value": "2.5"})
        assert io.scope.get("i") == 7.5

    def test_append(self, dispatcher, make_io):
        io = make_io({"s": "ab"})
        execute(dispatcher, io, {"type": "modifyVariable", "variableName": "s", "operation": "append", "value": "c"})
        assert io.scope.get("s") == "abc"

    def test_unknown_operation(self, dispatcher, make_io):
        with pytest.raises(GraphConfigurationError, match="Unknown modifyVariable operation"):
            execute(dispatcher, make_io(), {"type": "modifyVariable", "variableName": "x", "operation": "square"})


# ---------------------------------------------------------------------------
# 4. Browser steps
# ---------------------------------------------------------------------------

class TestBrowserSteps:
    def test_navigate_substitutes_url(self, dispatcher, make_io, browser):
        execute(dispatcher, make_io({"q": "shoes"}), {"type": "navigate", "value": "https://shop/?q={{q}}"})
        assert browser.url == "https://shop/?q=shoes"

    def test_browser_step_without_surface(self, dispatcher, make_io):
        with pytest.raises(CapabilityUnavailableError, match="browser surface not available"):
            execute(dispatcher, make_io(with_browser=False), {"type": "click", "selector": "a"})

    def test_type_uses_credential_password(self, dispatcher, make_io, browser):
        execute(dispatcher, make_io(), {"type": "type", "selector": "#pw", "value": "", "credentialId": "login"})
        assert browser.actions[-1] == ("type", "#pw", "hunter2")

    def test_type_with_missing_credential(self, dispatcher, make_io, browser):
        with pytest.raises(CredentialError):
            execute(dispatcher, make_io(), {"type": "type", "selector": "#pw", "credentialId": "nope"})
        assert browser.actions == []

    def test_wait_uses_injected_sleep(self, dispatcher, make_io):
        sleeps: list[float] = []
        execute(dispatcher, make_io(sleeps=sleeps), {"type": "wait", "value": "2"})
        assert sleeps == [2.0]

    def test_scroll_by_amount(self, dispatcher, make_io, browser):
        execute(dispatcher, make_io(), {"type": "scroll", "scrollType": "byAmount", "scrollAmount": 300})
        assert browser.actions[-1] == ("scroll_by", 300)

    def test_select_option_requires_value_or_index(self, dispatcher, make_io):
        with pytest.raises(GraphConfigurationError):
            execute(dispatcher, make_io(), {"type": "selectOption", "selector": "select"})

    def test_extract_with_logic_numeric(self, dispatcher, make_io, browser):
        browser.elements["#stock"] = "42"
        io = make_io({"minimum": 10})
        result = execute(
            dispatcher,
            io,
            {
                "type": "extractWithLogic",
                "selector": "#stock",
                "condition": "greaterThan",
                "expectedValue": "{{minimum}}",
                "storeKey": "stock",
            },
        )
        assert result.value == {"value": "42", "conditionMet": True}
        assert io.scope.get("stock") == {"value": "42", "conditionMet": True}

    def test_extract_with_logic_contains_and_equals(self, dispatcher, make_io):
        contains = execute(
            dispatcher,
            make_io(),
            {"type": "extractWithLogic", "selector": "h1", "condition": "contains", "expectedValue": "World"},
        )
        equals = execute(
            dispatcher,
            make_io(),
            {"type": "extractWithLogic", "selector": "h1", "condition": "equals", "expectedValue": "World"},
        )
        assert contains.value["conditionMet"] is True
        assert equals.value["conditionMet"] is False

    def test_extract_with_logic_missing_element_reads_empty(self, dispatcher, make_io):
        result = execute(
            dispatcher,
            make_io(),
            {"type": "extractWithLogic", "selector": "#gone", "condition": "lessThan", "expectedValue": 5},
        )
        assert result.value == {"value": "", "conditionMet": False}

    def test_extract_with_logic_unknown_condition(self, dispatcher, make_io):
        with pytest.raises(GraphConfigurationError, match="Unknown extractWithLogic condition"):
            execute(
                dispatcher,
                make_io(),
                {"type": "extractWithLogic", "selector": "h1", "condition": "between", "expectedValue": "1"},
            )

    def test_screenshot_stores_base64_and_saves(self, dispatcher, make_io, tmp_path):
        io = make_io()
        target = tmp_path / "shots" / "page.png"
        execute(dispatcher, io, {"type": "screenshot", "savePath": str(target), "storeKey": "shot"})
        assert target.read_bytes() == b"\x89PNG fake"
        assert base64.b64decode(io.scope.get("shot")) == b"\x89PNG fake"


# ---------------------------------------------------------------------------
# 5. apiCall and webhook
# ---------------------------------------------------------------------------

class TestApiCall:
    def test_json_body_and_headers(self, dispatcher, make_io, http):
        http.queue({"id": 7})
        io = make_io({"token": "t0k", "name": "Ada"})
        execute(
            dispatcher,
            io,
            {
                "type": "apiCall",
                "method": "post",
                "url": "https://api/users",
                "headers": {"Authorization": "Bearer {{token}}"},
                "body": '{"name": "{{name}}"}',
                "storeKey": "created",
            },
        )
        assert http.last.method == "POST"
        assert http.last.headers == {"Authorization": "Bearer t0k"}
        assert http.last.json_body == {"name": "Ada"}
        assert io.scope.get("created") == {"id": 7}

    def test_non_json_body_sent_as_text(self, dispatcher, make_io, http):
        execute(dispatcher, make_io(), {"type": "apiCall", "method": "POST", "url": "https://api", "body": "plain"})
        assert http.last.data == b"plain"
        assert http.last.json_body is None

    def test_http_error_raises(self, dispatcher, make_io, http):
        http.queue({"error": "nope"}, status_code=500)
        with pytest.raises(StepExecutionError, match="HTTP 500"):
            execute(dispatcher, make_io(), {"type": "apiCall", "url": "https://api"})


class TestWebhook:
    def test_retries_with_fixed_delay(self, dispatcher, make_io, http):
        http.queue("bad", status_code=503).queue("bad", status_code=503).queue({"ok": True})
        sleeps: list[float] = []
        result = execute(
            dispatcher,
            make_io(sleeps=sleeps),
            {"type": "webhook", "url": "https://hook", "retryPolicy": {"maxRetries": 2, "retryDelay": 250}},
        )
        assert result.value == {"ok": True}
        assert len(http.requests) == 3
        assert sleeps == [0.25, 0.25]

    def test_gives_up_after_retries(self, dispatcher, make_io, http):
        http.queue("bad", status_code=500).queue("bad", status_code=500)
        with pytest.raises(StepExecutionError, match="after 2 attempt"):
            execute(dispatcher, make_io(), {"type": "webhook", "url": "https://hook", "retryPolicy": {"maxRetries": 1}})

    def test_bearer_auth(self, dispatcher, make_io, http):
        execute(
            dispatcher,
            make_io({"t": "abc"}),
            {"type": "webhook", "url": "https://hook", "authentication": {"type": "bearer", "token": "{{t}}"}},
        )
        assert http.last.headers["Authorization"] == "Bearer abc"

    def test_invalid_json_body(self, dispatcher, make_io, http):
        with pytest.raises(StepExecutionError, match="valid JSON"):
            execute(dispatcher, make_io(), {"type": "webhook", "url": "https://hook", "body": "{oops"})
        assert http.requests == []
