"""DOM step handlers -- thin wrappers over the injected browser surface."""

from __future__ import annotations

import base64
import logging
from pathlib import Path

from loopwright.credentials import require_credential
from loopwright.engine.conditions import OPERATORS, compare_values
from loopwright.engine.dispatcher import IOSurface, StepResult
from loopwright.engine.steps import (
    Click,
    Extract,
    ExtractWithLogic,
    FileUpload,
    Hover,
    Navigate,
    Screenshot,
    Scroll,
    SelectOption,
    TypeText,
    Wait,
)
from loopwright.engine.variables import parse_float
from loopwright.errors import GraphConfigurationError

logger = logging.getLogger("loopwright.engine.handlers.browser")


async def navigate(step: Navigate, io: IOSurface) -> StepResult:
    url = io.sub(step.value)
    if not url:
        raise GraphConfigurationError("Navigate step requires a URL")
    await io.require_browser(step.type).navigate(url)
    return StepResult(value=url)


async def click(step: Click, io: IOSurface) -> StepResult:
    selector = io.sub(step.selector)
    await io.require_browser(step.type).click(selector)
    return StepResult()


async def type_text(step: TypeText, io: IOSurface) -> StepResult:
    selector = io.sub(step.selector)
    text = io.sub(step.value)
    if step.credential_id:
        credential = require_credential(io.credentials, io.sub(step.credential_id))
        text = credential.first("password", "value", "token", "apiKey") or text
    await io.require_browser(step.type).type(selector, text)
    return StepResult()


async def wait(step: Wait, io: IOSurface) -> StepResult:
    seconds = parse_float(io.sub(step.value)) or 0.0
    seconds = max(0.0, seconds)
    logger.debug("Waiting for %s seconds", seconds)
    await io.sleep(seconds)
    return StepResult(value=seconds)


async def screenshot(step: Screenshot, io: IOSurface) -> StepResult:
    png = await io.require_browser(step.type).screenshot()
    if step.save_path:
        path = Path(io.sub(step.save_path))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(png)
        logger.info("Screenshot saved to: %s", path)
    return StepResult(value=base64.b64encode(png).decode("ascii"))


async def extract(step: Extract, io: IOSurface) -> StepResult:
    selector = io.sub(step.selector)
    text = await io.require_browser(step.type).extract_text(selector)
    logger.debug("Extracted %r from %s", text, selector)
    return StepResult(value=text)


async def extract_with_logic(step: ExtractWithLogic, io: IOSurface) -> StepResult:
    """Read an element's text and test it; a missing element reads as "".

    Comparison is on the raw text; ``greaterThan``/``lessThan`` parse both
    sides as floats and are False when either side is not a number.
    """
    operator = step.condition or "equals"
    if operator not in OPERATORS:
        raise GraphConfigurationError(f"Unknown extractWithLogic condition: {operator}")
    selector = io.sub(step.selector)
    text = await io.require_browser(step.type).read_text(selector)
    expected = io.sub(step.expected_value)
    met = compare_values(text, expected, operator, parse_as_number=False)
    logger.debug("Extracted %r from %s; %s %r -> %s", text, selector, operator, expected, met)
    return StepResult(value={"value": text, "conditionMet": met})


async def scroll(step: Scroll, io: IOSurface) -> StepResult:
    browser = io.require_browser(step.type)
    if step.scroll_type == "byAmount":
        await browser.scroll_by(int(step.scroll_amount or 0))
    else:
        selector = io.sub(step.selector)
        if not selector:
            raise GraphConfigurationError("Scroll to element requires a selector")
        await browser.scroll_to(selector)
    return StepResult()


async def select_option(step: SelectOption, io: IOSurface) -> StepResult:
    selector = io.sub(step.selector)
    if step.option_value not in (None, ""):
        await io.require_browser(step.type).select_option(selector, value=io.sub(step.option_value))
    elif step.option_index is not None:
        await io.require_browser(step.type).select_option(selector, index=int(step.option_index))
    else:
        raise GraphConfigurationError("Select option step requires optionValue or optionIndex")
    return StepResult()


async def file_upload(step: FileUpload, io: IOSurface) -> StepResult:
    selector = io.sub(step.selector)
    path = io.sub(step.file_path)
    if not path:
        raise GraphConfigurationError("File upload step requires a filePath")
    await io.require_browser(step.type).upload_file(selector, path)
    return StepResult(value=path)


async def hover(step: Hover, io: IOSurface) -> StepResult:
    await io.require_browser(step.type).hover(io.sub(step.selector))
    return StepResult()


HANDLERS = {
    Navigate: navigate,
    Click: click,
    TypeText: type_text,
    Wait: wait,
    Screenshot: screenshot,
    Extract: extract,
    ExtractWithLogic: extract_with_logic,
    Scroll: scroll,
    SelectOption: select_option,
    FileUpload: file_upload,
    Hover: hover,
}
