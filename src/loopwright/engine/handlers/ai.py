"""AI completion step handlers (OpenAI, Anthropic, Ollama).

Deterministic defaults unless the step overrides them: temperature 0,
max_tokens 256, a single non-streamed completion, no tool use. Timeouts are
clamped to [1s, 120s] per request.

Keys come from ``credentialId`` (looked up in the credential store) or the
step's ``apiKey`` field. A missing key fails the node before any request is
made. Ollama runs locally and needs no key.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any

from loopwright.credentials import mask_key, require_credential
from loopwright.engine.dispatcher import IOSurface, StepResult
from loopwright.engine.handlers.common import clamp, dig, ensure_ok
from loopwright.engine.steps import AiAnthropic, AiOllama, AiOpenAI, AiStep
from loopwright.errors import CredentialError, GraphConfigurationError, StepExecutionError
from loopwright.models import (
    AI_BASE_URLS,
    AI_DEFAULT_MAX_TOKENS,
    AI_DEFAULT_TEMPERATURE,
    AI_DEFAULT_TIMEOUT_MS,
    AI_MAX_TIMEOUT_MS,
    AI_MAX_TOKENS_LIMIT,
    AI_MIN_TIMEOUT_MS,
)

logger = logging.getLogger("loopwright.engine.handlers.ai")

_PROVIDER_LABELS = {"openai": "OpenAI", "anthropic": "Anthropic", "ollama": "Ollama"}


@dataclasses.dataclass
class CompletionRequest:
    """Normalized, substituted and clamped inputs for one completion call."""

    label: str
    prompt: str
    system_prompt: str
    model: str
    temperature: float
    max_tokens: int
    top_p: float | None
    timeout_ms: int
    base_url: str

    @classmethod
    def from_step(cls, step: AiStep, io: IOSurface) -> CompletionRequest:
        label = _PROVIDER_LABELS[step.provider]
        prompt = io.sub(step.prompt).strip()
        model = io.sub(step.model).strip()
        if not prompt:
            raise GraphConfigurationError(f"{label} step requires a prompt")
        if not model:
            raise GraphConfigurationError(f"{label} step requires a model")

        temperature = step.temperature if step.temperature is not None else AI_DEFAULT_TEMPERATURE
        max_tokens = step.max_tokens if step.max_tokens is not None else AI_DEFAULT_MAX_TOKENS
        timeout_ms = step.timeout_ms if step.timeout_ms is not None else AI_DEFAULT_TIMEOUT_MS
        base_url = io.sub(step.base_url).strip() or AI_BASE_URLS[step.provider]
        return cls(
            label=label,
            prompt=prompt,
            system_prompt=io.sub(step.system_prompt).strip(),
            model=model,
            temperature=clamp(float(temperature), 0.0, 1.0),
            max_tokens=int(clamp(int(max_tokens), 1, AI_MAX_TOKENS_LIMIT)),
            top_p=None if step.top_p is None else clamp(float(step.top_p), 0.0, 1.0),
            timeout_ms=int(clamp(int(timeout_ms), AI_MIN_TIMEOUT_MS, AI_MAX_TIMEOUT_MS)),
            base_url=base_url.rstrip("/"),
        )

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000


def resolve_api_key(step: AiStep, io: IOSurface) -> str:
    """Return the key from the referenced credential or the step's apiKey field."""
    label = _PROVIDER_LABELS[step.provider]
    if step.credential_id:
        credential = require_credential(io.credentials, io.sub(step.credential_id), label=f"{label} credential")
        key = credential.first("apiKey", "key", "token", "accessToken")
        if not key:
            raise CredentialError(f"{label} credential is missing an API key value", capability="credential")
        return io.sub(key)
    if step.api_key:
        return io.sub(step.api_key)
    raise CredentialError(f"API key is required for {label}", capability="credential")


async def ai_openai(step: AiOpenAI, io: IOSurface) -> StepResult:
    req = CompletionRequest.from_step(step, io)
    api_key = resolve_api_key(step, io)
    logger.debug("OpenAI request model=%s key=%s prompt_len=%d", req.model, mask_key(api_key), len(req.prompt))

    messages: list[dict[str, str]] = []
    if req.system_prompt:
        messages.append({"role": "system", "content": req.system_prompt})
    messages.append({"role": "user", "content": req.prompt})
    payload: dict[str, Any] = {
        "model": req.model,
        "messages": messages,
        "temperature": req.temperature,
        "max_tokens": req.max_tokens,
        "n": 1,
        "stream": False,
    }
    if req.top_p is not None:
        payload["top_p"] = req.top_p

    response = await io.http.request(
        "POST",
        f"{req.base_url}/chat/completions",
        headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        json_body=payload,
        timeout=req.timeout,
    )
    content = dig(ensure_ok(response, "OpenAI request"), "choices", 0, "message", "content")
    if not content:
        raise StepExecutionError("OpenAI returned an empty response")
    return StepResult(value=content.strip() if isinstance(content, str) else content)


def _anthropic_complete(req: CompletionRequest, api_key: str) -> str:
    import anthropic

    client = anthropic.Anthropic(api_key=api_key, base_url=req.base_url, timeout=req.timeout, max_retries=0)
    kwargs: dict[str, Any] = {
        "model": req.model,
        "max_tokens": req.max_tokens,
        "temperature": req.temperature,
        "messages": [{"role": "user", "content": req.prompt}],
    }
    if req.system_prompt:
        kwargs["system"] = req.system_prompt
    if req.top_p is not None:
        kwargs["top_p"] = req.top_p
    try:
        response = client.messages.create(**kwargs)
    except anthropic.APIError as exc:
        raise StepExecutionError(f"Anthropic request failed: {exc}") from exc

    raw_text = ""
    for block in response.content:
        if hasattr(block, "text"):
            raw_text += block.text
    return raw_text


async def ai_anthropic(step: AiAnthropic, io: IOSurface) -> StepResult:
    req = CompletionRequest.from_step(step, io)
    api_key = resolve_api_key(step, io)
    logger.debug("Anthropic request model=%s key=%s prompt_len=%d", req.model, mask_key(api_key), len(req.prompt))
    text = await asyncio.to_thread(_anthropic_complete, req, api_key)
    if not text.strip():
        raise StepExecutionError("Anthropic returned an empty response")
    return StepResult(value=text.strip())


async def ai_ollama(step: AiOllama, io: IOSurface) -> StepResult:
    req = CompletionRequest.from_step(step, io)
    messages: list[dict[str, str]] = []
    if req.system_prompt:
        messages.append({"role": "system", "content": req.system_prompt})
    messages.append({"role": "user", "content": req.prompt})
    options: dict[str, Any] = {"temperature": req.temperature, "num_predict": req.max_tokens}
    if req.top_p is not None:
        options["top_p"] = req.top_p

    response = await io.http.request(
        "POST",
        f"{req.base_url}/api/chat",
        headers={"Content-Type": "application/json"},
        json_body={"model": req.model, "messages": messages, "stream": False, "options": options},
        timeout=req.timeout,
    )
    data = ensure_ok(response, "Ollama request")
    content = dig(data, "message", "content") or dig(data, "response")
    if not content:
        raise StepExecutionError("Ollama returned an empty response")
    return StepResult(value=str(content).strip())


HANDLERS = {
    AiOpenAI: ai_openai,
    AiAnthropic: ai_anthropic,
    AiOllama: ai_ollama,
}
