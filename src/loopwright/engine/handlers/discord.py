"""Discord REST (bot token) and incoming-webhook step handlers."""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any

from loopwright.engine.dispatcher import IOSurface, StepResult
from loopwright.engine.handlers.common import ensure_ok, parse_json_text
from loopwright.engine.steps import (
    DiscordDeleteMessage,
    DiscordGetMessage,
    DiscordListMessages,
    DiscordReactMessage,
    DiscordSendMessage,
    DiscordSendWebhook,
    DiscordStep,
)
from loopwright.errors import CredentialError, GraphConfigurationError
from loopwright.models import DISCORD_API_BASE, DISCORD_DEFAULT_LIST_LIMIT, DISCORD_MAX_LIST_LIMIT

logger = logging.getLogger("loopwright.engine.handlers.discord")


def resolve_token(step: DiscordStep, io: IOSurface, action: str) -> str:
    token = ""
    if step.credential_id:
        credential = io.credentials.get_credential(io.sub(step.credential_id)) if io.credentials else None
        if credential is not None and credential.type == "discord":
            token = credential.first("botToken", "token")
    if not token:
        token = io.sub(step.bot_token)
    if not token:
        raise CredentialError(f"Discord bot token is required to {action}", capability="credential")
    return token


async def _discord(io: IOSurface, token: str, method: str, path: str, json_body: Any = None) -> Any:
    response = await io.http.request(
        method,
        f"{DISCORD_API_BASE}{path}",
        headers={"Authorization": f"Bot {token}", "Content-Type": "application/json"},
        json_body=json_body,
    )
    return ensure_ok(response, f"Discord API {method} {path}")


def _ids(io: IOSurface, channel_id: str, message_id: str | None = None) -> tuple[str, str]:
    channel = io.sub(channel_id)
    if not channel:
        raise GraphConfigurationError("Discord channel ID is required")
    message = ""
    if message_id is not None:
        message = io.sub(message_id)
        if not message:
            raise GraphConfigurationError("Discord message ID is required")
    return channel, message


async def send_message(step: DiscordSendMessage, io: IOSurface) -> StepResult:
    token = resolve_token(step, io, "send messages")
    channel, _ = _ids(io, step.channel_id)
    content = io.sub(step.content)
    if not content:
        raise GraphConfigurationError("Discord message content is required")
    data = await _discord(io, token, "POST", f"/channels/{channel}/messages", {"content": content, "tts": bool(step.tts)})
    logger.info("Discord message sent to channel %s", channel)
    return StepResult(value=data)


async def send_webhook(step: DiscordSendWebhook, io: IOSurface) -> StepResult:
    url = io.sub(step.webhook_url)
    if not url:
        raise GraphConfigurationError("Webhook URL is required for Discord webhook step")
    payload: dict[str, Any] = {"content": io.sub(step.content), "tts": bool(step.tts)}
    if step.username:
        payload["username"] = io.sub(step.username)
    if step.avatar_url:
        payload["avatar_url"] = io.sub(step.avatar_url)
    if step.embeds_json:
        payload["embeds"] = parse_json_text(io.sub(step.embeds_json), "Invalid embeds JSON for Discord webhook")
    response = await io.http.request("POST", url, headers={"Content-Type": "application/json"}, json_body=payload)
    body = ensure_ok(response, "Discord webhook")
    # Webhooks answer 204 with an empty body unless ?wait=true is set
    return StepResult(value=body if body != "" else {"success": True})


async def react_message(step: DiscordReactMessage, io: IOSurface) -> StepResult:
    token = resolve_token(step, io, "add reactions")
    channel, message = _ids(io, step.channel_id, step.message_id)
    emoji = io.sub(step.emoji)
    if not emoji:
        raise GraphConfigurationError("Emoji is required")
    encoded = urllib.parse.quote(emoji, safe="")
    await _discord(io, token, "PUT", f"/channels/{channel}/messages/{message}/reactions/{encoded}/@me")
    return StepResult(value={"success": True})


async def get_message(step: DiscordGetMessage, io: IOSurface) -> StepResult:
    token = resolve_token(step, io, "get messages")
    channel, message = _ids(io, step.channel_id, step.message_id)
    return StepResult(value=await _discord(io, token, "GET", f"/channels/{channel}/messages/{message}"))


async def list_messages(step: DiscordListMessages, io: IOSurface) -> StepResult:
    token = resolve_token(step, io, "list messages")
    channel, _ = _ids(io, step.channel_id)
    limit = min(step.limit, DISCORD_MAX_LIST_LIMIT) if step.limit and step.limit > 0 else DISCORD_DEFAULT_LIST_LIMIT
    return StepResult(value=await _discord(io, token, "GET", f"/channels/{channel}/messages?limit={limit}"))


async def delete_message(step: DiscordDeleteMessage, io: IOSurface) -> StepResult:
    token = resolve_token(step, io, "delete messages")
    channel, message = _ids(io, step.channel_id, step.message_id)
    await _discord(io, token, "DELETE", f"/channels/{channel}/messages/{message}")
    return StepResult(value={"success": True})


HANDLERS = {
    DiscordSendMessage: send_message,
    DiscordSendWebhook: send_webhook,
    DiscordReactMessage: react_message,
    DiscordGetMessage: get_message,
    DiscordListMessages: list_messages,
    DiscordDeleteMessage: delete_message,
}
