"""Slack Web API step handlers.

Every Slack response carries ``ok``; ``ok: false`` becomes a
``StepExecutionError("Slack API Error: <error>")`` regardless of HTTP status.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from loopwright.engine.dispatcher import IOSurface, StepResult
from loopwright.engine.handlers.common import dig, ensure_ok, parse_json_text
from loopwright.engine.steps import (
    SlackAddReaction,
    SlackArchiveChannel,
    SlackCreateChannel,
    SlackDeleteMessage,
    SlackGetChannel,
    SlackGetHistory,
    SlackGetUser,
    SlackInviteUsers,
    SlackListChannels,
    SlackListMembers,
    SlackListUsers,
    SlackSendMessage,
    SlackSetTopic,
    SlackStep,
    SlackUnarchiveChannel,
    SlackUpdateMessage,
    SlackUploadFile,
)
from loopwright.errors import CredentialError, GraphConfigurationError, StepExecutionError
from loopwright.models import SLACK_API_BASE

logger = logging.getLogger("loopwright.engine.handlers.slack")


def resolve_token(step: SlackStep, io: IOSurface) -> str:
    token = ""
    if step.credential_id:
        credential = io.credentials.get_credential(io.sub(step.credential_id)) if io.credentials else None
        if credential is not None and credential.type == "slack":
            token = credential.first("token", "botToken", "apiToken")
    if not token:
        token = io.sub(step.api_token) or io.sub(step.bot_token)
    if not token:
        raise CredentialError("Slack token is required", capability="credential")
    return token


async def _slack(
    io: IOSurface,
    token: str,
    endpoint: str,
    *,
    payload: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    method = "GET" if params is not None else "POST"
    response = await io.http.request(
        method,
        f"{SLACK_API_BASE}/{endpoint}",
        headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json; charset=utf-8"},
        params={k: v for k, v in (params or {}).items() if v is not None} or None,
        json_body=payload,
    )
    data = ensure_ok(response, f"Slack {endpoint}")
    if not isinstance(data, dict) or not data.get("ok"):
        error = data.get("error", "unknown_error") if isinstance(data, dict) else "invalid_response"
        raise StepExecutionError(f"Slack API Error: {error}")
    return data


def _blocks(raw: str | None, io: IOSurface) -> Any:
    if not raw:
        return None
    return parse_json_text(io.sub(raw), "Invalid blocks JSON")


def _require(value: str, what: str) -> str:
    if not value:
        raise GraphConfigurationError(f"{what} is required")
    return value


async def send_message(step: SlackSendMessage, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    payload: dict[str, Any] = {
        "channel": _require(io.sub(step.channel_id), "Channel ID"),
        "text": io.sub(step.text),
    }
    if step.thread_ts:
        payload["thread_ts"] = io.sub(step.thread_ts)
        if step.reply_broadcast is not None:
            payload["reply_broadcast"] = step.reply_broadcast
    if step.mrkdwn is not None:
        payload["mrkdwn"] = step.mrkdwn
    blocks = _blocks(step.blocks_json, io)
    if blocks is not None:
        payload["blocks"] = blocks
    data = await _slack(io, token, "chat.postMessage", payload=payload)
    logger.info("Slack message posted to %s (ts=%s)", payload["channel"], data.get("ts"))
    return StepResult(value=data)


async def update_message(step: SlackUpdateMessage, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    payload: dict[str, Any] = {
        "channel": _require(io.sub(step.channel_id), "Channel ID"),
        "ts": _require(io.sub(step.timestamp), "Message timestamp"),
        "text": io.sub(step.text),
    }
    blocks = _blocks(step.blocks_json, io)
    if blocks is not None:
        payload["blocks"] = blocks
    return StepResult(value=await _slack(io, token, "chat.update", payload=payload))


async def delete_message(step: SlackDeleteMessage, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    payload = {
        "channel": _require(io.sub(step.channel_id), "Channel ID"),
        "ts": _require(io.sub(step.timestamp), "Message timestamp"),
    }
    return StepResult(value=await _slack(io, token, "chat.delete", payload=payload))


async def create_channel(step: SlackCreateChannel, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    name = _require(io.sub(step.channel_name), "Channel name")
    data = await _slack(io, token, "conversations.create", payload={"name": name, "is_private": bool(step.is_private)})
    description = io.sub(step.channel_description)
    channel_id = dig(data, "channel", "id")
    if description and channel_id:
        await _slack(io, token, "conversations.setPurpose", payload={"channel": channel_id, "purpose": description})
    return StepResult(value=data)


async def get_channel(step: SlackGetChannel, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    params = {
        "channel": _require(io.sub(step.channel_id), "Channel ID"),
        "include_num_members": "true" if step.include_num_members else "false",
    }
    return StepResult(value=await _slack(io, token, "conversations.info", params=params))


async def list_channels(step: SlackListChannels, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    params = {
        "limit": step.limit or 100,
        "exclude_archived": "false" if step.exclude_archived is False else "true",
        "types": io.sub(step.types) or "public_channel",
    }
    return StepResult(value=await _slack(io, token, "conversations.list", params=params))


async def invite_users(step: SlackInviteUsers, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    if isinstance(step.user_ids, list):
        users = [io.sub(u).strip() for u in step.user_ids]
    else:
        users = [u.strip() for u in io.sub(step.user_ids).split(",")]
    users = [u for u in users if u]
    if not users:
        raise GraphConfigurationError("At least one user ID is required")
    payload = {"channel": _require(io.sub(step.channel_id), "Channel ID"), "users": ",".join(users)}
    return StepResult(value=await _slack(io, token, "conversations.invite", payload=payload))


async def list_members(step: SlackListMembers, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    params = {"channel": _require(io.sub(step.channel_id), "Channel ID"), "limit": step.limit or 100}
    return StepResult(value=await _slack(io, token, "conversations.members", params=params))


async def set_topic(step: SlackSetTopic, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    payload = {"channel": _require(io.sub(step.channel_id), "Channel ID"), "topic": io.sub(step.topic)}
    return StepResult(value=await _slack(io, token, "conversations.setTopic", payload=payload))


async def archive_channel(step: SlackArchiveChannel, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    payload = {"channel": _require(io.sub(step.channel_id), "Channel ID")}
    return StepResult(value=await _slack(io, token, "conversations.archive", payload=payload))


async def unarchive_channel(step: SlackUnarchiveChannel, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    payload = {"channel": _require(io.sub(step.channel_id), "Channel ID")}
    return StepResult(value=await _slack(io, token, "conversations.unarchive", payload=payload))


async def get_history(step: SlackGetHistory, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    params = {
        "channel": _require(io.sub(step.channel_id), "Channel ID"),
        "limit": step.limit or 100,
        "oldest": io.sub(step.oldest_timestamp) or None,
        "latest": io.sub(step.latest_timestamp) or None,
    }
    return StepResult(value=await _slack(io, token, "conversations.history", params=params))


async def add_reaction(step: SlackAddReaction, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    payload = {
        "channel": _require(io.sub(step.channel_id), "Channel ID"),
        "timestamp": _require(io.sub(step.timestamp), "Message timestamp"),
        "name": _require(io.sub(step.reaction_emoji).replace(":", ""), "Emoji"),
    }
    return StepResult(value=await _slack(io, token, "reactions.add", payload=payload))


async def get_user(step: SlackGetUser, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    params = {"user": _require(io.sub(step.user_id), "User ID")}
    return StepResult(value=await _slack(io, token, "users.info", params=params))


async def list_users(step: SlackListUsers, io: IOSurface) -> StepResult:
    token = resolve_token(step, io)
    return StepResult(value=await _slack(io, token, "users.list", params={"limit": step.limit or 100}))


async def upload_file(step: SlackUploadFile, io: IOSurface) -> StepResult:
    """Three-call external upload: reserve a URL, push the bytes, then share it."""
    token = resolve_token(step, io)
    channel = _require(io.sub(step.channel_id), "Channel ID")
    path = Path(_require(io.sub(step.file_path), "File path"))
    if not path.is_file():
        raise StepExecutionError(f"File not found: {path}")
    content = path.read_bytes()
    filename = io.sub(step.file_name) or path.name

    reserved = await _slack(
        io, token, "files.getUploadURLExternal", params={"filename": filename, "length": len(content)}
    )
    upload_url = reserved.get("upload_url")
    file_id = reserved.get("file_id")
    if not upload_url or not file_id:
        raise StepExecutionError("Slack API Error: missing upload_url in files.getUploadURLExternal response")

    response = await io.http.request(
        "POST",
        upload_url,
        headers={"Content-Type": "application/octet-stream"},
        data=content,
    )
    ensure_ok(response, "Slack file upload")

    payload: dict[str, Any] = {
        "files": [{"id": file_id, "title": io.sub(step.title) or filename}],
        "channel_id": channel,
    }
    if step.initial_comment:
        payload["initial_comment"] = io.sub(step.initial_comment)
    data = await _slack(io, token, "files.completeUploadExternal", payload=payload)
    logger.info("Uploaded %s to Slack channel %s", filename, channel)
    return StepResult(value=data)


HANDLERS = {
    SlackSendMessage: send_message,
    SlackUpdateMessage: update_message,
    SlackDeleteMessage: delete_message,
    SlackCreateChannel: create_channel,
    SlackGetChannel: get_channel,
    SlackListChannels: list_channels,
    SlackInviteUsers: invite_users,
    SlackListMembers: list_members,
    SlackSetTopic: set_topic,
    SlackArchiveChannel: archive_channel,
    SlackUnarchiveChannel: unarchive_channel,
    SlackGetHistory: get_history,
    SlackAddReaction: add_reaction,
    SlackGetUser: get_user,
    SlackListUsers: list_users,
    SlackUploadFile: upload_file,
}
