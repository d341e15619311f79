"""Step records -- one dataclass per step kind.

Automation files store steps as camelCase JSON objects with a ``type``
discriminator. :func:`parse_step` turns one of those objects into the matching
dataclass; :meth:`Step.to_dict` goes back. The set of kinds is closed: every
class registered here must have a handler in the dispatcher, and an unknown
``type`` is a configuration error.
"""

from __future__ import annotations

import dataclasses
import re
import typing
from typing import Any, ClassVar

from loopwright.errors import GraphConfigurationError

STEP_TYPES: dict[str, type[Step]] = {}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def camel_to_snake(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def register(step_type: str):
    """Class decorator adding a step dataclass to :data:`STEP_TYPES`."""

    def decorator(cls: type[Step]) -> type[Step]:
        cls.step_type = step_type
        STEP_TYPES[step_type] = cls
        return cls

    return decorator


@dataclasses.dataclass
class Step:
    """Fields common to every step kind."""

    step_type: ClassVar[str] = ""

    id: str = ""
    description: str = ""

    @property
    def type(self) -> str:
        return self.step_type

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape, omitting unset optional fields."""
        data: dict[str, Any] = {"type": self.step_type}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[snake_to_camel(f.name)] = value
        return data


@dataclasses.dataclass
class StoresResult:
    store_key: str | None = None


# -- Browser steps -----------------------------------------------------------


@register("navigate")
@dataclasses.dataclass
class Navigate(Step):
    value: str = ""  # URL


@register("click")
@dataclasses.dataclass
class Click(Step):
    selector: str = ""


@register("type")
@dataclasses.dataclass
class TypeText(Step):
    selector: str = ""
    value: str = ""
    credential_id: str | None = None


@register("wait")
@dataclasses.dataclass
class Wait(Step):
    value: str = "1"  # seconds


@register("screenshot")
@dataclasses.dataclass
class Screenshot(StoresResult, Step):
    save_path: str | None = None


@register("extract")
@dataclasses.dataclass
class Extract(StoresResult, Step):
    selector: str = ""


@register("extractWithLogic")
@dataclasses.dataclass
class ExtractWithLogic(StoresResult, Step):
    selector: str = ""
    condition: str = "equals"  # equals | contains | greaterThan | lessThan
    expected_value: str = ""


@register("scroll")
@dataclasses.dataclass
class Scroll(Step):
    scroll_type: str = "toElement"  # toElement | byAmount
    selector: str | None = None
    scroll_amount: int | None = None


@register("selectOption")
@dataclasses.dataclass
class SelectOption(Step):
    selector: str = ""
    option_value: str | None = None
    option_index: int | None = None


@register("fileUpload")
@dataclasses.dataclass
class FileUpload(Step):
    selector: str = ""
    file_path: str = ""


@register("hover")
@dataclasses.dataclass
class Hover(Step):
    selector: str = ""


# -- Data steps --------------------------------------------------------------


@register("setVariable")
@dataclasses.dataclass
class SetVariable(Step):
    variable_name: str = ""
    value: str = ""


@register("modifyVariable")
@dataclasses.dataclass
class ModifyVariable(Step):
    variable_name: str = ""
    operation: str = "set"  # set | increment | decrement | append
    value: str = ""


@register("apiCall")
@dataclasses.dataclass
class ApiCall(StoresResult, Step):
    method: str = "GET"
    url: str = ""
    body: str | None = None
    headers: dict[str, str] | None = None


# -- AI steps ----------------------------------------------------------------


@dataclasses.dataclass
class AiStep(StoresResult, Step):
    provider: ClassVar[str] = ""

    prompt: str = ""
    model: str = ""
    system_prompt: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    timeout_ms: int | None = None
    base_url: str | None = None
    credential_id: str | None = None
    api_key: str | None = None


@register("aiOpenAI")
@dataclasses.dataclass
class AiOpenAI(AiStep):
    provider: ClassVar[str] = "openai"


@register("aiAnthropic")
@dataclasses.dataclass
class AiAnthropic(AiStep):
    provider: ClassVar[str] = "anthropic"


@register("aiOllama")
@dataclasses.dataclass
class AiOllama(AiStep):
    provider: ClassVar[str] = "ollama"


# -- Twitter / X -------------------------------------------------------------


@dataclasses.dataclass
class TwitterStep(StoresResult, Step):
    credential_id: str | None = None
    api_key: str | None = None
    api_secret: str | None = None
    access_token: str | None = None
    access_secret: str | None = None


@register("twitterCreateTweet")
@dataclasses.dataclass
class TwitterCreateTweet(TwitterStep):
    text: str = ""
    reply_to_tweet_id: str | None = None
    quote_tweet_id: str | None = None
    media_id: str | None = None


@register("twitterDeleteTweet")
@dataclasses.dataclass
class TwitterDeleteTweet(TwitterStep):
    tweet_id: str = ""


@register("twitterLikeTweet")
@dataclasses.dataclass
class TwitterLikeTweet(TwitterStep):
    tweet_id: str = ""


@register("twitterRetweet")
@dataclasses.dataclass
class TwitterRetweet(TwitterStep):
    tweet_id: str = ""


@register("twitterSearchTweets")
@dataclasses.dataclass
class TwitterSearchTweets(TwitterStep):
    search_query: str = ""
    max_results: int | None = None
    start_time: str | None = None
    end_time: str | None = None


@register("twitterSendDM")
@dataclasses.dataclass
class TwitterSendDM(TwitterStep):
    user_id: str = ""
    text: str = ""
    media_id: str | None = None


@register("twitterSearchUser")
@dataclasses.dataclass
class TwitterSearchUser(TwitterStep):
    username: str = ""


# -- Slack -------------------------------------------------------------------


@dataclasses.dataclass
class SlackStep(StoresResult, Step):
    credential_id: str | None = None
    api_token: str | None = None
    bot_token: str | None = None


@register("slackSendMessage")
@dataclasses.dataclass
class SlackSendMessage(SlackStep):
    channel_id: str = ""
    text: str = ""
    thread_ts: str | None = None
    reply_broadcast: bool | None = None
    mrkdwn: bool | None = None
    blocks_json: str | None = None


@register("slackUpdateMessage")
@dataclasses.dataclass
class SlackUpdateMessage(SlackStep):
    channel_id: str = ""
    text: str = ""
    timestamp: str = ""
    blocks_json: str | None = None


@register("slackDeleteMessage")
@dataclasses.dataclass
class SlackDeleteMessage(SlackStep):
    channel_id: str = ""
    timestamp: str = ""


@register("slackCreateChannel")
@dataclasses.dataclass
class SlackCreateChannel(SlackStep):
    channel_name: str = ""
    is_private: bool | None = None
    channel_description: str | None = None


@register("slackGetChannel")
@dataclasses.dataclass
class SlackGetChannel(SlackStep):
    channel_id: str = ""
    include_num_members: bool | None = None


@register("slackListChannels")
@dataclasses.dataclass
class SlackListChannels(SlackStep):
    limit: int | None = None
    exclude_archived: bool | None = None
    types: str | None = None


@register("slackInviteUsers")
@dataclasses.dataclass
class SlackInviteUsers(SlackStep):
    channel_id: str = ""
    user_ids: str | list[str] = ""


@register("slackListMembers")
@dataclasses.dataclass
class SlackListMembers(SlackStep):
    channel_id: str = ""
    limit: int | None = None


@register("slackSetTopic")
@dataclasses.dataclass
class SlackSetTopic(SlackStep):
    channel_id: str = ""
    topic: str = ""


@register("slackArchiveChannel")
@dataclasses.dataclass
class SlackArchiveChannel(SlackStep):
    channel_id: str = ""


@register("slackUnarchiveChannel")
@dataclasses.dataclass
class SlackUnarchiveChannel(SlackStep):
    channel_id: str = ""


@register("slackGetHistory")
@dataclasses.dataclass
class SlackGetHistory(SlackStep):
    channel_id: str = ""
    limit: int | None = None
    oldest_timestamp: str | None = None
    latest_timestamp: str | None = None


@register("slackAddReaction")
@dataclasses.dataclass
class SlackAddReaction(SlackStep):
    channel_id: str = ""
    timestamp: str = ""
    reaction_emoji: str = ""


@register("slackGetUser")
@dataclasses.dataclass
class SlackGetUser(SlackStep):
    user_id: str = ""


@register("slackListUsers")
@dataclasses.dataclass
class SlackListUsers(SlackStep):
    limit: int | None = None


@register("slackUploadFile")
@dataclasses.dataclass
class SlackUploadFile(SlackStep):
    channel_id: str = ""
    file_path: str = ""
    file_name: str | None = None
    title: str | None = None
    initial_comment: str | None = None


# -- Discord -----------------------------------------------------------------


@dataclasses.dataclass
class DiscordStep(StoresResult, Step):
    credential_id: str | None = None
    bot_token: str | None = None


@register("discordSendMessage")
@dataclasses.dataclass
class DiscordSendMessage(DiscordStep):
    channel_id: str = ""
    content: str = ""
    tts: bool = False


@register("discordSendWebhook")
@dataclasses.dataclass
class DiscordSendWebhook(DiscordStep):
    webhook_url: str = ""
    content: str = ""
    username: str | None = None
    avatar_url: str | None = None
    tts: bool = False
    embeds_json: str | None = None


@register("discordReactMessage")
@dataclasses.dataclass
class DiscordReactMessage(DiscordStep):
    channel_id: str = ""
    message_id: str = ""
    emoji: str = ""


@register("discordGetMessage")
@dataclasses.dataclass
class DiscordGetMessage(DiscordStep):
    channel_id: str = ""
    message_id: str = ""


@register("discordListMessages")
@dataclasses.dataclass
class DiscordListMessages(DiscordStep):
    channel_id: str = ""
    limit: int | None = None


@register("discordDeleteMessage")
@dataclasses.dataclass
class DiscordDeleteMessage(DiscordStep):
    channel_id: str = ""
    message_id: str = ""


# -- Outbound webhook and enterprise steps -----------------------------------


@register("webhook")
@dataclasses.dataclass
class Webhook(StoresResult, Step):
    url: str = ""
    method: str = "POST"
    headers: dict[str, str] | None = None
    body: str | None = None
    authentication: dict[str, Any] | None = None
    retry_policy: dict[str, Any] | None = None


@register("fileSystem")
@dataclasses.dataclass
class FileSystem(StoresResult, Step):
    operation: str = "read"  # read | write | copy | move | delete | exists
    source_path: str = ""
    destination_path: str | None = None
    content: str | None = None
    encoding: str = "utf-8"


@register("systemCommand")
@dataclasses.dataclass
class SystemCommand(StoresResult, Step):
    command: str = ""
    args: list[str] | None = None
    working_directory: str | None = None


@register("environmentVariable")
@dataclasses.dataclass
class EnvironmentVariable(StoresResult, Step):
    operation: str = "get"  # get | set
    variable_name: str = ""
    value: str | None = None


@register("dataTransform")
@dataclasses.dataclass
class DataTransform(StoresResult, Step):
    operation: str = "parse"  # parse | stringify | convert
    input_format: str = "json"
    output_format: str = "json"
    input: str = ""


@register("databaseQuery")
@dataclasses.dataclass
class DatabaseQuery(StoresResult, Step):
    database_type: str = ""
    connection_string: str = ""
    query: str = ""


@register("sendEmail")
@dataclasses.dataclass
class SendEmail(StoresResult, Step):
    smtp_host: str = ""
    smtp_port: int | None = None
    to: str = ""
    subject: str = ""
    body: str = ""


@register("readEmail")
@dataclasses.dataclass
class ReadEmail(StoresResult, Step):
    imap_host: str = ""
    imap_port: int | None = None
    mailbox: str = "INBOX"


@register("cloudStorage")
@dataclasses.dataclass
class CloudStorage(StoresResult, Step):
    provider: str = ""
    operation: str = ""
    bucket: str = ""
    key: str = ""
    local_path: str | None = None


# -- Parsing -----------------------------------------------------------------


def _coerce(value: Any, annotation: Any) -> Any:
    """Light coercion for values that arrive as strings from form editors."""
    if value is None:
        return None
    hint = annotation.__name__ if isinstance(annotation, type) else str(annotation)
    if hint == "str" and isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if "int" in hint and "str" not in hint and isinstance(value, str):
        try:
            return int(float(value)) if value.strip() else None
        except ValueError:
            return None
    if "float" in hint and isinstance(value, str):
        try:
            return float(value) if value.strip() else None
        except ValueError:
            return None
    if hint.startswith("bool") and isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return value


def parse_step(data: dict[str, Any]) -> Step:
    """Build the step dataclass for a camelCase JSON step object."""
    if not isinstance(data, dict):
        raise GraphConfigurationError(f"Step must be an object, got {type(data).__name__}")
    step_type = data.get("type")
    cls = STEP_TYPES.get(step_type or "")
    if cls is None:
        raise GraphConfigurationError(f"Unknown step type: {step_type}")

    hints = typing.get_type_hints(cls)
    field_names = {f.name for f in dataclasses.fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        name = camel_to_snake(key)
        if name in field_names:
            kwargs[name] = _coerce(value, hints.get(name, Any))
    if "id" in kwargs:
        kwargs["id"] = str(kwargs["id"])
    return cls(**kwargs)
