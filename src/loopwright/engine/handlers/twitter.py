"""Twitter (X) API v2 step handlers.

Every request is signed with OAuth 1.0a user context. Credentials come from a
``twitter`` credential record or from the four key fields on the step itself.
"""

from __future__ import annotations

import dataclasses
import logging
import urllib.parse
from typing import Any

from loopwright.engine.dispatcher import IOSurface, StepResult
from loopwright.engine.handlers.common import dig, ensure_ok
from loopwright.engine.oauth import build_oauth_header
from loopwright.engine.steps import (
    TwitterCreateTweet,
    TwitterDeleteTweet,
    TwitterLikeTweet,
    TwitterRetweet,
    TwitterSearchTweets,
    TwitterSearchUser,
    TwitterSendDM,
    TwitterStep,
)
from loopwright.errors import CredentialError, GraphConfigurationError, StepExecutionError
from loopwright.models import TWITTER_API_BASE

logger = logging.getLogger("loopwright.engine.handlers.twitter")

_CREDENTIAL_FIELDS = ("apiKey", "apiSecret", "accessToken", "accessSecret")


@dataclasses.dataclass(frozen=True)
class TwitterKeys:
    api_key: str
    api_secret: str
    access_token: str
    access_secret: str


def resolve_keys(step: TwitterStep, io: IOSurface) -> TwitterKeys:
    if step.credential_id:
        credential = io.credentials.get_credential(io.sub(step.credential_id)) if io.credentials else None
        if credential is None or credential.type != "twitter":
            raise CredentialError("Invalid or missing Twitter credential", capability="credential")
        values = [credential.first(name) for name in _CREDENTIAL_FIELDS]
    else:
        values = [io.sub(v) for v in (step.api_key, step.api_secret, step.access_token, step.access_secret)]
    if not all(values):
        raise CredentialError("Invalid or missing Twitter credential", capability="credential")
    return TwitterKeys(*values)


def extract_tweet_id(value: str) -> str:
    """Accept a bare id or a twitter.com / x.com status URL."""
    value = value.strip()
    if value.isdigit():
        return value
    try:
        parsed = urllib.parse.urlparse(value)
    except ValueError:
        return value
    host = (parsed.hostname or "").lower()
    if not (host in ("twitter.com", "x.com") or host.endswith((".twitter.com", ".x.com"))):
        return value
    parts = parsed.path.split("/")
    if len(parts) > 3 and parts[2] == "status" and parts[3].isdigit():
        return parts[3]
    return value


async def _request(
    io: IOSurface,
    keys: TwitterKeys,
    method: str,
    path: str,
    *,
    params: dict[str, Any] | None = None,
    json_body: Any = None,
) -> Any:
    url = f"{TWITTER_API_BASE}{path}"
    if params:
        url = f"{url}?{urllib.parse.urlencode(params, quote_via=urllib.parse.quote)}"
    headers = {
        "Authorization": build_oauth_header(
            method, url, keys.api_key, keys.api_secret, keys.access_token, keys.access_secret
        ),
        "Content-Type": "application/json",
    }
    response = await io.http.request(method, url, headers=headers, json_body=json_body)
    return ensure_ok(response, f"Twitter API {method} {path}")


async def _me(io: IOSurface, keys: TwitterKeys) -> str:
    user_id = dig(await _request(io, keys, "GET", "/users/me"), "data", "id")
    if not user_id:
        raise StepExecutionError("Could not resolve the authenticated Twitter user")
    return str(user_id)


async def create_tweet(step: TwitterCreateTweet, io: IOSurface) -> StepResult:
    keys = resolve_keys(step, io)
    text = io.sub(step.text)
    if not text:
        raise GraphConfigurationError("Tweet text is required")
    body: dict[str, Any] = {"text": text}
    if step.reply_to_tweet_id:
        body["reply"] = {"in_reply_to_tweet_id": extract_tweet_id(io.sub(step.reply_to_tweet_id))}
    if step.quote_tweet_id:
        body["quote_tweet_id"] = extract_tweet_id(io.sub(step.quote_tweet_id))
    if step.media_id:
        body["media"] = {"media_ids": [io.sub(step.media_id)]}
    data = await _request(io, keys, "POST", "/tweets", json_body=body)
    logger.info("Tweet created: %s", dig(data, "data", "id"))
    return StepResult(value=data)


async def delete_tweet(step: TwitterDeleteTweet, io: IOSurface) -> StepResult:
    keys = resolve_keys(step, io)
    tweet_id = extract_tweet_id(io.sub(step.tweet_id))
    return StepResult(value=await _request(io, keys, "DELETE", f"/tweets/{tweet_id}"))


async def like_tweet(step: TwitterLikeTweet, io: IOSurface) -> StepResult:
    keys = resolve_keys(step, io)
    user_id = await _me(io, keys)
    tweet_id = extract_tweet_id(io.sub(step.tweet_id))
    data = await _request(io, keys, "POST", f"/users/{user_id}/likes", json_body={"tweet_id": tweet_id})
    return StepResult(value=data)


async def retweet(step: TwitterRetweet, io: IOSurface) -> StepResult:
    keys = resolve_keys(step, io)
    user_id = await _me(io, keys)
    tweet_id = extract_tweet_id(io.sub(step.tweet_id))
    data = await _request(io, keys, "POST", f"/users/{user_id}/retweets", json_body={"tweet_id": tweet_id})
    return StepResult(value=data)


async def search_tweets(step: TwitterSearchTweets, io: IOSurface) -> StepResult:
    keys = resolve_keys(step, io)
    query = io.sub(step.search_query)
    if not query:
        raise GraphConfigurationError("Search query is required")
    params: dict[str, Any] = {"query": query, "max_results": step.max_results or 10}
    if step.start_time:
        params["start_time"] = io.sub(step.start_time)
    if step.end_time:
        params["end_time"] = io.sub(step.end_time)
    data = await _request(io, keys, "GET", "/tweets/search/recent", params=params)
    return StepResult.storing(data, dig(data, "data") or [])


async def send_dm(step: TwitterSendDM, io: IOSurface) -> StepResult:
    keys = resolve_keys(step, io)
    recipient = io.sub(step.user_id).strip()
    text = io.sub(step.text)
    if not recipient or not text:
        raise GraphConfigurationError("Direct message requires a userId and text")
    if not recipient.isdigit():
        username = recipient.lstrip("@")
        recipient = dig(await _request(io, keys, "GET", f"/users/by/username/{username}"), "data", "id")
        if not recipient:
            raise StepExecutionError(f"Twitter user not found: {username}")
    body: dict[str, Any] = {"text": text}
    if step.media_id:
        body["attachments"] = [{"media_id": io.sub(step.media_id)}]
    data = await _request(io, keys, "POST", f"/dm_conversations/with/{recipient}/messages", json_body=body)
    return StepResult(value=data)


async def search_user(step: TwitterSearchUser, io: IOSurface) -> StepResult:
    keys = resolve_keys(step, io)
    username = io.sub(step.username).strip().lstrip("@")
    if not username:
        raise GraphConfigurationError("Username is required")
    return StepResult(value=await _request(io, keys, "GET", f"/users/by/username/{username}"))


HANDLERS = {
    TwitterCreateTweet: create_tweet,
    TwitterDeleteTweet: delete_tweet,
    TwitterLikeTweet: like_tweet,
    TwitterRetweet: retweet,
    TwitterSearchTweets: search_tweets,
    TwitterSendDM: send_dm,
    TwitterSearchUser: search_user,
}
