"""OAuth 1.0a request signing (HMAC-SHA1) for the Twitter steps."""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
import urllib.parse


def percent_encode(value: str) -> str:
    """RFC 3986 encoding: everything but unreserved characters is escaped."""
    return urllib.parse.quote(str(value), safe="")


def generate_nonce() -> str:
    return secrets.token_hex(16)


def signature_base_string(method: str, url: str, params: dict[str, str]) -> str:
    """``METHOD&enc(base_url)&enc(sorted, encoded params)``.

    Query parameters on ``url`` are folded into ``params``; the base URL is
    the URL without its query string.
    """
    parts = urllib.parse.urlsplit(url)
    base_url = urllib.parse.urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    all_params = dict(params)
    for key, value in urllib.parse.parse_qsl(parts.query, keep_blank_values=True):
        all_params[key] = value
    encoded = sorted((percent_encode(k), percent_encode(v)) for k, v in all_params.items())
    param_string = "&".join(f"{k}={v}" for k, v in encoded)
    return "&".join([method.upper(), percent_encode(base_url), percent_encode(param_string)])


def sign(base_string: str, consumer_secret: str, token_secret: str) -> str:
    key = f"{percent_encode(consumer_secret)}&{percent_encode(token_secret)}"
    digest = hmac.new(key.encode("utf-8"), base_string.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def build_oauth_header(
    method: str,
    url: str,
    consumer_key: str,
    consumer_secret: str,
    token: str,
    token_secret: str,
    *,
    nonce: str | None = None,
    timestamp: str | int | None = None,
) -> str:
    """Return the ``Authorization`` header value for one request.

    Only URL query parameters take part in the signature; JSON bodies do not.
    """
    oauth_params = {
        "oauth_consumer_key": consumer_key,
        "oauth_nonce": nonce or generate_nonce(),
        "oauth_signature_method": "HMAC-SHA1",
        "oauth_timestamp": str(timestamp if timestamp is not None else int(time.time())),
        "oauth_token": token,
        "oauth_version": "1.0",
    }
    base_string = signature_base_string(method, url, oauth_params)
    oauth_params["oauth_signature"] = sign(base_string, consumer_secret, token_secret)
    header_params = ", ".join(
        f'{percent_encode(k)}="{percent_encode(v)}"' for k, v in sorted(oauth_params.items())
    )
    return f"OAuth {header_params}"
