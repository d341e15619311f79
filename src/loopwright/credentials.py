"""Credential lookup for Loopwright steps.

The engine never stores or decrypts secrets itself. Steps that reference a
``credentialId`` resolve it through any object implementing
:class:`CredentialLookup`. A YAML-backed lookup is provided for local use;
hosts with an encrypted vault plug in their own implementation.

credentials.yaml layout::

    credentials:
      - id: slack-main
        type: slack
        data:
          token: xoxb-...
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from loopwright.errors import CredentialError

logger = logging.getLogger("loopwright.credentials")


@dataclasses.dataclass
class Credential:
    """A resolved credential record."""

    id: str
    type: str
    data: dict[str, str] = dataclasses.field(default_factory=dict)

    def first(self, *keys: str) -> str:
        """Return the first non-empty value among ``keys``, or ''."""
        for key in keys:
            value = self.data.get(key)
            if value:
                return str(value)
        return ""


@runtime_checkable
class CredentialLookup(Protocol):
    """Resolve a credential by id. Returns None when no such credential exists."""

    def get_credential(self, credential_id: str) -> Credential | None: ...


class DictCredentialLookup:
    """In-memory lookup, mainly for tests and embedding hosts."""

    def __init__(self, credentials: dict[str, Credential] | None = None) -> None:
        self._credentials = dict(credentials or {})

    def add(self, credential: Credential) -> None:
        self._credentials[credential.id] = credential

    def get_credential(self, credential_id: str) -> Credential | None:
        return self._credentials.get(credential_id)


class FileCredentialLookup:
    """Reads credentials from a YAML file on each lookup so edits apply immediately."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def get_credential(self, credential_id: str) -> Credential | None:
        for credential in self._load():
            if credential.id == credential_id:
                return credential
        return None

    def _load(self) -> list[Credential]:
        if not self._path.exists():
            return []
        with open(self._path) as f:
            data = yaml.safe_load(f) or {}
        entries = data.get("credentials", []) if isinstance(data, dict) else []
        credentials: list[Credential] = []
        for entry in entries:
            if not isinstance(entry, dict) or "id" not in entry:
                logger.warning("Ignoring malformed credential entry in %s", self._path)
                continue
            credentials.append(
                Credential(
                    id=str(entry["id"]),
                    type=str(entry.get("type", "custom")),
                    data={str(k): str(v) for k, v in (entry.get("data") or {}).items()},
                )
            )
        return credentials


def require_credential(
    lookup: CredentialLookup | None,
    credential_id: str,
    expected_type: str | None = None,
    label: str = "Credential",
) -> Credential:
    """Resolve ``credential_id`` or raise CredentialError.

    Raised before any outbound call is attempted, so a missing credential
    never produces a request.
    """
    credential = lookup.get_credential(credential_id) if lookup is not None else None
    if credential is None:
        raise CredentialError(f"{label} not found: {credential_id}", capability="credential")
    if expected_type is not None and credential.type != expected_type:
        raise CredentialError(
            f"Invalid or missing {label}: {credential_id} has type {credential.type!r}, "
            f"expected {expected_type!r}",
            capability="credential",
        )
    return credential


def mask_key(key: str) -> str:
    """Mask a secret for display. Shows first 7 and last 3 chars."""
    if len(key) <= 10:
        return "***"
    return f"{key[:7]}...{key[-3:]}"


def describe(credential: Credential) -> dict[str, Any]:
    """Return a log-safe view of a credential."""
    return {
        "id": credential.id,
        "type": credential.type,
        "data": {k: mask_key(v) for k, v in credential.data.items()},
    }
