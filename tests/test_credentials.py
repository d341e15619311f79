"""Unit tests for loopwright.credentials -- credential lookup and masking."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from loopwright.credentials import (
    Credential,
    CredentialLookup,
    DictCredentialLookup,
    FileCredentialLookup,
    describe,
    mask_key,
    require_credential,
)
from loopwright.errors import CapabilityUnavailableError, CredentialError


# ---------------------------------------------------------------------------
# 1. FileCredentialLookup
# ---------------------------------------------------------------------------

class TestFileCredentialLookup:
    """FileCredentialLookup should read credentials.yaml on every lookup."""

    def _write(self, path: Path, entries: list) -> None:
        path.write_text(yaml.dump({"credentials": entries}), encoding="utf-8")

    def test_finds_credential_by_id(self, tmp_path: Path):
        path = tmp_path / "credentials.yaml"
        self._write(path, [{"id": "slack-main", "type": "slack", "data": {"token": "xoxb-1"}}])
        credential = FileCredentialLookup(path).get_credential("slack-main")
        assert credential == Credential(id="slack-main", type="slack", data={"token": "xoxb-1"})

    def test_missing_file_returns_none(self, tmp_path: Path):
        assert FileCredentialLookup(tmp_path / "nope.yaml").get_credential("x") is None

    def test_unknown_id_returns_none(self, tmp_path: Path):
        path = tmp_path / "credentials.yaml"
        self._write(path, [{"id": "a", "type": "custom"}])
        assert FileCredentialLookup(path).get_credential("b") is None

    def test_edits_apply_without_reload(self, tmp_path: Path):
        path = tmp_path / "credentials.yaml"
        lookup = FileCredentialLookup(path)
        self._write(path, [{"id": "k", "type": "openai", "data": {"apiKey": "one"}}])
        assert lookup.get_credential("k").first("apiKey") == "one"
        self._write(path, [{"id": "k", "type": "openai", "data": {"apiKey": "two"}}])
        assert lookup.get_credential("k").first("apiKey") == "two"

    def test_malformed_entries_are_skipped(self, tmp_path: Path):
        path = tmp_path / "credentials.yaml"
        self._write(path, ["just a string", {"type": "no-id"}, {"id": "ok"}])
        credential = FileCredentialLookup(path).get_credential("ok")
        assert credential is not None
        assert credential.type == "custom"

    def test_values_are_stringified(self, tmp_path: Path):
        path = tmp_path / "credentials.yaml"
        self._write(path, [{"id": "n", "type": "custom", "data": {"pin": 1234}}])
        assert FileCredentialLookup(path).get_credential("n").data == {"pin": "1234"}

    def test_satisfies_protocol(self, tmp_path: Path):
        assert isinstance(FileCredentialLookup(tmp_path / "c.yaml"), CredentialLookup)
        assert isinstance(DictCredentialLookup(), CredentialLookup)


# ---------------------------------------------------------------------------
# 2. require_credential()
# ---------------------------------------------------------------------------

class TestRequireCredential:
    def test_returns_credential(self, credentials):
        assert require_credential(credentials, "slack").type == "slack"

    def test_missing_raises_with_label(self, credentials):
        with pytest.raises(CredentialError, match="Slack credential not found: nope"):
            require_credential(credentials, "nope", label="Slack credential")

    def test_no_lookup_raises(self):
        with pytest.raises(CredentialError):
            require_credential(None, "x")

    def test_wrong_type_raises(self, credentials):
        with pytest.raises(CredentialError, match="expected 'twitter'"):
            require_credential(credentials, "slack", expected_type="twitter")

    def test_is_a_capability_error(self):
        assert issubclass(CredentialError, CapabilityUnavailableError)


# ---------------------------------------------------------------------------
# 3. Masking
# ---------------------------------------------------------------------------

class TestMasking:
    def test_mask_long_key(self):
        assert mask_key("sk-ant-api03-abcdefXYZ") == "sk-ant-...XYZ"

    def test_mask_short_key(self):
        assert mask_key("short") == "***"

    def test_describe_masks_every_value(self):
        credential = Credential(id="c", type="openai", data={"apiKey": "sk-test-openai-key-123", "org": "x"})
        view = describe(credential)
        assert view["data"] == {"apiKey": "sk-test...123", "org": "***"}
        assert "sk-test-openai-key-123" not in str(view)

    def test_first_skips_empty_values(self):
        credential = Credential(id="c", type="custom", data={"a": "", "b": "val"})
        assert credential.first("a", "b") == "val"
        assert credential.first("z") == ""
