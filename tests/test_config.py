"""Unit tests for loopwright.config -- LoopwrightConfig and related functions."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from loopwright.config import LoopwrightConfig, LoopwrightConfigError
from loopwright.models import DEFAULT_HTTP_TIMEOUT, DEFAULT_NAVIGATION_TIMEOUT_MS, DEFAULT_VIEWPORT


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("LOOPWRIGHT_EDITION", raising=False)
    monkeypatch.delenv("LOOPWRIGHT_HEADLESS", raising=False)


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

class TestLoopwrightConfigDefaults:
    """LoopwrightConfig should have sensible defaults for every field."""

    def test_default_edition_is_community(self):
        cfg = LoopwrightConfig()
        assert cfg.edition == "community"
        assert cfg.is_enterprise is False

    def test_default_viewport_matches_models_constant(self):
        assert LoopwrightConfig().viewport == DEFAULT_VIEWPORT

    def test_default_timeouts(self):
        cfg = LoopwrightConfig()
        assert cfg.navigation_timeout_ms == DEFAULT_NAVIGATION_TIMEOUT_MS
        assert cfg.http_timeout == DEFAULT_HTTP_TIMEOUT

    def test_default_headless_chromium(self):
        cfg = LoopwrightConfig()
        assert cfg.headless is True
        assert cfg.browser == "chromium"


# ---------------------------------------------------------------------------
# 2. from_file() -- happy path
# ---------------------------------------------------------------------------

class TestFromFile:
    """LoopwrightConfig.from_file() should load and parse valid YAML."""

    def test_from_file_with_valid_yaml(self, tmp_path: Path, sample_config_yaml: str):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(sample_config_yaml, encoding="utf-8")

        cfg = LoopwrightConfig.from_file(config_file)

        assert cfg.edition == "enterprise"
        assert cfg.is_enterprise is True
        assert cfg.headless is False
        assert cfg.browser == "firefox"
        assert cfg.viewport == (1920, 1080)
        assert cfg.navigation_timeout_ms == 15000
        assert cfg.http_timeout == 12.5
        # directories resolve relative to the config file
        assert cfg.project_dir == tmp_path
        assert cfg.automations_dir == tmp_path / "graphs"
        assert cfg.logs_dir == tmp_path / "history"
        assert cfg.schedules_dir == tmp_path / "schedules"

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("", encoding="utf-8")
        cfg = LoopwrightConfig.from_file(config_file)
        assert cfg.edition == "community"
        assert cfg.automations_dir == tmp_path / "automations"

    def test_project_fixture_loads(self, tmp_project_dir: Path):
        cfg = LoopwrightConfig.from_file(tmp_project_dir / "config.yaml")
        assert cfg.http_timeout == 10
        assert cfg.viewport == (1280, 720)


# ---------------------------------------------------------------------------
# 3. from_file() -- errors
# ---------------------------------------------------------------------------

class TestFromFileErrors:
    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(LoopwrightConfigError, match="Config file not found"):
            LoopwrightConfig.from_file(tmp_path / "nope.yaml")

    def test_non_mapping(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump(["a", "b"]), encoding="utf-8")
        with pytest.raises(LoopwrightConfigError, match="must contain a mapping"):
            LoopwrightConfig.from_file(config_file)

    def test_unknown_edition(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("edition: platinum\n", encoding="utf-8")
        with pytest.raises(LoopwrightConfigError, match="Unknown edition"):
            LoopwrightConfig.from_file(config_file)

    def test_unknown_browser(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("browser: netscape\n", encoding="utf-8")
        with pytest.raises(LoopwrightConfigError, match="Unknown browser"):
            LoopwrightConfig.from_file(config_file)

    def test_non_positive_timeout(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("http_timeout: 0\n", encoding="utf-8")
        with pytest.raises(LoopwrightConfigError, match="Timeouts must be positive"):
            LoopwrightConfig.from_file(config_file)

    @pytest.mark.parametrize(
        ("content", "key"),
        [
            ("navigation_timeout_ms: soon\n", "navigation_timeout_ms"),
            ("http_timeout: [1, 2]\n", "http_timeout"),
            ("viewport:\n  width: wide\n  height: 720\n", "width"),
        ],
    )
    def test_non_numeric_values(self, tmp_path: Path, content: str, key: str):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(content, encoding="utf-8")
        with pytest.raises(LoopwrightConfigError, match=f"Invalid value for {key}") as exc_info:
            LoopwrightConfig.from_file(config_file)
        assert "To fix:" in str(exc_info.value)


# ---------------------------------------------------------------------------
# 4. Environment overrides
# ---------------------------------------------------------------------------

class TestEnvOverrides:
    def test_edition_override(self, tmp_project_dir: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOOPWRIGHT_EDITION", "Enterprise")
        cfg = LoopwrightConfig.from_file(tmp_project_dir / "config.yaml")
        assert cfg.edition == "enterprise"

    @pytest.mark.parametrize("raw, expected", [("false", False), ("0", False), ("yes", True)])
    def test_headless_override(self, tmp_project_dir: Path, monkeypatch: pytest.MonkeyPatch, raw, expected):
        monkeypatch.setenv("LOOPWRIGHT_HEADLESS", raw)
        cfg = LoopwrightConfig.from_file(tmp_project_dir / "config.yaml")
        assert cfg.headless is expected

    def test_invalid_headless_value(self, tmp_project_dir: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOOPWRIGHT_HEADLESS", "maybe")
        with pytest.raises(LoopwrightConfigError, match="Invalid LOOPWRIGHT_HEADLESS"):
            LoopwrightConfig.from_file(tmp_project_dir / "config.yaml")


# ---------------------------------------------------------------------------
# 5. Project helpers
# ---------------------------------------------------------------------------

class TestProjectHelpers:
    def test_for_project_without_config(self, tmp_path: Path):
        cfg = LoopwrightConfig.for_project(tmp_path)
        assert cfg.project_dir == tmp_path
        assert cfg.automations_dir == tmp_path / "automations"

    def test_ensure_dirs(self, tmp_path: Path):
        cfg = LoopwrightConfig.for_project(tmp_path / "proj")
        cfg.ensure_dirs()
        assert cfg.automations_dir.is_dir()
        assert cfg.schedules_dir.is_dir()
        assert cfg.logs_dir.is_dir()

    def test_resolve_automation_by_id(self, tmp_project_dir: Path):
        cfg = LoopwrightConfig.for_project(tmp_project_dir)
        stored = tmp_project_dir / "automations" / "tree_42.json"
        stored.write_text("{}", encoding="utf-8")
        assert cfg.resolve_automation("42") == stored

    def test_resolve_automation_by_path(self, tmp_project_dir: Path, tmp_path: Path):
        cfg = LoopwrightConfig.for_project(tmp_project_dir)
        path = tmp_path / "flow.json"
        path.write_text("{}", encoding="utf-8")
        assert cfg.resolve_automation(str(path)) == path

    def test_resolve_automation_missing(self, tmp_project_dir: Path):
        cfg = LoopwrightConfig.for_project(tmp_project_dir)
        with pytest.raises(LoopwrightConfigError, match="Automation not found: nope"):
            cfg.resolve_automation("nope")
