"""Tests for oasgraph.config -- XDG paths, atomic writes, precedence."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from oasgraph.config import (
    ENV_DISABLE_EXTERNAL_REFS,
    ENV_HTTP_TIMEOUT,
    ENV_OUTPUT_FORMAT,
    _atomic_write,
    get_config_dir,
    get_data_dir,
    global_config_path,
    load_global_config,
    resolve_config,
    save_global_config,
)
from oasgraph.exceptions import ConfigError
from oasgraph.models import GlobalConfig, OutputConfig, ResolveConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: Any) -> None:
    """Write a dict as JSON to *path*, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPathsLinux:
    """XDG paths on Linux (the default XDG platform)."""

    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".config" / "oasgraph"
        assert result.is_dir()

    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_config"
        monkeypatch.setenv("XDG_CONFIG_HOME", str(custom))

        result = get_config_dir()
        assert result == custom / "oasgraph"
        assert result.is_dir()

    def test_data_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_data_dir()
        assert result == tmp_path / ".local" / "share" / "oasgraph"
        assert result.is_dir()


class TestXDGPathsFallback:
    """Fallback paths on non-XDG platforms (macOS, Windows)."""

    def test_config_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("oasgraph.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".oasgraph"
        assert result.is_dir()

    def test_data_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("oasgraph.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_data_dir()
        assert result == tmp_path / ".oasgraph" / "logs"
        assert result.is_dir()


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_file_with_content(self, tmp_path: Path) -> None:
        target = tmp_path / "out" / "test.txt"
        _atomic_write(target, "hello world")
        assert target.read_text(encoding="utf-8") == "hello world"

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        target.write_text("old content", encoding="utf-8")
        _atomic_write(target, "new content")
        assert target.read_text(encoding="utf-8") == "new content"

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "out" / "test.txt"
        with patch("oasgraph.config.os.fsync", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                _atomic_write(target, "will fail")
        assert list(target.parent.iterdir()) == []


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    def test_load_returns_defaults_when_missing(self) -> None:
        cfg = load_global_config()
        assert cfg == GlobalConfig()
        assert cfg.resolve.disable_external_refs is False
        assert cfg.resolve.http_timeout == 30.0
        assert cfg.output.format == "auto"

    def test_save_and_load_roundtrip(self, isolated_config: Path) -> None:
        original = GlobalConfig(
            resolve=ResolveConfig(disable_external_refs=True, http_timeout=5),
            output=OutputConfig(format="json", color=False),
        )
        save_global_config(original)
        assert global_config_path() == isolated_config / "config" / "oasgraph" / "config.json"
        assert load_global_config() == original

    def test_load_invalid_json_raises_config_error(self) -> None:
        path = global_config_path()
        path.write_text("{invalid json!!!", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()

    def test_load_invalid_schema_raises_config_error(self) -> None:
        _write_json(global_config_path(), {"output": {"format": "xml"}})
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()

    def test_saved_config_is_valid_json(self) -> None:
        save_global_config(GlobalConfig())
        data = json.loads(global_config_path().read_text(encoding="utf-8"))
        assert data == {
            "resolve": {"disable_external_refs": False, "http_timeout": 30.0},
            "output": {"format": "auto", "color": True},
        }


class TestModels:
    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            ResolveConfig(http_timeout=0)

    def test_unknown_format(self) -> None:
        with pytest.raises(ValueError, match="unknown output format"):
            OutputConfig(format="xml")


# ---------------------------------------------------------------------------
# Precedence resolution
# ---------------------------------------------------------------------------


class TestResolveConfig:
    """Precedence: CLI > env > config file > defaults."""

    def test_defaults(self) -> None:
        assert resolve_config() == GlobalConfig()

    def test_file_overrides_defaults(self) -> None:
        save_global_config(GlobalConfig(resolve=ResolveConfig(http_timeout=12)))
        assert resolve_config().resolve.http_timeout == 12

    def test_env_overrides_file(self, monkeypatch: pytest.MonkeyPatch) -> None:
        save_global_config(GlobalConfig(resolve=ResolveConfig(http_timeout=12)))
        monkeypatch.setenv(ENV_HTTP_TIMEOUT, "3.5")
        monkeypatch.setenv(ENV_DISABLE_EXTERNAL_REFS, "yes")
        monkeypatch.setenv(ENV_OUTPUT_FORMAT, "plain")

        cfg = resolve_config()
        assert cfg.resolve.http_timeout == 3.5
        assert cfg.resolve.disable_external_refs is True
        assert cfg.output.format == "plain"

    def test_env_false_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        save_global_config(GlobalConfig(resolve=ResolveConfig(disable_external_refs=True)))
        monkeypatch.setenv(ENV_DISABLE_EXTERNAL_REFS, "0")
        assert resolve_config().resolve.disable_external_refs is False

    def test_cli_overrides_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_HTTP_TIMEOUT, "3.5")
        monkeypatch.setenv(ENV_OUTPUT_FORMAT, "plain")
        monkeypatch.setenv(ENV_DISABLE_EXTERNAL_REFS, "true")

        cfg = resolve_config(cli_format="json", cli_disable_external_refs=False, cli_http_timeout=60)
        assert cfg.output.format == "json"
        assert cfg.resolve.disable_external_refs is False
        assert cfg.resolve.http_timeout == 60

    def test_non_numeric_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_HTTP_TIMEOUT, "soon")
        with pytest.raises(ConfigError, match="must be a number"):
            resolve_config()

    def test_invalid_merged_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_OUTPUT_FORMAT, "xml")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            resolve_config()

    def test_negative_cli_timeout(self) -> None:
        with pytest.raises(ConfigError, match="Invalid configuration"):
            resolve_config(cli_http_timeout=-1)
