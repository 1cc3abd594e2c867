"""Configuration management with XDG paths, atomic writes, and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.oasgraph/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~oasgraph.models.GlobalConfig`
  JSON file storing resolution and output defaults.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables and the config file into the effective
  configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from oasgraph.exceptions import ConfigError
from oasgraph.models import GlobalConfig

_APP_NAME = "oasgraph"
_CONFIG_FILENAME = "config.json"

ENV_DISABLE_EXTERNAL_REFS = "OASGRAPH_DISABLE_EXTERNAL_REFS"
ENV_HTTP_TIMEOUT = "OASGRAPH_HTTP_TIMEOUT"
ENV_OUTPUT_FORMAT = "OASGRAPH_OUTPUT_FORMAT"

_TRUTHY = ("1", "true", "yes", "on")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/oasgraph/`` (default ``~/.config/oasgraph/``).
    On macOS/Windows: ``~/.oasgraph/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/oasgraph/`` (default ``~/.local/share/oasgraph/``).
    On macOS/Windows: ``~/.oasgraph/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}" / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is removed and the original file is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~oasgraph.models.GlobalConfig`, or a
        default instance if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config(
    cli_format: Optional[str] = None,
    cli_disable_external_refs: Optional[bool] = None,
    cli_http_timeout: Optional[float] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``OASGRAPH_DISABLE_EXTERNAL_REFS``,
           ``OASGRAPH_HTTP_TIMEOUT``, ``OASGRAPH_OUTPUT_FORMAT``)
        3. User config (``~/.config/oasgraph/config.json``)
        4. Defaults

    Raises:
        ConfigError: If the config file or an environment variable is invalid.
    """
    config = load_global_config()

    env_disable = os.environ.get(ENV_DISABLE_EXTERNAL_REFS)
    if env_disable:
        config.resolve.disable_external_refs = env_disable.strip().lower() in _TRUTHY

    env_timeout = os.environ.get(ENV_HTTP_TIMEOUT)
    if env_timeout:
        try:
            config.resolve.http_timeout = float(env_timeout)
        except ValueError:
            raise ConfigError(
                f"{ENV_HTTP_TIMEOUT} must be a number, got: {env_timeout}"
            ) from None

    env_format = os.environ.get(ENV_OUTPUT_FORMAT)
    if env_format:
        config.output.format = env_format

    if cli_disable_external_refs is not None:
        config.resolve.disable_external_refs = cli_disable_external_refs
    if cli_http_timeout is not None:
        config.resolve.http_timeout = cli_http_timeout
    if cli_format is not None:
        config.output.format = cli_format

    # Attribute assignment skips validation; re-check the merged result.
    try:
        return GlobalConfig.model_validate(config.model_dump())
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
