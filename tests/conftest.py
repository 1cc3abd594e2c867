"""Shared test fixtures for oasgraph.

Provides reusable fixtures for loading fixture documents, building typed
documents from inline dicts, isolating configuration, managing output
state, and running CLI commands.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

from oasgraph.document import OpenAPI
from oasgraph.output import OutputFormat, OutputManager, reset_output, set_output
from oasgraph.parser import load_document


FIXTURES_DIR = Path(__file__).parent / "fixtures"


def make_document(data: dict[str, Any], location: str = "") -> OpenAPI:
    """Unmarshal *data* into a typed document located at *location*."""
    document = OpenAPI.model_validate(data)
    document.set_location(location)
    return document


def minimal(**sections: Any) -> dict[str, Any]:
    """A valid 3.1 document skeleton with *sections* merged in."""
    data: dict[str, Any] = {
        "openapi": "3.1.0",
        "info": {"title": "Test", "version": "1.0.0"},
        "paths": {},
    }
    data.update(sections)
    return data


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and the CLI log handler after every test.

    Both keep references to the streams Typer's CliRunner swaps in, which
    are closed once the test finishes.
    """
    yield
    reset_output()
    logger = logging.getLogger("oasgraph")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at ``tmp_path`` and clears all
    ``OASGRAPH_*`` environment variables so that tests never read or write
    real user config.
    """
    monkeypatch.setattr("oasgraph.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in (
        "OASGRAPH_DISABLE_EXTERNAL_REFS",
        "OASGRAPH_HTTP_TIMEOUT",
        "OASGRAPH_OUTPUT_FORMAT",
        "NO_COLOR",
    ):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


# ---------------------------------------------------------------------------
# Document fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def petstore_path() -> Path:
    return FIXTURES_DIR / "petstore.yaml"


@pytest.fixture
def petstore_raw(petstore_path: Path) -> dict[str, Any]:
    """Plain-dict form of the petstore fixture."""
    with open(petstore_path, encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def petstore(petstore_path: Path) -> OpenAPI:
    return load_document(str(petstore_path))


@pytest.fixture
def load_fixture() -> Callable[[str], OpenAPI]:
    """Load a document from ``tests/fixtures`` by relative name."""

    def _load(name: str) -> OpenAPI:
        return load_document(str(FIXTURES_DIR / name))

    return _load


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
