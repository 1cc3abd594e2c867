"""End-to-end tests for the oasgraph CLI using Typer's CliRunner."""

from __future__ import annotations

import json
from pathlib import Path

from oasgraph.app import app
from oasgraph.config import global_config_path, load_global_config, save_global_config
from oasgraph.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SPEC_PARSE_ERROR,
    EXIT_VALIDATION_FAILURE,
)
from oasgraph.models import GlobalConfig, ResolveConfig

from conftest import FIXTURES_DIR

PETSTORE = str(FIXTURES_DIR / "petstore.yaml")
CIRCULAR = str(FIXTURES_DIR / "circular.yaml")
POINTER_CYCLE = str(FIXTURES_DIR / "pointer_cycle.yaml")
SPLIT = str(FIXTURES_DIR / "external" / "main.yaml")


def _lines(output: str) -> list[str]:
    return output.splitlines()


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.strip() == "oasgraph 0.1.0"

    def test_no_args_shows_help(self, cli_runner) -> None:
        result = cli_runner.invoke(app, [])
        assert "Usage" in result.output
        for command in ("validate", "index", "walk", "refs", "config"):
            assert command in result.output


class TestValidate:
    def test_clean_document(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", "validate", PETSTORE])
        assert result.exit_code == 0, result.output
        assert "No errors found (0 warning(s))" in result.output

    def test_invalid_cycle_fails(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", "validate", CIRCULAR])
        assert result.exit_code == EXIT_VALIDATION_FAILURE
        assert "Severity\tLine\tColumn\tRule\tMessage\tDocument" in _lines(result.output)
        assert "circular-reference-invalid" in result.output
        assert "Error: 1 error(s) found" in result.output

    def test_json_diagnostics(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--json", "-q", "validate", SPLIT])
        assert result.exit_code == 0, result.output
        (record,) = json.loads(result.stdout)
        assert record["Severity"] == "warning"
        assert record["Rule"] == "validation-unknown-properties"
        assert record["Document"].endswith("common.yaml")

    def test_external_refs_disabled(self, cli_runner) -> None:
        result = cli_runner.invoke(
            app, ["--plain", "--no-color", "validate", "--no-external-refs", SPLIT]
        )
        assert result.exit_code == EXIT_VALIDATION_FAILURE
        assert "external reference not allowed" in result.output

    def test_external_refs_disabled_by_env(self, cli_runner) -> None:
        result = cli_runner.invoke(
            app,
            ["--plain", "--no-color", "validate", SPLIT],
            env={"OASGRAPH_DISABLE_EXTERNAL_REFS": "1"},
        )
        assert result.exit_code == EXIT_VALIDATION_FAILURE

    def test_missing_file(self, cli_runner, tmp_path: Path) -> None:
        missing = str(tmp_path / "nope.yaml")
        result = cli_runner.invoke(app, ["--no-color", "validate", missing])
        assert result.exit_code == EXIT_SPEC_PARSE_ERROR
        assert "Spec file not found" in result.output

    def test_swagger_rejected(self, cli_runner, tmp_path: Path) -> None:
        swagger = tmp_path / "swagger.json"
        swagger.write_text('{"swagger": "2.0"}', encoding="utf-8")
        result = cli_runner.invoke(app, ["--no-color", "validate", str(swagger)])
        assert result.exit_code == EXIT_SPEC_PARSE_ERROR

    def test_stdin(self, cli_runner, petstore_path: Path) -> None:
        result = cli_runner.invoke(
            app,
            ["--plain", "--no-color", "validate", "-"],
            input=petstore_path.read_text(encoding="utf-8"),
        )
        assert result.exit_code == 0, result.output

    def test_invalid_config(self, cli_runner) -> None:
        global_config_path().write_text("{not json", encoding="utf-8")
        result = cli_runner.invoke(app, ["--no-color", "validate", PETSTORE])
        assert result.exit_code == EXIT_GENERIC_FAILURE
        assert "Invalid global config" in result.output


class TestIndex:
    def test_bucket_counts(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--plain", "index", PETSTORE])
        assert result.exit_code == 0, result.output
        lines = _lines(result.output)
        assert "Kind\tBoolean\tInline\tComponent\tExternal\tReferences" in lines
        assert "Schema\t1\t10\t3\t0\t6" in lines
        assert "Parameter\t-\t1\t1\t0\t1" in lines
        assert "operations\t3" in lines
        assert "circular_references_valid\t1" in lines
        assert "circular_references_invalid\t0" in lines
        assert "errors\t0" in lines

    def test_json_output_from_env(self, cli_runner) -> None:
        result = cli_runner.invoke(
            app, ["-q", "index", CIRCULAR], env={"OASGRAPH_OUTPUT_FORMAT": "json"}
        )
        assert result.exit_code == 0, result.output
        assert '"Bucket": "circular_references_invalid"' in result.stdout


class TestWalk:
    def test_walk_order(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--plain", "walk", PETSTORE])
        assert result.exit_code == 0, result.output
        lines = _lines(result.output)
        assert lines[:4] == [
            "Pointer\tType\tReference",
            "#\tOpenAPI\t",
            "#/info\tInfo\t",
            "#/info\textensions\t",
        ]
        assert "#/paths/~1pets/get/parameters/0\tReferencedParameter\t#/components/parameters/Limit" in lines


class TestRefs:
    def test_states(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--plain", "refs", PETSTORE])
        assert result.exit_code == 0, result.output
        rows = _lines(result.output)[1:]
        assert len(rows) == 8
        assert all(row.endswith("\tresolved") for row in rows)
        assert (
            "#/paths/~1pets/get/parameters/0\tReferencedParameter\t#/components/parameters/Limit\tresolved"
            in rows
        )

    def test_pointer_cycle(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--plain", "refs", POINTER_CYCLE])
        assert result.exit_code == 0, result.output
        rows = _lines(result.output)[1:]
        assert rows == [
            "#/components/schemas/A\tSchema\t#/components/schemas/B\tcircular_error",
            "#/components/schemas/B\tSchema\t#/components/schemas/A\tcircular_error",
        ]


class TestConfigCommands:
    def test_show(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--json", "-q", "config", "show"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == GlobalConfig().model_dump(mode="json")

    def test_set_number(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "resolve.http_timeout", "10"])
        assert result.exit_code == 0, result.output
        assert load_global_config().resolve.http_timeout == 10.0

    def test_set_bool(self, cli_runner) -> None:
        result = cli_runner.invoke(
            app, ["--no-color", "config", "set", "resolve.disable_external_refs", "yes"]
        )
        assert result.exit_code == 0, result.output
        assert load_global_config().resolve.disable_external_refs is True

    def test_set_unknown_key(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "resolve.depth", "3"])
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "Unknown config key" in result.output

    def test_set_invalid_value(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "output.format", "xml"])
        assert result.exit_code == EXIT_INVALID_USAGE
        assert not global_config_path().exists()

    def test_reset_force(self, cli_runner) -> None:
        save_global_config(GlobalConfig(resolve=ResolveConfig(http_timeout=5)))
        result = cli_runner.invoke(app, ["--no-color", "config", "reset", "--force"])
        assert result.exit_code == 0, result.output
        assert load_global_config() == GlobalConfig()

    def test_reset_declined(self, cli_runner) -> None:
        save_global_config(GlobalConfig(resolve=ResolveConfig(http_timeout=5)))
        result = cli_runner.invoke(app, ["--no-color", "config", "reset"], input="n\n")
        assert result.exit_code == 0, result.output
        assert "Cancelled." in result.output
        assert load_global_config().resolve.http_timeout == 5
