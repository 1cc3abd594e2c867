"""Typer application and CLI entry point for oasgraph.

This module wires together the top-level Typer application and registers
the built-in commands (``validate``, ``index``, ``walk``, ``refs`` and the
``config`` group).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~oasgraph.exceptions.OasgraphError` exits with the error's exit
code; any other exception is written to a crash log under the data
directory.

See Also:
    :mod:`oasgraph.config`: Configuration resolution.
    :mod:`oasgraph.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer
from rich.logging import RichHandler

from oasgraph import __version__
from oasgraph.exit_codes import EXIT_GENERIC_FAILURE
from oasgraph.output import OutputFormat, OutputManager


app = typer.Typer(
    name="oasgraph",
    help="Walk, resolve and index OpenAPI 3.0/3.1 documents.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #

from oasgraph.commands.config import config_app  # noqa: E402
from oasgraph.commands.document import (  # noqa: E402
    index_command,
    refs_command,
    validate_command,
    walk_command,
)

app.command("validate")(validate_command)
app.command("index")(index_command)
app.command("walk")(walk_command)
app.command("refs")(refs_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"oasgraph {__version__}")
        raise typer.Exit()


def _output_format(json_output: bool, plain_output: bool) -> OutputFormat:
    """Pick the output format: CLI flags first, then the resolved config."""
    if json_output:
        return OutputFormat.JSON
    if plain_output:
        return OutputFormat.PLAIN

    from oasgraph.config import resolve_config
    from oasgraph.exceptions import ConfigError

    try:
        return OutputFormat(resolve_config().output.format)
    except ConfigError:
        # Reported by the command that needs the config.
        return OutputFormat.AUTO


def configure_logging(output: OutputManager, verbose: bool) -> None:
    """Route the ``oasgraph`` logger through Rich on stderr."""
    logger = logging.getLogger("oasgraph")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = RichHandler(
        console=output.stderr_console,
        show_time=False,
        show_path=False,
        markup=False,
    )
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~oasgraph.output.OutputManager` and the
    ``oasgraph`` log handler from CLI flags.
    """
    from oasgraph.config import load_global_config
    from oasgraph.exceptions import ConfigError
    from oasgraph.output import set_output

    try:
        color = load_global_config().output.color
    except ConfigError:
        color = True

    output = OutputManager(
        format=_output_format(json_output, plain_output),
        no_color=no_color or not color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    configure_logging(output, verbose)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from oasgraph.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``oasgraph`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from oasgraph.exceptions import OasgraphError
        from oasgraph.output import error

        if isinstance(exc, OasgraphError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
