"""Typer application and CLI entry point for rpcache.

This module wires together the top-level Typer application and registers
the built-in sub-commands (``call``, ``cache``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
Unhandled exceptions are written to a crash log under the data directory.

See Also:
    :mod:`rpcache.config`: Configuration resolution.
    :mod:`rpcache.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from rpcache import __version__
from rpcache.commands.cache import cache_app
from rpcache.commands.call import call_command
from rpcache.commands.config import config_app
from rpcache.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="rpcache",
    help="Call RPC services through an HTTP-style Cache-Control cache.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("call")(call_command)
app.add_typer(cache_app, name="cache", help="Inspect or clear the response cache.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"rpcache {__version__}")
        raise typer.Exit()


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
    base_url: Optional[str] = typer.Option(
        None, "--base-url", "-u", help="RPC endpoint prefix (overrides config)."
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

    Installs the global :class:`~rpcache.output.OutputManager` and leaves
    the CLI overrides in ``ctx.obj`` for :func:`~rpcache.commands.cli_overrides`.
    A format flag is stored only when given, so the configured
    ``output.format`` applies otherwise.
    """
    from rpcache.output import OutputFormat, OutputManager, set_output

    cli_format: Optional[OutputFormat] = None
    if json_output:
        cli_format = OutputFormat.JSON
    elif plain_output:
        cli_format = OutputFormat.PLAIN

    set_output(
        OutputManager(
            format=cli_format or OutputFormat.AUTO,
            no_color=no_color,
            quiet=quiet,
            verbose=verbose,
        )
    )

    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    ctx.obj["format"] = cli_format.value if cli_format else None


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from rpcache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``rpcache`` console script.

    Unhandled :class:`~rpcache.exceptions.RpcacheError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

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
        from rpcache.exceptions import RpcacheError
        from rpcache.output import error

        if isinstance(exc, RpcacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
