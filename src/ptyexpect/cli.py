"""CLI entry point for ptyexpect."""

from __future__ import annotations

import asyncio
import logging
import shutil
from typing import Optional

import typer

from ptyexpect.config import PTYExpectConfig
from ptyexpect.errors import PTYError
from ptyexpect.pty.process import TerminalProcess
from ptyexpect.pty.registry import ExpectResult
from ptyexpect.pty.session import PTYSession

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="ptyexpect",
    help="Drive interactive programs through a pseudo-terminal.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(config_path: str | None, newline: str | None) -> PTYExpectConfig:
    config = PTYExpectConfig.load(config_path)
    if newline:
        config.terminal.newline = newline  # type: ignore[assignment]
    return config


async def _run_command(
    command: list[str],
    send: list[str],
    patterns: list[str],
    timeout: float | None,
    config: PTYExpectConfig,
) -> ExpectResult | None:
    """Spawn ``command`` on a fresh session, send lines, wait for a pattern.

    Returns None when there was nothing to expect.
    """
    executable = shutil.which(command[0]) or command[0]
    with PTYSession.from_config(config, identifier=command[0]) as session:
        process = TerminalProcess(executable, command[1:], terminal=session)
        process.run()
        try:
            for line in send:
                session.send_line(line)
            if not patterns:
                return None
            return await session.expect(patterns, timeout=timeout)
        finally:
            process.terminate()


@app.command()
def run(
    command: list[str] = typer.Argument(..., help="Program and its arguments."),
    send: list[str] = typer.Option(
        [], "--send", "-s", help="Line to send after starting (repeatable)."
    ),
    expect: list[str] = typer.Option(
        [], "--expect", "-e", help="Regex to wait for (repeatable, first match wins)."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait. Defaults to the configured value."
    ),
    newline: Optional[str] = typer.Option(
        None, "--newline", help="Line terminator: 'default' (\\n) or 'alternate' (\\r)."
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to a JSON config file."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Run a program in a PTY, send it input, and wait for matching output.

    Prints the pattern that matched and exits 0, or exits 1 on no match.
    """
    setup_logging(verbose)
    if newline not in (None, "default", "alternate"):
        raise typer.BadParameter("must be 'default' or 'alternate'", param_hint="--newline")
    config = _load_config(config_path, newline)
    effective_timeout = timeout if timeout is not None else config.expect.timeout

    try:
        result = asyncio.run(
            _run_command(command, send, expect, effective_timeout, config)
        )
    except (PTYError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)

    if result is None:
        return
    if not result.matched:
        typer.echo("No match", err=True)
        raise typer.Exit(code=1)
    typer.echo(result.pattern)


@app.command()
def winsize(
    rows: Optional[int] = typer.Option(None, "--rows", help="Rows to set."),
    cols: Optional[int] = typer.Option(None, "--cols", help="Columns to set."),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to a JSON config file."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Open a PTY, apply a window size and print what the terminal reports."""
    setup_logging(verbose)
    config = _load_config(config_path, None)
    if rows is not None:
        config.terminal.rows = rows
    if cols is not None:
        config.terminal.cols = cols

    async def _query() -> str:
        with PTYSession.from_config(config) as session:
            size = session.get_window_size()
            return f"{size.rows}x{size.cols}"

    try:
        typer.echo(asyncio.run(_query()))
    except (PTYError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
