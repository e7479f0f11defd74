"""Terminal logger for the make-template commands."""

from __future__ import annotations

import typer


class CLILogger:
    """
    LoggerProtocol implementation that writes to the terminal.

    Progress (info) is printed only with --verbose. Warnings go to stdout in
    yellow and errors to stderr in red, so piping stdout keeps failures visible.
    """

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose

    async def info(self, message: str) -> None:
        if not self.verbose:
            return
        typer.echo(f'  {message}')

    async def warning(self, message: str) -> None:
        typer.secho(f'Warning: {message}', fg=typer.colors.YELLOW)

    async def error(self, message: str) -> None:
        typer.secho(f'Error: {message}', fg=typer.colors.RED, err=True)
