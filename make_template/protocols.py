"""
Logger protocol shared by the restoration services.

Services report progress and diagnostics through an injected async logger
instead of printing, so the same planner/processor code runs under the CLI,
in tests, or embedded in another tool without terminal formatting leaking in.
"""

from __future__ import annotations

from typing import Literal, Protocol, TypeAlias

LogLevel: TypeAlias = Literal['info', 'warning', 'error']


class LoggerProtocol(Protocol):
    """
    Async logger accepted by every service.

    Implementations:
    - CLILogger (cli/logger.py): prints to the terminal, info only when verbose
    - MemoryLogger (below): keeps messages in memory for later inspection
    - NullLogger (below): discards everything
    """

    async def info(self, message: str) -> None: ...
    async def warning(self, message: str) -> None: ...
    async def error(self, message: str) -> None: ...


class NullLogger:
    """No-op logger for callers that don't need service output."""

    async def info(self, message: str) -> None:
        pass

    async def warning(self, message: str) -> None:
        pass

    async def error(self, message: str) -> None:
        pass


class MemoryLogger:
    """Logger that records (level, message) pairs in order."""

    def __init__(self) -> None:
        self.records: list[tuple[LogLevel, str]] = []

    async def info(self, message: str) -> None:
        self.records.append(('info', message))

    async def warning(self, message: str) -> None:
        self.records.append(('warning', message))

    async def error(self, message: str) -> None:
        self.records.append(('error', message))

    def messages(self, level: LogLevel | None = None) -> list[str]:
        """Messages logged so far, optionally filtered by level."""
        return [message for lvl, message in self.records if level is None or lvl == level]
