"""Shared rich consoles and leveled terminal logging."""

from __future__ import annotations

import os
from enum import IntEnum

from rich.console import Console


class LogLevel(IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


_LEVEL_BY_NAME = {
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "warning": LogLevel.WARNING,
    "warn": LogLevel.WARNING,
    "error": LogLevel.ERROR,
}

_console: Console | None = None
_err_console: Console | None = None
_level: LogLevel | None = None


def get_console() -> Console:
    """Return the shared stdout console."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def get_err_console() -> Console:
    """Return the shared stderr console used for warnings and progress."""
    global _err_console
    if _err_console is None:
        _err_console = Console(stderr=True)
    return _err_console


def _normalize_level(value: str | None) -> LogLevel:
    if not value:
        return LogLevel.INFO
    return _LEVEL_BY_NAME.get(value.strip().lower(), LogLevel.INFO)


def configured_level() -> LogLevel:
    global _level
    if _level is None:
        _level = _normalize_level(os.environ.get("WT_LOG_LEVEL"))
    return _level


def set_level(value: str | None) -> None:
    """Set the active log level ("debug", "info", "warning", "error")."""
    global _level
    _level = _normalize_level(value)


def reset() -> None:
    """Drop cached consoles and level. Used by tests."""
    global _console, _err_console, _level
    _console = None
    _err_console = None
    _level = None


def debug(message: str) -> None:
    if configured_level() <= LogLevel.DEBUG:
        get_err_console().print(f"[dim]{message}[/dim]")


def info(message: str) -> None:
    if configured_level() <= LogLevel.INFO:
        get_console().print(message)


def warn(message: str) -> None:
    if configured_level() <= LogLevel.WARNING:
        get_err_console().print(f"[yellow]Warning:[/yellow] {message}")


def error(message: str) -> None:
    get_err_console().print(f"[bold red]Error:[/bold red] {message}")
