"""User-facing status lines.

Separate from logging: these are the short messages a user watching the
launch sees ("Launching an instance...", "Waiting for SSH...").
"""

from __future__ import annotations

from typing import Protocol

from rich.console import Console as RichRenderer
from rich.markup import escape


class Console(Protocol):
    """Leveled status sink."""

    def info(self, message: str) -> None: ...
    def warn(self, message: str) -> None: ...
    def error(self, message: str) -> None: ...


class RichConsole:
    """Console rendering status lines with rich."""

    def __init__(self, renderer: RichRenderer | None = None, prefix: str = "") -> None:
        self._renderer = renderer or RichRenderer(stderr=True, highlight=False)
        self._prefix = f"[bold]{escape(prefix)}:[/bold] " if prefix else ""

    def info(self, message: str) -> None:
        self._renderer.print(f"{self._prefix}{escape(message)}")

    def warn(self, message: str) -> None:
        self._renderer.print(f"{self._prefix}[yellow]{escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        self._renderer.print(f"{self._prefix}[red]{escape(message)}[/red]")


class NullConsole:
    """Console that drops every message."""

    def info(self, message: str) -> None:
        pass

    def warn(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass
