from __future__ import annotations

import traceback
from typing import Callable

from rich.console import Console
from rich.markup import escape


ProgressCallback = Callable[[str, float], None]


class Reporter:
    """Categorized console diagnostics.

    Warnings and errors are also cached so that a batch run can list every
    problem again at the end (`show_cached_messages`).
    """

    def __init__(
        self,
        console: Console | None = None,
        *,
        verbose: bool = False,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.console = console or Console(highlight=False)
        self.verbose = verbose
        self.progress_callback = progress_callback
        self.warnings: list[str] = []
        self.errors: list[str] = []

    def debug(self, message: str) -> None:
        if self.verbose:
            self.console.print(f"[dim]{escape(message)}[/dim]")

    def status(self, message: str) -> None:
        self.console.print(escape(message))

    def ok(self, message: str) -> None:
        self.console.print(f"[green]OK[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        self.warnings.append(message)
        self.console.print(f"[yellow]WARN[/yellow] {escape(message)}")

    def error(self, message: str, exc: BaseException | None = None) -> None:
        text = f"{message}: {exc}" if exc is not None else message
        self.errors.append(text)
        self.console.print(f"[red]ERROR[/red] {escape(text)}")
        if exc is not None and self.verbose:
            self.console.print(escape("".join(traceback.format_exception(type(exc), exc, exc.__traceback__))))

    def progress(self, message: str, percent_complete: float) -> None:
        if self.progress_callback is not None:
            self.progress_callback(message, percent_complete)
            return
        self.console.print(f"[cyan]{escape(message)}[/cyan] {percent_complete:.1f}%")

    def clear(self) -> None:
        self.warnings.clear()
        self.errors.clear()

    def show_cached_messages(self) -> None:
        if not self.warnings and not self.errors:
            return

        header = "** Problems encountered during processing **"
        self.console.print()
        self.console.print("*" * len(header))
        self.console.print(escape(header))
        self.console.print("*" * len(header))
        for m in self.warnings:
            self.console.print(f"[yellow]WARN[/yellow] {escape(m)}")
        for m in self.errors:
            self.console.print(f"[red]ERROR[/red] {escape(m)}")
