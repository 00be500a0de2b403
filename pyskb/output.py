"""Output formatting for the SKB CLI."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from .utils import format_size


class OutputFormatter:
    """Formats CLI output as plain styled text or JSON."""

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize the output formatter.

        Args:
            json_output: Emit JSON documents instead of text
            quiet: Suppress non-essential output
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False)
        self.err_console = Console(stderr=True, highlight=False)

    def _emit(self, message: str, style: Optional[str] = None) -> None:
        self.console.print(message, style=style, markup=False, soft_wrap=True)

    def print(self, message: str = "") -> None:
        """Print a message unless quiet or in JSON mode."""
        if self.quiet or self.json_output:
            return
        self._emit(message)

    def info(self, message: str) -> None:
        """Print an informational message."""
        if self.quiet or self.json_output:
            return
        self._emit(message)

    def success(self, message: str) -> None:
        """Print a success message."""
        if self.quiet or self.json_output:
            return
        self._emit(message, style="green")

    def warning(self, message: str) -> None:
        """Print a warning message (shown even when quiet)."""
        if self.json_output:
            return
        self.err_console.print(
            message, style="yellow", markup=False, soft_wrap=True
        )

    def error(self, message: str) -> None:
        """Print an error message to stderr (always shown)."""
        self.err_console.print(
            f"Error: {message}", style="bold red", markup=False, soft_wrap=True
        )

    def output_json(self, data: Any) -> None:
        """Print data as a JSON document."""
        self.console.print(
            json.dumps(data, indent=2, default=str),
            markup=False,
            soft_wrap=True,
        )

    def output_table(
        self,
        rows: list[dict[str, Any]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
        title: Optional[str] = None,
    ) -> None:
        """Print rows as a table.

        Args:
            rows: Row dicts
            columns: Keys to show, in order
            headers: Optional display names for the columns
            title: Optional table title
        """
        if self.json_output:
            self.output_json(rows)
            return

        headers = headers or {}
        table = Table(title=title)
        for column in columns:
            table.add_column(headers.get(column, column))
        for row in rows:
            table.add_row(*(str(row.get(column, "")) for column in columns))
        self.console.print(table)

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a titled list of label/value pairs."""
        if self.quiet or self.json_output:
            return
        self._emit("")
        self._emit(title, style="bold")
        self._emit("=" * len(title))
        width = max((len(label) for label, _ in items), default=0)
        for label, value in items:
            self._emit(f"{label + ':':<{width + 1}} {value}")

    def format_size(self, size_bytes: int) -> str:
        return format_size(size_bytes)
