"""Output formatting for the command line interface."""

import json
from typing import Any, Optional

import click
from rich.console import Console
from rich.table import Table

from .utils import format_size


class OutputFormatter:
    """Writes CLI output as text or JSON, honouring quiet mode."""

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize the formatter.

        Args:
            json_output: Emit machine-readable JSON instead of text
            quiet: Suppress informational messages
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()

    def print(self, message: str) -> None:
        """Print a message unless JSON output is active."""
        if not self.json_output:
            click.echo(message)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            click.echo(message)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            click.secho(message, fg="green")

    def warning(self, message: str) -> None:
        if not self.json_output:
            click.secho(f"Warning: {message}", fg="yellow", err=True)

    def error(self, message: str) -> None:
        """Print an error to stderr (always shown)."""
        click.secho(f"Error: {message}", fg="red", err=True)

    def progress_message(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            click.secho(message, fg="cyan")

    def output_json(self, data: Any) -> None:
        click.echo(json.dumps(data, indent=2, default=str))

    def output_table(
        self,
        rows: list[dict[str, Any]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """Print rows as a table (or as JSON when JSON output is active).

        Args:
            rows: Row dictionaries
            columns: Keys to show, in order
            headers: Display names for the keys
        """
        if self.json_output:
            self.output_json(rows)
            return
        if not rows:
            self.info("No entries")
            return

        headers = headers or {}
        table = Table(show_header=True, header_style="bold")
        for column in columns:
            table.add_column(headers.get(column, column))
        for row in rows:
            table.add_row(*(str(row.get(column, "")) for column in columns))
        self.console.print(table)

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a titled list of label/value pairs."""
        if self.quiet:
            return
        if self.json_output:
            self.output_json({label: value for label, value in items})
            return
        click.secho(title, bold=True)
        for label, value in items:
            click.echo(f"  {label}: {value}")

    @staticmethod
    def format_size(size_bytes: int) -> str:
        return format_size(size_bytes)
