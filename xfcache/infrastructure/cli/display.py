"""Console output for the xfcache CLI using the rich library."""

import json
import logging
from datetime import datetime
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from xfcache.domain.models.item import ItemView

logger = logging.getLogger(__name__)


class ConsoleDisplay:
    """Renders cache values and item views to the terminal."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def display_value(self, value: Any, computed: bool) -> None:
        """Prints a value returned by get, tagged with where it came from."""
        source = "[yellow]computed[/yellow]" if computed else "[green]cached[/green]"
        self.console.print(f"{source} {escape(format_value(value))}")

    def display_item(self, item: ItemView) -> None:
        """Shows an item view as a two-column table."""
        table = Table(title=f"Cache item '{item.key}'", show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("hit", "[green]yes[/green]" if item.is_hit() else "[red]no[/red]")
        table.add_row("value", escape(format_value(item.get())))
        table.add_row("created", _format_time(item.created_at))
        if item.is_hit() and item.expires_at is None:
            table.add_row("expires", "never")
        else:
            table.add_row("expires", _format_time(item.expires_at))
        self.console.print(table)

    def display_info(self, message: str) -> None:
        self.console.print(f"[blue]Info:[/blue] {message}")

    def display_error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")


def format_value(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(value)


def _format_time(moment: Optional[datetime]) -> str:
    return moment.isoformat(sep=" ", timespec="seconds") if moment else "-"
