from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from sqld.errors import SqldError
from sqld.query.statement import Statement


def _console(console: Optional[Console]) -> Console:
    return console or Console()


def print_statement(statement: Statement, console: Optional[Console] = None) -> None:
    """
    Render built SQL with syntax highlighting followed by its bound arguments.
    """
    console = _console(console)
    console.print(Syntax(statement.sql, "sql", word_wrap=True))

    if not statement.args:
        console.print("[dim]No bound arguments.[/dim]")
        return

    table = Table(title="Arguments", box=box.ROUNDED)
    table.add_column("Placeholder", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_column("Type", style="magenta")
    for position, value in enumerate(statement.args, start=1):
        table.add_row(f"${position}", escape(repr(value)), type(value).__name__)
    console.print(table)


def print_placeholders(placeholders: Sequence[str], console: Optional[Console] = None) -> None:
    """Named placeholder -> positional placeholder mapping, in first-occurrence order."""
    console = _console(console)
    if not placeholders:
        console.print("[yellow]Query has no named placeholders.[/yellow]")
        return

    table = Table(title="Placeholders", box=box.ROUNDED)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Position", justify="right", style="magenta")
    for position, name in enumerate(placeholders, start=1):
        table.add_row(name, f"${position}")
    console.print(table)


def print_rows(rows: List[Dict[str, Any]], console: Optional[Console] = None) -> None:
    """
    Render result rows keyed by external field name.

    Columns follow the key order of the first row; later rows missing a key
    show an empty cell.
    """
    console = _console(console)
    if not rows:
        console.print("[yellow]No rows returned.[/yellow]")
        return

    columns = list(rows[0])
    table = Table(box=box.ROUNDED, caption=f"{len(rows):,} row(s)")
    for name in columns:
        table.add_column(name, overflow="fold")
    for row in rows:
        table.add_row(
            *("" if row.get(name) is None else escape(str(row.get(name))) for name in columns)
        )
    console.print(table)


def print_error(exc: SqldError, console: Optional[Console] = None) -> None:
    console = console or Console(stderr=True)
    console.print(f"[bold red]{exc.code}[/bold red]: {escape(exc.message)}")
    for key, value in exc.details.items():
        console.print(f"  [dim]{key}[/dim] = {escape(str(value))}")
