from __future__ import annotations

from io import StringIO

from rich.console import Console

from sqld.errors import ParameterError
from sqld.query.statement import Statement
from sqld.reporter import print_error, print_placeholders, print_rows, print_statement


def _console() -> Console:
    return Console(file=StringIO(), width=120, color_system=None)


def _text(console: Console) -> str:
    return console.file.getvalue()


def test_print_statement_lists_bound_arguments() -> None:
    console = _console()

    print_statement(Statement("SELECT id FROM accounts WHERE id = $1", [25]), console=console)

    out = _text(console)
    assert "SELECT id FROM accounts WHERE id = $1" in out
    assert "Arguments" in out
    assert "int" in out


def test_print_statement_without_arguments() -> None:
    console = _console()

    print_statement(Statement("SELECT 1", []), console=console)

    assert "No bound arguments." in _text(console)


def test_print_placeholders() -> None:
    console = _console()

    print_placeholders(["minAge", "status"], console=console)
    print_placeholders([], console=console)

    out = _text(console)
    assert "minAge" in out and "$2" in out
    assert "Query has no named placeholders." in out


def test_print_rows_escapes_markup() -> None:
    console = _console()

    print_rows([{"name": "[bold]Ada[/bold]", "email": None}], console=console)
    print_rows([], console=console)

    out = _text(console)
    assert "[bold]Ada[/bold]" in out
    assert "No rows returned." in out


def test_print_error_includes_code_and_details() -> None:
    console = _console()

    print_error(ParameterError("missing parameters: a", missing=["a"]), console=console)

    out = _text(console)
    assert "PARAMETER_MISMATCH: missing parameters: a" in out
    assert "missing = ['a']" in out
