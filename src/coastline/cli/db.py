"""
CLI: ``coastline db`` — ad-hoc reads against the configured backend.
"""

from __future__ import annotations

from typing import Any

import typer

from coastline.cli.utils import database_config, err_console, load_settings, output_result, run
from coastline.core.errors import DatabaseConnectionError
from coastline.core.filters import Operator, SelectOptions
from coastline.core.result import QueryResult
from coastline.core.service import BackendService

app = typer.Typer(no_args_is_help=True)


def parse_value(raw: str) -> Any:
    """Interpret a command-line literal (null, booleans, numbers, text)."""
    lowered = raw.lower()
    if lowered == "null":
        return None
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def parse_where_args(terms: list[str]) -> dict[str, Any]:
    """Turn ``col=value`` / ``col:op=value`` terms into a ``where`` mapping.

    ``in`` takes a comma-separated list: ``status:in=pending,approved``.
    """
    where: dict[str, Any] = {}
    for term in terms:
        key, sep, raw = term.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected column=value, got {term!r}", param_hint="--where")
        column, _, op = key.partition(":")
        if not op:
            where[column] = parse_value(raw)
            continue
        if op not in {o.value for o in Operator}:
            raise typer.BadParameter(f"unknown operator {op!r}", param_hint="--where")
        value = [parse_value(v) for v in raw.split(",")] if op == Operator.IN.value else parse_value(raw)
        existing = where.get(column)
        where[column] = {**existing, op: value} if isinstance(existing, dict) else {op: value}
    return where


@app.command("select")
def select(
    table: str = typer.Argument(..., help="Table to read"),
    where: list[str] = typer.Option([], "--where", "-w", help="column=value or column:op=value (repeatable)"),
    order_by: str | None = typer.Option(None, "--order-by", help='e.g. "created_at desc"'),
    limit: int | None = typer.Option(None, "--limit", "-n"),
    offset: int | None = typer.Option(None, "--offset"),
    count: bool = typer.Option(False, "--count", help="Report the total match count"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Select rows from TABLE."""
    settings = load_settings()
    config = database_config(settings)
    options = SelectOptions(
        where=parse_where_args(where),
        order_by=order_by,
        limit=limit,
        offset=offset,
        count=count,
    )

    async def _select() -> QueryResult[dict[str, Any]]:
        async with BackendService(config) as backend:
            return await backend.select(table, options)

    try:
        result = run(_select())
    except DatabaseConnectionError as e:
        err_console.print(f"[bold red]Connection failed[/bold red]: {e.message}")
        raise typer.Exit(code=1) from e
    output_result(result, as_json=json_out, title=table)
