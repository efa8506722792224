"""
CLI utility helpers — settings loading, async bridging and output formatting.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Coroutine
from dataclasses import asdict
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from coastline.core.adapters.types import PlatformConfig, RelationalConfig
from coastline.core.config.settings import CoastlineSettings, get_settings
from coastline.core.errors import ConfigError
from coastline.core.logging import configure_logging
from coastline.core.result import OperationResult

T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)


# ── Settings / config helpers ────────────────────────────────────────────


def load_settings() -> CoastlineSettings:
    """Load settings and send logs to stderr, keeping stdout for command output."""
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service=settings.service_name,
        stream=sys.stderr,
    )
    return settings


def database_config(settings: CoastlineSettings) -> PlatformConfig | RelationalConfig:
    """Build the connection snapshot, exiting with code 2 on bad configuration."""
    try:
        return settings.to_database_config()
    except ConfigError as e:
        err_console.print(f"[bold red]Configuration error[/bold red]: {e.message}")
        raise typer.Exit(code=2) from e


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run one coroutine to completion from a synchronous command."""
    return asyncio.run(coro)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_result(
    result: OperationResult[Any],
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render an ``OperationResult`` to the terminal."""
    if result.error is not None:
        err = result.error
        err_console.print(f"[bold red]Error[/bold red] ({type(err).__name__}): {err.message}")
        raise typer.Exit(code=1)

    data = result.data

    if as_json:
        if isinstance(data, list | tuple):
            payload: Any = {"items": [_to_dict(d) for d in data], "count": result.count}
        else:
            payload = _to_dict(data) if data is not None else None
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No rows.[/dim]")
            return
        _print_table(data, title=title)
        if result.count is not None and result.count != len(data):
            console.print(f"\n[dim]Showing {len(data)} of {result.count}[/dim]")
    elif data is None:
        console.print("[dim]Not found.[/dim]")
    else:
        output_dict(_to_dict(data), title=title)


def output_dict(data: dict[str, Any], *, as_json: bool = False, title: str = "") -> None:
    """Render a plain dict as JSON or key-value pairs."""
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of rows as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(d.get(col, "")) for col in first))
    console.print(table)


__all__ = [
    "console",
    "err_console",
    "load_settings",
    "database_config",
    "run",
    "output_result",
    "output_dict",
]
