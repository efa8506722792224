"""
CLI: ``coastline health`` — health and capabilities commands.
"""

from __future__ import annotations

from typing import Any

import typer

from coastline.cli.utils import database_config, load_settings, output_dict, run
from coastline.core.errors import DatabaseConnectionError
from coastline.core.service import BackendService

app = typer.Typer(no_args_is_help=True)


async def _health_report(service: BackendService) -> dict[str, Any]:
    try:
        await service.initialize()
    except DatabaseConnectionError as e:
        return {
            "backend": service.kind.value,
            "connected": False,
            "live": False,
            "status": "unhealthy",
            "error": e.message,
        }
    try:
        return await service.health()
    finally:
        await service.shutdown()


@app.command("check")
def health_check(json_out: bool = typer.Option(False, "--json")) -> None:
    """Connect to the configured backend and run a round trip."""
    settings = load_settings()
    service = BackendService(database_config(settings))
    report = run(_health_report(service))
    output_dict(report, as_json=json_out, title="Health")
    if report["status"] != "healthy":
        raise typer.Exit(code=1)


@app.command("capabilities")
def capabilities(json_out: bool = typer.Option(False, "--json")) -> None:
    """Show what the configured backend supports (no connection needed)."""
    settings = load_settings()
    service = BackendService(database_config(settings))
    output_dict(
        {"backend": service.kind.value, **service.capabilities.to_dict()},
        as_json=json_out,
        title="Capabilities",
    )
