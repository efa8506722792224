"""
Root Typer application for the coastline CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="coastline",
    help="coastline — multi-backend data access for the tourism marketplace.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from coastline import __version__

        typer.echo(f"coastline {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """coastline CLI — backend health, ad-hoc reads and configuration."""


# ── Sub-command registration ─────────────────────────────────────────────

from coastline.cli.config import app as config_app  # noqa: E402
from coastline.cli.db import app as db_app  # noqa: E402
from coastline.cli.health import app as health_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(health_app, name="health", help="Health and capabilities.")
app.add_typer(config_app, name="config", help="Configuration inspection.")
