"""
CLI: ``coastline config`` — inspect resolved configuration.
"""

from __future__ import annotations

import typer

from coastline.cli.utils import load_settings, output_dict
from coastline.core.errors import ConfigError

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show(json_out: bool = typer.Option(False, "--json", help="JSON output")) -> None:
    """Show resolved settings (secrets masked)."""
    settings = load_settings()
    data = settings.model_dump(mode="json")
    try:
        data["backend_kind"] = settings.backend_kind.value
    except ConfigError as e:
        data["backend_kind"] = f"<{e.message}>"
    output_dict(data, as_json=json_out, title="Configuration")
