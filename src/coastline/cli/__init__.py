"""coastline command line (Typer)."""

from coastline.cli.app import app

__all__ = ["app"]
