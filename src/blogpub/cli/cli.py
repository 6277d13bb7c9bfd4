"""CLI entrypoint: Typer app definition, logging setup, and command registration"""

import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from blogpub.cli.commands import build_cmd, clean_cmd, lint_cmd, manifest_cmd, new_cmd, serve_cmd


app = typer.Typer(name="blogpub", no_args_is_help=True, help="Markdown blog publishing pipeline")


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
    ):
    """Configure logging before any command runs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


app.command(name="build")(build_cmd)
app.command(name="serve")(serve_cmd)
app.command(name="lint")(lint_cmd)
app.command(name="manifest")(manifest_cmd)
app.command(name="new")(new_cmd)
app.command(name="clean")(clean_cmd)
