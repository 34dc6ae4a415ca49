"""Command-line interface for Gorgon.

This module defines the CLI commands using Click framework.

Commands:
- build: Build the site into the output directory (fully or incrementally).
- serve: Run development server with live reload.
- clean: Remove the output directory and the build cache.
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__
from .errors import GorgonError
from .logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="gorgon")
def cli():
    """Gorgon static site builder."""


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option(
    "--incremental",
    is_flag=True,
    help="Only rebuild what changed since the previous build",
)
@click.option("--verbose", "-v", is_flag=True, help="Log build phases and skipped writes")
def build(drafts: bool, incremental: bool, verbose: bool):
    """Build the site into the output directory."""
    configure_logging(verbose=verbose)
    project_root = Path.cwd()
    from .build import SiteBuilder

    try:
        builder = SiteBuilder(project_root, include_drafts=drafts)
        report = builder.incremental_build() if incremental else builder.full_build()
    except GorgonError as exc:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        if exc.source_path:
            click.echo(click.style(f"  File: {exc.source_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None

    color = "green" if report.ok else "red"
    click.echo(click.style(report.summary(), fg=color))
    for failure in report.failures:
        click.echo(click.style(f"  {failure}", fg="yellow"), err=True)
    if not report.ok:
        raise SystemExit(1)


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides gorgon.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides gorgon.yaml ws_port)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log build phases and requests")
def serve(drafts: bool, port: int | None, ws_port: int | None, verbose: bool):
    """Run dev server with live reload."""
    configure_logging(verbose=verbose)
    project_root = Path.cwd()
    from .server import DevServer

    try:
        server = DevServer(project_root, http_port=port, ws_port=ws_port, include_drafts=drafts)
    except GorgonError as exc:
        raise click.ClickException(str(exc)) from None
    server.start()


@cli.command()
def clean():
    """Remove the output directory and the build cache."""
    project_root = Path.cwd()
    from .build import clean_site

    try:
        removed = clean_site(project_root)
    except GorgonError as exc:
        raise click.ClickException(str(exc)) from None
    if not removed:
        click.echo("Nothing to clean")
        return
    for directory in removed:
        click.echo(f"Removed {directory.relative_to(project_root)}")


def main():
    """Entry point for the CLI application."""
    cli()
