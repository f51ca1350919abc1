"""
tplforge.cli - Command Line Interface
=====================================

This module provides the command-line interface for tplforge using Typer.
It is thin wiring around the core: ``resolve`` finds the template tree and
``render_tree`` writes the project.

Architecture
------------
    app (main entry point)
    ├── gen      - Generate a project from a template
    └── resolve  - Show where a template identifier resolves to

Usage Examples
--------------
From a GitHub repository (owner/repo shorthand):
    $ tplforge gen billing-service -t acme/service-template

From another host, with custom delimiters:
    $ tplforge gen billing-service -t gitlab.com/acme/svc -l '<%' -r '%>'

Non-interactive (no prompts):
    $ tplforge gen billing-service -t ./templates/service --yes --org acme

See Also
--------
- resolver.py: Template source resolution
- renderer.py: Template tree rendering
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import questionary
import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tplforge import __version__
from tplforge.context import build_context
from tplforge.errors import TplforgeError
from tplforge.models import Delimiters, Settings
from tplforge.renderer import render_tree
from tplforge.resolver import resolve


# =============================================================================
# CLI Application Setup
# =============================================================================

app = typer.Typer(
    name="tplforge",
    help="Generate projects from template trees.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Console for rich output
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Display version information and exit."""
    if value:
        console.print(Panel(
            f"[bold green]tplforge[/] version [cyan]{__version__}[/]\n\n"
            f"[dim]Project scaffolding from template trees[/]",
            border_style="green",
        ))
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route library logging through Rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def fail(error: Exception) -> typer.Exit:
    rprint(f"[red]Error:[/] {escape(str(error))}")
    return typer.Exit(1)


# =============================================================================
# Interactive Prompts
# =============================================================================

def prompt_text(message: str, default: str = "") -> str:
    """
    Ask for a free-form value.

    Raises
    ------
    typer.Abort
        If the prompt was cancelled (Ctrl-C).
    """
    result = questionary.text(message, default=default).ask()

    if result is None:
        raise typer.Abort()

    return result


# =============================================================================
# Main Application Callback
# =============================================================================

@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show debug logging.",
        ),
    ] = False,
) -> None:
    """
    [bold]tplforge[/] - Generate projects from template trees.

    Templates can be local directories, archives, names on the
    [cyan]TPLFORGE_PATH[/] search path, or git repositories.
    """
    configure_logging(verbose)


# =============================================================================
# Gen Command - Generate a Project
# =============================================================================

@app.command()
def gen(
    target: Annotated[
        Path,
        typer.Argument(
            help="Directory to generate the project into",
        ),
    ],
    template: Annotated[
        str,
        typer.Option(
            "--template",
            "-t",
            help="Template: path, archive, search-path name, URL or [host/]owner/repo",
        ),
    ],
    left_delimiter: Annotated[
        str,
        typer.Option(
            "--left-delimiter",
            "-l",
            help="Left variable delimiter",
        ),
    ] = "{{{",
    right_delimiter: Annotated[
        str,
        typer.Option(
            "--right-delimiter",
            "-r",
            help="Right variable delimiter",
        ),
    ] = "}}}",
    name: Annotated[
        str | None,
        typer.Option(
            "--name",
            "-n",
            help="Project name exposed as {{{ name }}} (default: target directory name)",
        ),
    ] = None,
    org: Annotated[
        str | None,
        typer.Option(
            "--org",
            help="Organization exposed as {{{ org }}}",
        ),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip all prompts, use defaults",
        ),
    ] = False,
) -> None:
    """
    Generate a project from a template.

    Every file and directory name and every file's content in the template
    is rendered with Jinja2 using {{{ }}} delimiters.
    """
    try:
        delimiters = Delimiters(variable_start=left_delimiter, variable_end=right_delimiter)
        settings = Settings.from_env(delimiters=delimiters)
    except ValidationError as e:
        raise fail(e) from e

    default_name = target.resolve().name
    if name is None:
        name = default_name if yes else prompt_text("Project name:", default_name)
    if org is None:
        org = "" if yes else prompt_text("Organization (optional):")

    try:
        source = resolve(template, settings)
        try:
            result = render_tree(
                source.resolved_dir,
                target,
                build_context(name=name, org=org),
                settings.delimiters,
            )
        finally:
            source.cleanup()
    except TplforgeError as e:
        raise fail(e) from e

    console.print(
        Panel(
            f"[bold green]Project generated![/]\n\n"
            f"[dim]Template:[/] {escape(source.location)} ({source.kind.value})\n"
            f"[dim]Location:[/] {escape(str(target))}\n"
            f"[dim]Files:[/] {len(result.files_created)}  "
            f"[dim]Directories:[/] {len(result.dirs_created)}",
            title="[bold green]Success[/]",
            border_style="green",
        )
    )


# =============================================================================
# Resolve Command - Show Template Source
# =============================================================================

@app.command("resolve")
def resolve_command(
    identifier: Annotated[
        str,
        typer.Argument(
            help="Template identifier to resolve",
        ),
    ],
) -> None:
    """
    Show where a template identifier resolves to.

    Remote templates are cloned or updated in the cache as a side effect.
    """
    try:
        source = resolve(identifier, Settings.from_env())
    except TplforgeError as e:
        raise fail(e) from e

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Kind", source.kind.value)
    table.add_row("Location", escape(source.location))
    table.add_row("Directory", escape(str(source.resolved_dir)))
    console.print(table)

    if source.is_scratch:
        console.print("[dim]Unpacked into a scratch directory; remove it when done.[/]")


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    app()
