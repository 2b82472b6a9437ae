#!/usr/bin/env python3
"""
Command-line interface for Soft Deletion.

Provides configuration and model inspection tools.
"""

import importlib
import os
import sys
from typing import Any

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from . import __version__
from .config import get_config
from .descriptors import CascadePolicy, DescriptorTable
from .services import SoftDeletion

console = Console()

_POLICY_STYLES = {
    CascadePolicy.CASCADE: "red",
    CascadePolicy.NULLIFY: "yellow",
    CascadePolicy.INDEPENDENT: "dim",
}


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Soft Deletion - reversible logical deletes for SQLAlchemy models."""
    if ctx.invoked_subcommand is None:
        console.print(
            Panel.fit(
                f"[bold blue]Soft Deletion[/bold blue] v{__version__}\n"
                "[dim]Reversible logical deletes for SQLAlchemy models[/dim]\n\n"
                "Use [bold]soft-deletion --help[/bold] to see available commands.",
                border_style="blue",
            )
        )


@cli.group()
def config() -> None:
    """Inspect soft deletion configuration."""
    pass


@config.command("show")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
def config_show(format: str) -> None:
    """Display current configuration."""
    try:
        config = get_config()
        config_dict = config.to_dict()

        if format == "json":
            console.print_json(data=config_dict)
        elif format == "yaml":
            import yaml  # type: ignore[import-untyped]

            console.print(yaml.dump(config_dict, default_flow_style=False))
        else:
            table = Table(title="Soft Deletion Configuration", show_header=True)
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")
            table.add_column("Description", style="dim")

            for name, field_info in type(config).model_fields.items():
                value = config_dict[name]
                if isinstance(value, bool):
                    value = "✓" if value else "✗"
                elif value == "":
                    value = "[dim]Not configured[/dim]"
                table.add_row(name, str(value), field_info.description or "")

            console.print(table)

    except Exception as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)


@config.command("validate")
def config_validate() -> None:
    """Validate current configuration."""
    try:
        config = get_config()
    except Exception as e:
        console.print("[red]✗ Configuration validation failed:[/red]")
        console.print(f"  [red]• {e}[/red]")
        sys.exit(1)

    warnings = []
    if not config.use_utc:
        warnings.append(
            "Markers use naive local timestamps; "
            "cascade restores compare timestamps exactly"
        )
    if not config.validation_method:
        warnings.append("Record validation is disabled before marker updates")
    if not config.log_hook_failures and not config.raise_hook_errors:
        warnings.append("Hook failures are neither logged nor raised")

    console.print("[green]✓ Configuration is valid[/green]")
    if warnings:
        console.print("\n[yellow]⚠ Warnings:[/yellow]")
        for warning in warnings:
            console.print(f"  [yellow]• {warning}[/yellow]")


@cli.command()
@click.argument("target")
def describe(target: str) -> None:
    """Show the descriptor table of TARGET (module:attribute).

    TARGET may be a SoftDeletion service, a DescriptorTable or a declarative
    base, whose mapped classes are registered from their declarations.
    """
    try:
        descriptors = _load_descriptors(target)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    tree = Tree(f"[bold]{target}[/bold]")
    for descriptor in sorted(descriptors, key=lambda d: d.model.__name__):
        if descriptor.soft_deletable:
            label = (
                f"[bold cyan]{descriptor.model.__name__}[/bold cyan] "
                f"[green]marker={descriptor.marker}[/green]"
            )
        else:
            label = (
                f"[bold cyan]{descriptor.model.__name__}[/bold cyan] "
                "[dim]not soft-deletable[/dim]"
            )
        branch = tree.add(label)
        for relation in descriptor.relations:
            style = _POLICY_STYLES[relation.policy]
            branch.add(
                f"{relation.name} → {relation.target.__name__} "
                f"[{style}]{relation.policy.value}[/{style}]"
            )

    console.print(tree)
    console.print(f"\n{len(descriptors)} model(s) registered")


def _load_descriptors(target: str) -> DescriptorTable:
    module_name, _, attribute = target.partition(":")
    if not attribute:
        raise click.BadParameter("expected MODULE:ATTRIBUTE")

    obj: Any = importlib.import_module(module_name)
    for part in attribute.split("."):
        obj = getattr(obj, part)

    if isinstance(obj, SoftDeletion):
        return obj.descriptors
    if isinstance(obj, DescriptorTable):
        return obj
    if hasattr(obj, "registry"):
        descriptors = DescriptorTable()
        descriptors.register_all(obj)
        return descriptors
    raise click.BadParameter(
        f"{target} is not a SoftDeletion, DescriptorTable or declarative base"
    )


@cli.command()
def doctor() -> None:
    """Run diagnostic checks on the Soft Deletion installation."""
    console.print("[bold]Running Soft Deletion diagnostics...[/bold]\n")

    checks_passed = 0
    checks_failed = 0

    # Check 1: Configuration
    try:
        config = get_config()
        console.print("[green]✓[/green] Configuration loaded successfully")
        checks_passed += 1
    except Exception as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        checks_failed += 1
        config = None

    # Check 2: SQLAlchemy 2.x
    import sqlalchemy

    if int(sqlalchemy.__version__.split(".")[0]) >= 2:
        console.print(f"[green]✓[/green] SQLAlchemy {sqlalchemy.__version__}")
        checks_passed += 1
    else:
        console.print(
            f"[red]✗[/red] SQLAlchemy {sqlalchemy.__version__} found, 2.0+ required"
        )
        checks_failed += 1

    # Check 3: Database connectivity (if configured)
    db_url = os.getenv("SOFT_DELETION_DATABASE_URL")
    if db_url:
        try:
            from sqlalchemy import create_engine, inspect, text

            engine = create_engine(db_url)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            console.print("[green]✓[/green] Database connection successful")
            checks_passed += 1

            if config is not None:
                marker = config.deleted_field_name
                inspector = inspect(engine)
                tables = [
                    table
                    for table in inspector.get_table_names()
                    if any(c["name"] == marker for c in inspector.get_columns(table))
                ]
                console.print(
                    f"[green]✓[/green] {len(tables)} table(s) carry "
                    f"a '{marker}' column"
                )
            engine.dispose()
        except Exception as e:
            console.print(f"[red]✗[/red] Database connection failed: {e}")
            checks_failed += 1
    else:
        console.print(
            "[yellow]⚠[/yellow] No database configured "
            "(SOFT_DELETION_DATABASE_URL not set)"
        )

    # Summary
    console.print("\n[bold]Summary:[/bold]")
    console.print(f"  Checks passed: [green]{checks_passed}[/green]")
    console.print(f"  Checks failed: [red]{checks_failed}[/red]")

    if checks_failed == 0:
        console.print("\n[green]✓ All systems operational[/green]")
    else:
        console.print("\n[yellow]⚠ Some issues detected - review output above[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    cli()
