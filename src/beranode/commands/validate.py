"""Registry validation command for beranode CLI."""

import sys
from pathlib import Path

import click

from beranode.commands.cli_helpers import beranodes_dir_option, resolve_layout
from beranode.fleet_registry import FleetRegistry, RegistryError
from beranode.validation import validate_registry


@click.command()
@beranodes_dir_option
def validate(beranodes_dir: Path | None):
    """Check the field formats of the fleet registry.

    \b
    Examples:
        beranode validate
        beranode validate --beranodes-dir /custom/path
    """
    registry = FleetRegistry(resolve_layout(beranodes_dir).registry_path)
    try:
        data = registry.load_raw()
    except RegistryError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    errors = validate_registry(data)
    if errors:
        click.echo(f"Registry {registry.path} has {len(errors)} problem(s):", err=True)
        for error in errors:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)
    click.echo(f"Registry {registry.path} is valid.")
