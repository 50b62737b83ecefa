"""Shared helpers for beranode commands."""

from pathlib import Path

import click

from beranode.layout import FleetLayout, default_root


def beranodes_dir_option(func):
    """Add the --beranodes-dir option to a command."""
    return click.option(
        "--beranodes-dir",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="Fleet root directory (default: $BERANODES_DIR or ./beranodes)",
    )(func)


def resolve_layout(beranodes_dir: Path | None) -> FleetLayout:
    root = beranodes_dir if beranodes_dir is not None else default_root()
    return FleetLayout(root=root.expanduser().resolve())
