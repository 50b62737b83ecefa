"""CLI entry point for beranode.

Commands:
    beranode init       Provision a fleet (identities, registry, genesis)
    beranode start      Launch every node
    beranode stop       Terminate every node
    beranode status     Show recorded processes
    beranode validate   Check the registry's field formats
"""

import logging

import click

from beranode import __version__
from beranode.commands import init, start, status, stop, validate


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
@click.version_option(version=__version__)
def main(ctx: click.Context, verbose: bool) -> None:
    """beranode - local Berachain test network provisioning.

    Provisions a fleet of paired beacond / bera-reth nodes on this host,
    synthesizes their configuration, and starts and stops them.

    \b
    LAYOUT:
        Fleet root: $BERANODES_DIR or ./beranodes
        Registry:   <root>/beranodes.config.json

    For help on any command: beranode <command> --help
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


main.add_command(init)
main.add_command(start)
main.add_command(stop)
main.add_command(status)
main.add_command(validate)


if __name__ == "__main__":
    main()
