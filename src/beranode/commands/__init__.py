"""Commands for the beranode CLI."""

from beranode.commands.fleet import init
from beranode.commands.lifecycle import start, status, stop
from beranode.commands.validate import validate

__all__ = ["init", "start", "status", "stop", "validate"]
