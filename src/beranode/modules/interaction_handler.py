"""User interaction abstraction for the CLI and tests.

Provisioning never prompts. The CLI asks the user through an
InteractionHandler and passes the answer down as a plain flag, so tests can
swap in MockInteractionHandler with scripted answers.

Example:
    >>> handler = MockInteractionHandler(confirm_responses=[False])
    >>> handler.confirm("Overwrite existing registry?")
    False
"""

from typing import Protocol, runtime_checkable

import click


@runtime_checkable
class InteractionHandler(Protocol):
    """Protocol for user interaction."""

    def confirm(self, message: str, default: bool = True) -> bool:
        """Prompt for yes/no confirmation."""
        ...

    def show_warning(self, message: str) -> None:
        """Display a warning message."""
        ...

    def show_info(self, message: str) -> None:
        """Display an informational message."""
        ...


class CLIInteractionHandler:
    """Click-based interaction handler."""

    def confirm(self, message: str, default: bool = True) -> bool:
        return click.confirm(click.style(message, fg="yellow"), default=default)

    def show_warning(self, message: str) -> None:
        click.secho(f"Warning: {message}", fg="yellow", err=True)

    def show_info(self, message: str) -> None:
        click.secho(message, fg="green")


class MockInteractionHandler:
    """Scripted handler for tests.

    Args:
        confirm_responses: Answers returned by confirm(), in order. When
            exhausted, the default is returned.
    """

    def __init__(self, confirm_responses: list[bool] | None = None):
        self.confirm_responses = list(confirm_responses or [])
        self.interactions: list[dict] = []

    def confirm(self, message: str, default: bool = True) -> bool:
        response = self.confirm_responses.pop(0) if self.confirm_responses else default
        self.interactions.append({"type": "confirm", "message": message, "response": response})
        return response

    def show_warning(self, message: str) -> None:
        self.interactions.append({"type": "warning", "message": message})

    def show_info(self, message: str) -> None:
        self.interactions.append({"type": "info", "message": message})

    def get_interactions_by_type(self, interaction_type: str) -> list[dict]:
        return [i for i in self.interactions if i["type"] == interaction_type]
