"""beranode modules - Self-contained helper bricks

- Subprocess Helper: Run external collaborators and capture output
- Interaction Handler: Confirmations and messages for the CLI
"""

from . import interaction_handler, subprocess_helper

__all__ = ["interaction_handler", "subprocess_helper"]
