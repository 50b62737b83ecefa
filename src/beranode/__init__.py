"""beranode - local Berachain test network provisioning CLI

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- Whole-fleet invariants enforced at provisioning time
- Fail fast with helpful guidance

The beranode CLI provisions a fleet of paired beacond / bera-reth nodes on one
host, synthesizes their configuration, and starts and stops their processes.
"""

__version__ = "0.6.0"
__all__ = ["__version__"]
