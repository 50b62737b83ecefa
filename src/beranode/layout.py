"""Filesystem layout of a fleet root.

    <root>/
        beranodes.config.json
        bin/                      beacond, bera-reth (optional local copies)
        tmp/                      kzg-trusted-setup.json, eth-genesis.json, genesis.json
        log/                      <dir>-<proc>.log
        runs/                     <dir>-<proc>.pid
        nodes/<role>-<i>/beacond
        nodes/<role>-<i>/bera-reth
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "beranodes.config.json"
DEFAULT_ROOT_NAME = "beranodes"
ROOT_ENV_VAR = "BERANODES_DIR"


def default_root() -> Path:
    """Fleet root from $BERANODES_DIR, else ./beranodes."""
    env_root = os.environ.get(ROOT_ENV_VAR)
    if env_root:
        return Path(env_root).expanduser()
    return Path.cwd() / DEFAULT_ROOT_NAME


@dataclass(frozen=True)
class FleetLayout:
    root: Path

    @property
    def registry_path(self) -> Path:
        return self.root / REGISTRY_FILENAME

    @property
    def bin_dir(self) -> Path:
        return self.root / "bin"

    @property
    def tmp_dir(self) -> Path:
        return self.root / "tmp"

    @property
    def log_dir(self) -> Path:
        return self.root / "log"

    @property
    def runs_dir(self) -> Path:
        return self.root / "runs"

    @property
    def nodes_dir(self) -> Path:
        return self.root / "nodes"

    @property
    def trusted_setup_path(self) -> Path:
        return self.tmp_dir / "kzg-trusted-setup.json"

    @property
    def eth_genesis_path(self) -> Path:
        return self.tmp_dir / "eth-genesis.json"

    @property
    def eth_genesis_template_path(self) -> Path:
        return self.tmp_dir / "eth-genesis-template.json"

    @property
    def genesis_path(self) -> Path:
        return self.tmp_dir / "genesis.json"

    def node_dir(self, dir_name: str) -> Path:
        return self.nodes_dir / dir_name

    def beacond_home(self, dir_name: str) -> Path:
        return self.node_dir(dir_name) / "beacond"

    def reth_datadir(self, dir_name: str) -> Path:
        return self.node_dir(dir_name) / "bera-reth"

    def log_path(self, dir_name: str, process: str) -> Path:
        return self.log_dir / f"{dir_name}-{process}.log"

    def pid_path(self, dir_name: str, process: str) -> Path:
        return self.runs_dir / f"{dir_name}-{process}.pid"

    def ensure(self) -> None:
        """Create the top-level fleet directories."""
        for directory in (self.bin_dir, self.tmp_dir, self.log_dir, self.runs_dir, self.nodes_dir):
            directory.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Fleet layout ready at {self.root}")

    def ensure_node(self, dir_name: str) -> None:
        self.beacond_home(dir_name).mkdir(parents=True, exist_ok=True)
        self.reth_datadir(dir_name).mkdir(parents=True, exist_ok=True)
