"""Process supervisor for fleet nodes.

Each node runs two processes, bera-reth (execution layer) and beacond
(consensus layer). The supervisor prepares each node's directories, launches
both processes detached from the CLI, and records one PID file per process:

    runs/<role>-<i>-<process>.pid
    log/<role>-<i>-<process>.log

Stopping reads every PID file, sends SIGTERM, removes the file, then sweeps
any stragglers by process name.

Node states:
    NOT_STARTED -> STARTING -> RUNNING -> STOPPING -> STOPPED

Security:
- No shell=True
- Identity files written with 0600 permissions
"""

import json
import logging
import os
import shutil
import signal
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from beranode.config_synthesizer import ConfigSynthesizer
from beranode.fleet_registry import FleetSpec, NodeSpec
from beranode.layout import FleetLayout
from beranode.modules.subprocess_helper import safe_run
from beranode.ports import PortKind
from beranode.settings import BIN_BEACOND, BIN_BERA_RETH, DeploymentMode, resolve_network
from beranode.topology import build_execution_peers, build_topology

logger = logging.getLogger(__name__)

PROCESS_NAMES = (BIN_BERA_RETH, BIN_BEACOND)
EL_HTTP_APIS = "eth,net,web3,txpool,debug"


class SupervisorError(Exception):
    """Raised when node processes cannot be started or stopped."""

    pass


class NodeState(str, Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


TRANSITIONS: dict[NodeState, set[NodeState]] = {
    NodeState.NOT_STARTED: {NodeState.STARTING},
    NodeState.STARTING: {NodeState.RUNNING, NodeState.STOPPING},
    NodeState.RUNNING: {NodeState.STOPPING},
    NodeState.STOPPING: {NodeState.STOPPED},
    NodeState.STOPPED: {NodeState.STARTING},
}


@dataclass
class ProcessHandle:
    """A launched process and where it is recorded."""

    node_index: int
    process: str
    pid: int
    log_path: Path
    pid_path: Path

    def __repr__(self) -> str:
        return f"[{self.process}] node {self.node_index} pid {self.pid} -> {self.log_path.name}"


@dataclass
class ProcessStatus:
    name: str
    pid: int | None
    alive: bool
    pid_path: Path


@dataclass
class StopSummary:
    """Result of a stop sweep."""

    stopped: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def pid_files(self) -> int:
        return len(self.stopped) + len(self.missing)


def is_alive(pid: int) -> bool:
    """Check whether a process exists."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _read_pid(pid_path: Path) -> int | None:
    try:
        return int(pid_path.read_text().strip())
    except (OSError, ValueError):
        return None


def _write_secret(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(content)


def _write_json_secret(path: Path, data: Any) -> None:
    _write_secret(path, json.dumps(data, indent=2) + "\n")


class ProcessSupervisor:
    """Start, stop, and report on the processes of a fleet."""

    def __init__(
        self,
        layout: FleetLayout,
        beacond: Path | str = BIN_BEACOND,
        bera_reth: Path | str = BIN_BERA_RETH,
    ):
        self.layout = layout
        self.beacond = str(beacond)
        self.bera_reth = str(bera_reth)
        self.handles: list[ProcessHandle] = []
        self.states: dict[int, NodeState] = {}

    def state(self, index: int) -> NodeState:
        return self.states.get(index, NodeState.NOT_STARTED)

    def _transition(self, index: int, new_state: NodeState) -> None:
        current = self.state(index)
        if new_state not in TRANSITIONS[current]:
            raise SupervisorError(f"Node {index} cannot go from {current.value} to {new_state.value}")
        logger.debug(f"Node {index}: {current.value} -> {new_state.value}")
        self.states[index] = new_state

    # Starting

    def start(self, fleet: FleetSpec) -> list[ProcessHandle]:
        """Prepare and launch every node of the fleet.

        Raises:
            SupervisorError: If the fleet is containerized, already running,
                or a node cannot be prepared or launched
        """
        if fleet.deployment_mode is DeploymentMode.DOCKER:
            raise SupervisorError("Docker fleets are not launched by beranode; start the containers instead")
        running = [s.name for s in self.status() if s.alive]
        if running:
            raise SupervisorError(f"Fleet already running ({', '.join(running)}). Run 'beranode stop' first.")
        for path in (self.layout.genesis_path, self.layout.eth_genesis_path):
            if not path.exists():
                raise SupervisorError(f"Shared genesis file missing: {path}. Run 'beranode init' first.")

        self.layout.ensure()
        synthesizer = ConfigSynthesizer(fleet, self.layout)
        peers = fleet.peer_identities()

        for index, node in enumerate(fleet.nodes):
            self._transition(index, NodeState.STARTING)
            self.prepare_node(fleet, node)
            synthesizer.synthesize(node, build_topology(peers, index))

        for index, node in enumerate(fleet.nodes):
            el_peers = build_execution_peers(peers, index)
            self.handles.append(self._launch(index, node, BIN_BERA_RETH, self.reth_command(node, el_peers)))
            self.handles.append(self._launch(index, node, BIN_BEACOND, self.beacond_command(node)))
            self._transition(index, NodeState.RUNNING)
            logger.info(f"Started {node.moniker}")
        return self.handles

    def prepare_node(self, fleet: FleetSpec, node: NodeSpec) -> None:
        """Initialize a node's directories and write its identity files."""
        network = resolve_network(fleet.network)
        self.layout.ensure_node(node.dir_name)
        home = self.layout.beacond_home(node.dir_name)
        datadir = self.layout.reth_datadir(node.dir_name)
        config_dir = home / "config"

        if not (config_dir / "config.toml").exists():
            self._run_init(
                [
                    self.beacond, "init", node.moniker,
                    "--chain-id", fleet.beacon_chain_id,
                    "--beacon-kit.chain-spec", network.chain_spec,
                    "--home", str(home),
                ],
                f"beacond init for {node.moniker}",
            )
        if not (datadir / "db").exists():
            self._run_init(
                [self.bera_reth, "init", "--chain", str(self.layout.eth_genesis_path), "--datadir", str(datadir)],
                f"bera-reth init for {node.moniker}",
            )

        beacond_config = node.identity.beacond_config
        try:
            shutil.copyfile(self.layout.genesis_path, config_dir / "genesis.json")
            if beacond_config.get("node_key"):
                _write_json_secret(config_dir / "node_key.json", beacond_config["node_key"])
            if beacond_config.get("priv_validator_key"):
                _write_json_secret(config_dir / "priv_validator_key.json", beacond_config["priv_validator_key"])
            if node.identity.jwt:
                _write_secret(config_dir / "jwt.hex", node.identity.jwt)
            if node.identity.el_private_key:
                _write_secret(datadir / "p2p-secret", node.identity.el_private_key)
        except OSError as e:
            raise SupervisorError(f"Failed to write files for {node.moniker}: {e}") from e

    def _run_init(self, cmd: list[str], action: str) -> None:
        result = safe_run(cmd, timeout=120)
        if not result.ok:
            raise SupervisorError(f"{action} failed: {result.stderr.strip() or result.stdout.strip()}")

    def beacond_command(self, node: NodeSpec) -> list[str]:
        return [self.beacond, "start", "--home", str(self.layout.beacond_home(node.dir_name))]

    def reth_command(self, node: NodeSpec, trusted_peers: list[str]) -> list[str]:
        ports = node.ports
        datadir = self.layout.reth_datadir(node.dir_name)
        cmd = [
            self.bera_reth, "node",
            "--chain", str(self.layout.eth_genesis_path),
            "--datadir", str(datadir),
            "--http", "--http.addr", "127.0.0.1", "--http.port", str(ports[PortKind.EL_RPC]),
            "--http.api", EL_HTTP_APIS,
            "--authrpc.addr", "127.0.0.1", "--authrpc.port", str(ports[PortKind.EL_AUTHRPC]),
            "--authrpc.jwtsecret", str(self.layout.beacond_home(node.dir_name) / "config" / "jwt.hex"),
            "--port", str(ports[PortKind.EL_P2P]),
            "--discovery.port", str(ports[PortKind.EL_P2P]),
            "--p2p-secret-key", str(datadir / "p2p-secret"),
            "--metrics", f"127.0.0.1:{ports[PortKind.EL_METRICS]}",
            "--ipcdisable",
        ]
        if trusted_peers:
            cmd += ["--trusted-peers", ",".join(trusted_peers)]
        return cmd

    def _launch(self, index: int, node: NodeSpec, process: str, cmd: list[str]) -> ProcessHandle:
        log_path = self.layout.log_path(node.dir_name, process)
        pid_path = self.layout.pid_path(node.dir_name, process)
        logger.debug(f"Launching {process} for {node.moniker}: {' '.join(cmd)}")
        try:
            with open(log_path, "a") as log_file:
                proc = subprocess.Popen(
                    cmd,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    start_new_session=True,
                )
        except OSError as e:
            raise SupervisorError(f"Failed to launch {process} for {node.moniker}: {e}") from e

        try:
            pid_path.write_text(f"{proc.pid}\n")
        except OSError as e:
            raise SupervisorError(
                f"{process} for {node.moniker} started as PID {proc.pid} but {pid_path} could not be written: {e}"
            ) from e
        return ProcessHandle(node_index=index, process=process, pid=proc.pid, log_path=log_path, pid_path=pid_path)

    # Stopping

    def stop(self, sweep: bool = True) -> StopSummary:
        """Terminate every process with a PID file, then sweep by name.

        Raises:
            SupervisorError: If the runs directory does not exist
        """
        runs_dir = self.layout.runs_dir
        if not runs_dir.is_dir():
            raise SupervisorError(f"Runs directory not found: {runs_dir}")

        for index in list(self.states):
            if self.state(index) in (NodeState.STARTING, NodeState.RUNNING):
                self._transition(index, NodeState.STOPPING)

        summary = StopSummary()
        for pid_path in sorted(runs_dir.glob("*.pid")):
            pid = _read_pid(pid_path)
            logger.info(f"{pid_path.name} / PID: {pid}")
            if pid is not None and self._terminate(pid):
                summary.stopped.append(pid_path.stem)
            else:
                logger.warning(f"Failed to stop process with PID: {pid} (may not exist)")
                summary.missing.append(pid_path.stem)
            pid_path.unlink(missing_ok=True)

        if sweep:
            logger.info("Killing any remaining processes...")
            for name in PROCESS_NAMES:
                safe_run(["pkill", "-f", name], timeout=10)

        for index in list(self.states):
            if self.state(index) is NodeState.STOPPING:
                self._transition(index, NodeState.STOPPED)
        self.handles.clear()
        return summary

    @staticmethod
    def _terminate(pid: int) -> bool:
        try:
            os.kill(pid, signal.SIGTERM)
        except (ProcessLookupError, PermissionError):
            return False
        return True

    # Status

    def status(self) -> list[ProcessStatus]:
        """Report each PID file and whether its process is alive."""
        if not self.layout.runs_dir.is_dir():
            return []
        statuses = []
        for pid_path in sorted(self.layout.runs_dir.glob("*.pid")):
            pid = _read_pid(pid_path)
            statuses.append(
                ProcessStatus(
                    name=pid_path.stem,
                    pid=pid,
                    alive=pid is not None and is_alive(pid),
                    pid_path=pid_path,
                )
            )
        return statuses
