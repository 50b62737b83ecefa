"""Key-generation collaborators.

Wraps `cast` (wallet and execution-layer keys) and `beacond` (consensus-layer
node identity). Each node identity is generated in a throwaway beacond home so
nothing leaks between nodes.

Public API:
    Wallet: funded account for the fleet
    NodeIdentity: opaque key material of one node
    IdentityGenerator: runs the collaborators
"""

import json
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from beranode.modules.subprocess_helper import SubprocessResult, safe_run
from beranode.settings import GENESIS_DEPOSIT_AMOUNT, Network, Role

logger = logging.getLogger(__name__)

# Line positions (0-based) in `beacond deposit validator-keys` output.
COMET_ADDRESS_LINE = 1
COMET_PUBKEY_LINE = 4
ETH_BEACON_PUBKEY_LINE = 7


class IdentityError(Exception):
    """Raised when key material cannot be generated."""

    pass


@dataclass(frozen=True)
class Wallet:
    private_key: str
    address: str


@dataclass
class NodeIdentity:
    """Key material of one node, stored verbatim in the fleet registry."""

    beacond_config: dict[str, Any] = field(default_factory=dict)
    berareth_config: dict[str, Any] = field(default_factory=dict)

    @property
    def node_id(self) -> str:
        return self.beacond_config.get("node_id", "")

    @property
    def jwt(self) -> str:
        return self.beacond_config.get("jwt", "")

    @property
    def el_public_key(self) -> str:
        return self.berareth_config.get("public_key", "")

    @property
    def el_private_key(self) -> str:
        return self.berareth_config.get("private_key", "")

    @property
    def premined_deposit(self) -> dict[str, Any] | None:
        return self.beacond_config.get("premined_deposit")

    def to_dict(self) -> dict[str, Any]:
        return {"beacond_config": self.beacond_config, "berareth_config": self.berareth_config}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NodeIdentity":
        return cls(
            beacond_config=dict(data.get("beacond_config") or {}),
            berareth_config=dict(data.get("berareth_config") or {}),
        )


def _check(result: SubprocessResult, action: str) -> SubprocessResult:
    if not result.ok:
        detail = result.stderr.strip() or result.stdout.strip()
        raise IdentityError(f"Failed to {action}: {detail}")
    return result


def _strip_hex(value: str) -> str:
    return value.strip().removeprefix("0x")


class IdentityGenerator:
    """Generate wallets and node identities with the external tools."""

    def __init__(self, beacond: Path | str, cast: Path | str, work_dir: Path):
        self.beacond = str(beacond)
        self.cast = str(cast)
        self.work_dir = work_dir

    def generate_wallet(self) -> Wallet:
        """Create a fresh funded-account key pair.

        Raises:
            IdentityError: If cast fails or its output cannot be parsed
        """
        result = _check(safe_run([self.cast, "wallet", "new"]), "generate wallet")
        private_key = None
        for line in result.lines():
            if line.strip().startswith("Private key:"):
                private_key = line.split(":", 1)[1].strip()
                break
        if not private_key:
            raise IdentityError("Could not find a private key in `cast wallet new` output")

        address = self.wallet_address(private_key)
        logger.debug(f"Generated wallet {address}")
        return Wallet(private_key=private_key, address=address)

    def wallet_address(self, private_key: str) -> str:
        result = _check(
            safe_run([self.cast, "wallet", "address", "--private-key", private_key]),
            "derive wallet address",
        )
        return result.stdout.strip()

    def generate_execution_keys(self) -> dict[str, str]:
        """Execution-layer P2P key pair, hex without 0x."""
        result = _check(safe_run([self.cast, "wallet", "new", "--json"]), "generate execution key")
        try:
            private_key = json.loads(result.stdout)[0]["private_key"]
        except (ValueError, LookupError, TypeError) as e:
            raise IdentityError(f"Unexpected `cast wallet new --json` output: {e}") from e

        pub_result = _check(
            safe_run([self.cast, "wallet", "public-key", "--private-key", private_key]),
            "derive execution public key",
        )
        return {"private_key": _strip_hex(private_key), "public_key": _strip_hex(pub_result.stdout)}

    def generate_node_identity(
        self,
        moniker: str,
        network: Network,
        role: Role,
        withdraw_address: str,
        deposit_amount: str = GENESIS_DEPOSIT_AMOUNT,
    ) -> NodeIdentity:
        """Generate the full key material of one node.

        Validators also get a premined genesis deposit signed with their key.

        Raises:
            IdentityError: If any collaborator fails
        """
        self.work_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="beacond-", dir=self.work_dir) as tmp:
            home = Path(tmp)
            chain_spec = ["--beacon-kit.chain-spec", network.chain_spec]
            _check(
                safe_run(
                    [self.beacond, "init", moniker, "--chain-id", network.beacon_chain_id, *chain_spec, "--home", str(home)]
                ),
                f"initialize identity for {moniker}",
            )
            node_key = self._read_json(home / "config" / "node_key.json")
            priv_validator_key = self._read_json(home / "config" / "priv_validator_key.json")

            keys = _check(
                safe_run([self.beacond, "deposit", "validator-keys", "--home", str(home)]),
                f"read validator keys for {moniker}",
            ).lines()
            if len(keys) <= ETH_BEACON_PUBKEY_LINE:
                raise IdentityError(f"Unexpected validator-keys output for {moniker}")

            node_id = _check(
                safe_run([self.beacond, "tendermint", "show-node-id", *chain_spec, "--home", str(home)]),
                f"read node id for {moniker}",
            ).stdout.strip()

            premined_deposit = None
            if role is Role.VALIDATOR:
                premined_deposit = self._premined_deposit(home, chain_spec, deposit_amount, withdraw_address, moniker)

            jwt_path = home / "jwt.hex"
            _check(safe_run([self.beacond, "jwt", "generate", "-o", str(jwt_path)]), f"generate JWT for {moniker}")
            try:
                jwt = jwt_path.read_text().strip()
            except OSError as e:
                raise IdentityError(f"Failed to read JWT for {moniker}: {e}") from e

        beacond_config = {
            "comet_address": "".join(keys[COMET_ADDRESS_LINE].split()),
            "comet_pubkey": "".join(keys[COMET_PUBKEY_LINE].split()),
            "node_id": node_id,
            "deposit_amount": deposit_amount,
            "jwt": jwt,
            "eth_beacon_pubkey": "".join(keys[ETH_BEACON_PUBKEY_LINE].split()),
            "node_key": node_key,
            "premined_deposit": premined_deposit,
            "priv_validator_key": priv_validator_key,
        }
        logger.debug(f"Generated identity for {moniker} (node id {node_id})")
        return NodeIdentity(beacond_config=beacond_config, berareth_config=self.generate_execution_keys())

    def _premined_deposit(
        self, home: Path, chain_spec: list[str], amount: str, withdraw_address: str, moniker: str
    ) -> dict[str, Any]:
        _check(
            safe_run(
                [self.beacond, "genesis", "add-premined-deposit", amount, withdraw_address, *chain_spec, "--home", str(home)]
            ),
            f"add premined deposit for {moniker}",
        )
        deposits = sorted((home / "config" / "premined-deposits").glob("premined-deposit-*.json"))
        if not deposits:
            raise IdentityError(f"No premined deposit written for {moniker}")
        return self._read_json(deposits[0])

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any]:
        try:
            with open(path) as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise IdentityError(f"Failed to read {path.name}: {e}") from e
