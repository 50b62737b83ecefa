"""Genesis construction collaborator.

Builds the two shared genesis files every node starts from:

- tmp/eth-genesis.json: execution-layer genesis, funding the fleet wallet
- tmp/genesis.json: consensus-layer genesis carrying the validators' premined
  deposits and the execution payload header

The heavy lifting is done by `beacond genesis ...` subcommands run against a
throwaway beacond home. An eth-genesis.json already present in tmp/ is used
as-is (contract allocations and fork schedule kept), with the fleet wallet and
chain id patched in. Otherwise the default genesis is written, taking the
predeployed contract code from the execution genesis template.
"""

import json
import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from beranode.layout import FleetLayout
from beranode.modules.subprocess_helper import safe_run
from beranode.settings import Network

logger = logging.getLogger(__name__)

DEPOSIT_CONTRACT_ADDRESS = "0x4242424242424242424242424242424242424242"
ZERO_HASH = "0x" + "00" * 32
ZERO_ADDRESS = "0x" + "00" * 20

# Contracts every fleet genesis carries, by name.
PREDEPLOY_ADDRESSES = {
    "beacon-roots": "0x000F3df6D732807Ef1319fB7B8bB8522d0Beac02",
    "create2-deployer": "0x4e59b44847b379578588920cA78FbF26c0B4956C",
    "multicall3": "0xcA11bde05977b3631167028862bE2a173976CA11",
    "wbera": "0x6969696969696969696969696969696969696969",
    "permit2": "0x000000000022D473030F116dDEE9F6B43aC78BA3",
    "beacon-deposit": DEPOSIT_CONTRACT_ADDRESS,
}

# EIP-4788 system contract and the deterministic deployment proxy.
BUILTIN_CONTRACT_CODE = {
    "beacon-roots": (
        "0x3373fffffffffffffffffffffffffffffffffffffffe14604d57602036146024575f5ffd5b5f35801560495762001fff810690"
        "815414603c575f5ffd5b62001fff01545f5260205ff35b5f5ffd5b62001fff42064281555f359062001fff015500"
    ),
    "create2-deployer": (
        "0x7fffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffe03601600081602082378035828234f580151560"
        "39578182fd5b8082525050506014600cf3"
    ),
}

BERACHAIN_FORKS: dict[str, dict[str, Any]] = {
    "prague1": {
        "time": 0,
        "baseFeeChangeDenominator": 48,
        "minimumBaseFeeWei": 1000000000,
        "polDistributorAddress": "0x4200000000000000000000000000000000000042",
    },
    "prague2": {"time": 0, "minimumBaseFeeWei": 0},
}


class GenesisError(Exception):
    """Raised when genesis construction fails."""

    pass


@dataclass
class GenesisResult:
    genesis_path: Path
    eth_genesis_path: Path
    deposits: int
    validator_root: str | None = None


def to_hex_balance(balance: str | int) -> str:
    """Normalize a decimal or 0x-prefixed balance to 0x hex.

    Raises:
        GenesisError: If the value is not a non-negative integer
    """
    try:
        value = int(balance, 0) if isinstance(balance, str) else int(balance)
    except ValueError as e:
        raise GenesisError(f"Invalid wallet balance: {balance}") from e
    if value < 0:
        raise GenesisError(f"Wallet balance must be non-negative: {balance}")
    return hex(value)


def _find_account(alloc: dict[str, Any], address: str) -> dict[str, Any] | None:
    """Look up an alloc entry; addresses compare case-insensitively."""
    for key, account in alloc.items():
        if key.lower() == address.lower():
            return account
    return None


def contract_allocations(template: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Pick the predeployed contracts out of a genesis template's alloc."""
    alloc = template.get("alloc", {})
    contracts = {}
    for address in PREDEPLOY_ADDRESSES.values():
        account = _find_account(alloc, address)
        if account is not None and account.get("code"):
            contracts[address] = dict(account)
    return contracts


def berachain_forks(template: dict[str, Any] | None = None) -> dict[str, Any]:
    """The Prague 1-N fork section, with a template's own section taking precedence."""
    forks = {name: dict(fork) for name, fork in BERACHAIN_FORKS.items()}
    if template:
        for name, fork in template.get("config", {}).get("berachain", {}).items():
            forks.setdefault(name, {}).update(fork)
    return forks


def default_eth_genesis(chain_id: int, template: dict[str, Any] | None = None) -> dict[str, Any]:
    """Execution genesis with every fork active from block 0 and the predeployed contracts.

    Args:
        chain_id: Execution chain id
        template: Genesis document to take contract code and Berachain forks from
    """
    block_forks = [
        "homesteadBlock",
        "eip150Block",
        "eip155Block",
        "eip158Block",
        "byzantiumBlock",
        "constantinopleBlock",
        "petersburgBlock",
        "istanbulBlock",
        "muirGlacierBlock",
        "berlinBlock",
        "londonBlock",
        "arrowGlacierBlock",
        "grayGlacierBlock",
        "mergeNetsplitBlock",
    ]
    config: dict[str, Any] = {"chainId": chain_id, "daoForkBlock": 0, "daoForkSupport": True}
    config.update({fork: 0 for fork in block_forks})
    config.update(
        {
            "shanghaiTime": 0,
            "cancunTime": 0,
            "pragueTime": 0,
            "terminalTotalDifficulty": 0,
            "terminalTotalDifficultyPassed": True,
            "blobSchedule": {
                "cancun": {"target": 3, "max": 6, "baseFeeUpdateFraction": 3338477},
                "prague": {"target": 6, "max": 9, "baseFeeUpdateFraction": 5007716},
            },
            "berachain": berachain_forks(template),
            "ethash": {},
        }
    )

    alloc: dict[str, dict[str, Any]] = {}
    for name, code in BUILTIN_CONTRACT_CODE.items():
        alloc[PREDEPLOY_ADDRESSES[name]] = {"balance": "0x0", "nonce": "0x1", "code": code}
    if template:
        alloc.update(contract_allocations(template))

    return {
        "config": config,
        "coinbase": ZERO_ADDRESS,
        "difficulty": "0x01",
        "extraData": ZERO_HASH,
        "gasLimit": "0x1c9c380",
        "nonce": "0x1234",
        "mixHash": ZERO_HASH,
        "parentHash": ZERO_HASH,
        "timestamp": "0",
        "alloc": alloc,
    }


def _read_json(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise GenesisError(f"Failed to read {path}: {e}") from e


def _write_json(path: Path, data: dict[str, Any]) -> None:
    temp_path = path.with_suffix(".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w") as f:
            json.dump(data, f, indent=2)
        temp_path.replace(path)
    except OSError as e:
        raise GenesisError(f"Failed to write {path}: {e}") from e


class GenesisBuilder:
    """Run the beacond genesis subcommands for a fleet."""

    def __init__(self, beacond: Path | str, layout: FleetLayout, network: Network):
        self.beacond = str(beacond)
        self.layout = layout
        self.network = network

    @property
    def _chain_spec(self) -> list[str]:
        return ["--beacon-kit.chain-spec", self.network.chain_spec]

    def write_eth_genesis(self, wallet_address: str, wallet_balance: str) -> Path:
        """Write tmp/eth-genesis.json with the wallet funded.

        An existing tmp/eth-genesis.json is patched in place. Otherwise the
        default genesis is built, with contract code from the execution
        genesis template when one has been fetched.

        Raises:
            GenesisError: If the deposit contract would have no code
        """
        path = self.layout.eth_genesis_path
        if path.exists():
            logger.info(f"Using existing execution genesis at {path}")
            genesis = _read_json(path)
        else:
            template = None
            if self.layout.eth_genesis_template_path.exists():
                template = _read_json(self.layout.eth_genesis_template_path)
            genesis = default_eth_genesis(self.network.chain_id, template)

        genesis.setdefault("config", {})["chainId"] = self.network.chain_id
        alloc = genesis.setdefault("alloc", {})
        deposit_contract = _find_account(alloc, DEPOSIT_CONTRACT_ADDRESS)
        if not deposit_contract or not deposit_contract.get("code"):
            raise GenesisError(
                f"Deposit contract {DEPOSIT_CONTRACT_ADDRESS} has no code; "
                f"place an execution genesis template at {self.layout.eth_genesis_template_path}"
            )
        alloc.setdefault(wallet_address, {})["balance"] = to_hex_balance(wallet_balance)
        _write_json(path, genesis)
        logger.debug(f"Wrote execution genesis to {path}")
        return path

    def build(self, moniker: str, premined_deposits: list[dict[str, Any]]) -> GenesisResult:
        """Build tmp/genesis.json from the validators' premined deposits.

        Args:
            moniker: Moniker used for the throwaway beacond home
            premined_deposits: One deposit document per validator

        Raises:
            GenesisError: If any beacond step fails or deposits go missing
        """
        if not premined_deposits:
            raise GenesisError("At least one validator deposit is required")
        eth_genesis = self.layout.eth_genesis_path
        if not eth_genesis.exists():
            raise GenesisError(f"Execution genesis not found at {eth_genesis}")

        self.layout.tmp_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="genesis-", dir=self.layout.tmp_dir) as tmp:
            home = Path(tmp)
            self._run(
                ["init", moniker, "--chain-id", self.network.beacon_chain_id, *self._chain_spec, "--home", str(home)],
                "initialize genesis home",
            )

            deposits_dir = home / "config" / "premined-deposits"
            deposits_dir.mkdir(parents=True, exist_ok=True)
            for deposit in premined_deposits:
                _write_json(deposits_dir / f"premined-deposit-{deposit.get('pubkey', '')}.json", deposit)

            self._run(["genesis", "collect-premined-deposits", *self._chain_spec, "--home", str(home)], "collect deposits")
            genesis_doc = _read_json(home / "config" / "genesis.json")
            collected = genesis_doc.get("app_state", {}).get("beacon", {}).get("deposits", [])
            if len(collected) != len(premined_deposits):
                raise GenesisError(
                    f"Genesis holds {len(collected)} deposits, expected {len(premined_deposits)}"
                )

            validator_root = self._validator_root(home)

            self._run(
                ["genesis", "set-deposit-storage", str(eth_genesis), *self._chain_spec, "--home", str(home)],
                "set deposit contract storage",
            )
            self._merge_deposit_storage(home / eth_genesis.name, eth_genesis)

            self._run(
                ["genesis", "execution-payload", str(eth_genesis), *self._chain_spec, "--home", str(home)],
                "set execution payload",
            )
            try:
                shutil.copyfile(home / "config" / "genesis.json", self.layout.genesis_path)
            except OSError as e:
                raise GenesisError(f"Failed to write {self.layout.genesis_path}: {e}") from e

        logger.info(f"Genesis written to {self.layout.genesis_path} ({len(premined_deposits)} deposits)")
        return GenesisResult(
            genesis_path=self.layout.genesis_path,
            eth_genesis_path=eth_genesis,
            deposits=len(premined_deposits),
            validator_root=validator_root,
        )

    def _run(self, args: list[str], action: str) -> str:
        result = safe_run([self.beacond, *args])
        if not result.ok:
            raise GenesisError(f"Failed to {action}: {result.stderr.strip() or result.stdout.strip()}")
        return result.stdout

    def _validator_root(self, home: Path) -> str | None:
        result = safe_run(
            [self.beacond, "genesis", "validator-root", str(home / "config" / "genesis.json"), *self._chain_spec, "--home", str(home)]
        )
        if not result.ok:
            logger.warning(f"Could not compute validator root: {result.stderr.strip()}")
            return None
        return result.stdout.strip() or None

    @staticmethod
    def _merge_deposit_storage(source: Path, target: Path) -> None:
        """Copy the deposit contract storage beacond computed into the shared file."""
        if not source.exists():
            # beacond patched the target in place
            return
        storage = _read_json(source).get("alloc", {}).get(DEPOSIT_CONTRACT_ADDRESS, {}).get("storage")
        if storage is None:
            raise GenesisError("Deposit contract storage missing from beacond output")
        genesis = _read_json(target)
        genesis.setdefault("alloc", {}).setdefault(DEPOSIT_CONTRACT_ADDRESS, {})["storage"] = storage
        _write_json(target, genesis)
