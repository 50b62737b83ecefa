"""Unit tests for identity module."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from beranode.identity import IdentityError, IdentityGenerator, NodeIdentity
from beranode.modules.subprocess_helper import SubprocessResult
from beranode.settings import NETWORKS, Role

VALIDATOR_KEYS_OUTPUT = """\
Comet Address:
 ABCDEF0123456789ABCDEF0123456789ABCDEF01

Comet Pubkey (Base64):
 q1ZDbz3bdWmW/tc0wsy3aBFWwM0vVG9qtnfsV9+FFfM=

Eth/Beacon Pubkey (Compressed 48-byte Hex):
 0xa1b2c3
"""

NODE_ID = "0123456789abcdef0123456789abcdef01234567"


def _ok(stdout: str = "") -> SubprocessResult:
    return SubprocessResult(returncode=0, stdout=stdout, stderr="")


def fake_tools(cmd, **kwargs):
    """Stand-in for beacond and cast, writing the files they would."""
    home = Path(cmd[cmd.index("--home") + 1]) if "--home" in cmd else None
    args = cmd[1:]
    if args[0] == "init":
        config = home / "config"
        config.mkdir(parents=True)
        (config / "node_key.json").write_text(json.dumps({"priv_key": {"value": "nk"}}))
        (config / "priv_validator_key.json").write_text(json.dumps({"address": "ABCDEF"}))
        return _ok()
    if args[:2] == ["deposit", "validator-keys"]:
        return _ok(VALIDATOR_KEYS_OUTPUT)
    if args[:2] == ["tendermint", "show-node-id"]:
        return _ok(NODE_ID + "\n")
    if args[:2] == ["genesis", "add-premined-deposit"]:
        deposits = home / "config" / "premined-deposits"
        deposits.mkdir(parents=True)
        (deposits / "premined-deposit-0xa1b2c3.json").write_text(json.dumps({"pubkey": "0xa1b2c3", "amount": args[2]}))
        return _ok()
    if args[:2] == ["jwt", "generate"]:
        Path(cmd[cmd.index("-o") + 1]).write_text("0x" + "9" * 64 + "\n")
        return _ok()
    if args == ["wallet", "new", "--json"]:
        return _ok(json.dumps([{"address": "0x1", "private_key": "0x" + "aa" * 32}]))
    if args[:2] == ["wallet", "public-key"]:
        return _ok("0x" + "bb" * 64 + "\n")
    if args == ["wallet", "new"]:
        return _ok("Successfully created new keypair.\nAddress:     0xABC\nPrivate key: 0x" + "cc" * 32 + "\n")
    if args[:2] == ["wallet", "address"]:
        return _ok("0x" + "dd" * 20 + "\n")
    raise AssertionError(f"unexpected command: {cmd}")


@pytest.fixture
def generator(tmp_path):
    return IdentityGenerator("beacond", "cast", tmp_path / "work")


class TestWallet:
    """Tests for wallet generation."""

    def test_generate_wallet(self, generator):
        with patch("beranode.identity.safe_run", side_effect=fake_tools):
            wallet = generator.generate_wallet()
        assert wallet.private_key == "0x" + "cc" * 32
        assert wallet.address == "0x" + "dd" * 20

    def test_wallet_output_without_key(self, generator):
        with patch("beranode.identity.safe_run", return_value=_ok("Address: 0xABC\n")):
            with pytest.raises(IdentityError, match="private key"):
                generator.generate_wallet()

    def test_cast_failure(self, generator):
        failed = SubprocessResult(returncode=127, stdout="", stderr="Command not found: cast")
        with patch("beranode.identity.safe_run", return_value=failed):
            with pytest.raises(IdentityError, match="Command not found"):
                generator.generate_wallet()


class TestExecutionKeys:
    """Tests for execution-layer key generation."""

    def test_keys_stripped_of_prefix(self, generator):
        with patch("beranode.identity.safe_run", side_effect=fake_tools):
            keys = generator.generate_execution_keys()
        assert keys == {"private_key": "aa" * 32, "public_key": "bb" * 64}

    def test_malformed_json(self, generator):
        with patch("beranode.identity.safe_run", return_value=_ok("not json")):
            with pytest.raises(IdentityError, match="Unexpected"):
                generator.generate_execution_keys()


class TestNodeIdentity:
    """Tests for per-node identity generation."""

    def test_validator_identity(self, generator):
        with patch("beranode.identity.safe_run", side_effect=fake_tools):
            identity = generator.generate_node_identity("demo-val-0", NETWORKS["devnet"], Role.VALIDATOR, "0x" + "ab" * 20)

        config = identity.beacond_config
        assert config["comet_address"] == "ABCDEF0123456789ABCDEF0123456789ABCDEF01"
        assert config["comet_pubkey"] == "q1ZDbz3bdWmW/tc0wsy3aBFWwM0vVG9qtnfsV9+FFfM="
        assert config["eth_beacon_pubkey"] == "0xa1b2c3"
        assert identity.node_id == NODE_ID
        assert identity.jwt == "0x" + "9" * 64
        assert identity.premined_deposit == {"pubkey": "0xa1b2c3", "amount": "32000000000"}
        assert config["node_key"] == {"priv_key": {"value": "nk"}}
        assert identity.el_public_key == "bb" * 64

    def test_rpc_node_has_no_deposit(self, generator):
        with patch("beranode.identity.safe_run", side_effect=fake_tools) as run:
            identity = generator.generate_node_identity("demo-rpc-full-0", NETWORKS["devnet"], Role.RPC_FULL, "0x1")
        assert identity.premined_deposit is None
        assert not any("add-premined-deposit" in c.args[0] for c in run.call_args_list)

    def test_chain_spec_passed_to_init(self, generator):
        with patch("beranode.identity.safe_run", side_effect=fake_tools) as run:
            generator.generate_node_identity("demo-val-0", NETWORKS["bepolia"], Role.VALIDATOR, "0x1")
        init_cmd = run.call_args_list[0].args[0]
        assert init_cmd[init_cmd.index("--chain-id") + 1] == "bepolia-beacon-80069"
        assert init_cmd[init_cmd.index("--beacon-kit.chain-spec") + 1] == "testnet"

    def test_throwaway_home_removed(self, generator, tmp_path):
        with patch("beranode.identity.safe_run", side_effect=fake_tools):
            generator.generate_node_identity("demo-val-0", NETWORKS["devnet"], Role.VALIDATOR, "0x1")
        assert list((tmp_path / "work").iterdir()) == []

    def test_short_validator_keys_output(self, generator):
        def short_keys(cmd, **kwargs):
            if cmd[1:3] == ["deposit", "validator-keys"]:
                return _ok("Comet Address:\n ABC\n")
            return fake_tools(cmd, **kwargs)

        with patch("beranode.identity.safe_run", side_effect=short_keys):
            with pytest.raises(IdentityError, match="validator-keys"):
                generator.generate_node_identity("demo-val-0", NETWORKS["devnet"], Role.VALIDATOR, "0x1")

    def test_dict_round_trip(self, identity_factory):
        identity = identity_factory(2)
        assert NodeIdentity.from_dict(identity.to_dict()) == identity
