"""
Unit tests for the beranode CLI.

Test Coverage:
- Group help and version
- init: request building, overwrite prompt, error exit codes
- validate: valid, invalid and missing registries
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from beranode import __version__
from beranode.binaries import BinaryNotFoundError
from beranode.cli import main
from beranode.fleet_registry import FleetRegistry
from beranode.genesis import GenesisResult
from beranode.modules.interaction_handler import MockInteractionHandler
from beranode.provisioner import ProvisioningError, ProvisionResult
from beranode.settings import DeploymentMode


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_provisioner(layout, sample_fleet):
    with patch("beranode.commands.fleet.Provisioner") as provisioner_cls:
        provisioner_cls.return_value.provision.return_value = ProvisionResult(
            fleet=sample_fleet,
            registry_path=layout.registry_path,
            genesis=GenesisResult(genesis_path=layout.genesis_path, eth_genesis_path=layout.eth_genesis_path, deposits=2),
        )
        yield provisioner_cls.return_value


class TestGroup:
    """Test the top-level command group."""

    def test_no_args_shows_help(self, runner):
        result = runner.invoke(main, [])
        assert result.exit_code == 0
        assert "Usage:" in result.output
        for command in ("init", "start", "stop", "status", "validate"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_short_help_flag(self, runner):
        result = runner.invoke(main, ["init", "-h"])
        assert result.exit_code == 0
        assert "--validators" in result.output
        assert "--overwrite / --reuse" in result.output


class TestInitCommand:
    """Test 'beranode init'."""

    def test_builds_request_from_options(self, runner, layout, mock_provisioner):
        result = runner.invoke(
            main,
            [
                "init",
                "--beranodes-dir", str(layout.root),
                "--network", "bepolia",
                "--validators", "2",
                "--full-nodes", "1",
                "--moniker", "demo",
                "--docker",
            ],
        )

        assert result.exit_code == 0, result.output
        request = mock_provisioner.provision.call_args.args[0]
        assert request.network == "bepolia"
        assert request.validators == 2
        assert request.full_nodes == 1
        assert request.pruned_nodes == 0
        assert request.moniker == "demo"
        assert request.mode is DeploymentMode.DOCKER
        assert mock_provisioner.provision.call_args.kwargs["overwrite"] is False
        assert "Registry written:" in result.output
        assert "(2 deposits)" in result.output
        assert "beranode start" in result.output

    def test_unknown_network_rejected(self, runner, layout, mock_provisioner):
        result = runner.invoke(main, ["init", "--beranodes-dir", str(layout.root), "--network", "moonnet"])
        assert result.exit_code == 2
        mock_provisioner.provision.assert_not_called()

    def test_prompts_when_registry_exists(self, runner, layout, sample_fleet, mock_provisioner):
        FleetRegistry(layout.registry_path).create(sample_fleet)
        handler = MockInteractionHandler(confirm_responses=[True])

        with patch("beranode.commands.fleet.get_interaction_handler", return_value=handler):
            result = runner.invoke(main, ["init", "--beranodes-dir", str(layout.root)])

        assert result.exit_code == 0, result.output
        assert len(handler.get_interactions_by_type("confirm")) == 1
        assert mock_provisioner.provision.call_args.kwargs["overwrite"] is True

    def test_declined_prompt_reuses(self, runner, layout, sample_fleet, mock_provisioner):
        FleetRegistry(layout.registry_path).create(sample_fleet)
        handler = MockInteractionHandler(confirm_responses=[False])

        with patch("beranode.commands.fleet.get_interaction_handler", return_value=handler):
            runner.invoke(main, ["init", "--beranodes-dir", str(layout.root)])

        assert mock_provisioner.provision.call_args.kwargs["overwrite"] is False
        assert handler.get_interactions_by_type("info")[0]["message"] == "Reusing the existing registry."

    def test_explicit_flag_skips_prompt(self, runner, layout, sample_fleet, mock_provisioner):
        FleetRegistry(layout.registry_path).create(sample_fleet)

        with patch("beranode.commands.fleet.get_interaction_handler") as get_handler:
            runner.invoke(main, ["init", "--beranodes-dir", str(layout.root), "--reuse"])

        get_handler.assert_not_called()
        assert mock_provisioner.provision.call_args.kwargs["overwrite"] is False

    def test_no_prompt_without_registry(self, runner, layout, mock_provisioner):
        with patch("beranode.commands.fleet.get_interaction_handler") as get_handler:
            runner.invoke(main, ["init", "--beranodes-dir", str(layout.root)])
        get_handler.assert_not_called()

    def test_reused_registry_reported(self, runner, layout, sample_fleet, mock_provisioner):
        mock_provisioner.provision.return_value = ProvisionResult(
            fleet=sample_fleet, registry_path=layout.registry_path, reused=True
        )
        result = runner.invoke(main, ["init", "--beranodes-dir", str(layout.root), "--reuse"])
        assert "Existing registry kept:" in result.output
        assert "Genesis:" not in result.output

    def test_reused_registry_with_completed_genesis(self, runner, layout, sample_fleet, mock_provisioner):
        mock_provisioner.provision.return_value = ProvisionResult(
            fleet=sample_fleet,
            registry_path=layout.registry_path,
            reused=True,
            genesis=GenesisResult(genesis_path=layout.genesis_path, eth_genesis_path=layout.eth_genesis_path, deposits=2),
        )
        result = runner.invoke(main, ["init", "--beranodes-dir", str(layout.root), "--reuse"])
        assert "Existing registry kept:" in result.output
        assert "(2 deposits)" in result.output

    def test_provisioning_error_exits_1(self, runner, layout, mock_provisioner):
        mock_provisioner.provision.side_effect = ProvisioningError("A local fleet can hold at most 4 nodes")
        result = runner.invoke(main, ["init", "--beranodes-dir", str(layout.root), "--validators", "5"])
        assert result.exit_code == 1
        assert "Error: A local fleet can hold at most 4 nodes" in result.output

    def test_missing_binary_exits_1(self, runner, layout, mock_provisioner):
        mock_provisioner.provision.side_effect = BinaryNotFoundError("Missing required binaries:")
        result = runner.invoke(main, ["init", "--beranodes-dir", str(layout.root)])
        assert result.exit_code == 1
        assert "Missing required binaries" in result.output


class TestValidateCommand:
    """Test 'beranode validate'."""

    def test_valid_registry(self, runner, layout, sample_fleet):
        FleetRegistry(layout.registry_path).create(sample_fleet)
        result = runner.invoke(main, ["validate", "--beranodes-dir", str(layout.root)])
        assert result.exit_code == 0
        assert "is valid" in result.output

    def test_invalid_registry_lists_problems(self, runner, layout, sample_fleet):
        data = sample_fleet.to_dict()
        data["wallet_address"] = "nope"
        data["moniker"] = "x"
        layout.root.mkdir(parents=True)
        layout.registry_path.write_text(json.dumps(data))

        result = runner.invoke(main, ["validate", "--beranodes-dir", str(layout.root)])

        assert result.exit_code == 1
        assert "has 2 problem(s)" in result.output
        assert "Invalid wallet_address" in result.output

    def test_missing_registry(self, runner, layout):
        result = runner.invoke(main, ["validate", "--beranodes-dir", str(layout.root)])
        assert result.exit_code == 1
        assert "beranode init" in result.output
