"""
Tests for the command line entry points (main.py and cli/main.py).
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from cli.main import VigilCLI
from core.result_aggregator import AnalysisResult
from main import build_parser, main

from conftest import VALID_ADDRESS


RESULT = AnalysisResult(slither_results="Reentrancy in Vault.withdraw\n", combined_source_code="contract Vault {}")


@pytest.fixture
def cli(config_manager):
    return VigilCLI(config_manager=config_manager, console=Console(record=True, width=120))


class TestParser:

    def test_analyze_arguments(self):
        args = build_parser().parse_args(["analyze", VALID_ADDRESS, "--network", "base", "--json"])
        assert args.command == "analyze"
        assert args.address == VALID_ADDRESS
        assert args.network == "base"
        assert args.json

    def test_rejects_unknown_network(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["analyze", VALID_ADDRESS, "--network", "solana"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestAnalyzeAddress:

    def test_prints_panel(self, cli):
        with patch("cli.main.ContractAnalysisPipeline") as mock_pipeline:
            mock_pipeline.return_value.run.return_value = RESULT
            assert cli.analyze_address(VALID_ADDRESS) == 0
        assert "Reentrancy in Vault.withdraw" in cli.console.export_text()

    def test_writes_json_file(self, cli, tmp_path):
        output = tmp_path / "out" / "result.json"
        with patch("cli.main.ContractAnalysisPipeline") as mock_pipeline:
            mock_pipeline.return_value.run.return_value = RESULT
            assert cli.analyze_address(VALID_ADDRESS, output=str(output)) == 0
        assert json.loads(output.read_text()) == RESULT.to_dict()

    def test_failure_exit_code(self, cli):
        with patch("cli.main.ContractAnalysisPipeline") as mock_pipeline:
            mock_pipeline.return_value.run.return_value = None
            assert cli.analyze_address(VALID_ADDRESS) == 1

    def test_staging_dir_override(self, cli, tmp_path):
        with patch("cli.main.ContractAnalysisPipeline") as mock_pipeline:
            mock_pipeline.return_value.run.return_value = RESULT
            cli.analyze_address(VALID_ADDRESS, staging_dir=str(tmp_path / "custom"))
        builder = mock_pipeline.call_args.kwargs["builder"]
        assert builder.staging_root == (tmp_path / "custom").resolve()

    def test_unsupported_network(self, cli):
        with patch("cli.main.ContractAnalysisPipeline") as mock_pipeline:
            assert cli.analyze_address(VALID_ADDRESS, network="solana") == 1
        mock_pipeline.assert_not_called()


class TestAnalyzeFile:

    def test_missing_file(self, cli, tmp_path):
        assert cli.analyze_file(str(tmp_path / "Nope.sol")) == 1

    def test_prints_output(self, cli, tmp_path):
        contract = tmp_path / "Token.sol"
        contract.write_text("pragma solidity 0.8.20;")
        with patch("cli.main.ContractAnalysisPipeline") as mock_pipeline:
            mock_pipeline.return_value.analyze_local_file.return_value = "Finding A"
            assert cli.analyze_file(str(contract)) == 0
        assert "Finding A" in cli.console.export_text()


class TestConfigCommand:

    def test_set_key_saves(self, cli):
        assert cli.handle_config(etherscan_key="new-key") == 0
        assert cli.config_manager.config.etherscan_api_key == "new-key"
        assert cli.config_manager.config_file.exists()

    def test_list_networks(self, cli):
        cli.handle_config(list_networks=True)
        text = cli.console.export_text()
        assert "base" in text
        assert "8453" in text


def test_main_dispatches_analyze():
    with patch("main.VigilCLI") as mock_cli:
        mock_cli.return_value.analyze_address.return_value = 0
        assert main(["analyze", VALID_ADDRESS, "--network", "ethereum"]) == 0
    mock_cli.return_value.analyze_address.assert_called_once_with(
        VALID_ADDRESS, network="ethereum", staging_dir=None, as_json=False, output=None
    )


def test_main_handles_keyboard_interrupt():
    with patch("main.VigilCLI") as mock_cli:
        mock_cli.return_value.analyze_file.side_effect = KeyboardInterrupt
        assert main(["analyze-file", "x.sol"]) == 1
