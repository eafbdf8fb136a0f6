"""
Main CLI implementation for Vigil.
"""

import json
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel

from core.config_manager import ConfigManager
from core.etherscan_fetcher import EtherscanFetcher
from core.pipeline import ContractAnalysisPipeline
from core.project_builder import ProjectTreeBuilder


class VigilCLI:
    """Main CLI class for Vigil."""

    def __init__(self, config_manager: Optional[ConfigManager] = None, console: Optional[Console] = None):
        self.version = "0.3.0"
        self.console = console or Console()
        self.config_manager = config_manager or ConfigManager()

    def show_version(self):
        """Display version information."""
        self.console.print(f"Vigil v{self.version}")

    def _build_pipeline(self, network: Optional[str] = None, staging_dir: Optional[str] = None) -> Optional[ContractAnalysisPipeline]:
        if staging_dir:
            self.config_manager.config.staging_dir = staging_dir

        fetcher = EtherscanFetcher(self.config_manager, console=self.console)
        if network and not fetcher.set_network(network):
            return None

        return ContractAnalysisPipeline(
            self.config_manager,
            fetcher=fetcher,
            builder=ProjectTreeBuilder.from_config(self.config_manager),
        )

    def analyze_address(
        self,
        address: str,
        network: Optional[str] = None,
        staging_dir: Optional[str] = None,
        as_json: bool = False,
        output: Optional[str] = None,
    ) -> int:
        """Run the pipeline for one address and print or save the result."""
        pipeline = self._build_pipeline(network, staging_dir)
        if pipeline is None:
            return 1

        self.console.print(f"[cyan]🔍 Analyzing {address}...[/cyan]")
        result = pipeline.run(address)
        if result is None:
            self.console.print("[red]❌ Failed to analyze the contract.[/red]")
            return 1

        if output:
            output_path = Path(output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(json.dumps(result.to_dict(), indent=2), encoding='utf-8')
            self.console.print(f"[green]💾 Results saved to: {output_path}[/green]")
        elif as_json:
            self.console.print_json(json.dumps(result.to_dict()))
        else:
            findings = result.slither_results.strip() or "Slither reported nothing."
            self.console.print(Panel(findings, title="Slither Results", expand=False))
            line_count = result.combined_source_code.count("\n") + 1
            self.console.print(f"[blue]📄 Combined source: {line_count} lines[/blue]")

        return 0

    def analyze_file(self, contract_path: str) -> int:
        """Run Slither on a single local contract file."""
        if not Path(contract_path).is_file():
            self.console.print(f"[red]❌ File not found: {contract_path}[/red]")
            return 1

        pipeline = ContractAnalysisPipeline(self.config_manager)
        output = pipeline.analyze_local_file(contract_path)
        if output is None:
            self.console.print("[red]❌ Failed to analyze the contract file.[/red]")
            return 1

        self.console.print(Panel(output.strip() or "Slither reported nothing.", title=Path(contract_path).name, expand=False))
        return 0

    def handle_config(self, show: bool = False, etherscan_key: Optional[str] = None,
                      list_networks: bool = False) -> int:
        if etherscan_key:
            self.config_manager.set_etherscan_key(etherscan_key)
        if list_networks:
            for name, info in EtherscanFetcher.SUPPORTED_NETWORKS.items():
                self.console.print(f"  [cyan]{name:<10}[/cyan] {info['name']} (chain {info['chain_id']})")
        if show or not (etherscan_key or list_networks):
            self.config_manager.show_config()
        return 0
