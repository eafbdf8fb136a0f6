#!/usr/bin/env python3
"""
Configuration Manager for Vigil

Manages explorer credentials, staging layout, and external tool settings.
"""

import os
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict, field

import yaml
from rich.console import Console


@dataclass
class ToolConfig:
    """Configuration for an external tool invoked as a subprocess."""
    name: str
    enabled: bool = True
    timeout: int = 300
    options: Dict[str, Any] = None

    def __post_init__(self):
        if self.options is None:
            self.options = {}


@dataclass
class VigilConfig:
    """Main configuration for Vigil."""

    # Explorer settings
    network: str = "base"
    etherscan_api_key: str = ""
    request_timeout: int = 30

    # Staging layout
    staging_dir: str = "./tmp/contracts"
    dependency_dir: str = "node_modules"
    namespace_marker: str = "@"
    dependency_seed_dir: str = ""

    # Analysis settings
    extra_allow_paths: List[str] = field(default_factory=list)
    prefer_pragma: bool = True
    max_workers: int = 1
    analysis_deadline: int = 0  # seconds, 0 disables

    # Tool configurations
    tools: Dict[str, ToolConfig] = None

    def __post_init__(self):
        if self.tools is None:
            self.tools = {
                'slither': ToolConfig('slither', True, 300, {'binary': 'slither'}),
                'solc-select': ToolConfig('solc-select', True, 120, {'binary': 'solc-select'}),
            }


class ConfigManager:
    """Manages Vigil configuration."""

    def __init__(self, config_file: str = "~/.vigil/config.yaml"):
        self.config_file = Path(config_file).expanduser()
        self.console = Console()
        self.config = VigilConfig()

        self.load_config()
        self.apply_env_overrides()

    def load_config(self) -> None:
        """Load configuration from file."""
        if not self.config_file.exists():
            return

        try:
            with open(self.config_file, 'r') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            self.console.print(f"[yellow]Warning: Could not load config file: {e}[/yellow]")
            return

        if not isinstance(data, dict):
            return

        for key, value in data.items():
            if not hasattr(self.config, key):
                continue
            if key == 'tools' and isinstance(value, dict):
                for tool_name, tool_data in value.items():
                    if isinstance(tool_data, dict):
                        # 'name' is positional, drop it to avoid a duplicate argument
                        tool_data_copy = tool_data.copy()
                        tool_data_copy.pop('name', None)
                        self.config.tools[tool_name] = ToolConfig(name=tool_name, **tool_data_copy)
                    else:
                        self.config.tools[tool_name] = ToolConfig(tool_name, enabled=bool(tool_data))
            else:
                setattr(self.config, key, value)

    def apply_env_overrides(self) -> None:
        """Environment variables win over the config file."""
        if self.config.network == 'base' and os.getenv('BASESCAN_API_KEY'):
            self.config.etherscan_api_key = os.environ['BASESCAN_API_KEY']
        elif os.getenv('ETHERSCAN_API_KEY'):
            self.config.etherscan_api_key = os.environ['ETHERSCAN_API_KEY']

        staging_dir = os.getenv('VIGIL_STAGING_DIR')
        if staging_dir:
            self.config.staging_dir = staging_dir

    def save_config(self) -> None:
        """Save current configuration to file."""
        config_dict = asdict(self.config)

        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w') as f:
                yaml.dump(config_dict, f, default_flow_style=False, indent=2)
        except OSError as e:
            self.console.print(f"[red]✗ Failed to save config: {e}[/red]")
            return

        self.console.print(f"[green]✓ Configuration saved to {self.config_file}[/green]")

    def get_tool_config(self, tool_name: str) -> Optional[ToolConfig]:
        """Get configuration for a specific tool."""
        return self.config.tools.get(tool_name) if self.config.tools else None

    def get_tool_binary(self, tool_name: str) -> str:
        """Executable name or path for a tool, defaulting to the tool name."""
        tool = self.get_tool_config(tool_name)
        if tool and tool.options.get('binary'):
            return tool.options['binary']
        return tool_name

    def get_tool_timeout(self, tool_name: str) -> Optional[int]:
        tool = self.get_tool_config(tool_name)
        if tool and tool.timeout and tool.timeout > 0:
            return tool.timeout
        return None

    def set_etherscan_key(self, api_key: str) -> None:
        """Set Etherscan API key for contract fetching."""
        self.config.etherscan_api_key = api_key
        self.save_config()
        self.console.print("[green]✓ Etherscan API key configured[/green]")

    def show_config(self) -> None:
        """Display current configuration."""
        from rich.table import Table

        main_table = Table(title="⚙️ Main Configuration")
        main_table.add_column("Setting", style="cyan")
        main_table.add_column("Value", style="green")

        main_table.add_row("Network", self.config.network)
        main_table.add_row("Etherscan API Key", "configured" if self.config.etherscan_api_key else "not set")
        main_table.add_row("Request Timeout", f"{self.config.request_timeout}s")
        main_table.add_row("Staging Directory", self.config.staging_dir)
        main_table.add_row("Dependency Directory", self.config.dependency_dir)
        main_table.add_row("Namespace Marker", self.config.namespace_marker)
        main_table.add_row("Dependency Seed", self.config.dependency_seed_dir or "None")
        main_table.add_row("Prefer Pragma Version", "Yes" if self.config.prefer_pragma else "No")
        main_table.add_row("Max Workers", str(self.config.max_workers))
        main_table.add_row("Analysis Deadline", f"{self.config.analysis_deadline}s" if self.config.analysis_deadline else "None")

        self.console.print(main_table)

        tools_table = Table(title="🔧 Tool Configuration")
        tools_table.add_column("Tool", style="cyan")
        tools_table.add_column("Enabled", style="green")
        tools_table.add_column("Timeout", style="yellow")
        tools_table.add_column("Options", style="white")

        for tool_name, tool_config in self.config.tools.items():
            enabled = "✅ Yes" if tool_config.enabled else "❌ No"
            options = str(tool_config.options) if tool_config.options else "None"
            tools_table.add_row(tool_name, enabled, f"{tool_config.timeout}s", options)

        self.console.print(tools_table)
        self.console.print(f"\n[bold cyan]Config File:[/bold cyan] {self.config_file}")

    def get_staging_path(self) -> Path:
        """Get staging path as an absolute Path."""
        return Path(self.config.staging_dir).expanduser().resolve()
