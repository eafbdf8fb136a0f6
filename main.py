#!/usr/bin/env python3
"""
Vigil: verified-contract reconstruction and Slither orchestration

Main entry point for the CLI interface.
"""

import warnings

# Suppress pkg_resources deprecation warning from slither
warnings.filterwarnings("ignore", category=UserWarning, message=".*pkg_resources is deprecated.*")

import argparse
import logging
import sys
from typing import List, Optional

from cli.main import VigilCLI
from core.etherscan_fetcher import EtherscanFetcher


def setup_logging(verbose: bool):
    """Setup logging configuration."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Vigil: reconstruct verified contracts and run Slither across every file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vigil analyze 0x833589fcd6edb6e08f4c7c32d4f71b54bda02913 --network base
  vigil analyze https://etherscan.io/address/0x... --json
  vigil analyze-file contracts/MyToken.sol
  vigil config --set-etherscan-key KEY
        """
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    analyze_parser = subparsers.add_parser('analyze', help='Fetch, reconstruct and analyze a deployed contract')
    analyze_parser.add_argument('address', help='Contract address or explorer URL')
    analyze_parser.add_argument('--network', choices=list(EtherscanFetcher.SUPPORTED_NETWORKS), help='Explorer network (default from config)')
    analyze_parser.add_argument('--staging-dir', help='Directory to reconstruct the project in (wiped on every run)')
    analyze_parser.add_argument('--json', action='store_true', help='Print the result as JSON')
    analyze_parser.add_argument('--output', '-o', help='Write the JSON result to this file')

    file_parser = subparsers.add_parser('analyze-file', help='Run Slither on a single local Solidity file')
    file_parser.add_argument('contract', help='Path to a .sol file')

    config_parser = subparsers.add_parser('config', help='Manage configuration settings')
    config_parser.add_argument('--set-etherscan-key', help='Set Etherscan API key')
    config_parser.add_argument('--show', action='store_true', help='Show current configuration')
    config_parser.add_argument('--list-networks', action='store_true', help='List supported EVM networks')

    subparsers.add_parser('version', help='Show version information')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for Vigil CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    cli = VigilCLI()

    try:
        if args.command == 'analyze':
            return cli.analyze_address(
                args.address,
                network=args.network,
                staging_dir=args.staging_dir,
                as_json=args.json,
                output=args.output,
            )
        elif args.command == 'analyze-file':
            return cli.analyze_file(args.contract)
        elif args.command == 'config':
            return cli.handle_config(
                show=args.show,
                etherscan_key=args.set_etherscan_key,
                list_networks=args.list_networks,
            )
        elif args.command == 'version':
            cli.show_version()
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
