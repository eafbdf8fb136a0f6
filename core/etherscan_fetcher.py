#!/usr/bin/env python3
"""
Etherscan Contract Source Code Fetcher

Fetches verified smart contract source code from Etherscan-compatible explorer
APIs (Etherscan, Basescan, Polygonscan, ...).
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Tuple
from urllib.parse import urlparse

import requests
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from core.config_manager import ConfigManager
from core.errors import SourceFetchError, SourceUnavailable, TransientFetchFailure

logger = logging.getLogger(__name__)


@dataclass
class ExplorerEnvelope:
    """The parts of a getsourcecode response the pipeline consumes."""
    status: str
    message: str
    source_code: str
    compiler_version: str
    contract_name: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


class EtherscanFetcher:
    """Contract source fetcher for Etherscan-compatible explorers."""

    # Supported networks and their API endpoints
    SUPPORTED_NETWORKS = {
        'ethereum': {
            'name': 'Ethereum Mainnet',
            'chain_id': 1,
            'api_url': 'https://api.etherscan.io/v2/api',
            'explorer_url': 'https://etherscan.io',
        },
        'sepolia': {
            'name': 'Ethereum Sepolia',
            'chain_id': 11155111,
            'api_url': 'https://api-sepolia.etherscan.io/v2/api',
            'explorer_url': 'https://sepolia.etherscan.io',
        },
        'polygon': {
            'name': 'Polygon Mainnet',
            'chain_id': 137,
            'api_url': 'https://api.polygonscan.com/v2/api',
            'explorer_url': 'https://polygonscan.com',
        },
        'arbitrum': {
            'name': 'Arbitrum One',
            'chain_id': 42161,
            'api_url': 'https://api.arbiscan.io/v2/api',
            'explorer_url': 'https://arbiscan.io',
        },
        'optimism': {
            'name': 'Optimism',
            'chain_id': 10,
            'api_url': 'https://api-optimistic.etherscan.io/v2/api',
            'explorer_url': 'https://optimistic.etherscan.io',
        },
        'bsc': {
            'name': 'BNB Smart Chain',
            'chain_id': 56,
            'api_url': 'https://api.bscscan.com/v2/api',
            'explorer_url': 'https://bscscan.com',
        },
        'base': {
            'name': 'Base',
            'chain_id': 8453,
            'api_url': 'https://api.basescan.org/v2/api',
            'explorer_url': 'https://basescan.org',
        },
        'avalanche': {
            'name': 'Avalanche C-Chain',
            'chain_id': 43114,
            'api_url': 'https://api.snowtrace.io/v2/api',
            'explorer_url': 'https://snowtrace.io',
        },
    }

    # Explorer host -> network, for URL inputs
    EXPLORER_DOMAINS = {
        'etherscan.io': 'ethereum',
        'sepolia.etherscan.io': 'sepolia',
        'polygonscan.com': 'polygon',
        'arbiscan.io': 'arbitrum',
        'optimistic.etherscan.io': 'optimism',
        'bscscan.com': 'bsc',
        'basescan.org': 'base',
        'snowtrace.io': 'avalanche',
    }

    # A 502 from the explorer is retried exactly this many times
    MAX_TRANSIENT_RETRIES = 1

    def __init__(self, config_manager: Optional[ConfigManager] = None, console: Optional[Console] = None):
        self.console = console or Console()
        self.config_manager = config_manager or ConfigManager()
        self.api_key = self.config_manager.config.etherscan_api_key
        self.timeout = self.config_manager.config.request_timeout

        self.current_network = 'ethereum'
        self.base_url = self.SUPPORTED_NETWORKS['ethereum']['api_url']
        configured = self.config_manager.config.network
        if configured in self.SUPPORTED_NETWORKS:
            self.current_network = configured
            self.base_url = self.SUPPORTED_NETWORKS[configured]['api_url']
        else:
            logger.warning("Unsupported network %r in config, using ethereum", configured)

    def is_etherscan_address(self, address: str) -> bool:
        """Check if the input is a valid Ethereum-style address."""
        return (
            isinstance(address, str) and
            address.startswith('0x') and
            len(address) == 42 and
            all(c in '0123456789abcdefABCDEF' for c in address[2:])
        )

    def parse_explorer_url(self, url_or_address: str) -> Tuple[Optional[str], Optional[str]]:
        """
        Parse an explorer URL or address and return (network, address).

        Supports URLs like:
        - https://etherscan.io/address/0x123...#code
        - basescan.org/address/0x123...
        - Or just the address: 0x123... (network is None, meaning "current")

        Returns:
            (network, address), or (None, None) if the input is neither
        """
        if self.is_etherscan_address(url_or_address):
            return (None, url_or_address)

        url = url_or_address
        if not url.startswith(('http://', 'https://')):
            url = 'https://' + url

        parsed = urlparse(url)
        domain = parsed.netloc.lower()
        if domain.startswith('www.'):
            domain = domain[4:]

        address_match = re.search(r'/address/(0x[a-fA-F0-9]{40})', parsed.path)
        if not address_match:
            return (None, None)

        network = self.EXPLORER_DOMAINS.get(domain)
        if network is None:
            logger.warning("Unknown explorer domain %s, using current network", domain)
        return (network, address_match.group(1))

    def set_network(self, network: str) -> bool:
        """Set the current network for API calls."""
        if network not in self.SUPPORTED_NETWORKS:
            self.console.print(f"[red]❌ Unsupported network: {network}[/red]")
            return False

        self.current_network = network
        self.base_url = self.SUPPORTED_NETWORKS[network]['api_url']
        logger.info("Switched to network: %s", self.SUPPORTED_NETWORKS[network]['name'])
        return True

    def get_supported_networks(self) -> List[str]:
        """Get list of supported network names."""
        return list(self.SUPPORTED_NETWORKS.keys())

    def build_params(self, address: str) -> Dict[str, Any]:
        """Query parameters for a getsourcecode call."""
        return {
            'chainid': self.SUPPORTED_NETWORKS[self.current_network]['chain_id'],
            'module': 'contract',
            'action': 'getsourcecode',
            'address': address,
            'apikey': self.api_key,
        }

    def _get_with_retry(self, params: Dict[str, Any]) -> requests.Response:
        """GET the explorer, retrying a 502 once."""
        retries = 0
        while True:
            try:
                response = requests.get(self.base_url, params=params, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                raise SourceFetchError(f"Network error fetching contract: {e}") from e

            if response.status_code == 502 and retries < self.MAX_TRANSIENT_RETRIES:
                retries += 1
                logger.warning("502 from %s, retrying (%d/%d)", self.base_url, retries, self.MAX_TRANSIENT_RETRIES)
                continue
            break

        if response.status_code == 502:
            raise TransientFetchFailure(
                f"Explorer returned 502 after {retries} retry", status_code=502
            )

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise SourceFetchError(f"Explorer HTTP error: {e}", status_code=response.status_code) from e

        return response

    def fetch_contract_source(self, address: str) -> ExplorerEnvelope:
        """Fetch contract source code from the current network.

        Raises:
            SourceUnavailable: bad address, missing key, API failure status or empty source
            SourceFetchError: HTTP or network failure (TransientFetchFailure for a repeated 502)
        """
        if not self.is_etherscan_address(address):
            raise SourceUnavailable(f"Invalid Ethereum address format: {address}")

        if not self.api_key:
            raise SourceUnavailable("Etherscan API key not configured. Use `vigil config --set-etherscan-key`.")

        network_name = self.SUPPORTED_NETWORKS[self.current_network]['name']
        logger.info("Fetching contract source code for %s on %s", address, network_name)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True,
        ) as progress:
            progress.add_task(f"Fetching from {network_name} explorer...", total=None)
            response = self._get_with_retry(self.build_params(address))

        try:
            data = response.json()
        except ValueError as e:
            raise SourceFetchError(f"JSON decode error: {e}", status_code=response.status_code) from e

        return self.parse_envelope(data)

    def parse_envelope(self, data: Dict[str, Any]) -> ExplorerEnvelope:
        """Validate a getsourcecode response and extract the primary contract."""
        if not isinstance(data, dict):
            raise SourceUnavailable("Unexpected explorer response")

        status = str(data.get('status', ''))
        message = data.get('message', '')
        result = data.get('result')

        if status != '1':
            detail = result if isinstance(result, str) and result else message or 'Unknown error'
            raise SourceUnavailable(f"Explorer API error: {detail}")

        if not isinstance(result, list) or not result:
            raise SourceUnavailable("No contract data found")

        primary = result[0]
        source_code = primary.get('SourceCode') or ''
        if not source_code:
            raise SourceUnavailable("Contract source code is not available (not verified)")

        return ExplorerEnvelope(
            status=status,
            message=message,
            source_code=source_code,
            compiler_version=primary.get('CompilerVersion') or '',
            contract_name=primary.get('ContractName') or '',
            raw=data,
        )
