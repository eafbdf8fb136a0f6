#!/usr/bin/env python3
"""
Contract analysis pipeline.

fetch -> parse -> stage -> remap -> select solc -> run Slither -> aggregate

``ContractAnalysisPipeline.run`` is the only entry point downstream code needs.
Fatal errors are logged and turned into ``None``; per-file Slither failures
are absorbed by the runner.

One pipeline instance owns one staging directory. Runs against the same
staging directory must not overlap, and solc switching is serialized
process-wide through ``ActiveCompiler``.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from core.config_manager import ConfigManager
from core.errors import VigilError
from core.etherscan_fetcher import EtherscanFetcher
from core.file_handler import FileHandler
from core.project_builder import ProjectTreeBuilder
from core.remap_resolver import RemapResolver
from core.result_aggregator import AnalysisResult, aggregate
from core.slither_runner import SlitherRunner
from core.source_map import parse_source_payload
from core.toolchain import ActiveCompiler, ToolchainSelector

logger = logging.getLogger(__name__)


class ContractAnalysisPipeline:
    """Wires the pipeline stages together."""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        fetcher: Optional[EtherscanFetcher] = None,
        builder: Optional[ProjectTreeBuilder] = None,
        resolver: Optional[RemapResolver] = None,
        selector: Optional[ToolchainSelector] = None,
        runner: Optional[SlitherRunner] = None,
        compiler: Optional[ActiveCompiler] = None,
    ):
        self.config_manager = config_manager or ConfigManager()
        self.fetcher = fetcher or EtherscanFetcher(self.config_manager)
        self.builder = builder or ProjectTreeBuilder.from_config(self.config_manager)
        self.resolver = resolver or RemapResolver()
        self.selector = selector or ToolchainSelector.from_config(self.config_manager)
        self.runner = runner or SlitherRunner.from_config(self.config_manager)
        self.compiler = compiler or ActiveCompiler.get_instance()

    def run(self, address: str) -> Optional[AnalysisResult]:
        """Analyze the contract at ``address`` (or explorer URL).

        Returns:
            The aggregated result, or None if any fatal step failed.
        """
        try:
            return self._run(address)
        except VigilError as e:
            logger.error("Analysis of %s failed: %s", address, e)
        except OSError as e:
            logger.error("Filesystem error while analyzing %s: %s", address, e)
        except Exception:
            logger.exception("Unexpected error while analyzing %s", address)
        return None

    def _run(self, address: str) -> AnalysisResult:
        network, parsed_address = self.fetcher.parse_explorer_url(address)
        if network:
            # a URL picks the network for this run only
            previous_network = self.fetcher.current_network
            self.fetcher.set_network(network)
            try:
                envelope = self.fetcher.fetch_contract_source(parsed_address or address)
            finally:
                self.fetcher.set_network(previous_network)
        else:
            envelope = self.fetcher.fetch_contract_source(parsed_address or address)

        source_map = parse_source_payload(envelope.source_code, envelope.contract_name)
        project = self.builder.build(source_map)
        remap_table = self.resolver.resolve(project, source_map.remappings)

        version = self.selector.select_version(source_map.contents(), envelope.compiler_version)
        with self.compiler.session(self.selector, version):
            analyses = self.runner.run(project, source_map.keys(), remap_table)

        failed = [a.key for a in analyses if not a.succeeded]
        if failed:
            logger.warning("Slither failed on %d of %d files: %s", len(failed), len(analyses), ", ".join(failed))

        result = aggregate(source_map, analyses)
        logger.info("Analysis of %s complete: %d files", address, len(source_map))
        return result

    def analyze_local_file(self, contract_path: Union[str, Path]) -> Optional[str]:
        """Analyze one local .sol file with the solc its pragma asks for.

        Returns Slither's stdout and stderr with repeated lines dropped, or
        None if the version could not be selected or Slither could not run.
        """
        path = Path(contract_path).expanduser().resolve()
        try:
            content = FileHandler().read_file(path)
            version = self.selector.select_version([content], None)
            with self.compiler.session(self.selector, version):
                analysis = self.runner.analyze_file(
                    path.name, path, remaps="", allow_paths=f".,{path.parent}", cwd=path.parent
                )
        except VigilError as e:
            logger.error("Analysis of %s failed: %s", path, e)
            return None
        except OSError as e:
            logger.error("Could not read %s: %s", path, e)
            return None

        lines = analysis.stdout.splitlines() + analysis.output.splitlines()
        return "\n".join(dict.fromkeys(lines))


def run_all(address: str, config_manager: Optional[ConfigManager] = None) -> Optional[AnalysisResult]:
    """Convenience wrapper: analyze one address with a default pipeline."""
    return ContractAnalysisPipeline(config_manager).run(address)
