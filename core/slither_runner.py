"""
Slither runner for staged projects.

Slither is invoked once per source map key. Its findings are printed on
stderr, and it exits non-zero whenever it reports anything, so the exit
status is not treated as failure. Only a failed invocation (binary missing,
timeout) counts, and that only skips the one file.
"""

import logging
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from core.config_manager import ConfigManager
from core.errors import AnalysisDeadlineExceeded, PerFileAnalysisFailure
from core.file_handler import get_tool_env
from core.project_builder import StagedProject
from core.remap_resolver import RemapTable

logger = logging.getLogger(__name__)


@dataclass
class FileAnalysis:
    """Outcome of analyzing one source map entry."""
    key: str
    path: Path
    output: Optional[str] = None
    error: Optional[str] = None
    returncode: Optional[int] = None
    stdout: str = ""

    @property
    def succeeded(self) -> bool:
        return self.output is not None


class SlitherRunner:
    """Runs Slither across every file of a staged project."""

    DEFAULT_TIMEOUT = 300  # seconds per file

    def __init__(
        self,
        binary: str = "slither",
        timeout: Optional[int] = DEFAULT_TIMEOUT,
        max_workers: int = 1,
        extra_allow_paths: Sequence[str] = (),
        deadline: Optional[float] = None,
    ):
        self.binary = binary
        self.timeout = timeout
        self.max_workers = max(1, int(max_workers or 1))
        self.extra_allow_paths = list(extra_allow_paths)
        self.deadline = deadline or None

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "SlitherRunner":
        config = config_manager.config
        return cls(
            binary=config_manager.get_tool_binary('slither'),
            timeout=config_manager.get_tool_timeout('slither'),
            max_workers=config.max_workers,
            extra_allow_paths=config.extra_allow_paths or (),
            deadline=config.analysis_deadline or None,
        )

    def allow_paths(self, project: StagedProject) -> str:
        """Comma-separated solc ``--allow-paths`` value."""
        paths = [".", str(project.root), str(project.dependency_root)]
        for extra in self.extra_allow_paths:
            if extra not in paths:
                paths.append(extra)
        return ",".join(paths)

    def build_command(self, path: Path, remaps: str, allow_paths: str) -> List[str]:
        cmd = [self.binary, str(path)]
        if remaps:
            cmd.extend(['--solc-remaps', remaps])
        cmd.extend(['--solc-args', f'--allow-paths {allow_paths}'])
        return cmd

    def analyze_file(self, key: str, path: Path, remaps: str, allow_paths: str,
                     cwd: Optional[Path] = None, timeout: Optional[float] = None) -> FileAnalysis:
        """Run Slither on one file.

        Raises:
            PerFileAnalysisFailure: Slither could not be run to completion.
        """
        cmd = self.build_command(path, remaps, allow_paths)
        logger.info("Running Slither command: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout if timeout is not None else self.timeout,
                cwd=str(cwd) if cwd else None,
                env=get_tool_env(),
            )
        except subprocess.TimeoutExpired as e:
            raise PerFileAnalysisFailure(f"Slither timed out after {e.timeout}s on {path}", key) from e
        except (OSError, subprocess.SubprocessError) as e:
            raise PerFileAnalysisFailure(f"Failed to run Slither on {path}: {e}", key) from e

        logger.debug("Slither stdout for %s:\n%s", key, result.stdout)
        logger.debug("Slither stderr for %s:\n%s", key, result.stderr)
        return FileAnalysis(key=key, path=path, output=result.stderr or "",
                            returncode=result.returncode, stdout=result.stdout or "")

    def _remaining(self, started: float) -> Optional[float]:
        if self.deadline is None:
            return None
        remaining = self.deadline - (time.monotonic() - started)
        if remaining <= 0:
            raise AnalysisDeadlineExceeded(f"Analysis deadline of {self.deadline}s exceeded")
        return remaining

    def _file_timeout(self, started: float) -> Optional[float]:
        remaining = self._remaining(started)
        if remaining is None:
            return self.timeout
        if self.timeout is None:
            return remaining
        return min(self.timeout, remaining)

    def _guarded(self, key: str, path: Path, remaps: str, allow_paths: str,
                 cwd: Path, timeout: Optional[float]) -> FileAnalysis:
        try:
            return self.analyze_file(key, path, remaps, allow_paths, cwd=cwd, timeout=timeout)
        except PerFileAnalysisFailure as e:
            logger.error("Failed to analyze contract file %s: %s", path, e)
            return FileAnalysis(key=key, path=path, error=str(e))
        except Exception as e:
            logger.exception("Unexpected error analyzing contract file %s", path)
            return FileAnalysis(key=key, path=path, error=str(e))

    def run(self, project: StagedProject, keys: Iterable[str], remap_table: RemapTable) -> List[FileAnalysis]:
        """Analyze every key in order; the result list follows ``keys`` order.

        Raises:
            AnalysisDeadlineExceeded: the configured deadline passed mid-batch.
        """
        keys = list(keys)
        remaps = remap_table.format()
        allow_paths = self.allow_paths(project)
        started = time.monotonic()

        if self.max_workers == 1 or len(keys) < 2:
            results = []
            for key in keys:
                timeout = self._file_timeout(started)
                results.append(self._guarded(key, project.resolve_path(key), remaps, allow_paths, project.root, timeout))
            # a timeout capped by the deadline ends the batch, not just the file
            self._remaining(started)
            return results

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(
                    self._guarded, key, project.resolve_path(key), remaps, allow_paths,
                    project.root, self._file_timeout(started),
                )
                for key in keys
            ]
            results = []
            for future in futures:
                try:
                    results.append(future.result(timeout=self._remaining(started)))
                except (FutureTimeoutError, AnalysisDeadlineExceeded) as e:
                    for pending in futures:
                        pending.cancel()
                    raise AnalysisDeadlineExceeded(
                        f"Analysis deadline of {self.deadline}s exceeded"
                    ) from e
            self._remaining(started)
            return results
