"""
Solidity compiler selection via solc-select.

The active ``solc`` is global to the machine: ``solc-select use`` rewrites a
single global-version file. ``ActiveCompiler`` therefore serializes every
select-then-analyze section in this process behind one lock. The lock is not
reentrant; a thread that already holds a session must not open another.
"""

import logging
import re
import subprocess
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from core.config_manager import ConfigManager
from core.errors import ToolchainSwitchFailure, VersionUnresolvable
from core.file_handler import get_tool_env

logger = logging.getLogger(__name__)

PRAGMA_PATTERN = re.compile(r'pragma\s+solidity\s+([^;]+);')
# One constraint pinning one release: 0.8.19, =0.8.19, ^0.8.19, ~0.8.19
SINGLE_CONSTRAINT_PATTERN = re.compile(r'^(?:\^|~|=)?\s*v?(\d+\.\d+\.\d+)$')
COMPILER_VERSION_PATTERN = re.compile(r'^v?(\d+\.\d+\.\d+)')
VERSION_TOKEN_PATTERN = re.compile(r'^(\d+\.\d+\.\d+)\b')


def pragma_version(contents: Iterable[str]) -> Optional[str]:
    """Version pinned by the ``pragma solidity`` lines, if unambiguous.

    Every declaration must be a single constraint and all of them must name
    the same release. Ranges (``>=0.6.0 <0.8.0``) or disagreeing files yield None.
    """
    versions = set()
    for content in contents:
        for expression in PRAGMA_PATTERN.findall(content):
            match = SINGLE_CONSTRAINT_PATTERN.match(expression.strip())
            if not match:
                return None
            versions.add(match.group(1))
    if len(versions) == 1:
        return versions.pop()
    return None


def compiler_version(metadata: Optional[str]) -> Optional[str]:
    """``0.8.19`` from an explorer string like ``v0.8.19+commit.7dd6d404``."""
    if not metadata:
        return None
    match = COMPILER_VERSION_PATTERN.match(metadata.strip())
    return match.group(1) if match else None


def resolve_version(contents: Iterable[str], fallback: Optional[str], prefer_pragma: bool = True) -> str:
    """Pick the compiler version for a set of sources.

    Raises:
        VersionUnresolvable: neither the pragmas nor ``fallback`` name a release.
    """
    from_pragma = pragma_version(contents)
    from_metadata = compiler_version(fallback)
    candidates = [from_pragma, from_metadata] if prefer_pragma else [from_metadata, from_pragma]
    for candidate in candidates:
        if candidate:
            return candidate
    raise VersionUnresolvable(f"No usable compiler version (pragma or {fallback!r})")


class ToolchainSelector:
    """Wraps the solc-select CLI."""

    DEFAULT_TIMEOUT = 120  # seconds; installs download a binary

    def __init__(self, binary: str = "solc-select", timeout: Optional[int] = DEFAULT_TIMEOUT, prefer_pragma: bool = True):
        self.binary = binary
        self.timeout = timeout
        self.prefer_pragma = prefer_pragma

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "ToolchainSelector":
        return cls(
            binary=config_manager.get_tool_binary('solc-select'),
            timeout=config_manager.get_tool_timeout('solc-select'),
            prefer_pragma=config_manager.config.prefer_pragma,
        )

    def select_version(self, contents: Iterable[str], fallback: Optional[str]) -> str:
        version = resolve_version(contents, fallback, self.prefer_pragma)
        logger.info("Selected solc version %s", version)
        return version

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            [self.binary, *args],
            capture_output=True,
            text=True,
            check=True,
            timeout=self.timeout,
            env=get_tool_env(),
        )

    def installed_versions(self) -> List[str]:
        """Versions reported by ``solc-select versions``; empty if the listing fails."""
        try:
            result = self._run('versions')
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("Could not list installed solc versions: %s", e)
            return []

        versions = []
        for line in result.stdout.splitlines():
            match = VERSION_TOKEN_PATTERN.match(line.strip())
            if match:
                versions.append(match.group(1))
        return versions

    def is_installed(self, version: str) -> bool:
        return version in self.installed_versions()

    def _switch(self, action: str, version: str) -> None:
        try:
            self._run(action, version)
        except subprocess.CalledProcessError as e:
            output = (e.stderr or e.stdout or '').strip()
            raise ToolchainSwitchFailure(
                f"Failed to {action} solc version {version}: {output or e}",
                version=version,
                tool_output=output,
            ) from e
        except (OSError, subprocess.SubprocessError) as e:
            raise ToolchainSwitchFailure(
                f"Failed to {action} solc version {version}: {e}", version=version
            ) from e

    def activate(self, version: str) -> None:
        """Install ``version`` if needed, then make it the active solc."""
        if not self.is_installed(version):
            logger.info("Installing solc %s", version)
            self._switch('install', version)
        self._switch('use', version)
        logger.info("Switched to solc version %s", version)


class ActiveCompiler:
    """Process-wide owner of the active solc version."""

    _instance: Optional["ActiveCompiler"] = None
    _instance_lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "ActiveCompiler":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        with cls._instance_lock:
            cls._instance = cls()

    def __init__(self):
        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self.version: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def session(self, selector: ToolchainSelector, version: str) -> Iterator[str]:
        """Activate ``version`` and hold it until the block exits.

        Other threads block until the session ends. Re-entering from the
        owning thread raises instead of deadlocking.
        """
        if self._owner == threading.get_ident():
            raise ToolchainSwitchFailure(
                "Active compiler session is not reentrant", version=version
            )
        with self._lock:
            self._owner = threading.get_ident()
            try:
                self.version = None
                selector.activate(version)
                self.version = version
                yield version
            finally:
                self._owner = None
