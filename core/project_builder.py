"""
Reconstructs a compilable project tree from a ``SourceMap``.

Layout under the staging root::

    <staging>/contracts/Token.sol                 first-party key "contracts/Token.sol"
    <staging>/node_modules/@openzeppelin/...      library key "@openzeppelin/..."

The staging root is wiped at the start of every build, so a builder must not be
shared by two runs in flight.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Tuple, Union

from core.config_manager import ConfigManager
from core.errors import MalformedSourceMap, StagingError
from core.file_handler import FileHandler
from core.source_map import SourceMap

logger = logging.getLogger(__name__)


@dataclass
class StagedProject:
    """Result of materializing a source map on disk."""
    root: Path
    dependency_root: Path
    libraries: List[str] = field(default_factory=list)
    staged_files: Dict[str, Path] = field(default_factory=dict)
    first_party_files: List[str] = field(default_factory=list)
    dependency_root_preexisted: bool = False
    namespace_marker: str = "@"

    def library_of(self, key: str) -> Optional[str]:
        return library_name(key, self.namespace_marker)

    def resolve_path(self, key: str) -> Path:
        """Absolute staged path for a source map key.

        Library keys are referenced by their import path (``@pkg/...``) but
        live under the dependency root. A leading ``/`` is staged under the root.
        """
        base = self.dependency_root if self.library_of(key) else self.root
        return base.joinpath(*_checked_relative(key).parts)


def library_name(key: str, marker: str = "@") -> Optional[str]:
    """Package name for a namespaced key, e.g. ``@openzeppelin`` for
    ``@openzeppelin/contracts/access/Ownable.sol``; None for first-party keys."""
    if not key.startswith(marker):
        return None
    package, sep, rest = key.partition('/')
    if not sep or not rest:
        return None
    return package


def _checked_relative(key: str) -> PurePosixPath:
    relative = PurePosixPath(key)
    if relative.is_absolute():
        relative = relative.relative_to(relative.anchor)
    if '..' in relative.parts or not relative.parts:
        raise MalformedSourceMap(f"Source path escapes the staging root: {key!r}")
    return relative


class ProjectTreeBuilder:
    """Writes a source map into a freshly reset staging directory."""

    def __init__(
        self,
        staging_root: Union[str, Path],
        dependency_dir: str = "node_modules",
        namespace_marker: str = "@",
        seed_dir: Optional[Union[str, Path]] = None,
        file_handler: Optional[FileHandler] = None,
    ):
        self.staging_root = Path(staging_root).expanduser().resolve()
        self.dependency_root = self.staging_root / dependency_dir
        self.namespace_marker = namespace_marker
        self.seed_dir = Path(seed_dir).expanduser() if seed_dir else None
        self.file_handler = file_handler or FileHandler()

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "ProjectTreeBuilder":
        config = config_manager.config
        return cls(
            staging_root=config_manager.get_staging_path(),
            dependency_dir=config.dependency_dir,
            namespace_marker=config.namespace_marker,
            seed_dir=config.dependency_seed_dir or None,
        )

    def build(self, source_map: SourceMap) -> StagedProject:
        """Materialize ``source_map`` and return the staged project."""
        for key in source_map.keys():
            _checked_relative(key)
        first_party, packages = self.classify(source_map.keys())

        self._reset_staging_root()
        project = StagedProject(
            root=self.staging_root,
            dependency_root=self.dependency_root,
            namespace_marker=self.namespace_marker,
        )

        for key in first_party:
            self._write(self.staging_root, _checked_relative(key), source_map.content_of(key))
        project.first_party_files = list(first_party)

        self._seed_dependencies()
        project.dependency_root_preexisted = self.dependency_root.is_dir()
        os.makedirs(self.dependency_root, exist_ok=True)

        for package, keys in packages.items():
            package_root = self.dependency_root / package
            os.makedirs(package_root, exist_ok=True)
            for key in keys:
                relative = _checked_relative(key[len(package) + 1:])
                self._write(package_root, relative, source_map.content_of(key))

        project.libraries = list(packages)
        if project.dependency_root_preexisted:
            # only a seeded dependency root can hold packages the source map lacks
            for package in self._scan_dependency_root():
                if package not in packages:
                    project.libraries.append(package)

        project.staged_files = {key: project.resolve_path(key) for key in source_map.keys()}

        logger.info(
            "Staged %d first-party files and %d libraries under %s",
            len(first_party), len(project.libraries), self.staging_root,
        )
        if project.libraries:
            logger.info("Libraries detected: %s", ", ".join(project.libraries))
        return project

    def classify(self, keys: List[str]) -> Tuple[List[str], Dict[str, List[str]]]:
        """Split keys into first-party files and per-package library files."""
        first_party: List[str] = []
        packages: Dict[str, List[str]] = {}
        for key in keys:
            package = library_name(key, self.namespace_marker)
            if package is None:
                first_party.append(key)
            else:
                packages.setdefault(package, []).append(key)
        return first_party, packages

    def _reset_staging_root(self) -> None:
        root = self.staging_root
        if root == Path(root.anchor) or root == Path.home().resolve() or root == Path.cwd().resolve():
            raise StagingError(f"Refusing to reset unsafe staging root: {root}")
        if root.exists():
            try:
                shutil.rmtree(root)
            except OSError as e:
                raise StagingError(f"Could not clear staging root {root}: {e}") from e
        os.makedirs(root, exist_ok=True)

    def _write(self, base: Path, relative: PurePosixPath, content: str) -> None:
        self.file_handler.write_file(base.joinpath(*relative.parts), content)

    def _seed_dependencies(self) -> None:
        """Copy pre-seeded namespace packages into the dependency root."""
        if self.seed_dir is None:
            return
        if not self.seed_dir.is_dir():
            logger.warning("Dependency seed directory %s does not exist", self.seed_dir)
            return
        for entry in sorted(self.seed_dir.iterdir()):
            if entry.is_dir() and entry.name.startswith(self.namespace_marker):
                shutil.copytree(entry, self.dependency_root / entry.name, dirs_exist_ok=True)
                logger.debug("Seeded dependency %s", entry.name)

    def _scan_dependency_root(self) -> List[str]:
        return sorted(
            entry.name for entry in self.dependency_root.iterdir()
            if entry.is_dir() and entry.name.startswith(self.namespace_marker)
        )
