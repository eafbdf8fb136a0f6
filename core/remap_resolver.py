"""
Import remapping for staged projects.

One remap per library package points at its directory under the dependency
root. Remappings declared in the explorer's compiler settings are kept too,
with their targets rebased onto the staging root; on a name clash the
synthesized entry wins, so a package always resolves to what was staged.
"""

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, Iterable, List

from core.project_builder import StagedProject

logger = logging.getLogger(__name__)


def _remap_key(name: str) -> str:
    return name.rstrip('/')


@dataclass
class RemapTable:
    """Ordered package name -> absolute path mapping."""
    entries: Dict[str, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def names(self) -> List[str]:
        return list(self.entries)

    def as_list(self) -> List[str]:
        return [f"{name}={path}" for name, path in self.entries.items()]

    def format(self) -> str:
        """Value for Slither's ``--solc-remaps`` (space separated)."""
        return " ".join(self.as_list())


class RemapResolver:
    """Builds the RemapTable for a staged project."""

    def synthesize(self, project: StagedProject) -> Dict[str, str]:
        return {
            library: str(project.dependency_root / library)
            for library in project.libraries
        }

    def rebase_explicit(self, project: StagedProject, remappings: Iterable[str]) -> Dict[str, str]:
        """Parse ``name=target`` strings, resolving targets inside the staging root."""
        rebased: Dict[str, str] = {}
        for remapping in remappings:
            name, sep, target = remapping.partition('=')
            if not sep or not name:
                logger.warning("Skipping malformed remapping: %r", remapping)
                continue
            if name in rebased:
                continue
            # keep the target inside the staging tree
            parts = [p for p in PurePosixPath(target).parts if p not in ('/', '.', '..')]
            base = project.root
            if parts and parts[0] in project.libraries:
                # namespaced packages live under the dependency root
                base = project.dependency_root
            path = str(base.joinpath(*parts))
            if target.endswith('/') and not path.endswith('/'):
                path += '/'
            rebased[name] = path
        return rebased

    def resolve(self, project: StagedProject, explicit_remappings: Iterable[str] = ()) -> RemapTable:
        table = RemapTable(entries=self.synthesize(project))
        taken = {_remap_key(name) for name in table.entries}

        for name, path in self.rebase_explicit(project, explicit_remappings).items():
            if _remap_key(name) in taken:
                logger.debug("Explicit remapping %s overridden by staged library", name)
                continue
            taken.add(_remap_key(name))
            table.entries[name] = path

        logger.info("Resolved %d remappings", len(table))
        return table
