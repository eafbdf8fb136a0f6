#!/usr/bin/env python3
"""
File Handler for Vigil

Subprocess environment for external tools and the file-writing primitive used
when staging reconstructed contracts.
"""

import os
from pathlib import Path
from typing import Union


def get_tool_env() -> dict:
    """
    Get environment variables configured for external tools (Slither, solc-select).
    Ensures pip --user installs of slither and solc-select are in PATH.
    """
    env = os.environ.copy()

    path_parts = env.get('PATH', '').split(os.pathsep)
    for candidate in ("~/.local/bin", "~/.foundry/bin"):
        bin_dir = os.path.expanduser(candidate)
        if os.path.exists(bin_dir) and bin_dir not in path_parts:
            env['PATH'] = f"{bin_dir}{os.pathsep}{env.get('PATH', '')}"

    return env


class FileHandler:
    """Simple file handler for contract files."""

    def read_file(self, file_path: Union[str, Path]) -> str:
        """Read a file and return its content."""
        with open(file_path, 'r', encoding='utf-8') as f:
            return f.read()

    def write_file(self, file_path: Union[str, Path], content: str) -> None:
        """Write content to a file, creating any missing parent directories."""
        os.makedirs(os.path.dirname(os.fspath(file_path)), exist_ok=True)
        with open(file_path, 'w', encoding='utf-8') as f:
            f.write(content)
