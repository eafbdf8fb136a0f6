"""
Source map parsing.

Explorers publish multi-file contracts as a Standard JSON Input blob, often
wrapped in an extra pair of braces (``{{ ... }}``). Single-file contracts come
back as plain Solidity text. Both are normalized into a ``SourceMap``.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from core.errors import MalformedSourceMap

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "Contract.sol"


@dataclass(frozen=True)
class SourceFile:
    content: str


@dataclass
class SourceMap:
    """Ordered mapping of file path -> source, plus declared remappings.

    Iteration order is the explorer's key order; analysis and aggregation
    both follow it.
    """
    sources: Dict[str, SourceFile] = field(default_factory=dict)
    remappings: List[str] = field(default_factory=list)
    language: Optional[str] = None
    is_multi_file: bool = False

    def __len__(self) -> int:
        return len(self.sources)

    def __iter__(self) -> Iterator[str]:
        return iter(self.sources)

    def keys(self) -> List[str]:
        return list(self.sources)

    def contents(self) -> List[str]:
        return [source.content for source in self.sources.values()]

    def content_of(self, key: str) -> str:
        return self.sources[key].content


def _strip_double_braces(payload: str) -> str:
    # Etherscan wraps standard JSON input as {{ ... }}; drop one layer
    if payload.startswith('{{') and payload.endswith('}}'):
        return payload[1:-1]
    return payload


def _file_name_for(contract_name: str) -> str:
    safe_name = re.sub(r'[^A-Za-z0-9_\-]', '', contract_name or '')
    return f"{safe_name}.sol" if safe_name else DEFAULT_FILE_NAME


def _looks_like_sources(obj: Dict[str, Any]) -> bool:
    return bool(obj) and all(isinstance(v, dict) and 'content' in v for v in obj.values())


def _build_sources(raw_sources: Dict[str, Any]) -> Dict[str, SourceFile]:
    sources: Dict[str, SourceFile] = {}
    for path, record in raw_sources.items():
        if not isinstance(record, dict) or not isinstance(record.get('content'), str):
            raise MalformedSourceMap(f"Source entry {path!r} has no content")
        sources[path] = SourceFile(record['content'])
    return sources


def parse_source_payload(payload: str, contract_name: str = "") -> SourceMap:
    """Decode an explorer SourceCode payload.

    Args:
        payload: Raw ``SourceCode`` field from the explorer.
        contract_name: Used to name the file when the payload is plain text.

    Raises:
        MalformedSourceMap: the payload is brace-delimited but not a usable
            JSON source map.
    """
    text = payload.strip()

    if not text.startswith('{'):
        name = _file_name_for(contract_name)
        logger.debug("Plain-text source, synthesizing single file %s", name)
        return SourceMap(sources={name: SourceFile(payload)})

    try:
        parsed = json.loads(_strip_double_braces(text))
    except json.JSONDecodeError as e:
        raise MalformedSourceMap(f"Failed to parse source code JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise MalformedSourceMap("Source code JSON is not an object")

    if isinstance(parsed.get('sources'), dict):
        raw_sources = parsed['sources']
    elif _looks_like_sources(parsed):
        # older explorer format: the object itself is the sources mapping
        raw_sources = parsed
    else:
        raise MalformedSourceMap("Source code JSON has no sources")

    if not raw_sources:
        raise MalformedSourceMap("Source code JSON has an empty sources mapping")

    settings = parsed.get('settings') if isinstance(parsed.get('settings'), dict) else {}
    remappings = settings.get('remappings') or []
    if not isinstance(remappings, list):
        logger.warning("Ignoring non-list settings.remappings: %r", remappings)
        remappings = []

    language = parsed.get('language') if isinstance(parsed.get('language'), str) else None

    source_map = SourceMap(
        sources=_build_sources(raw_sources),
        remappings=[str(r) for r in remappings],
        language=language,
        is_multi_file=True,
    )
    logger.info("Parsed multi-file source map with %d files", len(source_map))
    return source_map
