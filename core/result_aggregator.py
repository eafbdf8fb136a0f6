"""
Aggregation of per-file Slither output into the pipeline result.
"""

from dataclasses import dataclass
from typing import Dict, Iterable

from core.slither_runner import FileAnalysis
from core.source_map import SourceMap


@dataclass(frozen=True)
class AnalysisResult:
    """Everything downstream reporting needs: findings text and full source."""
    slither_results: str
    combined_source_code: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'slitherResults': self.slither_results,
            'combinedSourceCode': self.combined_source_code,
        }


def aggregate(source_map: SourceMap, analyses: Iterable[FileAnalysis]) -> AnalysisResult:
    """Join analyzer output and sources, both in source map order.

    ``analyses`` must already follow source map order. Failed files contribute
    nothing; duplicates are kept.
    """
    slither_results = "".join(
        analysis.output + "\n" for analysis in analyses if analysis.succeeded
    )
    combined_source_code = "\n".join(source_map.contents())
    return AnalysisResult(
        slither_results=slither_results,
        combined_source_code=combined_source_code,
    )
