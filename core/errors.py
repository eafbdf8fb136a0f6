"""
Error types for the Vigil analysis pipeline.

Every fatal failure raised by a pipeline stage derives from ``VigilError`` so
the pipeline boundary can turn it into a ``None`` result. ``PerFileAnalysisFailure``
is the one recoverable kind: the Slither runner catches it per file and moves on.
"""

from typing import Optional


class VigilError(Exception):
    """Base class for all pipeline errors."""


class SourceUnavailable(VigilError):
    """The explorer reported failure, or the contract has no verified source."""


class SourceFetchError(VigilError):
    """The explorer request failed at the HTTP/network level."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientFetchFailure(SourceFetchError):
    """A 502 from the explorer that persisted through the single retry."""


class MalformedSourceMap(VigilError):
    """The source payload looked like JSON but could not be decoded into a source map."""


class StagingError(VigilError):
    """The staging directory could not be safely reset."""


class VersionUnresolvable(VigilError):
    """Neither the pragma nor the explorer metadata yielded a compiler version."""


class ToolchainSwitchFailure(VigilError):
    """solc-select failed to install or activate the requested version."""

    def __init__(self, message: str, version: Optional[str] = None, tool_output: str = ""):
        super().__init__(message)
        self.version = version
        self.tool_output = tool_output


class PerFileAnalysisFailure(VigilError):
    """Slither could not be invoked for a single file."""

    def __init__(self, message: str, file_key: str = ""):
        super().__init__(message)
        self.file_key = file_key


class AnalysisDeadlineExceeded(VigilError):
    """The overall analysis deadline passed before every file was analyzed."""
