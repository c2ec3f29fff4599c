"""
Error taxonomy shared by the knowledge pipeline.

Provider errors degrade to fallbacks; dimension errors are always fatal to
the call; input errors are surfaced to the caller as-is and never retried.
"""

from __future__ import annotations


class CodeShieldError(Exception):
    """Base class for all pipeline errors."""
    pass


class ProviderUnavailable(CodeShieldError):
    """Raised when a model provider has no credential configured."""
    pass


class ProviderError(CodeShieldError):
    """Raised when a call to a model provider fails or times out."""
    pass


class DimensionMismatch(CodeShieldError):
    """Raised when a vector does not have the configured dimension."""

    def __init__(self, expected: int, actual: int, context: str = "vector"):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{context} must have {expected} dimensions, got {actual}"
        )


class UnsupportedFileType(CodeShieldError):
    """Raised when uploaded content cannot be turned into text."""
    pass


class EmptyContent(CodeShieldError):
    """Raised when there is no text to ingest or analyze."""
    pass


class SourceHostError(CodeShieldError):
    """Raised when the source host (GitHub) cannot list or fetch files."""
    pass


class InvalidRepositoryUrl(SourceHostError):
    """Raised when a repository URL has no owner/repo path."""
    pass
