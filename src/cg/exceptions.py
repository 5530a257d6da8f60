"""
Custom exception hierarchy for the campaign generator.

All exceptions inherit from CGError, which provides optional context
for structured error handling and logging.

Only StageFailure and PersistenceFailure end a run. The remaining
categories are degradations: the pipeline records them and continues.
"""

from __future__ import annotations

from typing import Any


class CGError(Exception):
    """Base exception for all campaign generator errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(CGError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Missing reasoning provider keys
        - Lead source selected without its token
    """

    pass


class DataFetchError(CGError):
    """Raised when fetching external data fails.

    Context should include:
        - source: The data source (e.g., "firecrawl", "ark")
        - url: The URL that was being fetched
        - status_code: HTTP status code if applicable
    """

    pass


class StageFailure(CGError):
    """Raised when an analysis stage cannot produce its output.

    Run-fatal. Context should include:
        - stage: The stage that failed
        - cause: The underlying error type
    """

    pass


class SourceTimeout(CGError):
    """A candidate search job did not finish within its polling budget.

    Degradation: partial leads are kept, or synthetic leads used if none.
    """

    pass


class SourceError(CGError):
    """The candidate source reported an error.

    Degradation: partial leads are kept, or synthetic leads used if none.
    """

    pass


class EnrichmentExhausted(CGError):
    """Signals that the enrichment loop stopped short of its target.

    Informational only: the loop returns its partial result and
    `stop_failure` classifies it; this is never raised.
    """

    pass


class GenerationFailure(CGError):
    """Raised when drafting content for a single lead fails.

    Degradation: that lead is dropped from the result.

    Context should include:
        - lead: Identifier of the lead
    """

    pass


class PersistenceFailure(CGError):
    """Raised when a completed campaign cannot be saved.

    Run-fatal. The completed result travels with the exception so that it
    is never silently dropped.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        result: Any = None,
    ) -> None:
        super().__init__(message, context)
        self.result = result
