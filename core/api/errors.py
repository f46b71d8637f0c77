"""Exception hierarchy for the report ingestion and analysis core."""

from __future__ import annotations

from typing import Optional


class ReportCoreError(Exception):
    """Base exception for all report core errors."""


class ConfigurationError(ReportCoreError):
    """Missing credential or invalid provider settings. Never retried."""


class CompletionError(ReportCoreError):
    """Raised when a call to the completion service fails."""


class UpstreamServiceError(CompletionError):
    """Non-success response (or no response at all) from the completion endpoint."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """True for rate limits, timeouts and 5xx responses."""
        return self.status_code is None or self.status_code in (408, 429) or self.status_code >= 500


class MalformedResponseError(CompletionError):
    """Response body is not a single JSON object, or does not match the expected shape."""

    def __init__(self, message: str, raw_response: str = "") -> None:
        super().__init__(message)
        self.raw_response = raw_response


class ReportProcessingError(ReportCoreError):
    """Raised by the report workflow when its input contract is not met."""
