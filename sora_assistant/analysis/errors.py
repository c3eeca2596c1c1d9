"""
Errors raised on the capture and analysis path.
"""

from typing import Optional


class AnalysisError(Exception):
    """Base class for failures of a single analysis call."""


class ServiceError(AnalysisError):
    """The service answered with a non-success status, or could not be reached."""

    def __init__(self, status_code: Optional[int], message: str = ""):
        self.status_code = status_code
        detail = message or "request failed"
        if status_code is None:
            super().__init__(f"Analysis service error: {detail}")
        else:
            super().__init__(f"Analysis service error {status_code}: {detail}")


class MalformedResponseError(AnalysisError):
    """A success response did not carry the expected text field."""


class AnalysisTimeoutError(AnalysisError):
    """The service did not answer before the deadline."""

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(f"Analysis timed out after {timeout_s:.1f}s")


class CaptureUnavailableError(Exception):
    """No frame could be captured (no active video stream)."""
