"""Errors raised while retrieving the cronograma from the portal."""

from __future__ import annotations


class CronogramaError(Exception):
    """Base error for a failed fetch attempt.

    Every subclass is retryable by the fetcher; the handler maps any of them
    to the uniform failure envelope.
    """

    code = "cronograma_error"

    def __init__(self, message: str) -> None:
        """Store the human-readable message next to the class-level code."""
        super().__init__(message)
        self.message = message


class SessionLaunchError(CronogramaError):
    """Raised when the Chromium engine cannot be started."""

    code = "session_launch_failed"


class NavigationTimeoutError(CronogramaError):
    """Raised when the portal page does not load within its budget."""

    code = "navigation_timeout"


class ElementTimeoutError(CronogramaError):
    """Raised when a form control is not visible or selectable in time."""

    code = "element_timeout"


class MissingControlError(CronogramaError):
    """Raised when the search trigger is absent from the page."""

    code = "missing_control"


class ResponseTimeoutError(CronogramaError):
    """Raised when no matching search response arrives after the click."""

    code = "response_timeout"


class InvalidPayloadError(CronogramaError):
    """Raised when the intercepted response body is not valid JSON."""

    code = "invalid_payload"
