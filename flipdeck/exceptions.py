"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class FlipdeckError(Exception):
    """Base exception for all application-specific errors."""


class RemoteError(FlipdeckError):
    """Raised when any operation against the remote store fails."""

    def __init__(
        self, message: str, status: int | None = None, code: str | None = None
    ):
        super().__init__(message)
        self.status = status
        self.code = code


class RemoteTimeoutError(RemoteError):
    """Raised when a remote call does not finish before its deadline."""


class CacheParseError(FlipdeckError):
    """Raised when the persisted cache content cannot be decoded."""

    def __init__(self, message: str, slot: str, quarantined_to: str | None = None):
        super().__init__(message)
        self.slot = slot
        self.quarantined_to = quarantined_to


class ConfigurationError(FlipdeckError):
    """Raised for issues related to configuration loading or validation."""


class SetValidationError(FlipdeckError):
    """Raised when a set is not fit to be persisted."""


class NotStudyableError(FlipdeckError):
    """Raised when a study session is requested for a set without cards."""


class QuizParseError(FlipdeckError):
    """Raised when speed-quiz text yields no question/answer pairs."""


class ImageError(FlipdeckError):
    """Raised when a file cannot be embedded as a card image."""
