from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class SinkError(RuntimeError):
    """Raised when pushing records to the output sink fails."""


class ScrapeError(RuntimeError):
    """Base class for failures that end a single extraction task."""


class RateLimitError(ScrapeError):
    """The platform is throttling requests. Retried with exponential backoff."""


class LoginWallError(ScrapeError):
    """The platform is showing a login wall instead of content."""


class PlatformError(ScrapeError):
    """The platform rendered a generic error page."""


class NotFoundError(ScrapeError):
    """The requested profile or post does not exist."""


class ExtractionError(ScrapeError):
    """A rendered page (or a single item on it) could not be parsed."""


class InvalidTaskError(ScrapeError):
    """The task input cannot be turned into a platform address."""


class RecordRejected(ValueError):
    """An extracted record failed validation and was dropped."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
