"""Custom exceptions for actionpin."""


class ActionPinError(Exception):
    """Base exception for all actionpin errors."""


class ConfigurationError(ActionPinError):
    """Raised when the base configuration is unusable (bad API URL, limits)."""


class RemoteLookupError(ActionPinError):
    """Raised when the remote API answers with a non-success status."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        super().__init__(f"{status} {message}")


class NotFoundError(RemoteLookupError):
    """Raised when a repository, tag, or ref does not exist (404)."""


class MalformedResponseError(ActionPinError):
    """Raised when a remote payload does not have the expected shape."""


class RateLimitError(ActionPinError):
    """Raised when the rate limit is still exhausted after all retries."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"rate limit exceeded, retry after {retry_after}s")


class ServiceUnavailableError(ActionPinError):
    """Raised when no lookup of a batch could reach the remote service."""
