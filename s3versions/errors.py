"""Error taxonomy for the listing engine.

Signing errors (InvalidCredentials, ClockError) and decode errors are fatal.
ApiError is fatal unless the store reports throttling or a server-side
failure. TransportError is retryable until the retry budget is spent, after
which RetryExhausted is raised. Cancelled is never retried.
"""

from typing import Optional

# Error codes the store uses to ask clients to slow down
THROTTLING_CODES = {
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequests",
    "RequestThrottled",
    "ServiceUnavailable",
    "InternalError",
}


class ListingError(Exception):
    """Base class for errors raised while listing."""


class SigningError(ListingError):
    """Raised when a request cannot be signed."""


class InvalidCredentials(SigningError):
    """Raised when a credential field is empty."""


class ClockError(SigningError):
    """Raised when the signing timestamp is outside the sanity window."""


class DecodeError(ListingError):
    """Raised when a listing response body cannot be decoded."""


class MissingField(DecodeError):
    """Raised when a required element is absent from a response."""

    def __init__(self, name: str, context: Optional[str] = None):
        where = f" in <{context}>" if context else ""
        super().__init__(f"Missing required field '{name}'{where}")
        self.field = name
        self.context = context


class ApiError(ListingError):
    """An error document returned by the object store."""

    def __init__(
        self,
        code: str,
        message: str = "",
        request_id: Optional[str] = None,
        status: Optional[int] = None,
    ):
        text = f"{code}: {message}" if message else code
        if status is not None:
            text = f"{text} (HTTP {status})"
        super().__init__(text)
        self.code = code
        self.message = message
        self.request_id = request_id
        self.status = status

    @property
    def is_throttling(self) -> bool:
        """True when the store asked us to back off."""
        return self.code in THROTTLING_CODES or self.status == 429

    @property
    def is_server_error(self) -> bool:
        return self.status is not None and self.status >= 500


class TransportError(ListingError):
    """Raised when the network round trip fails."""


class RetryExhausted(TransportError):
    """Raised when all retry attempts have been exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class Cancelled(ListingError):
    """Raised when the caller cancels a listing."""
