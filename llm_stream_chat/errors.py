"""Error taxonomy for chat requests."""

from __future__ import annotations


class ChatError(Exception):
    """Base exception for chat operations."""

    pass


class NetworkError(ChatError):
    """Connection-level failure (DNS, TLS, reset, timeout)."""

    pass


class HttpStatusError(ChatError):
    """The provider answered with a non-2xx status.

    Attributes:
        status: HTTP status code.
        message: Provider error message when the body decoded as an error
            envelope, otherwise the raw body text.
        body: Raw response body text.
    """

    def __init__(self, status: int, message: str, body: str = "") -> None:
        self.status = status
        self.message = message
        self.body = body
        super().__init__(f"Bad Response: {status}, {message}")


# Transport-level name for the same failure
TransportError = HttpStatusError


class DecodeError(ChatError):
    """A response payload could not be decoded."""

    pass


class Cancelled(ChatError):
    """The request was cancelled cooperatively."""

    def __init__(self, message: str = "The response was cancelled") -> None:
        super().__init__(message)


class UpstreamEmptyError(ChatError):
    """The provider returned a completion with no choices."""

    pass
