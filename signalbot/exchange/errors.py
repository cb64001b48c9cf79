"""Normalised exchange error taxonomy.

Adapters translate provider-specific failures into these classes so the
rest of the bot never inspects raw HTTP responses or exchange error codes.
"""

from typing import Optional


class ExchangeError(Exception):
    """Base class for every exchange-layer failure."""

    def __init__(self, message: str, exchange: Optional[str] = None) -> None:
        super().__init__(message)
        self.exchange = exchange


class NetworkError(ExchangeError):
    """Transport failure: connection refused, DNS, reset, 5xx after retries."""


class ExchangeTimeoutError(NetworkError):
    """The request did not complete within the configured timeout."""


class AuthenticationError(ExchangeError):
    """Credentials rejected or signature invalid."""


class RateLimitError(ExchangeError):
    """Request budget exhausted.  Retry after ``retry_after`` seconds."""

    def __init__(
        self,
        message: str,
        retry_after: float,
        exchange: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> None:
        super().__init__(message, exchange)
        self.retry_after = max(0.0, retry_after)
        self.limit = limit


class ExternalApiError(ExchangeError):
    """Any other provider-reported failure."""

    def __init__(
        self,
        message: str,
        exchange: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message, exchange)
        self.status_code = status_code
        self.body = body


class NotConnectedError(ExchangeError):
    """A call was made before ``connect()`` succeeded."""
