"""Base exchange adapter — shared transport, rate limiting and health.

Concrete adapters supply endpoint paths, request signing, header parsing
and response transformation.  Everything else (retry with backoff,
rate-limit throttling, error normalisation, health bookkeeping) lives here.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from signalbot.config import Config
from signalbot.exchange.errors import (
    AuthenticationError,
    ExchangeError,
    ExchangeTimeoutError,
    ExternalApiError,
    NetworkError,
    NotConnectedError,
    RateLimitError,
)
from signalbot.exchange.models import (
    Balance,
    Candle,
    ExchangeHealth,
    MarketInfo,
    RateLimitPolicy,
    Ticker,
)

logger = logging.getLogger("signalbot.exchange")

# Retry settings
_RETRY_BASE_DELAY = 0.5  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504}
_RATE_LIMIT_STATUS_CODES = {418, 429}
_AUTH_STATUS_CODES = {401, 403}

SUPPORTED_TIMEFRAMES = ("1m", "5m", "15m", "30m", "1h", "4h", "1d", "1w")


class BaseExchangeAdapter:
    """Async REST adapter skeleton.

    Args:
        config: Application configuration (credentials, timeout, retries).
        clock: Returns epoch seconds; injectable for tests.
        sleep: Coroutine used for throttling and retry backoff.
    """

    name = "base"
    base_url = ""
    sandbox_url = ""
    policy = RateLimitPolicy(max_weight=1200, requests_per_second=10)
    max_candle_history = 1000

    def __init__(self, config: Config, clock=time.time, sleep=asyncio.sleep) -> None:
        self._config = config
        self._base_url = self.sandbox_url if config.sandbox else self.base_url
        self._timeout = config.request_timeout_seconds
        self._max_retries = max(1, config.retry_count)
        self._clock = clock
        self._sleep = sleep
        self._health = ExchangeHealth(self.policy, clock=clock)

    # ── Capability interface ─────────────────────────────────────────────

    @property
    def health(self) -> ExchangeHealth:
        return self._health

    @property
    def is_connected(self) -> bool:
        return self._health.is_connected

    async def connect(self) -> None:
        """Ping the exchange and mark the adapter ready for calls."""
        latency = await self.ping()
        logger.info("Connected to %s (latency %.0f ms)", self.name, latency)

    async def disconnect(self) -> None:
        self._health.mark_disconnected()
        logger.info("Disconnected from %s", self.name)

    async def ping(self) -> float:
        """Round-trip the exchange's ping endpoint and return latency in ms.

        A failure marks the exchange disconnected and counts as an error;
        the normalised error is re-raised for the caller to handle.  An
        exhausted request budget leaves the connection state alone.
        """
        start = time.monotonic()
        try:
            await self._request("get", self._ping_path(), require_connection=False)
        except RateLimitError:
            raise
        except ExchangeError:
            self._health.mark_disconnected()
            raise
        latency = (time.monotonic() - start) * 1000
        self._health.mark_connected(latency)
        return latency

    async def get_candles(
        self,
        symbol: str,
        timeframe: str,
        limit: int = 100,
    ) -> list[Candle]:
        """Fetch candles ordered oldest-first."""
        if timeframe not in SUPPORTED_TIMEFRAMES:
            raise ValueError(
                f"Unsupported timeframe '{timeframe}'. "
                f"Available: {', '.join(SUPPORTED_TIMEFRAMES)}"
            )
        limit = max(1, min(limit, self.max_candle_history))
        return await self._fetch_candles(self.normalize_symbol(symbol), timeframe, limit)

    async def get_ticker(self, symbol: str) -> Ticker:
        return await self._fetch_ticker(self.normalize_symbol(symbol))

    async def get_markets(self) -> list[MarketInfo]:
        return await self._fetch_markets()

    async def get_balance(self) -> list[Balance]:
        return await self._fetch_balance()

    def health_score(self) -> int:
        return self._health.health_score()

    def is_healthy(self) -> bool:
        return self._health.is_healthy()

    def get_status(self) -> dict:
        """Return a JSON-friendly status dict for the API."""
        return {
            "name": self.name,
            "healthy": self.is_healthy(),
            **self._health.snapshot(),
        }

    @staticmethod
    def normalize_symbol(symbol: str) -> str:
        """``"BTC/USDT"`` → ``"BTCUSDT"``."""
        return symbol.replace("/", "").replace("-", "").replace("_", "").upper()

    # ── Hooks for concrete adapters ──────────────────────────────────────

    def _ping_path(self) -> str:
        raise NotImplementedError

    async def _fetch_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        raise NotImplementedError

    async def _fetch_ticker(self, symbol: str) -> Ticker:
        raise NotImplementedError

    async def _fetch_markets(self) -> list[MarketInfo]:
        raise NotImplementedError

    async def _fetch_balance(self) -> list[Balance]:
        raise NotImplementedError

    def _sign(self, params: dict) -> tuple[dict, dict]:
        """Return ``(params, headers)`` for an authenticated request."""
        raise NotImplementedError

    def _parse_rate_limit(self, headers: httpx.Headers) -> tuple[Optional[int], Optional[float]]:
        """Return ``(remaining, reset_at)`` from response headers."""
        return None, None

    def _check_payload(self, payload) -> None:
        """Raise a normalised error if a 200 response carries an API error."""

    def _error_from_response(self, resp: httpx.Response) -> ExchangeError:
        """Map a non-retryable error response onto the error taxonomy."""
        if resp.status_code in _RATE_LIMIT_STATUS_CODES:
            return RateLimitError(
                f"{self.name} rate limit hit ({resp.status_code})",
                retry_after=_retry_after(resp, self._health.seconds_until_reset()),
                exchange=self.name,
                limit=self.policy.max_weight,
            )
        if resp.status_code in _AUTH_STATUS_CODES:
            return AuthenticationError(
                f"{self.name} rejected credentials ({resp.status_code})",
                exchange=self.name,
            )
        return ExternalApiError(
            f"{self.name} API error {resp.status_code}",
            exchange=self.name,
            status_code=resp.status_code,
            body=resp.text[:500],
        )

    # ── Request pipeline ─────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        signed: bool = False,
        weight: int = 1,
        require_connection: bool = True,
    ):
        """Throttle, execute and decode one API call.

        Fails fast with ``RateLimitError`` when the budget is exhausted and
        the provider's reset time has not passed yet.
        """
        if require_connection and not self._health.initialized:
            raise NotConnectedError(
                f"{self.name} adapter used before connect()", exchange=self.name,
            )

        self._raise_if_exhausted()
        if self._health.is_approaching_rate_limit():
            logger.warning(
                "%s approaching rate limit: %d weight left",
                self.name, self._health.rate_limit_remaining,
            )

        delay = self._health.recommended_delay()
        if delay > 0:
            await self._sleep(delay)
            # Other calls may have drained the budget during the sleep
            self._raise_if_exhausted()

        headers: dict = {}
        params = dict(params or {})
        if signed:
            params, headers = self._sign(params)

        self._health.consume(weight)
        start = time.monotonic()
        try:
            resp = await self._request_with_retry(method, path, params, headers)
            payload = resp.json()
            self._check_payload(payload)
        except ExchangeError as exc:
            self._health.record_error(exc)
            raise
        except ValueError as exc:
            err = ExternalApiError(
                f"{self.name} returned invalid JSON: {exc}", exchange=self.name,
            )
            self._health.record_error(err)
            raise err from exc

        self._health.record_success((time.monotonic() - start) * 1000)
        return payload

    def _raise_if_exhausted(self) -> None:
        if self._health.is_rate_limit_exhausted():
            retry_after = self._health.seconds_until_reset()
            raise RateLimitError(
                f"{self.name} request budget exhausted, retry in {retry_after:.1f}s",
                retry_after=retry_after,
                exchange=self.name,
                limit=self.policy.max_weight,
            )

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        params: dict,
        headers: dict,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504) and transport
        failures.  Rate-limit, auth and other API errors are raised
        immediately as normalised exchange errors.
        """
        url = f"{self._base_url}{path}"
        last_exc: Optional[ExchangeError] = None

        for attempt in range(self._max_retries):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await getattr(client, method)(
                        url,
                        headers=headers,
                        params=params,
                        timeout=self._timeout,
                    )
            except httpx.TimeoutException as exc:
                last_exc = ExchangeTimeoutError(
                    f"{self.name} {method.upper()} {path} timed out", exchange=self.name,
                )
                self._log_retry(method, path, str(exc) or "timeout", attempt)
            except httpx.TransportError as exc:
                last_exc = NetworkError(
                    f"{self.name} {method.upper()} {path} failed: {exc}", exchange=self.name,
                )
                self._log_retry(method, path, str(exc), attempt)
            else:
                remaining, reset_at = self._parse_rate_limit(resp.headers)
                self._health.update_rate_limit(remaining, reset_at)

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    last_exc = NetworkError(
                        f"{self.name} {method.upper()} {path} returned {resp.status_code}",
                        exchange=self.name,
                    )
                    self._log_retry(method, path, str(resp.status_code), attempt)
                elif resp.status_code >= 400:
                    raise self._error_from_response(resp)
                else:
                    return resp

            if attempt + 1 < self._max_retries:
                await self._sleep(_RETRY_BASE_DELAY * (2 ** attempt))

        # Retries exhausted
        raise last_exc  # type: ignore[misc]

    def _log_retry(self, method: str, path: str, reason: str, attempt: int) -> None:
        logger.warning(
            "%s %s %s failed (%s), attempt %d/%d",
            self.name, method.upper(), path, reason, attempt + 1, self._max_retries,
        )


def _retry_after(resp: httpx.Response, default: float) -> float:
    """Seconds from a ``Retry-After`` header, else *default*."""
    value = resp.headers.get("Retry-After")
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default
