"""Binance USDⓈ-M futures REST adapter."""

import hashlib
import hmac
import math
from typing import Optional
from urllib.parse import urlencode

import httpx

from signalbot.exchange.base_adapter import BaseExchangeAdapter
from signalbot.exchange.errors import (
    AuthenticationError,
    ExchangeError,
    ExternalApiError,
    RateLimitError,
)
from signalbot.exchange.models import Balance, Candle, MarketInfo, RateLimitPolicy, Ticker

_AUTH_ERROR_CODES = {-1022, -2014, -2015}
_RATE_LIMIT_ERROR_CODES = {-1003}
_RECV_WINDOW_MS = 5000


def _kline_weight(limit: int) -> int:
    if limit < 100:
        return 1
    if limit < 500:
        return 2
    if limit <= 1000:
        return 5
    return 10


class BinanceAdapter(BaseExchangeAdapter):
    """Binance futures adapter (``fapi`` endpoints)."""

    name = "binance"
    base_url = "https://fapi.binance.com"
    sandbox_url = "https://testnet.binancefuture.com"
    policy = RateLimitPolicy(max_weight=1200, requests_per_second=10)
    max_candle_history = 1500

    def _ping_path(self) -> str:
        return "/fapi/v1/ping"

    # ── Market data ──────────────────────────────────────────────────────

    async def _fetch_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        rows = await self._request(
            "get",
            "/fapi/v1/klines",
            params={"symbol": symbol, "interval": timeframe, "limit": limit},
            weight=_kline_weight(limit),
        )
        # [openTime, open, high, low, close, volume, closeTime, ...]
        return [
            Candle(
                timestamp=int(row[0]),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
            )
            for row in rows
        ]

    async def _fetch_ticker(self, symbol: str) -> Ticker:
        stats = await self._request(
            "get", "/fapi/v1/ticker/24hr", params={"symbol": symbol},
        )
        book = await self._request(
            "get", "/fapi/v1/ticker/bookTicker", params={"symbol": symbol},
        )
        return Ticker(
            symbol=symbol,
            bid=float(book.get("bidPrice", 0)),
            ask=float(book.get("askPrice", 0)),
            last=float(stats["lastPrice"]),
            volume=float(stats.get("volume", 0)),
            change=float(stats.get("priceChange", 0)),
            percentage=float(stats.get("priceChangePercent", 0)),
            timestamp=int(stats.get("closeTime", 0)),
        )

    async def _fetch_markets(self) -> list[MarketInfo]:
        info = await self._request("get", "/fapi/v1/exchangeInfo")
        markets: list[MarketInfo] = []
        for s in info.get("symbols", []):
            filters = {f["filterType"]: f for f in s.get("filters", [])}
            lot = filters.get("LOT_SIZE", {})
            price = filters.get("PRICE_FILTER", {})
            max_qty = lot.get("maxQty")
            markets.append(
                MarketInfo(
                    symbol=s["symbol"],
                    base_asset=s.get("baseAsset", ""),
                    quote_asset=s.get("quoteAsset", ""),
                    min_order_size=float(lot.get("minQty", 0)),
                    max_order_size=float(max_qty) if max_qty else None,
                    price_step=float(price.get("tickSize", 0)),
                    quantity_step=float(lot.get("stepSize", 0)),
                    is_active=s.get("status") == "TRADING",
                )
            )
        return markets

    async def _fetch_balance(self) -> list[Balance]:
        rows = await self._request("get", "/fapi/v2/balance", signed=True, weight=5)
        balances: list[Balance] = []
        for row in rows:
            total = float(row.get("balance", 0))
            free = float(row.get("availableBalance", total))
            balances.append(
                Balance(asset=row["asset"], free=free, locked=max(0.0, total - free))
            )
        return balances

    # ── Transport hooks ──────────────────────────────────────────────────

    def _sign(self, params: dict) -> tuple[dict, dict]:
        params = {
            **params,
            "timestamp": int(self._clock() * 1000),
            "recvWindow": _RECV_WINDOW_MS,
        }
        query = urlencode(params)
        params["signature"] = hmac.new(
            self._config.api_secret.encode(),
            query.encode(),
            hashlib.sha256,
        ).hexdigest()
        return params, {"X-MBX-APIKEY": self._config.api_key}

    def _parse_rate_limit(self, headers: httpx.Headers) -> tuple[Optional[int], Optional[float]]:
        used = headers.get("X-MBX-USED-WEIGHT-1M")
        if used is None:
            return None, None
        # Binance weight windows align to the wall-clock minute.
        now = self._clock()
        reset_at = math.floor(now / 60) * 60 + 60
        return self.policy.max_weight - int(used), reset_at

    def _error_from_response(self, resp: httpx.Response) -> ExchangeError:
        try:
            body = resp.json()
        except ValueError:
            return super()._error_from_response(resp)
        if not isinstance(body, dict) or "code" not in body:
            return super()._error_from_response(resp)

        code = int(body["code"])
        msg = body.get("msg", "")
        if code in _AUTH_ERROR_CODES:
            return AuthenticationError(f"Binance auth error [{code}]: {msg}", exchange=self.name)
        if code in _RATE_LIMIT_ERROR_CODES:
            return RateLimitError(
                f"Binance rate limit [{code}]: {msg}",
                retry_after=self._health.seconds_until_reset(),
                exchange=self.name,
                limit=self.policy.max_weight,
            )
        if resp.status_code in (418, 429):
            return super()._error_from_response(resp)
        return ExternalApiError(
            f"Binance API error [{code}]: {msg}",
            exchange=self.name,
            status_code=resp.status_code,
            body=resp.text[:500],
        )
