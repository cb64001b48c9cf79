"""Bybit v5 REST adapter (linear perpetuals)."""

import hashlib
import hmac
from typing import Optional
from urllib.parse import urlencode

import httpx

from signalbot.exchange.base_adapter import BaseExchangeAdapter
from signalbot.exchange.errors import AuthenticationError, ExternalApiError, RateLimitError
from signalbot.exchange.models import Balance, Candle, MarketInfo, RateLimitPolicy, Ticker

_AUTH_RET_CODES = {10003, 10004, 10005}
_RATE_LIMIT_RET_CODES = {10006}
_RECV_WINDOW_MS = "5000"

_INTERVALS = {
    "1m": "1",
    "5m": "5",
    "15m": "15",
    "30m": "30",
    "1h": "60",
    "4h": "240",
    "1d": "D",
    "1w": "W",
}


class BybitAdapter(BaseExchangeAdapter):
    """Bybit unified-account adapter."""

    name = "bybit"
    base_url = "https://api.bybit.com"
    sandbox_url = "https://api-testnet.bybit.com"
    policy = RateLimitPolicy(max_weight=1000, requests_per_second=10)
    max_candle_history = 1000

    def _ping_path(self) -> str:
        return "/v5/market/time"

    # ── Market data ──────────────────────────────────────────────────────

    async def _fetch_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        payload = await self._request(
            "get",
            "/v5/market/kline",
            params={
                "category": "linear",
                "symbol": symbol,
                "interval": _INTERVALS[timeframe],
                "limit": limit,
            },
        )
        rows = payload.get("result", {}).get("list", [])
        # Bybit lists newest first: [start, open, high, low, close, volume, turnover]
        candles = [
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
        candles.sort(key=lambda c: c.timestamp)
        return candles

    async def _fetch_ticker(self, symbol: str) -> Ticker:
        payload = await self._request(
            "get",
            "/v5/market/tickers",
            params={"category": "linear", "symbol": symbol},
        )
        items = payload.get("result", {}).get("list", [])
        if not items:
            raise ExternalApiError(f"Bybit returned no ticker for {symbol}", exchange=self.name)
        t = items[0]
        last = float(t["lastPrice"])
        prev = float(t.get("prevPrice24h") or last)
        return Ticker(
            symbol=t.get("symbol", symbol),
            bid=float(t.get("bid1Price") or 0),
            ask=float(t.get("ask1Price") or 0),
            last=last,
            volume=float(t.get("volume24h") or 0),
            change=last - prev,
            percentage=float(t.get("price24hPcnt") or 0) * 100,
            timestamp=int(payload.get("time", 0)),
        )

    async def _fetch_markets(self) -> list[MarketInfo]:
        payload = await self._request(
            "get",
            "/v5/market/instruments-info",
            params={"category": "linear"},
        )
        markets: list[MarketInfo] = []
        for item in payload.get("result", {}).get("list", []):
            lot = item.get("lotSizeFilter", {})
            price = item.get("priceFilter", {})
            max_qty = lot.get("maxOrderQty")
            markets.append(
                MarketInfo(
                    symbol=item["symbol"],
                    base_asset=item.get("baseCoin", ""),
                    quote_asset=item.get("quoteCoin", ""),
                    min_order_size=float(lot.get("minOrderQty", 0)),
                    max_order_size=float(max_qty) if max_qty else None,
                    price_step=float(price.get("tickSize", 0)),
                    quantity_step=float(lot.get("qtyStep", 0)),
                    is_active=item.get("status") == "Trading",
                )
            )
        return markets

    async def _fetch_balance(self) -> list[Balance]:
        payload = await self._request(
            "get",
            "/v5/account/wallet-balance",
            params={"accountType": "UNIFIED"},
            signed=True,
        )
        accounts = payload.get("result", {}).get("list", [])
        balances: list[Balance] = []
        for account in accounts:
            for coin in account.get("coin", []):
                total = float(coin.get("walletBalance") or 0)
                locked = float(coin.get("locked") or 0)
                balances.append(
                    Balance(asset=coin["coin"], free=max(0.0, total - locked), locked=locked)
                )
        return balances

    # ── Transport hooks ──────────────────────────────────────────────────

    def _sign(self, params: dict) -> tuple[dict, dict]:
        timestamp = str(int(self._clock() * 1000))
        query = urlencode(params)
        payload = f"{timestamp}{self._config.api_key}{_RECV_WINDOW_MS}{query}"
        signature = hmac.new(
            self._config.api_secret.encode(),
            payload.encode(),
            hashlib.sha256,
        ).hexdigest()
        headers = {
            "X-BAPI-API-KEY": self._config.api_key,
            "X-BAPI-TIMESTAMP": timestamp,
            "X-BAPI-RECV-WINDOW": _RECV_WINDOW_MS,
            "X-BAPI-SIGN": signature,
        }
        return params, headers

    def _parse_rate_limit(self, headers: httpx.Headers) -> tuple[Optional[int], Optional[float]]:
        status = headers.get("X-Bapi-Limit-Status")
        if status is None:
            return None, None
        limit = headers.get("X-Bapi-Limit")
        remaining = int(status)
        if limit:
            # Per-endpoint budget, scaled onto the adapter-wide weight.
            remaining = round(int(status) / int(limit) * self.policy.max_weight)
        reset_ms = headers.get("X-Bapi-Limit-Reset-Timestamp")
        reset_at = int(reset_ms) / 1000 if reset_ms else None
        return remaining, reset_at

    def _check_payload(self, payload) -> None:
        if not isinstance(payload, dict):
            return
        code = int(payload.get("retCode", 0))
        if code == 0:
            return
        msg = payload.get("retMsg", "")
        if code in _AUTH_RET_CODES:
            raise AuthenticationError(f"Bybit auth error [{code}]: {msg}", exchange=self.name)
        if code in _RATE_LIMIT_RET_CODES:
            raise RateLimitError(
                f"Bybit rate limit [{code}]: {msg}",
                retry_after=self._health.seconds_until_reset(),
                exchange=self.name,
                limit=self.policy.max_weight,
            )
        raise ExternalApiError(f"Bybit API error [{code}]: {msg}", exchange=self.name)
