"""SignalBot — application configuration.

Loads .env variables into a typed config object.
Validates required variables on startup.
"""

import json
import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


logger = logging.getLogger("signalbot")

_REQUIRED_VARS = [
    "EXCHANGE_API_KEY",
    "EXCHANGE_API_SECRET",
]


@dataclass(frozen=True)
class TradingProfile:
    """Polling cadence for one trading mode."""

    timeframe: str
    data_points: int
    update_interval_seconds: int
    signal_cooldown_seconds: int


# scalping / intraday / swing / position
TRADING_PROFILES: dict[str, TradingProfile] = {
    "scalping": TradingProfile("5m", 200, 15, 5 * 60),
    "intraday": TradingProfile("15m", 100, 30, 10 * 60),
    "swing": TradingProfile("1h", 168, 300, 60 * 60),
    "position": TradingProfile("4h", 180, 900, 4 * 60 * 60),
}


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    exchange: str  # "binance" or "bybit"
    api_key: str
    api_secret: str
    sandbox: bool
    trading_mode: str
    watch_pairs: tuple[str, ...]
    min_signal_strength: int
    max_parallel_instruments: int
    request_timeout_seconds: float
    retry_count: int
    db_path: str
    log_level: str
    health_port: int
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    webhook_url: Optional[str] = None
    timeframe_override: Optional[str] = None

    @property
    def profile(self) -> TradingProfile:
        """Return the polling profile for the configured trading mode."""
        return TRADING_PROFILES[self.trading_mode]

    @property
    def timeframe(self) -> str:
        return self.timeframe_override or self.profile.timeframe

    @property
    def poll_interval_seconds(self) -> int:
        return self.profile.update_interval_seconds


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when a
    required variable is absent, or when ``TRADING_MODE`` is unknown.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    trading_mode = os.environ.get("TRADING_MODE", "intraday").lower()
    if trading_mode not in TRADING_PROFILES:
        raise ValueError(
            f"Unknown TRADING_MODE '{trading_mode}'. "
            f"Available: {', '.join(TRADING_PROFILES.keys())}"
        )

    pairs = tuple(
        p.strip().upper()
        for p in os.environ.get("WATCH_PAIRS", "BTC/USDT").split(",")
        if p.strip()
    )

    return Config(
        exchange=os.environ.get("EXCHANGE", "binance").lower(),
        api_key=os.environ["EXCHANGE_API_KEY"],
        api_secret=os.environ["EXCHANGE_API_SECRET"],
        sandbox=os.environ.get("EXCHANGE_SANDBOX", "0").lower() in ("1", "true", "yes"),
        trading_mode=trading_mode,
        watch_pairs=pairs,
        min_signal_strength=int(os.environ.get("MIN_SIGNAL_STRENGTH", "5")),
        max_parallel_instruments=int(os.environ.get("MAX_PARALLEL_INSTRUMENTS", "4")),
        request_timeout_seconds=float(os.environ.get("REQUEST_TIMEOUT_SECONDS", "10")),
        retry_count=int(os.environ.get("EXCHANGE_RETRY_COUNT", "3")),
        db_path=os.environ.get("DB_PATH", "data/signalbot.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=int(os.environ.get("HEALTH_PORT", "8080")),
        telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN") or None,
        telegram_chat_id=os.environ.get("TELEGRAM_CHAT_ID") or None,
        webhook_url=os.environ.get("WEBHOOK_URL") or None,
        timeframe_override=os.environ.get("TIMEFRAME") or None,
    )


# ── Instruments ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class InstrumentConfig:
    """One watched instrument as declared in ``signalbot.json``."""

    symbol: str
    exchange: str
    timeframe: str
    category: Optional[str] = None  # None = detect from symbol
    active: bool = True


def load_instruments(
    config: Config,
    path: Optional[pathlib.Path] = None,
) -> list[InstrumentConfig]:
    """Load the instrument list.

    Reads ``{"instruments": [...]}`` from *path* (default ``signalbot.json``
    in the working directory).  Falls back to ``WATCH_PAIRS`` from the
    environment when the file is absent or lists nothing.
    """
    if path is None:
        path = pathlib.Path("signalbot.json")

    if path.exists():
        data = json.loads(path.read_text(encoding="utf-8"))
        items = data.get("instruments", [])
        if items:
            instruments = [
                InstrumentConfig(
                    symbol=item["symbol"].upper(),
                    exchange=item.get("exchange", config.exchange).lower(),
                    timeframe=item.get("timeframe", config.timeframe),
                    category=item.get("category"),
                    active=item.get("active", True),
                )
                for item in items
            ]
            logger.info("Loaded %d instrument(s) from %s", len(instruments), path)
            return instruments

    return [
        InstrumentConfig(
            symbol=pair,
            exchange=config.exchange,
            timeframe=config.timeframe,
        )
        for pair in config.watch_pairs
    ]
