"""Instrument category templates and per-timeframe multipliers."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PairCategory(str, Enum):
    CRYPTO_MAJOR = "crypto_major"
    CRYPTO_ALT = "crypto_alt"
    DEFI = "defi"
    MEME = "meme"
    STABLECOIN = "stablecoin"
    TRADITIONAL = "traditional"


@dataclass(frozen=True)
class CategoryTemplate:
    """Risk and filter multipliers applied to every instrument of a category."""

    volatility_multiplier: float
    stop_loss_multiplier: float
    take_profit_multiplier: float
    volume_weight: float
    signal_strength_adjustment: int
    min_volume_24h: Optional[float] = None
    spread_tolerance: Optional[float] = None


CATEGORY_TEMPLATES: dict[PairCategory, CategoryTemplate] = {
    PairCategory.CRYPTO_MAJOR: CategoryTemplate(
        volatility_multiplier=1.0,
        stop_loss_multiplier=1.0,
        take_profit_multiplier=1.0,
        volume_weight=1.2,
        signal_strength_adjustment=0,
        min_volume_24h=5_000_000,
        spread_tolerance=0.0005,
    ),
    PairCategory.CRYPTO_ALT: CategoryTemplate(
        volatility_multiplier=1.3,
        stop_loss_multiplier=1.2,
        take_profit_multiplier=1.1,
        volume_weight=1.0,
        signal_strength_adjustment=1,
        min_volume_24h=1_000_000,
        spread_tolerance=0.002,
    ),
    PairCategory.DEFI: CategoryTemplate(
        volatility_multiplier=1.5,
        stop_loss_multiplier=1.3,
        take_profit_multiplier=1.2,
        volume_weight=0.9,
        signal_strength_adjustment=1,
        min_volume_24h=500_000,
        spread_tolerance=0.003,
    ),
    PairCategory.MEME: CategoryTemplate(
        volatility_multiplier=2.0,
        stop_loss_multiplier=1.5,
        take_profit_multiplier=1.3,
        volume_weight=2.0,
        signal_strength_adjustment=2,
        min_volume_24h=2_000_000,
        spread_tolerance=0.005,
    ),
    PairCategory.STABLECOIN: CategoryTemplate(
        volatility_multiplier=0.3,
        stop_loss_multiplier=0.5,
        take_profit_multiplier=0.7,
        volume_weight=1.5,
        signal_strength_adjustment=-1,
        min_volume_24h=10_000_000,
        spread_tolerance=0.0001,
    ),
    PairCategory.TRADITIONAL: CategoryTemplate(
        volatility_multiplier=0.8,
        stop_loss_multiplier=0.9,
        take_profit_multiplier=0.9,
        volume_weight=1.1,
        signal_strength_adjustment=0,
    ),
}


# ── Timeframe multipliers ────────────────────────────────────────────────

# Added to the minimum signal strength.
TIMEFRAME_STRENGTH_ADJUSTMENT: dict[str, int] = {
    "1m": 1,
    "5m": 1,
    "15m": 1,
    "1d": -1,
    "3d": -1,
    "1w": -1,
}

TIMEFRAME_COOLDOWN_MULTIPLIER: dict[str, float] = {
    "1m": 0.5,
    "5m": 0.7,
    "15m": 1.0,
    "30m": 1.2,
    "1h": 1.0,
    "4h": 2.0,
    "1d": 6.0,
}

TIMEFRAME_DATA_POINTS: dict[str, int] = {
    "1m": 200,
    "5m": 150,
    "15m": 100,
    "1h": 100,
    "4h": 60,
}


# ── Category detection ───────────────────────────────────────────────────

_STABLECOINS = {"USDT", "USDC", "BUSD", "DAI", "TUSD", "FRAX"}
_MEME = {"DOGE", "SHIB", "PEPE", "FLOKI", "BONK", "WIF", "WOJAK"}
_DEFI = {"UNI", "SUSHI", "AAVE", "COMP", "MKR", "SNX", "CRV", "YFI", "LINK"}
_MAJOR = {"BTC", "ETH", "BNB", "SOL", "ADA", "XRP", "DOT", "AVAX", "MATIC"}
_TRADITIONAL = {"GOLD", "SILVER", "OIL", "XAU", "XAG"}


def base_asset(symbol: str) -> str:
    """Return the base asset of ``"BTC/USDT"``, ``"BTC-USDT"`` or ``"BTCUSDT"``."""
    symbol = symbol.upper()
    for sep in ("/", "-", "_", ":"):
        if sep in symbol:
            return symbol.split(sep, 1)[0]
    for quote in ("USDT", "USDC", "BUSD", "USD", "BTC", "ETH"):
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[: -len(quote)]
    return symbol


def detect_category(symbol: str) -> PairCategory:
    """Classify an instrument by its base asset.  Unknown assets are alts."""
    base = base_asset(symbol)
    if base in _STABLECOINS:
        return PairCategory.STABLECOIN
    if base in _MEME:
        return PairCategory.MEME
    if base in _DEFI:
        return PairCategory.DEFI
    if base in _MAJOR:
        return PairCategory.CRYPTO_MAJOR
    if base in _TRADITIONAL:
        return PairCategory.TRADITIONAL
    return PairCategory.CRYPTO_ALT
