"""Exchange registry — maps exchange names to adapter classes."""

from signalbot.config import Config
from signalbot.exchange.base_adapter import BaseExchangeAdapter
from signalbot.exchange.binance_adapter import BinanceAdapter
from signalbot.exchange.bybit_adapter import BybitAdapter


EXCHANGE_REGISTRY: dict[str, type] = {
    "binance": BinanceAdapter,
    "bybit": BybitAdapter,
}


def get_adapter(name: str, config: Config) -> BaseExchangeAdapter:
    """Look up and instantiate an exchange adapter by registry key.

    Raises ``KeyError`` if the exchange name is not registered.
    """
    if name not in EXCHANGE_REGISTRY:
        raise KeyError(
            f"Unknown exchange '{name}'. "
            f"Available: {', '.join(EXCHANGE_REGISTRY.keys())}"
        )
    return EXCHANGE_REGISTRY[name](config)
