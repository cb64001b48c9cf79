"""Human-readable signal messages (Telegram HTML subset)."""

from html import escape

from signalbot.models.signal import Signal, SignalDirection

REASON_LABELS: dict[str, str] = {
    "price_at_resistance": "Price at short EMA resistance",
    "rsi_neutral": "RSI in neutral zone",
    "macd_bearish": "MACD below signal line",
    "volume_confirmation": "Volume confirmation",
    "bearish_candle": "Bearish candle",
    "below_medium_trend": "Price below medium EMA",
    "near_bb_upper": "Above Bollinger midline",
    "rsi_oversold": "RSI oversold",
    "macd_bullish": "MACD above signal line",
    "bullish_candle": "Bullish candle",
    "above_medium_trend": "Price above medium EMA",
    "near_bb_lower": "Below Bollinger midline",
    "bounce_from_support": "Bounce from lower Bollinger band",
}


def _price(value: float) -> str:
    if value >= 100:
        return f"{value:,.2f}"
    if value >= 1:
        return f"{value:.4f}"
    return f"{value:.8f}".rstrip("0")


def format_signal_message(signal: Signal) -> str:
    emoji = "🔴" if signal.direction is SignalDirection.SHORT else "🟢"
    lines = [
        f"{emoji} <b>{signal.direction.value} SIGNAL</b> - {escape(signal.pair)}",
        f"⏰ {signal.created_at:%H:%M} UTC | {signal.timeframe} | {signal.exchange.upper()}",
        "",
        f"💰 <b>Entry:</b> {_price(signal.entry)}",
        f"🛑 <b>Stop:</b> {_price(signal.stop_loss)} (-{signal.potential_loss():.2f}%)",
        "",
        "🎯 <b>Targets:</b>",
    ]
    for i, target in enumerate(signal.take_profits):
        lines.append(f"TP{i + 1}: {_price(target)} (+{signal.potential_profit(i):.2f}%)")

    lines += ["", "📊 <b>Analysis:</b>"]
    lines += [f"• {escape(REASON_LABELS.get(r, r))}" for r in signal.reasoning]
    lines += [
        "",
        f"⚖️ R/R 1:{signal.risk_reward():.1f} | Confidence {signal.confidence:.1f}/10 "
        f"({signal.strength()})",
        f"🔗 <code>{signal.id}</code>",
    ]
    return "\n".join(lines)
