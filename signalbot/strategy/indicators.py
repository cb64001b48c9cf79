"""Technical indicators — EMA, RSI, MACD, Bollinger Bands. Pure functions, no I/O.

Every function takes a plain series of floats (oldest-first).  When the
series is too short for the requested period the result is empty rather
than an exception; callers treat emptiness as "not enough data yet".
"""

import math


def average(values: list[float]) -> float:
    """Arithmetic mean, ``0.0`` for an empty series."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def calculate_ema(data: list[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    Uses the standard EMA formula:
        ``EMA_today = price × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    The series is seeded with ``data[0]`` so the output has the same
    length as the input.  The first value is the raw seed, not a smoothed
    average.

    Returns ``[]`` if fewer than *period* values are provided.
    """
    if period <= 0 or len(data) < period:
        return []

    k = 2.0 / (period + 1)
    ema: list[float] = [data[0]]
    for price in data[1:]:
        ema.append(price * k + ema[-1] * (1 - k))
    return ema


# ── RSI ──────────────────────────────────────────────────────────────────


def _rsi_from_avgs(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        # Flat series has no direction; pure gains saturate at 100.
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_rsi(data: list[float], period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = data[i] - data[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RS = avg_gain / avg_loss
        6. RSI = 100 - 100 / (1 + RS)

    Requires at least ``period + 1`` values.  Returns one RSI value per
    value after the seed window, so ``len(result) == len(data) - period``.
    """
    if period <= 0 or len(data) < period + 1:
        return []

    deltas = [data[i] - data[i - 1] for i in range(1, len(data))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    rsi: list[float] = [_rsi_from_avgs(avg_gain, avg_loss)]
    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        rsi.append(_rsi_from_avgs(avg_gain, avg_loss))

    return rsi


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    data: list[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate MACD line, signal line and histogram.

    ``macd_line = EMA(fast) - EMA(slow)``, ``signal_line = EMA(macd_line,
    signal)``, ``histogram = macd_line - signal_line``.  When the signal
    line is shorter than the MACD line the missing entries count as ``0``
    in the histogram.

    Returns three empty lists if there is not enough data for the slow EMA.
    """
    ema_fast = calculate_ema(data, fast)
    ema_slow = calculate_ema(data, slow)
    if not ema_fast or not ema_slow:
        return [], [], []

    macd_line = [f - s for f, s in zip(ema_fast, ema_slow)]
    signal_line = calculate_ema(macd_line, signal)
    histogram = [
        m - (signal_line[i] if i < len(signal_line) else 0.0)
        for i, m in enumerate(macd_line)
    ]
    return macd_line, signal_line, histogram


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    data: list[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate Bollinger Bands over trailing windows.

    For each window of *period* values the middle band is the mean and the
    outer bands are ``mean ± std_dev × σ`` with the population standard
    deviation.

    Returns ``(upper, middle, lower)``, each of length
    ``len(data) - period + 1``, or three empty lists on insufficient data.
    """
    if period <= 0 or len(data) < period:
        return [], [], []

    upper: list[float] = []
    middle: list[float] = []
    lower: list[float] = []

    for i in range(period - 1, len(data)):
        window = data[i - period + 1 : i + 1]
        mean = sum(window) / period
        variance = sum((x - mean) ** 2 for x in window) / period
        sigma = math.sqrt(variance)
        middle.append(mean)
        upper.append(mean + std_dev * sigma)
        lower.append(mean - std_dev * sigma)

    return upper, middle, lower
