"""Counter normalization helpers.

Raw OS counters are unsigned 64-bit values. They are stored here in a
signed 64-bit container so they fit the same representation as every other
integer field, and all arithmetic goes through the unsigned view so values
above ``2**63 - 1`` never turn into negative deltas.
"""

import time
from collections.abc import Callable

from sysfacts.models import CounterSample

UINT64_MASK = 0xFFFF_FFFF_FFFF_FFFF
INT64_MAX = 0x7FFF_FFFF_FFFF_FFFF


def to_signed(raw: int) -> int:
    """Store an unsigned 64-bit value in a signed 64-bit container."""
    raw &= UINT64_MASK
    return raw - (1 << 64) if raw > INT64_MAX else raw


def to_unsigned(value: int) -> int:
    """Recover the unsigned interpretation of a signed container."""
    return value & UINT64_MASK


def unsigned_delta(newer: int, older: int) -> int:
    """Difference between two counter reads, tolerating one wraparound."""
    return (to_unsigned(newer) - to_unsigned(older)) & UINT64_MASK


def unsigned_compare(a: int, b: int) -> int:
    """Compare two counters as unsigned values; returns -1, 0 or 1."""
    ua, ub = to_unsigned(a), to_unsigned(b)
    return (ua > ub) - (ua < ub)


def sample(raw: int, timestamp_ms: int | None = None) -> CounterSample:
    """Wrap a raw counter value into a CounterSample."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return CounterSample(raw_value=to_signed(raw), timestamp_ms=timestamp_ms)


def rate_per_second(current: CounterSample, previous: CounterSample) -> float:
    """Per-second rate between two samples of the same counter."""
    elapsed_ms = current.timestamp_ms - previous.timestamp_ms
    if elapsed_ms <= 0:
        return 0.0
    return unsigned_delta(current.raw_value, previous.raw_value) * 1000.0 / elapsed_ms


def estimate_boot_time_ms(
    read_uptime: Callable[[], float | None],
    clock: Callable[[], float] = time.time,
) -> int | None:
    """
    Estimate the boot time in epoch milliseconds.

    Uptime is only reported in hundredths of a second, so it is read twice
    around a single wall-clock read and the two values are averaged. The
    result is within a few milliseconds of the real boot time. Returns None
    if uptime cannot be read.
    """
    first = read_uptime()
    now_ms = clock() * 1000.0
    second = read_uptime()
    if first is None or second is None:
        return None
    # (first + second) / 2 seconds, expressed in milliseconds
    return int(now_ms - 500.0 * (first + second) + 0.5)


def clamp_start_time(start_ms: int, now_ms: int) -> int:
    """Keep a derived start time strictly before ``now_ms``."""
    return now_ms - 1 if start_ms >= now_ms else start_ms


def ticks_to_ms(ticks: int, ticks_per_second: int) -> int:
    """Convert clock ticks to milliseconds."""
    if ticks_per_second <= 0:
        return 0
    return ticks * 1000 // ticks_per_second
