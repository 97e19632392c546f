"""Static platform facts shared by the resolvers."""

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass

from sysfacts import sources
from sysfacts.counters import estimate_boot_time_ms
from sysfacts.sources import RawSourceAdapter

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 4096
DEFAULT_CLOCK_TICKS = 100


def _positive_int(value, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@dataclass(slots=True, frozen=True)
class StaticFacts:
    """
    Facts that stay fixed for the lifetime of the process.

    Built once and passed by reference into the resolvers.
    """

    page_size: int = DEFAULT_PAGE_SIZE
    clock_ticks_per_second: int = DEFAULT_CLOCK_TICKS
    boot_time_ms: int = 0  # Estimate, only good to a few milliseconds
    own_pid: int = 0

    @classmethod
    def collect(
        cls,
        adapter: RawSourceAdapter,
        clock: Callable[[], float] = time.time,
    ) -> "StaticFacts":
        """Query an adapter for its static facts, with sane defaults."""
        page_size = _positive_int(adapter.get_static_fact(sources.PAGE_SIZE), DEFAULT_PAGE_SIZE)
        hz = _positive_int(adapter.get_static_fact(sources.CLOCK_TICKS), DEFAULT_CLOCK_TICKS)

        boot_time_ms = estimate_boot_time_ms(
            lambda: adapter.get_static_fact(sources.UPTIME_SECONDS), clock
        )
        if boot_time_ms is None:
            kernel_boot = adapter.get_static_fact(sources.KERNEL_BOOT_TIME)
            if kernel_boot:
                boot_time_ms = int(kernel_boot) * 1000
            else:
                logger.debug("No uptime or boot time from %s, using current time", adapter.name)
                boot_time_ms = int(clock() * 1000)

        facts = cls(
            page_size=page_size,
            clock_ticks_per_second=hz,
            boot_time_ms=boot_time_ms,
            own_pid=os.getpid(),
        )
        logger.debug("Static facts: %s", facts)
        return facts
