"""Network interface statistics."""

import functools
import logging
import socket
import time
from collections.abc import Callable, Iterable

import psutil

from sysfacts.counters import rate_per_second, sample, to_signed, unsigned_compare
from sysfacts.models import NetworkInterface

logger = logging.getLogger(__name__)

# Cumulative counters of NetworkInterface
COUNTER_FIELDS = (
    "bytes_recv",
    "bytes_sent",
    "packets_recv",
    "packets_sent",
    "in_errors",
    "out_errors",
)


def _format_mac(address: str) -> str:
    return address.replace("-", ":").lower()


def collect_network_interfaces(
    include_loopback: bool = False,
    clock: Callable[[], float] = time.time,
) -> list[NetworkInterface]:
    """
    Collect statistics for each network interface.

    Counters are unsigned on every platform and are stored through
    ``to_signed`` so that values past ``2**63`` keep their bit pattern.
    """
    try:
        io_counters = psutil.net_io_counters(pernic=True)
        addresses = psutil.net_if_addrs()
        stats = psutil.net_if_stats()
    except (psutil.Error, OSError) as e:
        logger.warning("Failed to query network interfaces: %s", e)
        return []

    timestamp_ms = int(clock() * 1000)
    interfaces = []
    for name in sorted(set(addresses) | set(io_counters)):
        mac = "Unknown"
        ipv4: list[str] = []
        ipv6: list[str] = []
        for addr in addresses.get(name, []):
            if addr.family == psutil.AF_LINK and addr.address:
                mac = _format_mac(addr.address)
            elif addr.family == socket.AF_INET:
                ipv4.append(addr.address)
            elif addr.family == socket.AF_INET6:
                ipv6.append(addr.address.split("%")[0])

        if not include_loopback and (
            name == "lo" or any(ip.startswith("127.") for ip in ipv4) or "::1" in ipv6
        ):
            continue

        nic_stats = stats.get(name)
        io = io_counters.get(name)
        interfaces.append(
            NetworkInterface(
                name=name,
                display_name=name,
                mtu=nic_stats.mtu if nic_stats else 0,
                mac=mac,
                ipv4=tuple(ipv4),
                ipv6=tuple(ipv6),
                bytes_recv=to_signed(io.bytes_recv) if io else 0,
                bytes_sent=to_signed(io.bytes_sent) if io else 0,
                packets_recv=to_signed(io.packets_recv) if io else 0,
                packets_sent=to_signed(io.packets_sent) if io else 0,
                in_errors=to_signed(io.errin) if io else 0,
                out_errors=to_signed(io.errout) if io else 0,
                # psutil reports megabits per second
                speed=to_signed(nic_stats.speed * 1_000_000) if nic_stats else 0,
                timestamp_ms=timestamp_ms,
            )
        )
    return interfaces


def interface_rates(current: NetworkInterface, previous: NetworkInterface) -> dict[str, float]:
    """
    Per-second rate of each counter between two snapshots of an interface.

    Deltas use the unsigned view, so a counter crossing ``2**63`` between
    the snapshots still yields a positive rate. Snapshots taken at the same
    instant give rates of 0.
    """
    if current.name != previous.name:
        raise ValueError(f"Can't compare {current.name} with {previous.name}")
    return {
        name: rate_per_second(
            sample(getattr(current, name), current.timestamp_ms),
            sample(getattr(previous, name), previous.timestamp_ms),
        )
        for name in COUNTER_FIELDS
    }


def busiest_first(interfaces: Iterable[NetworkInterface]) -> list[NetworkInterface]:
    """Order interfaces by bytes received, highest unsigned count first."""
    return sorted(
        interfaces,
        key=functools.cmp_to_key(lambda a, b: unsigned_compare(b.bytes_recv, a.bytes_recv)),
    )
