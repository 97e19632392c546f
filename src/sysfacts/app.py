"""sysfacts - one-shot host report."""

import argparse
import logging
import sys
import time

from pydantic import ValidationError

from sysfacts.config import Settings
from sysfacts.counters import to_unsigned
from sysfacts.models import ProcessRecord
from sysfacts.network import busiest_first, interface_rates
from sysfacts.processes import ProcessSort
from sysfacts.system import HostFacts, create_adapter


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_uptime(milliseconds: int) -> str:
    """Format a duration as ``[N days, ]HH:MM:SS``."""
    seconds_total = milliseconds // 1000
    days = seconds_total // 86400
    hours = (seconds_total % 86400) // 3600
    minutes = (seconds_total % 3600) // 60
    seconds = seconds_total % 60
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_process(proc: ProcessRecord) -> str:
    """Render one process as a table row."""
    return (
        f"{proc.pid:>7} {proc.user[:10]:<10} {proc.state.name[:1]} "
        f"{proc.thread_count:>4} {format_bytes(proc.resident_set_size)} "
        f"{format_uptime(proc.total_time_ms):>12} {(proc.command_line or proc.name)[:50]}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sysfacts", description="Print a snapshot of host facts.")
    parser.add_argument(
        "--sort",
        choices=[s.value for s in ProcessSort],
        default=ProcessSort.CPU.value,
        help="process ordering (default: cpu)",
    )
    parser.add_argument("--limit", type=int, default=10, help="processes to show, 0 for all")
    parser.add_argument("--pid", type=int, action="append", dest="pids", help="only these pids")
    parser.add_argument("--fast", action="store_true", help="skip slow per-process fields")
    parser.add_argument(
        "--interval",
        type=float,
        default=0.0,
        help="seconds between two network reads, to report rates (default: off)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the sysfacts command."""
    args = build_parser().parse_args(argv)
    try:
        settings = Settings.from_env()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    host = HostFacts(create_adapter(settings))
    identity = host.resolve_os_identity()
    print(f"OS: {identity.family} {identity.version}", end="")
    print(f" ({identity.code_name})" if identity.code_name else "", end="")
    print(f" build {identity.build_number}" if identity.build_number else "")
    print(
        f"Host: {host.manufacturer()} {host.bitness()}-bit, up {format_uptime(host.system_uptime() * 1000)}, "
        f"{host.process_count()} processes, {host.thread_count()} threads, "
        f"{host.open_file_descriptors()}/{host.max_file_descriptors()} files open"
        + (" (elevated)" if host.is_elevated() else "")
    )

    processes = host.snapshot_processes(
        args.pids,
        include_slow_fields=not args.fast,
        sort=ProcessSort(args.sort),
        limit=args.limit,
    )
    print(f"{'PID':>7} {'USER':<10} S {'THR':>4} {'RES':>6} {'CPU TIME':>12} COMMAND")
    for proc in processes:
        print(format_process(proc))

    previous = {nic.name: nic for nic in host.network_interfaces()}
    if args.interval > 0:
        time.sleep(args.interval)
        current = host.network_interfaces()
    else:
        current = list(previous.values())
    for nic in busiest_first(current):
        addresses = ", ".join(nic.ipv4 + nic.ipv6) or "-"
        line = f"NIC {nic.name}: {nic.mac} {addresses} rx={to_unsigned(nic.bytes_recv)}"
        line += f" tx={to_unsigned(nic.bytes_sent)}"
        if args.interval > 0 and nic.name in previous:
            rates = interface_rates(nic, previous[nic.name])
            line += f" ({format_bytes(int(rates['bytes_recv'])).strip()}/s in"
            line += f", {format_bytes(int(rates['bytes_sent'])).strip()}/s out)"
        print(line)
    for store in host.file_stores():
        print(
            f"FS {store.mount} ({store.fs_type}): "
            f"{format_bytes(store.usable_space).strip()} free of {format_bytes(store.total_space).strip()}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
