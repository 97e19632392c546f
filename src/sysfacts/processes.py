"""
Process snapshot reconciliation.

A snapshot is built in two passes. The bulk pass enumerates every process
in one call and yields cheap fields (name, parent, counters). The detail
pass then asks for the expensive per-process fields (path, owner, command
line, open files) for each pid the bulk pass found. Processes may exit
between the two passes; such a pid keeps its bulk record with the detail
fields left at their defaults.
"""

import logging
import os
import time
from collections.abc import Callable, Iterable
from enum import Enum
from typing import Any

from sysfacts.counters import clamp_start_time, ticks_to_ms
from sysfacts.errors import ProcessAccessDenied, ProcessGone
from sysfacts.facts import StaticFacts
from sysfacts.models import ProcessRecord, ProcessState
from sysfacts.sources import ProcessEntry, RawSourceAdapter

logger = logging.getLogger(__name__)


class ProcessSort(Enum):
    """Orderings for a process list."""

    PID = "pid"
    CPU = "cpu"
    MEMORY = "memory"
    NONE = "none"


# Single character codes from /proc/[pid]/stat and ps
STATE_BY_CODE = {
    "R": ProcessState.RUNNING,
    "S": ProcessState.SLEEPING,
    "D": ProcessState.WAITING,
    "Z": ProcessState.ZOMBIE,
    "T": ProcessState.STOPPED,
}

# psutil status strings
STATE_BY_NAME = {
    "running": ProcessState.RUNNING,
    "sleeping": ProcessState.SLEEPING,
    "disk-sleep": ProcessState.WAITING,
    "waiting": ProcessState.WAITING,
    "locked": ProcessState.WAITING,
    "zombie": ProcessState.ZOMBIE,
    "stopped": ProcessState.STOPPED,
    "tracing-stop": ProcessState.STOPPED,
}

# BSD ki_stat values
STATE_BY_NUMBER = {
    2: ProcessState.RUNNING,  # SRUN
    3: ProcessState.SLEEPING,  # SSLEEP
    4: ProcessState.STOPPED,  # SSTOP
    5: ProcessState.ZOMBIE,  # SZOMB
    6: ProcessState.WAITING,  # SWAIT
    7: ProcessState.WAITING,  # SLOCK
}


def map_state(code: Any) -> ProcessState:
    """Map a platform status code to a ProcessState; unknown codes map to OTHER."""
    if isinstance(code, ProcessState):
        return code
    if isinstance(code, int) and not isinstance(code, bool):
        return STATE_BY_NUMBER.get(code, ProcessState.OTHER)
    if isinstance(code, str):
        code = code.strip()
        if code.isdigit():
            return STATE_BY_NUMBER.get(int(code), ProcessState.OTHER)
        if len(code) == 1:
            return STATE_BY_CODE.get(code, ProcessState.OTHER)
        return STATE_BY_NAME.get(code.lower(), ProcessState.OTHER)
    return ProcessState.OTHER


def _int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def sort_processes(
    records: Iterable[ProcessRecord],
    sort: ProcessSort = ProcessSort.NONE,
    limit: int = 0,
) -> list[ProcessRecord]:
    """
    Order and truncate a list of process records.

    CPU and MEMORY sort descending, PID ascending. A limit of 0 or less
    keeps every record.
    """
    result = list(records)
    if sort is ProcessSort.PID:
        result.sort(key=lambda p: p.pid)
    elif sort is ProcessSort.CPU:
        result.sort(key=lambda p: p.total_time_ms, reverse=True)
    elif sort is ProcessSort.MEMORY:
        result.sort(key=lambda p: p.resident_set_size, reverse=True)
    if limit > 0:
        result = result[:limit]
    return result


class ProcessSnapshotReconciler:
    """Merge bulk and per-process sources into canonical process records."""

    def __init__(
        self,
        adapter: RawSourceAdapter,
        facts: StaticFacts,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the reconciler.

        Args:
            adapter: Source of raw process data.
            facts: Static facts used for unit conversion.
            clock: Wall clock returning epoch seconds.
        """
        self._adapter = adapter
        self._facts = facts
        self._clock = clock

    def snapshot(
        self,
        filter_pids: Iterable[int] | None = None,
        include_slow_fields: bool = True,
    ) -> list[ProcessRecord]:
        """
        Take a snapshot of running processes. Never raises.

        Args:
            filter_pids: Restrict the snapshot to these pids.
            include_slow_fields: Also collect fields that are expensive per
                process (open files, executable bitness).

        Returns:
            Records ordered by pid; empty if no process could be enumerated.
        """
        wanted = frozenset(filter_pids) if filter_pids is not None else None
        if wanted is not None and not wanted:
            return []
        bulk = self._bulk_pass(wanted)
        now_ms = int(self._clock() * 1000)

        if bulk:
            pids = sorted(bulk)
        elif wanted:
            logger.debug("No bulk data, querying %d pids directly", len(wanted))
            pids = sorted(wanted)
        else:
            logger.warning("Process enumeration returned nothing")
            return []

        records = []
        for pid in pids:
            detail = self._detail_pass(pid, include_slow_fields)
            if detail is None and pid not in bulk:
                continue
            # Bulk values win; detail fills what the bulk pass lacked
            fields = dict(detail or {})
            fields.update(
                (key, value) for key, value in bulk.get(pid, {}).items() if value not in (None, "")
            )
            records.append(self._to_record(pid, fields, now_ms))
        return records

    def process(self, pid: int, include_slow_fields: bool = True) -> ProcessRecord | None:
        """Snapshot a single process, or None if it doesn't exist."""
        records = self.snapshot({pid}, include_slow_fields)
        return records[0] if records else None

    def children(self, parent_pid: int, include_slow_fields: bool = True) -> list[ProcessRecord]:
        """Snapshot the direct children of a process."""
        child_pids = {
            pid for pid, entry in self._bulk_pass(None).items()
            if _int(entry.get("ppid"), -1) == parent_pid
        }
        if not child_pids:
            return []
        return self.snapshot(child_pids, include_slow_fields)

    def _query(self, query, wanted: frozenset[int] | None) -> list[ProcessEntry]:
        try:
            return query(wanted) or []
        except Exception as e:
            logger.warning("%s failed on %s: %s", query.__name__, self._adapter.name, e)
            return []

    def _bulk_pass(self, wanted: frozenset[int] | None) -> dict[int, ProcessEntry]:
        entries = self._query(self._adapter.query_bulk_process_counters, wanted)
        if not entries:
            logger.debug("Bulk counters empty on %s, using process list", self._adapter.name)
            entries = self._query(self._adapter.query_process_list, wanted)

        by_pid: dict[int, ProcessEntry] = {}
        for entry in entries:
            pid = _int(entry.get("pid"), -1)
            if pid < 0:
                logger.debug("Skipping bulk entry without a pid: %r", entry)
                continue
            # Sources that can't pre-filter are filtered here
            if wanted is not None and pid not in wanted:
                continue
            by_pid[pid] = entry
        return by_pid

    def _detail_pass(self, pid: int, slow: bool) -> ProcessEntry | None:
        """Fetch detail for one pid; None if the process is gone."""
        try:
            return self._adapter.query_process_detail(pid, slow=slow)
        except ProcessGone:
            logger.debug("Process %d exited before the detail pass", pid)
            return None
        except ProcessAccessDenied:
            logger.debug("Access denied reading detail of process %d", pid)
            return {}
        except Exception as e:
            logger.warning("Detail lookup failed for process %d: %s", pid, e)
            return {}

    def _to_record(self, pid: int, fields: ProcessEntry, now_ms: int) -> ProcessRecord:
        facts = self._facts
        hz = facts.clock_ticks_per_second

        if "start_time_ms" in fields:
            start_ms = _int(fields["start_time_ms"])
        elif "start_ticks" in fields:
            start_ms = facts.boot_time_ms + ticks_to_ms(_int(fields["start_ticks"]), hz)
        else:
            start_ms = 0
        # The boot time estimate can be a few ms off, which matters only for
        # processes started right at boot
        start_ms = clamp_start_time(start_ms, now_ms)

        if "user_time_ms" in fields:
            user_ms = _int(fields["user_time_ms"])
        else:
            user_ms = ticks_to_ms(_int(fields.get("user_ticks")), hz)
        if "kernel_time_ms" in fields:
            kernel_ms = _int(fields["kernel_time_ms"])
        else:
            kernel_ms = ticks_to_ms(_int(fields.get("kernel_ticks")), hz)

        if "rss_bytes" in fields:
            rss = _int(fields["rss_bytes"])
        else:
            rss = _int(fields.get("rss_pages")) * facts.page_size

        cwd = _str(fields.get("cwd"))
        if not cwd and pid == facts.own_pid:
            try:
                cwd = os.getcwd()
            except OSError:
                cwd = ""

        return ProcessRecord(
            pid=pid,
            parent_pid=_int(fields.get("ppid")),
            name=_str(fields.get("name")),
            path=_str(fields.get("path")),
            command_line=_str(fields.get("command_line")),
            user=_str(fields.get("user")),
            user_id=_str(fields.get("user_id")),
            group=_str(fields.get("group")),
            group_id=_str(fields.get("group_id")),
            state=map_state(fields.get("state")),
            priority=_int(fields.get("priority")),
            thread_count=_int(fields.get("thread_count")),
            virtual_size=_int(fields.get("virtual_size")),
            resident_set_size=rss,
            bytes_read=_int(fields.get("bytes_read")),
            bytes_written=_int(fields.get("bytes_written")),
            start_time_ms=start_ms,
            up_time_ms=max(0, now_ms - start_ms),
            user_time_ms=user_ms,
            kernel_time_ms=kernel_ms,
            open_files=_int(fields.get("open_files")),
            bitness=_int(fields.get("bitness")),
            cwd=cwd,
        )
