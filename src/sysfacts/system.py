"""Entry points for collecting host facts."""

import functools
import logging
import os
import platform
import sys
import time
from collections.abc import Callable, Iterable

from pydantic import ValidationError

from sysfacts import sources
from sysfacts.config import Settings
from sysfacts.facts import StaticFacts
from sysfacts.filestores import collect_file_stores
from sysfacts.linux import LinuxSourceAdapter
from sysfacts.models import FileStore, NetworkInterface, OSIdentity, ProcessRecord
from sysfacts.network import collect_network_interfaces
from sysfacts.osidentity import LINUX_STRATEGIES, LINUX_SUPPLEMENTS, PLATFORM_STRATEGIES, OSIdentityResolver
from sysfacts.processes import ProcessSnapshotReconciler, ProcessSort, sort_processes
from sysfacts.psutil_source import PsutilSourceAdapter
from sysfacts.sources import RawSourceAdapter

logger = logging.getLogger(__name__)

# platform.system() -> vendor of the operating system
MANUFACTURER_BY_SYSTEM = {
    "Windows": "Microsoft",
    "Darwin": "Apple",
    "FreeBSD": "Unix/BSD",
    "OpenBSD": "Unix/BSD",
    "NetBSD": "Unix/BSD",
    "SunOS": "Oracle",
    "AIX": "IBM",
}


def create_adapter(settings: Settings | None = None) -> RawSourceAdapter:
    """Pick the source adapter for this host."""
    settings = settings or Settings()
    backend = settings.backend
    if backend == "auto":
        backend = "linux" if platform.system() == "Linux" else "psutil"
    if backend == "linux":
        return LinuxSourceAdapter(settings)
    return PsutilSourceAdapter(settings)


def _runtime_bitness() -> int:
    """Pointer width of the running interpreter."""
    return 64 if sys.maxsize > 2**32 else 32


def _count(value) -> int:
    return int(value) if value is not None else 0


class HostFacts:
    """
    Read-only facts about the local host.

    The OS identity is resolved once on first access and reused; process
    snapshots and counts are taken fresh on every call.
    """

    def __init__(
        self,
        adapter: RawSourceAdapter | None = None,
        facts: StaticFacts | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._adapter = adapter or create_adapter()
        self._facts = facts or StaticFacts.collect(self._adapter, clock)
        self._clock = clock
        self._identity: OSIdentity | None = None

    @property
    def adapter(self) -> RawSourceAdapter:
        return self._adapter

    @property
    def facts(self) -> StaticFacts:
        return self._facts

    def _is_linux(self) -> bool:
        # Any adapter can read the release files on a Linux host
        return isinstance(self._adapter, LinuxSourceAdapter) or platform.system() == "Linux"

    def resolve_os_identity(self) -> OSIdentity:
        """Return the OS identity, resolving it on first call."""
        if self._identity is None:
            if self._is_linux():
                resolver = OSIdentityResolver(self._adapter, LINUX_STRATEGIES, LINUX_SUPPLEMENTS)
            else:
                resolver = OSIdentityResolver(self._adapter, PLATFORM_STRATEGIES, ())
            self._identity = resolver.resolve()
        return self._identity

    def manufacturer(self) -> str:
        """Vendor of the operating system, e.g. ``GNU/Linux`` or ``Microsoft``."""
        if self._is_linux():
            return "GNU/Linux"
        system = platform.system()
        return MANUFACTURER_BY_SYSTEM.get(system, system)

    def bitness(self) -> int:
        """
        Bitness of the operating system, 32 or 64.

        A 64-bit interpreter implies a 64-bit OS. A 32-bit one may still run
        on a 64-bit OS, which shows in the machine name (``x86_64``) or, on
        Windows, in the presence of ``ProgramFiles(x86)``.
        """
        runtime = _runtime_bitness()
        if runtime >= 64:
            return runtime
        if "ProgramFiles(x86)" in os.environ:
            return 64
        machine = self._adapter.run_command(["uname", "-m"])
        machine_name = machine[0] if machine else platform.machine()
        return 64 if "64" in machine_name else runtime

    def is_elevated(self) -> bool:
        """Whether this process runs with root or administrator rights."""
        return bool(self._adapter.get_static_fact(sources.ELEVATED))

    def process_count(self) -> int:
        """Number of running processes; 0 if unknown."""
        return _count(self._adapter.get_static_fact(sources.PROCESS_COUNT))

    def thread_count(self) -> int:
        """Number of threads across all processes; 0 if unknown."""
        return _count(self._adapter.get_static_fact(sources.THREAD_COUNT))

    def open_file_descriptors(self) -> int:
        """System-wide count of open files (handles on Windows); 0 if unknown."""
        return _count(self._adapter.get_static_fact(sources.OPEN_FILE_DESCRIPTORS))

    def max_file_descriptors(self) -> int:
        """System-wide limit on open files (handles on Windows); 0 if unknown."""
        return _count(self._adapter.get_static_fact(sources.MAX_FILE_DESCRIPTORS))

    def system_uptime(self) -> int:
        """Seconds since boot."""
        uptime = self._adapter.get_static_fact(sources.UPTIME_SECONDS)
        if uptime is not None:
            return int(uptime)
        return max(0, int(self._clock()) - self.system_boot_time())

    def system_boot_time(self) -> int:
        """Boot time in epoch seconds."""
        boot_time = self._adapter.get_static_fact(sources.KERNEL_BOOT_TIME)
        if boot_time:
            return int(boot_time)
        uptime = self._adapter.get_static_fact(sources.UPTIME_SECONDS)
        if uptime is not None:
            return int(self._clock() - uptime)
        logger.debug("No boot time from %s, using the startup estimate", self._adapter.name)
        return self._facts.boot_time_ms // 1000

    def snapshot_processes(
        self,
        filter_pids: Iterable[int] | None = None,
        include_slow_fields: bool = True,
        sort: ProcessSort = ProcessSort.NONE,
        limit: int = 0,
    ) -> list[ProcessRecord]:
        """Take a process snapshot, optionally sorted and truncated."""
        reconciler = ProcessSnapshotReconciler(self._adapter, self._facts, self._clock)
        records = reconciler.snapshot(filter_pids, include_slow_fields)
        return sort_processes(records, sort, limit)

    def child_processes(
        self,
        parent_pid: int,
        sort: ProcessSort = ProcessSort.NONE,
        limit: int = 0,
    ) -> list[ProcessRecord]:
        """Snapshot the direct children of a process."""
        reconciler = ProcessSnapshotReconciler(self._adapter, self._facts, self._clock)
        return sort_processes(reconciler.children(parent_pid), sort, limit)

    def network_interfaces(self, include_loopback: bool = False) -> list[NetworkInterface]:
        """Statistics of each network interface, timestamped with this host's clock."""
        return collect_network_interfaces(include_loopback, self._clock)

    def file_stores(self, local_only: bool = True) -> list[FileStore]:
        """Mounted file systems; only physical devices when ``local_only``."""
        return collect_file_stores(local_only)


@functools.lru_cache(maxsize=1)
def default_host() -> HostFacts:
    """Host facts for this process, built once from the environment."""
    try:
        settings = Settings.from_env()
    except ValidationError as e:
        logger.warning("Ignoring invalid SYSFACTS_* settings: %s", e)
        settings = Settings()
    return HostFacts(create_adapter(settings))


def resolve_os_identity() -> OSIdentity:
    """OS identity of this host."""
    return default_host().resolve_os_identity()


def snapshot_processes(
    filter_pids: Iterable[int] | None = None,
    include_slow_fields: bool = True,
) -> list[ProcessRecord]:
    """Process snapshot of this host."""
    return default_host().snapshot_processes(filter_pids, include_slow_fields)
