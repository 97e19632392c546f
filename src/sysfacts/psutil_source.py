"""Cross-platform source adapter built on psutil."""

import logging
import os
import subprocess
import time
from collections.abc import Iterable, Sequence
from typing import Any

import psutil

from sysfacts import sources
from sysfacts.accounts import group_name, is_elevated
from sysfacts.config import Settings
from sysfacts.errors import ProcessAccessDenied, ProcessGone
from sysfacts.executables import executable_bitness
from sysfacts.sources import ProcessEntry, RawSourceAdapter

logger = logging.getLogger(__name__)

# Attributes wanted for every process in the bulk pass; each platform's
# psutil.Process offers a subset of them
BULK_ATTRS = [
    "pid",
    "ppid",
    "name",
    "status",
    "nice",
    "num_threads",
    "create_time",
    "cpu_times",
    "memory_info",
    "io_counters",
]

# Kernel priority of a task with nice 0
LINUX_PRIORITY_BASE = 20

# Windows priority class -> base priority
WINDOWS_BASE_PRIORITY = {
    0x40: 4,  # IDLE_PRIORITY_CLASS
    0x4000: 6,  # BELOW_NORMAL_PRIORITY_CLASS
    0x20: 8,  # NORMAL_PRIORITY_CLASS
    0x8000: 10,  # ABOVE_NORMAL_PRIORITY_CLASS
    0x80: 13,  # HIGH_PRIORITY_CLASS
    0x100: 24,  # REALTIME_PRIORITY_CLASS
}

# Handle limits of 32-bit and 64-bit Windows
MAX_WINDOWS_HANDLES_32 = 16_777_216 - 32_768
MAX_WINDOWS_HANDLES_64 = 16_777_216 - 65_536


def bulk_attrs() -> list[str]:
    """The bulk attributes this platform's psutil.Process supports."""
    return [name for name in BULK_ATTRS if hasattr(psutil.Process, name)]


def priority_from_nice(nice: int | None) -> int:
    """
    Convert psutil's ``nice()`` into the priority the platform reports.

    On POSIX that is the kernel priority shown in /proc/[pid]/stat; on
    Windows ``nice()`` is a priority class, mapped to its base priority.
    """
    if nice is None:
        return 0
    if psutil.WINDOWS:
        return WINDOWS_BASE_PRIORITY.get(nice, 0)
    return LINUX_PRIORITY_BASE + nice


def _bulk_entry(info: dict[str, Any]) -> ProcessEntry:
    """Convert psutil's ``proc.info`` into a bulk entry with native units."""
    entry: ProcessEntry = {
        "pid": info.get("pid", 0),
        "ppid": info.get("ppid") or 0,
        "name": info.get("name") or "",
        "state": info.get("status") or "",
        "priority": priority_from_nice(info.get("nice")),
        "thread_count": info.get("num_threads") or 0,
    }
    create_time = info.get("create_time")
    if create_time:
        entry["start_time_ms"] = int(create_time * 1000)

    cpu_times = info.get("cpu_times")
    if cpu_times is not None:
        entry["user_time_ms"] = int(cpu_times.user * 1000)
        entry["kernel_time_ms"] = int(cpu_times.system * 1000)

    mem_info = info.get("memory_info")
    if mem_info is not None:
        entry["rss_bytes"] = mem_info.rss
        entry["virtual_size"] = mem_info.vms

    io = info.get("io_counters")
    if io is not None:
        entry["bytes_read"] = getattr(io, "read_bytes", 0)
        entry["bytes_written"] = getattr(io, "write_bytes", 0)
    return entry


class PsutilSourceAdapter(RawSourceAdapter):
    """
    Raw source adapter using psutil.

    psutil hides the per-platform APIs, so this is the default adapter on
    hosts without a dedicated one. AccessDenied on individual attributes is
    absorbed by ``process_iter``, which leaves those attributes as None.
    """

    name = "psutil"

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    @property
    def settings(self) -> Settings:
        return self._settings

    def read_text_file(self, path: str) -> list[str] | None:
        """Read a text file as lines; None if it can't be read."""
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                return f.read().splitlines()
        except OSError:
            return None

    def run_command(self, argv: Sequence[str]) -> list[str] | None:
        """Run a command with the configured timeout; None on any failure."""
        try:
            result = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                timeout=self._settings.command_timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Can't run %s: %s", argv[0], e)
            return None
        return result.stdout.splitlines() if result.returncode == 0 else None

    def list_directory(self, path: str) -> list[str] | None:
        """List a directory, sorted; None if it can't be listed."""
        try:
            return sorted(os.listdir(path))
        except OSError:
            return None

    def query_bulk_process_counters(self, pids: Iterable[int] | None = None) -> list[ProcessEntry]:
        """Enumerate processes with ``process_iter``, one entry per process."""
        wanted = set(pids) if pids is not None else None
        entries = []
        try:
            for proc in psutil.process_iter(attrs=bulk_attrs()):
                if wanted is not None and proc.pid not in wanted:
                    continue
                entries.append(_bulk_entry(proc.info))
        except (psutil.Error, ValueError) as e:
            logger.warning("Process enumeration failed: %s", e)
            return []
        return entries

    def query_process_list(self, pids: Iterable[int] | None = None) -> list[ProcessEntry]:
        """List bare pids, for when the bulk pass comes back empty."""
        wanted = set(pids) if pids is not None else None
        try:
            all_pids = psutil.pids()
        except psutil.Error as e:
            logger.warning("Process listing failed: %s", e)
            return []
        return [{"pid": pid} for pid in all_pids if wanted is None or pid in wanted]

    def query_process_detail(self, pid: int, slow: bool = True) -> ProcessEntry:
        """
        Read the per-process fields psutil offers on this platform.

        Attributes the platform lacks (``uids`` on Windows, ``num_handles``
        on POSIX) are skipped rather than treated as failures.
        """
        try:
            proc = psutil.Process(pid)
            # Use oneshot() context manager for efficient attribute access
            with proc.oneshot():
                detail: ProcessEntry = {"name": proc.name()}
                detail["path"] = _quiet(proc, "exe", "")
                cmdline = _quiet(proc, "cmdline", [])
                detail["command_line"] = " ".join(cmdline) if cmdline else ""
                detail["cwd"] = _quiet(proc, "cwd", "")
                detail["user"] = _quiet(proc, "username", "")
                uids = _quiet(proc, "uids", None)
                if uids is not None:
                    detail["user_id"] = str(uids.real)
                gids = _quiet(proc, "gids", None)
                if gids is not None:
                    detail["group_id"] = str(gids.real)
                    detail["group"] = group_name(gids.real)
                if slow:
                    if hasattr(proc, "num_fds"):
                        detail["open_files"] = _quiet(proc, "num_fds", 0)
                    elif hasattr(proc, "num_handles"):
                        detail["open_files"] = _quiet(proc, "num_handles", 0)
                    bitness = executable_bitness(detail["path"])
                    if bitness:
                        detail["bitness"] = bitness
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            raise ProcessGone(pid) from None
        except psutil.AccessDenied:
            raise ProcessAccessDenied(pid) from None
        return detail

    def _sysctl_int(self, name: str) -> int | None:
        lines = self.run_command(["sysctl", "-n", name])
        if not lines:
            return None
        try:
            return int(lines[0].strip())
        except ValueError:
            return None

    def _open_descriptors(self) -> int | None:
        if not psutil.WINDOWS:
            # macOS and the BSDs keep a system-wide count
            count = self._sysctl_int("kern.num_files")
            if count is not None:
                return count
        attr = "num_handles" if psutil.WINDOWS else "num_fds"
        if not hasattr(psutil.Process, attr):
            return None
        total = 0
        try:
            for proc in psutil.process_iter(attrs=[attr]):
                total += proc.info.get(attr) or 0
        except psutil.Error as e:
            logger.warning("Can't count open descriptors: %s", e)
            return None
        return total

    def _max_descriptors(self) -> int | None:
        if psutil.WINDOWS:
            if os.environ.get("ProgramFiles(x86)") is None:
                return MAX_WINDOWS_HANDLES_32
            return MAX_WINDOWS_HANDLES_64
        return self._sysctl_int("kern.maxfiles")

    def _thread_count(self) -> int | None:
        total = 0
        try:
            for proc in psutil.process_iter(attrs=["num_threads"]):
                total += proc.info.get("num_threads") or 0
        except psutil.Error as e:
            logger.warning("Can't count threads: %s", e)
            return None
        return total

    def get_static_fact(self, name: str) -> Any:
        """Answer a named fact from psutil, sysconf or sysctl."""
        if name == sources.UPTIME_SECONDS:
            try:
                return time.time() - psutil.boot_time()
            except (psutil.Error, OSError):
                return None
        if name == sources.KERNEL_BOOT_TIME:
            try:
                return int(psutil.boot_time())
            except (psutil.Error, OSError):
                return None
        if name == sources.PAGE_SIZE:
            try:
                return os.sysconf("SC_PAGE_SIZE")
            except (AttributeError, ValueError, OSError):
                return None
        # psutil reports times in seconds; expose millisecond ticks
        if name == sources.CLOCK_TICKS:
            return 1000
        if name == sources.PROCESS_COUNT:
            try:
                return len(psutil.pids())
            except psutil.Error:
                return None
        if name == sources.THREAD_COUNT:
            return self._thread_count()
        if name == sources.OPEN_FILE_DESCRIPTORS:
            return self._open_descriptors()
        if name == sources.MAX_FILE_DESCRIPTORS:
            return self._max_descriptors()
        if name == sources.ELEVATED:
            return is_elevated()
        return None


def _quiet(proc: psutil.Process, attr: str, default):
    """
    Call a psutil getter by name, treating AccessDenied as a missing value.

    Getters this platform's psutil doesn't offer also yield the default.
    """
    getter = getattr(proc, attr, None)
    if getter is None:
        return default
    try:
        value = getter()
    except psutil.AccessDenied:
        return default
    return default if value is None else value
