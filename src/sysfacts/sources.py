"""Raw source adapter interface.

An adapter exposes what a platform offers without interpreting it: text
files, command output, process counters and a handful of named host facts.
Business rules (precedence, unit conversion, race handling) live in the
resolvers that consume it.

Unavailable sources are reported as ``None`` (files, commands, static
facts) or an empty list (bulk queries). Per-process detail lookups raise
``ProcessGone`` or ``ProcessAccessDenied``.

Bulk entries are plain dicts keyed by field name. ``pid`` is required; the
rest are optional and use the adapter's native units::

    ppid, name, priority, thread_count, state,
    start_ticks | start_time_ms,
    user_ticks | user_time_ms, kernel_ticks | kernel_time_ms,
    virtual_size, rss_pages | rss_bytes, bytes_read, bytes_written

``priority`` is on the scale the platform's own tools show: the Linux
kernel priority (``20 + nice`` for normal tasks) on POSIX hosts, the base
priority (``8`` for normal processes) on Windows.

Detail dicts may carry ``path, command_line, user, user_id, group,
group_id, cwd, open_files, bitness`` and, for sources that only report them
per process, any bulk field.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any

ProcessEntry = dict[str, Any]

# Names understood by get_static_fact()
PAGE_SIZE = "page_size"
CLOCK_TICKS = "clock_ticks"
UPTIME_SECONDS = "uptime_seconds"
KERNEL_BOOT_TIME = "kernel_boot_time"  # Epoch seconds

# Host-wide figures, read fresh on every call
PROCESS_COUNT = "process_count"
THREAD_COUNT = "thread_count"
OPEN_FILE_DESCRIPTORS = "open_file_descriptors"
MAX_FILE_DESCRIPTORS = "max_file_descriptors"
ELEVATED = "elevated"


class RawSourceAdapter(ABC):
    """Uniform access to a platform's raw system facts."""

    name = "abstract"

    @abstractmethod
    def read_text_file(self, path: str) -> list[str] | None:
        """Return the lines of a text file, or None if it can't be read."""

    @abstractmethod
    def run_command(self, argv: Sequence[str]) -> list[str] | None:
        """Return a command's output lines, or None if it can't be run."""

    @abstractmethod
    def list_directory(self, path: str) -> list[str] | None:
        """Return the entry names of a directory, or None if unreadable."""

    @abstractmethod
    def query_bulk_process_counters(
        self, pids: Iterable[int] | None = None
    ) -> list[ProcessEntry]:
        """Enumerate processes with their bulk counters in one pass."""

    def query_process_list(self, pids: Iterable[int] | None = None) -> list[ProcessEntry]:
        """
        Coarse fallback enumeration used when the bulk counters are empty.

        Adapters without a second enumeration source return an empty list.
        """
        return []

    @abstractmethod
    def query_process_detail(self, pid: int, slow: bool = True) -> ProcessEntry:
        """
        Fetch per-process detail.

        Raises:
            ProcessGone: The process exited.
            ProcessAccessDenied: The process can't be inspected.
        """

    @abstractmethod
    def get_static_fact(self, name: str) -> Any:
        """Return a named host fact, or None if unknown."""
