"""Data models for sysfacts."""

from dataclasses import dataclass, field, fields, replace
from enum import Enum


class ProcessState(Enum):
    """Execution state of a process."""

    RUNNING = "running"
    SLEEPING = "sleeping"
    WAITING = "waiting"
    ZOMBIE = "zombie"
    STOPPED = "stopped"
    OTHER = "other"


@dataclass(slots=True, frozen=True)
class OSIdentity:
    """Identity of the running operating system."""

    family: str = ""
    version: str = ""
    code_name: str = ""
    build_number: str = ""

    def merge(self, other: "OSIdentity") -> "OSIdentity":
        """
        Fill the empty fields of this identity from another one.

        Fields already set here are never overwritten.
        """
        updates = {
            f.name: getattr(other, f.name)
            for f in fields(self)
            if not getattr(self, f.name) and getattr(other, f.name)
        }
        return replace(self, **updates) if updates else self

    @property
    def is_complete(self) -> bool:
        """True once both family and version are known."""
        return bool(self.family and self.version)


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """
    Immutable snapshot of a process state.

    ``up_time_ms`` is always the snapshot time minus ``start_time_ms``. When
    no source reports a start time, ``start_time_ms`` is 0 and the up time
    is therefore measured from the epoch; check ``start_time_ms`` before
    treating the up time as meaningful. ``priority`` uses the platform's
    own scale (kernel priority on POSIX, base priority on Windows).
    """

    pid: int
    parent_pid: int = 0
    name: str = ""
    path: str = ""
    command_line: str = ""
    user: str = ""
    user_id: str = ""
    group: str = ""
    group_id: str = ""
    state: ProcessState = ProcessState.OTHER
    priority: int = 0
    thread_count: int = 0
    virtual_size: int = 0  # Bytes
    resident_set_size: int = 0  # Bytes
    bytes_read: int = 0
    bytes_written: int = 0
    start_time_ms: int = 0  # Epoch milliseconds
    up_time_ms: int = 0
    user_time_ms: int = 0
    kernel_time_ms: int = 0
    open_files: int = 0
    bitness: int = 0  # 0 if unknown
    cwd: str = ""

    @property
    def total_time_ms(self) -> int:
        """CPU time spent in user and kernel mode."""
        return self.user_time_ms + self.kernel_time_ms


@dataclass(slots=True, frozen=True)
class CounterSample:
    """
    A raw OS counter read at a point in time.

    ``raw_value`` holds 64-bit unsigned semantics in a signed 64-bit
    container; use ``unsigned_value`` for arithmetic.
    """

    raw_value: int
    timestamp_ms: int

    @property
    def unsigned_value(self) -> int:
        return self.raw_value & 0xFFFF_FFFF_FFFF_FFFF


@dataclass(slots=True, frozen=True)
class NetworkInterface:
    """Point-in-time statistics of a network interface."""

    name: str
    display_name: str = ""
    mtu: int = 0
    mac: str = "Unknown"
    ipv4: tuple[str, ...] = field(default_factory=tuple)
    ipv6: tuple[str, ...] = field(default_factory=tuple)
    bytes_recv: int = 0
    bytes_sent: int = 0
    packets_recv: int = 0
    packets_sent: int = 0
    in_errors: int = 0
    out_errors: int = 0
    speed: int = 0  # Bits per second
    timestamp_ms: int = 0


@dataclass(slots=True, frozen=True)
class FileStore:
    """A mounted file system."""

    name: str
    mount: str
    fs_type: str = ""
    options: str = ""
    total_space: int = 0
    free_space: int = 0
    usable_space: int = 0
