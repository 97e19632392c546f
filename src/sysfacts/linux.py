"""Linux source adapter backed by /proc, /etc and command execution."""

import logging
import os
import subprocess
from collections.abc import Iterable, Sequence
from typing import Any

from sysfacts import sources
from sysfacts.accounts import group_name, is_elevated, user_name
from sysfacts.config import Settings
from sysfacts.errors import ProcessAccessDenied, ProcessGone
from sysfacts.executables import executable_bitness
from sysfacts.sources import ProcessEntry, RawSourceAdapter

logger = logging.getLogger(__name__)

# Positions in /proc/[pid]/stat after the ")" closing the command name,
# i.e. man proc field number minus 3.
STAT_STATE = 0
STAT_PPID = 1
STAT_UTIME = 11
STAT_STIME = 12
STAT_PRIORITY = 15
STAT_THREADS = 17
STAT_STARTTIME = 19
STAT_VSIZE = 20
STAT_RSS = 21


def parse_int(value: str, default: int = 0) -> int:
    """Parse an integer, returning ``default`` for malformed input."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_stat(content: str) -> dict[str, Any] | None:
    """
    Parse the contents of /proc/[pid]/stat.

    The command name may itself contain spaces and parentheses, so it is
    taken between the first "(" and the last ")". Returns None if the
    content is empty or truncated.
    """
    start = content.find("(")
    end = content.rfind(")")
    if start < 0 or end < start:
        return None
    fields = content[end + 1 :].split()
    if len(fields) <= STAT_RSS:
        return None
    return {
        "name": content[start + 1 : end],
        "state": fields[STAT_STATE],
        "ppid": parse_int(fields[STAT_PPID]),
        "user_ticks": parse_int(fields[STAT_UTIME]),
        "kernel_ticks": parse_int(fields[STAT_STIME]),
        "priority": parse_int(fields[STAT_PRIORITY]),
        "thread_count": parse_int(fields[STAT_THREADS]),
        "start_ticks": parse_int(fields[STAT_STARTTIME]),
        "virtual_size": parse_int(fields[STAT_VSIZE]),
        "rss_pages": parse_int(fields[STAT_RSS]),
    }


def parse_key_value_lines(lines: Iterable[str], separator: str = ":") -> dict[str, str]:
    """Split ``key<sep>value`` lines into a dict; first occurrence wins."""
    result: dict[str, str] = {}
    for line in lines:
        key, sep, value = line.partition(separator)
        if sep and key.strip() not in result:
            result[key.strip()] = value.strip()
    return result


class LinuxSourceAdapter(RawSourceAdapter):
    """
    Raw source adapter for Linux hosts.

    Paths handed to ``read_text_file`` and ``list_directory`` under ``/proc``
    and ``/etc`` are resolved against the configured roots, which lets the
    adapter run against a captured tree. Paths the adapter builds itself
    already start at those roots and are read as they are.
    """

    name = "linux"

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    @property
    def settings(self) -> Settings:
        return self._settings

    def _resolve(self, path: str) -> str:
        for prefix, root in (("/proc", self._settings.proc_path), ("/etc", self._settings.etc_path)):
            if path == prefix or path.startswith(prefix + "/"):
                return root + path[len(prefix) :]
        return path

    def _proc(self, *parts: object) -> str:
        return os.path.join(self._settings.proc_path, *(str(p) for p in parts))

    def _read_lines(self, path: str) -> list[str] | None:
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                return f.read().splitlines()
        except OSError as e:
            logger.debug("Can't read %s: %s", path, e)
            return None

    def _listdir(self, path: str) -> list[str] | None:
        try:
            return sorted(os.listdir(path))
        except OSError as e:
            logger.debug("Can't list %s: %s", path, e)
            return None

    def read_text_file(self, path: str) -> list[str] | None:
        """Read a text file as lines; None if it can't be read."""
        return self._read_lines(self._resolve(path))

    def run_command(self, argv: Sequence[str]) -> list[str] | None:
        """
        Run a command in the C locale with the configured timeout.

        Returns its output lines, or None if it can't be started, times out
        or exits non-zero.
        """
        env = dict(os.environ, LC_ALL="C")
        try:
            result = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                timeout=self._settings.command_timeout,
                env=env,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Can't run %s: %s", argv[0], e)
            return None
        if result.returncode != 0:
            logger.debug("%s exited with status %d", argv[0], result.returncode)
            return None
        return result.stdout.splitlines()

    def list_directory(self, path: str) -> list[str] | None:
        """List a directory, sorted; None if it can't be listed."""
        return self._listdir(self._resolve(path))

    def _pid_dirs(self, pids: Iterable[int] | None) -> list[int]:
        if pids is not None:
            return sorted({pid for pid in pids if os.path.isdir(self._proc(pid))})
        names = self._listdir(self._settings.proc_path) or []
        return sorted(int(name) for name in names if name.isdigit())

    def query_bulk_process_counters(self, pids: Iterable[int] | None = None) -> list[ProcessEntry]:
        """Read stat and io of every numeric /proc entry, or of ``pids``."""
        entries = []
        for pid in self._pid_dirs(pids):
            lines = self._read_lines(self._proc(pid, "stat"))
            stat = parse_stat(" ".join(lines)) if lines else None
            if stat is None:
                # Exited between the listing and the read
                logger.debug("Dropping pid %d: empty or unreadable stat", pid)
                continue
            entry: ProcessEntry = {"pid": pid, **stat}
            io = parse_key_value_lines(self._read_lines(self._proc(pid, "io")) or [])
            entry["bytes_read"] = parse_int(io.get("read_bytes", ""))
            entry["bytes_written"] = parse_int(io.get("write_bytes", ""))
            entries.append(entry)
        return entries

    def query_process_list(self, pids: Iterable[int] | None = None) -> list[ProcessEntry]:
        """Enumerate processes through ``ps`` when /proc yields nothing."""
        lines = self.run_command(["ps", "-e", "-o", "pid=", "-o", "ppid=", "-o", "comm="])
        if not lines:
            return []
        wanted = set(pids) if pids is not None else None
        entries = []
        for line in lines:
            parts = line.split(None, 2)
            if len(parts) < 2 or not parts[0].isdigit():
                continue
            pid = int(parts[0])
            if wanted is not None and pid not in wanted:
                continue
            entries.append(
                {
                    "pid": pid,
                    "ppid": parse_int(parts[1]),
                    "name": parts[2].strip() if len(parts) > 2 else "",
                }
            )
        return entries

    def _readlink(self, pid: int, name: str) -> str:
        try:
            return os.readlink(self._proc(pid, name))
        except OSError:
            return ""

    def _command_line(self, pid: int) -> str:
        try:
            with open(self._proc(pid, "cmdline"), "rb") as f:
                raw = f.read()
        except OSError:
            return ""
        return " ".join(
            part.decode("utf-8", errors="replace") for part in raw.split(b"\0") if part
        )

    def query_process_detail(self, pid: int, slow: bool = True) -> ProcessEntry:
        """
        Read status, cmdline and the exe/cwd links of one process.

        Raises:
            ProcessGone: /proc/[pid] disappeared.
            ProcessAccessDenied: status isn't readable.
        """
        status_path = self._proc(pid, "status")
        try:
            with open(status_path, encoding="utf-8", errors="replace") as f:
                status = parse_key_value_lines(f.read().splitlines())
        except FileNotFoundError:
            raise ProcessGone(pid) from None
        except PermissionError:
            raise ProcessAccessDenied(pid) from None
        except OSError:
            # ESRCH and friends when the process exits mid-read
            raise ProcessGone(pid) from None

        detail: ProcessEntry = {
            "name": status.get("Name", ""),
            "path": self._readlink(pid, "exe"),
            "cwd": self._readlink(pid, "cwd"),
        }
        if "State" in status:
            detail["state"] = status["State"][:1]

        command_line = self._command_line(pid)
        if command_line:
            detail["command_line"] = command_line

        uid = status.get("Uid", "").split()
        gid = status.get("Gid", "").split()
        if uid:
            detail["user_id"] = uid[0]
            detail["user"] = user_name(uid[0])
        if gid:
            detail["group_id"] = gid[0]
            detail["group"] = group_name(gid[0])

        if slow:
            try:
                detail["open_files"] = len(os.listdir(self._proc(pid, "fd")))
            except OSError:
                pass
            bitness = executable_bitness(detail["path"])
            if bitness:
                detail["bitness"] = bitness
        return detail

    def _file_nr(self) -> list[int]:
        lines = self._read_lines(self._proc("sys", "fs", "file-nr"))
        if not lines:
            return []
        return [parse_int(field, -1) for field in lines[0].split()]

    def _thread_count(self) -> int | None:
        # Fourth field of loadavg is "running/total" scheduling entities
        lines = self._read_lines(self._proc("loadavg"))
        fields = lines[0].split() if lines else []
        if len(fields) < 4 or "/" not in fields[3]:
            return None
        total = parse_int(fields[3].partition("/")[2], -1)
        return total if total >= 0 else None

    def get_static_fact(self, name: str) -> Any:
        """Answer a named fact from sysconf or /proc."""
        if name == sources.PAGE_SIZE:
            return _sysconf("SC_PAGE_SIZE")
        if name == sources.CLOCK_TICKS:
            return _sysconf("SC_CLK_TCK")
        if name == sources.UPTIME_SECONDS:
            lines = self._read_lines(self._proc("uptime"))
            if lines and lines[0].split():
                try:
                    return float(lines[0].split()[0])
                except ValueError:
                    return None
            return None
        if name == sources.KERNEL_BOOT_TIME:
            for line in self._read_lines(self._proc("stat")) or []:
                if line.startswith("btime"):
                    parts = line.split()
                    return parse_int(parts[1]) if len(parts) > 1 else None
            return None
        if name == sources.PROCESS_COUNT:
            names = self._listdir(self._settings.proc_path)
            return None if names is None else sum(1 for n in names if n.isdigit())
        if name == sources.THREAD_COUNT:
            return self._thread_count()
        if name == sources.OPEN_FILE_DESCRIPTORS:
            file_nr = self._file_nr()
            return file_nr[0] if file_nr and file_nr[0] >= 0 else None
        if name == sources.MAX_FILE_DESCRIPTORS:
            lines = self._read_lines(self._proc("sys", "fs", "file-max"))
            if lines and lines[0].strip().isdigit():
                return int(lines[0].strip())
            file_nr = self._file_nr()
            return file_nr[2] if len(file_nr) > 2 and file_nr[2] >= 0 else None
        if name == sources.ELEVATED:
            return is_elevated()
        return None


def _sysconf(name: str) -> int | None:
    try:
        return os.sysconf(name)
    except (ValueError, OSError):
        return None
