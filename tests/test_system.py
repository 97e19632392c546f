"""Tests for the HostFacts entry point."""

import pytest

from sysfacts import system
from sysfacts.config import Settings
from sysfacts.linux import LinuxSourceAdapter
from sysfacts.models import OSIdentity
from sysfacts.processes import ProcessSort
from sysfacts.psutil_source import PsutilSourceAdapter
from sysfacts.system import HostFacts, create_adapter


def entry(pid, ppid=1, user_time_ms=0, rss_bytes=0):
    return {
        "pid": pid,
        "ppid": ppid,
        "name": f"p{pid}",
        "start_time_ms": 1_000,
        "user_time_ms": user_time_ms,
        "rss_bytes": rss_bytes,
    }


@pytest.fixture
def host(make_adapter, facts):
    adapter = make_adapter(
        files={"/etc/os-release": 'NAME="Fedora"\nVERSION="39 (Thirty Nine)"\n'},
        bulk=[
            entry(1, ppid=0, user_time_ms=5, rss_bytes=300),
            entry(2, user_time_ms=50, rss_bytes=100),
            entry(3, user_time_ms=20, rss_bytes=200),
        ],
    )
    return HostFacts(adapter, facts, clock=lambda: 1_700_000_100.0)


class TestCreateAdapter:
    def test_explicit_backends(self):
        """Named backends map to their adapters."""
        assert isinstance(create_adapter(Settings(backend="linux")), LinuxSourceAdapter)
        assert isinstance(create_adapter(Settings(backend="psutil")), PsutilSourceAdapter)

    def test_auto_follows_platform(self, monkeypatch):
        """auto picks the Linux adapter only on Linux."""
        monkeypatch.setattr(system.platform, "system", lambda: "Linux")
        assert isinstance(create_adapter(), LinuxSourceAdapter)
        monkeypatch.setattr(system.platform, "system", lambda: "Darwin")
        assert isinstance(create_adapter(), PsutilSourceAdapter)

    def test_settings_passed_through(self):
        """Settings reach the adapter."""
        adapter = create_adapter(Settings(backend="linux", proc_path="/host/proc"))
        assert adapter.settings.proc_path == "/host/proc"


class TestHostFacts:
    def test_identity_resolved_once(self, host, monkeypatch):
        """The identity is cached after the first resolution."""
        monkeypatch.setattr(system.platform, "system", lambda: "Linux")
        identity = host.resolve_os_identity()
        assert identity.family == "Fedora"
        assert identity.version == "39"

        host.adapter.files.clear()
        assert host.resolve_os_identity() is identity

    def test_platform_strategies_for_other_adapters(self, facts, monkeypatch):
        """Non-Linux hosts use the runtime platform strategy."""
        monkeypatch.setattr(system.platform, "system", lambda: "FreeBSD")
        monkeypatch.setattr(system.platform, "release", lambda: "14.0-RELEASE")
        identity = HostFacts(PsutilSourceAdapter(), facts).resolve_os_identity()

        assert identity.family == "FreeBSD"
        assert identity.version == "14.0-RELEASE"

    def test_snapshot_sorted_and_limited(self, host):
        """Snapshots are sorted and truncated on request."""
        by_cpu = host.snapshot_processes(sort=ProcessSort.CPU, limit=2)
        assert [p.pid for p in by_cpu] == [2, 3]

        by_memory = host.snapshot_processes(sort=ProcessSort.MEMORY)
        assert [p.pid for p in by_memory] == [1, 3, 2]

    def test_snapshot_filter(self, host):
        """A pid filter restricts the snapshot."""
        assert [p.pid for p in host.snapshot_processes([3])] == [3]

    def test_child_processes(self, host):
        """Children are matched on parent pid."""
        children = host.child_processes(1, sort=ProcessSort.CPU)
        assert [p.pid for p in children] == [2, 3]

    def test_static_facts_collected_when_missing(self, make_adapter):
        """Static facts are collected when not supplied."""
        host = HostFacts(make_adapter(), clock=lambda: 10.0)
        assert host.facts.boot_time_ms == 10_000


class TestDefaultHost:
    @pytest.fixture(autouse=True)
    def clear_cache(self):
        system.default_host.cache_clear()
        yield
        system.default_host.cache_clear()

    def test_invalid_environment_ignored(self, monkeypatch):
        """Invalid settings fall back to defaults and the host is cached."""
        monkeypatch.setenv("SYSFACTS_BACKEND", "psutil")
        monkeypatch.setenv("SYSFACTS_COMMAND_TIMEOUT", "-1")

        host = system.default_host()
        assert isinstance(host.adapter, (LinuxSourceAdapter, PsutilSourceAdapter))
        assert system.default_host() is host

    def test_module_level_helpers(self, monkeypatch):
        """Module helpers delegate to the default host."""
        monkeypatch.setenv("SYSFACTS_BACKEND", "psutil")

        assert isinstance(system.resolve_os_identity(), OSIdentity)
        assert isinstance(system.snapshot_processes(), list)


class TestHostCounts:
    @pytest.fixture
    def counted(self, make_adapter, facts):
        adapter = make_adapter(
            static={
                "process_count": 120,
                "thread_count": 480,
                "open_file_descriptors": 1024,
                "max_file_descriptors": 9_999,
                "elevated": True,
            }
        )
        return HostFacts(adapter, facts)

    def test_counts_from_adapter(self, counted):
        """Process, thread and descriptor counts are read fresh from the adapter."""
        assert counted.process_count() == 120
        assert counted.thread_count() == 480
        assert counted.open_file_descriptors() == 1024
        assert counted.max_file_descriptors() == 9_999

        counted.adapter.static["process_count"] = 121
        assert counted.process_count() == 121

    def test_unknown_counts_are_zero(self, make_adapter, facts):
        """An adapter that can't count reports 0."""
        host = HostFacts(make_adapter(), facts)

        assert host.process_count() == 0
        assert host.thread_count() == 0
        assert host.open_file_descriptors() == 0
        assert host.max_file_descriptors() == 0
        assert host.is_elevated() is False

    def test_elevated(self, counted):
        """Elevation is taken from the adapter."""
        assert counted.is_elevated() is True


class TestUptimeAndBootTime:
    def test_reported_values(self, make_adapter, facts):
        """Kernel uptime and boot time are used as reported."""
        adapter = make_adapter(static={"uptime_seconds": 3_600.7, "kernel_boot_time": 1_699_996_400})
        host = HostFacts(adapter, facts, clock=lambda: 1_700_000_000.0)

        assert host.system_uptime() == 3_600
        assert host.system_boot_time() == 1_699_996_400

    def test_boot_time_from_uptime(self, make_adapter, facts):
        """Without a kernel boot time, it is now minus uptime."""
        adapter = make_adapter(static={"uptime_seconds": 100.0})
        host = HostFacts(adapter, facts, clock=lambda: 1_700_000_000.0)

        assert host.system_boot_time() == 1_699_999_900

    def test_uptime_from_boot_time(self, make_adapter, facts):
        """Without an uptime, it is now minus the kernel boot time."""
        adapter = make_adapter(static={"kernel_boot_time": 1_699_999_000})
        host = HostFacts(adapter, facts, clock=lambda: 1_700_000_000.0)

        assert host.system_uptime() == 1_000

    def test_startup_estimate_last(self, make_adapter, facts):
        """With neither value, the boot time estimated at startup is used."""
        host = HostFacts(make_adapter(), facts, clock=lambda: 1_700_000_100.0)

        assert host.system_boot_time() == 1_700_000_000
        assert host.system_uptime() == 100


class TestManufacturer:
    def test_linux(self, host, monkeypatch):
        """Any Linux host reports GNU/Linux."""
        monkeypatch.setattr(system.platform, "system", lambda: "Linux")
        assert host.manufacturer() == "GNU/Linux"

    @pytest.mark.parametrize(
        "platform_name, expected",
        [
            ("Windows", "Microsoft"),
            ("Darwin", "Apple"),
            ("FreeBSD", "Unix/BSD"),
            ("SunOS", "Oracle"),
            ("Haiku", "Haiku"),
        ],
    )
    def test_other_systems(self, host, monkeypatch, platform_name, expected):
        """Other systems map to their vendor, or to their own name."""
        monkeypatch.setattr(system.platform, "system", lambda: platform_name)
        assert host.manufacturer() == expected


class TestBitness:
    @pytest.fixture
    def runtime_32(self, monkeypatch):
        monkeypatch.setattr(system, "_runtime_bitness", lambda: 32)
        monkeypatch.delenv("ProgramFiles(x86)", raising=False)

    def test_64_bit_runtime(self, host, monkeypatch):
        """A 64-bit interpreter implies a 64-bit OS."""
        monkeypatch.setattr(system, "_runtime_bitness", lambda: 64)
        assert host.bitness() == 64

    def test_32_bit_runtime_on_64_bit_kernel(self, make_adapter, facts, runtime_32):
        """uname -m reveals a 64-bit kernel under a 32-bit interpreter."""
        adapter = make_adapter(commands={("uname", "-m"): "x86_64\n"})
        assert HostFacts(adapter, facts).bitness() == 64

    def test_32_bit_kernel(self, make_adapter, facts, runtime_32):
        """A 32-bit machine name keeps the interpreter's bitness."""
        adapter = make_adapter(commands={("uname", "-m"): "i686\n"})
        assert HostFacts(adapter, facts).bitness() == 32

    def test_machine_name_without_uname(self, make_adapter, facts, runtime_32, monkeypatch):
        """Without uname, the machine name comes from the platform module."""
        monkeypatch.setattr(system.platform, "machine", lambda: "AMD64")
        assert HostFacts(make_adapter(), facts).bitness() == 64

    def test_wow64(self, make_adapter, facts, runtime_32, monkeypatch):
        """ProgramFiles(x86) only exists on 64-bit Windows."""
        monkeypatch.setenv("ProgramFiles(x86)", "C:\\Program Files (x86)")
        assert HostFacts(make_adapter(), facts).bitness() == 64


class TestEmptyFilter:
    def test_no_sources_queried(self, host):
        """An empty pid filter returns nothing without touching the adapter."""
        assert host.snapshot_processes(filter_pids=set()) == []
        assert host.adapter.bulk_filters == []
        assert host.adapter.detail_calls == []
