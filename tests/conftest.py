"""Shared fixtures: a scripted source adapter."""

from collections.abc import Iterable, Sequence
from typing import Any

import pytest

from sysfacts.errors import ProcessGone
from sysfacts.facts import StaticFacts
from sysfacts.sources import ProcessEntry, RawSourceAdapter


class FakeAdapter(RawSourceAdapter):
    """Adapter that replays scripted responses."""

    name = "fake"

    def __init__(
        self,
        files: dict[str, str] | None = None,
        commands: dict[tuple[str, ...], str] | None = None,
        directories: dict[str, list[str]] | None = None,
        bulk: list[ProcessEntry] | None = None,
        process_list: list[ProcessEntry] | None = None,
        details: dict[int, Any] | None = None,
        static: dict[str, Any] | None = None,
    ) -> None:
        self.files = files or {}
        self.commands = commands or {}
        self.directories = directories or {}
        self.bulk = bulk or []
        self.process_list = process_list or []
        self.details = details or {}
        self.static = static or {}
        self.detail_calls: list[tuple[int, bool]] = []
        self.bulk_filters: list[Any] = []

    def read_text_file(self, path: str) -> list[str] | None:
        content = self.files.get(path)
        return None if content is None else content.splitlines()

    def run_command(self, argv: Sequence[str]) -> list[str] | None:
        output = self.commands.get(tuple(argv))
        return None if output is None else output.splitlines()

    def list_directory(self, path: str) -> list[str] | None:
        return self.directories.get(path)

    def query_bulk_process_counters(self, pids: Iterable[int] | None = None) -> list[ProcessEntry]:
        self.bulk_filters.append(pids)
        # Deliberately ignores the filter, like sources that can't pre-filter
        return [dict(entry) for entry in self.bulk]

    def query_process_list(self, pids: Iterable[int] | None = None) -> list[ProcessEntry]:
        return [dict(entry) for entry in self.process_list]

    def query_process_detail(self, pid: int, slow: bool = True) -> ProcessEntry:
        self.detail_calls.append((pid, slow))
        known = {entry.get("pid") for entry in self.bulk + self.process_list}
        if pid not in self.details and pid not in known:
            raise ProcessGone(pid)
        detail = self.details.get(pid, {})
        if isinstance(detail, Exception):
            raise detail
        return dict(detail)

    def get_static_fact(self, name: str) -> Any:
        value = self.static.get(name)
        return value() if callable(value) else value


@pytest.fixture
def make_adapter():
    """Factory for scripted adapters."""
    return FakeAdapter


@pytest.fixture
def facts() -> StaticFacts:
    return StaticFacts(
        page_size=4096,
        clock_ticks_per_second=100,
        boot_time_ms=1_700_000_000_000,
        own_pid=99999,
    )
