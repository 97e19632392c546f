"""Tests for user and group lookups."""

import os
import sys

import pytest

from sysfacts import accounts

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="pwd and grp are POSIX only")


@posix_only
class TestNames:
    """Tests for numeric id to name lookups."""

    def test_root(self):
        """Id 0 is root on every POSIX host."""
        assert accounts.user_name(0) == "root"
        assert accounts.user_name("0") == "root"
        assert accounts.group_name(0) in ("root", "wheel")

    def test_unknown_ids(self):
        """Unknown or malformed ids give an empty name."""
        assert accounts.user_name(2**31 - 2) == ""
        assert accounts.group_name(2**31 - 2) == ""
        assert accounts.user_name("nobody?") == ""
        assert accounts.group_name("") == ""


class TestElevated:
    """Tests for detecting root or administrator rights."""

    @posix_only
    def test_sudo_counts_as_elevated(self, monkeypatch):
        """A process started through sudo is elevated."""
        monkeypatch.setattr(os, "geteuid", lambda: 1000)
        monkeypatch.setenv("SUDO_COMMAND", "/usr/bin/sysfacts")
        assert accounts.is_elevated() is True

    @posix_only
    def test_root_and_regular_user(self, monkeypatch):
        """Effective uid 0 is elevated, others are not."""
        monkeypatch.delenv("SUDO_COMMAND", raising=False)
        monkeypatch.setattr(os, "geteuid", lambda: 0)
        assert accounts.is_elevated() is True
        monkeypatch.setattr(os, "geteuid", lambda: 1000)
        assert accounts.is_elevated() is False

    def test_windows_system_profile(self, monkeypatch, tmp_path):
        """On Windows, a visible system profile directory means administrator."""
        monkeypatch.delattr(os, "geteuid", raising=False)
        monkeypatch.setenv("windir", str(tmp_path))
        assert accounts.is_elevated() is False

        (tmp_path / "system32" / "config" / "systemprofile").mkdir(parents=True)
        assert accounts.is_elevated() is True
