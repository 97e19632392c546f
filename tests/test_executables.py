"""Tests for executable header inspection."""

import struct

import pytest

from sysfacts.executables import executable_bitness


def pe_image(machine: int, pe_offset: int = 0x80) -> bytes:
    """A minimal DOS stub pointing at a PE header for ``machine``."""
    stub = bytearray(pe_offset)
    stub[:2] = b"MZ"
    stub[0x3C:0x40] = struct.pack("<I", pe_offset)
    return bytes(stub) + b"PE\x00\x00" + struct.pack("<H", machine)


class TestExecutableBitness:
    """Tests for reading the word size from image headers."""

    @pytest.mark.parametrize(
        ("header", "bitness"),
        [
            (b"\x7fELF\x01\x01\x01\x00", 32),
            (b"\x7fELF\x02\x01\x01\x00", 64),
            (b"\x7fELF\x03", 0),
            (b"\xfe\xed\xfa\xce\x00\x00", 32),
            (b"\xcf\xfa\xed\xfe\x07\x00", 64),
            (b"\xca\xfe\xba\xbe\x00\x00", 0),
            (b"#!/bin/sh\n", 0),
            (b"", 0),
        ],
    )
    def test_elf_and_macho(self, tmp_path, header, bitness):
        """ELF class and Mach-O magic decide the bitness; anything else is 0."""
        path = tmp_path / "image"
        path.write_bytes(header)
        assert executable_bitness(str(path)) == bitness

    @pytest.mark.parametrize(("machine", "bitness"), [(0x14C, 32), (0x8664, 64), (0xAA64, 64), (0x1234, 0)])
    def test_pe(self, tmp_path, machine, bitness):
        """PE images are identified by their machine field."""
        path = tmp_path / "image.exe"
        path.write_bytes(pe_image(machine))
        assert executable_bitness(str(path)) == bitness

    def test_truncated_pe(self, tmp_path):
        """A DOS stub without a PE header is unknown."""
        path = tmp_path / "stub.exe"
        path.write_bytes(pe_image(0x8664)[:0x82])
        assert executable_bitness(str(path)) == 0

    def test_unreadable(self, tmp_path):
        """Missing files and empty paths are unknown."""
        assert executable_bitness(str(tmp_path / "missing")) == 0
        assert executable_bitness("") == 0
