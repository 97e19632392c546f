"""Executable header inspection."""

import logging
import struct

logger = logging.getLogger(__name__)

ELF_MAGIC = b"\x7fELF"
ELFCLASS32 = 1
ELFCLASS64 = 2

# Mach-O magic numbers as read in file order
MACHO_32 = (b"\xfe\xed\xfa\xce", b"\xce\xfa\xed\xfe")
MACHO_64 = (b"\xfe\xed\xfa\xcf", b"\xcf\xfa\xed\xfe")

PE_MAGIC = b"PE\x00\x00"
PE_OFFSET_POSITION = 0x3C
PE_MACHINE_BITNESS = {
    0x014C: 32,  # i386
    0x01C4: 32,  # ARMv7 Thumb-2
    0x8664: 64,  # x86-64
    0xAA64: 64,  # ARM64
}


def _pe_bitness(f) -> int:
    f.seek(PE_OFFSET_POSITION)
    offset = f.read(4)
    if len(offset) < 4:
        return 0
    f.seek(struct.unpack("<I", offset)[0])
    header = f.read(6)
    if len(header) < 6 or not header.startswith(PE_MAGIC):
        return 0
    return PE_MACHINE_BITNESS.get(struct.unpack("<H", header[4:6])[0], 0)


def executable_bitness(path: str) -> int:
    """
    Read the word size of an executable from its header.

    Understands ELF, Mach-O and PE images. Returns 32, 64, or 0 when the
    file can't be read or the format isn't recognized (including Mach-O
    universal binaries, which carry several).
    """
    if not path:
        return 0
    try:
        with open(path, "rb") as f:
            header = f.read(5)
            if header.startswith(ELF_MAGIC) and len(header) == 5:
                return {ELFCLASS32: 32, ELFCLASS64: 64}.get(header[4], 0)
            if header[:4] in MACHO_32:
                return 32
            if header[:4] in MACHO_64:
                return 64
            if header.startswith(b"MZ"):
                return _pe_bitness(f)
    except OSError:
        logger.debug("Can't read executable header of %s", path)
    return 0
