"""
Magic number and byte order resolution.

The first four bytes of a buffer decide everything that follows: whether it
is a fat container or a thin Mach-O image, whether offsets are 32 or 64 bits
wide and which byte order every later integer read must use.
"""

import struct
from enum import Enum

from ..errors import UnrecognizedMagic
from .macho_constants import (
    MH_MAGIC, MH_CIGAM, MH_MAGIC_64, MH_CIGAM_64,
    FAT_MAGIC, FAT_CIGAM, FAT_MAGIC_64, FAT_CIGAM_64,
)


class MachOFormat(Enum):
    """Container format, word size and byte order of a buffer."""
    FAT32 = "fat32"
    FAT64 = "fat64"
    FAT32_SWAPPED = "fat32-swapped"
    FAT64_SWAPPED = "fat64-swapped"
    THIN32 = "thin32"
    THIN64 = "thin64"
    THIN32_SWAPPED = "thin32-swapped"
    THIN64_SWAPPED = "thin64-swapped"

    @property
    def is_fat(self) -> bool:
        return self.value.startswith("fat")

    @property
    def is_64(self) -> bool:
        return "64" in self.value

    @property
    def is_swapped(self) -> bool:
        return self.value.endswith("-swapped")

    @property
    def byte_order(self) -> str:
        """struct prefix for every integer read in this format."""
        return '<' if self.is_swapped else '>'


_MAGIC_FORMATS = {
    FAT_MAGIC: MachOFormat.FAT32,
    FAT_MAGIC_64: MachOFormat.FAT64,
    FAT_CIGAM: MachOFormat.FAT32_SWAPPED,
    FAT_CIGAM_64: MachOFormat.FAT64_SWAPPED,
    MH_MAGIC: MachOFormat.THIN32,
    MH_MAGIC_64: MachOFormat.THIN64,
    MH_CIGAM: MachOFormat.THIN32_SWAPPED,
    MH_CIGAM_64: MachOFormat.THIN64_SWAPPED,
}


def read_magic(data) -> int:
    """Read the first four bytes as a big-endian integer."""
    if len(data) < 4:
        raise UnrecognizedMagic(f"Buffer of {len(data)} bytes is too small to hold a magic number", 0)
    return struct.unpack_from('>I', data, 0)[0]


def resolve_magic(data) -> MachOFormat:
    """
    Classify a buffer by its magic number.

    Args:
        data: At least the first four bytes of the file or slice

    Returns:
        The MachOFormat tag

    Raises:
        UnrecognizedMagic: If the bytes match no fat or thin magic
    """
    magic = read_magic(data)
    try:
        return _MAGIC_FORMATS[magic]
    except KeyError:
        raise UnrecognizedMagic(f"Unrecognized magic 0x{magic:08x}", 0) from None
