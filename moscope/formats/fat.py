"""
FAT (Universal) Mach-O container parser.

This handles universal binaries containing multiple architectures. The fat
header and its architecture table are big-endian on disk; each slice then
carries its own magic and byte order.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from ..errors import Anomaly, InvalidArchitectureIndex, TruncatedFile, UnknownCpuSubtype
from ..io import BinaryStream
from .magic import resolve_magic
from .macho_constants import FAT_HEADER_SIZE, FAT_ARCH_SIZE, FAT_ARCH_64_SIZE
from .macho_structures import FatHeader, FatArchEntry, SliceRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FatBinary:
    """Decoded fat header and its ordered architecture table."""
    header: FatHeader
    architectures: Tuple[FatArchEntry, ...]
    anomalies: Tuple[Anomaly, ...] = ()

    def slice_range(self, index: int) -> SliceRange:
        return select_architecture(index, self.architectures)

    def slice_data(self, data, index: int) -> memoryview:
        """Zero-copy view over exactly one architecture's bytes."""
        selected = self.slice_range(index)
        view = data if isinstance(data, memoryview) else memoryview(data)
        return view[selected.offset:selected.end]


def select_architecture(index: int, architectures: Sequence[FatArchEntry]) -> SliceRange:
    """
    Pick one architecture by its 0-based index.

    Raises:
        InvalidArchitectureIndex: If index is outside [0, len(architectures))
    """
    if not isinstance(index, int) or index < 0 or index >= len(architectures):
        raise InvalidArchitectureIndex(
            f"Architecture index {index} out of range (file has {len(architectures)} architectures)"
        )
    return architectures[index].slice_range


def parse_fat(data) -> Optional[FatBinary]:
    """
    Parse a fat header and its architecture entries.

    Args:
        data: The whole file

    Returns:
        FatBinary, or None when data is a thin Mach-O image

    Raises:
        UnrecognizedMagic: If data is neither fat nor thin
        TruncatedFile: If the table or any slice extends past the buffer
    """
    fmt = resolve_magic(data)
    if not fmt.is_fat:
        return None

    stream = BinaryStream(data, fmt.byte_order)
    magic = stream.read_uint32()
    nfat_arch = stream.read_uint32()

    entry_size = FAT_ARCH_64_SIZE if fmt.is_64 else FAT_ARCH_SIZE
    table_end = FAT_HEADER_SIZE + nfat_arch * entry_size
    if table_end > stream.length:
        raise TruncatedFile(
            f"Fat architecture table of {nfat_arch} entries needs 0x{table_end:x} bytes, "
            f"file has 0x{stream.length:x}",
            FAT_HEADER_SIZE
        )

    logger.debug("Fat header: magic=0x%08x nfat_arch=%d", magic, nfat_arch)

    architectures = []
    anomalies = []
    for index in range(nfat_arch):
        entry_offset = stream.position
        cputype = stream.read_uint32()
        cpusubtype = stream.read_uint32()
        if fmt.is_64:
            offset = stream.read_uint64()
            size = stream.read_uint64()
            align = stream.read_uint32()
            reserved = stream.read_uint32()
        else:
            offset = stream.read_uint32()
            size = stream.read_uint32()
            align = stream.read_uint32()
            reserved = 0

        if offset + size > stream.length:
            raise TruncatedFile(
                f"Architecture {index} spans 0x{offset:x}-0x{offset + size:x}, "
                f"past end of 0x{stream.length:x}-byte file",
                entry_offset
            )

        entry = FatArchEntry(
            index=index,
            cputype=cputype,
            cpusubtype=cpusubtype,
            offset=offset,
            size=size,
            align=align,
            reserved=reserved,
        )
        if not entry.cpu.known:
            error = UnknownCpuSubtype(
                f"Architecture {index} has unknown cpu 0x{cputype:08x} subtype 0x{cpusubtype:08x}",
                entry_offset
            )
            logger.warning("%s", error)
            anomalies.append(Anomaly.from_error(error))
        logger.debug("  [%d] %s offset=0x%x size=0x%x align=2^%d", index, entry.cpu.name, offset, size, align)
        architectures.append(entry)

    header = FatHeader(magic=magic, nfat_arch=nfat_arch, is_64=fmt.is_64)
    return FatBinary(header=header, architectures=tuple(architectures), anomalies=tuple(anomalies))
