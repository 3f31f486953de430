"""
Mach-O header parser.
"""

import logging

from ..errors import TruncatedFile, UnrecognizedMagic
from ..io import BinaryStream
from .magic import resolve_magic
from .macho_constants import MACH_HEADER_SIZE, MACH_HEADER_64_SIZE
from .macho_structures import MachHeader

logger = logging.getLogger(__name__)


def parse_header(data) -> MachHeader:
    """
    Decode the mach_header / mach_header_64 at the start of a slice.

    Args:
        data: Bytes of one thin slice

    Returns:
        MachHeader read in the byte order encoded by its own magic

    Raises:
        UnrecognizedMagic: If data is not a thin Mach-O image
        TruncatedFile: If data is shorter than the header
    """
    fmt = resolve_magic(data)
    if fmt.is_fat:
        raise UnrecognizedMagic("Expected a thin Mach-O image, found a fat header", 0)

    size = MACH_HEADER_64_SIZE if fmt.is_64 else MACH_HEADER_SIZE
    if len(data) < size:
        raise TruncatedFile(f"Mach-O header needs {size} bytes, slice has {len(data)}", 0)

    stream = BinaryStream(data, fmt.byte_order)
    stream.is_32bit = not fmt.is_64
    header = MachHeader(
        magic=stream.read_uint32(),
        cputype=stream.read_uint32(),
        cpusubtype=stream.read_uint32(),
        filetype=stream.read_uint32(),
        ncmds=stream.read_uint32(),
        sizeofcmds=stream.read_uint32(),
        flags=stream.read_uint32(),
        reserved=stream.read_uint32() if fmt.is_64 else None,
        format=fmt,
    )
    logger.debug(
        "Header: %s %s ncmds=%d sizeofcmds=%d flags=0x%08x",
        header.cpu.name, header.file_type_name, header.ncmds, header.sizeofcmds, header.flags
    )
    return header
