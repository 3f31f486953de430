"""
Symbol table resolution (nlist / nlist_64).
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from ..errors import (
    Anomaly, MalformedLoadCommand, SectionOutOfBounds, StringTableIndexOutOfRange, TruncatedFile,
)
from ..io import BinaryStream
from .macho_constants import (
    NLIST_SIZE, NLIST_64_SIZE, N_STAB, N_PEXT, N_TYPE, N_EXT,
    N_UNDF, N_ABS, N_SECT, N_PBUD, N_INDR, NO_SECT,
)
from .macho_structures import MachHeader, Section, SymbolEntry, SymbolKind, SymtabCommand

logger = logging.getLogger(__name__)

BASE_KINDS = {
    N_UNDF: SymbolKind.UNDEFINED,
    N_ABS: SymbolKind.ABSOLUTE,
    N_SECT: SymbolKind.SECTION,
    N_PBUD: SymbolKind.PREBOUND_UNDEFINED,
    N_INDR: SymbolKind.INDIRECT,
}


@dataclass(frozen=True)
class SymbolTable:
    """Symbols in on-disk order plus problems with the table as a whole."""
    symbols: Tuple[SymbolEntry, ...] = ()
    anomalies: Tuple[Anomaly, ...] = ()

    def __iter__(self):
        return iter(self.symbols)

    def __len__(self) -> int:
        return len(self.symbols)


def _anomaly(error) -> Anomaly:
    anomaly = Anomaly.from_error(error)
    logger.warning("%s", anomaly)
    return anomaly


def resolve_symbols(data, header: MachHeader, symtab: SymtabCommand,
                    sections: Sequence[Section]) -> SymbolTable:
    """
    Decode every nlist entry described by an LC_SYMTAB.

    Args:
        data: Bytes of the thin slice
        header: Its decoded header (for word size and byte order)
        symtab: The LC_SYMTAB command
        sections: All sections of the slice, in index order

    Returns:
        SymbolTable; ranges past the end of the slice are clamped and
        reported instead of raising
    """
    stream = BinaryStream(data, header.byte_order)
    stream.is_32bit = not header.is_64
    entry_size = NLIST_64_SIZE if header.is_64 else NLIST_SIZE
    table_anomalies = []

    count = symtab.nsyms
    if symtab.symoff > stream.length:
        available = 0
    else:
        available = (stream.length - symtab.symoff) // entry_size
    if count > available:
        table_anomalies.append(_anomaly(TruncatedFile(
            f"Symbol table declares {symtab.nsyms} entries, only {available} fit in the file",
            symtab.symoff
        )))
        count = available

    str_start = min(symtab.stroff, stream.length)
    str_end = min(symtab.stroff + symtab.strsize, stream.length)
    if symtab.stroff + symtab.strsize > stream.length:
        table_anomalies.append(_anomaly(TruncatedFile(
            f"String table 0x{symtab.stroff:x}+0x{symtab.strsize:x} extends past end of file",
            symtab.stroff
        )))

    symbols = []
    for index in range(count):
        offset = symtab.symoff + index * entry_size
        stream.position = offset
        n_strx = stream.read_uint32()
        n_type = stream.read_byte()
        n_sect = stream.read_byte()
        n_desc = stream.read_uint16()
        n_value = stream.read_uint_ptr()
        symbols.append(_make_symbol(
            stream, index, offset, n_strx, n_type, n_sect, n_desc, n_value,
            symtab.strsize, str_start, str_end, len(sections)
        ))

    logger.debug("Resolved %d symbols", len(symbols))
    return SymbolTable(symbols=tuple(symbols), anomalies=tuple(table_anomalies))


def _make_symbol(stream: BinaryStream, index: int, offset: int, n_strx: int, n_type: int,
                 n_sect: int, n_desc: int, n_value: int, strsize: int, str_start: int,
                 str_end: int, section_count: int) -> SymbolEntry:
    anomalies = []

    if n_strx > strsize or str_start + n_strx > str_end:
        anomalies.append(_anomaly(StringTableIndexOutOfRange(
            f"Symbol {index} name index 0x{n_strx:x} outside string table of 0x{strsize:x} bytes",
            offset
        )))
        name = f"<bad string index 0x{n_strx:x}>"
    else:
        name = stream.read_string_to_null(str_start + n_strx, str_end)
        if name is None:
            raw = bytes(stream.get_data()[str_start + n_strx:str_end])
            name = raw.decode('utf-8', errors='replace')

    debug = bool(n_type & N_STAB)
    if debug:
        kind = SymbolKind.SECTION if n_sect != NO_SECT else SymbolKind.ABSOLUTE
    else:
        base = n_type & N_TYPE
        kind = BASE_KINDS.get(base)
        if kind is None:
            anomalies.append(_anomaly(MalformedLoadCommand(
                f"Symbol {index} has unknown type 0x{base:x}", offset
            )))
            kind = SymbolKind.UNDEFINED

    section_index = None
    if kind is SymbolKind.SECTION and n_sect != NO_SECT:
        if n_sect <= section_count:
            section_index = n_sect
        else:
            anomalies.append(_anomaly(SectionOutOfBounds(
                f"Symbol {index} refers to section {n_sect}, slice has {section_count}", offset
            )))

    return SymbolEntry(
        index=index,
        name=name,
        name_offset=n_strx,
        n_type=n_type,
        n_sect=n_sect,
        n_desc=n_desc,
        value=n_value,
        kind=kind,
        external=not debug and bool(n_type & N_EXT),
        private_external=not debug and bool(n_type & N_PEXT),
        debug=debug,
        section_index=section_index,
        anomalies=tuple(anomalies),
    )


def sort_symbols(symbols: Iterable[SymbolEntry]) -> List[SymbolEntry]:
    """Order symbols by value, then name. Only used for display."""
    return sorted(symbols, key=lambda s: (s.value, s.name))
