"""
Mach-O format parser for macOS/iOS binaries.

Supports both 32-bit and 64-bit Mach-O formats in either byte order, as
well as FAT (Universal) binaries containing multiple architectures.
"""

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from ..errors import Anomaly, MachOError, UnknownCpuSubtype
from .dylibs import extract_dylibs, extract_rpaths
from .fat import FatBinary, parse_fat, select_architecture
from .header import parse_header
from .load_commands import read_load_commands
from .magic import MachOFormat, resolve_magic
from .macho_structures import (
    DynamicLibrary, FatArchEntry, LoadCommand, MachHeader, RPathEntry, Section,
    SegmentCommand, SymbolEntry, SymtabCommand, UuidCommand, EntryPointCommand,
    EncryptionInfoCommand, ExtractedString, SourceVersionCommand, format_source_version,
)
from .strings import StringFilter, extract_strings
from .symtab import SymbolTable, resolve_symbols

logger = logging.getLogger(__name__)


class MachO:
    """
    One decoded thin Mach-O image.

    Everything is decoded once in the constructor; the object exposes the
    resulting immutable model and never changes afterwards.
    """

    def __init__(self, data, index: int = 0, offset: int = 0):
        self._data = data if isinstance(data, memoryview) else memoryview(data)
        self.index = index
        self.offset = offset
        self._anomalies: List[Anomaly] = []
        self._load()

    def _load(self) -> None:
        self.header: MachHeader = parse_header(self._data)
        cpu = self.header.cpu
        if not cpu.known:
            error = UnknownCpuSubtype(
                f"Unknown cpu 0x{self.header.cputype:08x} subtype 0x{self.header.cpusubtype:08x}", 4
            )
            logger.warning("%s", error)
            self._anomalies.append(Anomaly.from_error(error))

        self.load_commands = read_load_commands(self._data, self.header)
        self.segments: Tuple[SegmentCommand, ...] = self.load_commands.segments
        self.sections: Tuple[Section, ...] = self.load_commands.sections

        symtab = self.find_command(SymtabCommand)
        if symtab is not None:
            self.symbol_table = resolve_symbols(self._data, self.header, symtab, self.sections)
        else:
            self.symbol_table = SymbolTable()

        self.dylibs: List[DynamicLibrary] = extract_dylibs(self.load_commands)
        self.rpaths: List[RPathEntry] = extract_rpaths(self.load_commands)

        logger.info(
            "Decoded %s slice: %d load commands, %d sections, %d symbols, %d anomalies",
            self.header.cpu.name, len(self.load_commands), len(self.sections),
            len(self.symbol_table), len(self.anomalies)
        )

    # ========== Lookups ==========

    @property
    def data(self) -> memoryview:
        return self._data

    @property
    def commands(self) -> Tuple[LoadCommand, ...]:
        return self.load_commands.commands

    @property
    def symbols(self) -> Tuple[SymbolEntry, ...]:
        return self.symbol_table.symbols

    def find_command(self, kind: type) -> Optional[LoadCommand]:
        """First load command of the given type, if any."""
        for command in self.load_commands:
            if isinstance(command, kind):
                return command
        return None

    def section(self, index: int) -> Optional[Section]:
        """Section by 1-based index."""
        if 1 <= index <= len(self.sections):
            return self.sections[index - 1]
        return None

    def section_for_symbol(self, symbol: SymbolEntry) -> Optional[Section]:
        if symbol.section_index is None:
            return None
        return self.section(symbol.section_index)

    def segment(self, name: str) -> Optional[SegmentCommand]:
        for segment in self.segments:
            if segment.segname == name:
                return segment
        return None

    @property
    def uuid(self) -> Optional[str]:
        command = self.find_command(UuidCommand)
        return str(command) if command is not None else None

    @property
    def source_version(self) -> Optional[str]:
        command = self.find_command(SourceVersionCommand)
        return format_source_version(command.version) if command is not None else None

    @property
    def entry_point(self) -> Optional[int]:
        command = self.find_command(EntryPointCommand)
        return command.entryoff if command is not None else None

    @property
    def is_encrypted(self) -> bool:
        return any(
            isinstance(command, EncryptionInfoCommand) and command.cryptid != 0
            for command in self.load_commands
        )

    @property
    def anomalies(self) -> List[Anomaly]:
        """Every anomaly found in this slice, in decode order."""
        result = list(self._anomalies)
        for command in self.load_commands:
            result.extend(command.anomalies)
            if isinstance(command, SegmentCommand):
                for section in command.sections:
                    result.extend(section.anomalies)
        result.extend(self.symbol_table.anomalies)
        for symbol in self.symbol_table:
            result.extend(symbol.anomalies)
        return result

    # ========== Strings ==========

    def extract_strings(self, string_filter: Optional[StringFilter] = None) -> List[ExtractedString]:
        return extract_strings(self._data, self.segments, string_filter)


class MachOBinary:
    """
    A file as a whole: either one thin image or a fat container.

    Slices are decoded on demand, so selecting one architecture never
    touches the bytes of the others.
    """

    def __init__(self, data):
        self._data = data if isinstance(data, memoryview) else memoryview(data)
        self.format: MachOFormat = resolve_magic(self._data)
        self.fat: Optional[FatBinary] = parse_fat(self._data)

        if self.fat is not None:
            self.architectures: Tuple[FatArchEntry, ...] = self.fat.architectures
        else:
            header = parse_header(self._data)
            self.architectures = (FatArchEntry(
                index=0,
                cputype=header.cputype,
                cpusubtype=header.cpusubtype,
                offset=0,
                size=len(self._data),
            ),)

    @property
    def is_fat(self) -> bool:
        return self.fat is not None

    @property
    def anomalies(self) -> List[Anomaly]:
        """Problems found in the fat architecture table."""
        return list(self.fat.anomalies) if self.fat is not None else []

    @property
    def data(self) -> memoryview:
        return self._data

    def slice(self, index: int) -> MachO:
        """
        Decode one architecture.

        Raises:
            InvalidArchitectureIndex: If index is out of range
            MachOError: If the slice cannot be decoded; for a fat file the
                offset is relative to the start of the file
        """
        selected = select_architecture(index, self.architectures)
        logger.debug("Decoding architecture %d at 0x%x (0x%x bytes)", index, selected.offset, selected.size)
        try:
            return MachO(self._data[selected.offset:selected.end], index=index, offset=selected.offset)
        except MachOError as e:
            if not self.is_fat:
                raise
            # Report fat slice errors against the whole file
            offset = None if e.offset is None else selected.offset + e.offset
            raise type(e)(f"Architecture {index}: {e.message}", offset) from e

    def slices(self) -> Iterator[MachO]:
        for entry in self.architectures:
            yield self.slice(entry.index)


def load(data) -> MachOBinary:
    """Resolve the container format of an in-memory file."""
    return MachOBinary(data)


def load_file(path: Union[str, Path]) -> MachOBinary:
    """Read a file once and resolve its container format."""
    return MachOBinary(Path(path).read_bytes())
