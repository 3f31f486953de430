"""
Mach-O structure definitions for macOS/iOS binaries.

Every structure here is produced once by a decoder and never modified, so
all of them are frozen dataclasses. Sections are linked to symbols through
their 1-based section index, never by reference.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple
from uuid import UUID

from ..errors import Anomaly
from .classify import SectionKind
from .cpu import CpuArch, resolve_cpu
from .magic import MachOFormat
from .macho_constants import (
    FILE_TYPES, HEADER_FLAGS, KNOWN_SEGMENTS, PLATFORMS, TOOLS,
    LC_REQ_DYLD, SECTION_TYPE, SECTION_ATTRIBUTES, SECTION_TYPE_NAMES,
    SECTION_ATTRIBUTE_NAMES, ZEROFILL_TYPES,
    VM_PROT_READ, VM_PROT_WRITE, VM_PROT_EXECUTE,
    MACH_HEADER_SIZE, MACH_HEADER_64_SIZE,
    load_command_name,
)


def format_protection(prot: int) -> str:
    """Render a vm_prot_t as an rwx triplet."""
    return ''.join((
        'r' if prot & VM_PROT_READ else '-',
        'w' if prot & VM_PROT_WRITE else '-',
        'x' if prot & VM_PROT_EXECUTE else '-',
    ))


def format_version(version: int) -> str:
    """Render a packed xxxx.yy.zz version number."""
    return f"{version >> 16}.{(version >> 8) & 0xFF}.{version & 0xFF}"


def format_source_version(version: int) -> str:
    """Render a packed a.b.c.d.e source version (24.10.10.10.10 bits)."""
    parts = [
        version >> 40,
        (version >> 30) & 0x3FF,
        (version >> 20) & 0x3FF,
        (version >> 10) & 0x3FF,
        version & 0x3FF,
    ]
    while len(parts) > 2 and parts[-1] == 0:
        parts.pop()
    return '.'.join(str(p) for p in parts)


@dataclass(frozen=True)
class FatHeader:
    """Universal binary header."""
    magic: int = 0
    nfat_arch: int = 0
    is_64: bool = False


@dataclass(frozen=True)
class SliceRange:
    """Byte range of one architecture slice inside a fat file."""
    index: int
    offset: int
    size: int

    @property
    def end(self) -> int:
        return self.offset + self.size


@dataclass(frozen=True)
class FatArchEntry:
    """Universal binary architecture entry."""
    index: int = 0
    cputype: int = 0
    cpusubtype: int = 0
    offset: int = 0
    size: int = 0
    align: int = 0
    reserved: int = 0

    @property
    def cpu(self) -> CpuArch:
        return resolve_cpu(self.cputype, self.cpusubtype)

    @property
    def slice_range(self) -> SliceRange:
        return SliceRange(self.index, self.offset, self.size)


@dataclass(frozen=True)
class MachHeader:
    """Mach-O header (32-bit or 64-bit)."""
    magic: int = 0
    cputype: int = 0
    cpusubtype: int = 0
    filetype: int = 0
    ncmds: int = 0
    sizeofcmds: int = 0
    flags: int = 0
    reserved: Optional[int] = None
    format: MachOFormat = MachOFormat.THIN64_SWAPPED

    @property
    def is_64(self) -> bool:
        return self.format.is_64

    @property
    def byte_order(self) -> str:
        return self.format.byte_order

    @property
    def header_size(self) -> int:
        return MACH_HEADER_64_SIZE if self.is_64 else MACH_HEADER_SIZE

    @property
    def cpu(self) -> CpuArch:
        return resolve_cpu(self.cputype, self.cpusubtype)

    @property
    def file_type_name(self) -> str:
        return FILE_TYPES.get(self.filetype, (f"0x{self.filetype:x}", ""))[0]

    @property
    def file_type_description(self) -> str:
        return FILE_TYPES.get(self.filetype, ("", "Unknown File Type"))[1]

    @property
    def unknown_flags(self) -> int:
        known = 0
        for bit in HEADER_FLAGS:
            known |= bit
        return self.flags & ~known

    @property
    def flag_names(self) -> List[str]:
        """Flag names in bit order; unnamed bits are kept as hex strings."""
        names = []
        for bit in range(32):
            mask = 1 << bit
            if self.flags & mask:
                names.append(HEADER_FLAGS.get(mask, f"0x{mask:08x}"))
        return names


# ========== Load commands ==========

@dataclass(frozen=True)
class LoadCommand:
    """Load command header, shared by every decoded command."""
    cmd: int = 0
    cmdsize: int = 0
    offset: int = 0
    anomalies: Tuple[Anomaly, ...] = ()

    @property
    def name(self) -> str:
        return load_command_name(self.cmd)

    @property
    def requires_dyld(self) -> bool:
        return bool(self.cmd & LC_REQ_DYLD)


@dataclass(frozen=True)
class GenericCommand(LoadCommand):
    """Recognized load command kept as raw payload."""
    payload: bytes = b''


@dataclass(frozen=True)
class UnknownCommand(GenericCommand):
    """Unrecognized load command id, preserved verbatim."""


@dataclass(frozen=True)
class Section:
    """Section of a segment (32-bit fields widened to 64 bits)."""
    index: int = 0
    sectname: str = ""
    segname: str = ""
    addr: int = 0
    size: int = 0
    offset: int = 0
    align: int = 0
    reloff: int = 0
    nreloc: int = 0
    flags: int = 0
    reserved1: int = 0
    reserved2: int = 0
    reserved3: int = 0
    kind: SectionKind = SectionKind.UNKNOWN
    anomalies: Tuple[Anomaly, ...] = ()

    @property
    def section_type(self) -> int:
        return self.flags & SECTION_TYPE

    @property
    def attributes(self) -> int:
        return self.flags & SECTION_ATTRIBUTES

    @property
    def type_name(self) -> str:
        return SECTION_TYPE_NAMES.get(self.section_type, f"0x{self.section_type:02x}")

    @property
    def attribute_names(self) -> List[str]:
        return [name for bit, name in SECTION_ATTRIBUTE_NAMES.items() if self.flags & bit]

    @property
    def is_zerofill(self) -> bool:
        return self.section_type in ZEROFILL_TYPES

    @property
    def vm_range(self) -> Tuple[int, int]:
        return self.addr, self.addr + self.size

    @property
    def file_range(self) -> Tuple[int, int]:
        if self.is_zerofill:
            return self.offset, self.offset
        return self.offset, self.offset + self.size


@dataclass(frozen=True)
class SegmentCommand(LoadCommand):
    """LC_SEGMENT / LC_SEGMENT_64."""
    segname: str = ""
    vmaddr: int = 0
    vmsize: int = 0
    fileoff: int = 0
    filesize: int = 0
    maxprot: int = 0
    initprot: int = 0
    nsects: int = 0
    flags: int = 0
    sections: Tuple[Section, ...] = ()

    @property
    def vm_range(self) -> Tuple[int, int]:
        return self.vmaddr, self.vmaddr + self.vmsize

    @property
    def file_range(self) -> Tuple[int, int]:
        return self.fileoff, self.fileoff + self.filesize

    @property
    def maxprot_str(self) -> str:
        return format_protection(self.maxprot)

    @property
    def initprot_str(self) -> str:
        return format_protection(self.initprot)

    @property
    def description(self) -> str:
        return KNOWN_SEGMENTS.get(self.segname, "")


@dataclass(frozen=True)
class SymtabCommand(LoadCommand):
    """Symbol table load command."""
    symoff: int = 0
    nsyms: int = 0
    stroff: int = 0
    strsize: int = 0


@dataclass(frozen=True)
class DysymtabCommand(LoadCommand):
    """Dynamic symbol table load command."""
    ilocalsym: int = 0
    nlocalsym: int = 0
    iextdefsym: int = 0
    nextdefsym: int = 0
    iundefsym: int = 0
    nundefsym: int = 0
    tocoff: int = 0
    ntoc: int = 0
    modtaboff: int = 0
    nmodtab: int = 0
    extrefsymoff: int = 0
    nextrefsyms: int = 0
    indirectsymoff: int = 0
    nindirectsyms: int = 0
    extreloff: int = 0
    nextrel: int = 0
    locreloff: int = 0
    nlocrel: int = 0


@dataclass(frozen=True)
class DylinkerCommand(LoadCommand):
    """LC_LOAD_DYLINKER, LC_ID_DYLINKER and LC_DYLD_ENVIRONMENT."""
    name_offset: int = 0
    path: str = ""


@dataclass(frozen=True)
class DylibCommand(LoadCommand):
    """LC_LOAD_DYLIB and its variants."""
    name_offset: int = 0
    timestamp: int = 0
    current_version: int = 0
    compatibility_version: int = 0
    path: str = ""


@dataclass(frozen=True)
class RpathCommand(LoadCommand):
    """LC_RPATH."""
    path_offset: int = 0
    path: str = ""


@dataclass(frozen=True)
class UuidCommand(LoadCommand):
    """LC_UUID."""
    uuid: bytes = b'\x00' * 16

    def __str__(self) -> str:
        return str(UUID(bytes=self.uuid)).upper()


@dataclass(frozen=True)
class BuildToolVersion:
    tool: int = 0
    version: int = 0

    @property
    def tool_name(self) -> str:
        return TOOLS.get(self.tool, f"tool {self.tool}")


@dataclass(frozen=True)
class BuildVersionCommand(LoadCommand):
    """LC_BUILD_VERSION."""
    platform: int = 0
    minos: int = 0
    sdk: int = 0
    tools: Tuple[BuildToolVersion, ...] = ()

    @property
    def platform_name(self) -> str:
        return PLATFORMS.get(self.platform, f"platform {self.platform}")


@dataclass(frozen=True)
class VersionMinCommand(LoadCommand):
    """LC_VERSION_MIN_MACOSX and friends."""
    version: int = 0
    sdk: int = 0


@dataclass(frozen=True)
class SourceVersionCommand(LoadCommand):
    """LC_SOURCE_VERSION."""
    version: int = 0


@dataclass(frozen=True)
class EntryPointCommand(LoadCommand):
    """LC_MAIN."""
    entryoff: int = 0
    stacksize: int = 0


@dataclass(frozen=True)
class ThreadCommand(LoadCommand):
    """LC_THREAD / LC_UNIXTHREAD, thread states kept raw."""
    flavor: int = 0
    count: int = 0
    state: bytes = b''


@dataclass(frozen=True)
class LinkeditDataCommand(LoadCommand):
    """Commands pointing at a blob in __LINKEDIT (function starts, code signature, ...)."""
    dataoff: int = 0
    datasize: int = 0


@dataclass(frozen=True)
class DyldInfoCommand(LoadCommand):
    """LC_DYLD_INFO / LC_DYLD_INFO_ONLY."""
    rebase_off: int = 0
    rebase_size: int = 0
    bind_off: int = 0
    bind_size: int = 0
    weak_bind_off: int = 0
    weak_bind_size: int = 0
    lazy_bind_off: int = 0
    lazy_bind_size: int = 0
    export_off: int = 0
    export_size: int = 0


@dataclass(frozen=True)
class EncryptionInfoCommand(LoadCommand):
    """LC_ENCRYPTION_INFO / LC_ENCRYPTION_INFO_64."""
    cryptoff: int = 0
    cryptsize: int = 0
    cryptid: int = 0
    pad: int = 0


# ========== Symbols ==========

class SymbolKind(Enum):
    UNDEFINED = "undefined"
    ABSOLUTE = "absolute"
    SECTION = "section"
    INDIRECT = "indirect"
    PREBOUND_UNDEFINED = "prebound_undefined"


@dataclass(frozen=True)
class SymbolEntry:
    """Decoded nlist / nlist_64 entry."""
    index: int = 0
    name: str = ""
    name_offset: int = 0
    n_type: int = 0
    n_sect: int = 0
    n_desc: int = 0
    value: int = 0
    kind: SymbolKind = SymbolKind.UNDEFINED
    external: bool = False
    private_external: bool = False
    debug: bool = False
    section_index: Optional[int] = None
    anomalies: Tuple[Anomaly, ...] = ()


# ========== Libraries ==========

class DylibKind(Enum):
    LOAD = "load"
    WEAK_LOAD = "weak"
    REEXPORT = "reexport"
    LAZY_LOAD = "lazy"
    UPWARD_LOAD = "upward"
    ID = "id"


@dataclass(frozen=True)
class DynamicLibrary:
    """A library the image links against (or its own install name)."""
    path: str = ""
    timestamp: int = 0
    current_version: int = 0
    compatibility_version: int = 0
    kind: DylibKind = DylibKind.LOAD
    load_command: Optional[DylibCommand] = None

    @property
    def current_version_str(self) -> str:
        return format_version(self.current_version)

    @property
    def compatibility_version_str(self) -> str:
        return format_version(self.compatibility_version)


@dataclass(frozen=True)
class RPathEntry:
    """A runtime search path."""
    path: str = ""
    load_command: Optional[RpathCommand] = None


@dataclass(frozen=True)
class ExtractedString:
    """A printable run found inside a section."""
    value: str = ""
    segname: str = ""
    sectname: str = ""
    address: int = 0


@dataclass(frozen=True)
class LoadCommandTable:
    """Ordered load commands of one slice."""
    commands: Tuple[LoadCommand, ...] = ()
    sections: Tuple[Section, ...] = field(default=())

    @property
    def total_size(self) -> int:
        return sum(command.cmdsize for command in self.commands)

    @property
    def segments(self) -> Tuple[SegmentCommand, ...]:
        return tuple(c for c in self.commands if isinstance(c, SegmentCommand))

    def __iter__(self):
        return iter(self.commands)

    def __len__(self) -> int:
        return len(self.commands)
