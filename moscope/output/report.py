"""
Structured report output.

These structures define the JSON format produced by `moscope --json` and
the HTTP service. Disabled report sections serialize as null.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import json

from ..errors import Anomaly
from ..formats.macho import MachO, MachOBinary
from ..formats.macho_structures import (
    DynamicLibrary, ExtractedString, LoadCommand, RPathEntry, SegmentCommand, SymbolEntry,
)
from ..formats.strings import StringFilter
from ..formats.symtab import sort_symbols


@dataclass
class ReportOptions:
    """Which parts of a slice to report, and how."""
    include_header: bool = True
    include_load_commands: bool = True
    include_segments: bool = True
    include_dylibs: bool = True
    include_rpaths: bool = True
    include_symbols: bool = True
    include_strings: bool = False
    color: bool = True
    sort_symbols: bool = False
    max_symbols: Optional[int] = None
    string_filter: Optional[StringFilter] = None


@dataclass
class LoadCommandReport:
    command: str = ""
    cmd: int = 0
    size: int = 0

    @classmethod
    def from_command(cls, command: LoadCommand) -> 'LoadCommandReport':
        return cls(command=command.name, cmd=command.cmd, size=command.cmdsize)

    def to_dict(self) -> Dict[str, Any]:
        return {"command": self.command, "cmd": self.cmd, "size": self.size}


@dataclass
class HeaderReport:
    magic: int = 0
    file_type: str = ""
    cpu_type: str = ""
    cpu_subtype: str = ""
    ncmds: int = 0
    sizeofcmds: int = 0
    flags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "magic": self.magic,
            "file_type": self.file_type,
            "cpu_type": self.cpu_type,
            "cpu_subtype": self.cpu_subtype,
            "ncmds": self.ncmds,
            "sizeofcmds": self.sizeofcmds,
            "flags": list(self.flags),
        }


@dataclass
class SectionReport:
    name: str = ""
    segment: str = ""
    kind: str = ""
    addr: int = 0
    size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "segment": self.segment,
            "kind": self.kind,
            "addr": self.addr,
            "size": self.size,
        }


@dataclass
class SegmentReport:
    name: str = ""
    vmaddr: int = 0
    vmsize: int = 0
    fileoff: int = 0
    filesize: int = 0
    maxprot: str = ""
    initprot: str = ""
    sections: List[SectionReport] = field(default_factory=list)

    @classmethod
    def from_segment(cls, segment: SegmentCommand) -> 'SegmentReport':
        return cls(
            name=segment.segname,
            vmaddr=segment.vmaddr,
            vmsize=segment.vmsize,
            fileoff=segment.fileoff,
            filesize=segment.filesize,
            maxprot=segment.maxprot_str,
            initprot=segment.initprot_str,
            sections=[
                SectionReport(s.sectname, s.segname, s.kind.value, s.addr, s.size)
                for s in segment.sections
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "vmaddr": self.vmaddr,
            "vmsize": self.vmsize,
            "fileoff": self.fileoff,
            "filesize": self.filesize,
            "maxprot": self.maxprot,
            "initprot": self.initprot,
            "sections": [s.to_dict() for s in self.sections],
        }


@dataclass
class DylibReport:
    path: str = ""
    timestamp: int = 0
    current_version: str = ""
    compatibility_version: str = ""
    kind: str = ""
    load_command: Optional[LoadCommandReport] = None

    @classmethod
    def from_dylib(cls, dylib: DynamicLibrary) -> 'DylibReport':
        return cls(
            path=dylib.path,
            timestamp=dylib.timestamp,
            current_version=dylib.current_version_str,
            compatibility_version=dylib.compatibility_version_str,
            kind=dylib.kind.value,
            load_command=LoadCommandReport.from_command(dylib.load_command) if dylib.load_command else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "timestamp": self.timestamp,
            "current_version": self.current_version,
            "compatibility_version": self.compatibility_version,
            "kind": self.kind,
            "load_command": self.load_command.to_dict() if self.load_command else None,
        }


@dataclass
class RPathReport:
    source_lc: Optional[LoadCommandReport] = None
    path: str = ""

    @classmethod
    def from_rpath(cls, rpath: RPathEntry) -> 'RPathReport':
        source = LoadCommandReport.from_command(rpath.load_command) if rpath.load_command else None
        return cls(source_lc=source, path=rpath.path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_lc": self.source_lc.to_dict() if self.source_lc else None,
            "path": self.path,
        }


@dataclass
class SymbolReport:
    name: str = ""
    value: int = 0
    kind: str = ""
    section: Optional[int] = None
    sectname: Optional[str] = None
    segname: Optional[str] = None
    external: bool = False
    debug: bool = False

    @classmethod
    def from_symbol(cls, symbol: SymbolEntry, macho: MachO) -> 'SymbolReport':
        section = macho.section_for_symbol(symbol)
        return cls(
            name=symbol.name,
            value=symbol.value,
            kind=symbol.kind.value,
            section=symbol.section_index,
            sectname=section.sectname if section else None,
            segname=section.segname if section else None,
            external=symbol.external,
            debug=symbol.debug,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "addr_hex": f"0x{self.value:016x}",
            "kind": self.kind,
            "section": self.section,
            "sectname": self.sectname,
            "segname": self.segname,
            "external": self.external,
            "debug": self.debug,
        }


@dataclass
class StringReport:
    value: str = ""
    segname: str = ""
    sectname: str = ""
    address: int = 0

    @classmethod
    def from_string(cls, extracted: ExtractedString) -> 'StringReport':
        return cls(extracted.value, extracted.segname, extracted.sectname, extracted.address)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "segname": self.segname,
            "sectname": self.sectname,
            "address": self.address,
        }


def _anomaly_dict(anomaly: Anomaly, base: int = 0) -> Dict[str, Any]:
    return {
        "kind": anomaly.kind,
        "message": anomaly.message,
        "offset": anomaly.offset,
        "file_offset": anomaly.file_offset(base),
    }


@dataclass
class ArchitectureReport:
    """Everything reported for one slice."""
    index: int = 0
    offset: int = 0
    cpu_type: str = ""
    cpu_subtype: str = ""
    header: Optional[HeaderReport] = None
    load_commands: Optional[List[LoadCommandReport]] = None
    segments: Optional[List[SegmentReport]] = None
    dylibs: Optional[List[DylibReport]] = None
    rpaths: Optional[List[RPathReport]] = None
    symbols: Optional[List[SymbolReport]] = None
    strings: Optional[List[StringReport]] = None
    anomalies: List[Anomaly] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        def many(items):
            return None if items is None else [item.to_dict() for item in items]

        return {
            "index": self.index,
            "offset": self.offset,
            "cpu_type": self.cpu_type,
            "cpu_subtype": self.cpu_subtype,
            "header": self.header.to_dict() if self.header else None,
            "load_commands": many(self.load_commands),
            "segments": many(self.segments),
            "dylibs": many(self.dylibs),
            "rpaths": many(self.rpaths),
            "symbols": many(self.symbols),
            "strings": many(self.strings),
            "anomalies": [_anomaly_dict(a, self.offset) for a in self.anomalies],
        }


@dataclass
class MachOReport:
    """
    Complete report for one file.

    Contains one ArchitectureReport per decoded slice; a thin file has a
    single architecture at index 0.
    """
    is_fat: bool = False
    architectures: List[ArchitectureReport] = field(default_factory=list)
    anomalies: List[Anomaly] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_fat": self.is_fat,
            "architectures": [a.to_dict() for a in self.architectures],
            "anomalies": [_anomaly_dict(a) for a in self.anomalies],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def save(self, path: Path) -> None:
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.to_json())


def selected_symbols(macho: MachO, options: ReportOptions) -> List[SymbolEntry]:
    """Symbols in display order, cut at options.max_symbols."""
    symbols = list(macho.symbols)
    if options.sort_symbols:
        symbols = sort_symbols(symbols)
    if options.max_symbols is not None:
        symbols = symbols[:options.max_symbols]
    return symbols


def build_architecture_report(macho: MachO, options: ReportOptions) -> ArchitectureReport:
    header = macho.header
    cpu = header.cpu
    report = ArchitectureReport(
        index=macho.index,
        offset=macho.offset,
        cpu_type=cpu.family,
        cpu_subtype=cpu.name,
        anomalies=macho.anomalies,
    )

    if options.include_header:
        report.header = HeaderReport(
            magic=header.magic,
            file_type=header.file_type_name,
            cpu_type=cpu.family,
            cpu_subtype=cpu.name,
            ncmds=header.ncmds,
            sizeofcmds=header.sizeofcmds,
            flags=header.flag_names,
        )
    if options.include_load_commands:
        report.load_commands = [LoadCommandReport.from_command(c) for c in macho.commands]
    if options.include_segments:
        report.segments = [SegmentReport.from_segment(s) for s in macho.segments]
    if options.include_dylibs:
        report.dylibs = [DylibReport.from_dylib(d) for d in macho.dylibs]
    if options.include_rpaths:
        report.rpaths = [RPathReport.from_rpath(r) for r in macho.rpaths]
    if options.include_symbols:
        report.symbols = [SymbolReport.from_symbol(s, macho) for s in selected_symbols(macho, options)]
    if options.include_strings:
        report.strings = [StringReport.from_string(s) for s in macho.extract_strings(options.string_filter)]

    return report


def build_report(binary: MachOBinary, slices: Iterable[MachO],
                 options: Optional[ReportOptions] = None) -> MachOReport:
    """Assemble the report for the given decoded slices of binary."""
    options = options or ReportOptions()
    return MachOReport(
        is_fat=binary.is_fat,
        architectures=[build_architecture_report(macho, options) for macho in slices],
        anomalies=binary.anomalies,
    )
