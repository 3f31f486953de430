"""
Human readable report rendering with rich.
"""

from typing import Iterable

from rich.console import Console
from rich.markup import escape

from ..formats.macho import MachO, MachOBinary
from ..utils.string_utils import escape_string
from .report import ReportOptions, selected_symbols


class TextReport:
    """
    Renders decoded slices to a rich Console.

    Everything that decides what is shown comes from the ReportOptions
    passed in; decoding never sees these settings.
    """

    def __init__(self, console: Console, options: ReportOptions):
        self.console = console
        self.options = options

    def _heading(self, text: str) -> None:
        self.console.print()
        self.console.print(f"[bold cyan]{escape(text)}[/]")

    def render(self, binary: MachOBinary, slices: Iterable[MachO]) -> None:
        if binary.is_fat:
            self.console.print(
                f"[bold]Universal binary[/] with {len(binary.architectures)} architectures:"
            )
            for entry in binary.architectures:
                self.console.print(
                    f"  {entry.index}: {escape(entry.cpu.label)} "
                    f"offset=0x{entry.offset:x} size=0x{entry.size:x} align=2^{entry.align}"
                )
            for anomaly in binary.anomalies:
                self.console.print(f"  [red]! {escape(str(anomaly))}[/]")

        for macho in slices:
            self.render_slice(macho)

    def render_slice(self, macho: MachO) -> None:
        options = self.options
        self.console.print()
        self.console.rule(f"Architecture {macho.index}: {escape(macho.header.cpu.label)}")

        if options.include_header:
            self._render_header(macho)
        if options.include_load_commands:
            self._render_load_commands(macho)
        if options.include_segments:
            self._render_segments(macho)
        if options.include_dylibs:
            self._render_dylibs(macho)
        if options.include_rpaths:
            self._render_rpaths(macho)
        if options.include_symbols:
            self._render_symbols(macho)
        if options.include_strings:
            self._render_strings(macho)
        self._render_anomalies(macho)

    def _render_header(self, macho: MachO) -> None:
        header = macho.header
        self._heading("Mach-O Header")
        self.console.print(f"  Magic:       0x{header.magic:08x}")
        self.console.print(
            f"  File type:   {escape(header.file_type_description)} {escape('[' + header.file_type_name + ']')}"
        )
        self.console.print(f"  CPU:         {escape(header.cpu.label)}")
        self.console.print(f"  Commands:    {header.ncmds} ({header.sizeofcmds} bytes)")
        flags = " | ".join(header.flag_names) or "none"
        self.console.print(f"  Flags:       0x{header.flags:08x} {escape(flags)}")
        if macho.uuid:
            self.console.print(f"  UUID:        {macho.uuid}")
        if macho.source_version is not None:
            self.console.print(f"  Source:      {macho.source_version}")
        if macho.entry_point is not None:
            self.console.print(f"  Entry point: 0x{macho.entry_point:x}")
        if macho.is_encrypted:
            self.console.print("  [yellow]Encrypted[/]")

    def _render_load_commands(self, macho: MachO) -> None:
        self._heading(f"Load Commands ({len(macho.commands)})")
        for command in macho.commands:
            line = f" - {command.name:<30} cmd=0x{command.cmd:08x} size={command.cmdsize}"
            self.console.print(escape(line))
            for anomaly in command.anomalies:
                self.console.print(f"     [red]! {escape(anomaly.located(macho.offset))}[/]")

    def _render_segments(self, macho: MachO) -> None:
        self._heading(f"Segments ({len(macho.segments)})")
        for segment in macho.segments:
            start, end = segment.vm_range
            fstart, fend = segment.file_range
            self.console.print(
                f"  [bold]{escape(segment.segname or '<unnamed>'):<16}[/] "
                f"vm=0x{start:x}-0x{end:x} file=0x{fstart:x}-0x{fend:x} "
                f"prot={segment.maxprot_str}/{segment.initprot_str}"
            )
            if segment.description:
                self.console.print(f"    [dim]{escape(segment.description)}[/]")
            for section in segment.sections:
                self.console.print(
                    f"    [{section.index:>3}] {escape(section.sectname):<20} "
                    f"{section.kind.value:<14} addr=0x{section.addr:x} size=0x{section.size:x} "
                    f"type={section.type_name}"
                )
                for anomaly in section.anomalies:
                    self.console.print(f"          [red]! {escape(anomaly.located(macho.offset))}[/]")

    def _render_dylibs(self, macho: MachO) -> None:
        self._heading(f"Dynamic Libraries ({len(macho.dylibs)})")
        for dylib in macho.dylibs:
            label = f"[{dylib.kind.value.upper():<8}]"
            self.console.print(
                f"  {escape(label)} {escape(dylib.path)} "
                f"(current {dylib.current_version_str}, compat {dylib.compatibility_version_str})"
            )

    def _render_rpaths(self, macho: MachO) -> None:
        self._heading(f"RPaths ({len(macho.rpaths)})")
        for rpath in macho.rpaths:
            self.console.print(f"  {escape(rpath.path)}")

    def _render_symbols(self, macho: MachO) -> None:
        symbols = selected_symbols(macho, self.options)
        self._heading(f"Symbols ({len(symbols)} of {len(macho.symbols)})")
        for symbol in symbols:
            section = macho.section_for_symbol(symbol)
            where = f"{section.segname},{section.sectname}" if section else ""
            flags = ("E" if symbol.external else "-") + ("D" if symbol.debug else "-")
            self.console.print(
                f"  0x{symbol.value:016x} {flags} {symbol.kind.value:<18} "
                f"{escape(where):<24} {escape(symbol.name)}"
            )

    def _render_strings(self, macho: MachO) -> None:
        strings = macho.extract_strings(self.options.string_filter)
        self._heading(f"Strings ({len(strings)})")
        for extracted in strings:
            self.console.print(
                f"  0x{extracted.address:x} {escape(extracted.segname)},{escape(extracted.sectname)} "
                f"\"{escape(escape_string(extracted.value))}\""
            )

    def _render_anomalies(self, macho: MachO) -> None:
        anomalies = macho.anomalies
        if not anomalies:
            self.console.print()
            self.console.print("[green]Decoded without anomalies[/]")
            return
        self._heading(f"Anomalies ({len(anomalies)})")
        for anomaly in anomalies:
            self.console.print(f"  [red]{escape(anomaly.located(macho.offset))}[/]")
