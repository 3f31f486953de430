import pytest

from moscope.errors import MalformedLoadCommand, TruncatedFile
from moscope.formats.header import parse_header
from moscope.formats.load_commands import read_load_commands, registered_commands
from moscope.formats.macho import MachO
from moscope.formats.macho_constants import (
    CPU_TYPE_ARM, CPU_TYPE_POWERPC, LC_SEGMENT_64, LC_UUID, LC_MAIN, LC_SYMTAB,
    LC_LOAD_DYLIB, LC_SUB_FRAMEWORK, LC_CODE_SIGNATURE, MH_DYLIB,
)
from moscope.formats.macho_structures import (
    BuildVersionCommand, DylinkerCommand, EntryPointCommand, GenericCommand, LinkeditDataCommand,
    SegmentCommand, SourceVersionCommand, SymtabCommand, UnknownCommand, UuidCommand,
    format_source_version,
)

from macho_builder import MachOBuilder, Section, sample_executable


def test_thin_arm64_executable(executable):
    header = parse_header(executable)
    assert header.cpu.name == "arm64"
    assert header.file_type_name == "MH_EXECUTE"
    assert header.file_type_description == "Demand Paged Executable File"
    assert header.flag_names == ["NOUNDEFS", "DYLDLINK", "TWOLEVEL", "BINDS_TO_WEAK", "PIE"]
    assert header.unknown_flags == 0
    assert header.magic == 0xFEEDFACF
    assert header.reserved == 0

    table = read_load_commands(executable, header)
    assert len(table) == header.ncmds == 18
    assert table.total_size == header.sizeofcmds


def test_decoded_command_variants(executable):
    table = read_load_commands(executable, parse_header(executable))
    commands = list(table)
    assert [c.segname for c in table.segments] == [
        "__PAGEZERO", "__TEXT", "__DATA_CONST", "__DATA", "__LINKEDIT"
    ]
    assert all(isinstance(c, SegmentCommand) for c in commands[:5])
    assert commands[0].cmd == LC_SEGMENT_64

    symtab = next(c for c in commands if isinstance(c, SymtabCommand))
    assert (symtab.symoff, symtab.nsyms, symtab.stroff, symtab.strsize) == (0xC100, 4, 0xC200, 0x40)

    dylinker = next(c for c in commands if isinstance(c, DylinkerCommand))
    assert dylinker.path == "/usr/lib/dyld"

    uuid = next(c for c in commands if isinstance(c, UuidCommand))
    assert uuid.cmd == LC_UUID
    assert str(uuid) == "00010203-0405-0607-0809-0A0B0C0D0E0F"

    build = next(c for c in commands if isinstance(c, BuildVersionCommand))
    assert build.platform_name == "macOS"
    assert build.tools[0].tool_name == "ld"

    main = next(c for c in commands if isinstance(c, EntryPointCommand))
    assert main.cmd == LC_MAIN
    assert main.requires_dyld
    assert main.entryoff == 0x1000

    source = next(c for c in commands if isinstance(c, SourceVersionCommand))
    assert source.version == (1351 << 40) | (2 << 30) | (3 << 20)
    signature = next(c for c in commands if c.cmd == LC_CODE_SIGNATURE)
    assert isinstance(signature, LinkeditDataCommand)
    assert (signature.dataoff, signature.datasize) == (0xC300, 0x100)
    assert all(not c.anomalies for c in commands)


def test_command_offsets_are_contiguous(executable):
    header = parse_header(executable)
    table = read_load_commands(executable, header)
    offset = header.header_size
    for command in table:
        assert command.offset == offset
        offset += command.cmdsize


def test_unknown_command_is_preserved():
    b = MachOBuilder()
    b.add_uuid()
    b.add_raw(0x12345678, bytes(range(32)))
    b.add_main(0x4000)
    data = b.build()

    table = read_load_commands(data, parse_header(data))
    uuid, unknown, main = table.commands
    assert isinstance(uuid, UuidCommand)
    assert isinstance(unknown, UnknownCommand)
    assert unknown.cmd == 0x12345678
    assert unknown.cmdsize == 40
    assert unknown.payload == bytes(range(32))
    assert unknown.name == "UNKNOWN_LOAD_COMMAND"
    assert isinstance(main, EntryPointCommand)
    assert main.entryoff == 0x4000


def test_named_command_without_decoder_is_generic():
    assert LC_SUB_FRAMEWORK not in registered_commands()
    b = MachOBuilder()
    b.add_path_command(LC_SUB_FRAMEWORK, b'', "UIKit")
    data = b.build()
    command = read_load_commands(data, parse_header(data)).commands[0]
    assert type(command) is GenericCommand
    assert command.name == "LC_SUB_FRAMEWORK"
    assert command.payload[4:9] == b"UIKit"


def test_failing_decoder_falls_back_with_anomaly():
    b = MachOBuilder()
    # LC_SYMTAB needs 16 payload bytes
    b.add_raw(LC_SYMTAB, b'\x00' * 8)
    b.add_uuid()
    data = b.build()
    symtab, uuid = read_load_commands(data, parse_header(data)).commands
    assert type(symtab) is GenericCommand
    assert symtab.anomalies[0].kind == "MalformedLoadCommand"
    assert isinstance(uuid, UuidCommand)


def test_misaligned_cmdsize_is_an_anomaly():
    b = MachOBuilder()
    b.add_raw(0x7777, b'\x00' * 4, pad=False)
    data = b.build()
    command = read_load_commands(data, parse_header(data)).commands[0]
    assert command.cmdsize == 12
    assert [a.kind for a in command.anomalies] == ["MalformedLoadCommand"]


def test_cmdsize_below_minimum():
    b = MachOBuilder()
    b.add_raw(LC_UUID, b'\x00' * 16, cmdsize=4)
    data = b.build()
    with pytest.raises(MalformedLoadCommand):
        read_load_commands(data, parse_header(data))


def test_command_crossing_sizeofcmds():
    b = MachOBuilder()
    b.add_uuid()
    b.add_raw(LC_UUID, b'\x00' * 16, cmdsize=64)
    data = b.build(size=0x200)
    with pytest.raises(TruncatedFile):
        read_load_commands(data, parse_header(data))


def test_sizeofcmds_larger_than_commands():
    b = MachOBuilder()
    b.add_uuid()
    b.sizeofcmds_override = 48
    data = b.build(size=0x100)
    with pytest.raises(TruncatedFile):
        read_load_commands(data, parse_header(data))


def test_commands_region_past_end_of_file():
    b = MachOBuilder()
    b.add_uuid()
    b.sizeofcmds_override = 0x1000
    data = b.build()
    with pytest.raises(TruncatedFile):
        read_load_commands(data, parse_header(data))


def test_too_many_commands_declared():
    b = MachOBuilder()
    b.add_uuid()
    b.ncmds_override = 2
    data = b.build(size=0x100)
    with pytest.raises(TruncatedFile):
        read_load_commands(data, parse_header(data))


def test_header_shorter_than_struct():
    with pytest.raises(TruncatedFile):
        parse_header(b'\xcf\xfa\xed\xfe' + b'\x00' * 8)


def test_big_endian_image():
    data = sample_executable(byte_order='>', cputype=CPU_TYPE_POWERPC | 0x01000000)
    macho = MachO(data)
    assert macho.header.byte_order == '>'
    assert macho.header.cpu.name == "ppc64"
    assert len(macho.commands) == 18
    assert macho.dylibs[0].path == "/usr/lib/libSystem.B.dylib"
    assert [s.sectname for s in macho.sections][:2] == ["__text", "__stubs"]


def test_32bit_image():
    b = MachOBuilder(is_64=False, cputype=CPU_TYPE_ARM, cpusubtype=9, filetype=MH_DYLIB)
    text = Section("__text", "__TEXT", 0x1000, 0x10, 0x1000, 0x80000400)
    b.add_segment("__TEXT", 0, 0x2000, 0, 0x2000, sections=[text])
    b.add_dylib("@rpath/libfoo.dylib", cmd=LC_LOAD_DYLIB)
    data = b.build(size=0x2000)

    macho = MachO(data)
    assert not macho.header.is_64
    assert macho.header.header_size == 28
    assert macho.header.cpu.name == "armv7"
    assert macho.header.file_type_name == "MH_DYLIB"
    assert macho.load_commands.total_size == macho.header.sizeofcmds
    segment = macho.segments[0]
    assert segment.cmdsize == 56 + 68
    assert macho.sections[0].sectname == "__text"
    assert macho.dylibs[0].path == "@rpath/libfoo.dylib"


def test_unknown_header_flags_kept():
    b = MachOBuilder(flags=0x1 | 0x40000000)
    b.add_uuid()
    header = parse_header(b.build())
    assert header.flag_names == ["NOUNDEFS", "0x40000000"]
    assert header.unknown_flags == 0x40000000


def test_unknown_cpu_is_an_anomaly():
    b = MachOBuilder(cputype=0x1234, cpusubtype=7)
    b.add_uuid()
    macho = MachO(b.build())
    assert not macho.header.cpu.known
    assert [a.kind for a in macho.anomalies] == ["UnknownCpuSubtype"]
    assert macho.anomalies[0].offset == 4
    assert macho.uuid == "00010203-0405-0607-0809-0A0B0C0D0E0F"


@pytest.mark.parametrize("packed, expected", [
    ((1351 << 40) | (2 << 30) | (3 << 20), "1351.2.3"),
    ((1 << 40) | (2 << 30) | (3 << 20) | (4 << 10) | 5, "1.2.3.4.5"),
    (0, "0.0"),
])
def test_source_version_rendering(packed, expected):
    assert format_source_version(packed) == expected


def test_source_version_of_sample(executable):
    assert MachO(executable).source_version == "1351.2.3"
