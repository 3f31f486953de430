"""
Load command enumeration.

Every load command starts with a (cmd, cmdsize) pair. The enumerator walks
exactly ncmds of them, hands each decoder a stream bounded to its own
cmdsize bytes and falls back to raw payload commands whenever a decoder is
missing or fails. Decoders are looked up in a registry filled by the
@register decorator, so adding a command never touches the walking loop.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List

from ..errors import Anomaly, MachOError, MalformedLoadCommand, TruncatedFile
from ..io import BinaryStream
from .macho_constants import (
    LOAD_COMMAND_NAMES, LOAD_COMMAND_SIZE,
    LC_SYMTAB, LC_DYSYMTAB, LC_LOAD_DYLINKER, LC_ID_DYLINKER, LC_DYLD_ENVIRONMENT,
    LC_UUID, LC_BUILD_VERSION, LC_VERSION_MIN_MACOSX, LC_VERSION_MIN_IPHONEOS,
    LC_VERSION_MIN_TVOS, LC_VERSION_MIN_WATCHOS, LC_SOURCE_VERSION, LC_MAIN,
    LC_THREAD, LC_UNIXTHREAD, LC_CODE_SIGNATURE, LC_SEGMENT_SPLIT_INFO,
    LC_FUNCTION_STARTS, LC_DATA_IN_CODE, LC_DYLIB_CODE_SIGN_DRS,
    LC_LINKER_OPTIMIZATION_HINT, LC_DYLD_EXPORTS_TRIE, LC_DYLD_CHAINED_FIXUPS,
    LC_ATOM_INFO, LC_FUNCTION_VARIANTS, LC_FUNCTION_VARIANT_FIXUPS,
    LC_DYLD_INFO, LC_DYLD_INFO_ONLY, LC_ENCRYPTION_INFO, LC_ENCRYPTION_INFO_64,
)
from .macho_structures import (
    MachHeader, LoadCommand, LoadCommandTable, GenericCommand, UnknownCommand,
    SegmentCommand, SymtabCommand, DysymtabCommand, DylinkerCommand, UuidCommand,
    BuildToolVersion, BuildVersionCommand, VersionMinCommand, SourceVersionCommand,
    EntryPointCommand, ThreadCommand, LinkeditDataCommand, DyldInfoCommand,
    EncryptionInfoCommand,
)

logger = logging.getLogger(__name__)


@dataclass
class DecodeState:
    """State shared by all decoders of one slice."""
    is_64: bool
    slice_size: int
    next_section_index: int = 1


@dataclass
class CommandContext:
    """Per-command information handed to a decoder."""
    cmd: int
    cmdsize: int
    offset: int
    state: DecodeState
    anomalies: List[Anomaly] = field(default_factory=list)

    @property
    def is_64(self) -> bool:
        return self.state.is_64

    def common(self) -> dict:
        """Keyword arguments shared by every LoadCommand constructor."""
        return {'cmd': self.cmd, 'cmdsize': self.cmdsize, 'offset': self.offset}

    def note(self, error: MachOError) -> None:
        """Attach a non-fatal problem to the command being decoded."""
        anomaly = Anomaly.from_error(error)
        logger.warning("%s: %s", LOAD_COMMAND_NAMES.get(self.cmd, f"0x{self.cmd:08x}"), anomaly)
        self.anomalies.append(anomaly)


Decoder = Callable[[BinaryStream, CommandContext], LoadCommand]

_DECODERS: Dict[int, Decoder] = {}


def register(*cmds: int) -> Callable[[Decoder], Decoder]:
    """Register a decoder for one or more load command ids."""
    def decorator(func: Decoder) -> Decoder:
        for cmd in cmds:
            _DECODERS[cmd] = func
        return func
    return decorator


def registered_commands() -> List[int]:
    return sorted(_DECODERS)


def read_lc_str(stream: BinaryStream, ctx: CommandContext, str_offset: int, min_offset: int) -> str:
    """
    Read an lc_str: a NUL terminated string stored inside the command.

    An offset outside the command yields an empty string, and a missing
    terminator yields everything up to the end of the command. Both are
    recorded as anomalies.
    """
    if str_offset < min_offset or str_offset >= ctx.cmdsize:
        ctx.note(MalformedLoadCommand(
            f"String offset {str_offset} outside command body [{min_offset}, {ctx.cmdsize})",
            ctx.offset
        ))
        return ""

    value = stream.read_string_to_null(str_offset, ctx.cmdsize)
    if value is None:
        ctx.note(MalformedLoadCommand("String is not NUL terminated", ctx.offset + str_offset))
        raw = bytes(stream.get_data()[str_offset:ctx.cmdsize])
        value = raw.decode('utf-8', errors='replace')
    return value


def _raw_command(stream: BinaryStream, ctx: CommandContext, anomalies=()) -> GenericCommand:
    payload = bytes(stream.get_data()[LOAD_COMMAND_SIZE:])
    kind = GenericCommand if ctx.cmd in LOAD_COMMAND_NAMES else UnknownCommand
    return kind(payload=payload, anomalies=tuple(anomalies), **ctx.common())


def read_load_commands(data, header: MachHeader) -> LoadCommandTable:
    """
    Walk the load commands following the header.

    Args:
        data: Bytes of the thin slice the header was read from
        header: Its decoded header

    Returns:
        LoadCommandTable in on-disk order, with all sections flattened

    Raises:
        TruncatedFile: If the commands region or any command crosses
            sizeofcmds or the end of the slice
        MalformedLoadCommand: If a cmdsize is too small to walk past
    """
    stream = BinaryStream(data, header.byte_order)
    stream.is_32bit = not header.is_64

    start = header.header_size
    end = start + header.sizeofcmds
    if end > stream.length:
        raise TruncatedFile(
            f"Load commands need 0x{end:x} bytes, slice has 0x{stream.length:x}", start
        )

    state = DecodeState(is_64=header.is_64, slice_size=stream.length)
    alignment = 8 if header.is_64 else 4
    commands: List[LoadCommand] = []
    offset = start

    for i in range(header.ncmds):
        if offset + LOAD_COMMAND_SIZE > end:
            raise TruncatedFile(
                f"Load command {i} header crosses sizeofcmds ({header.sizeofcmds})", offset
            )
        stream.position = offset
        cmd = stream.read_uint32()
        cmdsize = stream.read_uint32()

        if cmdsize < LOAD_COMMAND_SIZE:
            raise MalformedLoadCommand(f"Load command {i} has cmdsize {cmdsize}", offset)
        if offset + cmdsize > end:
            raise TruncatedFile(
                f"Load command {i} of {cmdsize} bytes crosses sizeofcmds ({header.sizeofcmds})", offset
            )

        ctx = CommandContext(cmd=cmd, cmdsize=cmdsize, offset=offset, state=state)
        if cmdsize % alignment:
            ctx.note(MalformedLoadCommand(f"cmdsize {cmdsize} is not a multiple of {alignment}", offset))

        command = _decode_command(stream.substream(offset, cmdsize), ctx)
        logger.debug("  [%d] %s cmd=0x%08x size=%d", i, command.name, cmd, cmdsize)
        commands.append(command)
        offset += cmdsize

    if offset != end:
        raise TruncatedFile(
            f"Load commands consumed {offset - start} bytes but sizeofcmds is {header.sizeofcmds}", offset
        )

    sections = tuple(
        section
        for command in commands if isinstance(command, SegmentCommand)
        for section in command.sections
    )
    return LoadCommandTable(commands=tuple(commands), sections=sections)


def _decode_command(stream: BinaryStream, ctx: CommandContext) -> LoadCommand:
    decoder = _DECODERS.get(ctx.cmd)
    if decoder is None:
        return _raw_command(stream, ctx, ctx.anomalies)

    stream.position = LOAD_COMMAND_SIZE
    try:
        command = decoder(stream, ctx)
    except MachOError as e:
        ctx.note(MalformedLoadCommand(f"Cannot decode: {e.message}", e.offset if e.offset is not None else ctx.offset))
        return _raw_command(stream, ctx, ctx.anomalies)

    if ctx.anomalies:
        command = replace(command, anomalies=command.anomalies + tuple(ctx.anomalies))
    return command


# ========== Decoders ==========

@register(LC_SYMTAB)
def _decode_symtab(stream: BinaryStream, ctx: CommandContext) -> SymtabCommand:
    return SymtabCommand(
        symoff=stream.read_uint32(),
        nsyms=stream.read_uint32(),
        stroff=stream.read_uint32(),
        strsize=stream.read_uint32(),
        **ctx.common()
    )


@register(LC_DYSYMTAB)
def _decode_dysymtab(stream: BinaryStream, ctx: CommandContext) -> DysymtabCommand:
    names = [
        'ilocalsym', 'nlocalsym', 'iextdefsym', 'nextdefsym', 'iundefsym', 'nundefsym',
        'tocoff', 'ntoc', 'modtaboff', 'nmodtab', 'extrefsymoff', 'nextrefsyms',
        'indirectsymoff', 'nindirectsyms', 'extreloff', 'nextrel', 'locreloff', 'nlocrel',
    ]
    values = {name: stream.read_uint32() for name in names}
    return DysymtabCommand(**values, **ctx.common())


@register(LC_LOAD_DYLINKER, LC_ID_DYLINKER, LC_DYLD_ENVIRONMENT)
def _decode_dylinker(stream: BinaryStream, ctx: CommandContext) -> DylinkerCommand:
    name_offset = stream.read_uint32()
    path = read_lc_str(stream, ctx, name_offset, 12)
    return DylinkerCommand(name_offset=name_offset, path=path, **ctx.common())


@register(LC_UUID)
def _decode_uuid(stream: BinaryStream, ctx: CommandContext) -> UuidCommand:
    return UuidCommand(uuid=stream.read_bytes(16), **ctx.common())


@register(LC_BUILD_VERSION)
def _decode_build_version(stream: BinaryStream, ctx: CommandContext) -> BuildVersionCommand:
    platform = stream.read_uint32()
    minos = stream.read_uint32()
    sdk = stream.read_uint32()
    ntools = stream.read_uint32()
    if ntools * 8 > stream.remaining:
        raise MalformedLoadCommand(f"{ntools} build tools do not fit in {ctx.cmdsize} bytes", ctx.offset)
    tools = tuple(
        BuildToolVersion(tool=stream.read_uint32(), version=stream.read_uint32())
        for _ in range(ntools)
    )
    return BuildVersionCommand(platform=platform, minos=minos, sdk=sdk, tools=tools, **ctx.common())


@register(LC_VERSION_MIN_MACOSX, LC_VERSION_MIN_IPHONEOS, LC_VERSION_MIN_TVOS, LC_VERSION_MIN_WATCHOS)
def _decode_version_min(stream: BinaryStream, ctx: CommandContext) -> VersionMinCommand:
    return VersionMinCommand(version=stream.read_uint32(), sdk=stream.read_uint32(), **ctx.common())


@register(LC_SOURCE_VERSION)
def _decode_source_version(stream: BinaryStream, ctx: CommandContext) -> SourceVersionCommand:
    return SourceVersionCommand(version=stream.read_uint64(), **ctx.common())


@register(LC_MAIN)
def _decode_main(stream: BinaryStream, ctx: CommandContext) -> EntryPointCommand:
    return EntryPointCommand(entryoff=stream.read_uint64(), stacksize=stream.read_uint64(), **ctx.common())


@register(LC_THREAD, LC_UNIXTHREAD)
def _decode_thread(stream: BinaryStream, ctx: CommandContext) -> ThreadCommand:
    flavor = stream.read_uint32()
    count = stream.read_uint32()
    state = stream.read_bytes(stream.remaining)
    return ThreadCommand(flavor=flavor, count=count, state=state, **ctx.common())


@register(
    LC_CODE_SIGNATURE, LC_SEGMENT_SPLIT_INFO, LC_FUNCTION_STARTS, LC_DATA_IN_CODE,
    LC_DYLIB_CODE_SIGN_DRS, LC_LINKER_OPTIMIZATION_HINT, LC_DYLD_EXPORTS_TRIE,
    LC_DYLD_CHAINED_FIXUPS, LC_ATOM_INFO, LC_FUNCTION_VARIANTS, LC_FUNCTION_VARIANT_FIXUPS,
)
def _decode_linkedit_data(stream: BinaryStream, ctx: CommandContext) -> LinkeditDataCommand:
    dataoff = stream.read_uint32()
    datasize = stream.read_uint32()
    if dataoff + datasize > ctx.state.slice_size:
        ctx.note(TruncatedFile(
            f"Data at 0x{dataoff:x}+0x{datasize:x} extends past end of slice", ctx.offset
        ))
    return LinkeditDataCommand(dataoff=dataoff, datasize=datasize, **ctx.common())


@register(LC_DYLD_INFO, LC_DYLD_INFO_ONLY)
def _decode_dyld_info(stream: BinaryStream, ctx: CommandContext) -> DyldInfoCommand:
    names = [
        'rebase_off', 'rebase_size', 'bind_off', 'bind_size', 'weak_bind_off',
        'weak_bind_size', 'lazy_bind_off', 'lazy_bind_size', 'export_off', 'export_size',
    ]
    values = {name: stream.read_uint32() for name in names}
    return DyldInfoCommand(**values, **ctx.common())


@register(LC_ENCRYPTION_INFO, LC_ENCRYPTION_INFO_64)
def _decode_encryption_info(stream: BinaryStream, ctx: CommandContext) -> EncryptionInfoCommand:
    cryptoff = stream.read_uint32()
    cryptsize = stream.read_uint32()
    cryptid = stream.read_uint32()
    pad = stream.read_uint32() if ctx.cmd == LC_ENCRYPTION_INFO_64 else 0
    if cryptid:
        logger.info("Encrypted range 0x%x+0x%x (cryptid %d)", cryptoff, cryptsize, cryptid)
    return EncryptionInfoCommand(
        cryptoff=cryptoff, cryptsize=cryptsize, cryptid=cryptid, pad=pad, **ctx.common()
    )


# Decoders living in their own modules register themselves on import
from . import segments, dylibs  # noqa: E402,F401
