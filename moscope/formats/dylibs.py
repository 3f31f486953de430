"""
Dynamic library and runtime search path extraction.
"""

import logging
from typing import Iterable, List

from ..io import BinaryStream
from .load_commands import CommandContext, read_lc_str, register
from .macho_constants import (
    LC_ID_DYLIB, LC_LOAD_DYLIB, LC_LOAD_WEAK_DYLIB, LC_REEXPORT_DYLIB,
    LC_LAZY_LOAD_DYLIB, LC_LOAD_UPWARD_DYLIB, LC_RPATH,
)
from .macho_structures import (
    DylibCommand, DylibKind, DynamicLibrary, LoadCommand, RPathEntry, RpathCommand,
    format_version,
)

logger = logging.getLogger(__name__)

__all__ = ['DYLIB_KINDS', 'extract_dylibs', 'extract_rpaths', 'format_version']

DYLIB_KINDS = {
    LC_LOAD_DYLIB: DylibKind.LOAD,
    LC_LOAD_WEAK_DYLIB: DylibKind.WEAK_LOAD,
    LC_REEXPORT_DYLIB: DylibKind.REEXPORT,
    LC_LAZY_LOAD_DYLIB: DylibKind.LAZY_LOAD,
    LC_LOAD_UPWARD_DYLIB: DylibKind.UPWARD_LOAD,
    LC_ID_DYLIB: DylibKind.ID,
}

# dylib_command: cmd, cmdsize, name.offset, timestamp, current_version, compatibility_version
DYLIB_COMMAND_SIZE = 24
RPATH_COMMAND_SIZE = 12


@register(*DYLIB_KINDS)
def _decode_dylib(stream: BinaryStream, ctx: CommandContext) -> DylibCommand:
    name_offset = stream.read_uint32()
    timestamp = stream.read_uint32()
    current_version = stream.read_uint32()
    compatibility_version = stream.read_uint32()
    path = read_lc_str(stream, ctx, name_offset, DYLIB_COMMAND_SIZE)
    return DylibCommand(
        name_offset=name_offset,
        timestamp=timestamp,
        current_version=current_version,
        compatibility_version=compatibility_version,
        path=path,
        **ctx.common()
    )


@register(LC_RPATH)
def _decode_rpath(stream: BinaryStream, ctx: CommandContext) -> RpathCommand:
    path_offset = stream.read_uint32()
    path = read_lc_str(stream, ctx, path_offset, RPATH_COMMAND_SIZE)
    return RpathCommand(path_offset=path_offset, path=path, **ctx.common())


def extract_dylibs(commands: Iterable[LoadCommand]) -> List[DynamicLibrary]:
    """Collect linked libraries (and the image's own install name) in command order."""
    libraries = []
    for command in commands:
        if not isinstance(command, DylibCommand):
            continue
        libraries.append(DynamicLibrary(
            path=command.path,
            timestamp=command.timestamp,
            current_version=command.current_version,
            compatibility_version=command.compatibility_version,
            kind=DYLIB_KINDS[command.cmd],
            load_command=command,
        ))
    logger.debug("Found %d dynamic libraries", len(libraries))
    return libraries


def extract_rpaths(commands: Iterable[LoadCommand]) -> List[RPathEntry]:
    """Collect LC_RPATH entries in command order."""
    return [
        RPathEntry(path=command.path, load_command=command)
        for command in commands if isinstance(command, RpathCommand)
    ]
