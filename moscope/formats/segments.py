"""
Segment and section decoding for LC_SEGMENT / LC_SEGMENT_64.
"""

import logging
from dataclasses import replace
from typing import List

from ..errors import Anomaly, MalformedLoadCommand, SectionOutOfBounds
from ..io import BinaryStream
from .classify import classify_section
from .load_commands import CommandContext, register
from .macho_constants import (
    LC_SEGMENT, LC_SEGMENT_64,
    SEGMENT_COMMAND_SIZE, SEGMENT_COMMAND_64_SIZE, SECTION_SIZE, SECTION_64_SIZE,
    SECTION_TYPE, SECTION_ATTRIBUTES,
)
from .macho_structures import Section, SegmentCommand

logger = logging.getLogger(__name__)


@register(LC_SEGMENT, LC_SEGMENT_64)
def decode_segment(stream: BinaryStream, ctx: CommandContext) -> SegmentCommand:
    """Read a segment command and the sections that follow it."""
    is_64 = ctx.cmd == LC_SEGMENT_64
    read_addr = stream.read_uint64 if is_64 else stream.read_uint32

    segname = stream.read_fixed_string(16)
    vmaddr = read_addr()
    vmsize = read_addr()
    fileoff = read_addr()
    filesize = read_addr()
    maxprot = stream.read_int32()
    initprot = stream.read_int32()
    nsects = stream.read_uint32()
    flags = stream.read_uint32()

    header_size = SEGMENT_COMMAND_64_SIZE if is_64 else SEGMENT_COMMAND_SIZE
    section_size = SECTION_64_SIZE if is_64 else SECTION_SIZE
    fits = max(ctx.cmdsize - header_size, 0) // section_size
    count = nsects
    if nsects > fits:
        ctx.note(MalformedLoadCommand(
            f"Segment {segname} declares {nsects} sections but only {fits} fit in {ctx.cmdsize} bytes",
            ctx.offset
        ))
        count = fits

    first_index = ctx.state.next_section_index
    sections = []
    for i in range(count):
        section_offset = ctx.offset + stream.position
        section = _read_section(stream, is_64, first_index + i)
        problems = _check_bounds(section, vmaddr, vmsize, fileoff, filesize, section_offset)
        if problems:
            section = replace(section, anomalies=tuple(problems))
        sections.append(section)
    ctx.state.next_section_index = first_index + count

    logger.debug("Segment %s: %d sections", segname, count)
    return SegmentCommand(
        segname=segname,
        vmaddr=vmaddr,
        vmsize=vmsize,
        fileoff=fileoff,
        filesize=filesize,
        maxprot=maxprot,
        initprot=initprot,
        nsects=nsects,
        flags=flags,
        sections=tuple(sections),
        **ctx.common()
    )


def _read_section(stream: BinaryStream, is_64: bool, index: int) -> Section:
    """Read one section / section_64 struct."""
    read_addr = stream.read_uint64 if is_64 else stream.read_uint32

    sectname = stream.read_fixed_string(16)
    segname = stream.read_fixed_string(16)
    addr = read_addr()
    size = read_addr()
    offset = stream.read_uint32()
    align = stream.read_uint32()
    reloff = stream.read_uint32()
    nreloc = stream.read_uint32()
    flags = stream.read_uint32()
    reserved1 = stream.read_uint32()
    reserved2 = stream.read_uint32()
    reserved3 = stream.read_uint32() if is_64 else 0

    return Section(
        index=index,
        sectname=sectname,
        segname=segname,
        addr=addr,
        size=size,
        offset=offset,
        align=align,
        reloff=reloff,
        nreloc=nreloc,
        flags=flags,
        reserved1=reserved1,
        reserved2=reserved2,
        reserved3=reserved3,
        kind=classify_section(flags & SECTION_TYPE, flags & SECTION_ATTRIBUTES, sectname, segname),
    )


def _check_bounds(section: Section, vmaddr: int, vmsize: int, fileoff: int, filesize: int,
                  struct_offset: int) -> List[Anomaly]:
    problems = []
    start, end = section.vm_range
    if start < vmaddr or end > vmaddr + vmsize:
        problems.append(SectionOutOfBounds(
            f"Section {section.segname},{section.sectname} VM range 0x{start:x}-0x{end:x} "
            f"outside segment 0x{vmaddr:x}-0x{vmaddr + vmsize:x}",
            struct_offset
        ))
    if not section.is_zerofill and section.size:
        start, end = section.file_range
        if start < fileoff or end > fileoff + filesize:
            problems.append(SectionOutOfBounds(
                f"Section {section.segname},{section.sectname} file range 0x{start:x}-0x{end:x} "
                f"outside segment 0x{fileoff:x}-0x{fileoff + filesize:x}",
                struct_offset
            ))

    anomalies = []
    for problem in problems:
        anomaly = Anomaly.from_error(problem)
        logger.warning("%s", anomaly)
        anomalies.append(anomaly)
    return anomalies
