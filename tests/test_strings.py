import pytest

from moscope.errors import RegexCompileError
from moscope.formats.macho import MachO
from moscope.formats.macho_structures import SegmentCommand
from moscope.formats.memory_image import MemoryImage
from moscope.formats.strings import StringFilter, extract_strings

from macho_builder import MachOBuilder, Section, TEXT_BASE


def _values(strings):
    return [(s.value, s.address) for s in strings]


def test_default_extraction(executable):
    strings = MachO(executable).extract_strings()
    assert _values(strings) == [
        ("Hello, world!", 0x100001040),
        ("https://example.com/a", 0x10000104E),
        ("http://example.org", 0x100001067),
        ("%d items\n", 0x10000107A),
        ("config-value", 0x100008000),
    ]
    assert (strings[0].segname, strings[0].sectname) == ("__TEXT", "__cstring")
    assert (strings[-1].segname, strings[-1].sectname) == ("__DATA", "__data")


def test_strings_lie_inside_their_sections(executable):
    macho = MachO(executable)
    ranges = {(s.segname, s.sectname): s.vm_range for s in macho.sections}
    for found in macho.extract_strings(StringFilter.build(min_length=1)):
        start, end = ranges[(found.segname, found.sectname)]
        assert start <= found.address
        assert found.address + len(found.value) <= end
        assert len(found.value) >= 1


def test_pattern_keeps_order(executable):
    macho = MachO(executable)
    urls = macho.extract_strings(StringFilter.build(pattern=r'^https?://'))
    assert [s.value for s in urls] == ["https://example.com/a", "http://example.org"]


def test_max_count_cuts_after_filtering(executable):
    macho = MachO(executable)
    urls = macho.extract_strings(StringFilter.build(pattern=r'^https?://', max_count=1))
    assert [s.value for s in urls] == ["https://example.com/a"]
    assert macho.extract_strings(StringFilter.build(max_count=0)) == []


def test_min_length(executable):
    macho = MachO(executable)
    short = macho.extract_strings(StringFilter.build(min_length=2))
    assert ("ok", 0x100001064) in _values(short)
    long_only = macho.extract_strings(StringFilter.build(min_length=15))
    assert [s.value for s in long_only] == ["https://example.com/a", "http://example.org"]


def test_line_breaks_stay_inside_a_string(executable):
    values = [s.value for s in MachO(executable).extract_strings(StringFilter.build(min_length=1))]
    assert "%d items\n" in values
    assert "%d items" not in values


def test_run_not_ending_in_nul_is_skipped():
    b = MachOBuilder()
    cstring = Section("__cstring", "__TEXT", 0x1000, 0x40, 0x1000, 0x2)
    b.add_segment("__TEXT", 0, 0x2000, 0, 0x2000, sections=[cstring])
    b.place(0x1000, b"Usage: tool [options]\r\n\x00binary\x01tail\x00")
    values = [s.value for s in MachO(b.build(size=0x2000)).extract_strings()]
    assert values == ["Usage: tool [options]\r\n", "tail"]


def test_section_selection(executable):
    macho = MachO(executable)
    only_data = macho.extract_strings(StringFilter.build(include_sections=["__DATA,__data"]))
    assert [s.value for s in only_data] == ["config-value"]

    by_name = macho.extract_strings(StringFilter.build(include_sections=["__cstring"]))
    assert len(by_name) == 4

    excluded = macho.extract_strings(StringFilter.build(exclude_sections=["__cstring"]))
    assert [s.value for s in excluded] == ["config-value"]


def test_bad_pattern():
    with pytest.raises(RegexCompileError):
        StringFilter.build(pattern="([unclosed")


@pytest.mark.parametrize("kwargs", [{"min_length": 0}, {"max_count": -1}])
def test_invalid_limits(kwargs):
    with pytest.raises(ValueError):
        StringFilter.build(**kwargs)


def test_zero_fill_section_is_not_scanned():
    b = MachOBuilder()
    bss = Section("__bss", "__DATA", 0x1000, 0x20, 0x1000, 0x1)
    b.add_segment("__DATA", 0x1000, 0x1000, 0x1000, 0x1000, 3, 3, sections=[bss])
    b.place(0x1000, b"not really here\x00")
    assert MachO(b.build(size=0x2000)).extract_strings() == []


def test_memory_image_merges_contiguous_segments(executable):
    macho = MachO(executable)
    image = MemoryImage(macho.data, macho.segments)
    pieces = image.chunks(TEXT_BASE, TEXT_BASE + 0x8000)
    assert len(pieces) == 1
    address, view = pieces[0]
    assert address == TEXT_BASE
    assert len(view) == 0x8000


def test_memory_image_reads_zero_past_file_backing(executable):
    macho = MachO(executable)
    image = MemoryImage(macho.data, macho.segments)
    # __LINKEDIT maps 0x1000 file bytes into 0x4000 of VM
    pieces = image.chunks(TEXT_BASE + 0xC000, TEXT_BASE + 0x10000)
    assert [(a, len(v)) for a, v in pieces] == [(TEXT_BASE + 0xC000, 0x1000)]
    assert image.read(TEXT_BASE + 0xCFF0, 0x20) == bytes(macho.data[0xCFF0:0xD000]) + b'\x00' * 0x10
    assert image.read(0x10, 4) == b'\x00' * 4
    assert image.read(TEXT_BASE + 0x1040, 5) == b"Hello"


def test_overlapping_segments_lower_wins():
    data = bytes(range(256)) * 32
    low = SegmentCommand(segname="A", vmaddr=0x1000, vmsize=0x1000, fileoff=0x1000, filesize=0x1000)
    high = SegmentCommand(segname="B", vmaddr=0x1800, vmsize=0x1000, fileoff=0x1000, filesize=0x1000)
    image = MemoryImage(data, [high, low])
    assert image.read(0x1800, 4) == data[0x1800:0x1804]
    assert [(r.vmaddr, r.fileoff, r.size) for r in image.ranges] == [
        (0x1000, 0x1000, 0x1000),
        (0x2000, 0x1800, 0x800),
    ]


def test_extract_strings_function_defaults(executable):
    macho = MachO(executable)
    assert extract_strings(executable, macho.segments) == macho.extract_strings(StringFilter())
