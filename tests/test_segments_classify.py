import pytest

from moscope.formats.classify import SECTION_RULES, SectionKind, classify_section
from moscope.formats.macho import MachO
from moscope.formats.macho_constants import (
    S_REGULAR, S_ZEROFILL, S_CSTRING_LITERALS, S_LAZY_SYMBOL_POINTERS, S_SYMBOL_STUBS,
    S_COALESCED, S_MOD_INIT_FUNC_POINTERS, S_THREAD_LOCAL_VARIABLES, S_4BYTE_LITERALS,
    S_ATTR_PURE_INSTRUCTIONS, S_ATTR_SOME_INSTRUCTIONS, S_ATTR_DEBUG,
)

from macho_builder import MachOBuilder, Section


def test_sections_of_sample(executable):
    macho = MachO(executable)
    assert [(s.index, s.sectname, s.kind) for s in macho.sections] == [
        (1, "__text", SectionKind.CODE),
        (2, "__stubs", SectionKind.STUB),
        (3, "__cstring", SectionKind.CSTRING),
        (4, "__unwind_info", SectionKind.UNWIND),
        (5, "__got", SectionKind.SYMBOL_POINTER),
        (6, "__data", SectionKind.DATA),
        (7, "__bss", SectionKind.BSS),
    ]
    assert macho.section(3).sectname == "__cstring"
    assert macho.section(0) is None
    assert macho.section(8) is None


def test_segment_ranges_and_protection(executable):
    macho = MachO(executable)
    text = macho.segment("__TEXT")
    assert text.vm_range == (0x100000000, 0x100004000)
    assert text.file_range == (0, 0x4000)
    assert text.maxprot_str == "r-x"
    assert text.initprot_str == "r-x"
    assert text.description
    assert macho.segment("__DATA").initprot_str == "rw-"
    assert macho.segment("__PAGEZERO").maxprot_str == "---"


def test_section_flag_helpers(executable):
    macho = MachO(executable)
    stubs = macho.section(2)
    assert stubs.type_name == "SYMBOL_STUBS"
    assert stubs.attribute_names == ["PURE_INSTRUCTIONS", "SOME_INSTRUCTIONS"]
    assert stubs.reserved2 == 12
    bss = macho.section(7)
    assert bss.is_zerofill
    assert bss.file_range == (0, 0)


@pytest.mark.parametrize("section_type, attributes, name, segment, expected", [
    (S_REGULAR, 0, "__gcc_except_tab", "__TEXT", SectionKind.EXCEPTION),
    (S_REGULAR, 0, "__eh_frame", "__TEXT", SectionKind.EXCEPTION),
    (S_REGULAR, 0, "__compact_unwind", "__LD", SectionKind.UNWIND),
    (S_CSTRING_LITERALS, 0, "__whatever", "__DATA", SectionKind.CSTRING),
    (S_ZEROFILL, 0, "__data", "__DATA", SectionKind.BSS),
    (S_LAZY_SYMBOL_POINTERS, 0, "__la_symbol_ptr", "__DATA", SectionKind.SYMBOL_POINTER),
    (S_SYMBOL_STUBS, S_ATTR_PURE_INSTRUCTIONS, "__stubs", "__TEXT", SectionKind.STUB),
    (S_REGULAR, 0, "__auth_stubs", "__TEXT", SectionKind.STUB),
    (S_REGULAR, 0, "__auth_got", "__DATA_CONST", SectionKind.SYMBOL_POINTER),
    (S_REGULAR, 0, "__objc_classlist", "__DATA", SectionKind.OBJC_METADATA),
    (S_REGULAR, 0, "__objc_methname", "__TEXT", SectionKind.OBJC),
    (S_REGULAR, 0, "__message_refs", "__OBJC", SectionKind.OBJC),
    (S_REGULAR, 0, "__common", "__DATA", SectionKind.BSS),
    (S_REGULAR, 0, "__oslogstring", "__TEXT", SectionKind.CSTRING),
    (S_REGULAR, 0, "__const", "__TEXT", SectionKind.CONST_DATA),
    (S_4BYTE_LITERALS, 0, "__literal4", "__TEXT", SectionKind.CONST_DATA),
    (S_REGULAR, 0, "__cfstring", "__DATA", SectionKind.CONST_DATA),
    (S_MOD_INIT_FUNC_POINTERS, 0, "__mod_init_func", "__DATA", SectionKind.DATA),
    (S_COALESCED, 0, "__textcoal_nt", "__TEXT", SectionKind.CONST_DATA),
    (S_MOD_INIT_FUNC_POINTERS, 0, "__init_offsets", "__TEXT", SectionKind.DATA),
    (S_THREAD_LOCAL_VARIABLES, 0, "__tlv", "__DATA", SectionKind.DATA),
    (S_REGULAR, S_ATTR_SOME_INSTRUCTIONS, "__init", "__TEXT", SectionKind.CODE),
    (S_REGULAR, 0, "__auth_data", "__AUTH", SectionKind.DATA),
    (S_REGULAR, 0, "__mystuff", "__DATA_DIRTY", SectionKind.DATA),
    (S_REGULAR, 0, "__info_plist", "__TEXT", SectionKind.CONST_DATA),
    (S_REGULAR, S_ATTR_DEBUG, "__debug_info", "__DWARF", SectionKind.OTHER),
    (S_REGULAR, 0, "", "", SectionKind.UNKNOWN),
])
def test_classification_rules(section_type, attributes, name, segment, expected):
    assert classify_section(section_type, attributes, name, segment) is expected


def test_type_code_wins_over_name():
    # Zero fill named like code is still bss
    assert classify_section(S_ZEROFILL, 0, "__text", "__TEXT") is SectionKind.BSS


def test_name_wins_over_attributes():
    assert classify_section(S_REGULAR, S_ATTR_PURE_INSTRUCTIONS, "__eh_frame", "__TEXT") is SectionKind.EXCEPTION


def test_classifier_is_total():
    odd_inputs = [
        (0xFF, 0xFFFFFF00, "\x00\x01", "__TEXT"),
        (-1, -1, None, None),
        ("7", "0", 42, 3.5),
        (0x12345678, 0, b"__cstring\x00\x00", b"__TEXT"),
        (2 ** 40, 2 ** 40, "x" * 1000, ""),
    ]
    for args in odd_inputs:
        assert isinstance(classify_section(*args), SectionKind)


def test_every_kind_is_reachable():
    reachable = {rule.kind for rule in SECTION_RULES} | {SectionKind.UNKNOWN}
    assert reachable == set(SectionKind)


def test_section_outside_segment_is_flagged():
    b = MachOBuilder()
    inside = Section("__text", "__TEXT", 0x1000, 0x10, 0x1000, S_ATTR_PURE_INSTRUCTIONS)
    outside = Section("__const", "__TEXT", 0x3000, 0x10, 0x3000)
    b.add_segment("__TEXT", 0, 0x2000, 0, 0x2000, sections=[inside, outside])
    macho = MachO(b.build(size=0x4000))

    first, second = macho.sections
    assert first.anomalies == ()
    assert [a.kind for a in second.anomalies] == ["SectionOutOfBounds", "SectionOutOfBounds"]
    assert len(macho.anomalies) == 2


def test_more_sections_declared_than_fit():
    b = MachOBuilder()
    text = Section("__text", "__TEXT", 0x1000, 0x10, 0x1000, S_ATTR_PURE_INSTRUCTIONS)
    b.add_segment("__TEXT", 0, 0x2000, 0, 0x2000, sections=[text], nsects=5)
    macho = MachO(b.build(size=0x2000))

    segment = macho.segments[0]
    assert segment.nsects == 5
    assert len(segment.sections) == 1
    assert segment.anomalies[0].kind == "MalformedLoadCommand"


def test_section_indices_continue_across_segments():
    b = MachOBuilder()
    b.add_segment("__TEXT", 0, 0x2000, 0, 0x2000, sections=[
        Section("__text", "__TEXT", 0x1000, 0x10, 0x1000),
        Section("__const", "__TEXT", 0x1010, 0x10, 0x1010),
    ])
    b.add_segment("__DATA", 0x2000, 0x1000, 0x2000, 0x1000, 3, 3, sections=[
        Section("__data", "__DATA", 0x2000, 0x10, 0x2000),
    ])
    macho = MachO(b.build(size=0x3000))
    assert [s.index for s in macho.sections] == [1, 2, 3]
    assert macho.segments[1].sections[0].index == 3
