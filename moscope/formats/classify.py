"""
Semantic section classification.

Sections are classified by an ordered rule table, evaluated first match
wins: definitive type codes, then well-known names, then type codes that
several kinds share, then instruction attributes, then the owning segment.
Anything left is Other when it has a name at all and Unknown otherwise.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List

from .macho_constants import (
    S_CSTRING_LITERALS, S_ZEROFILL, S_GB_ZEROFILL, S_THREAD_LOCAL_ZEROFILL,
    S_LAZY_SYMBOL_POINTERS, S_NON_LAZY_SYMBOL_POINTERS, S_LAZY_DYLIB_SYMBOL_POINTERS,
    S_SYMBOL_STUBS, S_COALESCED, S_4BYTE_LITERALS, S_8BYTE_LITERALS, S_16BYTE_LITERALS,
    S_LITERAL_POINTERS, S_MOD_INIT_FUNC_POINTERS, S_MOD_TERM_FUNC_POINTERS,
    S_THREAD_LOCAL_REGULAR, S_THREAD_LOCAL_VARIABLES, S_THREAD_LOCAL_VARIABLE_POINTERS,
    S_THREAD_LOCAL_INIT_FUNCTION_POINTERS,
    S_ATTR_PURE_INSTRUCTIONS, S_ATTR_SOME_INSTRUCTIONS,
    SECTION_TYPE,
)


class SectionKind(Enum):
    CODE = "Code"
    STUB = "Stub"
    DATA = "Data"
    BSS = "Bss"
    CSTRING = "CString"
    CONST_DATA = "ConstData"
    SYMBOL_POINTER = "SymbolPointer"
    EXCEPTION = "Exception"
    UNWIND = "Unwind"
    OBJC = "ObjC"
    OBJC_METADATA = "ObjCMetadata"
    OTHER = "Other"
    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SectionInfo:
    """The inputs every rule looks at."""
    section_type: int
    attributes: int
    name: str
    segment: str


@dataclass(frozen=True)
class SectionRule:
    description: str
    predicate: Callable[[SectionInfo], bool]
    kind: SectionKind


def _type_in(*types: int) -> Callable[[SectionInfo], bool]:
    wanted = frozenset(types)
    return lambda info: info.section_type in wanted


def _name_in(*names: str) -> Callable[[SectionInfo], bool]:
    wanted = frozenset(names)
    return lambda info: info.name in wanted


OBJC_METADATA_SECTIONS = (
    "__objc_classlist", "__objc_nlclslist", "__objc_catlist", "__objc_nlcatlist",
    "__objc_protolist", "__objc_imageinfo", "__objc_const", "__objc_data",
)

SECTION_RULES: List[SectionRule] = [
    # Type codes that mean exactly one thing
    SectionRule("cstring literals", _type_in(S_CSTRING_LITERALS), SectionKind.CSTRING),
    SectionRule("zero fill", _type_in(S_ZEROFILL, S_GB_ZEROFILL, S_THREAD_LOCAL_ZEROFILL), SectionKind.BSS),
    SectionRule(
        "symbol pointers",
        _type_in(S_LAZY_SYMBOL_POINTERS, S_NON_LAZY_SYMBOL_POINTERS, S_LAZY_DYLIB_SYMBOL_POINTERS),
        SectionKind.SYMBOL_POINTER,
    ),
    SectionRule("symbol stubs", _type_in(S_SYMBOL_STUBS), SectionKind.STUB),

    # Well-known names
    SectionRule("__text", _name_in("__text"), SectionKind.CODE),
    SectionRule(
        "stub names",
        _name_in("__stubs", "__stub_helper", "__auth_stubs", "__symbol_stub", "__picsymbol_stub"),
        SectionKind.STUB,
    ),
    SectionRule(
        "pointer names",
        _name_in("__got", "__auth_got", "__la_symbol_ptr", "__nl_symbol_ptr", "__auth_ptr"),
        SectionKind.SYMBOL_POINTER,
    ),
    SectionRule("unwind names", _name_in("__unwind_info", "__compact_unwind"), SectionKind.UNWIND),
    SectionRule("exception names", _name_in("__gcc_except_tab", "__eh_frame"), SectionKind.EXCEPTION),
    SectionRule("objc metadata names", _name_in(*OBJC_METADATA_SECTIONS), SectionKind.OBJC_METADATA),
    SectionRule(
        "other objc sections",
        lambda info: info.name.startswith("__objc_") or info.segment == "__OBJC",
        SectionKind.OBJC,
    ),
    SectionRule("bss names", _name_in("__bss", "__common", "__thread_bss"), SectionKind.BSS),
    SectionRule("cstring names", _name_in("__cstring", "__oslogstring"), SectionKind.CSTRING),
    SectionRule(
        "const names",
        _name_in("__const", "__literal4", "__literal8", "__literal16", "__cfstring"),
        SectionKind.CONST_DATA,
    ),
    SectionRule(
        "data names",
        _name_in("__data", "__mod_init_func", "__mod_term_func", "__thread_vars", "__thread_data"),
        SectionKind.DATA,
    ),

    # Type codes shared by several kinds of content
    SectionRule(
        "literal types",
        _type_in(S_COALESCED, S_4BYTE_LITERALS, S_8BYTE_LITERALS, S_16BYTE_LITERALS, S_LITERAL_POINTERS),
        SectionKind.CONST_DATA,
    ),
    SectionRule(
        "initializer and thread local types",
        _type_in(
            S_MOD_INIT_FUNC_POINTERS, S_MOD_TERM_FUNC_POINTERS, S_THREAD_LOCAL_REGULAR,
            S_THREAD_LOCAL_VARIABLES, S_THREAD_LOCAL_VARIABLE_POINTERS,
            S_THREAD_LOCAL_INIT_FUNCTION_POINTERS,
        ),
        SectionKind.DATA,
    ),

    # Attributes
    SectionRule(
        "instructions",
        lambda info: bool(info.attributes & (S_ATTR_PURE_INSTRUCTIONS | S_ATTR_SOME_INSTRUCTIONS)),
        SectionKind.CODE,
    ),

    # Owning segment
    SectionRule(
        "data segments",
        lambda info: info.segment.startswith("__DATA") or info.segment.startswith("__AUTH"),
        SectionKind.DATA,
    ),
    SectionRule("text segment", lambda info: info.segment == "__TEXT", SectionKind.CONST_DATA),

    SectionRule("named", lambda info: bool(info.name), SectionKind.OTHER),
]


def _as_int(value) -> int:
    try:
        return int(value) & 0xFFFFFFFF
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_str(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).split(b'\x00', 1)[0].decode('utf-8', errors='replace')
    return str(value)


def classify_section(section_type, attributes, name, segment) -> SectionKind:
    """
    Classify a section by type code, attributes, name and owning segment.

    Never raises: unrecognized input classifies as Other (if named) or
    Unknown.
    """
    info = SectionInfo(
        section_type=_as_int(section_type) & SECTION_TYPE,
        attributes=_as_int(attributes),
        name=_as_str(name),
        segment=_as_str(segment),
    )
    for rule in SECTION_RULES:
        if rule.predicate(info):
            return rule.kind
    return SectionKind.UNKNOWN
