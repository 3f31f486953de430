from moscope.formats.macho import MachO
from moscope.formats.macho_constants import N_SECT, N_EXT, N_UNDF, N_ABS, N_INDR, N_PEXT
from moscope.formats.macho_structures import SymbolKind
from moscope.formats.symtab import sort_symbols

from macho_builder import MachOBuilder, Section, TEXT_BASE


def _image_with_symbols(entries, names, nsyms=None, strsize=None, size=0x3000):
    """One __TEXT segment with a single __text section, then a symbol table at 0x2000."""
    b = MachOBuilder()
    text = Section("__text", "__TEXT", 0x1000, 0x100, 0x1000, 0x80000400)
    b.add_segment("__TEXT", 0, 0x2000, 0, 0x2000, sections=[text])
    table, offsets = MachOBuilder.string_table(names)
    symbols = b''.join(b.nlist(*entry(offsets)) for entry in entries)
    b.add_symtab(0x2000, len(entries) if nsyms is None else nsyms,
                 0x2800, len(table) if strsize is None else strsize)
    b.place(0x2000, symbols)
    b.place(0x2800, table)
    return MachO(b.build(size=size))


def test_sample_symbols(executable):
    macho = MachO(executable)
    assert [s.name for s in macho.symbols] == ["__mh_execute_header", "_main", "_helper", "_printf"]
    assert [s.kind for s in macho.symbols] == [
        SymbolKind.SECTION, SymbolKind.SECTION, SymbolKind.SECTION, SymbolKind.UNDEFINED
    ]
    assert [s.external for s in macho.symbols] == [True, True, False, True]
    assert [s.index for s in macho.symbols] == [0, 1, 2, 3]

    main = macho.symbols[1]
    assert main.value == TEXT_BASE + 0x1000
    assert main.section_index == 1
    assert macho.section_for_symbol(main).sectname == "__text"

    printf = macho.symbols[3]
    assert printf.section_index is None
    assert macho.section_for_symbol(printf) is None
    assert printf.n_desc == 0x100
    assert not macho.anomalies


def test_resolution_is_deterministic(executable):
    assert MachO(executable).symbols == MachO(executable).symbols


def test_sort_by_value_then_name(executable):
    ordered = sort_symbols(MachO(executable).symbols)
    assert [s.name for s in ordered] == ["_printf", "__mh_execute_header", "_main", "_helper"]


def test_name_index_outside_string_table():
    macho = _image_with_symbols([
        lambda o: (o[0], N_SECT | N_EXT, 1, 0, 0x1000),
        lambda o: (0x500, N_SECT | N_EXT, 1, 0, 0x1004),
    ], ["_good"])
    good, bad = macho.symbols
    assert good.name == "_good"
    assert bad.name == "<bad string index 0x500>"
    assert bad.name_offset == 0x500
    assert [a.kind for a in bad.anomalies] == ["StringTableIndexOutOfRange"]
    # The rest of the entry still decodes
    assert bad.kind is SymbolKind.SECTION
    assert bad.value == 0x1004


def test_unterminated_name_runs_to_end_of_table():
    b = MachOBuilder()
    b.add_symtab(0x1000, 1, 0x1100, 5)
    b.place(0x1000, b.nlist(1, N_ABS | N_EXT, 0, 0, 0x42))
    b.place(0x1100, b"\x00_abcdef")
    macho = MachO(b.build(size=0x1200))
    symbol = macho.symbols[0]
    assert symbol.name == "_abc"
    assert symbol.kind is SymbolKind.ABSOLUTE
    assert not symbol.anomalies


def test_symbol_count_clamped_to_file():
    macho = _image_with_symbols([
        lambda o: (o[0], N_SECT, 1, 0, 0x1000),
    ], ["_only"], nsyms=100000)
    assert len(macho.symbols) > 0
    assert macho.symbol_table.anomalies[0].kind == "TruncatedFile"
    assert macho.symbols[0].name == "_only"


def test_string_table_clamped_to_file():
    macho = _image_with_symbols([
        lambda o: (o[0], N_SECT, 1, 0, 0x1000),
    ], ["_only"], strsize=0x100000)
    assert macho.symbols[0].name == "_only"
    assert [a.kind for a in macho.symbol_table.anomalies] == ["TruncatedFile"]


def test_debug_entries():
    n_fun, n_so = 0x24, 0x64
    macho = _image_with_symbols([
        lambda o: (o[0], n_fun | N_EXT, 1, 0, 0x1000),
        lambda o: (o[1], n_so, 0, 0, 0),
    ], ["_func", "main.c"])
    func, source = macho.symbols
    assert func.debug and source.debug
    assert func.kind is SymbolKind.SECTION
    assert func.section_index == 1
    assert source.kind is SymbolKind.ABSOLUTE
    assert not func.external and not func.private_external


def test_other_symbol_types():
    macho = _image_with_symbols([
        lambda o: (o[0], N_INDR | N_EXT, 0, 0, o[1]),
        lambda o: (o[1], N_SECT | N_PEXT, 1, 0, 0x1010),
        lambda o: (o[2], N_UNDF | N_EXT, 0, 0, 0),
    ], ["_alias", "_target", "_import"])
    alias, target, imported = macho.symbols
    assert alias.kind is SymbolKind.INDIRECT
    assert target.private_external and not target.external
    assert imported.kind is SymbolKind.UNDEFINED


def test_unknown_type_bits():
    macho = _image_with_symbols([
        lambda o: (o[0], 0x06, 0, 0, 0),
    ], ["_weird"])
    symbol = macho.symbols[0]
    assert symbol.kind is SymbolKind.UNDEFINED
    assert [a.kind for a in symbol.anomalies] == ["MalformedLoadCommand"]


def test_section_number_out_of_range():
    macho = _image_with_symbols([
        lambda o: (o[0], N_SECT | N_EXT, 9, 0, 0x1000),
    ], ["_lost"])
    symbol = macho.symbols[0]
    assert symbol.kind is SymbolKind.SECTION
    assert symbol.section_index is None
    assert [a.kind for a in symbol.anomalies] == ["SectionOutOfBounds"]
    assert symbol.anomalies[0] in macho.anomalies


def test_32bit_nlist():
    b = MachOBuilder(is_64=False)
    table, offsets = MachOBuilder.string_table(["_start"])
    b.add_symtab(0x400, 1, 0x500, len(table))
    b.place(0x400, b.nlist(offsets[0], N_ABS | N_EXT, 0, 0, 0xDEADBEEF))
    b.place(0x500, table)
    macho = MachO(b.build(size=0x600))
    assert macho.symbols[0].name == "_start"
    assert macho.symbols[0].value == 0xDEADBEEF
