"""
Binary format parsers for Mach-O and FAT (Universal) files.
"""

from .load_commands import read_load_commands, register
from .magic import MachOFormat, resolve_magic
from .cpu import CpuArch, resolve_cpu
from .fat import FatBinary, parse_fat, select_architecture
from .header import parse_header
from .classify import SectionKind, classify_section
from .symtab import SymbolTable, resolve_symbols, sort_symbols
from .dylibs import extract_dylibs, extract_rpaths, format_version
from .memory_image import MemoryImage
from .strings import StringFilter, extract_strings
from .macho import MachO, MachOBinary, load, load_file

__all__ = [
    'MachOFormat', 'resolve_magic',
    'CpuArch', 'resolve_cpu',
    'FatBinary', 'parse_fat', 'select_architecture',
    'parse_header',
    'read_load_commands', 'register',
    'SectionKind', 'classify_section',
    'SymbolTable', 'resolve_symbols', 'sort_symbols',
    'extract_dylibs', 'extract_rpaths', 'format_version',
    'MemoryImage',
    'StringFilter', 'extract_strings',
    'MachO', 'MachOBinary', 'load', 'load_file',
]
