"""
Mach-O constants for macOS/iOS binaries.

Values follow <mach-o/loader.h>, <mach-o/fat.h>, <mach-o/nlist.h> and
<mach/machine.h>.
"""

from typing import Dict


# Mach-O Magic numbers (as read big-endian from the first four bytes)
MH_MAGIC = 0xFEEDFACE     # 32-bit
MH_CIGAM = 0xCEFAEDFE     # 32-bit byte-swapped
MH_MAGIC_64 = 0xFEEDFACF  # 64-bit
MH_CIGAM_64 = 0xCFFAEDFE  # 64-bit byte-swapped
FAT_MAGIC = 0xCAFEBABE    # Universal binary
FAT_CIGAM = 0xBEBAFECA    # Universal binary byte-swapped
FAT_MAGIC_64 = 0xCAFEBABF  # Universal binary, 64-bit offsets
FAT_CIGAM_64 = 0xBFBAFECA  # Universal binary, 64-bit offsets, byte-swapped

# Structure sizes
FAT_HEADER_SIZE = 8
FAT_ARCH_SIZE = 20
FAT_ARCH_64_SIZE = 32
MACH_HEADER_SIZE = 28
MACH_HEADER_64_SIZE = 32
LOAD_COMMAND_SIZE = 8
SEGMENT_COMMAND_SIZE = 56
SEGMENT_COMMAND_64_SIZE = 72
SECTION_SIZE = 68
SECTION_64_SIZE = 80
NLIST_SIZE = 12
NLIST_64_SIZE = 16

# CPU ABI bits and masks
CPU_ARCH_MASK = 0xFF000000
CPU_ARCH_ABI64 = 0x01000000
CPU_ARCH_ABI64_32 = 0x02000000
CPU_SUBTYPE_MASK = 0xFF000000
CPU_SUBTYPE_LIB64 = 0x80000000
CPU_SUBTYPE_PTRAUTH_ABI = 0x80000000
CPU_SUBTYPE_ARM64_PTR_AUTH_MASK = 0x0F000000

# CPU types
CPU_TYPE_VAX = 0x00000001
CPU_TYPE_MC680X0 = 0x00000006
CPU_TYPE_X86 = 0x00000007
CPU_TYPE_MIPS = 0x00000008
CPU_TYPE_MC98000 = 0x0000000A
CPU_TYPE_HPPA = 0x0000000B
CPU_TYPE_ARM = 0x0000000C
CPU_TYPE_MC88000 = 0x0000000D
CPU_TYPE_SPARC = 0x0000000E
CPU_TYPE_I860 = 0x0000000F
CPU_TYPE_POWERPC = 0x00000012
CPU_TYPE_RISCV = 0x00000018
CPU_TYPE_X86_64 = CPU_TYPE_X86 | CPU_ARCH_ABI64
CPU_TYPE_ARM64 = CPU_TYPE_ARM | CPU_ARCH_ABI64
CPU_TYPE_ARM64_32 = CPU_TYPE_ARM | CPU_ARCH_ABI64_32
CPU_TYPE_POWERPC64 = CPU_TYPE_POWERPC | CPU_ARCH_ABI64

# x86 subtypes
CPU_SUBTYPE_X86_ALL = 3
CPU_SUBTYPE_X86_64_ALL = 3
CPU_SUBTYPE_X86_ARCH1 = 4
CPU_SUBTYPE_X86_64_H = 8

# ARM subtypes
CPU_SUBTYPE_ARM_ALL = 0
CPU_SUBTYPE_ARM_V4T = 5
CPU_SUBTYPE_ARM_V6 = 6
CPU_SUBTYPE_ARM_V5TEJ = 7
CPU_SUBTYPE_ARM_XSCALE = 8
CPU_SUBTYPE_ARM_V7 = 9
CPU_SUBTYPE_ARM_V7F = 10
CPU_SUBTYPE_ARM_V7S = 11
CPU_SUBTYPE_ARM_V7K = 12
CPU_SUBTYPE_ARM_V8 = 13
CPU_SUBTYPE_ARM_V6M = 14
CPU_SUBTYPE_ARM_V7M = 15
CPU_SUBTYPE_ARM_V7EM = 16
CPU_SUBTYPE_ARM_V8M = 17

# ARM64 subtypes
CPU_SUBTYPE_ARM64_ALL = 0
CPU_SUBTYPE_ARM64_V8 = 1
CPU_SUBTYPE_ARM64E = 2

# ARM64_32 subtypes
CPU_SUBTYPE_ARM64_32_ALL = 0
CPU_SUBTYPE_ARM64_32_V8 = 1

# PowerPC subtypes
CPU_SUBTYPE_POWERPC_ALL = 0
CPU_SUBTYPE_POWERPC_750 = 9
CPU_SUBTYPE_POWERPC_7400 = 10
CPU_SUBTYPE_POWERPC_7450 = 11
CPU_SUBTYPE_POWERPC_970 = 100

# File types
MH_OBJECT = 0x1
MH_EXECUTE = 0x2
MH_FVMLIB = 0x3
MH_CORE = 0x4
MH_PRELOAD = 0x5
MH_DYLIB = 0x6
MH_DYLINKER = 0x7
MH_BUNDLE = 0x8
MH_DYLIB_STUB = 0x9
MH_DSYM = 0xA
MH_KEXT_BUNDLE = 0xB
MH_FILESET = 0xC
MH_GPU_EXECUTE = 0xD
MH_GPU_DYLIB = 0xE

FILE_TYPES: Dict[int, tuple] = {
    MH_OBJECT: ("MH_OBJECT", "Relocatable Object File"),
    MH_EXECUTE: ("MH_EXECUTE", "Demand Paged Executable File"),
    MH_FVMLIB: ("MH_FVMLIB", "Fixed VM Shared Library File"),
    MH_CORE: ("MH_CORE", "Core File"),
    MH_PRELOAD: ("MH_PRELOAD", "Preloaded Executable File"),
    MH_DYLIB: ("MH_DYLIB", "Dynamically Bound Shared Library"),
    MH_DYLINKER: ("MH_DYLINKER", "Dynamic Link Editor"),
    MH_BUNDLE: ("MH_BUNDLE", "Dynamically Bound Bundle File"),
    MH_DYLIB_STUB: ("MH_DYLIB_STUB", "Shared Library Stub for Static Linking Only, No Section Contents"),
    MH_DSYM: ("MH_DSYM", "Companion File with Only Debug Sections"),
    MH_KEXT_BUNDLE: ("MH_KEXT_BUNDLE", "x86_64 Kernel Extension"),
    MH_FILESET: ("MH_FILESET", "Kernel Cache Fileset"),
    MH_GPU_EXECUTE: ("MH_GPU_EXECUTE", "GPU Program"),
    MH_GPU_DYLIB: ("MH_GPU_DYLIB", "GPU Support Functions"),
}

# Header flags, in bit order
MH_NOUNDEFS = 0x1
MH_INCRLINK = 0x2
MH_DYLDLINK = 0x4
MH_BINDATLOAD = 0x8
MH_PREBOUND = 0x10
MH_SPLIT_SEGS = 0x20
MH_LAZY_INIT = 0x40
MH_TWOLEVEL = 0x80
MH_FORCE_FLAT = 0x100
MH_NOMULTIDEFS = 0x200
MH_NOFIXPREBINDING = 0x400
MH_PREBINDABLE = 0x800
MH_ALLMODSBOUND = 0x1000
MH_SUBSECTIONS_VIA_SYMBOLS = 0x2000
MH_CANONICAL = 0x4000
MH_WEAK_DEFINES = 0x8000
MH_BINDS_TO_WEAK = 0x10000
MH_ALLOW_STACK_EXECUTION = 0x20000
MH_ROOT_SAFE = 0x40000
MH_SETUID_SAFE = 0x80000
MH_NO_REEXPORTED_DYLIBS = 0x100000
MH_PIE = 0x200000
MH_DEAD_STRIPPABLE_DYLIB = 0x400000
MH_HAS_TLV_DESCRIPTORS = 0x800000
MH_NO_HEAP_EXECUTION = 0x1000000
MH_APP_EXTENSION_SAFE = 0x2000000
MH_NLIST_OUTOFSYNC_WITH_DYLDINFO = 0x4000000
MH_SIM_SUPPORT = 0x8000000
MH_IMPLICIT_PAGEZERO = 0x10000000
MH_DYLIB_IN_CACHE = 0x80000000

HEADER_FLAGS: Dict[int, str] = {
    MH_NOUNDEFS: "NOUNDEFS",
    MH_INCRLINK: "INCRLINK",
    MH_DYLDLINK: "DYLDLINK",
    MH_BINDATLOAD: "BINDATLOAD",
    MH_PREBOUND: "PREBOUND",
    MH_SPLIT_SEGS: "SPLIT_SEGS",
    MH_LAZY_INIT: "LAZY_INIT",
    MH_TWOLEVEL: "TWOLEVEL",
    MH_FORCE_FLAT: "FORCE_FLAT",
    MH_NOMULTIDEFS: "NOMULTIDEFS",
    MH_NOFIXPREBINDING: "NOFIXPREBINDING",
    MH_PREBINDABLE: "PREBINDABLE",
    MH_ALLMODSBOUND: "ALLMODSBOUND",
    MH_SUBSECTIONS_VIA_SYMBOLS: "SUBSECTIONS_VIA_SYMBOLS",
    MH_CANONICAL: "CANONICAL",
    MH_WEAK_DEFINES: "WEAK_DEFINES",
    MH_BINDS_TO_WEAK: "BINDS_TO_WEAK",
    MH_ALLOW_STACK_EXECUTION: "ALLOW_STACK_EXECUTION",
    MH_ROOT_SAFE: "ROOT_SAFE",
    MH_SETUID_SAFE: "SETUID_SAFE",
    MH_NO_REEXPORTED_DYLIBS: "NO_REEXPORTED_DYLIBS",
    MH_PIE: "PIE",
    MH_DEAD_STRIPPABLE_DYLIB: "DEAD_STRIPPABLE_DYLIB",
    MH_HAS_TLV_DESCRIPTORS: "HAS_TLV_DESCRIPTORS",
    MH_NO_HEAP_EXECUTION: "NO_HEAP_EXECUTION",
    MH_APP_EXTENSION_SAFE: "APP_EXTENSION_SAFE",
    MH_NLIST_OUTOFSYNC_WITH_DYLDINFO: "NLIST_OUTOFSYNC_WITH_DYLDINFO",
    MH_SIM_SUPPORT: "SIM_SUPPORT",
    MH_IMPLICIT_PAGEZERO: "IMPLICIT_PAGEZERO",
    MH_DYLIB_IN_CACHE: "DYLIB_IN_CACHE",
}

# Load command types
LC_REQ_DYLD = 0x80000000

LC_SEGMENT = 0x1
LC_SYMTAB = 0x2
LC_SYMSEG = 0x3
LC_THREAD = 0x4
LC_UNIXTHREAD = 0x5
LC_LOADFVMLIB = 0x6
LC_IDFVMLIB = 0x7
LC_IDENT = 0x8
LC_FVMFILE = 0x9
LC_PREPAGE = 0xA
LC_DYSYMTAB = 0xB
LC_LOAD_DYLIB = 0xC
LC_ID_DYLIB = 0xD
LC_LOAD_DYLINKER = 0xE
LC_ID_DYLINKER = 0xF
LC_PREBOUND_DYLIB = 0x10
LC_ROUTINES = 0x11
LC_SUB_FRAMEWORK = 0x12
LC_SUB_UMBRELLA = 0x13
LC_SUB_CLIENT = 0x14
LC_SUB_LIBRARY = 0x15
LC_TWOLEVEL_HINTS = 0x16
LC_PREBIND_CKSUM = 0x17
LC_LOAD_WEAK_DYLIB = 0x18 | LC_REQ_DYLD
LC_SEGMENT_64 = 0x19
LC_ROUTINES_64 = 0x1A
LC_UUID = 0x1B
LC_RPATH = 0x1C | LC_REQ_DYLD
LC_CODE_SIGNATURE = 0x1D
LC_SEGMENT_SPLIT_INFO = 0x1E
LC_REEXPORT_DYLIB = 0x1F | LC_REQ_DYLD
LC_LAZY_LOAD_DYLIB = 0x20
LC_ENCRYPTION_INFO = 0x21
LC_DYLD_INFO = 0x22
LC_DYLD_INFO_ONLY = 0x22 | LC_REQ_DYLD
LC_LOAD_UPWARD_DYLIB = 0x23 | LC_REQ_DYLD
LC_VERSION_MIN_MACOSX = 0x24
LC_VERSION_MIN_IPHONEOS = 0x25
LC_FUNCTION_STARTS = 0x26
LC_DYLD_ENVIRONMENT = 0x27
LC_MAIN = 0x28 | LC_REQ_DYLD
LC_DATA_IN_CODE = 0x29
LC_SOURCE_VERSION = 0x2A
LC_DYLIB_CODE_SIGN_DRS = 0x2B
LC_ENCRYPTION_INFO_64 = 0x2C
LC_LINKER_OPTION = 0x2D
LC_LINKER_OPTIMIZATION_HINT = 0x2E
LC_VERSION_MIN_TVOS = 0x2F
LC_VERSION_MIN_WATCHOS = 0x30
LC_NOTE = 0x31
LC_BUILD_VERSION = 0x32
LC_DYLD_EXPORTS_TRIE = 0x33 | LC_REQ_DYLD
LC_DYLD_CHAINED_FIXUPS = 0x34 | LC_REQ_DYLD
LC_FILESET_ENTRY = 0x35 | LC_REQ_DYLD
LC_ATOM_INFO = 0x36
LC_FUNCTION_VARIANTS = 0x37
LC_FUNCTION_VARIANT_FIXUPS = 0x38
LC_TARGET_TRIPLE = 0x39

LOAD_COMMAND_NAMES: Dict[int, str] = {
    value: name for name, value in list(globals().items())
    if name.startswith('LC_') and name != 'LC_REQ_DYLD' and isinstance(value, int)
}

# Virtual memory protections
VM_PROT_READ = 0x1
VM_PROT_WRITE = 0x2
VM_PROT_EXECUTE = 0x4

# Segment flags
SG_HIGHVM = 0x1
SG_FVMLIB = 0x2
SG_NORELOC = 0x4
SG_PROTECTED_VERSION_1 = 0x8
SG_READ_ONLY = 0x10

# Well-known segments
SEG_PAGEZERO = "__PAGEZERO"
SEG_TEXT = "__TEXT"
SEG_DATA = "__DATA"
SEG_DATA_CONST = "__DATA_CONST"
SEG_LINKEDIT = "__LINKEDIT"
SEG_OBJC = "__OBJC"
SEG_IMPORT = "__IMPORT"
SEG_AUTH = "__AUTH"
SEG_AUTH_CONST = "__AUTH_CONST"

KNOWN_SEGMENTS: Dict[str, str] = {
    SEG_PAGEZERO: "Unmapped NULL pointer trap",
    SEG_TEXT: "Executable code and read-only data",
    SEG_DATA: "Writable data",
    SEG_DATA_CONST: "Data made read-only after fixups",
    SEG_LINKEDIT: "Raw data for the dynamic linker",
    SEG_OBJC: "Legacy Objective-C runtime data",
    SEG_IMPORT: "Legacy import jump tables",
    SEG_AUTH: "Authenticated pointer data",
    SEG_AUTH_CONST: "Authenticated pointer data, read-only after fixups",
}

# Section types
SECTION_TYPE = 0x000000FF
SECTION_ATTRIBUTES = 0xFFFFFF00

S_REGULAR = 0x0
S_ZEROFILL = 0x1
S_CSTRING_LITERALS = 0x2
S_4BYTE_LITERALS = 0x3
S_8BYTE_LITERALS = 0x4
S_LITERAL_POINTERS = 0x5
S_NON_LAZY_SYMBOL_POINTERS = 0x6
S_LAZY_SYMBOL_POINTERS = 0x7
S_SYMBOL_STUBS = 0x8
S_MOD_INIT_FUNC_POINTERS = 0x9
S_MOD_TERM_FUNC_POINTERS = 0xA
S_COALESCED = 0xB
S_GB_ZEROFILL = 0xC
S_INTERPOSING = 0xD
S_16BYTE_LITERALS = 0xE
S_DTRACE_DOF = 0xF
S_LAZY_DYLIB_SYMBOL_POINTERS = 0x10
S_THREAD_LOCAL_REGULAR = 0x11
S_THREAD_LOCAL_ZEROFILL = 0x12
S_THREAD_LOCAL_VARIABLES = 0x13
S_THREAD_LOCAL_VARIABLE_POINTERS = 0x14
S_THREAD_LOCAL_INIT_FUNCTION_POINTERS = 0x15
S_INIT_FUNC_OFFSETS = 0x16

SECTION_TYPE_NAMES: Dict[int, str] = {
    value: name[2:] for name, value in list(globals().items())
    if name.startswith('S_') and not name.startswith('S_ATTR_') and isinstance(value, int)
}

ZEROFILL_TYPES = frozenset((S_ZEROFILL, S_GB_ZEROFILL, S_THREAD_LOCAL_ZEROFILL))

# Section attributes
S_ATTR_PURE_INSTRUCTIONS = 0x80000000
S_ATTR_NO_TOC = 0x40000000
S_ATTR_STRIP_STATIC_SYMS = 0x20000000
S_ATTR_NO_DEAD_STRIP = 0x10000000
S_ATTR_LIVE_SUPPORT = 0x08000000
S_ATTR_SELF_MODIFYING_CODE = 0x04000000
S_ATTR_DEBUG = 0x02000000
S_ATTR_SOME_INSTRUCTIONS = 0x00000400
S_ATTR_EXT_RELOC = 0x00000200
S_ATTR_LOC_RELOC = 0x00000100

SECTION_ATTRIBUTE_NAMES: Dict[int, str] = {
    S_ATTR_PURE_INSTRUCTIONS: "PURE_INSTRUCTIONS",
    S_ATTR_NO_TOC: "NO_TOC",
    S_ATTR_STRIP_STATIC_SYMS: "STRIP_STATIC_SYMS",
    S_ATTR_NO_DEAD_STRIP: "NO_DEAD_STRIP",
    S_ATTR_LIVE_SUPPORT: "LIVE_SUPPORT",
    S_ATTR_SELF_MODIFYING_CODE: "SELF_MODIFYING_CODE",
    S_ATTR_DEBUG: "DEBUG",
    S_ATTR_SOME_INSTRUCTIONS: "SOME_INSTRUCTIONS",
    S_ATTR_EXT_RELOC: "EXT_RELOC",
    S_ATTR_LOC_RELOC: "LOC_RELOC",
}

# Symbol table entry bits (nlist.h)
N_STAB = 0xE0
N_PEXT = 0x10
N_TYPE = 0x0E
N_EXT = 0x01

N_UNDF = 0x0
N_ABS = 0x2
N_SECT = 0xE
N_PBUD = 0xC
N_INDR = 0xA

NO_SECT = 0
MAX_SECT = 255

# Build version platforms
PLATFORMS: Dict[int, str] = {
    1: "macOS",
    2: "iOS",
    3: "tvOS",
    4: "watchOS",
    5: "bridgeOS",
    6: "Mac Catalyst",
    7: "iOS Simulator",
    8: "tvOS Simulator",
    9: "watchOS Simulator",
    10: "DriverKit",
    11: "visionOS",
    12: "visionOS Simulator",
    13: "firmware",
    14: "sepOS",
}

TOOLS: Dict[int, str] = {
    1: "clang",
    2: "swift",
    3: "ld",
    4: "lld",
}


def load_command_name(cmd: int) -> str:
    """Symbolic name of a load command id."""
    return LOAD_COMMAND_NAMES.get(cmd, "UNKNOWN_LOAD_COMMAND")
