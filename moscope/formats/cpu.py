"""
CPU type and subtype resolution.

A raw cpusubtype is meaningless without its cputype: ARM and ARM64 number
their variants independently, and the top byte of the subtype carries
capability bits (such as the arm64e pointer authentication ABI) that must be
masked off before the subtype tables are consulted.
"""

from dataclasses import dataclass
from typing import Dict

from .macho_constants import (
    CPU_SUBTYPE_MASK, CPU_SUBTYPE_PTRAUTH_ABI, CPU_SUBTYPE_ARM64_PTR_AUTH_MASK,
    CPU_TYPE_VAX, CPU_TYPE_MC680X0, CPU_TYPE_X86, CPU_TYPE_X86_64, CPU_TYPE_MIPS,
    CPU_TYPE_MC98000, CPU_TYPE_HPPA, CPU_TYPE_ARM, CPU_TYPE_ARM64, CPU_TYPE_ARM64_32,
    CPU_TYPE_MC88000, CPU_TYPE_SPARC, CPU_TYPE_I860, CPU_TYPE_POWERPC,
    CPU_TYPE_POWERPC64, CPU_TYPE_RISCV,
    CPU_SUBTYPE_ARM64E,
)


# cputype -> (family label, generic name)
CPU_FAMILIES: Dict[int, tuple] = {
    CPU_TYPE_VAX: ("VAX", "vax"),
    CPU_TYPE_MC680X0: ("MC680x0", "m68k"),
    CPU_TYPE_X86: ("x86", "i386"),
    CPU_TYPE_X86_64: ("x86_64", "x86_64"),
    CPU_TYPE_MIPS: ("MIPS", "mips"),
    CPU_TYPE_MC98000: ("MC98000", "mc98000"),
    CPU_TYPE_HPPA: ("HPPA", "hppa"),
    CPU_TYPE_ARM: ("ARM", "arm"),
    CPU_TYPE_ARM64: ("ARM64", "arm64"),
    CPU_TYPE_ARM64_32: ("ARM64_32", "arm64_32"),
    CPU_TYPE_MC88000: ("MC88000", "m88k"),
    CPU_TYPE_SPARC: ("SPARC", "sparc"),
    CPU_TYPE_I860: ("i860", "i860"),
    CPU_TYPE_POWERPC: ("PowerPC", "ppc"),
    CPU_TYPE_POWERPC64: ("PowerPC64", "ppc64"),
    CPU_TYPE_RISCV: ("RISC-V", "riscv"),
}

# Per cputype subtype tables, keyed by the masked subtype value
CPU_SUBTYPES: Dict[int, Dict[int, str]] = {
    CPU_TYPE_X86: {
        3: "i386",
        4: "i486",
        0x84: "i486sx",
        5: "i586",
        0x16: "pentpro",
        0x36: "pentIIm3",
        0x56: "pentIIm5",
        0x67: "celeron",
        0x77: "celeron-mobile",
        8: "pentium3",
        0x18: "pentium3-m",
        0x28: "pentium3-xeon",
        9: "pentium-m",
        10: "pentium4",
        0x1A: "pentium4-m",
        11: "itanium",
        0x1B: "itanium2",
        12: "xeon",
        0x1C: "xeon-mp",
    },
    CPU_TYPE_X86_64: {
        3: "x86_64",
        4: "x86_64-arch1",
        8: "x86_64h",
    },
    CPU_TYPE_ARM: {
        0: "arm",
        5: "armv4t",
        6: "armv6",
        7: "armv5tej",
        8: "xscale",
        9: "armv7",
        10: "armv7f",
        11: "armv7s",
        12: "armv7k",
        13: "armv8",
        14: "armv6m",
        15: "armv7m",
        16: "armv7em",
        17: "armv8m",
    },
    CPU_TYPE_ARM64: {
        0: "arm64",
        1: "arm64v8",
        2: "arm64e",
    },
    CPU_TYPE_ARM64_32: {
        0: "arm64_32",
        1: "arm64_32",
    },
    CPU_TYPE_POWERPC: {
        0: "ppc",
        1: "ppc601",
        2: "ppc602",
        3: "ppc603",
        4: "ppc603e",
        5: "ppc603ev",
        6: "ppc604",
        7: "ppc604e",
        8: "ppc620",
        9: "ppc750",
        10: "ppc7400",
        11: "ppc7450",
        100: "ppc970",
    },
    CPU_TYPE_POWERPC64: {
        0: "ppc64",
        100: "ppc970-64",
    },
    CPU_TYPE_RISCV: {
        0: "riscv",
    },
}


@dataclass(frozen=True)
class CpuArch:
    """Symbolic view of a (cputype, cpusubtype) pair."""
    cputype: int
    cpusubtype: int
    family: str
    name: str
    capabilities: int = 0
    ptrauth_version: int = 0
    known: bool = True

    @property
    def base_subtype(self) -> int:
        return self.cpusubtype & ~CPU_SUBTYPE_MASK & 0xFFFFFFFF

    @property
    def label(self) -> str:
        return f"{self.family} ({self.name})"

    def __str__(self) -> str:
        return self.name


def resolve_cpu(cputype: int, cpusubtype: int) -> CpuArch:
    """
    Resolve raw cpu codes to names.

    Args:
        cputype: Raw cputype field
        cpusubtype: Raw cpusubtype field, capability bits included

    Returns:
        A CpuArch; unknown codes produce hex fallback names and known=False
    """
    cputype &= 0xFFFFFFFF
    cpusubtype &= 0xFFFFFFFF
    capabilities = cpusubtype & CPU_SUBTYPE_MASK
    base = cpusubtype & ~CPU_SUBTYPE_MASK & 0xFFFFFFFF

    family_entry = CPU_FAMILIES.get(cputype)
    if family_entry is None:
        return CpuArch(
            cputype=cputype,
            cpusubtype=cpusubtype,
            family=f"0x{cputype:08x}",
            name=f"0x{cputype:08x}/0x{cpusubtype:08x}",
            capabilities=capabilities,
            known=False,
        )

    family, generic = family_entry

    if cputype == CPU_TYPE_ARM64 and (capabilities & CPU_SUBTYPE_PTRAUTH_ABI or base == CPU_SUBTYPE_ARM64E):
        # Pointer authentication: arm64e even though the base type is plain arm64
        return CpuArch(
            cputype=cputype,
            cpusubtype=cpusubtype,
            family=family,
            name="arm64e",
            capabilities=capabilities,
            ptrauth_version=(cpusubtype & CPU_SUBTYPE_ARM64_PTR_AUTH_MASK) >> 24,
        )

    subtypes = CPU_SUBTYPES.get(cputype, {})
    name = subtypes.get(base)
    if name is None:
        return CpuArch(
            cputype=cputype,
            cpusubtype=cpusubtype,
            family=family,
            name=f"{generic} (subtype 0x{base:x})",
            capabilities=capabilities,
            known=False,
        )

    return CpuArch(
        cputype=cputype,
        cpusubtype=cpusubtype,
        family=family,
        name=name,
        capabilities=capabilities,
    )
