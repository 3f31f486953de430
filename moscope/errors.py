"""
Error taxonomy for Mach-O decoding.

Fatal errors are raised and abort the decode of the affected slice (or the
whole file). Non-fatal conditions are recorded as Anomaly values attached to
the command, section or symbol they concern, so a decode can complete with
a list of anomalies instead of failing outright.
"""

from dataclasses import dataclass
from typing import Optional


class MachOError(Exception):
    """Base exception for Mach-O decoding errors."""

    def __init__(self, message: str, offset: Optional[int] = None):
        self.message = message
        self.offset = offset
        if offset is not None:
            message = f"{message} (at offset 0x{offset:x})"
        super().__init__(message)


class UnrecognizedMagic(MachOError):
    """The buffer does not start with a fat or thin Mach-O magic."""


class TruncatedFile(MachOError):
    """A declared range extends past the end of the buffer."""


class InvalidArchitectureIndex(MachOError):
    """A requested fat architecture index is out of range."""


class MalformedLoadCommand(MachOError):
    """A load command's contents are inconsistent."""


class UnknownCpuSubtype(MachOError):
    """A cpu type or subtype has no symbolic name."""


class StringTableIndexOutOfRange(MachOError):
    """A symbol's name offset lies outside the string table."""


class RegexCompileError(MachOError):
    """A user supplied string filter pattern does not compile."""


class SectionOutOfBounds(MachOError):
    """A section's range falls outside its parent segment."""


@dataclass(frozen=True)
class Anomaly:
    """A non-fatal decoding problem attached to one entity."""
    kind: str
    message: str
    offset: Optional[int] = None

    @classmethod
    def from_error(cls, error: MachOError) -> 'Anomaly':
        return cls(type(error).__name__, error.message, error.offset)

    def __str__(self) -> str:
        if self.offset is None:
            return f"{self.kind}: {self.message}"
        return f"{self.kind}: {self.message} (at offset 0x{self.offset:x})"

    def file_offset(self, base: int = 0) -> Optional[int]:
        return None if self.offset is None else base + self.offset

    def located(self, base: int = 0) -> str:
        """Render with both the slice offset and the file offset when base is set."""
        if self.offset is None or not base:
            return str(self)
        return (
            f"{self.kind}: {self.message} "
            f"(at slice+0x{self.offset:x}, file offset 0x{base + self.offset:x})"
        )
