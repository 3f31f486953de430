"""
Printable string extraction over section VM ranges.
"""

import logging
import re
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Pattern

from ..errors import RegexCompileError
from .memory_image import MemoryImage
from .macho_structures import ExtractedString, Section, SegmentCommand

logger = logging.getLogger(__name__)

# Printable ASCII plus tab and line breaks
PRINTABLE_RUN = re.compile(rb'[\t\n\r\x20-\x7e]+')


def _section_keys(section: Section) -> FrozenSet[str]:
    return frozenset((section.sectname, f"{section.segname},{section.sectname}"))


@dataclass(frozen=True)
class StringFilter:
    """Which strings to keep and where to look for them."""
    min_length: int = 4
    max_count: Optional[int] = None
    include_sections: Optional[FrozenSet[str]] = None
    exclude_sections: Optional[FrozenSet[str]] = None
    pattern: Optional[Pattern] = None

    @classmethod
    def build(cls, min_length: int = 4, max_count: Optional[int] = None,
              include_sections: Optional[Iterable[str]] = None,
              exclude_sections: Optional[Iterable[str]] = None,
              pattern: Optional[str] = None) -> 'StringFilter':
        """
        Validate options and compile the pattern.

        Raises:
            RegexCompileError: If pattern is not a valid regular expression
            ValueError: If min_length or max_count is not positive
        """
        if min_length < 1:
            raise ValueError(f"Minimum string length must be at least 1, got {min_length}")
        if max_count is not None and max_count < 0:
            raise ValueError(f"Maximum string count must not be negative, got {max_count}")

        compiled = None
        if pattern:
            try:
                compiled = re.compile(pattern)
            except re.error as e:
                raise RegexCompileError(f"Invalid string pattern {pattern!r}: {e}") from e

        return cls(
            min_length=min_length,
            max_count=max_count,
            include_sections=frozenset(include_sections) if include_sections else None,
            exclude_sections=frozenset(exclude_sections) if exclude_sections else None,
            pattern=compiled,
        )

    def wants_section(self, section: Section) -> bool:
        keys = _section_keys(section)
        if self.include_sections is not None and not keys & self.include_sections:
            return False
        if self.exclude_sections is not None and keys & self.exclude_sections:
            return False
        return True

    def accepts(self, value: str) -> bool:
        if len(value) < self.min_length:
            return False
        return self.pattern is None or self.pattern.search(value) is not None


def extract_strings(data, segments: Iterable[SegmentCommand],
                    string_filter: Optional[StringFilter] = None) -> List[ExtractedString]:
    """
    Find printable strings inside each selected section's VM range.

    A candidate is a maximal printable run followed by a NUL byte or by the
    end of the file-backed bytes of the window. Results keep first-found
    order and are cut at string_filter.max_count.
    """
    string_filter = string_filter or StringFilter()
    if string_filter.max_count == 0:
        return []
    segments = list(segments)
    image = MemoryImage(data, segments)
    found: List[ExtractedString] = []

    for segment in segments:
        for section in segment.sections:
            if section.is_zerofill or not string_filter.wants_section(section):
                continue
            start, end = section.vm_range
            for address, chunk in image.chunks(start, end):
                raw = bytes(chunk)
                for match in PRINTABLE_RUN.finditer(raw):
                    if match.end() < len(raw) and raw[match.end()] != 0:
                        continue
                    value = match.group().decode('ascii')
                    if not string_filter.accepts(value):
                        continue
                    found.append(ExtractedString(
                        value=value,
                        segname=section.segname,
                        sectname=section.sectname,
                        address=address + match.start(),
                    ))
                    if string_filter.max_count is not None and len(found) >= string_filter.max_count:
                        logger.debug("String limit of %d reached", string_filter.max_count)
                        return found

    logger.debug("Extracted %d strings", len(found))
    return found
