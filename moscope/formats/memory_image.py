"""
Sparse virtual memory view of a slice.

Maps VM addresses to the file bytes that back them. Only file-backed
ranges are materialized, as views into the slice; zero-fill tails and
unmapped gaps simply have no bytes, so no buffer the size of a segment's
vmsize is ever allocated.
"""

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .macho_structures import SegmentCommand


@dataclass(frozen=True)
class MappedRange:
    vmaddr: int
    fileoff: int
    size: int

    @property
    def vmend(self) -> int:
        return self.vmaddr + self.size


class MemoryImage:
    """VM address to file byte mapping built from segment commands."""

    def __init__(self, data, segments: Iterable[SegmentCommand]):
        self._data = data if isinstance(data, memoryview) else memoryview(data)
        self.ranges: List[MappedRange] = []

        covered_until = 0
        for segment in sorted(segments, key=lambda s: s.vmaddr):
            size = min(segment.filesize, segment.vmsize)
            if segment.fileoff >= len(self._data):
                continue
            size = min(size, len(self._data) - segment.fileoff)
            vmaddr, fileoff = segment.vmaddr, segment.fileoff
            # Overlapping segments: the lower one wins
            if vmaddr < covered_until:
                skip = covered_until - vmaddr
                vmaddr += skip
                fileoff += skip
                size -= skip
            if size <= 0:
                continue
            self.ranges.append(MappedRange(vmaddr, fileoff, size))
            covered_until = vmaddr + size

    def chunks(self, start: int, end: int) -> List[Tuple[int, memoryview]]:
        """
        File-backed pieces of [start, end), as (vmaddr, bytes) in address order.

        Adjacent pieces that are contiguous both in memory and in the file
        are merged into one.
        """
        result: List[Tuple[int, int, int]] = []
        for mapped in self.ranges:
            lo = max(start, mapped.vmaddr)
            hi = min(end, mapped.vmend)
            if lo >= hi:
                continue
            fileoff = mapped.fileoff + (lo - mapped.vmaddr)
            if result:
                prev_addr, prev_off, prev_size = result[-1]
                if prev_addr + prev_size == lo and prev_off + prev_size == fileoff:
                    result[-1] = (prev_addr, prev_off, prev_size + hi - lo)
                    continue
            result.append((lo, fileoff, hi - lo))
        return [(addr, self._data[off:off + size]) for addr, off, size in result]

    def read(self, address: int, size: int) -> bytes:
        """Bytes at [address, address + size); unbacked bytes read as zero."""
        out = bytearray(size)
        for addr, chunk in self.chunks(address, address + size):
            out[addr - address:addr - address + len(chunk)] = chunk
        return bytes(out)
