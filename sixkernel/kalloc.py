"""Physical page allocator handing out 4096-byte pages."""

from __future__ import annotations

import threading

from .layout import KernelPanic

PGSIZE = 4096


def _pgroundup(addr: int) -> int:
    return (addr + PGSIZE - 1) & ~(PGSIZE - 1)


class PageAllocator:
    """A free list of pages between the kernel's end and the top of memory."""

    def __init__(self, kernel_end: int, phystop: int):
        self.kernel_end = kernel_end
        self.phystop = phystop
        self._free: list[int] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._free)

    def free_range(self, start: int, end: int) -> None:
        """Free every whole page in [start, end)."""
        page = _pgroundup(start)
        while page + PGSIZE <= end:
            self.free(page)
            page += PGSIZE

    def free(self, addr: int) -> None:
        """Return a page to the allocator."""
        if addr % PGSIZE or addr < self.kernel_end or addr >= self.phystop:
            raise KernelPanic("kfree")
        with self._lock:
            self._free.append(addr)

    def alloc(self) -> int:
        """Take a page; raise MemoryError when none is left."""
        with self._lock:
            if not self._free:
                raise MemoryError("out of physical pages")
            return self._free.pop()