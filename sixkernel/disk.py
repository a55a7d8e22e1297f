"""An in-memory disk and the block buffer cache that sits in front of it."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from .layout import BSIZE, NBUF, ROOTDEV, KernelPanic


class _SleepLock:
    """A lock that remembers which thread holds it."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._owner: int | None = None

    def acquire(self) -> None:
        with self._cond:
            while self._owner is not None:
                self._cond.wait()
            self._owner = threading.get_ident()

    def release(self) -> None:
        with self._cond:
            self._owner = None
            self._cond.notify_all()

    def holding(self) -> bool:
        return self._owner == threading.get_ident()


@dataclass(eq=False)
class Buffer:
    """A cached copy of one disk block."""

    dev: int | None = None
    blockno: int | None = None
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


class MemoryDisk:
    """A disk whose blocks live in memory."""

    def __init__(self, image: bytes, dev: int = ROOTDEV):
        self._data = bytearray(image)
        self.dev = dev
        self.nblocks = len(self._data) // BSIZE

    @property
    def image(self) -> bytes:
        return bytes(self._data)

    def sync(self, buf: Buffer) -> None:
        """Write a dirty buffer to disk, or fill an invalid one from disk."""
        if not buf.lock.holding():
            raise KernelPanic("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise KernelPanic("iderw: nothing to do")
        if buf.dev != self.dev:
            raise KernelPanic(f"iderw: request not for disk {self.dev}")
        if buf.blockno is None or not 0 <= buf.blockno < self.nblocks:
            raise KernelPanic("iderw: block out of range")

        start = buf.blockno * BSIZE
        if buf.dirty:
            buf.dirty = False
            self._data[start:start + BSIZE] = buf.data
        else:
            buf.data[:] = self._data[start:start + BSIZE]
        buf.valid = True


class BufferCache:
    """A fixed pool of buffers kept in most-recently-used order."""

    def __init__(self, disk: MemoryDisk, nbuf: int = NBUF):
        self.disk = disk
        self._lock = threading.Lock()
        self._mru = [Buffer() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buffer:
        with self._lock:
            buf = next(
                (b for b in self._mru if b.dev == dev and b.blockno == blockno), None
            )
            if buf is not None:
                buf.refcnt += 1
            else:
                # A dirty buffer with no references is still pinned by the log.
                buf = next(
                    (b for b in reversed(self._mru) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if buf is None:
                    raise KernelPanic("bget: no buffers")
                buf.dev = dev
                buf.blockno = blockno
                buf.valid = False
                buf.dirty = False
                buf.refcnt = 1
        buf.lock.acquire()
        return buf

    def read(self, dev: int, blockno: int) -> Buffer:
        """Return a locked buffer holding the contents of the block."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            self.disk.sync(buf)
        return buf

    def write(self, buf: Buffer) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.lock.holding():
            raise KernelPanic("bwrite")
        buf.dirty = True
        self.disk.sync(buf)

    def release(self, buf: Buffer) -> None:
        """Unlock a buffer and make it the most recently used."""
        if not buf.lock.holding():
            raise KernelPanic("brelse")
        buf.lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int) -> Iterator[Buffer]:
        """Hold a block's buffer for the duration of a with-block."""
        buf = self.read(dev, blockno)
        try:
            yield buf
        finally:
            self.release(buf)