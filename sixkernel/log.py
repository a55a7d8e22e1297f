"""Write-ahead redo log that makes groups of block writes atomic."""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .disk import Buffer, BufferCache
from .layout import BSIZE, LOGSIZE, MAXOPBLOCKS, KernelPanic, Superblock

_COUNT = struct.Struct("<i")


def _header(blocks: list[int]) -> bytes:
    return struct.pack(f"<i{len(blocks)}i", len(blocks), *blocks)


class Log:
    """Groups file-system operations into transactions committed together.

    On disk the log is a header block listing home block numbers,
    followed by the logged copies of those blocks.
    """

    def __init__(self, cache: BufferCache, dev: int, sb: Superblock):
        if _COUNT.size * (LOGSIZE + 1) >= BSIZE:
            raise KernelPanic("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self._blocks: list[int] = []
        self._cond = threading.Condition()
        self.recover()

    @property
    def pending(self) -> tuple[int, ...]:
        """Home block numbers logged in the current transaction."""
        return tuple(self._blocks)

    def _read_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            (count,) = _COUNT.unpack_from(buf.data)
            if not 0 <= count <= LOGSIZE:
                raise KernelPanic("log: corrupt header")
            self._blocks = list(struct.unpack_from(f"<{count}i", buf.data, _COUNT.size))

    def _write_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            header = _header(self._blocks)
            buf.data[:len(header)] = header
            self.cache.write(buf)

    def _copy_blocks(self, to_log: bool) -> None:
        for tail, home in enumerate(self._blocks):
            log_buf = self.cache.read(self.dev, self.start + tail + 1)
            home_buf = self.cache.read(self.dev, home)
            src, dst = (home_buf, log_buf) if to_log else (log_buf, home_buf)
            dst.data[:] = src.data
            self.cache.write(dst)
            self.cache.release(log_buf)
            self.cache.release(home_buf)

    def _install(self) -> None:
        self._copy_blocks(to_log=False)

    def _commit(self) -> None:
        if self._blocks:
            self._copy_blocks(to_log=True)
            self._write_head()
            self._install()
            self._blocks = []
            self._write_head()

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install()
        self._blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start a file-system operation, waiting while the log is busy or full."""
        with self._cond:
            while (
                self.committing
                or len(self._blocks) + (self.outstanding + 1) * MAXOPBLOCKS > LOGSIZE
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one out commits the transaction."""
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise KernelPanic("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()

        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def write(self, buf: Buffer) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        if len(self._blocks) >= LOGSIZE or len(self._blocks) >= self.size - 1:
            raise KernelPanic("too big a transaction")
        if self.outstanding < 1:
            raise KernelPanic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self._blocks:
                self._blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        """Run a with-block between begin_op and end_op."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()