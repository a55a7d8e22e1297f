"""A bounded byte pipe with blocking reads and writes."""

from __future__ import annotations

import threading
from collections.abc import Callable

PIPESIZE = 512


class Pipe:
    """A ring buffer of PIPESIZE bytes shared by a reader and a writer.

    ``killed`` is asked whether the calling process has been killed while
    it would otherwise wait.
    """

    def __init__(self, killed: Callable[[], bool] | None = None):
        self._data = bytearray(PIPESIZE)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True
        self._killed = killed or (lambda: False)
        self._cond = threading.Condition()

    @property
    def closed(self) -> bool:
        """True once both ends have been closed."""
        return not self.readopen and not self.writeopen

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, otherwise the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()

    def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting whenever the pipe is full."""
        data = bytes(data)
        with self._cond:
            for byte in data:
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise BrokenPipeError("pipe has no reader")
                    if self._killed():
                        raise InterruptedError("killed while writing to pipe")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % PIPESIZE] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, waiting while empty and a writer remains."""
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                if self._killed():
                    raise InterruptedError("killed while reading from pipe")
                self._cond.wait()
            count = max(0, min(n, self.nwrite - self.nread))
            start = self.nread % PIPESIZE
            ring = self._data[start:] + self._data[:start]
            out = bytes(ring[:count])
            self.nread += count
            self._cond.notify_all()
        return out