"""Open files: a shared table of reference-counted pipe and inode handles."""

from __future__ import annotations

import errno
import threading
from dataclasses import dataclass
from enum import Enum

from .fs import FileSystem, Inode
from .layout import BSIZE, MAXOPBLOCKS, NFILE, KernelPanic, Stat
from .pipe import Pipe

# Write a few blocks at a time so one write never overflows a log
# transaction: inode, indirect block, allocation blocks and slop.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class FileKind(Enum):
    """What an open file refers to."""

    NONE = "none"
    PIPE = "pipe"
    INODE = "inode"


@dataclass(eq=False)
class OpenFile:
    """One entry of the file table."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """A fixed-size table of open files shared by all processes."""

    def __init__(self, fs: FileSystem | None = None, size: int = NFILE):
        self.fs = fs
        self._lock = threading.Lock()
        self._files = [OpenFile() for _ in range(size)]

    def _require_fs(self) -> FileSystem:
        if self.fs is None:
            raise KernelPanic("file table has no file system")
        return self.fs

    def alloc(self) -> OpenFile:
        """Take a free entry with one reference."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.ref = 1
                    f.readable = False
                    f.writable = False
                    f.pipe = None
                    f.ip = None
                    f.off = 0
                    return f
        raise OSError(errno.ENFILE, "file table is full")

    def dup(self, f: OpenFile) -> OpenFile:
        """Add a reference to ``f`` and return it."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("filedup")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; release the pipe end or inode with the last one."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f.kind = FileKind.NONE
            f.pipe = None
            f.ip = None

        if kind is FileKind.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileKind.INODE and ip is not None:
            fs = self._require_fs()
            with fs.log.transaction():
                fs.iput(ip)

    def stat(self, f: OpenFile) -> Stat:
        """Return metadata for a file backed by an inode."""
        if f.kind is not FileKind.INODE or f.ip is None:
            raise ValueError("only inode files have metadata")
        fs = self._require_fs()
        fs.ilock(f.ip)
        try:
            return fs.stati(f.ip)
        finally:
            fs.iunlock(f.ip)

    def read(self, f: OpenFile, n: int) -> bytes:
        """Read up to ``n`` bytes from ``f`` at its current offset."""
        if not f.readable:
            raise PermissionError("file not open for reading")
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE and f.ip is not None:
            fs = self._require_fs()
            fs.ilock(f.ip)
            try:
                data = fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.iunlock(f.ip)
            return data
        raise KernelPanic("fileread")

    def write(self, f: OpenFile, data: bytes) -> int:
        """Write all of ``data`` to ``f`` at its current offset."""
        if not f.writable:
            raise PermissionError("file not open for writing")
        data = bytes(data)
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE and f.ip is not None:
            fs = self._require_fs()
            done = 0
            while done < len(data):
                chunk = data[done:done + _MAX_WRITE]
                with fs.log.transaction():
                    fs.ilock(f.ip)
                    try:
                        written = fs.writei(f.ip, chunk, f.off)
                        if written > 0:
                            f.off += written
                    finally:
                        fs.iunlock(f.ip)
                if written != len(chunk):
                    raise KernelPanic("short filewrite")
                done += written
            return len(data)
        raise KernelPanic("filewrite")

    def open_pipe(self) -> tuple[OpenFile, OpenFile]:
        """Create a pipe and return its (read end, write end)."""
        reader = self.alloc()
        try:
            writer = self.alloc()
        except OSError:
            self.close(reader)
            raise
        pipe = Pipe()
        reader.kind = FileKind.PIPE
        reader.readable = True
        reader.writable = False
        reader.pipe = pipe
        writer.kind = FileKind.PIPE
        writer.readable = False
        writer.writable = True
        writer.pipe = pipe
        return reader, writer