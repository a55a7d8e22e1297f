"""Small user commands that work on a mounted file system: cat, echo and ls."""

from __future__ import annotations

import errno
import sys
from collections.abc import Iterable, Iterator
from typing import BinaryIO, TextIO

from .fs import FileSystem, Inode
from .layout import DIRENT_SIZE, DIRSIZ, Dirent, FileType, Stat

_CHUNK = 512
_PATHBUF = 512


def _open(fs: FileSystem, path: str, command: str) -> Inode:
    with fs.log.transaction():
        ip = fs.namei(path)
    if ip is None:
        raise FileNotFoundError(errno.ENOENT, f"{command}: cannot open {path}", path)
    return ip


def _put(fs: FileSystem, ip: Inode) -> None:
    with fs.log.transaction():
        fs.iput(ip)


def _chunks(fs: FileSystem, ip: Inode) -> Iterator[bytes]:
    off = 0
    while True:
        fs.ilock(ip)
        try:
            chunk = fs.readi(ip, off, _CHUNK)
        finally:
            fs.iunlock(ip)
        if not chunk:
            return
        off += len(chunk)
        yield chunk


def _copy(chunks: Iterable[bytes], out: BinaryIO) -> None:
    for chunk in chunks:
        written = out.write(chunk)
        if written is not None and written != len(chunk):
            raise OSError(errno.EIO, "cat: write error")


def cat(fs: FileSystem, paths: Iterable[str], out: BinaryIO) -> None:
    """Copy each file to ``out``; with no paths, copy standard input."""
    paths = list(paths)
    if not paths:
        stdin = sys.stdin.buffer
        _copy(iter(lambda: stdin.read(_CHUNK), b""), out)
        return
    for path in paths:
        ip = _open(fs, path, "cat")
        try:
            _copy(_chunks(fs, ip), out)
        finally:
            _put(fs, ip)


def echo(args: Iterable[str], out: TextIO) -> None:
    """Write the arguments separated by spaces and ended by a newline."""
    args = list(args)
    if args:
        out.write(" ".join(args) + "\n")


def fmtname(path: str) -> str:
    """The last element of ``path``, blank-padded to DIRSIZ characters."""
    name = path[path.rfind("/") + 1:]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _stat(fs: FileSystem, path: str) -> Stat | None:
    with fs.log.transaction():
        ip = fs.namei(path)
        if ip is None:
            return None
        fs.ilock(ip)
        st = fs.stati(ip)
        fs.iunlockput(ip)
    return st


def _line(path: str, st: Stat) -> str:
    return f"{fmtname(path)} {int(st.type)} {st.ino} {st.size}\n"


def ls(fs: FileSystem, path: str, out: TextIO) -> None:
    """List a file, or every entry of a directory, as name, type, inode, size."""
    ip = _open(fs, path, "ls")
    try:
        fs.ilock(ip)
        try:
            st = fs.stati(ip)
            listing = fs.readi(ip, 0, ip.size) if st.type == FileType.DIR else b""
        finally:
            fs.iunlock(ip)
    finally:
        _put(fs, ip)

    if st.type == FileType.FILE:
        out.write(_line(path, st))
    elif st.type == FileType.DIR:
        if len(path.encode("utf-8")) + 1 + DIRSIZ + 1 > _PATHBUF:
            out.write("ls: path too long\n")
            return
        for off in range(0, len(listing) - DIRENT_SIZE + 1, DIRENT_SIZE):
            de = Dirent.from_bytes(listing[off:off + DIRENT_SIZE])
            if de.inum == 0:
                continue
            full = f"{path}/{de.name}"
            entry = _stat(fs, full)
            if entry is None:
                out.write(f"ls: cannot stat {full}\n")
                continue
            out.write(_line(full, entry))