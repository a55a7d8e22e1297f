"""Inodes, directories and path names on top of the logged buffer cache."""

from __future__ import annotations

import struct
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from .disk import Buffer, BufferCache, _SleepLock
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTINO,
    DiskInode,
    Dirent,
    FileType,
    KernelPanic,
    Stat,
    Superblock,
    bitmap_block,
    inode_block,
)
from .log import Log

_ADDR = struct.Struct("<I")


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode, shared by everyone that refers to it."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = FileType.FREE
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


@dataclass
class Device:
    """Read and write handlers for a device inode's major number."""

    read: Callable[[Inode, int], bytes] | None = None
    write: Callable[[Inode, bytes], int] | None = None


def read_superblock(cache: BufferCache, dev: int) -> Superblock:
    """Read the superblock of the file system on ``dev``."""
    with cache.block(dev, 1) as buf:
        return Superblock.from_bytes(bytes(buf.data))


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first element of ``path``.

    Returns the element (cut to DIRSIZ) and the rest without leading
    slashes, or None when no element is left.
    """
    path = path.lstrip("/")
    if not path:
        return None
    name, _, rest = path.partition("/")
    return name[:DIRSIZ], rest.lstrip("/")


def namecmp(s: str, t: str) -> int:
    """Compare two directory entry names over their first DIRSIZ bytes."""
    a = s.encode("utf-8")[:DIRSIZ]
    b = t.encode("utf-8")[:DIRSIZ]
    return (a > b) - (a < b)


def _get_dinode(buf: Buffer, inum: int) -> DiskInode:
    offset = (inum % IPB) * DINODE_SIZE
    return DiskInode.from_bytes(bytes(buf.data[offset:offset + DINODE_SIZE]))


def _put_dinode(buf: Buffer, inum: int, din: DiskInode) -> None:
    offset = (inum % IPB) * DINODE_SIZE
    buf.data[offset:offset + DINODE_SIZE] = din.to_bytes()


class FileSystem:
    """Block allocation, the inode cache, file contents, directories and paths.

    Every method that changes the disk must run inside a log transaction.
    """

    def __init__(
        self,
        cache: BufferCache,
        dev: int,
        log: Log,
        devices: Mapping[int, Device] | None = None,
    ):
        self.cache = cache
        self.dev = dev
        self.log = log
        self.devices: dict[int, Device] = dict(devices or {})
        self.sb = read_superblock(cache, dev)
        self._lock = threading.Lock()
        self._inodes = [Inode() for _ in range(NINODE)]

    # Blocks.

    def _bzero(self, bno: int) -> None:
        with self.cache.block(self.dev, bno) as buf:
            buf.data[:] = bytes(BSIZE)
            self.log.write(buf)

    def _balloc(self) -> int:
        for base in range(0, self.sb.size, BPB):
            with self.cache.block(self.dev, bitmap_block(base, self.sb)) as buf:
                free = next(
                    (
                        bi
                        for bi in range(min(BPB, self.sb.size - base))
                        if not buf.data[bi // 8] & (1 << (bi % 8))
                    ),
                    None,
                )
                if free is not None:
                    buf.data[free // 8] |= 1 << (free % 8)
                    self.log.write(buf)
            if free is not None:
                self._bzero(base + free)
                return base + free
        raise KernelPanic("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        with self.cache.block(self.dev, bitmap_block(b, self.sb)) as buf:
            bi = b % BPB
            mask = 1 << (bi % 8)
            if not buf.data[bi // 8] & mask:
                raise KernelPanic("freeing free block")
            buf.data[bi // 8] &= ~mask & 0xFF
            self.log.write(buf)

    # Inodes.

    def ialloc(self, type_: int) -> Inode:
        """Allocate an on-disk inode of the given type; return it unlocked."""
        for inum in range(1, self.sb.ninodes):
            with self.cache.block(self.dev, inode_block(inum, self.sb)) as buf:
                allocated = _get_dinode(buf, inum).type == FileType.FREE
                if allocated:
                    _put_dinode(buf, inum, DiskInode(type=int(type_)))
                    self.log.write(buf)
            if allocated:
                return self._iget(self.dev, inum)
        raise KernelPanic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        with self.cache.block(ip.dev, inode_block(ip.inum, self.sb)) as buf:
            _put_dinode(
                buf,
                ip.inum,
                DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs)),
            )
            self.log.write(buf)

    def _iget(self, dev: int, inum: int) -> Inode:
        with self._lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise KernelPanic("iget: no inodes")
            empty.dev = dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Add a reference to ``ip`` and return it."""
        with self._lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode | None) -> None:
        """Lock an inode, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise KernelPanic("ilock")
        ip.lock.acquire()
        if not ip.valid:
            with self.cache.block(ip.dev, inode_block(ip.inum, self.sb)) as buf:
                din = _get_dinode(buf, ip.inum)
            ip.type = din.type
            ip.major = din.major
            ip.minor = din.minor
            ip.nlink = din.nlink
            ip.size = din.size
            ip.addrs = list(din.addrs)
            ip.valid = True
            if ip.type == FileType.FREE:
                raise KernelPanic("ilock: no type")

    def iunlock(self, ip: Inode | None) -> None:
        """Unlock an inode held by the caller."""
        if ip is None or not ip.lock.holding() or ip.ref < 1:
            raise KernelPanic("iunlock")
        ip.lock.release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode if it was the last and has no links."""
        ip.lock.acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._lock:
                    refs = ip.ref
                if refs == 1:
                    self._itrunc(ip)
                    ip.type = FileType.FREE
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip.lock.release()
        with self._lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock, then drop a reference."""
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as buf:
                (addr,) = _ADDR.unpack_from(buf.data, bn * _ADDR.size)
                if addr == 0:
                    addr = self._balloc()
                    _ADDR.pack_into(buf.data, bn * _ADDR.size, addr)
                    self.log.write(buf)
            return addr
        raise KernelPanic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i, addr in enumerate(ip.addrs[:NDIRECT]):
            if addr:
                self._bfree(addr)
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as buf:
                entries = struct.unpack_from(f"<{NINDIRECT}I", buf.data)
            for addr in entries:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Return metadata for a locked inode."""
        return Stat(type=ip.type, dev=ip.dev, ino=ip.inum, nlink=ip.nlink, size=ip.size)

    def _device(self, ip: Inode) -> Device:
        device = self.devices.get(ip.major) if 0 <= ip.major < NDEV else None
        if device is None:
            raise ValueError(f"no device with major number {ip.major}")
        return device

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if ip.type == FileType.DEV:
            device = self._device(ip)
            if device.read is None:
                raise ValueError(f"device {ip.major} cannot be read")
            return device.read(ip, n)
        if n < 0 or off < 0 or off > ip.size:
            raise ValueError(f"cannot read {n} bytes at offset {off}")
        end = off + min(n, ip.size - off)
        chunks = []
        while off < end:
            bno = self._bmap(ip, off // BSIZE)
            with self.cache.block(ip.dev, bno) as buf:
                start = off % BSIZE
                m = min(end - off, BSIZE - start)
                chunks.append(bytes(buf.data[start:start + m]))
            off += m
        return b"".join(chunks)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off`` into a locked inode, growing it if needed."""
        data = bytes(data)
        if ip.type == FileType.DEV:
            device = self._device(ip)
            if device.write is None:
                raise ValueError(f"device {ip.major} cannot be written")
            return device.write(ip, data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise ValueError(f"cannot write at offset {off}")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write would exceed the maximum file size")
        pos = 0
        while pos < n:
            bno = self._bmap(ip, off // BSIZE)
            with self.cache.block(ip.dev, bno) as buf:
                start = off % BSIZE
                m = min(n - pos, BSIZE - start)
                buf.data[start:start + m] = data[pos:pos + m]
                self.log.write(buf)
            pos += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def _read_dirent(self, dp: Inode, off: int, what: str) -> Dirent:
        raw = self.readi(dp, off, DIRENT_SIZE)
        if len(raw) != DIRENT_SIZE:
            raise KernelPanic(what)
        return Dirent.from_bytes(raw)

    def dirlookup(self, dp: Inode, name: str) -> Inode | None:
        """Find ``name`` in the locked directory ``dp``; return its inode or None."""
        if dp.type != FileType.DIR:
            raise KernelPanic("dirlookup not DIR")
        for off in range(0, dp.size, DIRENT_SIZE):
            de = self._read_dirent(dp, off, "dirlookup read")
            if de.inum and namecmp(name, de.name) == 0:
                return self._iget(dp.dev, de.inum)
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (name, inum) to the locked directory ``dp``."""
        existing = self.dirlookup(dp, name)
        if existing is not None:
            self.iput(existing)
            raise FileExistsError(name)
        off = next(
            (
                o
                for o in range(0, dp.size, DIRENT_SIZE)
                if self._read_dirent(dp, o, "dirlink read").inum == 0
            ),
            dp.size,
        )
        if self.writei(dp, Dirent(inum, name).to_bytes(), off) != DIRENT_SIZE:
            raise KernelPanic("dirlink")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Inode | None):
        if path.startswith("/") or cwd is None:
            ip = self._iget(self.dev, ROOTINO)
        else:
            ip = self.idup(cwd)

        while (step := skipelem(path)) is not None:
            name, path = step
            self.ilock(ip)
            if ip.type != FileType.DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            following = self.dirlookup(ip, name)
            if following is None:
                self.iunlockput(ip)
                return None
            self.iunlockput(ip)
            ip = following
        if parent:
            self.iput(ip)
            return None
        return ip

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Look up a path; relative paths start at ``cwd``, or the root if none."""
        return self._namex(path, False, cwd)

    def nameiparent(
        self, path: str, cwd: Inode | None = None
    ) -> tuple[Inode, str] | None:
        """Return the parent directory of a path and the path's last element."""
        return self._namex(path, True, cwd)