"""On-disk layout of the file system and kernel-wide limits."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

NPROC = 64
KSTACKSIZE = 4096
NCPU = 8
NOFILE = 16
NFILE = 100
NINODE = 50
NDEV = 10
ROOTDEV = 1
MAXARG = 32
MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3
NBUF = MAXOPBLOCKS * 3
FSSIZE = 1000

ROOTINO = 1
BSIZE = 512
NDIRECT = 12
_UINT_SIZE = 4
NINDIRECT = BSIZE // _UINT_SIZE
MAXFILE = NDIRECT + NINDIRECT
DIRSIZ = 14
BPB = BSIZE * 8

_SUPERBLOCK = struct.Struct("<7I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size
IPB = BSIZE // DINODE_SIZE


class KernelPanic(RuntimeError):
    """An unrecoverable inconsistency inside the kernel."""


class FileType(IntEnum):
    """Inode types; FREE marks an unallocated on-disk inode."""

    FREE = 0
    DIR = 1
    FILE = 2
    DEV = 3


def _unpack(layout: struct.Struct, data: bytes, what: str) -> tuple:
    try:
        return layout.unpack_from(data)
    except struct.error as exc:
        raise ValueError(f"cannot decode {what}: {exc}") from exc


@dataclass
class Superblock:
    """Describes the disk layout of a file system image."""

    size: int
    nblocks: int
    ninodes: int
    nlog: int
    logstart: int
    inodestart: int
    bmapstart: int

    def to_bytes(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> Superblock:
        return cls(*_unpack(_SUPERBLOCK, data, "superblock"))


@dataclass
class DiskInode:
    """An inode as stored on disk."""

    type: int = FileType.FREE
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    def to_bytes(self) -> bytes:
        try:
            return _DINODE.pack(
                int(self.type), self.major, self.minor, self.nlink, self.size, *self.addrs
            )
        except struct.error as exc:
            raise ValueError(f"cannot encode inode: {exc}") from exc

    @classmethod
    def from_bytes(cls, data: bytes) -> DiskInode:
        type_, major, minor, nlink, size, *addrs = _unpack(_DINODE, data, "inode")
        return cls(type_, major, minor, nlink, size, list(addrs))


@dataclass
class Dirent:
    """A directory entry; inode number 0 marks a free slot."""

    inum: int = 0
    name: str = ""

    def to_bytes(self) -> bytes:
        return _DIRENT.pack(self.inum, self.name.encode("utf-8")[:DIRSIZ])

    @classmethod
    def from_bytes(cls, data: bytes) -> Dirent:
        inum, raw = _unpack(_DIRENT, data, "directory entry")
        return cls(inum, raw.split(b"\0", 1)[0].decode("utf-8", "replace"))


@dataclass
class Stat:
    """Metadata about a file, as reported to programs."""

    type: int
    dev: int
    ino: int
    nlink: int
    size: int


def inode_block(inum: int, sb: Superblock) -> int:
    """Return the block that holds inode ``inum``."""
    return inum // IPB + sb.inodestart


def bitmap_block(b: int, sb: Superblock) -> int:
    """Return the free-map block that holds the bit for block ``b``."""
    return b // BPB + sb.bmapstart