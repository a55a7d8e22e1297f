"""Build a file system image holding a root directory and a set of files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Iterable
from pathlib import Path

from .layout import (
    BPB,
    BSIZE,
    FSSIZE,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    IPB,
    DINODE_SIZE,
    ROOTINO,
    DiskInode,
    Dirent,
    FileType,
    Superblock,
    inode_block,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image: boot, superblock, log, inodes, bitmap, data."""

    def __init__(self, size: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE):
        self.nbitmap = size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = nlog
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = size - self.nmeta
        if self.nblocks <= 0:
            raise ValueError(f"image of {size} blocks has no room for data")
        self.sb = Superblock(
            size=size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self._image = bytearray(size * BSIZE)
        self._finished = False
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._write_block(1, self.sb.to_bytes())

        self.root = self.ialloc(FileType.DIR)
        if self.root != ROOTINO:
            raise ValueError("root directory did not get the root inode number")
        self.iappend(self.root, Dirent(self.root, ".").to_bytes())
        self.iappend(self.root, Dirent(self.root, "..").to_bytes())

    def _check_sector(self, sec: int) -> int:
        if not 0 <= sec < self.sb.size:
            raise ValueError(f"sector {sec} outside image")
        return sec * BSIZE

    def _write_block(self, sec: int, data: bytes) -> None:
        start = self._check_sector(sec)
        self._image[start:start + BSIZE] = bytes(data).ljust(BSIZE, b"\0")[:BSIZE]

    def _read_block(self, sec: int) -> bytes:
        start = self._check_sector(sec)
        return bytes(self._image[start:start + BSIZE])

    def _rinode(self, inum: int) -> DiskInode:
        offset = (inum % IPB) * DINODE_SIZE
        block = self._read_block(inode_block(inum, self.sb))
        return DiskInode.from_bytes(block[offset:offset + DINODE_SIZE])

    def _winode(self, inum: int, din: DiskInode) -> None:
        bn = inode_block(inum, self.sb)
        block = bytearray(self._read_block(bn))
        offset = (inum % IPB) * DINODE_SIZE
        block[offset:offset + DINODE_SIZE] = din.to_bytes()
        self._write_block(bn, block)

    def _take_block(self) -> int:
        if self.freeblock >= self.sb.size:
            raise ValueError("image is full")
        block = self.freeblock
        self.freeblock += 1
        return block

    def ialloc(self, type_: int) -> int:
        """Allocate the next inode with the given type and return its number."""
        if self.freeinode >= self.sb.ninodes:
            raise ValueError("out of inodes")
        inum = self.freeinode
        self.freeinode += 1
        self._winode(inum, DiskInode(type=int(type_), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the end of inode ``inum``, allocating blocks."""
        data = bytes(data)
        din = self._rinode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._take_block()
                target = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._take_block()
                indirect = list(_INDIRECT.unpack(self._read_block(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._take_block()
                    self._write_block(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                target = indirect[fbn - NDIRECT]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            block = bytearray(self._read_block(target))
            start = off - fbn * BSIZE
            block[start:start + n1] = data[pos:pos + n1]
            self._write_block(target, block)
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a regular file to the root directory; a leading '_' is dropped."""
        if self._finished:
            raise RuntimeError("image already finished")
        if "/" in name:
            raise ValueError(f"file name {name!r} must not contain '/'")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(FileType.FILE)
        self.iappend(self.root, Dirent(inum, name).to_bytes())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round up the root directory, write the free bitmap, return the image."""
        if self._finished:
            raise RuntimeError("image already finished")
        din = self._rinode(self.root)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.root, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError("too many blocks in use for one bitmap block")
        bitmap = bytearray(BSIZE)
        for bit in range(used):
            bitmap[bit // 8] |= 1 << (bit % 8)
        self._write_block(self.sb.bmapstart, bitmap)
        self._finished = True
        return bytes(self._image)


def build_image(files: Iterable[tuple[str, bytes]]) -> bytes:
    """Build a default-sized image holding the given (name, data) files."""
    builder = ImageBuilder()
    for name, data in files:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.sb.size}"
    )
    for path in args[1:]:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            print(f"{path}: {exc.strerror}", file=sys.stderr)
            return 1
        try:
            builder.add_file(path, data)
        except ValueError as exc:
            print(f"mkfs: {path}: {exc}", file=sys.stderr)
            return 1

    try:
        image = builder.finish()
    except ValueError as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1
    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")

    try:
        Path(args[0]).write_bytes(image)
    except OSError as exc:
        print(f"{args[0]}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0