import struct

import pytest

from sixkernel.layout import (
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DiskInode,
    Dirent,
    FileType,
    Superblock,
    inode_block,
)
from sixkernel.mkfs import NINODES, ImageBuilder, build_image, main


def _block(image, bn):
    return image[bn * BSIZE:(bn + 1) * BSIZE]


def _superblock(image):
    return Superblock.from_bytes(_block(image, 1))


def _inode(image, sb, inum):
    off = (inum % IPB) * DINODE_SIZE
    return DiskInode.from_bytes(_block(image, inode_block(inum, sb))[off:off + DINODE_SIZE])


def _file(image, sb, inum):
    din = _inode(image, sb, inum)
    blocks = din.addrs[:NDIRECT]
    if din.addrs[NDIRECT]:
        blocks += list(struct.unpack(f"<{NINDIRECT}I", _block(image, din.addrs[NDIRECT])))
    count = -(-din.size // BSIZE)
    return b"".join(_block(image, b) for b in blocks[:count])[:din.size]


def _root_entries(image):
    sb = _superblock(image)
    raw = _file(image, sb, ROOTINO)
    entries = [Dirent.from_bytes(raw[i:i + DIRENT_SIZE]) for i in range(0, len(raw), DIRENT_SIZE)]
    return [e for e in entries if e.inum != 0]


def test_superblock_layout():
    image = build_image([])
    sb = _superblock(image)
    assert len(image) == FSSIZE * BSIZE
    assert sb.size == FSSIZE
    assert sb.ninodes == NINODES
    assert sb.nlog == LOGSIZE
    assert sb.logstart == 2
    assert sb.inodestart == 2 + LOGSIZE
    assert sb.bmapstart > sb.inodestart
    assert sb.size - sb.nblocks > sb.bmapstart


def test_root_directory_entries():
    image = build_image([("README", b"hello"), ("_cat", b"\x7fELF")])
    entries = _root_entries(image)
    assert [e.name for e in entries] == [".", "..", "README", "cat"]
    assert entries[0].inum == ROOTINO
    assert entries[1].inum == ROOTINO
    sb = _superblock(image)
    assert _inode(image, sb, ROOTINO).type == FileType.DIR


def test_root_size_rounded_to_block():
    image = build_image([("a", b"x")])
    din = _inode(image, _superblock(image), ROOTINO)
    assert din.size % BSIZE == 0
    assert din.size > 0


def test_file_contents_round_trip():
    image = build_image([("notes", b"some text\n")])
    sb = _superblock(image)
    inum = _root_entries(image)[2].inum
    din = _inode(image, sb, inum)
    assert din.type == FileType.FILE
    assert din.nlink == 1
    assert _file(image, sb, inum) == b"some text\n"


def test_large_file_uses_indirect_block():
    data = bytes(i % 251 for i in range((NDIRECT + 3) * BSIZE + 17))
    builder = ImageBuilder()
    inum = builder.add_file("big", data)
    image = builder.finish()
    sb = _superblock(image)
    assert _inode(image, sb, inum).addrs[NDIRECT] != 0
    assert _file(image, sb, inum) == data


def test_append_in_pieces():
    builder = ImageBuilder()
    inum = builder.ialloc(FileType.FILE)
    builder.iappend(inum, b"a" * 300)
    builder.iappend(inum, b"b" * 300)
    image = builder.finish()
    assert _file(image, _superblock(image), inum) == b"a" * 300 + b"b" * 300


def test_bitmap_marks_used_blocks():
    builder = ImageBuilder()
    builder.add_file("f", b"z" * 3000)
    image = builder.finish()
    used = builder.freeblock
    sb = _superblock(image)
    assert used > sb.bmapstart
    bitmap = _block(image, sb.bmapstart)
    bits = [bitmap[i // 8] >> (i % 8) & 1 for i in range(used + 8)]
    assert bits == [1] * used + [0] * 8


def test_slash_in_name_rejected():
    with pytest.raises(ValueError):
        ImageBuilder().add_file("dir/file", b"")


def test_file_too_large_rejected():
    with pytest.raises(ValueError):
        ImageBuilder().add_file("huge", bytes(MAXFILE * BSIZE + 1))


def test_out_of_inodes():
    builder = ImageBuilder(ninodes=3)
    builder.ialloc(FileType.FILE)
    with pytest.raises(ValueError):
        builder.ialloc(FileType.FILE)


def test_finish_twice_rejected():
    builder = ImageBuilder()
    builder.finish()
    with pytest.raises(RuntimeError):
        builder.finish()


def test_main_writes_image(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "_echo").write_bytes(b"echo program")
    assert main(["fs.img", "_echo"]) == 0
    image = (tmp_path / "fs.img").read_bytes()
    assert len(image) == FSSIZE * BSIZE
    assert [e.name for e in _root_entries(image)] == [".", "..", "echo"]
    assert "balloc: first" in capsys.readouterr().out


def test_main_usage():
    assert main([]) == 1


def test_main_missing_input(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "absent"]) == 1