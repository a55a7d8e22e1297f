import pytest

from sixkernel.disk import BufferCache, MemoryDisk
from sixkernel.fs import Device, FileSystem, namecmp, read_superblock, skipelem
from sixkernel.layout import (
    BSIZE,
    DIRSIZ,
    MAXFILE,
    NDIRECT,
    ROOTDEV,
    ROOTINO,
    FileType,
    KernelPanic,
)
from sixkernel.log import Log
from sixkernel.mkfs import ImageBuilder, build_image

CONTENT = b"hello from the disk\n"


def make_fs(files=(("hello", CONTENT),), devices=None, image=None):
    disk = MemoryDisk(image if image is not None else build_image(files))
    cache = BufferCache(disk)
    sb = read_superblock(cache, ROOTDEV)
    log = Log(cache, ROOTDEV, sb)
    return FileSystem(cache, ROOTDEV, log, devices), disk


def read_file(fs, path):
    ip = fs.namei(path)
    fs.ilock(ip)
    data = fs.readi(ip, 0, ip.size)
    with fs.log.transaction():
        fs.iunlockput(ip)
    return data


def test_skipelem_examples():
    assert skipelem("a/bb/c") == ("a", "bb/c")
    assert skipelem("///a//bb") == ("a", "bb")
    assert skipelem("a") == ("a", "")
    assert skipelem("") is None
    assert skipelem("////") is None


def test_skipelem_truncates_long_names():
    name, rest = skipelem("a" * 20 + "/x")
    assert name == "a" * DIRSIZ
    assert rest == "x"


def test_namecmp_ignores_bytes_past_dirsiz():
    assert namecmp("b" * DIRSIZ + "x", "b" * DIRSIZ + "y") == 0
    assert namecmp("a", "b") < 0
    assert namecmp("b", "a") > 0


def test_read_superblock_matches_builder():
    fs, _ = make_fs()
    assert fs.sb == ImageBuilder().sb


def test_namei_root():
    fs, _ = make_fs()
    root = fs.namei("/")
    fs.ilock(root)
    st = fs.stati(root)
    fs.iunlock(root)
    assert root.inum == ROOTINO
    assert st.type == FileType.DIR
    assert st.ino == ROOTINO
    assert st.dev == ROOTDEV
    assert st.size == BSIZE


def test_namei_reads_file():
    fs, _ = make_fs()
    assert read_file(fs, "/hello") == CONTENT


def test_relative_lookup_from_cwd():
    fs, _ = make_fs()
    root = fs.namei("/")
    ip = fs.namei("hello", cwd=root)
    fs.ilock(ip)
    assert fs.readi(ip, 0, 100) == CONTENT
    assert fs.stati(ip).size == len(CONTENT)
    with fs.log.transaction():
        fs.iunlockput(ip)


def test_namei_missing_and_through_file():
    fs, _ = make_fs()
    with fs.log.transaction():
        assert fs.namei("/missing") is None
        assert fs.namei("/hello/x") is None


def test_nameiparent():
    fs, _ = make_fs()
    with fs.log.transaction():
        parent, name = fs.nameiparent("/hello")
        assert parent.inum == ROOTINO
        assert name == "hello"
        fs.iput(parent)
        assert fs.nameiparent("/") is None


def test_readi_clamps_and_rejects_bad_offset():
    fs, _ = make_fs()
    ip = fs.namei("/hello")
    fs.ilock(ip)
    assert fs.readi(ip, 6, 1000) == CONTENT[6:]
    assert fs.readi(ip, len(CONTENT), 10) == b""
    with pytest.raises(ValueError):
        fs.readi(ip, len(CONTENT) + 1, 1)
    fs.iunlock(ip)


def test_append_persists_to_disk():
    fs, disk = make_fs()
    with fs.log.transaction():
        ip = fs.namei("/hello")
        fs.ilock(ip)
        assert fs.writei(ip, b"more", ip.size) == 4
        fs.iunlockput(ip)
    reopened, _ = make_fs(image=disk.image)
    assert read_file(reopened, "/hello") == CONTENT + b"more"


def test_write_past_size_rejected():
    fs, _ = make_fs()
    ip = fs.namei("/hello")
    fs.ilock(ip)
    with fs.log.transaction():
        with pytest.raises(ValueError):
            fs.writei(ip, b"x", ip.size + 1)
    assert fs.readi(ip, 0, 100) == CONTENT
    fs.iunlock(ip)


def test_write_beyond_max_file_rejected():
    fs, _ = make_fs()
    with fs.log.transaction():
        ip = fs.ialloc(FileType.FILE)
        fs.ilock(ip)
        with pytest.raises(ValueError):
            fs.writei(ip, bytes(MAXFILE * BSIZE + 1), 0)
        assert ip.size == 0
        fs.iunlock(ip)


def test_large_file_uses_indirect_block():
    fs, _ = make_fs()
    chunks = [bytes([i]) * BSIZE for i in range(NDIRECT + 2)]
    with fs.log.transaction():
        ip = fs.ialloc(FileType.FILE)
    fs.ilock(ip)
    off = 0
    for chunk in chunks:
        with fs.log.transaction():
            off += fs.writei(ip, chunk, off)
    assert ip.size == len(chunks) * BSIZE
    assert ip.addrs[NDIRECT] != 0
    assert fs.readi(ip, 0, ip.size) == b"".join(chunks)
    fs.iunlock(ip)


def test_dirlink_and_dirlookup():
    fs, _ = make_fs()
    with fs.log.transaction():
        root = fs.namei("/")
        fs.ilock(root)
        ip = fs.ialloc(FileType.FILE)
        fs.dirlink(root, "newfile", ip.inum)
        found = fs.dirlookup(root, "newfile")
        assert found is ip
        assert found.inum == ip.inum
        with pytest.raises(FileExistsError):
            fs.dirlink(root, "newfile", ip.inum)
        fs.iput(found)
        fs.iunlockput(root)
        fs.iput(ip)
    with fs.log.transaction():
        again = fs.namei("/newfile")
        assert again.inum == ip.inum
        fs.iput(again)


def test_dirlookup_on_file_panics():
    fs, _ = make_fs()
    ip = fs.namei("/hello")
    fs.ilock(ip)
    with pytest.raises(KernelPanic):
        fs.dirlookup(ip, "x")
    fs.iunlock(ip)


def test_iput_frees_unlinked_inode_and_blocks():
    fs, _ = make_fs()
    with fs.log.transaction():
        ip = fs.ialloc(FileType.FILE)
        fs.ilock(ip)
        fs.writei(ip, b"abc", 0)
        inum, block = ip.inum, ip.addrs[0]
        fs.iunlockput(ip)
    with fs.log.transaction():
        again = fs.ialloc(FileType.FILE)
        fs.ilock(again)
        fs.writei(again, b"xyz", 0)
        assert again.inum == inum
        assert again.addrs[0] == block
        fs.iunlock(again)


def test_lock_misuse_panics():
    fs, _ = make_fs()
    root = fs.namei("/")
    with pytest.raises(KernelPanic):
        fs.iunlock(root)
    with pytest.raises(KernelPanic):
        fs.ilock(None)


def test_idup_adds_reference():
    fs, _ = make_fs()
    root = fs.namei("/")
    refs = root.ref
    assert fs.idup(root) is root
    assert root.ref == refs + 1


def test_device_inode_dispatches():
    written = []
    device = Device(
        read=lambda ip, n: b"z" * n,
        write=lambda ip, data: written.append(data) or len(data),
    )
    fs, _ = make_fs(devices={1: device})
    with fs.log.transaction():
        ip = fs.ialloc(FileType.DEV)
    fs.ilock(ip)
    ip.major = 1
    assert fs.readi(ip, 0, 4) == b"zzzz"
    assert fs.writei(ip, b"hey", 0) == 3
    assert written == [b"hey"]
    ip.major = 2
    with pytest.raises(ValueError):
        fs.readi(ip, 0, 1)
    fs.iunlock(ip)