import io

import pytest

from sixkernel.disk import BufferCache, MemoryDisk
from sixkernel.fs import FileSystem, read_superblock
from sixkernel.layout import DIRSIZ, ROOTDEV, FileType
from sixkernel.log import Log
from sixkernel.mkfs import build_image
from sixkernel.tools import cat, echo, fmtname, ls

BIG = bytes(range(256)) * 9


@pytest.fixture
def fs():
    image = build_image([("README", b"hello\n"), ("big", BIG)])
    cache = BufferCache(MemoryDisk(image))
    sb = read_superblock(cache, ROOTDEV)
    log = Log(cache, ROOTDEV, sb)
    return FileSystem(cache, ROOTDEV, log)


def test_cat_single_file(fs):
    out = io.BytesIO()
    cat(fs, ["README"], out)
    assert out.getvalue() == b"hello\n"


def test_cat_concatenates_files(fs):
    out = io.BytesIO()
    cat(fs, ["/README", "README"], out)
    assert out.getvalue() == b"hello\nhello\n"


def test_cat_file_spanning_blocks(fs):
    out = io.BytesIO()
    cat(fs, ["big"], out)
    assert out.getvalue() == BIG


def test_cat_missing_file(fs):
    with pytest.raises(FileNotFoundError):
        cat(fs, ["nothing"], io.BytesIO())


def test_cat_reads_stdin_without_paths(fs, monkeypatch):
    monkeypatch.setattr("sys.stdin", io.TextIOWrapper(io.BytesIO(b"from stdin")))
    out = io.BytesIO()
    cat(fs, [], out)
    assert out.getvalue() == b"from stdin"


def test_echo_joins_arguments():
    out = io.StringIO()
    echo(["hello", "world"], out)
    assert out.getvalue() == "hello world\n"


def test_echo_without_arguments_writes_nothing():
    out = io.StringIO()
    echo([], out)
    assert out.getvalue() == ""


def test_fmtname_pads_last_element():
    name = fmtname("a/b/cat")
    assert len(name) == DIRSIZ
    assert name.rstrip() == "cat"


def test_fmtname_keeps_long_names():
    long_name = "x" * (DIRSIZ + 3)
    assert fmtname("dir/" + long_name) == long_name


def test_ls_file(fs):
    out = io.StringIO()
    ls(fs, "README", out)
    name, type_, _ino, size = out.getvalue().split()
    assert name == "README"
    assert int(type_) == FileType.FILE
    assert int(size) == len(b"hello\n")


def test_ls_root_directory(fs):
    out = io.StringIO()
    ls(fs, "/", out)
    rows = {line.split()[0]: line.split() for line in out.getvalue().splitlines()}
    assert set(rows) == {".", "..", "README", "big"}
    assert int(rows["."][1]) == FileType.DIR
    assert int(rows["big"][3]) == len(BIG)
    assert rows["."][2] == rows[".."][2]


def test_ls_missing_path(fs):
    with pytest.raises(FileNotFoundError):
        ls(fs, "nothing", io.StringIO())


def test_ls_path_too_long(fs):
    out = io.StringIO()
    ls(fs, "/" * 500, out)
    assert out.getvalue() == "ls: path too long\n"