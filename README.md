# sixkernel

A pure-Python model of the pieces of a small Unix-like teaching kernel: the
on-disk file system format, an image builder, an in-memory disk with a
buffer cache, a crash-safe redo log, inodes, directories and path lookup,
pipes and an open-file table, the console line discipline, the PC keyboard
decoder, a physical page allocator, the multiprocessor configuration table
reader, and a few user tools (`cat`, `echo`, `ls`, `grep`).

Everything is ordinary Python objects: disk images are `bytes`, blocks are
`bytearray`s, and kernel panics are raised as `sixkernel.layout.KernelPanic`.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Command-line tools

Build a file system image from host files. The first argument is the image
to write; each following file is added to the root directory under its name,
with a leading `_` dropped (names must not contain `/`):

```
sixkernel-mkfs fs.img README _cat _ls
```

Print the lines of files, or of standard input, that match a small regular
expression (only `^`, `.`, `*` and `$` are understood):

```
sixkernel-grep '^ab*c$' notes.txt
```

## Library overview

| Module | What it provides |
| --- | --- |
| `sixkernel.layout` | Limits and block formats: `Superblock`, `DiskInode`, `Dirent`, `Stat`, `FileType`, `inode_block`, `bitmap_block`, and `KernelPanic` |
| `sixkernel.mkfs` | `ImageBuilder` (`ialloc`, `iappend`, `add_file`, `finish`) and `build_image` |
| `sixkernel.disk` | `MemoryDisk` holding an image, and a `BufferCache` of `Buffer`s that recycles the least recently used free buffer; `block()` holds a buffer for a `with` block |
| `sixkernel.log` | `Log`, a redo log with `begin_op`/`end_op`, `write`, `recover` and the `transaction()` context manager |
| `sixkernel.fs` | `FileSystem` with inode allocation, locking and reference counting, `readi`/`writei`, `dirlookup`/`dirlink`, `namei`/`nameiparent`; `Inode`, `Device`, `skipelem`, `namecmp`, `read_superblock` |
| `sixkernel.pipe` | `Pipe`, a 512-byte ring buffer with blocking `read` and `write` |
| `sixkernel.file` | `FileTable` of reference-counted `OpenFile`s over inodes and pipes, including `open_pipe` |
| `sixkernel.console` | `Console` line editing and echo, `Screen` text display, and `format_kernel` (`%d %x %p %s`) |
| `sixkernel.kbd` | `KeyboardDecoder` and `decode_scancodes` for PC scan codes |
| `sixkernel.printf` | `format_user` and `fprintf` (`%d %x %p %s %c`) |
| `sixkernel.grep` | `match`, `grep` and the `sixkernel-grep` command |
| `sixkernel.kalloc` | `PageAllocator` handing out 4096-byte pages from a free list |
| `sixkernel.tools` | `cat`, `echo`, `ls` and `fmtname` working against a `FileSystem` |
| `sixkernel.mptable` | `checksum`, `search_floating`, `find_floating` and `parse_machine` for reading an MP table out of a memory image |

## A typical session

```python
import io
import sys

from sixkernel.disk import BufferCache, MemoryDisk
from sixkernel.fs import FileSystem, read_superblock
from sixkernel.log import Log
from sixkernel.mkfs import build_image
from sixkernel.tools import cat, ls

image = build_image([("hello.txt", b"hello\n")])
disk = MemoryDisk(image)            # device number 1 by default
cache = BufferCache(disk)
sb = read_superblock(cache, 1)
log = Log(cache, 1, sb)             # recovers any committed transaction
fs = FileSystem(cache, 1, log)

ls(fs, "/", sys.stdout)
out = io.BytesIO()
cat(fs, ["/hello.txt"], out)
```

Every change to the file system must happen inside a log transaction
(`with log.transaction(): ...`); modified blocks reach their home locations
only when the last outstanding operation ends.

## What the package does not do

There is no running kernel: no processes, scheduler, system calls, shell or
boot loader, and nothing talks to real hardware. The console, screen and
keyboard decoder work on values passed to them in Python. The file system
offers the low-level operations listed above but no call that creates,
links or removes files by path name; `cat`, `echo` and `ls` are library
functions, not commands.