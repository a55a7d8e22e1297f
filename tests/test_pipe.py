import threading

import pytest

from sixkernel.pipe import PIPESIZE, Pipe


def test_write_then_read():
    p = Pipe()
    assert p.write(b"abc") == 3
    assert p.read(10) == b"abc"


def test_read_returns_at_most_n():
    p = Pipe()
    p.write(b"abcdef")
    assert p.read(2) == b"ab"
    assert p.read(100) == b"cdef"


def test_read_after_writer_closed_gives_eof():
    p = Pipe()
    p.write(b"xy")
    p.close(writable=True)
    assert p.read(10) == b"xy"
    assert p.read(10) == b""


def test_write_fills_pipe_with_reader_closed():
    p = Pipe()
    p.close(writable=False)
    assert p.write(bytes(PIPESIZE)) == PIPESIZE
    with pytest.raises(BrokenPipeError):
        p.write(b"x")


def test_killed_reader_is_interrupted():
    p = Pipe(killed=lambda: True)
    with pytest.raises(InterruptedError):
        p.read(1)


def test_killed_writer_on_full_pipe_is_interrupted():
    p = Pipe(killed=lambda: True)
    p.write(bytes(PIPESIZE))
    with pytest.raises(InterruptedError):
        p.write(b"x")


def test_closed_after_both_ends():
    p = Pipe()
    p.close(writable=True)
    assert not p.closed
    p.close(writable=False)
    assert p.closed


def test_large_write_blocks_until_read():
    p = Pipe()
    data = bytes(i % 251 for i in range(3 * PIPESIZE + 17))
    writer = threading.Thread(target=lambda: (p.write(data), p.close(True)))
    writer.start()
    received = bytearray()
    while chunk := p.read(100):
        received += chunk
    writer.join(timeout=5)
    assert not writer.is_alive()
    assert bytes(received) == data
    assert p.nread == p.nwrite == len(data)


def test_read_waits_for_writer():
    p = Pipe()
    result = []
    reader = threading.Thread(target=lambda: result.append(p.read(5)))
    reader.start()
    p.write(b"later")
    reader.join(timeout=5)
    assert not reader.is_alive()
    assert result == [b"later"]