"""Print lines matching a simple regular expression (^ . * $)."""

from __future__ import annotations

import sys
from typing import BinaryIO

_BUFSIZE = 1024


def _matchhere(re: str, ri: int, text: str, ti: int) -> bool:
    while True:
        if ri == len(re):
            return True
        if ri + 1 < len(re) and re[ri + 1] == "*":
            return _matchstar(re[ri], re, ri + 2, text, ti)
        if re[ri] == "$" and ri + 1 == len(re):
            return ti == len(text)
        if ti < len(text) and (re[ri] == "." or re[ri] == text[ti]):
            ri += 1
            ti += 1
            continue
        return False


def _matchstar(c: str, re: str, ri: int, text: str, ti: int) -> bool:
    while True:
        if _matchhere(re, ri, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
            continue
        return False


def match(pattern: str, text: str) -> bool:
    """True if ``pattern`` matches anywhere in ``text``."""
    if pattern.startswith("^"):
        return _matchhere(pattern, 1, text, 0)
    return any(_matchhere(pattern, 0, text, ti) for ti in range(len(text) + 1))


def grep(pattern: str, stream: BinaryIO, out: BinaryIO) -> None:
    """Copy matching newline-terminated lines from ``stream`` to ``out``.

    A buffer with no newline in it is dropped, as is a final line that
    lacks one.
    """
    pending = b""
    while chunk := stream.read(_BUFSIZE - 1 - len(pending)):
        pending += chunk
        *lines, rest = pending.split(b"\n")
        for line in lines:
            if match(pattern, line.decode("latin-1")):
                out.write(line + b"\n")
        pending = rest if lines else b""


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, paths = args[0], args[1:]
    sys.stdout.flush()
    out = sys.stdout.buffer
    if not paths:
        grep(pattern, sys.stdin.buffer, out)
        out.flush()
        return 0
    for path in paths:
        try:
            stream = open(path, "rb")
        except OSError:
            out.flush()
            print(f"grep: cannot open {path}")
            return 1
        with stream:
            grep(pattern, stream, out)
        out.flush()
    return 0