"""Formatted output for user programs."""

from __future__ import annotations

from typing import TextIO

_DIGITS = "0123456789ABCDEF"


def _printint(value: int, base: int, signed: bool) -> str:
    x = value & 0xFFFFFFFF
    negative = False
    if signed and x & 0x80000000:
        negative = True
        x = (1 << 32) - x
    out = []
    while True:
        out.append(_DIGITS[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def format_user(fmt: str, *args) -> str:
    """Format with %d, %x, %p, %s, %c and %%; unknown escapes are kept."""
    values = iter(args)

    def take():
        try:
            return next(values)
        except StopIteration:
            raise ValueError(f"not enough arguments for format {fmt!r}") from None

    out: list[str] = []
    escaped = False
    for c in fmt:
        if not escaped:
            if c == "%":
                escaped = True
            else:
                out.append(c)
            continue
        if c == "d":
            out.append(_printint(int(take()), 10, True))
        elif c in "xp":
            out.append(_printint(int(take()), 16, False))
        elif c == "s":
            s = take()
            out.append("(null)" if s is None else str(s))
        elif c == "c":
            ch = take()
            out.append(ch[:1] if isinstance(ch, str) else chr(int(ch) & 0xFF))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
        escaped = False
    return "".join(out)


def fprintf(stream: TextIO, fmt: str, *args) -> None:
    """Write formatted text to ``stream``."""
    stream.write(format_user(fmt, *args))