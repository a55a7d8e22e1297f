"""Console: kernel formatted output, a text screen, and line-edited input."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

from .layout import KernelPanic

BACKSPACE = 0x100
INPUT_BUF = 128
COLS = 80
ROWS = 25
_ATTR = 0x0700


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


def _printint(value: int, base: int, signed: bool, digits: str) -> str:
    x = value & 0xFFFFFFFF
    negative = False
    if signed and x & 0x80000000:
        negative = True
        x = (1 << 32) - x
    out = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def format_kernel(fmt: str, *args) -> str:
    """Format like the kernel's printer: only %d, %x, %p, %s and %%."""
    values = iter(args)

    def take():
        try:
            return next(values)
        except StopIteration:
            raise ValueError(f"not enough arguments for format {fmt!r}") from None

    out: list[str] = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        c = next(chars, None)
        if c is None:
            break
        if c == "d":
            out.append(_printint(int(take()), 10, True, "0123456789abcdef"))
        elif c in "xp":
            out.append(_printint(int(take()), 16, False, "0123456789abcdef"))
        elif c == "s":
            s = take()
            out.append("(null)" if s is None else str(s))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
    return "".join(out)


class Screen:
    """A colour text display of 25 rows of 80 cells that scrolls."""

    def __init__(self) -> None:
        self.cells = [0] * (COLS * ROWS)
        self.pos = 0

    def putc(self, c: int) -> None:
        """Put one character, newline or BACKSPACE at the cursor."""
        pos = self.pos
        if c == ord("\n"):
            pos += COLS - pos % COLS
        elif c == BACKSPACE:
            if pos > 0:
                pos -= 1
        else:
            self.cells[pos] = (c & 0xFF) | _ATTR
            pos += 1

        if pos < 0 or pos > ROWS * COLS:
            raise KernelPanic("pos under/overflow")

        if pos // COLS >= 24:
            self.cells[0:23 * COLS] = self.cells[COLS:24 * COLS]
            pos -= COLS
            self.cells[pos:24 * COLS] = [0] * (24 * COLS - pos)

        self.pos = pos
        self.cells[pos] = ord(" ") | _ATTR

    def text(self) -> str:
        """The screen contents, rows without trailing blanks."""
        rows = []
        for start in range(0, COLS * ROWS, COLS):
            row = self.cells[start:start + COLS]
            rows.append("".join(chr(cell & 0xFF) if cell & 0xFF else " " for cell in row).rstrip())
        return "\n".join(rows).rstrip("\n")


class Console:
    """Echoing, line-edited keyboard input and output to screen and serial.

    ``is_killed`` is asked whether the reading process was killed while it
    waits; ``on_procdump`` is called when Control-P is typed.
    """

    def __init__(self, screen: Screen | None = None):
        self.screen = screen if screen is not None else Screen()
        self.serial = bytearray()
        self.is_killed: Callable[[], bool] = lambda: False
        self.on_procdump: Callable[[], None] | None = None
        self._buf = bytearray(INPUT_BUF)
        self._r = 0
        self._w = 0
        self._e = 0
        self._cond = threading.Condition()

    def _putc(self, c: int) -> None:
        if c == BACKSPACE:
            self.serial += b"\b \b"
        else:
            self.serial.append(c & 0xFF)
        self.screen.putc(c)

    def interrupt(self, chars: Iterable[int] | str) -> None:
        """Handle typed characters: editing keys, echo and line completion."""
        codes = (ord(ch) for ch in chars) if isinstance(chars, str) else chars
        procdump = False
        with self._cond:
            for c in codes:
                if c == _ctrl("P"):
                    procdump = True
                elif c == _ctrl("U"):
                    while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n"):
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c in (_ctrl("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self._e % INPUT_BUF] = c & 0xFF
                    self._e += 1
                    self._putc(c)
                    if c == ord("\n") or c == _ctrl("D") or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if procdump and self.on_procdump is not None:
            self.on_procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, stopping after a newline; ^D marks end of file."""
        target = n
        out = bytearray()
        with self._cond:
            while n > 0:
                while self._r == self._w:
                    if self.is_killed():
                        raise InterruptedError("killed while reading console")
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _ctrl("D"):
                    if n < target:
                        # Keep ^D so the next read returns nothing.
                        self._r -= 1
                    break
                out.append(c)
                n -= 1
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data: bytes) -> int:
        """Write bytes to the screen and serial line."""
        data = bytes(data)
        with self._cond:
            for byte in data:
                self._putc(byte)
        return len(data)