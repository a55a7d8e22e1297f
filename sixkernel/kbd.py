"""Decode PC keyboard scan codes into characters."""

from __future__ import annotations

from collections.abc import Iterable

NO = 0

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2
CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5
E0ESC = 1 << 6

KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _ctrl(ch: str) -> int:
    return (ord(ch) - ord("@")) & 0xFF


def _table(prefix: Iterable[int], extras: dict[int, int]) -> tuple[int, ...]:
    table = [NO] * 256
    prefix = list(prefix)
    table[:len(prefix)] = prefix
    for code, value in extras.items():
        table[code] = value
    return tuple(table)


_SPECIAL = {
    0xC8: KEY_UP, 0xD0: KEY_DN,
    0xC9: KEY_PGUP, 0xD1: KEY_PGDN,
    0xCB: KEY_LF, 0xCD: KEY_RT,
    0x97: KEY_HOME, 0xCF: KEY_END,
    0xD2: KEY_INS, 0xD3: KEY_DEL,
}

_KEYPAD = b"\0" * 13 + b"789-456+1230."

SHIFTCODE = _table((), {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT})
TOGGLECODE = _table((), {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK})

NORMALMAP = _table(
    b"\0\x1b1234567890-=\b\t"
    b"qwertyuiop[]\n\0as"
    b"dfghjkl;'`\0\\zxcv"
    b"bnm,./\0*\0 " + _KEYPAD,
    {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL},
)

SHIFTMAP = _table(
    b"\0\x1b!@#$%^&*()_+\b\t"
    b"QWERTYUIOP{}\n\0AS"
    b"DFGHJKL:\"~\0|ZXCV"
    b"BNM<>?\0*\0 " + _KEYPAD,
    {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL},
)

CTLMAP = _table(
    [NO] * 16
    + [_ctrl(c) for c in "QWERTYUIOP"]
    + [NO, NO, ord("\r"), NO]
    + [_ctrl(c) for c in "ASDFGHJKL"]
    + [NO, NO, NO, NO, _ctrl("\\")]
    + [_ctrl(c) for c in "ZXCVBNM"]
    + [NO, NO, _ctrl("/"), NO, NO],
    {0x9C: ord("\r"), 0xB5: _ctrl("/"), **_SPECIAL},
)

_CHARCODE = (NORMALMAP, SHIFTMAP, CTLMAP, CTLMAP)


class KeyboardDecoder:
    """Tracks modifier state across scan codes."""

    def __init__(self) -> None:
        self.shift = 0

    def feed(self, scancode: int) -> int:
        """Feed one scan code; return the character produced, or 0 for none."""
        if not 0 <= scancode <= 0xFF:
            raise ValueError(f"scan code {scancode} out of range")
        data = scancode
        if data == 0xE0:
            self.shift |= E0ESC
            return 0
        if data & 0x80:
            # Key released.
            if not self.shift & E0ESC:
                data &= 0x7F
            self.shift &= ~(SHIFTCODE[data] | E0ESC)
            return 0
        if self.shift & E0ESC:
            data |= 0x80
            self.shift &= ~E0ESC

        self.shift |= SHIFTCODE[data]
        self.shift ^= TOGGLECODE[data]
        c = _CHARCODE[self.shift & (CTL | SHIFT)][data]
        if self.shift & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c -= ord("a") - ord("A")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c


def decode_scancodes(codes: Iterable[int]) -> bytes:
    """Decode a sequence of scan codes into the bytes they type."""
    decoder = KeyboardDecoder()
    return bytes(c for c in map(decoder.feed, codes) if c)