"""Find and read the multiprocessor configuration tables in physical memory."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from .layout import NCPU, KernelPanic

MPPROC = 0x00
MPBUS = 0x01
MPIOAPIC = 0x02
MPIOINTR = 0x03
MPLINTR = 0x04

_FLOATING = struct.Struct("<4sIBBBBB3s")
_CONF = struct.Struct("<4sHBB20sIHHIHBB")
_PROC_SIZE = struct.calcsize("<BBBB4sI8s")
_IOAPIC_SIZE = struct.calcsize("<BBBBI")
_OTHER_SIZE = 8

_BDA = 0x400


@dataclass(frozen=True)
class MPFloating:
    """The MP floating pointer structure found in memory."""

    address: int
    physaddr: int
    length: int
    specrev: int
    type: int
    imcrp: int


@dataclass
class MachineConfig:
    """What the configuration table says about the machine."""

    lapic: int
    version: int
    cpus: list[int] = field(default_factory=list)
    ioapicid: int = 0
    imcr: bool = False


def checksum(data: bytes) -> int:
    """Sum of all bytes modulo 256; a valid structure sums to zero."""
    return sum(data) & 0xFF


def search_floating(memory: bytes, base: int, length: int) -> MPFloating | None:
    """Look for a valid floating pointer in the ``length`` bytes at ``base``."""
    for p in range(base, base + length, _FLOATING.size):
        if p < 0 or p + _FLOATING.size > len(memory):
            continue
        raw = bytes(memory[p:p + _FLOATING.size])
        if raw[:4] == b"_MP_" and checksum(raw) == 0:
            _sig, physaddr, flen, specrev, _sum, type_, imcrp, _res = _FLOATING.unpack(raw)
            return MPFloating(p, physaddr, flen, specrev, type_, imcrp)
    return None


def find_floating(memory: bytes) -> MPFloating | None:
    """Search the EBDA, the top of base memory, then the BIOS ROM."""
    if len(memory) < _BDA + 0x15:
        raise ValueError("memory too small to hold the BIOS data area")
    bda = memory[_BDA:_BDA + 0x15]
    ebda = ((bda[0x0F] << 8) | bda[0x0E]) << 4
    if ebda:
        found = search_floating(memory, ebda, 1024)
        if found is not None:
            return found
    else:
        top = ((bda[0x14] << 8) | bda[0x13]) * 1024
        found = search_floating(memory, top - 1024, 1024)
        if found is not None:
            return found
    return search_floating(memory, 0xF0000, 0x10000)


def _config(memory: bytes, mp: MPFloating | None) -> tuple | None:
    if mp is None or mp.physaddr == 0:
        return None
    pa = mp.physaddr
    if pa + _CONF.size > len(memory):
        return None
    header = _CONF.unpack_from(memory, pa)
    sig, length, version = header[0], header[1], header[2]
    if sig != b"PCMP":
        return None
    if version not in (1, 4):
        return None
    if length < _CONF.size or pa + length > len(memory):
        return None
    if checksum(memory[pa:pa + length]) != 0:
        return None
    return header


def parse_machine(memory: bytes) -> MachineConfig:
    """Read the processors and I/O APIC listed in the MP configuration table."""
    mp = find_floating(memory)
    header = _config(memory, mp)
    if header is None:
        raise KernelPanic("Expect to run on an SMP")
    length, version, lapicaddr = header[1], header[2], header[8]
    config = MachineConfig(lapic=lapicaddr, version=version, imcr=bool(mp.imcrp))

    p = mp.physaddr + _CONF.size
    end = mp.physaddr + length
    while p < end:
        kind = memory[p]
        if kind == MPPROC:
            if len(config.cpus) < NCPU:
                config.cpus.append(memory[p + 1])
            p += _PROC_SIZE
        elif kind == MPIOAPIC:
            config.ioapicid = memory[p + 1]
            p += _IOAPIC_SIZE
        elif kind in (MPBUS, MPIOINTR, MPLINTR):
            p += _OTHER_SIZE
        else:
            raise KernelPanic("Didn't find a suitable machine")
    return config