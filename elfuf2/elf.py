"""ELF32 file and program header structures (little-endian)."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

ELF_MAGIC = 0x464C457F
EM_ARM = 0x28
EF_ARM_ABI_FLOAT_HARD = 0x00000400
PT_LOAD = 0x00000001

_COMMON = struct.Struct("<I5B7xHHI")
_ELF32_TAIL = struct.Struct("<4I6H")
_PROGRAM_HEADER = struct.Struct("<8I")

ELF_HEADER_SIZE = _COMMON.size
ELF32_HEADER_SIZE = _COMMON.size + _ELF32_TAIL.size
PROGRAM_HEADER_SIZE = _PROGRAM_HEADER.size


def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class ElfHeader:
    """The identification part shared by 32- and 64-bit ELF headers."""

    magic: int = ELF_MAGIC
    arch_class: int = 1
    endianness: int = 1
    version: int = 1
    abi: int = 0
    abi_version: int = 0
    type: int = 2
    machine: int = EM_ARM
    version2: int = 1

    @classmethod
    def from_bytes(cls, data: bytes) -> ElfHeader:
        _require(data, ELF_HEADER_SIZE, "ELF identification")
        return cls(*_COMMON.unpack_from(data))

    def to_bytes(self) -> bytes:
        return _COMMON.pack(
            self.magic,
            self.arch_class,
            self.endianness,
            self.version,
            self.abi,
            self.abi_version,
            self.type,
            self.machine,
            self.version2,
        )


@dataclass
class Elf32Header:
    """A complete ELF32 file header."""

    common: ElfHeader = field(default_factory=ElfHeader)
    entry: int = 0
    ph_offset: int = 0
    sh_offset: int = 0
    flags: int = 0
    eh_size: int = ELF32_HEADER_SIZE
    ph_entry_size: int = PROGRAM_HEADER_SIZE
    ph_num: int = 0
    sh_entry_size: int = 0
    sh_num: int = 0
    sh_str_index: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> Elf32Header:
        _require(data, ELF32_HEADER_SIZE, "ELF32 header")
        common = ElfHeader.from_bytes(data)
        return cls(common, *_ELF32_TAIL.unpack_from(data, ELF_HEADER_SIZE))

    def to_bytes(self) -> bytes:
        return self.common.to_bytes() + _ELF32_TAIL.pack(
            self.entry,
            self.ph_offset,
            self.sh_offset,
            self.flags,
            self.eh_size,
            self.ph_entry_size,
            self.ph_num,
            self.sh_entry_size,
            self.sh_num,
            self.sh_str_index,
        )


@dataclass
class ProgramHeader:
    """One ELF32 program header table entry."""

    type: int = PT_LOAD
    offset: int = 0
    vaddr: int = 0
    paddr: int = 0
    filesz: int = 0
    memsz: int = 0
    flags: int = 0
    align: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> ProgramHeader:
        _require(data, PROGRAM_HEADER_SIZE, "ELF32 program header")
        return cls(*_PROGRAM_HEADER.unpack_from(data))

    def to_bytes(self) -> bytes:
        return _PROGRAM_HEADER.pack(
            self.type,
            self.offset,
            self.vaddr,
            self.paddr,
            self.filesz,
            self.memsz,
            self.flags,
            self.align,
        )