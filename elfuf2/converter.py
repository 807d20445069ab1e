"""Convert an RP2040 ELF32 executable into a UF2 image."""

from __future__ import annotations

import enum
import os
import sys
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from elfuf2.elf import (
    EF_ARM_ABI_FLOAT_HARD,
    ELF32_HEADER_SIZE,
    ELF_MAGIC,
    EM_ARM,
    PROGRAM_HEADER_SIZE,
    PT_LOAD,
    Elf32Header,
    ProgramHeader,
)
from elfuf2.uf2 import (
    RP2040_FAMILY_ID,
    UF2_FLAG_FAMILY_ID_PRESENT,
    UF2Block,
)

ERROR_ARGS = -1

LOG2_PAGE_SIZE = 8
PAGE_SIZE = 1 << LOG2_PAGE_SIZE

MAIN_RAM_START = 0x20000000
MAIN_RAM_END = 0x20042000
FLASH_START = 0x10000000
FLASH_END = 0x15000000
XIP_SRAM_START = 0x15000000
XIP_SRAM_END = 0x15004000

_U32 = 0xFFFFFFFF


def _u32(value: int) -> int:
    return value & _U32


class ConversionError(Exception):
    """A conversion failure; ``code`` is the process exit status."""

    code = ERROR_ARGS


class FormatError(ConversionError):
    code = -2


class IncompatibleError(ConversionError):
    code = -3


class ReadFailedError(ConversionError):
    code = -4


class WriteFailedError(ConversionError):
    code = -5


class RangeType(enum.Enum):
    CONTENTS = "contents"  # may have contents
    NO_CONTENTS = "no_contents"  # must be uninitialized
    IGNORE = "ignore"  # will be ignored


@dataclass(frozen=True)
class AddressRange:
    start: int
    end: int
    kind: RangeType


@dataclass(frozen=True)
class PageFragment:
    file_offset: int
    page_offset: int
    size: int


RP2040_RANGES_FLASH = (
    AddressRange(FLASH_START, FLASH_END, RangeType.CONTENTS),
    AddressRange(MAIN_RAM_START, MAIN_RAM_END, RangeType.NO_CONTENTS),
)

RP2040_RANGES_RAM = (
    AddressRange(MAIN_RAM_START, MAIN_RAM_END, RangeType.CONTENTS),
    AddressRange(XIP_SRAM_START, XIP_SRAM_END, RangeType.CONTENTS),
    # the bootrom is ignored if present
    AddressRange(0x00000000, 0x00004000, RangeType.IGNORE),
)

Pages = dict[int, list[PageFragment]]


def read_elf32_header(data: bytes) -> Elf32Header:
    """Parse the ELF header and check it describes a usable RP2040 image."""
    try:
        header = Elf32Header.from_bytes(data)
    except ValueError:
        raise ReadFailedError("Unable to read ELF header") from None
    common = header.common
    if common.magic != ELF_MAGIC:
        raise FormatError("Not an ELF file")
    if common.version != 1 or common.version2 != 1:
        raise FormatError("Unrecognized ELF version")
    if common.arch_class != 1 or common.endianness != 1:
        raise IncompatibleError("Require 32 bit little-endian ELF")
    if header.eh_size != ELF32_HEADER_SIZE:
        raise FormatError("Invalid ELF32 format")
    if common.machine != EM_ARM:
        raise FormatError("Not an ARM executable")
    if common.abi != 0:
        raise IncompatibleError("Unrecognized ABI")
    if header.flags & EF_ARM_ABI_FLOAT_HARD:
        raise IncompatibleError("HARD-FLOAT not supported")
    return header


def check_address_range(
    valid_ranges: Iterable[AddressRange],
    addr: int,
    vaddr: int,
    size: int,
    uninitialized: bool,
    verbose: bool = False,
) -> AddressRange:
    """Return the range that wholly contains ``size`` bytes at ``addr``."""
    end = _u32(addr + size)
    for region in valid_ranges:
        if region.start <= addr and region.end >= end:
            if region.kind is RangeType.NO_CONTENTS and not uninitialized:
                raise IncompatibleError(
                    "ELF contains memory contents for uninitialized memory"
                )
            if verbose:
                label = "Uninitialized" if uninitialized else "Mapped"
                print(
                    f"{label} segment {addr:08x}->{end:08x} "
                    f"({vaddr:08x}->{_u32(vaddr + size):08x})"
                )
            return region
    raise IncompatibleError(
        f"Memory segment {addr:08x}->{end:08x} is outside of valid address "
        "range for device"
    )


def _read_program_headers(data: bytes, count: int) -> list[ProgramHeader]:
    # The table is read from just past the file header, as the device tooling does.
    table = data[ELF32_HEADER_SIZE : ELF32_HEADER_SIZE + count * PROGRAM_HEADER_SIZE]
    if len(table) != count * PROGRAM_HEADER_SIZE:
        raise ReadFailedError("Failed to read input file")
    return [
        ProgramHeader.from_bytes(table[start : start + PROGRAM_HEADER_SIZE])
        for start in range(0, len(table), PROGRAM_HEADER_SIZE)
    ]


def _add_fragments(pages: Pages, addr: int, size: int, file_offset: int) -> None:
    remaining = size
    while remaining:
        offset = addr & (PAGE_SIZE - 1)
        length = min(remaining, PAGE_SIZE - offset)
        pages.setdefault(addr - offset, []).append(
            PageFragment(file_offset, offset, length)
        )
        addr = _u32(addr + length)
        file_offset = _u32(file_offset + length)
        remaining -= length


def collect_pages(
    data: bytes,
    header: Elf32Header,
    valid_ranges: Sequence[AddressRange],
    verbose: bool = False,
) -> Pages:
    """Map each loadable segment onto device pages, ordered by address."""
    if header.ph_entry_size != PROGRAM_HEADER_SIZE:
        raise FormatError("Invalid ELF32 program header")
    pages: Pages = {}
    for entry in _read_program_headers(data, header.ph_num):
        if entry.type != PT_LOAD or not entry.memsz:
            continue
        mapped_size = min(entry.filesz, entry.memsz)
        if mapped_size:
            region = check_address_range(
                valid_ranges, entry.paddr, entry.vaddr, mapped_size, False, verbose
            )
            # Uninitialized areas (BSS, COPY) are not downloaded.
            if region.kind is not RangeType.CONTENTS:
                if verbose:
                    print("  ignored")
                continue
            _add_fragments(pages, entry.paddr, mapped_size, entry.offset)
        if entry.memsz > entry.filesz:
            check_address_range(
                valid_ranges,
                _u32(entry.paddr + entry.filesz),
                _u32(entry.vaddr + entry.filesz),
                entry.memsz - entry.filesz,
                True,
                verbose,
            )
    return dict(sorted(pages.items()))


def realize_page(data: bytes, fragments: Iterable[PageFragment]) -> bytes:
    """Assemble one zero-filled page from its fragments of the input file."""
    page = bytearray(PAGE_SIZE)
    for fragment in fragments:
        if fragment.page_offset + fragment.size > PAGE_SIZE:
            raise ValueError("page fragment extends beyond the page")
        chunk = data[fragment.file_offset : fragment.file_offset + fragment.size]
        if len(chunk) != fragment.size:
            raise ReadFailedError("Failed to read input file")
        page[fragment.page_offset : fragment.page_offset + fragment.size] = chunk
    return bytes(page)


def is_address_valid(valid_ranges: Iterable[AddressRange], addr: int) -> bool:
    return any(region.start <= addr < region.end for region in valid_ranges)


def is_address_initialized(valid_ranges: Iterable[AddressRange], addr: int) -> bool:
    for region in valid_ranges:
        if region.start <= addr < region.end:
            return region.kind is RangeType.CONTENTS
    return False


def is_address_mapped(pages: Mapping[int, object], addr: int) -> bool:
    return (addr & ~(PAGE_SIZE - 1) & _U32) in pages


def convert(data: bytes, verbose: bool = False) -> bytes:
    """Return the UF2 image for the ELF file held in ``data``."""
    header = read_elf32_header(data)
    ram_style = is_address_initialized(RP2040_RANGES_RAM, header.entry)
    if verbose:
        print("Detected RAM binary" if ram_style else "Detected FLASH binary")
    valid_ranges = RP2040_RANGES_RAM if ram_style else RP2040_RANGES_FLASH
    pages = collect_pages(data, header, valid_ranges, verbose)
    if not pages:
        raise IncompatibleError("The input file has no memory pages")
    if ram_style:
        expected_entry = next(iter(pages)) | 0x1
        if header.entry != expected_entry:
            raise IncompatibleError(
                "A RAM binary should have an entry point at the beginning: "
                f"{expected_entry:08x} (not {header.entry:08x})"
            )
    blocks = []
    for block_no, (target_addr, fragments) in enumerate(pages.items()):
        if verbose:
            print(f"Page {block_no} / {len(pages)} {target_addr:08x}")
        block = UF2Block(
            target_addr=target_addr,
            block_no=block_no,
            num_blocks=len(pages),
            payload_size=PAGE_SIZE,
            flags=UF2_FLAG_FAMILY_ID_PRESENT,
            file_size=RP2040_FAMILY_ID,
            data=realize_page(data, fragments),
        )
        blocks.append(block.to_bytes())
    return b"".join(blocks)


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = bool(args) and args[0] == "-v"
    if verbose:
        args = args[1:]
    if len(args) < 2:
        print("Usage: elf2uf2 (-v) <input ELF file> <output UF2 file>", file=sys.stderr)
        return ERROR_ARGS
    in_name, out_name = args[0], args[1]
    try:
        with open(in_name, "rb") as source:
            data = source.read()
    except OSError:
        print(f"Can't open input file '{in_name}'", file=sys.stderr)
        return ERROR_ARGS
    try:
        target = open(out_name, "wb")
    except OSError:
        print(f"Can't open output file '{out_name}'", file=sys.stderr)
        return ERROR_ARGS

    failure: ConversionError | None = None
    with target:
        try:
            image = convert(data, verbose)
            try:
                target.write(image)
            except OSError:
                raise WriteFailedError("Failed to write output file") from None
        except ConversionError as exc:
            failure = exc
    if failure is None:
        return 0
    try:
        os.remove(out_name)
    except OSError:
        pass
    message = str(failure)
    if message:
        print(f"ERROR: {message}", file=sys.stderr)
    return failure.code


if __name__ == "__main__":
    sys.exit(main())