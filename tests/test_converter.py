from dataclasses import replace

import pytest

from elfuf2.converter import (
    FLASH_START,
    MAIN_RAM_START,
    PAGE_SIZE,
    RP2040_RANGES_FLASH,
    RP2040_RANGES_RAM,
    AddressRange,
    ConversionError,
    FormatError,
    IncompatibleError,
    PageFragment,
    RangeType,
    ReadFailedError,
    WriteFailedError,
    check_address_range,
    collect_pages,
    convert,
    is_address_initialized,
    is_address_mapped,
    is_address_valid,
    main,
    read_elf32_header,
    realize_page,
)
from elfuf2.elf import (
    EF_ARM_ABI_FLOAT_HARD,
    ELF32_HEADER_SIZE,
    PROGRAM_HEADER_SIZE,
    PT_LOAD,
    Elf32Header,
    ElfHeader,
    ProgramHeader,
)
from elfuf2.uf2 import (
    RP2040_FAMILY_ID,
    UF2_BLOCK_SIZE,
    UF2_FLAG_FAMILY_ID_PRESENT,
    UF2Block,
)


def build_elf(entry, segments, **overrides):
    """Build an ELF image; segments are (paddr, payload, memsz) tuples."""
    segments = list(segments)
    offset = ELF32_HEADER_SIZE + PROGRAM_HEADER_SIZE * len(segments)
    tables, bodies = [], []
    for paddr, payload, memsz in segments:
        tables.append(
            ProgramHeader(
                type=PT_LOAD,
                offset=offset,
                vaddr=paddr,
                paddr=paddr,
                filesz=len(payload),
                memsz=memsz,
            ).to_bytes()
        )
        bodies.append(payload)
        offset += len(payload)
    header = Elf32Header(
        entry=entry, ph_offset=ELF32_HEADER_SIZE, ph_num=len(segments)
    )
    header = replace(header, **overrides)
    return header.to_bytes() + b"".join(tables) + b"".join(bodies)


def split_blocks(image):
    assert len(image) % UF2_BLOCK_SIZE == 0
    return [
        UF2Block.from_bytes(image[start : start + UF2_BLOCK_SIZE])
        for start in range(0, len(image), UF2_BLOCK_SIZE)
    ]


def test_flash_binary_spanning_two_pages():
    payload = bytes(range(256)) + bytes(range(44))
    image = convert(build_elf(FLASH_START | 1, [(FLASH_START, payload, len(payload))]))
    blocks = split_blocks(image)
    assert [b.target_addr for b in blocks] == [FLASH_START, FLASH_START + PAGE_SIZE]
    assert [b.block_no for b in blocks] == list(range(len(blocks)))
    assert all(b.num_blocks == len(blocks) for b in blocks)
    assert all(b.file_size == RP2040_FAMILY_ID for b in blocks)
    assert all(b.flags == UF2_FLAG_FAMILY_ID_PRESENT for b in blocks)
    assert all(b.payload_size == PAGE_SIZE for b in blocks)
    joined = b"".join(b.data[:PAGE_SIZE] for b in blocks)
    assert joined[: len(payload)] == payload
    assert set(joined[len(payload) :]) == {0}


def test_unaligned_segment_lands_at_page_offset():
    payload = b"\xaa" * 16
    start = FLASH_START + 16
    (block,) = split_blocks(convert(build_elf(FLASH_START, [(start, payload, 16)])))
    assert block.target_addr == FLASH_START
    assert block.data[16:32] == payload
    assert set(block.data[:16]) == {0}


def test_ram_binary_with_entry_at_start():
    payload = b"\x01\x02\x03\x04"
    (block,) = split_blocks(
        convert(build_elf(MAIN_RAM_START | 1, [(MAIN_RAM_START, payload, 4)]))
    )
    assert block.target_addr == MAIN_RAM_START
    assert block.data[:4] == payload


def test_ram_binary_with_misplaced_entry_rejected():
    data = build_elf(MAIN_RAM_START + 0x41, [(MAIN_RAM_START, b"\x00" * 8, 8)])
    with pytest.raises(IncompatibleError, match="entry point"):
        convert(data)


def test_flash_binary_bss_in_ram_is_not_emitted():
    data = build_elf(
        FLASH_START,
        [(FLASH_START, b"\x11" * 8, 8), (MAIN_RAM_START, b"", 64)],
    )
    blocks = split_blocks(convert(data))
    assert [b.target_addr for b in blocks] == [FLASH_START]


def test_flash_binary_with_contents_in_ram_rejected():
    data = build_elf(FLASH_START, [(MAIN_RAM_START, b"\x11" * 8, 8)])
    with pytest.raises(IncompatibleError, match="uninitialized memory"):
        convert(data)


def test_segment_outside_device_rejected():
    data = build_elf(FLASH_START, [(0x30000000, b"\x11" * 8, 8)])
    with pytest.raises(IncompatibleError, match="outside of valid address range"):
        convert(data)


def test_no_pages_rejected():
    with pytest.raises(IncompatibleError, match="no memory pages"):
        convert(build_elf(FLASH_START, []))


def test_truncated_segment_data_fails_read():
    data = build_elf(FLASH_START, [(FLASH_START, b"\x22" * 32, 32)])
    with pytest.raises(ReadFailedError):
        convert(data[:-8])


def test_truncated_program_header_table_fails_read():
    data = build_elf(FLASH_START, [(FLASH_START, b"", 0)])
    with pytest.raises(ReadFailedError):
        convert(data[: ELF32_HEADER_SIZE + 4])


@pytest.mark.parametrize(
    "overrides, error, message",
    [
        ({"common": ElfHeader(magic=0)}, FormatError, "Not an ELF file"),
        ({"common": ElfHeader(version=2)}, FormatError, "Unrecognized ELF version"),
        ({"common": ElfHeader(arch_class=2)}, IncompatibleError, "32 bit"),
        ({"common": ElfHeader(endianness=2)}, IncompatibleError, "32 bit"),
        ({"eh_size": 64}, FormatError, "Invalid ELF32 format"),
        ({"common": ElfHeader(machine=3)}, FormatError, "Not an ARM executable"),
        ({"common": ElfHeader(abi=3)}, IncompatibleError, "Unrecognized ABI"),
        ({"flags": EF_ARM_ABI_FLOAT_HARD}, IncompatibleError, "HARD-FLOAT"),
    ],
)
def test_header_checks(overrides, error, message):
    data = build_elf(FLASH_START, [(FLASH_START, b"\x00", 1)], **overrides)
    with pytest.raises(error, match=message):
        read_elf32_header(data)


def test_short_header_fails_read():
    with pytest.raises(ReadFailedError, match="Unable to read ELF header"):
        read_elf32_header(b"\x7fELF")


def test_bad_program_header_entry_size():
    data = build_elf(FLASH_START, [(FLASH_START, b"\x00", 1)], ph_entry_size=40)
    header = read_elf32_header(data)
    with pytest.raises(FormatError, match="Invalid ELF32 program header"):
        collect_pages(data, header, RP2040_RANGES_FLASH)


def test_collect_pages_orders_by_address():
    data = build_elf(
        FLASH_START,
        [
            (FLASH_START + 2 * PAGE_SIZE, b"\x01" * 4, 4),
            (FLASH_START, b"\x02" * 4, 4),
        ],
    )
    pages = collect_pages(data, read_elf32_header(data), RP2040_RANGES_FLASH)
    assert list(pages) == sorted(pages)
    assert list(pages) == [FLASH_START, FLASH_START + 2 * PAGE_SIZE]


def test_realize_page_places_fragments():
    data = b"abcdefgh"
    page = realize_page(data, [PageFragment(2, 10, 3), PageFragment(0, 0, 2)])
    assert len(page) == PAGE_SIZE
    assert page[10:13] == b"cde"
    assert page[:2] == b"ab"
    assert set(page[13:]) == {0}


def test_realize_page_short_input_fails():
    with pytest.raises(ReadFailedError):
        realize_page(b"abc", [PageFragment(1, 0, 5)])


def test_check_address_range_returns_region_and_reports(capsys):
    region = check_address_range(
        RP2040_RANGES_FLASH, FLASH_START, FLASH_START, 16, False, True
    )
    assert region == RP2040_RANGES_FLASH[0]
    out = capsys.readouterr().out
    assert out.startswith("Mapped segment 10000000->")


def test_check_address_range_uninitialized_ram_allowed():
    region = check_address_range(
        RP2040_RANGES_FLASH, MAIN_RAM_START, MAIN_RAM_START, 16, True
    )
    assert region.kind is RangeType.NO_CONTENTS


def test_address_predicates():
    assert is_address_valid(RP2040_RANGES_FLASH, FLASH_START)
    assert not is_address_valid(RP2040_RANGES_FLASH, 0)
    assert is_address_initialized(RP2040_RANGES_RAM, MAIN_RAM_START)
    assert not is_address_initialized(RP2040_RANGES_RAM, 0)
    assert not is_address_initialized(RP2040_RANGES_FLASH, MAIN_RAM_START)
    pages = {FLASH_START: []}
    assert is_address_mapped(pages, FLASH_START + PAGE_SIZE - 1)
    assert not is_address_mapped(pages, FLASH_START + PAGE_SIZE)


def test_range_end_is_exclusive():
    ranges = [AddressRange(0x100, 0x200, RangeType.CONTENTS)]
    assert is_address_valid(ranges, 0x1FF)
    assert not is_address_valid(ranges, 0x200)


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"\x00" * ELF32_HEADER_SIZE, -2),
        (build_elf(FLASH_START, []), -3),
        (b"\x7fELF", -4),
    ],
)
def test_main_exit_codes(tmp_path, capsys, data, expected):
    source = tmp_path / "in.elf"
    source.write_bytes(data)
    assert main([str(source), str(tmp_path / "out.uf2")]) == expected
    with pytest.raises(ConversionError):
        convert(data)
    assert issubclass(WriteFailedError, ConversionError)
    assert "ERROR: " in capsys.readouterr().err


def test_main_writes_output(tmp_path, capsys):
    source = tmp_path / "app.elf"
    target = tmp_path / "app.uf2"
    data = build_elf(FLASH_START, [(FLASH_START, b"\x33" * 8, 8)])
    source.write_bytes(data)
    assert main(["-v", str(source), str(target)]) == 0
    assert target.read_bytes() == convert(data)
    assert "Detected FLASH binary" in capsys.readouterr().out


def test_main_usage_error(capsys):
    assert main(["only-one"]) == -1
    assert "Usage: elf2uf2" in capsys.readouterr().err


def test_main_missing_input(tmp_path, capsys):
    missing = tmp_path / "missing.elf"
    assert main([str(missing), str(tmp_path / "out.uf2")]) == -1
    assert "Can't open input file" in capsys.readouterr().err


def test_main_removes_output_on_failure(tmp_path, capsys):
    source = tmp_path / "bad.elf"
    target = tmp_path / "bad.uf2"
    source.write_bytes(b"\x00" * ELF32_HEADER_SIZE)
    assert main([str(source), str(target)]) == -2
    assert not target.exists()
    assert "ERROR: Not an ELF file" in capsys.readouterr().err