# elfuf2

`elfuf2` turns a 32-bit little-endian ARM ELF executable into a UF2 image
for the RP2040 USB mass-storage bootloader. It needs nothing outside the
Python standard library.

## How it works

The converter first checks the ELF header. The file must meet all of these
conditions:

- it has the ELF magic and is version 1;
- it is 32-bit and little-endian;
- its machine is ARM;
- its ABI is 0;
- it does not use the hard-float ABI.

The program header table is read from just after the file header.

Each `PT_LOAD` segment that has a memory size is then checked against the
RP2040 memory map. The segment's file-backed bytes are split into 256-byte
pages. Every page becomes one 512-byte UF2 block. Each block has these
properties:

- its payload is 256 bytes, zero-filled where no segment covers it;
- it has the family-ID flag set;
- it carries the RP2040 family ID `0xE48BFF56`.

Blocks are written in address order.

The entry point decides what kind of binary the file is:

- **RAM binary.** The entry point lies in main RAM. Segments may go in main
  RAM (`0x20000000`–`0x20042000`) or in XIP SRAM (`0x15000000`–`0x15004000`).
  Segments in the boot ROM area (`0x00000000`–`0x00004000`) are accepted but
  not written out. The entry point must be the address of the first page,
  with the Thumb bit set.
- **Flash binary.** This is any other entry point. Contents must lie in XIP
  flash (`0x10000000`–`0x15000000`). Main RAM may only hold the parts of a
  segment that have no file data, such as BSS.

## Installation

```
pip install .
```

## Command line

```
elf2uf2 [-v] INPUT.elf OUTPUT.uf2
```

`-v` prints progress as the file is converted:

- the detected binary type;
- each mapped or uninitialised segment, with its physical and virtual
  addresses;
- "ignored" for segments that are skipped;
- each page as it is written.

Arguments after the output file are ignored.

### Exit status

| Status | Meaning                                                                  |
|-------:|--------------------------------------------------------------------------|
| 0      | success                                                                  |
| -1     | wrong arguments, or the input or output file cannot be opened           |
| -2     | malformed ELF (`FormatError`)                                           |
| -3     | ELF not usable on the RP2040 (`IncompatibleError`)                      |
| -4     | input truncated, or a segment lies outside the file (`ReadFailedError`) |
| -5     | output could not be written (`WriteFailedError`)                        |

If conversion fails, the command deletes the output file. It then prints
`ERROR: <message>` on standard error.

## Library use

```python
from elfuf2.converter import ConversionError, convert

with open("firmware.elf", "rb") as f:
    elf = f.read()

try:
    image = convert(elf, verbose=False)
except ConversionError as exc:
    print(f"cannot convert: {exc} (code {exc.code})")
else:
    with open("firmware.uf2", "wb") as f:
        f.write(image)
```

`convert` returns the whole UF2 image as `bytes`. Every failure raises a
subclass of `ConversionError`: `FormatError`, `IncompatibleError`,
`ReadFailedError` or `WriteFailedError`. Each exception has a `code`
attribute that holds the exit status shown above.

### Lower-level pieces

`elfuf2.elf`:

- `ElfHeader`, `Elf32Header` and `ProgramHeader` are dataclasses.
- Each has `from_bytes` and `to_bytes`.
- `from_bytes` raises `ValueError` if the input is too short.

`elfuf2.uf2`:

- `UF2Block` is a dataclass.
- `to_bytes` pads the data area to 476 bytes with zeros. It raises
  `ValueError` if the data is longer than that.
- `from_bytes` checks the three magic numbers. It raises `ValueError` if they
  are wrong or the input is shorter than 512 bytes.

`elfuf2.converter` has these functions:

- `read_elf32_header(data)` parses and validates the file header.
- `collect_pages(data, header, valid_ranges, verbose)` returns a dict. It
  maps each page address to a list of `PageFragment`s and is sorted by
  address.
- `realize_page(data, fragments)` builds the 256 bytes of one page.
- `check_address_range`, `is_address_valid`, `is_address_initialized` and
  `is_address_mapped` test addresses against a sequence of `AddressRange`s
  (each tagged with a `RangeType`) or against a page map.

The RP2040 memory maps are available as `RP2040_RANGES_FLASH` and
`RP2040_RANGES_RAM`.

## Limitations

- Only 32-bit little-endian ARM ELF files are accepted.
- Section headers are never read.
- The program header table must follow the file header directly.
- Overlapping segments are not reported.
- The vector table of a RAM binary is not checked.
- There is no support for other chip families or for reading a UF2 image
  back into an ELF file.

## Running the tests

```
pip install .[test]
pytest
```