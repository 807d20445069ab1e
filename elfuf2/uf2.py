"""UF2 block layout."""

from __future__ import annotations

import struct
from dataclasses import dataclass

UF2_MAGIC_START0 = 0x0A324655
UF2_MAGIC_START1 = 0x9E5D5157
UF2_MAGIC_END = 0x0AB16F30

UF2_FLAG_NOT_MAIN_FLASH = 0x00000001
UF2_FLAG_FILE_CONTAINER = 0x00001000
UF2_FLAG_FAMILY_ID_PRESENT = 0x00002000
UF2_FLAG_MD5_PRESENT = 0x00004000

RP2040_FAMILY_ID = 0xE48BFF56

UF2_DATA_SIZE = 476
_BLOCK = struct.Struct(f"<8I{UF2_DATA_SIZE}sI")
UF2_BLOCK_SIZE = _BLOCK.size


@dataclass
class UF2Block:
    """One 512-byte UF2 block; ``file_size`` doubles as the family ID."""

    target_addr: int = 0
    block_no: int = 0
    num_blocks: int = 0
    payload_size: int = 256
    flags: int = 0
    file_size: int = 0
    data: bytes = b""
    magic_start0: int = UF2_MAGIC_START0
    magic_start1: int = UF2_MAGIC_START1
    magic_end: int = UF2_MAGIC_END

    def to_bytes(self) -> bytes:
        """Serialise the block, zero-padding the data area."""
        if len(self.data) > UF2_DATA_SIZE:
            raise ValueError(
                f"UF2 data area holds {UF2_DATA_SIZE} bytes, got {len(self.data)}"
            )
        return _BLOCK.pack(
            self.magic_start0,
            self.magic_start1,
            self.flags,
            self.target_addr,
            self.payload_size,
            self.block_no,
            self.num_blocks,
            self.file_size,
            bytes(self.data),
            self.magic_end,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> UF2Block:
        """Parse one block, checking its magic numbers."""
        if len(data) < UF2_BLOCK_SIZE:
            raise ValueError(
                f"UF2 block needs {UF2_BLOCK_SIZE} bytes, got {len(data)}"
            )
        (
            magic_start0,
            magic_start1,
            flags,
            target_addr,
            payload_size,
            block_no,
            num_blocks,
            file_size,
            payload,
            magic_end,
        ) = _BLOCK.unpack_from(data)
        if (magic_start0, magic_start1, magic_end) != (
            UF2_MAGIC_START0,
            UF2_MAGIC_START1,
            UF2_MAGIC_END,
        ):
            raise ValueError("not a UF2 block: bad magic")
        return cls(
            target_addr=target_addr,
            block_no=block_no,
            num_blocks=num_blocks,
            payload_size=payload_size,
            flags=flags,
            file_size=file_size,
            data=payload,
        )