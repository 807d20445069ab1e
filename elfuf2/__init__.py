"""Convert 32-bit ARM ELF executables into RP2040 UF2 images."""

__version__ = "0.1.0"
__all__ = ["converter", "elf", "uf2"]