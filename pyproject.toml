[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "elfuf2"
version = "0.1.0"
description = "Convert 32-bit ARM ELF executables into UF2 images for RP2040 boards"
requires-python = ">=3.10"
dependencies = []
keywords = ["elf", "uf2", "rp2040", "firmware", "bootloader", "arm"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
elf2uf2 = "elfuf2.converter:main"

[tool.hatch.build.targets.wheel]
packages = ["elfuf2"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
