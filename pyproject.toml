[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ps2mc"
version = "0.1.0"
description = "Read, write and manage PlayStation 2 memory card images and PSU save archives"
requires-python = ">=3.10"
dependencies = []
keywords = ["ps2", "memory card", "psu", "filesystem", "save games", "ecc"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Games/Entertainment",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ps2mc = "ps2mc.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["ps2mc"]

[tool.pytest.ini_options]
addopts = "-ra"
