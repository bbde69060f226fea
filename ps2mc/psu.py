"""PSU save archives: reading, comparing, importing into and exporting from a card."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .card import NAME_ENCODING, MemoryCard
from .layout import DirFlag, PsuHeader

BLOCK_SIZE = 0x400
PSEUDO_DIR_MODE = 0x8427
_PAD_BYTE = b"\xff"

Name = Union[str, bytes]


class PsuError(Exception):
    """Raised when a PSU archive is malformed or cannot be produced."""


@dataclass
class PsuArchive:
    """A save directory packed in a PSU archive: its name and its files."""

    name: bytes
    files: dict[bytes, bytes] = field(default_factory=dict)


def _encode(name: Name) -> bytes:
    return name.encode(NAME_ENCODING) if isinstance(name, str) else bytes(name)


def _padding(size: int) -> int:
    return -size % BLOCK_SIZE


def _read_header(stream: BinaryIO) -> PsuHeader:
    data = stream.read(PsuHeader.SIZE)
    if len(data) != PsuHeader.SIZE:
        raise PsuError("truncated PSU header")
    return PsuHeader.from_bytes(data)


def _check_clean(header: PsuHeader) -> None:
    if not header.is_clean():
        raise PsuError(f"PSU header of {header.name!r} has unexpected non-zero fields")


def _parse(stream: BinaryIO) -> tuple[PsuHeader, list[tuple[PsuHeader, bytes]]]:
    """Read the directory header and every file entry with its data."""
    root = _read_header(stream)
    if not root.attr & DirFlag.DIRECTORY:
        raise PsuError("archive does not start with a directory")
    if not root.attr & DirFlag.EXISTS:
        raise PsuError("archive directory is marked as deleted")
    _check_clean(root)

    entries: list[tuple[PsuHeader, bytes]] = []
    for _ in range(root.size):
        header = _read_header(stream)
        _check_clean(header)
        if header.attr & DirFlag.DIRECTORY:
            if header.size == 0:
                continue
            raise PsuError(f"nested directory {header.name!r} is not supported")
        if not header.attr & DirFlag.EXISTS:
            raise PsuError(f"entry {header.name!r} is marked as deleted")
        data = stream.read(header.size) if header.size else b""
        if len(data) != header.size:
            raise PsuError(f"data of {header.name!r} is truncated")
        stream.read(_padding(header.size))
        entries.append((header, data))
    return root, entries


def read_psu(stream: BinaryIO) -> PsuArchive:
    """Parse a PSU archive from a binary stream."""
    root, entries = _parse(stream)
    archive = PsuArchive(root.name)
    for header, data in entries:
        archive.files[header.name] = data
    return archive


def load_psu(path) -> PsuArchive:
    with open(path, "rb") as stream:
        return read_psu(stream)


def import_psu(card: MemoryCard, path) -> None:
    """Copy the save in a PSU file onto the card, replacing files of the same name.

    The archive is checked in full before the card is touched; errors of the card
    itself propagate as CardError.
    """
    with open(path, "rb") as stream:
        root, entries = _parse(stream)

    card.mkdir("", root.name, root.created, root.modified, root.attr)
    for header, data in entries:
        card.write_file(root.name, header.name, data, header.created, header.modified, header.attr)


def export_psu(card: MemoryCard, path, dir_name: Name) -> None:
    """Pack a save directory of the card's root into a PSU file."""
    directory = card.stat("", dir_name)
    if not directory.mode & DirFlag.DIRECTORY:
        raise PsuError(f"{_encode(dir_name)!r} is not a directory")

    pseudo = PsuHeader(
        attr=PSEUDO_DIR_MODE,
        created=directory.created,
        modified=directory.modified,
    )
    body = bytearray()
    for name in (b".", b".."):
        pseudo.name = name
        body += pseudo.to_bytes()

    count = 2
    for info in card.list_files(dir_name):
        if info.is_dir:
            if info.size != 0:
                raise PsuError(f"nested directory {info.name!r} cannot be exported")
            continue
        entry = card.stat(dir_name, info.name)
        data = card.read_file(dir_name, info.name)
        if len(data) != info.size:
            raise PsuError(f"size of {info.name!r} does not match its entry")
        count += 1
        body += PsuHeader(
            attr=entry.mode,
            size=info.size,
            created=entry.created,
            modified=entry.modified,
            name=info.name,
        ).to_bytes()
        body += data
        body += _PAD_BYTE * _padding(info.size)

    root = PsuHeader(
        attr=directory.mode,
        size=count,
        created=directory.created,
        modified=directory.modified,
        name=directory.name,
    )
    Path(path).write_bytes(root.to_bytes() + bytes(body))


def compare_archives(first: PsuArchive, second: PsuArchive) -> Optional[str]:
    """Describe the first difference between two archives, or None if they are equal."""
    if first.name != second.name:
        return "save names differ"
    if len(first.files) != len(second.files):
        return "file counts differ"
    for name, data in first.files.items():
        other = second.files.get(name)
        if other is None:
            return f"file {name!r} is missing"
        if len(data) != len(other):
            return f"lengths of {name!r} differ"
        if data != other:
            return f"contents of {name!r} differ"
    return None