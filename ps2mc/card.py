"""A virtual PS2 memory card: pages with ECC, the FAT, directories and files."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from .ecc import page_ecc
from .layout import (
    ECC_CARD_SIZE,
    EOF_CLUSTER,
    FREE_CLUSTER,
    MASK_CLUSTER,
    NAME_SIZE,
    PAGE_SIZE,
    RAW_CARD_SIZE,
    SPARE_SIZE,
    CardHeader,
    DirEntry,
    DirFlag,
    Ps2DateTime,
)

NAME_ENCODING = "cp932"

DEFAULT_DIR_MODE = int(
    DirFlag.EXISTS | DirFlag.F_0400 | DirFlag.DIRECTORY
    | DirFlag.READ | DirFlag.WRITE | DirFlag.EXECUTE
)
DEFAULT_FILE_MODE = int(
    DirFlag.EXISTS | DirFlag.F_0400 | DirFlag.FILE
    | DirFlag.READ | DirFlag.WRITE | DirFlag.EXECUTE
)

_INDIRECT_SLOTS = 32
_PAGE_STRIDE = PAGE_SIZE + SPARE_SIZE

Name = Union[str, bytes]


class CardError(Exception):
    """Raised when a memory card image is invalid or an operation on it fails."""


@dataclass(frozen=True)
class FileInfo:
    """An existing entry of a card directory."""

    name: bytes
    is_dir: bool
    size: int


def _as_name(name: Name) -> bytes:
    raw = name.encode(NAME_ENCODING) if isinstance(name, str) else bytes(name)
    if len(raw) > NAME_SIZE:
        raise CardError(f"name longer than {NAME_SIZE} bytes: {raw!r}")
    return raw


def _with_ecc(raw: bytes) -> bytearray:
    cache: dict[bytes, bytes] = {}
    image = bytearray()
    for offset in range(0, RAW_CARD_SIZE, PAGE_SIZE):
        page = bytes(raw[offset:offset + PAGE_SIZE])
        spare = cache.get(page)
        if spare is None:
            spare = cache[page] = page_ecc(page)
        image += page
        image += spare
    return image


class MemoryCard:
    """An 8 MB card image held in memory, with ECC for every page."""

    def __init__(self, image: bytearray) -> None:
        if len(image) != ECC_CARD_SIZE:
            raise CardError(f"card image must be {ECC_CARD_SIZE} bytes, got {len(image)}")
        header = CardHeader.from_bytes(bytes(image[:CardHeader.SIZE]))
        if header.max_used < 3:
            raise CardError("card header reports no usable clusters")
        if header.page_size != PAGE_SIZE or header.pages_per_cluster < 1 or header.cluster_size < 4:
            raise CardError("card header describes an unsupported geometry")
        self._image = image
        self.header = header
        self._backup: Optional[bytes] = None

    # ------------------------------------------------------------------ images

    @classmethod
    def from_image(cls, data: bytes) -> "MemoryCard":
        """Open an image with ECC (0x840000 bytes) or without it (0x800000 bytes)."""
        if len(data) == ECC_CARD_SIZE:
            return cls(bytearray(data))
        if len(data) == RAW_CARD_SIZE:
            return cls(_with_ecc(data))
        raise CardError(f"unsupported card image size: {len(data)} bytes")

    @classmethod
    def load(cls, path) -> "MemoryCard":
        return cls.from_image(Path(path).read_bytes())

    def to_bytes(self) -> bytes:
        """The whole image, ECC included."""
        return bytes(self._image)

    def _raw_image(self) -> bytes:
        return b"".join(
            self._image[offset:offset + PAGE_SIZE]
            for offset in range(0, ECC_CARD_SIZE, _PAGE_STRIDE)
        )

    def save(self, path) -> None:
        Path(path).write_bytes(self.to_bytes())

    def save_no_ecc(self, path) -> None:
        """Write the image without the spare area of each page."""
        Path(path).write_bytes(self._raw_image())

    def backup(self) -> None:
        """Remember the current image so that restore() can return to it."""
        self._backup = bytes(self._image)

    def restore(self) -> None:
        if self._backup is None:
            raise CardError("no backup to restore")
        self._image = bytearray(self._backup)

    # ------------------------------------------------------------------ pages

    def _page_start(self, page: int) -> int:
        stride = self.header.page_size + SPARE_SIZE
        start = page * stride
        if page < 0 or start + stride > len(self._image):
            raise CardError(f"page {page} is outside the card")
        return start

    def _read_page(self, page: int) -> bytes:
        start = self._page_start(page)
        return bytes(self._image[start:start + self.header.page_size])

    def _write_page(self, page: int, data: bytes) -> None:
        start = self._page_start(page)
        size = self.header.page_size
        self._image[start:start + size] = data
        self._image[start + size:start + size + SPARE_SIZE] = page_ecc(bytes(data))

    def _read_cluster(self, cluster: int) -> bytes:
        first_page = cluster * self.header.pages_per_cluster
        return b"".join(
            self._read_page(first_page + index) for index in range(self.header.pages_per_cluster)
        )

    def _write_cluster(self, cluster: int, data: bytes) -> None:
        size = self.header.page_size
        first_page = cluster * self.header.pages_per_cluster
        for index in range(self.header.pages_per_cluster):
            self._write_page(first_page + index, data[index * size:(index + 1) * size])

    def _words(self, cluster: int) -> list[int]:
        data = self._read_cluster(cluster)
        return list(struct.unpack(f"<{len(data) // 4}I", data))

    # ------------------------------------------------------------------ FAT

    def _fat_slot(self, cluster: int) -> tuple[int, int]:
        per_cluster = self.header.cluster_size // 4
        table, offset = divmod(cluster, per_cluster)
        high_index, high_offset = divmod(table, per_cluster)
        if high_index >= _INDIRECT_SLOTS:
            raise CardError(f"cluster {cluster} is beyond the FAT")
        indirect = self._words(self.header.indir_fat_clusters[high_index])
        return indirect[high_offset], offset

    def _get_fat(self, cluster: int) -> int:
        fat_cluster, offset = self._fat_slot(cluster)
        value = self._words(fat_cluster)[offset]
        if value in (FREE_CLUSTER, EOF_CLUSTER):
            return value
        return value & FREE_CLUSTER

    def _set_fat(self, cluster: int, value: int, reset: bool = False) -> None:
        fat_cluster, offset = self._fat_slot(cluster)
        words = self._words(fat_cluster)
        if reset or value in (FREE_CLUSTER, EOF_CLUSTER):
            words[offset] = value
        else:
            words[offset] = value | MASK_CLUSTER
        self._write_cluster(fat_cluster, struct.pack(f"<{len(words)}I", *words))

    def _free_clusters(self) -> Iterator[int]:
        per_cluster = self.header.cluster_size // 4
        limit = self.header.max_used - 3
        for high_index, indirect_cluster in enumerate(self.header.indir_fat_clusters):
            if indirect_cluster < 8 or indirect_cluster == EOF_CLUSTER:
                break
            for low_index, fat_cluster in enumerate(self._words(indirect_cluster)):
                if fat_cluster in (EOF_CLUSTER, 0):
                    continue
                for offset, value in enumerate(self._words(fat_cluster)):
                    if value == FREE_CLUSTER or (value != EOF_CLUSTER and not value & MASK_CLUSTER):
                        number = offset + (low_index + high_index * per_cluster) * per_cluster
                        if number > limit:
                            break
                        yield number

    def _allocate(self) -> int:
        cluster = next(self._free_clusters(), None)
        if cluster is None:
            raise CardError("no free cluster left on the card")
        return cluster

    def free_cluster_count(self) -> int:
        return sum(1 for _ in self._free_clusters())

    def cluster_size(self) -> int:
        return self.header.cluster_size

    # ------------------------------------------------------------------ entries

    def _entry_cluster(self, base: DirEntry, index: int) -> tuple[int, int]:
        hops, page_offset = divmod(index, self.header.pages_per_cluster)
        cluster = base.cluster
        for _ in range(hops):
            following = self._get_fat(cluster)
            if following == EOF_CLUSTER:
                raise CardError(f"directory entry {index} lies past the end of its chain")
            cluster = following
        return cluster, page_offset

    def _entry_page(self, base: DirEntry, index: int) -> int:
        cluster, page_offset = self._entry_cluster(base, index)
        return (self.header.first_allocatable + cluster) * self.header.pages_per_cluster + page_offset

    def _get_entry(self, base: DirEntry, index: int) -> DirEntry:
        return DirEntry.from_bytes(self._read_page(self._entry_page(base, index)))

    def _set_entry(self, entry: DirEntry, base: DirEntry, index: int) -> None:
        self._write_page(self._entry_page(base, index), entry.to_bytes())

    def _root(self) -> DirEntry:
        page = (self.header.first_allocatable + self.header.rootdir_cluster) * self.header.pages_per_cluster
        return DirEntry.from_bytes(self._read_page(page))

    def _find(self, base: DirEntry, name: bytes, must_exist: bool = True) -> Optional[tuple[DirEntry, int]]:
        if not base.mode & DirFlag.DIRECTORY or not base.mode & DirFlag.EXISTS:
            return None
        for index in range(base.length):
            entry = self._get_entry(base, index)
            if must_exist and not entry.mode & DirFlag.EXISTS:
                continue
            if entry.name == name:
                return entry, index
        return None

    def _lookup_path(self, path: Name) -> DirEntry:
        entry = self._root()
        rest = _as_path(path)
        while True:
            rest = rest.lstrip().lstrip(b"/").lstrip(b"\\")
            if not rest:
                return entry
            cuts = [position for position in (rest.find(b"\\"), rest.find(b"/")) if position != -1]
            if cuts:
                cut = min(cuts)
                name, rest = rest[:cut], rest[cut + 1:]
            else:
                name, rest = rest, b""
            found = self._find(entry, name)
            if found is None:
                raise CardError(f"no such path on the card: {path!r}")
            entry = found[0]

    def _lookup_directory(self, path: Name) -> DirEntry:
        directory = self._lookup_path(path)
        if not directory.mode & DirFlag.DIRECTORY:
            raise CardError(f"not a directory: {path!r}")
        return directory

    def _lookup_entry(self, path: Name, name: Name) -> tuple[DirEntry, DirEntry, int]:
        parent = self._lookup_path(path)
        found = self._find(parent, _as_name(name))
        if found is None:
            raise CardError(f"no such entry: {name!r}")
        return parent, found[0], found[1]

    def _add_object(self, parent: DirEntry, entry: DirEntry, reuse_name: bool) -> int:
        index = 2
        found = False
        if reuse_name:
            hit = self._find(parent, entry.name, must_exist=False)
            if hit is not None:
                found, index = True, hit[1]
            else:
                index = parent.length

        if not found:
            while index < parent.length:
                if not self._get_entry(parent, index).mode & DirFlag.EXISTS:
                    break
                index += 1
            if index == parent.length and parent.length % self.header.pages_per_cluster == 0:
                last_cluster, _ = self._entry_cluster(parent, index - 1)
                extra = self._allocate()
                self._set_fat(extra, EOF_CLUSTER)
                self._set_fat(last_cluster, extra)

        self._set_entry(entry, parent, index)

        if index == parent.length:
            dot = self._get_entry(parent, 0)
            parent.length += 1
            self._set_entry(parent, dot, dot.dir_entry)
        return index

    def _write_dir_base(self, cluster: int, parent: DirEntry, index: int) -> None:
        if self.header.pages_per_cluster < 2:
            raise CardError("clusters are too small to hold a directory")
        first_page = (self.header.first_allocatable + cluster) * self.header.pages_per_cluster
        dot = DirEntry(
            mode=DEFAULT_DIR_MODE,
            length=0,
            created=Ps2DateTime.now(),
            cluster=parent.cluster,
            dir_entry=index,
            modified=Ps2DateTime.now(),
            name=b".",
        )
        self._write_page(first_page, dot.to_bytes())
        dotdot = DirEntry(
            mode=DEFAULT_DIR_MODE,
            length=0,
            created=parent.created,
            cluster=0,
            dir_entry=0,
            modified=parent.modified,
            name=b"..",
        )
        self._write_page(first_page + 1, dotdot.to_bytes())

    def _delete(self, parent: DirEntry, entry: DirEntry, index: int) -> None:
        if not entry.mode & DirFlag.EXISTS:
            raise CardError("entry does not exist")
        if entry.mode & DirFlag.DIRECTORY:
            raise CardError(f"{entry.name!r} is a directory")
        cluster = entry.cluster
        while cluster != EOF_CLUSTER:
            if cluster == FREE_CLUSTER:
                raise CardError("file chain runs into a free cluster")
            following = self._get_fat(cluster)
            if following == FREE_CLUSTER:
                raise CardError("file chain runs into a free cluster")
            self._set_fat(cluster, FREE_CLUSTER, reset=True)
            cluster = following
        entry.cluster = EOF_CLUSTER
        entry.mode ^= DirFlag.EXISTS
        self._set_entry(entry, parent, index)

    # ------------------------------------------------------------------ public file system

    def list_files(self, path: Name = "") -> list[FileInfo]:
        """Existing entries of a directory, without '.' and '..'."""
        directory = self._lookup_directory(path)
        entries = (self._get_entry(directory, index) for index in range(2, directory.length))
        return [
            FileInfo(entry.name, bool(entry.mode & DirFlag.DIRECTORY), entry.length)
            for entry in entries
            if entry.mode & DirFlag.EXISTS
        ]

    def stat(self, path: Name, name: Name) -> DirEntry:
        return self._lookup_entry(path, name)[1]

    def read_file(self, path: Name, name: Name) -> bytes:
        _, entry, _ = self._lookup_entry(path, name)
        parts = []
        cluster = entry.cluster
        remaining = entry.length
        while remaining > 0:
            if cluster in (EOF_CLUSTER, FREE_CLUSTER):
                raise CardError(f"file {name!r} is shorter than its recorded length")
            chunk = min(remaining, self.header.cluster_size)
            parts.append(self._read_cluster(cluster + self.header.first_allocatable)[:chunk])
            remaining -= chunk
            cluster = self._get_fat(cluster)
        return b"".join(parts)

    def write_file(
        self,
        path: Name,
        name: Name,
        data: bytes,
        created: Optional[Ps2DateTime] = None,
        modified: Optional[Ps2DateTime] = None,
        mode: Optional[int] = None,
    ) -> None:
        """Create or replace a file; on failure the card may be partly written."""
        parent = self._lookup_path(path)
        raw_name = _as_name(name)
        if mode is not None and (
            not mode & DirFlag.EXISTS or not mode & DirFlag.FILE or mode & DirFlag.DIRECTORY
        ):
            raise CardError(f"mode {mode:#06x} does not describe a file")

        old = self._find(parent, raw_name)
        if old is not None:
            old_entry, old_index = old
            if old_entry.mode & DirFlag.DIRECTORY:
                raise CardError(f"a directory named {raw_name!r} already exists")
            self._delete(parent, old_entry, old_index)

        entry = DirEntry(
            mode=DEFAULT_FILE_MODE if mode is None else int(mode),
            length=len(data),
            created=created if created is not None else Ps2DateTime.now(),
            cluster=EOF_CLUSTER,
            modified=modified if modified is not None else Ps2DateTime.now(),
            name=raw_name,
        )
        index = self._add_object(parent, entry, old is not None)

        size = self.header.cluster_size
        previous = EOF_CLUSTER
        for offset in range(0, len(data), size):
            cluster = self._allocate()
            if previous == EOF_CLUSTER:
                entry.cluster = cluster
            else:
                self._set_fat(previous, cluster)
            self._set_fat(cluster, EOF_CLUSTER)
            chunk = data[offset:offset + size]
            self._write_cluster(
                cluster + self.header.first_allocatable, chunk + b"\xff" * (size - len(chunk))
            )
            previous = cluster

        self._set_entry(entry, parent, index)

    def mkdir(
        self,
        path: Name,
        name: Name,
        created: Optional[Ps2DateTime] = None,
        modified: Optional[Ps2DateTime] = None,
        mode: Optional[int] = None,
    ) -> None:
        """Create a directory, or update the times and mode of an existing one."""
        parent = self._lookup_path(path)
        raw_name = _as_name(name)
        if mode is not None and (
            not mode & DirFlag.EXISTS or not mode & DirFlag.DIRECTORY or mode & DirFlag.FILE
        ):
            raise CardError(f"mode {mode:#06x} does not describe a directory")

        existing = self._find(parent, raw_name)
        if existing is not None:
            entry, index = existing
            if not entry.mode & DirFlag.DIRECTORY:
                raise CardError(f"a file named {raw_name!r} already exists")
            if created is None and modified is None and mode is None:
                return
            if created is not None:
                entry.created = created
            if modified is not None:
                entry.modified = modified
            if mode is not None:
                entry.mode = int(mode)
            self._set_entry(entry, parent, index)
            return

        entry = DirEntry(
            mode=DEFAULT_DIR_MODE if mode is None else int(mode),
            length=2,
            created=created if created is not None else Ps2DateTime.now(),
            cluster=EOF_CLUSTER,
            modified=modified if modified is not None else Ps2DateTime.now(),
            name=raw_name,
        )
        index = self._add_object(parent, entry, False)

        entry.cluster = self._allocate()
        self._set_fat(entry.cluster, EOF_CLUSTER)
        self._write_dir_base(entry.cluster, parent, index)
        self._set_entry(entry, parent, index)

    def delete_file(self, path: Name, name: Name) -> None:
        parent, entry, index = self._lookup_entry(path, name)
        self._delete(parent, entry, index)


def _as_path(path: Name) -> bytes:
    return path.encode(NAME_ENCODING) if isinstance(path, str) else bytes(path)