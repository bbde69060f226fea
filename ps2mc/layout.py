"""On-card and archive structures of the PS2 memory card file system."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntFlag
from typing import ClassVar

PAGE_SIZE = 0x200
SPARE_SIZE = 0x10
RAW_CARD_SIZE = 0x00800000
ECC_CARD_SIZE = 0x00840000

FREE_CLUSTER = 0x7FFFFFFF
EOF_CLUSTER = 0xFFFFFFFF
MASK_CLUSTER = 0x80000000

NAME_SIZE = 32
MAGIC = b"Sony PS2 Memory Card Format "

_CARD_TIMEZONE = timezone(timedelta(hours=9))


class DirFlag(IntFlag):
    """Mode bits of a directory entry."""

    READ = 0x0001
    WRITE = 0x0002
    EXECUTE = 0x0004
    PROTECTED = 0x0008
    FILE = 0x0010
    DIRECTORY = 0x0020
    F_0040 = 0x0040
    F_0080 = 0x0080
    F_0100 = 0x0100
    F_0200 = 0x0200
    F_0400 = 0x0400
    POCKETSTATION = 0x0800
    PSX = 0x1000
    HIDDEN = 0x2000
    F_4000 = 0x4000
    EXISTS = 0x8000


def _check_length(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


def _decode_name(raw: bytes) -> bytes:
    return raw.split(b"\0", 1)[0]


def _encode_name(name: bytes) -> bytes:
    if len(name) > NAME_SIZE:
        raise ValueError(f"name longer than {NAME_SIZE} bytes: {name!r}")
    return name


@dataclass(frozen=True)
class Ps2DateTime:
    """Timestamp as stored on the card (local time of the console)."""

    year: int = 0
    month: int = 0
    day: int = 0
    hour: int = 0
    minute: int = 0
    second: int = 0
    reserved: int = 0

    SIZE: ClassVar[int] = 8
    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<BBBBBBH")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Ps2DateTime":
        _check_length(data, cls.SIZE, "timestamp")
        reserved, second, minute, hour, day, month, year = cls._STRUCT.unpack_from(data)
        return cls(year, month, day, hour, minute, second, reserved)

    def to_bytes(self) -> bytes:
        return self._STRUCT.pack(
            self.reserved, self.second, self.minute, self.hour, self.day, self.month, self.year
        )

    @classmethod
    def now(cls) -> "Ps2DateTime":
        """Current time in the card's time zone (UTC+9)."""
        moment = datetime.now(_CARD_TIMEZONE)
        return cls(moment.year, moment.month, moment.day, moment.hour, moment.minute, moment.second)


@dataclass
class CardHeader:
    """Superblock stored in the first page of the card."""

    page_size: int
    pages_per_cluster: int
    pages_per_block: int
    clusters_per_card: int
    first_allocatable: int
    last_allocatable: int
    rootdir_cluster: int
    backup_block1: int
    backup_block2: int
    indir_fat_clusters: tuple[int, ...]
    bad_block_list: tuple[int, ...]
    card_type: int
    card_flags: int
    cluster_size: int
    max_used: int
    magic: bytes = MAGIC
    version: bytes = b"1.2.0.0"
    unused: int = 0xFF00
    reserved: bytes = field(default=bytes(8), repr=False)
    reserved2: int = field(default=0, repr=False)
    extra: bytes = field(default=bytes(24), repr=False)

    SIZE: ClassVar[int] = 0x174
    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<28s12sHHHHIIIIII8s32I32iBBHI24sI")

    def __post_init__(self) -> None:
        self.indir_fat_clusters = tuple(self.indir_fat_clusters)
        self.bad_block_list = tuple(self.bad_block_list)
        if len(self.indir_fat_clusters) != 32:
            raise ValueError("indir_fat_clusters must hold 32 entries")
        if len(self.bad_block_list) != 32:
            raise ValueError("bad_block_list must hold 32 entries")

    @classmethod
    def from_bytes(cls, data: bytes) -> "CardHeader":
        _check_length(data, cls.SIZE, "card header")
        values = cls._STRUCT.unpack_from(data)
        (magic, version, page_size, pages_per_cluster, pages_per_block, unused,
         clusters_per_card, first_allocatable, last_allocatable, rootdir_cluster,
         backup_block1, backup_block2, reserved) = values[:13]
        indir = values[13:45]
        bad = values[45:77]
        card_type, card_flags, reserved2, cluster_size, extra, max_used = values[77:]
        return cls(
            page_size=page_size,
            pages_per_cluster=pages_per_cluster,
            pages_per_block=pages_per_block,
            clusters_per_card=clusters_per_card,
            first_allocatable=first_allocatable,
            last_allocatable=last_allocatable,
            rootdir_cluster=rootdir_cluster,
            backup_block1=backup_block1,
            backup_block2=backup_block2,
            indir_fat_clusters=indir,
            bad_block_list=bad,
            card_type=card_type,
            card_flags=card_flags,
            cluster_size=cluster_size,
            max_used=max_used,
            magic=magic,
            version=version,
            unused=unused,
            reserved=reserved,
            reserved2=reserved2,
            extra=extra,
        )

    def to_bytes(self) -> bytes:
        return self._STRUCT.pack(
            self.magic, self.version, self.page_size, self.pages_per_cluster,
            self.pages_per_block, self.unused, self.clusters_per_card,
            self.first_allocatable, self.last_allocatable, self.rootdir_cluster,
            self.backup_block1, self.backup_block2, self.reserved,
            *self.indir_fat_clusters, *self.bad_block_list,
            self.card_type, self.card_flags, self.reserved2, self.cluster_size,
            self.extra, self.max_used,
        )


@dataclass
class DirEntry:
    """A 512-byte directory entry."""

    mode: int = 0
    length: int = 0
    created: Ps2DateTime = field(default_factory=Ps2DateTime)
    cluster: int = 0
    dir_entry: int = 0
    modified: Ps2DateTime = field(default_factory=Ps2DateTime)
    attr: int = 0
    name: bytes = b""
    reserved1: int = field(default=0, repr=False)
    reserved2: bytes = field(default=bytes(28), repr=False)
    reserved3: bytes = field(default=bytes(416), repr=False)

    SIZE: ClassVar[int] = PAGE_SIZE
    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<HHI8sII8sI28s32s416s")

    @classmethod
    def from_bytes(cls, data: bytes) -> "DirEntry":
        _check_length(data, cls.SIZE, "directory entry")
        (mode, reserved1, length, created, cluster, dir_entry, modified, attr,
         reserved2, name, reserved3) = cls._STRUCT.unpack_from(data)
        return cls(
            mode=mode,
            length=length,
            created=Ps2DateTime.from_bytes(created),
            cluster=cluster,
            dir_entry=dir_entry,
            modified=Ps2DateTime.from_bytes(modified),
            attr=attr,
            name=_decode_name(name),
            reserved1=reserved1,
            reserved2=reserved2,
            reserved3=reserved3,
        )

    def to_bytes(self) -> bytes:
        return self._STRUCT.pack(
            self.mode, self.reserved1, self.length, self.created.to_bytes(),
            self.cluster, self.dir_entry, self.modified.to_bytes(), self.attr,
            self.reserved2, _encode_name(self.name), self.reserved3,
        )


@dataclass
class PsuHeader:
    """A 512-byte entry header of a PSU save archive."""

    attr: int = 0
    size: int = 0
    created: Ps2DateTime = field(default_factory=Ps2DateTime)
    modified: Ps2DateTime = field(default_factory=Ps2DateTime)
    name: bytes = b""
    unknown_1: int = 0
    ems_used: int = 0
    unknown_2: int = 0
    unknown_3: bytes = bytes(24)
    unknown_4: bytes = field(default=bytes(416), repr=False)

    SIZE: ClassVar[int] = PAGE_SIZE
    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<HHI8sQ8sQ24s32s416s")

    @classmethod
    def from_bytes(cls, data: bytes) -> "PsuHeader":
        _check_length(data, cls.SIZE, "PSU header")
        (attr, unknown_1, size, created, ems_used, modified, unknown_2,
         unknown_3, name, unknown_4) = cls._STRUCT.unpack_from(data)
        return cls(
            attr=attr,
            size=size,
            created=Ps2DateTime.from_bytes(created),
            modified=Ps2DateTime.from_bytes(modified),
            name=_decode_name(name),
            unknown_1=unknown_1,
            ems_used=ems_used,
            unknown_2=unknown_2,
            unknown_3=unknown_3,
            unknown_4=unknown_4,
        )

    def to_bytes(self) -> bytes:
        return self._STRUCT.pack(
            self.attr, self.unknown_1, self.size, self.created.to_bytes(),
            self.ems_used, self.modified.to_bytes(), self.unknown_2,
            self.unknown_3, _encode_name(self.name), self.unknown_4,
        )

    def is_clean(self) -> bool:
        """True when every field outside the known ones is zero."""
        return (
            self.unknown_1 == 0
            and self.unknown_2 == 0
            and self.ems_used == 0
            and not any(self.unknown_3)
            and not any(self.unknown_4)
        )