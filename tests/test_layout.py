from datetime import datetime, timedelta, timezone

import pytest

from ps2mc.layout import (
    MAGIC,
    CardHeader,
    DirEntry,
    DirFlag,
    PsuHeader,
    Ps2DateTime,
)


def _header(**overrides):
    values = dict(
        page_size=512,
        pages_per_cluster=2,
        pages_per_block=16,
        clusters_per_card=8192,
        first_allocatable=41,
        last_allocatable=8135,
        rootdir_cluster=0,
        backup_block1=1023,
        backup_block2=1022,
        indir_fat_clusters=[8] + [0] * 31,
        bad_block_list=[-1] * 32,
        card_type=2,
        card_flags=0x2B,
        cluster_size=1024,
        max_used=7000,
    )
    values.update(overrides)
    return CardHeader(**values)


def test_directory_mode_value():
    mode = (DirFlag.EXISTS | DirFlag.F_0400 | DirFlag.DIRECTORY
            | DirFlag.READ | DirFlag.WRITE | DirFlag.EXECUTE)
    data = DirEntry(mode=mode, name=b"SAVE").to_bytes()
    assert data[0:2] == (0x8427).to_bytes(2, "little")
    parsed = DirEntry.from_bytes(data)
    assert parsed.mode == 0x8427
    assert parsed.mode & DirFlag.DIRECTORY
    assert not parsed.mode & DirFlag.FILE


def test_file_mode_value():
    mode = (DirFlag.EXISTS | DirFlag.F_0400 | DirFlag.FILE
            | DirFlag.READ | DirFlag.WRITE | DirFlag.EXECUTE)
    data = DirEntry(mode=mode, name=b"icon.sys").to_bytes()
    assert data[0:2] == (0x8417).to_bytes(2, "little")
    parsed = DirEntry.from_bytes(data)
    assert parsed.mode == 0x8417
    assert parsed.mode & DirFlag.FILE
    assert not parsed.mode & DirFlag.DIRECTORY


def test_datetime_round_trip():
    stamp = Ps2DateTime(2009, 12, 31, 23, 59, 58)
    data = stamp.to_bytes()
    assert len(data) == Ps2DateTime.SIZE
    assert Ps2DateTime.from_bytes(data) == stamp
    assert data[1] == 58 and data[6:8] == (2009).to_bytes(2, "little")


def test_datetime_short_data():
    with pytest.raises(ValueError):
        Ps2DateTime.from_bytes(b"\x00" * 7)


def test_datetime_now_is_card_time():
    stamp = Ps2DateTime.now()
    zone = timezone(timedelta(hours=9))
    moment = datetime(stamp.year, stamp.month, stamp.day, stamp.hour,
                      stamp.minute, stamp.second, tzinfo=zone)
    assert abs(datetime.now(zone) - moment) < timedelta(seconds=5)


def test_card_header_field_offsets():
    data = _header(cluster_size=1024, max_used=7000).to_bytes()
    assert data[0x154:0x158] == (1024).to_bytes(4, "little")
    assert data[0x170:0x174] == (7000).to_bytes(4, "little")
    assert data[0x50:0x54] == (8).to_bytes(4, "little")


def test_card_header_short_data():
    with pytest.raises(ValueError):
        CardHeader.from_bytes(_header().to_bytes()[:-1])


def test_card_header_needs_32_entries():
    with pytest.raises(ValueError):
        _header(indir_fat_clusters=[8])


def test_dir_entry_round_trip():
    entry = DirEntry(
        mode=0x8427,
        length=5,
        created=Ps2DateTime(2008, 1, 2, 3, 4, 5),
        cluster=12,
        dir_entry=3,
        modified=Ps2DateTime(2008, 6, 7, 8, 9, 10),
        name=b"BASLUS-00000",
    )
    data = entry.to_bytes()
    assert len(data) == DirEntry.SIZE
    assert data[0x40:0x40 + len(b"BASLUS-00000")] == b"BASLUS-00000"
    assert DirEntry.from_bytes(data) == entry


def test_dir_entry_name_stops_at_nul():
    data = bytearray(DirEntry().to_bytes())
    data[0x40:0x48] = b"icon\0xyz"
    assert DirEntry.from_bytes(bytes(data)).name == b"icon"


def test_dir_entry_name_too_long():
    with pytest.raises(ValueError):
        DirEntry(name=b"x" * 33).to_bytes()


def test_psu_header_round_trip_and_clean():
    head = PsuHeader(attr=0x8417, size=964, name=b"icon.sys",
                     created=Ps2DateTime(2010, 3, 4, 5, 6, 7))
    data = head.to_bytes()
    assert len(data) == PsuHeader.SIZE
    parsed = PsuHeader.from_bytes(data)
    assert parsed == head
    assert parsed.is_clean()


@pytest.mark.parametrize("offset", [2, 0x10, 0x20, 0x28, 0x100])
def test_psu_header_unclean(offset):
    data = bytearray(PsuHeader(attr=0x8427, name=b"SAVE").to_bytes())
    data[offset] = 1
    assert not PsuHeader.from_bytes(bytes(data)).is_clean()


def test_psu_header_short_data():
    with pytest.raises(ValueError):
        PsuHeader.from_bytes(bytes(100))