import pytest

from ps2mc.ecc import CHUNK_SIZE, PAGE_DATA_SIZE, PAGE_ECC_SIZE, chunk_ecc, page_ecc


def _pattern(seed: int, size: int) -> bytes:
    return bytes((seed * 31 + i * 17 + (i >> 3)) & 0xFF for i in range(size))


def test_zero_chunk_ecc():
    assert chunk_ecc(bytes(CHUNK_SIZE)) == b"\x77\x7f\x7f"


def test_all_ones_chunk_matches_zero_chunk():
    assert chunk_ecc(b"\xff" * CHUNK_SIZE) == chunk_ecc(bytes(CHUNK_SIZE))


def test_single_set_bit_at_start():
    chunk = b"\x01" + bytes(CHUNK_SIZE - 1)
    assert chunk_ecc(chunk) == b"\x70\x00\x7f"


@pytest.mark.parametrize("seed", range(6))
def test_chunk_ecc_respects_masks(seed):
    code = chunk_ecc(_pattern(seed, CHUNK_SIZE))
    assert len(code) == 3
    assert code[0] & ~0x77 == 0
    assert code[1] & ~0x7F == 0
    assert code[2] & ~0x7F == 0


@pytest.mark.parametrize("position", [0, 1, 63, 127])
def test_bit_flip_changes_ecc(position):
    chunk = bytearray(_pattern(3, CHUNK_SIZE))
    before = chunk_ecc(bytes(chunk))
    chunk[position] ^= 0x01
    assert chunk_ecc(bytes(chunk)) != before
    chunk[position] ^= 0x01
    assert chunk_ecc(bytes(chunk)) == before


def test_page_ecc_is_chunk_codes_and_padding():
    page = _pattern(7, PAGE_DATA_SIZE)
    code = page_ecc(page)
    assert len(code) == PAGE_ECC_SIZE
    for k in range(4):
        assert code[3 * k:3 * k + 3] == chunk_ecc(page[k * CHUNK_SIZE:(k + 1) * CHUNK_SIZE])
    assert code[12:] == bytes(4)


def test_zero_page_chunks_are_identical():
    code = page_ecc(bytes(PAGE_DATA_SIZE))
    assert code[0:3] == code[3:6] == code[6:9] == code[9:12] == chunk_ecc(bytes(CHUNK_SIZE))


def test_page_ecc_accepts_bytearray():
    page = _pattern(2, PAGE_DATA_SIZE)
    assert page_ecc(bytearray(page)) == page_ecc(page)


@pytest.mark.parametrize("size", [0, CHUNK_SIZE - 1, CHUNK_SIZE + 1])
def test_chunk_wrong_size(size):
    with pytest.raises(ValueError):
        chunk_ecc(bytes(size))


@pytest.mark.parametrize("size", [0, PAGE_DATA_SIZE - 1, PAGE_DATA_SIZE + PAGE_ECC_SIZE])
def test_page_wrong_size(size):
    with pytest.raises(ValueError):
        page_ecc(bytes(size))