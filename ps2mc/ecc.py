"""Error-correcting codes stored in the spare area of memory card pages."""

from __future__ import annotations

CHUNK_SIZE = 0x80
PAGE_DATA_SIZE = 0x200
PAGE_ECC_SIZE = 0x10

_CHUNK_ECC_SIZE = 3

_XOR_TABLE = bytes.fromhex(
    "00 87 96 11 a5 22 33 b4 b4 33 22 a5 11 96 87 00"
    "c3 44 55 d2 66 e1 f0 77 77 f0 e1 66 d2 55 44 c3"
    "d2 55 44 c3 77 f0 e1 66 66 e1 f0 77 c3 44 55 d2"
    "11 96 87 00 b4 33 22 a5 a5 22 33 b4 00 87 96 11"
    "e1 66 77 f0 44 c3 d2 55 55 d2 c3 44 f0 77 66 e1"
    "22 a5 b4 33 87 00 11 96 96 11 00 87 33 b4 a5 22"
    "33 b4 a5 22 96 11 00 87 87 00 11 96 22 a5 b4 33"
    "f0 77 66 e1 55 d2 c3 44 44 c3 d2 55 e1 66 77 f0"
    "f0 77 66 e1 55 d2 c3 44 44 c3 d2 55 e1 66 77 f0"
    "33 b4 a5 22 96 11 00 87 87 00 11 96 22 a5 b4 33"
    "22 a5 b4 33 87 00 11 96 96 11 00 87 33 b4 a5 22"
    "e1 66 77 f0 44 c3 d2 55 55 d2 c3 44 f0 77 66 e1"
    "11 96 87 00 b4 33 22 a5 a5 22 33 b4 00 87 96 11"
    "d2 55 44 c3 77 f0 e1 66 66 e1 f0 77 c3 44 55 d2"
    "c3 44 55 d2 66 e1 f0 77 77 f0 e1 66 d2 55 44 c3"
    "00 87 96 11 a5 22 33 b4 b4 33 22 a5 11 96 87 00"
)


def chunk_ecc(chunk: bytes) -> bytes:
    """Return the 3-byte ECC of a 128-byte chunk."""
    if len(chunk) != CHUNK_SIZE:
        raise ValueError(f"ECC chunk must be {CHUNK_SIZE} bytes, got {len(chunk)}")

    column = 0
    line_low = 0
    line_high = 0
    for index, byte in enumerate(chunk):
        parity = _XOR_TABLE[byte]
        column ^= parity
        if parity & 0x80:
            line_low ^= ~index & 0xFF
            line_high ^= index

    return bytes((~column & 0x77, ~line_low & 0x7F, ~line_high & 0x7F))


def page_ecc(page: bytes) -> bytes:
    """Return the 16-byte spare area for a 512-byte page: four chunk ECCs and padding."""
    if len(page) != PAGE_DATA_SIZE:
        raise ValueError(f"page must be {PAGE_DATA_SIZE} bytes, got {len(page)}")

    view = memoryview(page)
    codes = b"".join(
        chunk_ecc(bytes(view[offset:offset + CHUNK_SIZE]))
        for offset in range(0, PAGE_DATA_SIZE, CHUNK_SIZE)
    )
    return codes + bytes(PAGE_ECC_SIZE - len(codes))