# ps2mc

Tools for PlayStation 2 memory card images and PSU save archives. A card
image is accepted either with the per-page ECC spare area (0x840000 bytes,
usually `.ps2`) or without it (0x800000 bytes, usually `.bin`); images
without ECC get their ECC computed on load.

Requires Python 3.10 or later and has no third-party dependencies.

## Install

    pip install .

For running the tests:

    pip install ".[test]"
    pytest

## Library use

```python
from ps2mc.card import MemoryCard, CardError
from ps2mc.psu import PsuError, export_psu, import_psu, load_psu, compare_archives

card = MemoryCard.load("card.ps2")
for info in card.list_files(""):          # FileInfo(name, is_dir, size)
    print(info)

print(card.free_cluster_count(), "free clusters of", card.cluster_size(), "bytes")

export_psu(card, "SAVE.psu", "BASLUS-00000SAVE")

card.backup()
try:
    import_psu(card, "OTHER.psu")
except (PsuError, CardError):
    card.restore()

card.save("card.ps2")          # image with ECC
card.save_no_ecc("card.bin")   # image without ECC

difference = compare_archives(load_psu("a.psu"), load_psu("b.psu"))
print("equal" if difference is None else difference)
```

### `ps2mc.card`

`MemoryCard` holds a whole image in memory.

- `MemoryCard.load(path)` / `MemoryCard.from_image(data)` open an image;
  `to_bytes()`, `save(path)` and `save_no_ecc(path)` write it back.
- `list_files(path)` lists the existing entries of a directory (without
  `.` and `..`).
- `read_file(path, name)`, `stat(path, name)`, `write_file(path, name, data,
  created, modified, mode)`, `mkdir(path, name, created, modified, mode)` and
  `delete_file(path, name)` work on single entries. Names may be `str`
  (encoded as cp932) or `bytes`; paths are split on `/` and `\`.
  `write_file` replaces a file of the same name; `mkdir` on an existing
  directory only updates the times and mode given.
- `backup()` remembers the current image and `restore()` returns to it.
- `free_cluster_count()` and `cluster_size()` report free space.

Failures raise `CardError`.

### `ps2mc.psu`

- `read_psu(stream)` and `load_psu(path)` parse an archive into a
  `PsuArchive` (`name` and a `files` mapping of name to data).
- `import_psu(card, path)` creates the save directory in the card's root
  and writes every file of the archive into it. The archive is checked in
  full before the card is changed.
- `export_psu(card, path, dir_name)` packs a directory of the card's root
  into a PSU file.
- `compare_archives(first, second)` returns `None` when two archives hold
  the same save, otherwise a short description of the first difference.

Malformed archives raise `PsuError`.

### Lower levels

`ps2mc.layout` has the on-card and archive structures (`CardHeader`,
`DirEntry`, `PsuHeader`, `Ps2DateTime`, `DirFlag`), each with
`from_bytes`/`to_bytes`. `ps2mc.ecc` has `page_ecc` and `chunk_ecc`.

## Command line

    ps2mc --help

Subcommands:

- `ps2mc list CARD [--sort title|size|name] [--descending]` lists the
  saves in the card's root as title, size and directory name (the title
  comes from the save's `icon.sys` when it has one), followed by the free
  space.
- `ps2mc psus DIRECTORY [--sort ...] [--descending]` lists the readable
  `.psu` archives of a directory the same way; the size column is the
  number of files in the archive.
- `ps2mc save CARD OUTPUT [--no-ecc]` writes the card image again, with or
  without ECC.
- `ps2mc import CARD DIRECTORY NAME... [-o OUTPUT]` imports
  `DIRECTORY/NAME.psu` for each name. A failed import is rolled back; the
  card is written (to `OUTPUT`, or over `CARD`) when at least one import
  succeeded.
- `ps2mc export CARD DIRECTORY NAME...` writes each save `NAME` to
  `DIRECTORY/NAME.psu`, overwriting existing files.
- `ps2mc compare FIRST SECOND` compares two archives and prints `equal` or
  the first difference.
- `ps2mc dirs [BASE]` prints which of the directories `MC_A01`…`MC_A99`
  and `MC_B01`…`MC_B99` exist under `BASE` (default: the current
  directory).

Commands exit with status 1 when something failed.

## Limitations

- There is no way to create a blank, formatted card: `MemoryCard` always
  starts from an existing image.
- Only saves in the card's root can be exported, and PSU archives with
  nested directories that hold files are rejected.