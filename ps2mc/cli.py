"""Command-line front end: list, convert, import and export memory card saves."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .card import NAME_ENCODING, CardError, MemoryCard
from .psu import PsuError, compare_archives, export_psu, import_psu, load_psu

ICON_SYS = b"icon.sys"
TITLE_OFFSET = 0xC0
TITLE_SIZE = 0x100
DIR_PREFIXES = ("MC_A", "MC_B")
PSU_SUFFIX = ".psu"

COLUMN_TITLE = 0
COLUMN_SIZE = 1
COLUMN_FILE_NAME = 2

_SORT_COLUMNS = {"title": COLUMN_TITLE, "size": COLUMN_SIZE, "name": COLUMN_FILE_NAME}


@dataclass(frozen=True)
class SaveItem:
    """One save as shown in a listing: its title, size and directory name."""

    title: str
    size: int
    file_name: str


def _decode(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode(NAME_ENCODING, errors="replace")


def save_title(icon_sys: Optional[bytes], fallback: bytes) -> str:
    """The title stored in an icon.sys file, or the fallback name when there is none."""
    if icon_sys is None:
        return _decode(fallback)
    block = icon_sys[TITLE_OFFSET:TITLE_OFFSET + TITLE_SIZE]
    if len(block) != TITLE_SIZE:
        raise ValueError("icon.sys is too short to hold a save title")
    return _decode(block)


def card_items(card: MemoryCard) -> list[SaveItem]:
    """Entries of the card's root directory as save items."""
    items = []
    for info in card.list_files(""):
        try:
            icon = card.read_file(info.name, ICON_SYS)
        except CardError:
            icon = None
        items.append(SaveItem(save_title(icon, info.name), info.size, _decode(info.name)))
    return items


def psu_dir_items(directory) -> list[SaveItem]:
    """Readable PSU archives of a directory as save items; unreadable ones are skipped."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    items = []
    for path in sorted(directory.iterdir()):
        if path.suffix.lower() != PSU_SUFFIX or path.is_dir():
            continue
        try:
            archive = load_psu(path)
        except (PsuError, OSError):
            continue
        title = save_title(archive.files.get(ICON_SYS), archive.name)
        items.append(SaveItem(title, len(archive.files), _decode(archive.name)))
    return items


def sort_items(items: Iterable[SaveItem], column: int = COLUMN_TITLE, descending: bool = False) -> list[SaveItem]:
    """Sort by size (column 1), file name (column 2) or title (any other column)."""
    if column == COLUMN_SIZE:
        key = lambda item: item.size  # noqa: E731
    elif column == COLUMN_FILE_NAME:
        key = lambda item: item.file_name  # noqa: E731
    else:
        key = lambda item: item.title  # noqa: E731
    return sorted(items, key=key, reverse=descending)


def candidate_dirs(base) -> list[Path]:
    """Existing PSU directories named MC_A01..MC_A99, then MC_B01..MC_B99, under base."""
    base = Path(base)
    return [
        base / f"{prefix}{number:02d}"
        for prefix in DIR_PREFIXES
        for number in range(1, 100)
        if (base / f"{prefix}{number:02d}").is_dir()
    ]


def _print_items(items: Iterable[SaveItem], column: int, descending: bool) -> None:
    for item in sort_items(items, column, descending):
        print(f"{item.title}\t{item.size}\t{item.file_name}")


def _cmd_list(args: argparse.Namespace) -> int:
    card = MemoryCard.load(args.card)
    _print_items(card_items(card), _SORT_COLUMNS[args.sort], args.descending)
    count = card.free_cluster_count()
    print(f"free clusters = {count} KB, size = {card.cluster_size() * count}")
    return 0


def _cmd_psus(args: argparse.Namespace) -> int:
    _print_items(psu_dir_items(args.directory), _SORT_COLUMNS[args.sort], args.descending)
    return 0


def _cmd_save(args: argparse.Namespace) -> int:
    card = MemoryCard.load(args.card)
    if args.no_ecc:
        card.save_no_ecc(args.output)
    else:
        card.save(args.output)
    return 0


def _cmd_import(args: argparse.Namespace) -> int:
    card = MemoryCard.load(args.card)
    directory = Path(args.directory)
    succeeded = failed = 0
    for name in args.names:
        card.backup()
        try:
            import_psu(card, directory / f"{name}{PSU_SUFFIX}")
        except (PsuError, CardError, OSError):
            card.restore()
            failed += 1
            print(f"import {name} failed", file=sys.stderr)
        else:
            succeeded += 1
    if succeeded:
        card.save(args.output or args.card)
    print(f"import finished: {succeeded} succeeded, {failed} failed")
    return 1 if failed else 0


def _cmd_export(args: argparse.Namespace) -> int:
    card = MemoryCard.load(args.card)
    directory = Path(args.directory)
    succeeded = failed = 0
    for name in args.names:
        try:
            export_psu(card, directory / f"{name}{PSU_SUFFIX}", name)
        except (PsuError, CardError, OSError):
            failed += 1
            print(f"export {name} failed", file=sys.stderr)
        else:
            succeeded += 1
    print(f"export finished: {succeeded} succeeded, {failed} failed")
    return 1 if failed else 0


def _cmd_compare(args: argparse.Namespace) -> int:
    archives = []
    for path in (args.first, args.second):
        try:
            archives.append(load_psu(path))
        except (PsuError, OSError):
            print(f"cannot read {path}", file=sys.stderr)
            return 1
    difference = compare_archives(*archives)
    if difference is None:
        print("equal")
        return 0
    print(difference)
    return 1


def _cmd_dirs(args: argparse.Namespace) -> int:
    for path in candidate_dirs(args.base):
        print(path.name)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ps2mc", description="PS2 memory card save manager.")
    commands = parser.add_subparsers(dest="command", required=True)

    def add_sorting(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--sort", choices=sorted(_SORT_COLUMNS), default="title")
        sub.add_argument("--descending", action="store_true")

    sub = commands.add_parser("list", help="list the saves on a card")
    sub.add_argument("card")
    add_sorting(sub)
    sub.set_defaults(handler=_cmd_list)

    sub = commands.add_parser("psus", help="list the PSU archives of a directory")
    sub.add_argument("directory")
    add_sorting(sub)
    sub.set_defaults(handler=_cmd_psus)

    sub = commands.add_parser("save", help="write a card image, with or without ECC")
    sub.add_argument("card")
    sub.add_argument("output")
    sub.add_argument("--no-ecc", action="store_true")
    sub.set_defaults(handler=_cmd_save)

    sub = commands.add_parser("import", help="import PSU archives onto a card")
    sub.add_argument("card")
    sub.add_argument("directory")
    sub.add_argument("names", nargs="+")
    sub.add_argument("-o", "--output")
    sub.set_defaults(handler=_cmd_import)

    sub = commands.add_parser("export", help="export saves of a card as PSU archives")
    sub.add_argument("card")
    sub.add_argument("directory")
    sub.add_argument("names", nargs="+")
    sub.set_defaults(handler=_cmd_export)

    sub = commands.add_parser("compare", help="compare two PSU archives")
    sub.add_argument("first")
    sub.add_argument("second")
    sub.set_defaults(handler=_cmd_compare)

    sub = commands.add_parser("dirs", help="list the MC_XYY directories under a base directory")
    sub.add_argument("base", nargs="?", default=".")
    sub.set_defaults(handler=_cmd_dirs)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except (CardError, PsuError, OSError, ValueError) as error:
        print(f"error: {error}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())