"""I/O helpers shared by the scripts and the preview service.

orjson for JSON; an encoding fallback chain for markdown files exported
from word processors.
"""
from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import orjson

MARKDOWN_SUFFIXES: tuple[str, ...] = (".md", ".markdown", ".txt")


def read_text_file(fpath: Path, *, min_size: int = 0) -> str:
    """Read a text file with encoding fallback: UTF-8 -> CP1252 -> replace.

    CP1252 covers smart quotes (0x93/0x94) pasted from Word documents.

    Args:
        fpath: Path to the file.
        min_size: Minimum file size in bytes. Returns empty string if smaller.

    Returns:
        File contents, or an empty string when the file is too small.

    Raises:
        OSError: if the file cannot be read.
    """
    if min_size > 0 and fpath.stat().st_size < min_size:
        return ""
    raw = fpath.read_bytes()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        pass
    try:
        return raw.decode("cp1252")
    except UnicodeDecodeError:
        return raw.decode("utf-8", errors="replace")


def iter_markdown_files(root: Path, suffixes: tuple[str, ...] = MARKDOWN_SUFFIXES) -> Iterator[Path]:
    """Yield markdown files under *root* (or *root* itself), sorted by path."""
    if root.is_file():
        yield root
        return
    for path in sorted(root.rglob("*")):
        if path.is_file() and path.suffix.lower() in suffixes:
            yield path


def save_json(obj: Any, path: Path) -> None:
    """Write *obj* as indented JSON with sorted keys, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(obj, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))


def dump_json(obj: Any) -> None:
    """Write *obj* as indented JSON to stdout."""
    sys.stdout.buffer.write(orjson.dumps(obj, option=orjson.OPT_INDENT_2))
    sys.stdout.buffer.write(b"\n")
    sys.stdout.flush()
