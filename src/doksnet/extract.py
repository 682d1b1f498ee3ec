from __future__ import annotations

from pathlib import Path

from doksnet.exceptions import (
    ColumnOutOfRange,
    FileNotFound,
    IoError,
    LineOutOfRange,
    NotDecodable,
)
from doksnet.partition import PartitionRef


def read_text_exact(path: Path, *, display_path: str | None = None) -> str:
    """Read ``path`` as UTF-8 without any newline translation."""
    label = display_path if display_path is not None else str(path)
    if not path.is_file():
        raise FileNotFound(label)
    try:
        raw = path.read_bytes()
    except FileNotFoundError as exc:
        raise FileNotFound(label) from exc
    except OSError as exc:
        raise IoError(label, str(exc)) from exc
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise NotDecodable(label) from exc


def split_lines_keepends(text: str) -> list[str]:
    # Only "\n" terminates a line; "\r" stays part of the line it ends.
    pieces = text.split("\n")
    lines = [piece + "\n" for piece in pieces[:-1]]
    if pieces[-1]:
        lines.append(pieces[-1])
    return lines


def slice_content(content: str, ref: PartitionRef) -> str:
    text = content
    if ref.start_line is not None and ref.end_line is not None:
        lines = split_lines_keepends(content)
        if ref.end_line > len(lines):
            raise LineOutOfRange(ref.path, ref.end_line, len(lines))
        text = "".join(lines[ref.start_line - 1 : ref.end_line])
    if ref.columns is not None:
        start_col, end_col = ref.columns
        if start_col > len(text):
            raise ColumnOutOfRange(ref.path, start_col, len(text))
        text = text[start_col - 1 : min(end_col, len(text))]
    return text


def extract(ref: PartitionRef, root: Path) -> str:
    content = read_text_exact(root / ref.path, display_path=ref.path)
    return slice_content(content, ref)
