"""Partition references: ``path[:start_line[-end_line]][@start_col-end_col]``.

Lines and columns are 1-indexed with inclusive bounds. Parsing is purely
syntactic; nothing here touches the filesystem.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from doksnet.exceptions import InvalidPartitionSyntax

_PARTITION_RE = re.compile(
    r"^(?P<path>.*?)(?::(?P<lines>[^:@]*))?(?:@(?P<columns>[0-9-]*))?$"
)
_RANGE_RE = re.compile(r"^(?P<start>[0-9]+)(?:-(?P<end>[0-9]+))?$")
_COLUMNS_RE = re.compile(r"^(?P<start>[0-9]+)-(?P<end>[0-9]+)$")


@dataclass(frozen=True)
class PartitionRef:
    path: str
    start_line: int | None = None
    end_line: int | None = None
    columns: tuple[int, int] | None = None

    @property
    def whole_file(self) -> bool:
        return self.start_line is None

    @property
    def start_col(self) -> int | None:
        return None if self.columns is None else self.columns[0]

    @property
    def end_col(self) -> int | None:
        return None if self.columns is None else self.columns[1]

    def __str__(self) -> str:
        return render_partition(self)


def _positive(raw: str, value_text: str, field: str) -> int:
    value = int(value_text)
    if value <= 0:
        raise InvalidPartitionSyntax(raw, f"{field} must be a positive integer")
    return value


def _parse_lines(raw: str, text: str) -> tuple[int | None, int | None]:
    if not text:
        return None, None
    match = _RANGE_RE.match(text)
    if match is None:
        raise InvalidPartitionSyntax(raw, f"malformed line range '{text}'")
    start = _positive(raw, match.group("start"), "start line")
    end_text = match.group("end")
    end = start if end_text is None else _positive(raw, end_text, "end line")
    if end < start:
        raise InvalidPartitionSyntax(
            raw, f"end line {end} is before start line {start}"
        )
    return start, end


def _parse_columns(raw: str, text: str) -> tuple[int, int]:
    match = _COLUMNS_RE.match(text)
    if match is None:
        raise InvalidPartitionSyntax(
            raw, f"column range '{text}' must be <start_col>-<end_col>"
        )
    start = _positive(raw, match.group("start"), "start column")
    end = _positive(raw, match.group("end"), "end column")
    if end < start:
        raise InvalidPartitionSyntax(
            raw, f"end column {end} is before start column {start}"
        )
    return start, end


def parse_partition(raw: str) -> PartitionRef:
    text = raw.strip()
    match = _PARTITION_RE.match(text)
    if match is None:
        raise InvalidPartitionSyntax(raw, "expected path[:start[-end]][@col-col]")
    path = match.group("path")
    if not path:
        raise InvalidPartitionSyntax(raw, "path is empty")
    start_line, end_line = _parse_lines(raw, match.group("lines") or "")
    columns_text = match.group("columns")
    columns = None if columns_text is None else _parse_columns(raw, columns_text)
    return PartitionRef(
        path=path,
        start_line=start_line,
        end_line=end_line,
        columns=columns,
    )


def render_partition(ref: PartitionRef) -> str:
    parts = [ref.path]
    if ref.start_line is not None and ref.end_line is not None:
        if ref.start_line == ref.end_line:
            parts.append(f":{ref.start_line}")
        else:
            parts.append(f":{ref.start_line}-{ref.end_line}")
    if ref.columns is not None:
        parts.append(f"@{ref.columns[0]}-{ref.columns[1]}")
    return "".join(parts)
