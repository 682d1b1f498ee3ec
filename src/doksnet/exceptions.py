"""Error taxonomy for doksnet.

Every failure the library raises derives from :class:`DoksnetError`; only the
command line turns these into exit codes.
"""

from __future__ import annotations

from typing import Sequence


class DoksnetError(Exception):
    """Base class for every expected doksnet failure."""


class InvalidPartitionSyntax(DoksnetError):
    def __init__(self, raw: str, reason: str):
        super().__init__(f"Invalid partition '{raw}': {reason}")
        self.raw = raw
        self.reason = reason


class ExtractionError(DoksnetError):
    """A partition could not be resolved against the file tree."""

    def __init__(self, path: str, message: str):
        super().__init__(message)
        self.path = path


class FileNotFound(ExtractionError):
    def __init__(self, path: str):
        super().__init__(path, f"File not found: {path}")


class NotDecodable(ExtractionError):
    def __init__(self, path: str):
        super().__init__(path, f"File is not valid UTF-8 text: {path}")


class LineOutOfRange(ExtractionError):
    def __init__(self, path: str, end_line: int, line_count: int):
        super().__init__(
            path,
            f"Line {end_line} exceeds file length ({line_count} lines): {path}",
        )
        self.end_line = end_line
        self.line_count = line_count


class ColumnOutOfRange(ExtractionError):
    def __init__(self, path: str, start_col: int, length: int):
        super().__init__(
            path,
            f"Start column {start_col} exceeds selected text length ({length} chars): {path}",
        )
        self.start_col = start_col
        self.length = length


class IoError(DoksnetError):
    def __init__(self, path: str, message: str):
        super().__init__(f"I/O error on {path}: {message}")
        self.path = path


class CorruptStore(DoksnetError):
    def __init__(self, path: str, line_number: int, line: str, reason: str):
        if line_number > 0:
            message = f"Corrupt store {path}, line {line_number}: {reason}: {line!r}"
        else:
            message = f"Corrupt store {path}: {reason}"
        super().__init__(message)
        self.path = path
        self.line_number = line_number
        self.line = line
        self.reason = reason


class StoreNotFound(DoksnetError):
    def __init__(self, file_name: str):
        super().__init__(f"No {file_name} file found. Run 'doksnet new' first.")
        self.file_name = file_name


class StoreExists(DoksnetError):
    def __init__(self, path: str):
        super().__init__(f"A store file already exists: {path}")
        self.path = path


class InvalidDescription(DoksnetError):
    def __init__(self, description: str, reason: str):
        super().__init__(f"Invalid description {description!r}: {reason}")
        self.description = description
        self.reason = reason


class RecordNotFound(DoksnetError):
    def __init__(self, record_id: str):
        super().__init__(f"No mapping found with ID starting with '{record_id}'")
        self.record_id = record_id


class AmbiguousId(DoksnetError):
    def __init__(self, prefix: str, matches: Sequence[str]):
        listed = ", ".join(matches)
        super().__init__(f"ID prefix '{prefix}' matches {len(matches)} mappings: {listed}")
        self.prefix = prefix
        self.matches = tuple(matches)


class NeverThrown(RuntimeError):
    """Raised when a code path that should be unreachable is reached."""

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.env = dict(env or {})
