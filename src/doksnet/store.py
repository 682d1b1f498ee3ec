"""Link records and the flat-file store that persists them.

The store file is line oriented so that it stays readable and diff-friendly
under version control::

    # .doks v2 - Compact format
    version=0.1.0
    default_doc=README.md

    # Format: id|doc_partition|code_partition|doc_hash|code_hash|description
    3f2c...|README.md:3-7|src/app.py:10-24|<digest>|<digest>|Startup sequence

Every mutation validates and extracts before anything is written, then
rewrites the whole file atomically.
"""

from __future__ import annotations

import os
import re
import stat
import tempfile
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterable, Sequence

from doksnet.config import DEFAULT_STORE_FILE_NAME
from doksnet.digest import digest
from doksnet.exceptions import (
    AmbiguousId,
    CorruptStore,
    InvalidDescription,
    InvalidPartitionSyntax,
    IoError,
    RecordNotFound,
    StoreExists,
    StoreNotFound,
)
from doksnet.extract import extract
from doksnet.partition import PartitionRef, parse_partition, render_partition

DELIMITER = "|"
FIELD_COUNT = 6
FORMAT_VERSION = "0.1.0"
HEADER_COMMENT = "# .doks v2 - Compact format"
FORMAT_COMMENT = (
    "# Format: id|doc_partition|code_partition|doc_hash|code_hash|description"
)

_CONFIG_RE = re.compile(r"^(?P<key>[A-Za-z_][A-Za-z0-9_]*)=(?P<value>.*)$")
_LINE_BREAKS = ("\n", "\r")


@dataclass(frozen=True)
class LinkRecord:
    id: str
    doc_partition: str
    code_partition: str
    doc_digest: str
    code_digest: str
    description: str = ""

    @property
    def short_id(self) -> str:
        return self.id[:8]

    def to_line(self) -> str:
        return DELIMITER.join(
            (
                self.id,
                self.doc_partition,
                self.code_partition,
                self.doc_digest,
                self.code_digest,
                self.description,
            )
        )


@dataclass(frozen=True)
class EditRequest:
    doc_partition: str | PartitionRef | None = None
    code_partition: str | PartitionRef | None = None
    description: str | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.doc_partition is None
            and self.code_partition is None
            and self.description is None
        )


def validate_description(description: str) -> str:
    text = description.strip()
    if DELIMITER in text:
        raise InvalidDescription(
            description, f"must not contain the field delimiter '{DELIMITER}'"
        )
    if any(mark in text for mark in _LINE_BREAKS):
        raise InvalidDescription(description, "must be a single line")
    return text


def canonical_partition(value: str | PartitionRef) -> PartitionRef:
    ref = value if isinstance(value, PartitionRef) else parse_partition(value)
    rendered = render_partition(ref)
    if DELIMITER in rendered or any(mark in rendered for mark in _LINE_BREAKS):
        raise InvalidPartitionSyntax(
            rendered, f"path must not contain '{DELIMITER}' or line breaks"
        )
    if parse_partition(rendered) != ref:
        raise InvalidPartitionSyntax(
            rendered, "does not read back as the same reference"
        )
    return ref


def _same_partition(stored: str, ref: PartitionRef) -> bool:
    # An unchanged reference keeps its accepted digest.
    try:
        return parse_partition(stored) == ref
    except InvalidPartitionSyntax:
        return False


def _new_id() -> str:
    return str(uuid.uuid4())


def _target_mode(path: Path) -> int:
    # Keep an existing file's permissions; new files follow the umask.
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def write_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` so readers never observe a partial file.

    The temporary file is created private, so the target's mode is applied
    before the rename.
    """
    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="\n",
            dir=path.parent,
            prefix=f"{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_path, _target_mode(path))
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as exc:
        raise IoError(str(path), str(exc)) from exc
    finally:
        if tmp_path is not None:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                pass


class LinkStore:
    def __init__(
        self,
        path: Path,
        *,
        default_doc: str,
        records: Iterable[LinkRecord] = (),
        version: str = FORMAT_VERSION,
    ) -> None:
        self.path = path
        self.default_doc = default_doc
        self.version = version
        self._records: tuple[LinkRecord, ...] = tuple(records)

    @property
    def root(self) -> Path:
        return self.path.parent

    @property
    def records(self) -> tuple[LinkRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def render(self, records: Sequence[LinkRecord] | None = None) -> str:
        rows = self._records if records is None else records
        lines = [
            HEADER_COMMENT,
            f"version={self.version}",
            f"default_doc={self.default_doc}",
            "",
            FORMAT_COMMENT,
        ]
        lines.extend(record.to_line() for record in rows)
        return "\n".join(lines) + "\n"

    def save(self) -> None:
        write_atomic(self.path, self.render())

    def _commit(self, records: Sequence[LinkRecord]) -> None:
        write_atomic(self.path, self.render(records))
        self._records = tuple(records)

    def get(self, record_id: str) -> LinkRecord:
        for record in self._records:
            if record.id == record_id:
                return record
        raise RecordNotFound(record_id)

    def find(self, id_prefix: str) -> LinkRecord:
        prefix = id_prefix.strip()
        if not prefix:
            raise RecordNotFound(id_prefix)
        for record in self._records:
            if record.id == prefix:
                return record
        matched = [record for record in self._records if record.id.startswith(prefix)]
        if not matched:
            raise RecordNotFound(prefix)
        if len(matched) > 1:
            raise AmbiguousId(prefix, [record.id for record in matched])
        return matched[0]

    def _digest_side(self, ref: PartitionRef) -> str:
        return digest(extract(ref, self.root))

    def add(
        self,
        doc_partition: str | PartitionRef,
        code_partition: str | PartitionRef,
        description: str = "",
        *,
        id_factory: Callable[[], str] = _new_id,
    ) -> LinkRecord:
        text = validate_description(description)
        doc_ref = canonical_partition(doc_partition)
        code_ref = canonical_partition(code_partition)
        doc_digest = self._digest_side(doc_ref)
        code_digest = self._digest_side(code_ref)
        existing = {record.id for record in self._records}
        record_id = id_factory()
        while record_id in existing:
            record_id = id_factory()
        record = LinkRecord(
            id=record_id,
            doc_partition=render_partition(doc_ref),
            code_partition=render_partition(code_ref),
            doc_digest=doc_digest,
            code_digest=code_digest,
            description=text,
        )
        self._commit([*self._records, record])
        return record

    def edit(self, id_prefix: str, request: EditRequest) -> LinkRecord:
        current = self.find(id_prefix)
        updated = current
        if request.description is not None:
            updated = replace(updated, description=validate_description(request.description))
        if request.doc_partition is not None:
            doc_ref = canonical_partition(request.doc_partition)
            if not _same_partition(current.doc_partition, doc_ref):
                updated = replace(
                    updated,
                    doc_partition=render_partition(doc_ref),
                    doc_digest=self._digest_side(doc_ref),
                )
        if request.code_partition is not None:
            code_ref = canonical_partition(request.code_partition)
            if not _same_partition(current.code_partition, code_ref):
                updated = replace(
                    updated,
                    code_partition=render_partition(code_ref),
                    code_digest=self._digest_side(code_ref),
                )
        if updated == current:
            return current
        self._commit(
            [updated if record.id == current.id else record for record in self._records]
        )
        return updated

    def accept(self, record_id: str) -> LinkRecord:
        current = self.get(record_id)
        updated = replace(
            current,
            doc_digest=self._digest_side(parse_partition(current.doc_partition)),
            code_digest=self._digest_side(parse_partition(current.code_partition)),
        )
        if updated != current:
            self._commit(
                [updated if record.id == current.id else record for record in self._records]
            )
        return updated

    def remove(self, record_id: str) -> LinkRecord:
        removed = self.get(record_id)
        self._commit([record for record in self._records if record.id != record_id])
        return removed

    def remove_many(self, record_ids: Iterable[str]) -> list[LinkRecord]:
        doomed = set(record_ids)
        for record_id in doomed:
            self.get(record_id)
        removed = [record for record in self._records if record.id in doomed]
        if removed:
            self._commit([record for record in self._records if record.id not in doomed])
        return removed


def parse_store_text(text: str, path: Path) -> LinkStore:
    default_doc: str | None = None
    version = FORMAT_VERSION
    records: list[LinkRecord] = []
    seen: set[str] = set()
    for line_number, raw_line in enumerate(text.split("\n"), start=1):
        line = raw_line.rstrip("\r")
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if DELIMITER not in line:
            match = _CONFIG_RE.match(stripped)
            if match is None:
                raise CorruptStore(
                    str(path), line_number, line, "expected key=value or a record line"
                )
            key = match.group("key")
            value = match.group("value").strip()
            if key == "default_doc":
                default_doc = value
            elif key == "version":
                version = value
            continue
        fields = line.split(DELIMITER)
        if len(fields) != FIELD_COUNT:
            raise CorruptStore(
                str(path),
                line_number,
                line,
                f"expected {FIELD_COUNT} fields, found {len(fields)}",
            )
        record_id = fields[0].strip()
        if not record_id:
            raise CorruptStore(str(path), line_number, line, "record id is empty")
        if record_id in seen:
            raise CorruptStore(
                str(path), line_number, line, f"duplicate record id {record_id}"
            )
        seen.add(record_id)
        records.append(
            LinkRecord(
                id=record_id,
                doc_partition=fields[1].strip(),
                code_partition=fields[2].strip(),
                doc_digest=fields[3].strip(),
                code_digest=fields[4].strip(),
                description=fields[5],
            )
        )
    if not default_doc:
        raise CorruptStore(str(path), 0, "", "missing default_doc setting")
    return LinkStore(path, default_doc=default_doc, records=records, version=version)


def load_store(path: Path) -> LinkStore:
    if not path.is_file():
        raise StoreNotFound(path.name)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise IoError(str(path), str(exc)) from exc
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CorruptStore(str(path), 0, "", "store is not valid UTF-8") from exc
    return parse_store_text(text, path)


def locate_store(start: Path, file_name: str = DEFAULT_STORE_FILE_NAME) -> Path | None:
    current = start.resolve()
    for candidate_dir in (current, *current.parents):
        candidate = candidate_dir / file_name
        if candidate.is_file():
            return candidate
    return None


def open_store(
    start: Path,
    *,
    file_name: str = DEFAULT_STORE_FILE_NAME,
    override: Path | None = None,
) -> LinkStore:
    path = override if override is not None else locate_store(start, file_name)
    if path is None:
        raise StoreNotFound(file_name)
    return load_store(path)


def initialize_store(
    directory: Path,
    default_doc: str,
    *,
    file_name: str = DEFAULT_STORE_FILE_NAME,
) -> LinkStore:
    path = directory / file_name
    if path.exists():
        raise StoreExists(str(path))
    doc = default_doc.strip()
    if not doc or DELIMITER in doc or any(mark in doc for mark in _LINE_BREAKS):
        raise InvalidPartitionSyntax(default_doc, "default documentation path is invalid")
    store = LinkStore(path, default_doc=doc)
    store.save()
    return store
