from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Iterable, Sequence

from doksnet.digest import digest, same_digest, short
from doksnet.exceptions import (
    ColumnOutOfRange,
    DoksnetError,
    InvalidPartitionSyntax,
    LineOutOfRange,
)
from doksnet.extract import extract
from doksnet.partition import parse_partition
from doksnet.store import LinkRecord, LinkStore


class SideStatus(StrEnum):
    PASS = "pass"
    DRIFT = "drift"
    MISSING = "missing"
    INVALID_RANGE = "invalid_range"


class Side(StrEnum):
    DOC = "documentation"
    CODE = "code"


@dataclass(frozen=True)
class SideResult:
    side: Side
    partition: str
    status: SideStatus
    stored_digest: str
    current_digest: str | None = None
    current_text: str | None = None
    reason: str | None = None

    @property
    def passed(self) -> bool:
        return self.status is SideStatus.PASS

    def render_tuple(self) -> tuple[SideStatus, str | None, str, str | None]:
        return (self.status, self.current_text, self.stored_digest, self.current_digest)


@dataclass(frozen=True)
class VerificationResult:
    record: LinkRecord
    doc: SideResult
    code: SideResult

    @property
    def record_id(self) -> str:
        return self.record.id

    @property
    def doc_status(self) -> SideStatus:
        return self.doc.status

    @property
    def code_status(self) -> SideStatus:
        return self.code.status

    @property
    def current_doc_text(self) -> str | None:
        return self.doc.current_text

    @property
    def current_code_text(self) -> str | None:
        return self.code.current_text

    @property
    def passed(self) -> bool:
        return self.doc.passed and self.code.passed

    @property
    def sides(self) -> tuple[SideResult, SideResult]:
        return (self.doc, self.code)

    def failed_sides(self) -> list[SideResult]:
        return [side for side in self.sides if not side.passed]

    def failure_reasons(self) -> list[str]:
        return [
            side.reason or f"{side.side.value}: {side.status.value}"
            for side in self.failed_sides()
        ]


@dataclass(frozen=True)
class VerificationSummary:
    total: int
    passed: int

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def all_passed(self) -> bool:
        return self.passed == self.total


def _status_for_error(exc: DoksnetError) -> SideStatus:
    if isinstance(exc, (LineOutOfRange, ColumnOutOfRange)):
        return SideStatus.INVALID_RANGE
    return SideStatus.MISSING


def verify_side(side: Side, partition: str, stored_digest: str, root: Path) -> SideResult:
    try:
        ref = parse_partition(partition)
        text = extract(ref, root)
    except InvalidPartitionSyntax as exc:
        return SideResult(
            side=side,
            partition=partition,
            status=SideStatus.MISSING,
            stored_digest=stored_digest,
            reason=f"Failed to parse {side.value} partition '{partition}': {exc.reason}",
        )
    except DoksnetError as exc:
        return SideResult(
            side=side,
            partition=partition,
            status=_status_for_error(exc),
            stored_digest=stored_digest,
            reason=f"Failed to extract {side.value} content: {exc}",
        )
    current = digest(text)
    if same_digest(current, stored_digest):
        return SideResult(
            side=side,
            partition=partition,
            status=SideStatus.PASS,
            stored_digest=stored_digest,
            current_digest=current,
            current_text=text,
        )
    return SideResult(
        side=side,
        partition=partition,
        status=SideStatus.DRIFT,
        stored_digest=stored_digest,
        current_digest=current,
        current_text=text,
        reason=(
            f"{side.value} content has changed "
            f"(expected: {short(stored_digest)}..., actual: {short(current)}...)"
        ),
    )


def verify_record(record: LinkRecord, root: Path) -> VerificationResult:
    return VerificationResult(
        record=record,
        doc=verify_side(Side.DOC, record.doc_partition, record.doc_digest, root),
        code=verify_side(Side.CODE, record.code_partition, record.code_digest, root),
    )


def verify_records(records: Iterable[LinkRecord], root: Path) -> list[VerificationResult]:
    return [verify_record(record, root) for record in records]


def verify_store(store: LinkStore) -> list[VerificationResult]:
    return verify_records(store.records, store.root)


def failing(results: Iterable[VerificationResult]) -> list[VerificationResult]:
    return [result for result in results if not result.passed]


def summarize(results: Sequence[VerificationResult]) -> VerificationSummary:
    return VerificationSummary(
        total=len(results),
        passed=sum(1 for result in results if result.passed),
    )
