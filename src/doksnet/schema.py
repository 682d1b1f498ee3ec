from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from doksnet.verify import SideResult, VerificationResult, summarize


class SideReportDTO(BaseModel):
    side: str
    partition: str
    status: str
    stored_digest: str
    current_digest: Optional[str] = None
    reason: Optional[str] = None


class RecordReportDTO(BaseModel):
    id: str
    description: str = ""
    passed: bool
    doc: SideReportDTO
    code: SideReportDTO


class VerificationReportDTO(BaseModel):
    format_version: int = 1
    store: str
    default_doc: str
    total: int
    passed: int
    failed: int
    exit_code: int
    records: List[RecordReportDTO] = []


class RemovalReportDTO(BaseModel):
    removed: int
    remaining: int
    removed_ids: List[str] = []


def side_report(side: SideResult) -> SideReportDTO:
    return SideReportDTO(
        side=side.side.value,
        partition=side.partition,
        status=side.status.value,
        stored_digest=side.stored_digest,
        current_digest=side.current_digest,
        reason=side.reason,
    )


def record_report(result: VerificationResult) -> RecordReportDTO:
    return RecordReportDTO(
        id=result.record_id,
        description=result.record.description,
        passed=result.passed,
        doc=side_report(result.doc),
        code=side_report(result.code),
    )


def verification_report(
    results: List[VerificationResult],
    *,
    store: str,
    default_doc: str,
) -> VerificationReportDTO:
    summary = summarize(results)
    return VerificationReportDTO(
        store=store,
        default_doc=default_doc,
        total=summary.total,
        passed=summary.passed,
        failed=summary.failed,
        exit_code=0 if summary.all_passed else 1,
        records=[record_report(result) for result in results],
    )
