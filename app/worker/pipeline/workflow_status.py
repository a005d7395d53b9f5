"""
Read-side projections over per-record status histograms.

Nothing here touches the database; callers pass in the counts.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Mapping


class WorkflowStatus(str, enum.Enum):
    UPLOADED = "UPLOADED"
    VALIDATED = "VALIDATED"
    PROCESSED = "PROCESSED"
    UNKNOWN = "UNKNOWN"


class NextAction(str, enum.Enum):
    START_VALIDATION = "START_VALIDATION"
    GENERATE_RECEIPT = "GENERATE_RECEIPT"
    RECEIPT_GENERATED = "RECEIPT_GENERATED"
    NONE = "NONE"


# raw record status -> projector key
RECORD_STATUS_KEYS = {
    "UPLOADED": "UPLOADED",
    "VALIDATED": "VALIDATED",
    "REJECTED": "FAILED",
    "REQUEST_GENERATED": "GENERATED",
}


@dataclass(frozen=True)
class WorkflowProjection:
    workflow_status: WorkflowStatus
    next_action: NextAction


def _count(counts: Mapping[str, int], key: str) -> int:
    return int(counts.get(key) or 0)


def determine_workflow_status(counts: Mapping[str, int]) -> WorkflowStatus:
    if _count(counts, "PAYMENT_REQUESTED") > 0 or _count(counts, "GENERATED") > 0:
        return WorkflowStatus.PROCESSED
    if _count(counts, "VALIDATED") > 0 or _count(counts, "FAILED") > 0:
        return WorkflowStatus.VALIDATED
    if _count(counts, "UPLOADED") > 0:
        return WorkflowStatus.UPLOADED
    return WorkflowStatus.UNKNOWN


def determine_next_action(status: WorkflowStatus, validated_count: int) -> NextAction:
    if status == WorkflowStatus.UPLOADED:
        return NextAction.START_VALIDATION
    if status == WorkflowStatus.VALIDATED:
        return NextAction.GENERATE_RECEIPT if validated_count > 0 else NextAction.START_VALIDATION
    if status == WorkflowStatus.PROCESSED:
        return NextAction.RECEIPT_GENERATED
    return NextAction.NONE


def project_status(counts: Mapping[str, int]) -> WorkflowProjection:
    """Project a histogram over UPLOADED/VALIDATED/FAILED/PAYMENT_REQUESTED/GENERATED.

    Unknown keys are ignored and missing keys count as zero.
    """
    status = determine_workflow_status(counts)
    return WorkflowProjection(status, determine_next_action(status, _count(counts, "VALIDATED")))


def project_record_histogram(record_counts: Mapping[str, int]) -> WorkflowProjection:
    """Same projection, fed with raw record statuses."""
    keyed: dict[str, int] = {}
    for status, count in record_counts.items():
        key = RECORD_STATUS_KEYS.get(str(getattr(status, "value", status)))
        if key:
            keyed[key] = keyed.get(key, 0) + int(count or 0)
    return project_status(keyed)


def determine_overall_status(record_counts: Mapping[str, int]) -> str:
    """Batch-level label from the raw record distribution."""
    total = sum(int(c or 0) for c in record_counts.values())
    if total == 0:
        return "EMPTY"

    validated = _count(record_counts, "VALIDATED")
    rejected = _count(record_counts, "REJECTED")
    uploaded = _count(record_counts, "UPLOADED")
    generated = _count(record_counts, "REQUEST_GENERATED")

    if generated == total:
        return "REQUEST_GENERATED"
    if validated + generated == total:
        return "PARTIALLY_PROCESSED" if generated > 0 else "VALIDATED"
    if rejected > total // 2:
        return "MOSTLY_REJECTED"
    if uploaded > total // 2:
        return "PENDING_VALIDATION"
    return "MIXED"
