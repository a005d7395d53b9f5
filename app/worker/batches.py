"""
Uploaded batch tracker: batch metadata, its raw rows and per-status summaries.
"""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.errors import NotFoundError
from app.numbering import BATCH_PREFIX, generate_unique_number, timestamp_candidate
from app.paging import Page, PageParams, date_window, paginate
from app.worker.models import (
    BatchStatus,
    RecordStatus,
    UploadedFileModel,
    WorkerUploadedDataModel,
)
from app.worker.pipeline.workflow_status import determine_overall_status, project_record_histogram

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "upload_date": UploadedFileModel.upload_date,
    "filename": UploadedFileModel.filename,
    "status": UploadedFileModel.status,
    "total_records": UploadedFileModel.total_records,
    "file_reference_number": UploadedFileModel.file_reference_number,
}

RECORD_SORT_COLUMNS = {
    "row_num": WorkerUploadedDataModel.row_num,
    "created_at": WorkerUploadedDataModel.created_at,
    "worker_id": WorkerUploadedDataModel.worker_id,
    "payment_amount": WorkerUploadedDataModel.payment_amount,
    "status": WorkerUploadedDataModel.status,
}

RECORD_FIELDS = (
    "worker_id",
    "worker_name",
    "company_name",
    "department",
    "position",
    "employer_id",
    "toli_id",
    "bank_account",
    "phone_number",
    "email",
    "work_date",
    "hours_worked",
    "hourly_rate",
    "payment_amount",
)


def compute_file_hash(rows: Iterable[Mapping[str, Any]]) -> str:
    """sha256 over the canonical JSON of the submitted rows."""
    canonical = json.dumps(list(rows), sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _reference_exists(db: Session, number: str) -> bool:
    return (
        db.query(UploadedFileModel.id)
        .filter(UploadedFileModel.file_reference_number == number)
        .first()
        is not None
    )


def register_batch(
    db: Session,
    filename: str,
    uploaded_by: Optional[str],
    file_type: str,
    records: list[Mapping[str, Any]],
    stored_path: Optional[str] = None,
) -> UploadedFileModel:
    """Store batch metadata and its rows (row numbers start at 1)."""
    reference = generate_unique_number(
        BATCH_PREFIX,
        candidate=lambda: timestamp_candidate(BATCH_PREFIX),
        exists=lambda number: _reference_exists(db, number),
    )
    batch = UploadedFileModel(
        filename=filename,
        stored_path=stored_path or "",
        file_hash=compute_file_hash(records),
        file_type=file_type,
        uploaded_by=uploaded_by,
        file_reference_number=reference,
        total_records=len(records),
        status=BatchStatus.UPLOADED,
    )
    db.add(batch)
    db.flush()

    for row_num, row in enumerate(records, start=1):
        db.add(WorkerUploadedDataModel(
            file_id=batch.id,
            row_num=row_num,
            status=RecordStatus.UPLOADED,
            **{field: row.get(field) for field in RECORD_FIELDS},
        ))

    db.commit()
    db.refresh(batch)
    logger.info("Registered batch %s (%s) with %d records", batch.id, reference, len(records))
    return batch


def get_batch(db: Session, batch_id: int) -> UploadedFileModel:
    batch = db.query(UploadedFileModel).filter(UploadedFileModel.id == batch_id).first()
    if batch is None:
        logger.warning("Batch not found: %s", batch_id)
        raise NotFoundError("UploadedFile", batch_id)
    return batch


def find_batches(
    db: Session,
    params: PageParams,
    status: Optional[BatchStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Page:
    query = db.query(UploadedFileModel)
    if status is not None:
        query = query.filter(UploadedFileModel.status == status)
    lower, upper = date_window(start_date, end_date)
    if lower:
        query = query.filter(UploadedFileModel.upload_date >= lower)
    if upper:
        query = query.filter(UploadedFileModel.upload_date <= upper)
    return paginate(query, params, SORT_COLUMNS, "upload_date")


def delete_batch(db: Session, batch_id: int) -> int:
    """Delete a batch with all of its raw rows; returns the rows removed."""
    batch = get_batch(db, batch_id)
    removed = (
        db.query(WorkerUploadedDataModel)
        .filter(WorkerUploadedDataModel.file_id == batch_id)
        .delete(synchronize_session=False)
    )
    db.delete(batch)
    db.commit()
    logger.info("Deleted batch %s and %d records", batch_id, removed)
    return removed


def find_records(
    db: Session,
    batch_id: int,
    params: PageParams,
    status: Optional[RecordStatus] = None,
) -> Page:
    query = db.query(WorkerUploadedDataModel).filter(WorkerUploadedDataModel.file_id == batch_id)
    if status is not None:
        query = query.filter(WorkerUploadedDataModel.status == status)
    return paginate(query, params, RECORD_SORT_COLUMNS, "row_num")


def find_records_by_receipt(db: Session, receipt_number: str) -> list[WorkerUploadedDataModel]:
    return (
        db.query(WorkerUploadedDataModel)
        .filter(WorkerUploadedDataModel.receipt_number == receipt_number)
        .order_by(WorkerUploadedDataModel.file_id, WorkerUploadedDataModel.row_num)
        .all()
    )


def record_status_counts(db: Session, batch_id: int) -> dict[str, int]:
    """Histogram of raw record statuses; every status is present."""
    counts = {status.value: 0 for status in RecordStatus}
    rows = (
        db.query(WorkerUploadedDataModel.status, func.count(WorkerUploadedDataModel.id))
        .filter(WorkerUploadedDataModel.file_id == batch_id)
        .group_by(WorkerUploadedDataModel.status)
        .all()
    )
    for status, count in rows:
        counts[status.value] = count
    return counts


def refresh_counts(db: Session, batch: UploadedFileModel) -> UploadedFileModel:
    counts = record_status_counts(db, batch.id)
    batch.success_count = counts["VALIDATED"] + counts["REQUEST_GENERATED"]
    batch.failure_count = counts["REJECTED"]
    if counts["REQUEST_GENERATED"] > 0:
        batch.status = BatchStatus.REQUEST_GENERATED
    elif counts["UPLOADED"] == 0:
        batch.status = BatchStatus.VALIDATED
    else:
        batch.status = BatchStatus.UPLOADED
    db.flush()
    return batch


def status_summary(db: Session, batch_id: int) -> dict[str, Any]:
    batch = get_batch(db, batch_id)
    counts = record_status_counts(db, batch_id)
    validated_amount = (
        db.query(func.coalesce(func.sum(WorkerUploadedDataModel.payment_amount), 0))
        .filter(
            WorkerUploadedDataModel.file_id == batch_id,
            WorkerUploadedDataModel.status == RecordStatus.VALIDATED,
        )
        .scalar()
    )
    projection = project_record_histogram(counts)
    return {
        "batch_id": batch.id,
        "filename": batch.filename,
        "file_reference_number": batch.file_reference_number,
        "upload_date": batch.upload_date,
        "total_records": sum(counts.values()),
        "status_summary": counts,
        "validated_count": counts["VALIDATED"],
        "total_validated_amount": Decimal(str(validated_amount)).quantize(Decimal("0.01")),
        "overall_status": determine_overall_status(counts),
        "ready_for_payment": counts["VALIDATED"] > 0,
        "workflow_status": projection.workflow_status,
        "next_action": projection.next_action,
    }
