"""
Receipt generation: validated raw rows -> worker payments -> one receipt.

The receipt is committed before the payments are linked back to it and the
source rows are marked. Those two linking steps are best-effort per item:
a failing item is logged, journaled as a FAILED step with its id and left for
``app.reconciliation`` to repair. Nothing already committed is rolled back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.database import utcnow
from app.reconciliation.journal import new_saga_id, record_step
from app.reconciliation.models import SagaType, StepOutcome
from app.worker import batches, ledger, receipts
from app.worker.models import RecordStatus, WorkerUploadedDataModel

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    processed_count: int = 0
    receipt_number: Optional[str] = None
    total_records: int = 0
    total_amount: Optional[str] = None
    saga_id: Optional[str] = None
    employer_receipt_number: Optional[str] = None
    unlinked_payment_ids: list[int] = field(default_factory=list)
    failed_record_ids: list[int] = field(default_factory=list)


def mark_request_generated(db: Session, record: WorkerUploadedDataModel, receipt_number: str) -> None:
    record.status = RecordStatus.REQUEST_GENERATED
    record.receipt_number = receipt_number
    record.processed_at = utcnow()
    db.flush()


def _link_payments(db: Session, payments, receipt_number: str) -> list[int]:
    failed = []
    for payment in payments:
        savepoint = db.begin_nested()
        try:
            ledger.assign_receipt_number(db, payment, receipt_number)
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            logger.exception("Error linking worker payment %s to receipt %s", payment.id, receipt_number)
            failed.append(payment.id)
    return failed


def _mark_records(db: Session, records, receipt_number: str) -> list[int]:
    failed = []
    for record in records:
        savepoint = db.begin_nested()
        try:
            mark_request_generated(db, record, receipt_number)
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            logger.exception("Error marking uploaded record %s for receipt %s", record.id, receipt_number)
            failed.append(record.id)
    return failed


def generate_receipt(db: Session, batch_id: int, batch_ref: Optional[str] = None) -> GenerationResult:
    """Turn every VALIDATED row of a batch into payments under one receipt.

    Returns a result whose ``processed_count`` is the number of rows marked
    REQUEST_GENERATED; 0 with no receipt means there was nothing to do.
    """
    batch = batches.get_batch(db, batch_id)
    batch_ref = batch_ref or batch.file_reference_number

    records = (
        db.query(WorkerUploadedDataModel)
        .filter(
            WorkerUploadedDataModel.file_id == batch_id,
            WorkerUploadedDataModel.status == RecordStatus.VALIDATED,
        )
        .order_by(WorkerUploadedDataModel.row_num)
        .all()
    )
    logger.info("Found %d validated records to process in batch %s (%s)", len(records), batch_id, batch_ref)
    if not records:
        return GenerationResult()

    saga_id = new_saga_id()

    # 1. payments + receipt, committed together
    payments = [ledger.payment_from_record(record) for record in records]
    db.add_all(payments)
    db.flush()
    receipt = receipts.create_receipt(db, payments, file_id=batch_id)
    receipt_number = receipt.receipt_number
    payment_ids = [p.id for p in payments]
    record_ids = [r.id for r in records]
    record_step(
        db, saga_id, SagaType.RECEIPT_GENERATION, "RECEIPT_CREATED",
        batch_id=batch_id,
        receipt_number=receipt_number,
        detail={"batch_ref": batch_ref, "payment_ids": payment_ids, "record_ids": record_ids},
    )
    db.commit()

    result = GenerationResult(
        receipt_number=receipt_number,
        total_records=receipt.total_records,
        total_amount=str(receipt.total_amount),
        saga_id=saga_id,
    )

    # 2. payment -> receipt link
    result.unlinked_payment_ids = _link_payments(db, payments, receipt_number)
    record_step(
        db, saga_id, SagaType.RECEIPT_GENERATION, "PAYMENTS_LINKED",
        StepOutcome.FAILED if result.unlinked_payment_ids else StepOutcome.DONE,
        batch_id=batch_id,
        receipt_number=receipt_number,
        detail={"failed_payment_ids": result.unlinked_payment_ids},
        note=f"{len(payments) - len(result.unlinked_payment_ids)}/{len(payments)} payments linked",
    )
    db.commit()

    # 3. source rows -> REQUEST_GENERATED
    result.failed_record_ids = _mark_records(db, records, receipt_number)
    result.processed_count = len(records) - len(result.failed_record_ids)
    record_step(
        db, saga_id, SagaType.RECEIPT_GENERATION, "RECORDS_MARKED",
        StepOutcome.FAILED if result.failed_record_ids else StepOutcome.DONE,
        batch_id=batch_id,
        receipt_number=receipt_number,
        detail={"failed_record_ids": result.failed_record_ids},
        note=f"{result.processed_count}/{len(records)} records marked",
    )
    batches.refresh_counts(db, batch)
    db.commit()

    if settings.AUTO_CREATE_EMPLOYER_RECEIPT:
        from app.employer.workflow import create_pending_employer_receipt

        try:
            employer_receipt = create_pending_employer_receipt(db, receipts.get_by_number(db, receipt_number))
            db.commit()
            result.employer_receipt_number = employer_receipt.employer_receipt_number
        except Exception:
            db.rollback()
            logger.exception("Error creating pending employer receipt for %s", receipt_number)

    logger.info(
        "Generated receipt %s for batch %s: %d records processed, %d unlinked payments, %d unmarked records",
        receipt_number, batch_ref, result.processed_count,
        len(result.unlinked_payment_ids), len(result.failed_record_ids),
    )
    return result
