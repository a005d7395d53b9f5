"""
Worker payment receipts: numbering, creation from a set of payments, lookups.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from app.numbering import RECEIPT_PREFIX, generate_unique_number, timestamp_candidate
from app.paging import Page, PageParams, date_window, paginate
from app.errors import NotFoundError
from app.worker import ledger
from app.worker.models import (
    WorkerPaymentModel,
    WorkerPaymentReceiptModel,
    WorkerPaymentStatus,
    WorkerReceiptStatus,
)

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "created_at": WorkerPaymentReceiptModel.created_at,
    "receipt_number": WorkerPaymentReceiptModel.receipt_number,
    "total_amount": WorkerPaymentReceiptModel.total_amount,
    "total_records": WorkerPaymentReceiptModel.total_records,
    "status": WorkerPaymentReceiptModel.status,
    "employer_id": WorkerPaymentReceiptModel.employer_id,
}


def _number_exists(db: Session, number: str) -> bool:
    return (
        db.query(WorkerPaymentReceiptModel.id)
        .filter(WorkerPaymentReceiptModel.receipt_number == number)
        .first()
        is not None
    )


def generate_receipt_number(db: Session) -> str:
    return generate_unique_number(
        RECEIPT_PREFIX,
        candidate=lambda: timestamp_candidate(RECEIPT_PREFIX),
        exists=lambda number: _number_exists(db, number),
    )


def create_receipt(
    db: Session,
    payments: Sequence[WorkerPaymentModel],
    file_id: Optional[int] = None,
) -> WorkerPaymentReceiptModel:
    """Create one PROCESSED receipt over ``payments``.

    Totals are snapshots: the exact decimal sum of the member amounts and the
    member count. Employer and toli come from the first payment.
    """
    if not payments:
        raise ValueError("Cannot create a receipt without payments")

    first = payments[0]
    employers = {(p.employer_id, p.toli_id) for p in payments}
    if len(employers) > 1:
        logger.warning(
            "Receipt covers %d employer/toli pairs; using %s/%s from the first payment",
            len(employers), first.employer_id, first.toli_id,
        )

    total_amount = sum((Decimal(p.payment_amount) for p in payments), Decimal("0.00"))
    receipt = WorkerPaymentReceiptModel(
        receipt_number=generate_receipt_number(db),
        employer_id=first.employer_id or "",
        toli_id=first.toli_id or "",
        file_id=file_id,
        total_records=len(payments),
        total_amount=total_amount,
        status=WorkerReceiptStatus.PROCESSED,
    )
    db.add(receipt)
    db.flush()
    logger.info(
        "Created worker receipt %s: %d records, total %s",
        receipt.receipt_number, receipt.total_records, total_amount,
    )
    return receipt


def get_by_number(db: Session, receipt_number: str) -> WorkerPaymentReceiptModel:
    receipt = (
        db.query(WorkerPaymentReceiptModel)
        .filter(WorkerPaymentReceiptModel.receipt_number == receipt_number)
        .first()
    )
    if receipt is None:
        logger.warning("Worker receipt not found: %s", receipt_number)
        raise NotFoundError("WorkerPaymentReceipt", receipt_number)
    return receipt


def find_receipts(
    db: Session,
    params: PageParams,
    status: Optional[WorkerReceiptStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Page:
    query = db.query(WorkerPaymentReceiptModel)
    if status is not None:
        query = query.filter(WorkerPaymentReceiptModel.status == status)
    lower, upper = date_window(start_date, end_date)
    if lower:
        query = query.filter(WorkerPaymentReceiptModel.created_at >= lower)
    if upper:
        query = query.filter(WorkerPaymentReceiptModel.created_at <= upper)
    return paginate(query, params, SORT_COLUMNS, "created_at")


def update_status(db: Session, receipt_number: str, status: WorkerReceiptStatus) -> WorkerPaymentReceiptModel:
    receipt = get_by_number(db, receipt_number)
    previous = receipt.status
    receipt.status = status
    db.flush()
    logger.info("Worker receipt %s: %s -> %s", receipt_number, previous.value, status.value)
    return receipt


def send_to_employer(db: Session, receipt_number: str):
    """Hand a worker receipt to its employer.

    Creates the PENDING employer receipt if missing, moves the worker receipt
    to PAYMENT_INITIATED and its VALIDATED payments to PAYMENT_REQUESTED.
    Returns ``(employer_receipt, payments_requested)``.
    """
    from app.employer.workflow import create_pending_employer_receipt

    receipt = get_by_number(db, receipt_number)
    employer_receipt = create_pending_employer_receipt(db, receipt)
    if receipt.status == WorkerReceiptStatus.PROCESSED:
        update_status(db, receipt_number, WorkerReceiptStatus.PAYMENT_INITIATED)
    requested = ledger.transition_by_receipt(
        db,
        receipt_number,
        WorkerPaymentStatus.VALIDATED,
        WorkerPaymentStatus.PAYMENT_REQUESTED,
    )
    db.commit()
    logger.info(
        "Sent worker receipt %s to employer as %s (%d payments requested)",
        receipt_number, employer_receipt.employer_receipt_number, requested,
    )
    return employer_receipt, requested
