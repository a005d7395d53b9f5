"""
Worker payment ledger: creation from validated rows, lookups and bulk
status transitions.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.database import utcnow
from app.errors import NotFoundError
from app.paging import Page, PageParams, date_window, paginate
from app.worker.models import (
    WorkerPaymentModel,
    WorkerPaymentStatus,
    WorkerUploadedDataModel,
)

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "created_at": WorkerPaymentModel.created_at,
    "payment_amount": WorkerPaymentModel.payment_amount,
    "worker_reference": WorkerPaymentModel.worker_reference,
    "status": WorkerPaymentModel.status,
    "receipt_number": WorkerPaymentModel.receipt_number,
    "id": WorkerPaymentModel.id,
}


def payment_from_record(record: WorkerUploadedDataModel) -> WorkerPaymentModel:
    """Build a VALIDATED payment from a validated raw row.

    Fields without a source column are set to empty strings, never null.
    """
    return WorkerPaymentModel(
        worker_reference=record.worker_id or "",
        registration_id=record.worker_id or "",
        worker_name=record.worker_name or "",
        employer_id=record.employer_id or "",
        toli_id=record.toli_id or "",
        toli=record.department or "DEFAULT",
        aadhar="",
        pan="",
        bank_account=(record.bank_account or "").strip(),
        payment_amount=record.payment_amount,
        file_id=record.file_id,
        status=WorkerPaymentStatus.VALIDATED,
    )


def assign_receipt_number(db: Session, payment: WorkerPaymentModel, receipt_number: str) -> None:
    payment.receipt_number = receipt_number
    db.flush()


def get_payment(db: Session, payment_id: int) -> WorkerPaymentModel:
    payment = db.query(WorkerPaymentModel).filter(WorkerPaymentModel.id == payment_id).first()
    if payment is None:
        logger.warning("Worker payment not found: %s", payment_id)
        raise NotFoundError("WorkerPayment", payment_id)
    return payment


def find_by_receipt_number(db: Session, receipt_number: str) -> list[WorkerPaymentModel]:
    return (
        db.query(WorkerPaymentModel)
        .filter(WorkerPaymentModel.receipt_number == receipt_number)
        .order_by(WorkerPaymentModel.id)
        .all()
    )


def find_payments(
    db: Session,
    params: PageParams,
    status: Optional[WorkerPaymentStatus] = None,
    receipt_number: Optional[str] = None,
    batch_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Page:
    query = db.query(WorkerPaymentModel)
    if status is not None:
        query = query.filter(WorkerPaymentModel.status == status)
    if receipt_number:
        query = query.filter(WorkerPaymentModel.receipt_number == receipt_number)
    if batch_id is not None:
        query = query.filter(WorkerPaymentModel.file_id == batch_id)
    lower, upper = date_window(start_date, end_date)
    if lower:
        query = query.filter(WorkerPaymentModel.created_at >= lower)
    if upper:
        query = query.filter(WorkerPaymentModel.created_at <= upper)
    return paginate(query, params, SORT_COLUMNS, "created_at")


def status_counts(db: Session, batch_id: Optional[int] = None) -> dict[str, int]:
    query = db.query(WorkerPaymentModel.status, func.count(WorkerPaymentModel.id))
    if batch_id is not None:
        query = query.filter(WorkerPaymentModel.file_id == batch_id)
    return {status.value: count for status, count in query.group_by(WorkerPaymentModel.status).all()}


def transition_by_receipt(
    db: Session,
    receipt_number: str,
    from_status: WorkerPaymentStatus,
    to_status: WorkerPaymentStatus,
) -> int:
    """Move every payment of a receipt that is in ``from_status``.

    One conditional UPDATE; payments in any other status are left alone.
    Returns the number of rows changed.
    """
    changed = (
        db.query(WorkerPaymentModel)
        .filter(
            WorkerPaymentModel.receipt_number == receipt_number,
            WorkerPaymentModel.status == from_status,
        )
        .update(
            {
                WorkerPaymentModel.status: to_status,
                WorkerPaymentModel.updated_at: utcnow(),
            },
            synchronize_session="fetch",
        )
    )
    logger.info(
        "Moved %d payments of receipt %s from %s to %s",
        changed, receipt_number, from_status.value, to_status.value,
    )
    return changed
