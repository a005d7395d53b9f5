"""
Employer validation stage.

An employer confirms a worker receipt by attaching the bank transaction
reference. That creates (or completes) the one employer receipt of the worker
receipt, hands it to the board, and advances the worker receipt and its
requested payments.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.board import workflow as board_workflow
from app.database import utcnow
from app.employer.models import EmployerPaymentReceiptModel, EmployerReceiptStatus
from app.errors import InvalidStateError, NotFoundError
from app.numbering import EMPLOYER_RECEIPT_PREFIX, generate_unique_number, timestamp_candidate
from app.paging import Page, PageParams, date_window, paginate
from app.reconciliation.journal import new_saga_id, record_step
from app.reconciliation.models import SagaType, StepOutcome
from app.worker import ledger, receipts as worker_receipts
from app.worker.models import WorkerPaymentReceiptModel, WorkerPaymentStatus, WorkerReceiptStatus

logger = logging.getLogger(__name__)

# Statuses an employer may still (re)validate from
OPEN_STATUSES = (EmployerReceiptStatus.PENDING, EmployerReceiptStatus.SEND_TO_BOARD)

SORT_COLUMNS = {
    "validated_at": EmployerPaymentReceiptModel.validated_at,
    "created_at": EmployerPaymentReceiptModel.created_at,
    "employer_receipt_number": EmployerPaymentReceiptModel.employer_receipt_number,
    "worker_receipt_number": EmployerPaymentReceiptModel.worker_receipt_number,
    "employer_id": EmployerPaymentReceiptModel.employer_id,
    "total_amount": EmployerPaymentReceiptModel.total_amount,
    "status": EmployerPaymentReceiptModel.status,
}


@dataclass
class EmployerValidation:
    receipt: EmployerPaymentReceiptModel
    board_reference: Optional[str]
    payments_initiated: int
    saga_id: str

    @property
    def board_receipt_created(self) -> bool:
        return self.board_reference is not None


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def _number_exists(db: Session, number: str) -> bool:
    return (
        db.query(EmployerPaymentReceiptModel.id)
        .filter(EmployerPaymentReceiptModel.employer_receipt_number == number)
        .first()
        is not None
    )


def generate_employer_receipt_number(db: Session) -> str:
    return generate_unique_number(
        EMPLOYER_RECEIPT_PREFIX,
        candidate=lambda: timestamp_candidate(EMPLOYER_RECEIPT_PREFIX),
        exists=lambda number: _number_exists(db, number),
    )


def find_by_worker_receipt_number(db: Session, worker_receipt_number: str) -> Optional[EmployerPaymentReceiptModel]:
    return (
        db.query(EmployerPaymentReceiptModel)
        .filter(EmployerPaymentReceiptModel.worker_receipt_number == worker_receipt_number)
        .first()
    )


def get_by_worker_receipt_number(db: Session, worker_receipt_number: str) -> EmployerPaymentReceiptModel:
    receipt = find_by_worker_receipt_number(db, worker_receipt_number)
    if receipt is None:
        logger.warning("No employer receipt for worker receipt %s", worker_receipt_number)
        raise NotFoundError("EmployerPaymentReceipt", worker_receipt_number)
    return receipt


def get_by_number(db: Session, employer_receipt_number: str) -> EmployerPaymentReceiptModel:
    receipt = (
        db.query(EmployerPaymentReceiptModel)
        .filter(EmployerPaymentReceiptModel.employer_receipt_number == employer_receipt_number)
        .first()
    )
    if receipt is None:
        logger.warning("Employer receipt not found: %s", employer_receipt_number)
        raise NotFoundError("EmployerPaymentReceipt", employer_receipt_number)
    return receipt


def find_receipts(
    db: Session,
    params: PageParams,
    status: Optional[EmployerReceiptStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Page:
    query = db.query(EmployerPaymentReceiptModel)
    if status is not None:
        query = query.filter(EmployerPaymentReceiptModel.status == status)
    lower, upper = date_window(start_date, end_date)
    if lower:
        query = query.filter(EmployerPaymentReceiptModel.validated_at >= lower)
    if upper:
        query = query.filter(EmployerPaymentReceiptModel.validated_at <= upper)
    return paginate(query, params, SORT_COLUMNS, "validated_at")


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def _insert(db: Session, receipt: EmployerPaymentReceiptModel) -> Optional[EmployerPaymentReceiptModel]:
    """Insert under a savepoint; ``None`` if the worker receipt already has one."""
    savepoint = db.begin_nested()
    try:
        db.add(receipt)
        db.flush()
        savepoint.commit()
        return receipt
    except IntegrityError:
        savepoint.rollback()
        logger.info("Employer receipt for %s was created concurrently", receipt.worker_receipt_number)
        return None


def _new_receipt(
    db: Session,
    worker_receipt: WorkerPaymentReceiptModel,
    status: EmployerReceiptStatus,
    transaction_reference: str = "",
    validated_by: str = "",
) -> EmployerPaymentReceiptModel:
    return EmployerPaymentReceiptModel(
        employer_receipt_number=generate_employer_receipt_number(db),
        worker_receipt_number=worker_receipt.receipt_number,
        employer_id=worker_receipt.employer_id or "",
        toli_id=worker_receipt.toli_id or "",
        transaction_reference=transaction_reference,
        validated_by=validated_by,
        validated_at=utcnow(),
        total_records=worker_receipt.total_records,
        total_amount=worker_receipt.total_amount,
        status=status,
    )


def create_pending_employer_receipt(db: Session, worker_receipt: WorkerPaymentReceiptModel) -> EmployerPaymentReceiptModel:
    """Return the employer receipt of ``worker_receipt``, creating it PENDING if missing.

    Calling it again for the same worker receipt returns the same row unchanged.
    The caller commits.
    """
    existing = find_by_worker_receipt_number(db, worker_receipt.receipt_number)
    if existing is not None:
        logger.info("Employer receipt already exists for worker receipt %s", worker_receipt.receipt_number)
        return existing

    created = _insert(db, _new_receipt(db, worker_receipt, EmployerReceiptStatus.PENDING))
    if created is None:
        return get_by_worker_receipt_number(db, worker_receipt.receipt_number)
    logger.info(
        "Created PENDING employer receipt %s for worker receipt %s",
        created.employer_receipt_number, worker_receipt.receipt_number,
    )
    return created


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _complete_open_receipt(
    db: Session,
    receipt: EmployerPaymentReceiptModel,
    transaction_reference: str,
    validated_by: str,
) -> EmployerPaymentReceiptModel:
    """Conditional update: only an open receipt can take a transaction reference."""
    changed = (
        db.query(EmployerPaymentReceiptModel)
        .filter(
            EmployerPaymentReceiptModel.id == receipt.id,
            EmployerPaymentReceiptModel.status.in_(OPEN_STATUSES),
        )
        .update(
            {
                EmployerPaymentReceiptModel.transaction_reference: transaction_reference,
                EmployerPaymentReceiptModel.validated_by: validated_by,
                EmployerPaymentReceiptModel.validated_at: utcnow(),
                EmployerPaymentReceiptModel.status: EmployerReceiptStatus.SEND_TO_BOARD,
                EmployerPaymentReceiptModel.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    db.refresh(receipt)
    if changed == 0:
        logger.warning(
            "Worker receipt %s already validated (employer receipt %s is %s)",
            receipt.worker_receipt_number, receipt.employer_receipt_number, receipt.status.value,
        )
        raise InvalidStateError(
            "EmployerPaymentReceipt", receipt.employer_receipt_number, receipt.status.value, "validate",
        )
    return receipt


def validate_employer_receipt(
    db: Session,
    worker_receipt_number: str,
    transaction_reference: str,
    validated_by: str,
) -> EmployerValidation:
    """Employer confirmation of a worker receipt.

    1. the worker receipt must exist
    2. find-or-create its employer receipt and move it to SEND TO BOARD;
       a VALIDATED (or PROCESSED) one is refused
    3. make sure a PENDING board receipt exists (best-effort)
    4. worker receipt -> VALIDATED
    5. its PAYMENT_REQUESTED payments -> PAYMENT_INITIATED
    """
    logger.info(
        "Validating worker receipt %s with transaction reference %s", worker_receipt_number, transaction_reference,
    )
    worker_receipt = worker_receipts.get_by_number(db, worker_receipt_number)
    saga_id = new_saga_id()

    existing = find_by_worker_receipt_number(db, worker_receipt_number)
    if existing is None:
        receipt = _insert(
            db,
            _new_receipt(
                db, worker_receipt, EmployerReceiptStatus.SEND_TO_BOARD,
                transaction_reference=transaction_reference,
                validated_by=validated_by,
            ),
        )
        if receipt is None:
            receipt = _complete_open_receipt(
                db, get_by_worker_receipt_number(db, worker_receipt_number), transaction_reference, validated_by,
            )
    else:
        receipt = _complete_open_receipt(db, existing, transaction_reference, validated_by)

    record_step(
        db, saga_id, SagaType.EMPLOYER_VALIDATION, "EMPLOYER_RECEIPT_SAVED",
        batch_id=worker_receipt.file_id,
        receipt_number=worker_receipt_number,
        reference=receipt.employer_receipt_number,
        detail={"transaction_reference": transaction_reference, "validated_by": validated_by},
    )
    db.commit()

    board_reference = None
    savepoint = db.begin_nested()
    try:
        board_receipt = board_workflow.ensure_board_receipt(db, receipt, validated_by, saga_id)
        savepoint.commit()
        board_reference = board_receipt.board_reference
        record_step(
            db, saga_id, SagaType.EMPLOYER_VALIDATION, "BOARD_RECEIPT_CREATED",
            receipt_number=worker_receipt_number,
            reference=receipt.employer_receipt_number,
            detail={"board_reference": board_reference},
        )
    except Exception as e:
        savepoint.rollback()
        logger.exception("Failed to create board receipt for employer receipt %s", receipt.employer_receipt_number)
        record_step(
            db, saga_id, SagaType.EMPLOYER_VALIDATION, "BOARD_RECEIPT_CREATED", StepOutcome.FAILED,
            receipt_number=worker_receipt_number,
            reference=receipt.employer_receipt_number,
            note=str(e),
        )
    db.commit()

    worker_receipts.update_status(db, worker_receipt_number, WorkerReceiptStatus.VALIDATED)
    record_step(
        db, saga_id, SagaType.EMPLOYER_VALIDATION, "WORKER_RECEIPT_VALIDATED",
        receipt_number=worker_receipt_number,
        reference=receipt.employer_receipt_number,
    )

    initiated = ledger.transition_by_receipt(
        db,
        worker_receipt_number,
        WorkerPaymentStatus.PAYMENT_REQUESTED,
        WorkerPaymentStatus.PAYMENT_INITIATED,
    )
    record_step(
        db, saga_id, SagaType.EMPLOYER_VALIDATION, "PAYMENTS_INITIATED",
        receipt_number=worker_receipt_number,
        reference=receipt.employer_receipt_number,
        detail={"payments_initiated": initiated},
    )
    db.commit()
    db.refresh(receipt)

    logger.info(
        "Validated employer receipt %s for worker receipt %s (board receipt %s, %d payments initiated)",
        receipt.employer_receipt_number, worker_receipt_number, board_reference or "MISSING", initiated,
    )
    return EmployerValidation(
        receipt=receipt,
        board_reference=board_reference,
        payments_initiated=initiated,
        saga_id=saga_id,
    )


def mark_validated(db: Session, employer_receipt_number: str) -> EmployerPaymentReceiptModel:
    """Settlement confirmed by the board; closes the receipt to re-validation."""
    receipt = get_by_number(db, employer_receipt_number)
    previous = receipt.status
    receipt.status = EmployerReceiptStatus.VALIDATED
    db.flush()
    logger.info("Employer receipt %s: %s -> %s", employer_receipt_number, previous.value, receipt.status.value)
    return receipt
