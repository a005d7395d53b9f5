"""
Board settlement stage.

A board receipt is created PENDING from an employer receipt and verified
exactly once by a checker who attaches the bank UTR. Verification and
rejection are conditional updates on ``status = PENDING``, so two checkers
racing on the same receipt cannot both succeed.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from app.board.models import BoardReceiptModel, BoardReceiptStatus
from app.database import utcnow
from app.errors import InvalidFilterError, InvalidStateError, NotFoundError
from app.numbering import BOARD_RECEIPT_PREFIX, daily_sequence_candidate, generate_unique_number
from app.paging import Page, PageParams, paginate
from app.reconciliation.journal import new_saga_id, record_step
from app.reconciliation.models import SagaType, StepOutcome
from app.worker import ledger
from app.worker.models import WorkerPaymentStatus

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "id": BoardReceiptModel.id,
    "board_id": BoardReceiptModel.board_id,
    "board_reference": BoardReceiptModel.board_reference,
    "employer_reference": BoardReceiptModel.employer_reference,
    "employer_id": BoardReceiptModel.employer_id,
    "toli_id": BoardReceiptModel.toli_id,
    "amount": BoardReceiptModel.amount,
    "utr_number": BoardReceiptModel.utr_number,
    "status": BoardReceiptModel.status,
    "maker": BoardReceiptModel.maker,
    "checker": BoardReceiptModel.checker,
    "receipt_date": BoardReceiptModel.receipt_date,
}


def _reference_exists(db: Session, reference: str) -> bool:
    return (
        db.query(BoardReceiptModel.id)
        .filter(BoardReceiptModel.board_reference == reference)
        .first()
        is not None
    )


def generate_board_reference(db: Session) -> str:
    return generate_unique_number(
        BOARD_RECEIPT_PREFIX,
        candidate=lambda: daily_sequence_candidate(db, BOARD_RECEIPT_PREFIX),
        exists=lambda reference: _reference_exists(db, reference),
    )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_by_board_ref(db: Session, board_ref: str) -> BoardReceiptModel:
    receipt = db.query(BoardReceiptModel).filter(BoardReceiptModel.board_reference == board_ref).first()
    if receipt is None:
        logger.warning("Board receipt not found: %s", board_ref)
        raise NotFoundError("BoardReceipt", board_ref)
    return receipt


def find_by_employer_ref(db: Session, employer_ref: str) -> Optional[BoardReceiptModel]:
    return db.query(BoardReceiptModel).filter(BoardReceiptModel.employer_reference == employer_ref).first()


def get_by_employer_ref(db: Session, employer_ref: str) -> BoardReceiptModel:
    receipt = find_by_employer_ref(db, employer_ref)
    if receipt is None:
        logger.warning("No board receipt for employer receipt %s", employer_ref)
        raise NotFoundError("BoardReceipt", employer_ref)
    return receipt


def find_receipts(
    db: Session,
    params: PageParams,
    status: Optional[BoardReceiptStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Page:
    query = db.query(BoardReceiptModel)
    if status is not None:
        query = query.filter(BoardReceiptModel.status == status)
    if start_date and end_date and start_date > end_date:
        raise InvalidFilterError("start_date", start_date.isoformat(), [f"<= {end_date.isoformat()}"])
    if start_date:
        query = query.filter(BoardReceiptModel.receipt_date >= start_date)
    if end_date:
        query = query.filter(BoardReceiptModel.receipt_date <= end_date)
    return paginate(query, params, SORT_COLUMNS, "receipt_date")


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def create_from_employer_receipt(db: Session, employer_receipt, maker: str) -> BoardReceiptModel:
    """New PENDING board receipt copying employer, toli and amount. Flushes only."""
    board_ref = generate_board_reference(db)
    receipt = BoardReceiptModel(
        board_reference=board_ref,
        board_id=f"BOARD_{board_ref}",
        employer_reference=employer_receipt.employer_receipt_number,
        employer_id=employer_receipt.employer_id or "",
        toli_id=employer_receipt.toli_id or "",
        amount=employer_receipt.total_amount,
        utr_number="",
        maker=maker or "",
        status=BoardReceiptStatus.PENDING,
        receipt_date=utcnow().date(),
    )
    db.add(receipt)
    db.flush()
    logger.info(
        "Created board receipt %s from employer receipt %s with status PENDING",
        board_ref, employer_receipt.employer_receipt_number,
    )
    return receipt


def reopen_rejected(db: Session, receipt: BoardReceiptModel, maker: str, saga_id: Optional[str] = None) -> BoardReceiptModel:
    """REJECTED -> PENDING for a re-validated employer receipt; checker and UTR are cleared."""
    changed = (
        db.query(BoardReceiptModel)
        .filter(
            BoardReceiptModel.id == receipt.id,
            BoardReceiptModel.status == BoardReceiptStatus.REJECTED,
        )
        .update({
            BoardReceiptModel.status: BoardReceiptStatus.PENDING,
            BoardReceiptModel.checker: None,
            BoardReceiptModel.utr_number: "",
            BoardReceiptModel.maker: maker or receipt.maker,
            BoardReceiptModel.updated_at: utcnow(),
        }, synchronize_session=False)
    )
    db.refresh(receipt)
    if changed == 0:
        raise InvalidStateError("BoardReceipt", receipt.board_reference, receipt.status.value, "reopen")
    record_step(
        db, saga_id or new_saga_id(), SagaType.BOARD_PROCESSING, "BOARD_RECEIPT_REOPENED",
        reference=receipt.board_reference,
        detail={"employer_reference": receipt.employer_reference, "maker": receipt.maker},
    )
    logger.info("Reopened rejected board receipt %s with status PENDING", receipt.board_reference)
    return receipt


def ensure_board_receipt(db: Session, employer_receipt, maker: str, saga_id: Optional[str] = None) -> BoardReceiptModel:
    """The board receipt of ``employer_receipt``, created if it has none yet.

    A REJECTED one goes back to PENDING so the board can check it again.
    """
    existing = find_by_employer_ref(db, employer_receipt.employer_receipt_number)
    if existing is None:
        return create_from_employer_receipt(db, employer_receipt, maker)
    if existing.status == BoardReceiptStatus.REJECTED:
        return reopen_rejected(db, existing, maker, saga_id)
    logger.info(
        "Board receipt %s already exists for employer receipt %s",
        existing.board_reference, employer_receipt.employer_receipt_number,
    )
    return existing


# ---------------------------------------------------------------------------
# One-shot transitions
# ---------------------------------------------------------------------------

def _close_pending(db: Session, board_ref: str, action: str, values: dict) -> BoardReceiptModel:
    receipt = get_by_board_ref(db, board_ref)
    changed = (
        db.query(BoardReceiptModel)
        .filter(
            BoardReceiptModel.id == receipt.id,
            BoardReceiptModel.status == BoardReceiptStatus.PENDING,
        )
        .update({**values, BoardReceiptModel.updated_at: utcnow()}, synchronize_session=False)
    )
    db.refresh(receipt)
    if changed == 0:
        logger.warning("Board receipt %s already processed (status %s)", board_ref, receipt.status.value)
        raise InvalidStateError("BoardReceipt", board_ref, receipt.status.value, action)
    return receipt


def _settle(db: Session, saga_id: str, receipt: BoardReceiptModel) -> None:
    """Close the employer receipt and move its initiated payments to PAYMENT_PROCESSED."""
    from app.employer.workflow import mark_validated

    employer_receipt = mark_validated(db, receipt.employer_reference)
    processed = ledger.transition_by_receipt(
        db,
        employer_receipt.worker_receipt_number,
        WorkerPaymentStatus.PAYMENT_INITIATED,
        WorkerPaymentStatus.PAYMENT_PROCESSED,
    )
    record_step(
        db, saga_id, SagaType.BOARD_PROCESSING, "SETTLEMENT_APPLIED",
        receipt_number=employer_receipt.worker_receipt_number,
        reference=receipt.board_reference,
        detail={"employer_reference": receipt.employer_reference, "payments_processed": processed},
    )


def process_board_receipt(db: Session, board_ref: str, utr_number: str, checker: str) -> BoardReceiptModel:
    """PENDING -> VERIFIED with the bank UTR and the checker; refused in any other status."""
    logger.info("Processing board receipt %s with UTR %s by %s", board_ref, utr_number, checker)
    receipt = _close_pending(db, board_ref, "process", {
        BoardReceiptModel.utr_number: utr_number,
        BoardReceiptModel.checker: checker,
        BoardReceiptModel.status: BoardReceiptStatus.VERIFIED,
    })
    saga_id = new_saga_id()
    record_step(
        db, saga_id, SagaType.BOARD_PROCESSING, "BOARD_RECEIPT_VERIFIED",
        reference=board_ref,
        detail={"utr_number": utr_number, "checker": checker, "employer_reference": receipt.employer_reference},
    )
    db.commit()

    savepoint = db.begin_nested()
    try:
        _settle(db, saga_id, receipt)
        savepoint.commit()
    except Exception as e:
        savepoint.rollback()
        logger.exception("Settlement failed for board receipt %s", board_ref)
        record_step(
            db, saga_id, SagaType.BOARD_PROCESSING, "SETTLEMENT_APPLIED", StepOutcome.FAILED,
            reference=board_ref,
            detail={"employer_reference": receipt.employer_reference},
            note=str(e),
        )
    db.commit()
    db.refresh(receipt)

    logger.info("Processed board receipt %s with UTR %s and updated status to VERIFIED", board_ref, utr_number)
    return receipt


def reject_board_receipt(db: Session, board_ref: str, checker: str) -> BoardReceiptModel:
    """PENDING -> REJECTED; the UTR stays empty."""
    receipt = _close_pending(db, board_ref, "reject", {
        BoardReceiptModel.checker: checker,
        BoardReceiptModel.status: BoardReceiptStatus.REJECTED,
    })
    record_step(
        db, new_saga_id(), SagaType.BOARD_PROCESSING, "BOARD_RECEIPT_REJECTED",
        reference=board_ref,
        detail={"checker": checker, "employer_reference": receipt.employer_reference},
    )
    db.commit()
    db.refresh(receipt)
    logger.info("Rejected board receipt %s by %s", board_ref, checker)
    return receipt
