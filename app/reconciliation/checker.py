"""
Out-of-band reconciliation of the best-effort linking steps.

Detection reads the RECEIPT_CREATED journal entries (which carry every member
payment id and source record id) and the employer receipts handed to the
board. Repairs are idempotent: a second run finds nothing to do.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.board import workflow as board_workflow
from app.board.models import BoardReceiptModel
from app.database import utcnow
from app.employer.models import EmployerPaymentReceiptModel, EmployerReceiptStatus
from app.employer.workflow import find_by_worker_receipt_number
from app.reconciliation.journal import list_steps, new_saga_id, record_step
from app.reconciliation.models import SagaType, StepOutcome, WorkflowStepModel
from app.worker import batches, ledger, receipts as worker_receipts
from app.worker.models import RecordStatus, WorkerPaymentModel, WorkerUploadedDataModel

logger = logging.getLogger(__name__)


class AnomalyKind(str, enum.Enum):
    PAYMENT_NOT_LINKED = "PAYMENT_NOT_LINKED"
    RECORD_NOT_MARKED = "RECORD_NOT_MARKED"
    BOARD_RECEIPT_MISSING = "BOARD_RECEIPT_MISSING"


@dataclass
class Anomaly:
    kind: AnomalyKind
    receipt_number: Optional[str] = None
    reference: Optional[str] = None
    entity_id: Optional[int] = None
    batch_id: Optional[int] = None


@dataclass
class RepairReport:
    saga_id: str
    payments_linked: list[int] = field(default_factory=list)
    records_marked: list[int] = field(default_factory=list)
    board_receipts_created: list[str] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def repaired(self) -> int:
        return len(self.payments_linked) + len(self.records_marked) + len(self.board_receipts_created)


@dataclass
class ChainView:
    worker_receipt: Any
    payments: list = field(default_factory=list)
    employer_receipt: Any = None
    board_receipt: Any = None
    steps: list = field(default_factory=list)

    @property
    def stage(self) -> str:
        if self.board_receipt is not None:
            return f"BOARD_{self.board_receipt.status.value}"
        if self.employer_receipt is not None:
            return f"EMPLOYER_{self.employer_receipt.status.name}"
        return f"WORKER_{self.worker_receipt.status.value}"


def _created_receipts(db: Session) -> list[WorkflowStepModel]:
    return (
        db.query(WorkflowStepModel)
        .filter(
            WorkflowStepModel.saga_type == SagaType.RECEIPT_GENERATION,
            WorkflowStepModel.step == "RECEIPT_CREATED",
            WorkflowStepModel.outcome == StepOutcome.DONE,
        )
        .order_by(WorkflowStepModel.id)
        .all()
    )


def _unlinked_payments(db: Session, step: WorkflowStepModel) -> list[WorkerPaymentModel]:
    ids = (step.detail or {}).get("payment_ids") or []
    if not ids:
        return []
    return (
        db.query(WorkerPaymentModel)
        .filter(WorkerPaymentModel.id.in_(ids))
        .filter(
            (WorkerPaymentModel.receipt_number.is_(None))
            | (WorkerPaymentModel.receipt_number != step.receipt_number)
        )
        .order_by(WorkerPaymentModel.id)
        .all()
    )


def _unmarked_records(db: Session, step: WorkflowStepModel) -> list[WorkerUploadedDataModel]:
    ids = (step.detail or {}).get("record_ids") or []
    if not ids:
        return []
    return (
        db.query(WorkerUploadedDataModel)
        .filter(WorkerUploadedDataModel.id.in_(ids))
        .filter(
            (WorkerUploadedDataModel.status != RecordStatus.REQUEST_GENERATED)
            | (WorkerUploadedDataModel.receipt_number.is_(None))
            | (WorkerUploadedDataModel.receipt_number != step.receipt_number)
        )
        .order_by(WorkerUploadedDataModel.id)
        .all()
    )


def _receipts_without_board(db: Session) -> list[EmployerPaymentReceiptModel]:
    return (
        db.query(EmployerPaymentReceiptModel)
        .outerjoin(
            BoardReceiptModel,
            BoardReceiptModel.employer_reference == EmployerPaymentReceiptModel.employer_receipt_number,
        )
        .filter(
            EmployerPaymentReceiptModel.status.in_(
                [EmployerReceiptStatus.SEND_TO_BOARD, EmployerReceiptStatus.VALIDATED]
            ),
            BoardReceiptModel.id.is_(None),
        )
        .order_by(EmployerPaymentReceiptModel.id)
        .all()
    )


def detect_anomalies(db: Session) -> list[Anomaly]:
    anomalies: list[Anomaly] = []
    for step in _created_receipts(db):
        for payment in _unlinked_payments(db, step):
            anomalies.append(Anomaly(
                AnomalyKind.PAYMENT_NOT_LINKED,
                receipt_number=step.receipt_number,
                entity_id=payment.id,
                batch_id=step.batch_id,
            ))
        for record in _unmarked_records(db, step):
            anomalies.append(Anomaly(
                AnomalyKind.RECORD_NOT_MARKED,
                receipt_number=step.receipt_number,
                entity_id=record.id,
                batch_id=step.batch_id,
            ))
    for receipt in _receipts_without_board(db):
        anomalies.append(Anomaly(
            AnomalyKind.BOARD_RECEIPT_MISSING,
            receipt_number=receipt.worker_receipt_number,
            reference=receipt.employer_receipt_number,
            entity_id=receipt.id,
        ))
    logger.info("Reconciliation found %d anomalies", len(anomalies))
    return anomalies


def repair(db: Session, actor: str) -> RepairReport:
    """Re-link payments, re-mark rows and create missing board receipts."""
    report = RepairReport(saga_id=new_saga_id())
    touched_batches: set[int] = set()

    for step in _created_receipts(db):
        receipt_number = step.receipt_number
        for payment in _unlinked_payments(db, step):
            payment.receipt_number = receipt_number
            report.payments_linked.append(payment.id)
        for record in _unmarked_records(db, step):
            record.status = RecordStatus.REQUEST_GENERATED
            record.receipt_number = receipt_number
            record.processed_at = record.processed_at or utcnow()
            report.records_marked.append(record.id)
            touched_batches.add(record.file_id)
        db.flush()

    for batch_id in sorted(touched_batches):
        batches.refresh_counts(db, batches.get_batch(db, batch_id))

    if report.payments_linked:
        record_step(
            db, report.saga_id, SagaType.REPAIR, "PAYMENTS_LINKED",
            detail={"payment_ids": report.payments_linked},
            note=f"repaired by {actor}",
        )
    if report.records_marked:
        record_step(
            db, report.saga_id, SagaType.REPAIR, "RECORDS_MARKED",
            detail={"record_ids": report.records_marked},
            note=f"repaired by {actor}",
        )
    db.commit()

    for employer_receipt in _receipts_without_board(db):
        maker = employer_receipt.validated_by or actor
        savepoint = db.begin_nested()
        try:
            board_receipt = board_workflow.create_from_employer_receipt(db, employer_receipt, maker)
            savepoint.commit()
        except Exception as e:
            savepoint.rollback()
            logger.exception("Repair could not create board receipt for %s", employer_receipt.employer_receipt_number)
            report.failures.append({
                "reference": employer_receipt.employer_receipt_number,
                "error": str(e),
            })
            record_step(
                db, report.saga_id, SagaType.REPAIR, "BOARD_RECEIPT_CREATED", StepOutcome.FAILED,
                receipt_number=employer_receipt.worker_receipt_number,
                reference=employer_receipt.employer_receipt_number,
                note=str(e),
            )
            continue
        report.board_receipts_created.append(board_receipt.board_reference)
        record_step(
            db, report.saga_id, SagaType.REPAIR, "BOARD_RECEIPT_CREATED",
            receipt_number=employer_receipt.worker_receipt_number,
            reference=employer_receipt.employer_receipt_number,
            detail={"board_reference": board_receipt.board_reference, "maker": maker},
            note=f"repaired by {actor}",
        )
    db.commit()

    logger.info(
        "Repair %s by %s: %d payments linked, %d records marked, %d board receipts created, %d failures",
        report.saga_id, actor, len(report.payments_linked), len(report.records_marked),
        len(report.board_receipts_created), len(report.failures),
    )
    return report


def trace_chain(db: Session, worker_receipt_number: str) -> ChainView:
    """Worker receipt -> employer receipt -> board receipt, by number lookups only."""
    worker_receipt = worker_receipts.get_by_number(db, worker_receipt_number)
    chain = ChainView(
        worker_receipt=worker_receipt,
        payments=ledger.find_by_receipt_number(db, worker_receipt_number),
        employer_receipt=find_by_worker_receipt_number(db, worker_receipt_number),
        steps=list_steps(db, receipt_number=worker_receipt_number),
    )
    if chain.employer_receipt is not None:
        chain.board_receipt = board_workflow.find_by_employer_ref(
            db, chain.employer_receipt.employer_receipt_number,
        )
    return chain
