"""
Reconciliation endpoints.

GET  /api/reconciliation/anomalies     — broken links left by best-effort steps
POST /api/reconciliation/repair        — repair them
GET  /api/reconciliation/chain/{n}     — worker → employer → board receipt chain
GET  /api/reconciliation/steps         — saga journal
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.board.schemas import BoardReceiptResponse
from app.database import get_db
from app.employer.schemas import EmployerReceiptResponse
from app.reconciliation import checker
from app.reconciliation.journal import list_steps
from app.reconciliation.schemas import (
    AnomalyResponse,
    ChainResponse,
    RepairRequest,
    RepairResponse,
    WorkflowStepResponse,
)
from app.worker.schemas import WorkerPaymentResponse, WorkerReceiptResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/reconciliation/anomalies", response_model=List[AnomalyResponse])
def anomalies(db: Session = Depends(get_db)):
    return [AnomalyResponse.model_validate(a) for a in checker.detect_anomalies(db)]


@router.post("/reconciliation/repair", response_model=RepairResponse)
def repair(req: RepairRequest, db: Session = Depends(get_db)):
    report = checker.repair(db, req.actor)
    return RepairResponse(
        saga_id=report.saga_id,
        repaired=report.repaired,
        payments_linked=report.payments_linked,
        records_marked=report.records_marked,
        board_receipts_created=report.board_receipts_created,
        failures=report.failures,
    )


@router.get("/reconciliation/chain/{worker_receipt_number}", response_model=ChainResponse)
def chain(worker_receipt_number: str, db: Session = Depends(get_db)):
    view = checker.trace_chain(db, worker_receipt_number)
    return ChainResponse(
        stage=view.stage,
        worker_receipt=WorkerReceiptResponse.model_validate(view.worker_receipt),
        payments=[WorkerPaymentResponse.model_validate(p) for p in view.payments],
        employer_receipt=(
            EmployerReceiptResponse.model_validate(view.employer_receipt) if view.employer_receipt else None
        ),
        board_receipt=BoardReceiptResponse.model_validate(view.board_receipt) if view.board_receipt else None,
        steps=[WorkflowStepResponse.model_validate(s) for s in view.steps],
    )


@router.get("/reconciliation/steps", response_model=List[WorkflowStepResponse])
def steps(
    receipt_number: Optional[str] = None,
    saga_id: Optional[str] = None,
    reference: Optional[str] = None,
    db: Session = Depends(get_db),
):
    rows = list_steps(db, receipt_number=receipt_number, saga_id=saga_id, reference=reference)
    return [WorkflowStepResponse.model_validate(s) for s in rows]
