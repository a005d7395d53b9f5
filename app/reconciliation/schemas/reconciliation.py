"""
Reconciliation schemas
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.board.schemas import BoardReceiptResponse
from app.employer.schemas import EmployerReceiptResponse
from app.reconciliation.checker import AnomalyKind
from app.reconciliation.models import SagaType, StepOutcome
from app.worker.schemas import WorkerPaymentResponse, WorkerReceiptResponse


class AnomalyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: AnomalyKind
    receipt_number: Optional[str] = None
    reference: Optional[str] = None
    entity_id: Optional[int] = None
    batch_id: Optional[int] = None


class RepairRequest(BaseModel):
    actor: str = Field(..., min_length=1, max_length=100)


class RepairResponse(BaseModel):
    saga_id: str
    repaired: int
    payments_linked: List[int]
    records_marked: List[int]
    board_receipts_created: List[str]
    failures: List[Dict[str, Any]]


class WorkflowStepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    saga_id: str
    saga_type: SagaType
    step: str
    outcome: StepOutcome
    batch_id: Optional[int] = None
    receipt_number: Optional[str] = None
    reference: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None
    note: Optional[str] = None
    occurred_at: datetime


class ChainResponse(BaseModel):
    stage: str
    worker_receipt: WorkerReceiptResponse
    payments: List[WorkerPaymentResponse]
    employer_receipt: Optional[EmployerReceiptResponse] = None
    board_receipt: Optional[BoardReceiptResponse] = None
    steps: List[WorkflowStepResponse]
