"""
Saga journal helpers.

Steps are added to the caller's session and flushed; the caller decides when
to commit, so a step can share a transaction with the write it describes.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.reconciliation.models import SagaType, StepOutcome, WorkflowStepModel

logger = logging.getLogger(__name__)


def new_saga_id() -> str:
    return str(uuid.uuid4())


def record_step(
    db: Session,
    saga_id: str,
    saga_type: SagaType,
    step: str,
    outcome: StepOutcome = StepOutcome.DONE,
    *,
    batch_id: Optional[int] = None,
    receipt_number: Optional[str] = None,
    reference: Optional[str] = None,
    detail: Optional[dict[str, Any]] = None,
    note: Optional[str] = None,
) -> WorkflowStepModel:
    entry = WorkflowStepModel(
        saga_id=saga_id,
        saga_type=saga_type,
        step=step,
        outcome=outcome,
        batch_id=batch_id,
        receipt_number=receipt_number,
        reference=reference,
        detail=detail,
        note=note,
    )
    db.add(entry)
    db.flush()
    if outcome == StepOutcome.FAILED:
        logger.warning("Saga %s (%s) step %s FAILED: %s", saga_id, saga_type.value, step, note)
    else:
        logger.debug("Saga %s (%s) step %s done", saga_id, saga_type.value, step)
    return entry


def list_steps(
    db: Session,
    receipt_number: Optional[str] = None,
    saga_id: Optional[str] = None,
    reference: Optional[str] = None,
) -> list[WorkflowStepModel]:
    query = db.query(WorkflowStepModel)
    if receipt_number:
        query = query.filter(WorkflowStepModel.receipt_number == receipt_number)
    if saga_id:
        query = query.filter(WorkflowStepModel.saga_id == saga_id)
    if reference:
        query = query.filter(WorkflowStepModel.reference == reference)
    return query.order_by(WorkflowStepModel.occurred_at, WorkflowStepModel.id).all()
