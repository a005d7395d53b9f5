"""
Worker payment ledger endpoints.

GET /api/worker-payments        — filterable, paged ledger
GET /api/worker-payments/{id}   — one payment
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.paging import PageParams, PageResponse, page_params, parse_status, to_response
from app.worker import ledger
from app.worker.models import WorkerPaymentStatus
from app.worker.schemas import WorkerPaymentResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/worker-payments", response_model=PageResponse[WorkerPaymentResponse])
def list_payments(
    status: Optional[str] = None,
    receipt_number: Optional[str] = None,
    batch_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    page = ledger.find_payments(
        db, params,
        status=parse_status(status, WorkerPaymentStatus),
        receipt_number=receipt_number,
        batch_id=batch_id,
        start_date=start_date,
        end_date=end_date,
    )
    return to_response(page, WorkerPaymentResponse.model_validate)


@router.get("/worker-payments/{payment_id}", response_model=WorkerPaymentResponse)
def get_payment(payment_id: int, db: Session = Depends(get_db)):
    return WorkerPaymentResponse.model_validate(ledger.get_payment(db, payment_id))
