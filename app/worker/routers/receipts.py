"""
Worker receipt endpoints.

GET  /api/worker/receipts                        — list receipts
GET  /api/worker/receipts/{n}                    — one receipt
GET  /api/worker/receipts/{n}/payments           — its member payments
POST /api/worker/receipts/{n}/send-to-employer   — hand over as a PENDING employer receipt
"""
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.paging import PageParams, PageResponse, page_params, parse_status, to_response
from app.worker import ledger, receipts
from app.worker.models import WorkerReceiptStatus
from app.worker.schemas import SendToEmployerResponse, WorkerPaymentResponse, WorkerReceiptResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/worker/receipts", response_model=PageResponse[WorkerReceiptResponse])
def list_receipts(
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    page = receipts.find_receipts(
        db, params,
        status=parse_status(status, WorkerReceiptStatus),
        start_date=start_date,
        end_date=end_date,
    )
    return to_response(page, WorkerReceiptResponse.model_validate)


@router.get("/worker/receipts/{receipt_number}", response_model=WorkerReceiptResponse)
def get_receipt(receipt_number: str, db: Session = Depends(get_db)):
    return WorkerReceiptResponse.model_validate(receipts.get_by_number(db, receipt_number))


@router.get("/worker/receipts/{receipt_number}/payments", response_model=List[WorkerPaymentResponse])
def receipt_payments(receipt_number: str, db: Session = Depends(get_db)):
    receipts.get_by_number(db, receipt_number)
    return [WorkerPaymentResponse.model_validate(p) for p in ledger.find_by_receipt_number(db, receipt_number)]


@router.post("/worker/receipts/{receipt_number}/send-to-employer", response_model=SendToEmployerResponse)
def send_to_employer(receipt_number: str, db: Session = Depends(get_db)):
    employer_receipt, requested = receipts.send_to_employer(db, receipt_number)
    return SendToEmployerResponse(
        receipt_number=receipt_number,
        employer_receipt_number=employer_receipt.employer_receipt_number,
        employer_receipt_status=employer_receipt.status,
        payments_requested=requested,
    )
