"""
Employer receipt endpoints.

POST /api/employer/receipts/validate                 — employer confirms a worker receipt
GET  /api/employer/receipts                          — list employer receipts
GET  /api/employer/receipts/{n}                      — by employer receipt number
GET  /api/employer/receipts/by-worker-receipt/{n}    — by worker receipt number
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.employer import workflow
from app.employer.models import EmployerReceiptStatus
from app.employer.schemas import (
    EmployerReceiptResponse,
    EmployerValidateRequest,
    EmployerValidationResponse,
)
from app.paging import PageParams, PageResponse, page_params, parse_status, to_response

logger = logging.getLogger(__name__)
router = APIRouter()


# ── POST /api/employer/receipts/validate ────────────────────────────────────
@router.post("/employer/receipts/validate", response_model=EmployerValidationResponse)
def validate_receipt(req: EmployerValidateRequest, db: Session = Depends(get_db)):
    result = workflow.validate_employer_receipt(
        db,
        worker_receipt_number=req.worker_receipt_number,
        transaction_reference=req.transaction_reference,
        validated_by=req.validated_by,
    )
    return EmployerValidationResponse(
        receipt=EmployerReceiptResponse.model_validate(result.receipt),
        board_reference=result.board_reference,
        board_receipt_created=result.board_receipt_created,
        payments_initiated=result.payments_initiated,
        saga_id=result.saga_id,
    )


# ── GET /api/employer/receipts ──────────────────────────────────────────────
@router.get("/employer/receipts", response_model=PageResponse[EmployerReceiptResponse])
def list_receipts(
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    page = workflow.find_receipts(
        db, params,
        status=parse_status(status, EmployerReceiptStatus),
        start_date=start_date,
        end_date=end_date,
    )
    return to_response(page, EmployerReceiptResponse.model_validate)


# ── GET /api/employer/receipts/by-worker-receipt/{n} ────────────────────────
@router.get(
    "/employer/receipts/by-worker-receipt/{worker_receipt_number}",
    response_model=EmployerReceiptResponse,
)
def get_by_worker_receipt(worker_receipt_number: str, db: Session = Depends(get_db)):
    return EmployerReceiptResponse.model_validate(
        workflow.get_by_worker_receipt_number(db, worker_receipt_number)
    )


# ── GET /api/employer/receipts/{n} ──────────────────────────────────────────
@router.get("/employer/receipts/{employer_receipt_number}", response_model=EmployerReceiptResponse)
def get_receipt(employer_receipt_number: str, db: Session = Depends(get_db)):
    return EmployerReceiptResponse.model_validate(workflow.get_by_number(db, employer_receipt_number))
