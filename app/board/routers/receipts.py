"""
Board receipt endpoints.

POST /api/board-receipts/process       — PENDING → VERIFIED with UTR
POST /api/board-receipts/reject        — PENDING → REJECTED
GET  /api/board-receipts               — list board receipts
GET  /api/board-receipts/{board_ref}   — one board receipt
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.board import workflow
from app.board.models import BoardReceiptStatus
from app.board.schemas import BoardProcessRequest, BoardReceiptResponse, BoardRejectRequest
from app.database import get_db
from app.paging import PageParams, PageResponse, page_params, parse_status, to_response

logger = logging.getLogger(__name__)
router = APIRouter()


# ── POST /api/board-receipts/process ────────────────────────────────────────
@router.post("/board-receipts/process", response_model=BoardReceiptResponse)
def process_receipt(req: BoardProcessRequest, db: Session = Depends(get_db)):
    receipt = workflow.process_board_receipt(db, req.board_ref, req.utr_number, req.checker)
    return BoardReceiptResponse.model_validate(receipt)


# ── POST /api/board-receipts/reject ─────────────────────────────────────────
@router.post("/board-receipts/reject", response_model=BoardReceiptResponse)
def reject_receipt(req: BoardRejectRequest, db: Session = Depends(get_db)):
    receipt = workflow.reject_board_receipt(db, req.board_ref, req.checker)
    return BoardReceiptResponse.model_validate(receipt)


# ── GET /api/board-receipts ─────────────────────────────────────────────────
@router.get("/board-receipts", response_model=PageResponse[BoardReceiptResponse])
def list_receipts(
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    page = workflow.find_receipts(
        db, params,
        status=parse_status(status, BoardReceiptStatus),
        start_date=start_date,
        end_date=end_date,
    )
    return to_response(page, BoardReceiptResponse.model_validate)


# ── GET /api/board-receipts/{board_ref} ─────────────────────────────────────
@router.get("/board-receipts/{board_ref}", response_model=BoardReceiptResponse)
def get_receipt(board_ref: str, db: Session = Depends(get_db)):
    return BoardReceiptResponse.model_validate(workflow.get_by_board_ref(db, board_ref))
