"""
Board receipt schemas
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.board.models import BoardReceiptStatus


class BoardProcessRequest(BaseModel):
    """Checker attaches the bank UTR"""
    board_ref: str = Field(..., min_length=1)
    utr_number: str = Field(..., min_length=1, max_length=50)
    checker: str = Field(..., min_length=1, max_length=100)


class BoardRejectRequest(BaseModel):
    board_ref: str = Field(..., min_length=1)
    checker: str = Field(..., min_length=1, max_length=100)


class BoardReceiptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    board_id: str
    board_reference: str
    employer_reference: str
    employer_id: str
    toli_id: str
    amount: Decimal
    utr_number: str
    maker: str
    checker: Optional[str] = None
    status: BoardReceiptStatus
    receipt_date: date
    created_at: datetime
