"""
Employer receipt schemas
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.employer.models import EmployerReceiptStatus


class EmployerValidateRequest(BaseModel):
    """Employer confirmation of a worker receipt"""
    worker_receipt_number: str = Field(..., min_length=1)
    transaction_reference: str = Field(..., min_length=1, max_length=100)
    validated_by: str = Field(..., min_length=1, max_length=100)


class EmployerReceiptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employer_receipt_number: str
    worker_receipt_number: str
    employer_id: str
    toli_id: str
    transaction_reference: str
    validated_by: str
    validated_at: Optional[datetime] = None
    total_records: int
    total_amount: Decimal
    status: EmployerReceiptStatus
    created_at: datetime


class EmployerValidationResponse(BaseModel):
    receipt: EmployerReceiptResponse
    board_reference: Optional[str] = None
    board_receipt_created: bool
    payments_initiated: int
    saga_id: str
