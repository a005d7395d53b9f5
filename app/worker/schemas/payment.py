"""
Worker payment and worker receipt schemas
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from app.employer.models import EmployerReceiptStatus
from app.worker.models import WorkerPaymentStatus, WorkerReceiptStatus


class WorkerPaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    worker_reference: str
    registration_id: str
    worker_name: str
    employer_id: str
    toli_id: str
    toli: str
    bank_account: str
    payment_amount: Decimal
    file_id: Optional[int] = None
    request_reference_number: str
    status: WorkerPaymentStatus
    receipt_number: Optional[str] = None
    created_at: datetime


class WorkerReceiptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    receipt_number: str
    employer_id: str
    toli_id: str
    file_id: Optional[int] = None
    total_records: int
    total_amount: Decimal
    status: WorkerReceiptStatus
    created_at: datetime


class SendToEmployerResponse(BaseModel):
    receipt_number: str
    employer_receipt_number: str
    employer_receipt_status: EmployerReceiptStatus
    payments_requested: int
