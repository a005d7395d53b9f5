"""
Uploaded batch schemas
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.worker.models import BatchStatus, RecordStatus
from app.worker.pipeline.workflow_status import NextAction, WorkflowStatus


class RawRecordIn(BaseModel):
    """One structured row of an uploaded file"""
    worker_id: Optional[str] = None
    worker_name: Optional[str] = None
    company_name: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    employer_id: Optional[str] = None
    toli_id: Optional[str] = None
    bank_account: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    work_date: Optional[date] = None
    hours_worked: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None
    payment_amount: Optional[Decimal] = None


class BatchCreate(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    file_type: str = Field(default="json", description="csv|xls|xlsx|json")
    uploaded_by: Optional[str] = None
    stored_path: Optional[str] = None
    records: List[RawRecordIn] = Field(default_factory=list)


class BatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    filename: str
    file_hash: str
    file_type: str
    uploaded_by: Optional[str] = None
    file_reference_number: str
    total_records: int
    success_count: int
    failure_count: int
    status: BatchStatus
    upload_date: datetime


class RawRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    file_id: int
    row_num: int
    worker_id: Optional[str] = None
    worker_name: Optional[str] = None
    employer_id: Optional[str] = None
    toli_id: Optional[str] = None
    bank_account: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    work_date: Optional[date] = None
    hours_worked: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None
    payment_amount: Optional[Decimal] = None
    status: RecordStatus
    rejection_reason: Optional[str] = None
    receipt_number: Optional[str] = None
    validated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class ValidationResponse(BaseModel):
    batch_id: int
    validated: int
    rejected: int
    success_count: int
    failure_count: int
    status: BatchStatus


class GenerationResponse(BaseModel):
    batch_id: int
    processed_count: int
    receipt_number: Optional[str] = None
    total_records: int = 0
    total_amount: Optional[Decimal] = None
    saga_id: Optional[str] = None
    employer_receipt_number: Optional[str] = None
    unlinked_payment_ids: List[int] = Field(default_factory=list)
    failed_record_ids: List[int] = Field(default_factory=list)
    message: str


class StatusSummaryResponse(BaseModel):
    batch_id: int
    filename: str
    file_reference_number: str
    upload_date: datetime
    total_records: int
    status_summary: Dict[str, int]
    validated_count: int
    total_validated_amount: Decimal
    overall_status: str
    ready_for_payment: bool
    workflow_status: WorkflowStatus
    next_action: NextAction
