"""
Uploaded batch API endpoints.

POST   /api/worker/uploaded-data/batches                              — register a structured batch
GET    /api/worker/uploaded-data/batches                              — list batches
GET    /api/worker/uploaded-data/batches/{batch_id}                   — batch metadata
GET    /api/worker/uploaded-data/batches/{batch_id}/records           — raw rows
GET    /api/worker/uploaded-data/batches/{batch_id}/summary           — status summary + next action
POST   /api/worker/uploaded-data/batches/{batch_id}/validate          — validate UPLOADED rows
POST   /api/worker/uploaded-data/batches/{batch_id}/generate-receipt  — validated rows → receipt
DELETE /api/worker/uploaded-data/batches/{batch_id}                   — delete batch and rows
GET    /api/worker/uploaded-data/receipt/{receipt_number}             — rows behind a receipt
"""
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.paging import PageParams, PageResponse, page_params, parse_status, to_response
from app.worker import batches
from app.worker.models import BatchStatus, RecordStatus
from app.worker.pipeline import generate_receipt, validate_batch
from app.worker.schemas import (
    BatchCreate,
    BatchResponse,
    GenerationResponse,
    RawRecordResponse,
    StatusSummaryResponse,
    ValidationResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ── POST /api/worker/uploaded-data/batches ──────────────────────────────────
@router.post("/worker/uploaded-data/batches", response_model=BatchResponse, status_code=201)
def register_batch(req: BatchCreate, db: Session = Depends(get_db)):
    logger.info("Register batch: filename=%s rows=%d", req.filename, len(req.records))
    batch = batches.register_batch(
        db,
        filename=req.filename,
        uploaded_by=req.uploaded_by,
        file_type=req.file_type,
        records=[r.model_dump() for r in req.records],
        stored_path=req.stored_path,
    )
    return BatchResponse.model_validate(batch)


# ── GET /api/worker/uploaded-data/batches ───────────────────────────────────
@router.get("/worker/uploaded-data/batches", response_model=PageResponse[BatchResponse])
def list_batches(
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    page = batches.find_batches(
        db, params,
        status=parse_status(status, BatchStatus),
        start_date=start_date,
        end_date=end_date,
    )
    logger.info("Found %d batches", page.total_elements)
    return to_response(page, BatchResponse.model_validate)


# ── GET /api/worker/uploaded-data/batches/{batch_id} ────────────────────────
@router.get("/worker/uploaded-data/batches/{batch_id}", response_model=BatchResponse)
def get_batch(batch_id: int, db: Session = Depends(get_db)):
    return BatchResponse.model_validate(batches.get_batch(db, batch_id))


# ── GET /api/worker/uploaded-data/batches/{batch_id}/records ────────────────
@router.get(
    "/worker/uploaded-data/batches/{batch_id}/records",
    response_model=PageResponse[RawRecordResponse],
)
def list_records(
    batch_id: int,
    status: Optional[str] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    batches.get_batch(db, batch_id)
    if params.sort_by is None:
        params.sort_dir = "asc"
    page = batches.find_records(db, batch_id, params, status=parse_status(status, RecordStatus))
    return to_response(page, RawRecordResponse.model_validate)


# ── GET /api/worker/uploaded-data/batches/{batch_id}/summary ────────────────
@router.get("/worker/uploaded-data/batches/{batch_id}/summary", response_model=StatusSummaryResponse)
def batch_summary(batch_id: int, db: Session = Depends(get_db)):
    return batches.status_summary(db, batch_id)


# ── POST /api/worker/uploaded-data/batches/{batch_id}/validate ──────────────
@router.post("/worker/uploaded-data/batches/{batch_id}/validate", response_model=ValidationResponse)
def validate(batch_id: int, db: Session = Depends(get_db)):
    logger.info("Validate batch %s", batch_id)
    return validate_batch(db, batch_id)


# ── POST /api/worker/uploaded-data/batches/{batch_id}/generate-receipt ──────
@router.post(
    "/worker/uploaded-data/batches/{batch_id}/generate-receipt",
    response_model=GenerationResponse,
)
def generate(batch_id: int, db: Session = Depends(get_db)):
    batch = batches.get_batch(db, batch_id)
    result = generate_receipt(db, batch_id, batch.file_reference_number)
    if result.receipt_number is None:
        message = "No validated records found to generate a receipt"
    else:
        message = f"Generated receipt {result.receipt_number} for {result.processed_count} records"
    return GenerationResponse(
        batch_id=batch_id,
        processed_count=result.processed_count,
        receipt_number=result.receipt_number,
        total_records=result.total_records,
        total_amount=result.total_amount,
        saga_id=result.saga_id,
        employer_receipt_number=result.employer_receipt_number,
        unlinked_payment_ids=result.unlinked_payment_ids,
        failed_record_ids=result.failed_record_ids,
        message=message,
    )


# ── DELETE /api/worker/uploaded-data/batches/{batch_id} ─────────────────────
@router.delete("/worker/uploaded-data/batches/{batch_id}")
def delete_batch(batch_id: int, db: Session = Depends(get_db)):
    removed = batches.delete_batch(db, batch_id)
    return {"message": "Batch deleted successfully", "batch_id": batch_id, "records_deleted": removed}


# ── GET /api/worker/uploaded-data/receipt/{receipt_number} ──────────────────
@router.get("/worker/uploaded-data/receipt/{receipt_number}", response_model=List[RawRecordResponse])
def records_by_receipt(receipt_number: str, db: Session = Depends(get_db)):
    rows = batches.find_records_by_receipt(db, receipt_number)
    logger.info("Found %d records for receipt %s", len(rows), receipt_number)
    return [RawRecordResponse.model_validate(r) for r in rows]
