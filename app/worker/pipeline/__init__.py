"""
Worker upload pipeline.

Orchestrates: validate raw rows → refresh batch counts → generate receipt.
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from app.worker import batches
from app.worker.pipeline.aggregator import GenerationResult, generate_receipt
from app.worker.pipeline.validator import validate_records

logger = logging.getLogger(__name__)

__all__ = ["GenerationResult", "generate_receipt", "validate_batch"]


def validate_batch(db: Session, batch_id: int, today: Optional[date] = None) -> dict:
    """Validate the UPLOADED rows of a batch and update its counts.

    Returns the counts of this run plus the batch totals.
    """
    batch = batches.get_batch(db, batch_id)
    logger.info("Pipeline start — validate batch %s (%s)", batch_id, batch.file_reference_number)
    counts = validate_records(db, batch_id, today=today)

    logger.info("Pipeline — refresh batch counts")
    batches.refresh_counts(db, batch)
    db.commit()
    db.refresh(batch)
    return {
        "batch_id": batch.id,
        "validated": counts["validated"],
        "rejected": counts["rejected"],
        "success_count": batch.success_count,
        "failure_count": batch.failure_count,
        "status": batch.status.value,
    }
