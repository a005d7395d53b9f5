"""
Field and cross-field checks for raw upload rows.

Every check runs; the messages of all failed checks are joined into one
rejection reason so a submitter sees every problem of a row at once.
"""
from __future__ import annotations

import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.database import utcnow
from app.worker.models import RecordStatus, WorkerUploadedDataModel

logger = logging.getLogger(__name__)

BANK_ACCOUNT_RE = re.compile(r"[A-Za-z0-9]+", re.ASCII)
PHONE_RE = re.compile(r"(\+\d{1,3}[\s\-]?)?\d{10}", re.ASCII)
EMAIL_RE = re.compile(r"[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}", re.ASCII)

MAX_HOURS = Decimal("24")
MAX_HOURLY_RATE = Decimal("10000")
MAX_PAYMENT_AMOUNT = Decimal("1000000")
AMOUNT_TOLERANCE = Decimal("0.01")

# (attribute, label, max length)
LENGTH_LIMITS = [
    ("worker_name", "Worker name", 100),
    ("company_name", "Company name", 100),
    ("department", "Department", 50),
    ("position", "Position", 50),
    ("worker_id", "Worker ID", 50),
    ("email", "Email", 100),
]


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def years_before(today: date, years: int) -> date:
    """Same calendar day ``years`` earlier; 29 February falls back to the 28th."""
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        return today.replace(year=today.year - years, day=28)


def check_record(record, today: date) -> list[str]:
    """Return every violation message for ``record``; empty means valid."""
    errors: list[str] = []

    # Required fields
    if _blank(record.worker_id):
        errors.append("Worker ID is required.")
    if _blank(record.worker_name):
        errors.append("Worker name is required.")
    if record.payment_amount is None or record.payment_amount <= 0:
        errors.append("Valid payment amount greater than 0 is required.")
    if _blank(record.bank_account):
        errors.append("Bank account is required.")
    if record.work_date is None:
        errors.append("Work date is required.")

    for attr, label, limit in LENGTH_LIMITS:
        value = getattr(record, attr)
        if value is not None and len(value) > limit:
            errors.append(f"{label} must not exceed {limit} characters.")

    if not _blank(record.bank_account):
        account = record.bank_account.strip()
        if not 10 <= len(account) <= 20:
            errors.append("Bank account must be between 10-20 characters.")
        if not BANK_ACCOUNT_RE.fullmatch(account):
            errors.append("Bank account must contain only letters and digits.")

    if not _blank(record.phone_number):
        phone = record.phone_number.strip()
        if len(phone) > 15:
            errors.append("Phone number must not exceed 15 characters.")
        if not PHONE_RE.fullmatch(phone):
            errors.append("Invalid phone number format.")

    if not _blank(record.email) and not EMAIL_RE.fullmatch(record.email):
        errors.append("Invalid email format.")

    if record.work_date is not None:
        if record.work_date > today:
            errors.append("Work date cannot be in the future.")
        if record.work_date < years_before(today, settings.WORK_DATE_MAX_AGE_YEARS):
            errors.append("Work date cannot be more than 1 year old.")

    hours = record.hours_worked
    if hours is not None:
        if hours <= 0:
            errors.append("Hours worked must be greater than 0.")
        if hours > MAX_HOURS:
            errors.append("Hours worked cannot exceed 24 hours per day.")

    rate = record.hourly_rate
    if rate is not None:
        if rate <= 0:
            errors.append("Hourly rate must be greater than 0.")
        if rate > MAX_HOURLY_RATE:
            errors.append("Hourly rate seems unreasonably high (max 10,000).")

    amount = record.payment_amount
    if amount is not None and amount > MAX_PAYMENT_AMOUNT:
        errors.append("Payment amount seems unreasonably high (max 1,000,000).")

    if hours is not None and rate is not None and amount is not None:
        calculated = Decimal(hours) * Decimal(rate)
        if abs(Decimal(amount) - calculated) > AMOUNT_TOLERANCE:
            errors.append(
                "Payment amount doesn't match hours worked × hourly rate "
                f"(calculated: {calculated.quantize(Decimal('0.01'))})."
            )

    return errors


def apply_validation(record: WorkerUploadedDataModel, today: date) -> RecordStatus:
    """Classify one record in place; the previous reason is overwritten."""
    try:
        errors = check_record(record, today)
    except (InvalidOperation, TypeError, ValueError) as e:
        logger.error("Error validating row %s of batch %s: %s", record.row_num, record.file_id, e)
        errors = [f"Validation error: {e}"]

    if errors:
        record.status = RecordStatus.REJECTED
        record.rejection_reason = " ".join(errors)
        record.validated_at = None
    else:
        record.status = RecordStatus.VALIDATED
        record.rejection_reason = None
        record.validated_at = utcnow()
    return record.status


def validate_records(db: Session, batch_id: int, today: Optional[date] = None) -> dict[str, int]:
    """Validate every UPLOADED record of a batch.

    Records already VALIDATED, REJECTED or REQUEST_GENERATED are not selected,
    so running this twice is a no-op. Returns ``{"validated": n, "rejected": m}``.
    """
    today = today or utcnow().date()
    records = (
        db.query(WorkerUploadedDataModel)
        .filter(
            WorkerUploadedDataModel.file_id == batch_id,
            WorkerUploadedDataModel.status == RecordStatus.UPLOADED,
        )
        .order_by(WorkerUploadedDataModel.row_num)
        .all()
    )
    logger.info("Found %d uploaded records to validate in batch %s", len(records), batch_id)

    counts = {"validated": 0, "rejected": 0}
    for record in records:
        status = apply_validation(record, today)
        if status == RecordStatus.VALIDATED:
            counts["validated"] += 1
        else:
            counts["rejected"] += 1

    db.flush()
    logger.info(
        "Validation done for batch %s: %d validated, %d rejected",
        batch_id, counts["validated"], counts["rejected"],
    )
    return counts
