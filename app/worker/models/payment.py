"""
Worker payment ledger rows and worker receipts.
"""
import enum
import uuid

from sqlalchemy import Column, DateTime, Integer, Numeric, String, event
from sqlalchemy.orm import validates

from app.database import Base, status_type, utcnow


class WorkerPaymentStatus(str, enum.Enum):
    UPLOADED = "UPLOADED"
    VALIDATED = "VALIDATED"
    PAYMENT_REQUESTED = "PAYMENT_REQUESTED"
    PAYMENT_INITIATED = "PAYMENT_INITIATED"
    PAYMENT_PROCESSED = "PAYMENT_PROCESSED"
    PAYMENT_RECONCILED = "PAYMENT_RECONCILED"
    ERROR = "ERROR"


class WorkerReceiptStatus(str, enum.Enum):
    PROCESSED = "PROCESSED"
    VALIDATED = "VALIDATED"
    PAYMENT_INITIATED = "PAYMENT_INITIATED"


def new_request_reference() -> str:
    return "WRK-" + uuid.uuid4().hex[:12].upper()


class WorkerPaymentModel(Base):
    """Individually addressable payment owed to one worker"""
    __tablename__ = "worker_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    worker_reference = Column(String(50), nullable=False)
    registration_id = Column(String(50), nullable=False, default="")
    worker_name = Column(String(100), nullable=False, default="")
    employer_id = Column(String(50), nullable=False, default="")
    toli_id = Column(String(50), nullable=False, default="")
    toli = Column(String(50), nullable=False, default="")
    aadhar = Column(String(20), nullable=False, default="")
    pan = Column(String(20), nullable=False, default="")
    bank_account = Column(String(20), nullable=False, default="")
    payment_amount = Column(Numeric(12, 2), nullable=False)

    file_id = Column(Integer, index=True)  # source batch
    request_reference_number = Column(String(32), nullable=False, unique=True)
    status = Column(status_type(WorkerPaymentStatus), nullable=False, default=WorkerPaymentStatus.UPLOADED, index=True)
    receipt_number = Column(String(40), index=True)  # null until aggregated

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @validates("request_reference_number")
    def _guard_request_reference(self, key, value):
        current = self.request_reference_number
        if current and value != current:
            raise ValueError(f"request_reference_number is immutable (already {current})")
        return value


@event.listens_for(WorkerPaymentModel, "before_insert")
def _assign_request_reference(mapper, connection, target):
    if not target.request_reference_number:
        target.request_reference_number = new_request_reference()


class WorkerPaymentReceiptModel(Base):
    """Aggregation of one batch of worker payments"""
    __tablename__ = "worker_payment_receipts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    receipt_number = Column(String(40), nullable=False, unique=True)
    employer_id = Column(String(50), nullable=False, default="")
    toli_id = Column(String(50), nullable=False, default="")
    file_id = Column(Integer, index=True)

    # Snapshots taken at creation, never recomputed
    total_records = Column(Integer, nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False)

    status = Column(status_type(WorkerReceiptStatus), nullable=False, default=WorkerReceiptStatus.PROCESSED)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
