"""
Employer-side validation receipt, one per worker receipt.
"""
import enum

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from app.database import Base, status_type, utcnow


class EmployerReceiptStatus(str, enum.Enum):
    PENDING = "PENDING"
    SEND_TO_BOARD = "SEND TO BOARD"
    VALIDATED = "VALIDATED"
    PROCESSED = "PROCESSED"


class EmployerPaymentReceiptModel(Base):
    __tablename__ = "employer_payment_receipts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employer_receipt_number = Column(String(40), nullable=False, unique=True)
    worker_receipt_number = Column(String(40), nullable=False, unique=True)  # back-reference
    employer_id = Column(String(50), nullable=False, default="")
    toli_id = Column(String(50), nullable=False, default="")

    transaction_reference = Column(String(100), nullable=False, default="")  # bank reference from the employer
    validated_by = Column(String(100), nullable=False, default="")
    validated_at = Column(DateTime)

    # Copied from the worker receipt
    total_records = Column(Integer, nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False)

    status = Column(status_type(EmployerReceiptStatus), nullable=False, default=EmployerReceiptStatus.PENDING)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
