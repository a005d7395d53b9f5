"""
Board receipt: bank settlement confirmation for an employer receipt.
"""
import enum

from sqlalchemy import Column, Date, DateTime, Integer, Numeric, String

from app.database import Base, status_type, utcnow


class BoardReceiptStatus(str, enum.Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    PROCESSED = "PROCESSED"


class BoardReceiptModel(Base):
    __tablename__ = "board_receipts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    board_id = Column(String(50), nullable=False)
    board_reference = Column(String(40), nullable=False, unique=True)
    employer_reference = Column(String(40), nullable=False, unique=True)  # employer receipt number
    employer_id = Column(String(50), nullable=False, default="")
    toli_id = Column(String(50), nullable=False, default="")

    amount = Column(Numeric(14, 2), nullable=False)
    utr_number = Column(String(50), nullable=False, default="")  # set once, on verification
    maker = Column(String(100), nullable=False, default="")
    checker = Column(String(100))  # null until processed

    status = Column(status_type(BoardReceiptStatus), nullable=False, default=BoardReceiptStatus.PENDING)
    receipt_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
