"""
Uploaded batch metadata and its raw rows.
"""
import enum

from sqlalchemy import Column, Date, DateTime, Integer, Numeric, String, Text

from app.database import Base, status_type, utcnow


class BatchStatus(str, enum.Enum):
    UPLOADED = "UPLOADED"
    VALIDATED = "VALIDATED"
    REQUEST_GENERATED = "REQUEST_GENERATED"


class RecordStatus(str, enum.Enum):
    UPLOADED = "UPLOADED"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"
    REQUEST_GENERATED = "REQUEST_GENERATED"


class UploadedFileModel(Base):
    """One uploaded file (batch)"""
    __tablename__ = "uploaded_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=False)
    stored_path = Column(String(512))  # set by the ingestion side, may be empty
    file_hash = Column(String(64), nullable=False, index=True)  # sha256 hex
    file_type = Column(String(16), nullable=False, default="json")  # csv, xls, xlsx, json
    uploaded_by = Column(String(100))
    file_reference_number = Column(String(40), nullable=False, unique=True)

    total_records = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    status = Column(status_type(BatchStatus), nullable=False, default=BatchStatus.UPLOADED)

    upload_date = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class WorkerUploadedDataModel(Base):
    """Raw row of an uploaded batch"""
    __tablename__ = "worker_uploaded_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_id = Column(Integer, nullable=False, index=True)
    row_num = Column(Integer, nullable=False)  # 1-based, stable within the batch

    # Worker identity
    worker_id = Column(String(50))
    worker_name = Column(String(100))
    company_name = Column(String(100))
    department = Column(String(50))
    position = Column(String(50))
    employer_id = Column(String(50))
    toli_id = Column(String(50))

    # Payment details
    bank_account = Column(String(20))
    phone_number = Column(String(15))
    email = Column(String(100))
    work_date = Column(Date)
    hours_worked = Column(Numeric(6, 2))
    hourly_rate = Column(Numeric(10, 2))
    payment_amount = Column(Numeric(12, 2))

    status = Column(status_type(RecordStatus), nullable=False, default=RecordStatus.UPLOADED, index=True)
    rejection_reason = Column(Text)  # only when REJECTED
    receipt_number = Column(String(40), index=True)  # set by receipt generation

    created_at = Column(DateTime, default=utcnow, nullable=False)
    validated_at = Column(DateTime)
    processed_at = Column(DateTime)
