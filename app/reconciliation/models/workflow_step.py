"""
Saga journal: one row per executed step of a multi-entity workflow write.
"""
import enum

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from app.database import Base, status_type, utcnow


class SagaType(str, enum.Enum):
    RECEIPT_GENERATION = "RECEIPT_GENERATION"
    EMPLOYER_VALIDATION = "EMPLOYER_VALIDATION"
    BOARD_PROCESSING = "BOARD_PROCESSING"
    REPAIR = "REPAIR"


class StepOutcome(str, enum.Enum):
    DONE = "DONE"
    FAILED = "FAILED"


class WorkflowStepModel(Base):
    __tablename__ = "workflow_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    saga_id = Column(String(36), nullable=False, index=True)
    saga_type = Column(status_type(SagaType), nullable=False)
    step = Column(String(50), nullable=False)  # RECEIPT_CREATED, PAYMENTS_LINKED, RECORDS_MARKED, ...
    outcome = Column(status_type(StepOutcome), nullable=False)

    # Identifying keys for detection and repair
    batch_id = Column(Integer, index=True)
    receipt_number = Column(String(40), index=True)
    reference = Column(String(40), index=True)  # employer receipt number or board reference

    detail = Column(JSON)  # payment_ids, record_ids, failed ids ...
    note = Column(Text)
    occurred_at = Column(DateTime, default=utcnow, nullable=False)
