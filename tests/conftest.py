"""
Shared pytest fixtures — in‑memory SQLite + FastAPI TestClient.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, enable_sqlite_savepoints, get_db
from app.main import app, import_models

import_models()

# StaticPool ensures all connections share the same in-memory database
_ENGINE = enable_sqlite_savepoints(create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
))
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)

WORK_DATE = date.today() - timedelta(days=3)


def _make_row(**overrides):
    """A raw upload row that passes every validation rule."""
    row = {
        "worker_id": "W001",
        "worker_name": "Ravi Kumar",
        "employer_id": "EMP01",
        "toli_id": "TOLI01",
        "bank_account": "ACC1234567890",
        "phone_number": "+919876543210",
        "email": "ravi@example.com",
        "work_date": WORK_DATE,
        "hours_worked": Decimal("8"),
        "hourly_rate": Decimal("200"),
        "payment_amount": Decimal("1600"),
    }
    row.update(overrides)
    return row


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_row():
    return _make_row


@pytest.fixture()
def make_batch(db):
    """Register a batch of rows directly through the tracker."""
    from app.worker.batches import register_batch

    def _make(rows, filename="payments.csv"):
        return register_batch(db, filename=filename, uploaded_by="uploader", file_type="csv", records=rows)

    return _make


@pytest.fixture()
def worker_receipt(db, make_batch):
    """A generated worker receipt over two valid rows; returns its number."""
    from app.worker.pipeline import generate_receipt, validate_batch

    batch = make_batch([
        _make_row(),
        _make_row(worker_id="W002", worker_name="Sita Devi", bank_account="ACC9876543210",
                  hours_worked=Decimal("6"), hourly_rate=Decimal("150"), payment_amount=Decimal("900")),
    ])
    validate_batch(db, batch.id)
    return generate_receipt(db, batch.id).receipt_number
