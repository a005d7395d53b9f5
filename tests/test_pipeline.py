"""
Unit tests for the worker pipeline — validator, status projection, numbering, receipt generation.
"""
import itertools
import re
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from app.database import utcnow
from app.errors import GenerationExhaustedError
from app.numbering import (
    BOARD_RECEIPT_PREFIX,
    RECEIPT_PREFIX,
    daily_sequence_candidate,
    generate_unique_number,
    timestamp_candidate,
)
from app.reconciliation.journal import list_steps
from app.reconciliation.models import StepOutcome
from app.worker import batches, ledger
from app.worker.models import (
    BatchStatus,
    RecordStatus,
    WorkerPaymentModel,
    WorkerPaymentReceiptModel,
    WorkerPaymentStatus,
    WorkerUploadedDataModel,
)
from app.worker.pipeline import aggregator, generate_receipt, validate_batch
from app.worker.pipeline.validator import check_record, validate_records, years_before
from app.worker.pipeline.workflow_status import (
    NextAction,
    WorkflowStatus,
    determine_overall_status,
    project_record_histogram,
    project_status,
)


def _records(db, batch_id):
    return (
        db.query(WorkerUploadedDataModel)
        .filter(WorkerUploadedDataModel.file_id == batch_id)
        .order_by(WorkerUploadedDataModel.row_num)
        .all()
    )


# =====================================================================
# Batch tracker
# =====================================================================
class TestBatches:
    def test_register_assigns_rows_and_reference(self, db, make_batch, make_row):
        batch = make_batch([make_row(), make_row(worker_id="W002")])
        assert batch.status == BatchStatus.UPLOADED
        assert batch.total_records == 2
        assert re.fullmatch(r"UPL-\d{8}-\d{6}-\d{3}", batch.file_reference_number)
        assert len(batch.file_hash) == 64
        assert [r.row_num for r in _records(db, batch.id)] == [1, 2]

    def test_same_rows_same_hash(self, make_row):
        rows = [make_row()]
        assert batches.compute_file_hash(rows) == batches.compute_file_hash([make_row()])
        assert batches.compute_file_hash(rows) != batches.compute_file_hash([make_row(worker_id="W9")])

    def test_delete_batch(self, db, make_batch, make_row):
        batch = make_batch([make_row(), make_row()])
        assert batches.delete_batch(db, batch.id) == 2
        assert _records(db, batch.id) == []


# =====================================================================
# Validator
# =====================================================================
class TestValidator:
    def test_valid_record(self, db, make_batch, make_row):
        batch = make_batch([make_row()])
        counts = validate_records(db, batch.id)
        assert counts == {"validated": 1, "rejected": 0}
        record = _records(db, batch.id)[0]
        assert record.status == RecordStatus.VALIDATED
        assert record.rejection_reason is None
        assert record.validated_at is not None

    def test_collects_every_violation(self, db, make_batch, make_row):
        batch = make_batch([make_row(
            worker_name=None,
            bank_account="12-34",
            phone_number="12ab",
            email="not-an-email",
            hours_worked=Decimal("30"),
        )])
        validate_records(db, batch.id)
        reason = _records(db, batch.id)[0].rejection_reason
        assert "Worker name is required." in reason
        assert "Bank account must be between 10-20 characters." in reason
        assert "Bank account must contain only letters and digits." in reason
        assert "Invalid phone number format." in reason
        assert "Invalid email format." in reason
        assert "Hours worked cannot exceed 24 hours per day." in reason

    def test_work_date_bounds(self, db, make_batch, make_row):
        today = utcnow().date()
        batch = make_batch([
            make_row(work_date=today + timedelta(days=2)),
            make_row(work_date=today - timedelta(days=400)),
        ])
        validate_records(db, batch.id, today=today)
        future, stale = _records(db, batch.id)
        assert "Work date cannot be in the future." in future.rejection_reason
        assert "Work date cannot be more than 1 year old." in stale.rejection_reason

    def test_work_date_window_is_a_calendar_year(self, db, make_batch, make_row):
        # 2028-03-01 minus 365 days is 2027-03-02; a calendar year back is 2027-03-01
        batch = make_batch([
            make_row(work_date=date(2027, 3, 1)),
            make_row(work_date=date(2027, 2, 28)),
        ])
        validate_records(db, batch.id, today=date(2028, 3, 1))
        on_boundary, older = _records(db, batch.id)
        assert on_boundary.status == RecordStatus.VALIDATED
        assert older.status == RecordStatus.REJECTED
        assert "Work date cannot be more than 1 year old." in older.rejection_reason

    def test_years_before_leap_day(self):
        assert years_before(date(2028, 2, 29), 1) == date(2027, 2, 28)
        assert years_before(date(2028, 3, 1), 1) == date(2027, 3, 1)

    def test_ceilings(self, db, make_batch, make_row):
        batch = make_batch([make_row(
            hours_worked=None,
            hourly_rate=Decimal("20000"),
            payment_amount=Decimal("2000000"),
        )])
        validate_records(db, batch.id)
        reason = _records(db, batch.id)[0].rejection_reason
        assert "Hourly rate seems unreasonably high (max 10,000)." in reason
        assert "Payment amount seems unreasonably high (max 1,000,000)." in reason

    def test_amount_within_tolerance(self, db, make_batch, make_row):
        batch = make_batch([make_row(
            hours_worked=Decimal("7.5"), hourly_rate=Decimal("133.33"), payment_amount=Decimal("999.98"),
        )])
        validate_records(db, batch.id)
        assert _records(db, batch.id)[0].status == RecordStatus.VALIDATED

    def test_only_uploaded_records_are_selected(self, db, make_batch, make_row):
        batch = make_batch([make_row(), make_row(bank_account=None)])
        validate_records(db, batch.id)
        assert validate_records(db, batch.id) == {"validated": 0, "rejected": 0}

    def test_deterministic_on_reset(self, db, make_batch, make_row):
        batch = make_batch([make_row(bank_account="SHORT", payment_amount=Decimal("1650"))])
        validate_records(db, batch.id)
        record = _records(db, batch.id)[0]
        first = (record.status, record.rejection_reason)

        record.status = RecordStatus.UPLOADED
        db.commit()
        validate_records(db, batch.id)
        record = _records(db, batch.id)[0]
        assert (record.status, record.rejection_reason) == first

    def test_check_record_passes_for_clean_row(self, db, make_batch, make_row):
        batch = make_batch([make_row()])
        assert check_record(_records(db, batch.id)[0], utcnow().date()) == []


# =====================================================================
# Workflow status projection
# =====================================================================
class TestWorkflowStatus:
    def test_rules_in_order(self):
        assert project_status({"PAYMENT_REQUESTED": 1, "UPLOADED": 5}).workflow_status == WorkflowStatus.PROCESSED
        assert project_status({"GENERATED": 2}).workflow_status == WorkflowStatus.PROCESSED
        assert project_status({"FAILED": 1, "UPLOADED": 3}).workflow_status == WorkflowStatus.VALIDATED
        assert project_status({"UPLOADED": 3}).workflow_status == WorkflowStatus.UPLOADED
        assert project_status({}).workflow_status == WorkflowStatus.UNKNOWN

    def test_next_action(self):
        assert project_status({"UPLOADED": 1}).next_action == NextAction.START_VALIDATION
        assert project_status({"VALIDATED": 2}).next_action == NextAction.GENERATE_RECEIPT
        assert project_status({"FAILED": 2}).next_action == NextAction.START_VALIDATION
        assert project_status({"GENERATED": 2}).next_action == NextAction.RECEIPT_GENERATED

    def test_total_over_histograms(self):
        keys = ["UPLOADED", "VALIDATED", "FAILED", "PAYMENT_REQUESTED", "GENERATED"]
        for values in itertools.product([0, 1, 7], repeat=len(keys)):
            projection = project_status(dict(zip(keys, values)))
            assert projection.workflow_status in set(WorkflowStatus)

    def test_ignores_unknown_keys(self):
        assert project_status({"SOMETHING": 4}).workflow_status == WorkflowStatus.UNKNOWN

    def test_record_histogram_mapping(self):
        projection = project_record_histogram({"UPLOADED": 0, "VALIDATED": 0, "REJECTED": 3, "REQUEST_GENERATED": 0})
        assert projection.workflow_status == WorkflowStatus.VALIDATED
        assert projection.next_action == NextAction.START_VALIDATION

    def test_overall_status(self):
        assert determine_overall_status({}) == "EMPTY"
        assert determine_overall_status({"REQUEST_GENERATED": 2}) == "REQUEST_GENERATED"
        assert determine_overall_status({"VALIDATED": 1, "REQUEST_GENERATED": 1}) == "PARTIALLY_PROCESSED"
        assert determine_overall_status({"VALIDATED": 3}) == "VALIDATED"
        assert determine_overall_status({"REJECTED": 3, "VALIDATED": 1}) == "MOSTLY_REJECTED"
        assert determine_overall_status({"UPLOADED": 3, "REJECTED": 1}) == "PENDING_VALIDATION"
        assert determine_overall_status({"UPLOADED": 1, "REJECTED": 1}) == "MIXED"


# =====================================================================
# Numbering
# =====================================================================
class TestNumbering:
    def test_timestamp_format(self):
        number = timestamp_candidate(RECEIPT_PREFIX, now=datetime(2025, 1, 2, 3, 4, 5))
        assert re.fullmatch(r"RCP-20250102-030405-\d{3}", number)

    def test_sortable_by_second(self):
        earlier = timestamp_candidate(RECEIPT_PREFIX, now=datetime(2025, 1, 2, 3, 4, 5))
        later = timestamp_candidate(RECEIPT_PREFIX, now=datetime(2025, 1, 2, 3, 4, 6))
        assert earlier[:-4] < later[:-4]

    def test_retries_on_collision(self):
        candidates = iter(["RCP-1", "RCP-2", "RCP-3"])
        sleeps = []
        number = generate_unique_number(
            RECEIPT_PREFIX,
            candidate=lambda: next(candidates),
            exists=lambda n: n != "RCP-3",
            sleep=sleeps.append,
        )
        assert number == "RCP-3"
        assert len(sleeps) == 2

    def test_exhaustion(self):
        with pytest.raises(GenerationExhaustedError) as exc:
            generate_unique_number(
                RECEIPT_PREFIX,
                candidate=lambda: "RCP-SAME",
                exists=lambda n: True,
                max_attempts=10,
                sleep=lambda s: None,
            )
        assert exc.value.attempts == 10
        assert exc.value.status_code == 503

    def test_daily_sequence(self, db):
        now = datetime(2025, 1, 1, 12, 0, 0)
        assert daily_sequence_candidate(db, BOARD_RECEIPT_PREFIX, now=now) == "BRD-20250101-001"
        assert daily_sequence_candidate(db, BOARD_RECEIPT_PREFIX, now=now) == "BRD-20250101-002"
        assert daily_sequence_candidate(db, BOARD_RECEIPT_PREFIX, now=datetime(2025, 1, 2)) == "BRD-20250102-001"


# =====================================================================
# Receipt generation
# =====================================================================
class TestReceiptGeneration:
    def test_three_record_scenario(self, db, make_batch, make_row):
        batch = make_batch([
            make_row(bank_account=None),
            make_row(worker_id="W002"),
            make_row(worker_id="W003", payment_amount=Decimal("1650")),
        ])
        summary = validate_batch(db, batch.id)
        assert summary["validated"] == 1
        assert summary["rejected"] == 2

        missing, consistent, inconsistent = _records(db, batch.id)
        assert consistent.status == RecordStatus.VALIDATED
        assert missing.status == inconsistent.status == RecordStatus.REJECTED
        assert "Bank account is required." in missing.rejection_reason
        assert "calculated: 1600.00" in inconsistent.rejection_reason
        assert missing.rejection_reason != inconsistent.rejection_reason

        result = generate_receipt(db, batch.id)
        assert result.processed_count == 1
        receipt = db.query(WorkerPaymentReceiptModel).filter_by(receipt_number=result.receipt_number).one()
        assert receipt.total_records == 1
        assert Decimal(receipt.total_amount) == Decimal("1600.00")

    def test_nothing_to_do(self, db, make_batch, make_row):
        batch = make_batch([make_row(bank_account=None)])
        validate_batch(db, batch.id)
        result = generate_receipt(db, batch.id)
        assert result.processed_count == 0
        assert result.receipt_number is None
        assert db.query(WorkerPaymentReceiptModel).count() == 0

    def test_totals_and_links(self, db, make_batch, make_row):
        batch = make_batch([
            make_row(),
            make_row(worker_id="W002", hours_worked=Decimal("3.5"), hourly_rate=Decimal("99.99"),
                     payment_amount=Decimal("349.97")),
            make_row(worker_id="W003", hours_worked=None, hourly_rate=None, payment_amount=Decimal("0.01")),
        ])
        validate_batch(db, batch.id)
        result = generate_receipt(db, batch.id)

        receipt = db.query(WorkerPaymentReceiptModel).filter_by(receipt_number=result.receipt_number).one()
        payments = ledger.find_by_receipt_number(db, result.receipt_number)
        assert receipt.total_records == len(payments) == 3
        assert Decimal(receipt.total_amount) == sum(Decimal(p.payment_amount) for p in payments)
        assert Decimal(receipt.total_amount) == Decimal("1949.98")
        assert all(p.status == WorkerPaymentStatus.VALIDATED for p in payments)
        assert all(p.request_reference_number.startswith("WRK-") for p in payments)
        assert all(p.aadhar == "" and p.pan == "" for p in payments)
        assert ledger.status_counts(db, batch.id) == {"VALIDATED": 3}

        records = _records(db, batch.id)
        assert all(r.status == RecordStatus.REQUEST_GENERATED for r in records)
        assert all(r.receipt_number == result.receipt_number and r.processed_at for r in records)

        db.refresh(batch)
        assert batch.status == BatchStatus.REQUEST_GENERATED
        assert batch.success_count == 3

    def test_every_linked_payment_has_one_receipt(self, db, make_batch, make_row):
        for _ in range(2):
            batch = make_batch([make_row(), make_row(worker_id="W002")])
            validate_batch(db, batch.id)
            generate_receipt(db, batch.id)

        for payment in db.query(WorkerPaymentModel).all():
            matches = db.query(WorkerPaymentReceiptModel).filter_by(receipt_number=payment.receipt_number).all()
            assert len(matches) == 1
            created = [s for s in list_steps(db, receipt_number=payment.receipt_number) if s.step == "RECEIPT_CREATED"]
            assert payment.id in created[0].detail["payment_ids"]

    def test_journal(self, db, make_batch, make_row):
        batch = make_batch([make_row()])
        validate_batch(db, batch.id)
        result = generate_receipt(db, batch.id)
        steps = list_steps(db, saga_id=result.saga_id)
        assert [s.step for s in steps] == ["RECEIPT_CREATED", "PAYMENTS_LINKED", "RECORDS_MARKED"]
        assert all(s.outcome == StepOutcome.DONE for s in steps)

    def test_link_failure_is_skipped(self, db, make_batch, make_row, monkeypatch):
        original = ledger.assign_receipt_number

        def flaky(session, payment, receipt_number):
            if payment.worker_reference == "W002":
                raise RuntimeError("link failed")
            original(session, payment, receipt_number)

        monkeypatch.setattr(ledger, "assign_receipt_number", flaky)
        batch = make_batch([make_row(), make_row(worker_id="W002")])
        validate_batch(db, batch.id)
        result = generate_receipt(db, batch.id)

        assert len(result.unlinked_payment_ids) == 1
        assert result.processed_count == 2
        receipt = db.query(WorkerPaymentReceiptModel).filter_by(receipt_number=result.receipt_number).one()
        assert receipt.total_records == 2
        assert len(ledger.find_by_receipt_number(db, result.receipt_number)) == 1

        linked = [s for s in list_steps(db, saga_id=result.saga_id) if s.step == "PAYMENTS_LINKED"][0]
        assert linked.outcome == StepOutcome.FAILED
        assert linked.detail["failed_payment_ids"] == result.unlinked_payment_ids

    def test_mark_failure_is_skipped(self, db, make_batch, make_row, monkeypatch):
        original = aggregator.mark_request_generated

        def flaky(session, record, receipt_number):
            if record.row_num == 1:
                raise RuntimeError("mark failed")
            original(session, record, receipt_number)

        monkeypatch.setattr(aggregator, "mark_request_generated", flaky)
        batch = make_batch([make_row(), make_row(worker_id="W002")])
        validate_batch(db, batch.id)
        result = generate_receipt(db, batch.id)

        assert result.processed_count == 1
        first, second = _records(db, batch.id)
        assert result.failed_record_ids == [first.id]
        assert first.status == RecordStatus.VALIDATED
        assert second.status == RecordStatus.REQUEST_GENERATED
