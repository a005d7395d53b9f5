"""
Integration tests for the PaymentFlow HTTP endpoints.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.config import settings

WORK_DATE = (date.today() - timedelta(days=5)).isoformat()


def _row(**overrides):
    row = {
        "worker_id": "W001",
        "worker_name": "Ravi Kumar",
        "employer_id": "EMP01",
        "toli_id": "TOLI01",
        "bank_account": "ACC1234567890",
        "work_date": WORK_DATE,
        "hours_worked": "8",
        "hourly_rate": "200",
        "payment_amount": "1600.00",
    }
    row.update(overrides)
    return row


def _upload(client, rows):
    resp = client.post(
        "/api/worker/uploaded-data/batches",
        json={"filename": "payments.csv", "file_type": "csv", "uploaded_by": "uploader", "records": rows},
    )
    assert resp.status_code == 201
    return resp.json()["id"]


def _receipt(client, rows=None):
    batch_id = _upload(client, rows or [_row(), _row(worker_id="W002", bank_account="ACC9876543210")])
    client.post(f"/api/worker/uploaded-data/batches/{batch_id}/validate")
    return client.post(f"/api/worker/uploaded-data/batches/{batch_id}/generate-receipt").json()["receipt_number"]


class TestService:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "PaymentFlow"
        assert body["environment"] == settings.ENVIRONMENT

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestUploadedData:
    def test_register_and_get(self, client):
        batch_id = _upload(client, [_row()])
        resp = client.get(f"/api/worker/uploaded-data/batches/{batch_id}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "UPLOADED"
        assert body["total_records"] == 1
        assert body["file_reference_number"].startswith("UPL-")

    def test_summary_drives_next_action(self, client):
        batch_id = _upload(client, [_row(), _row(worker_id="W002", bank_account=None)])
        summary = client.get(f"/api/worker/uploaded-data/batches/{batch_id}/summary").json()
        assert summary["workflow_status"] == "UPLOADED"
        assert summary["next_action"] == "START_VALIDATION"
        assert summary["overall_status"] == "PENDING_VALIDATION"

        resp = client.post(f"/api/worker/uploaded-data/batches/{batch_id}/validate")
        assert resp.json()["validated"] == 1
        assert resp.json()["rejected"] == 1

        summary = client.get(f"/api/worker/uploaded-data/batches/{batch_id}/summary").json()
        assert summary["workflow_status"] == "VALIDATED"
        assert summary["next_action"] == "GENERATE_RECEIPT"
        assert summary["ready_for_payment"] is True
        assert Decimal(summary["total_validated_amount"]) == Decimal("1600.00")
        assert summary["status_summary"] == {"UPLOADED": 0, "VALIDATED": 1, "REJECTED": 1, "REQUEST_GENERATED": 0}

        client.post(f"/api/worker/uploaded-data/batches/{batch_id}/generate-receipt")
        summary = client.get(f"/api/worker/uploaded-data/batches/{batch_id}/summary").json()
        assert summary["workflow_status"] == "PROCESSED"
        assert summary["next_action"] == "RECEIPT_GENERATED"

    def test_records_filtered_by_status(self, client):
        batch_id = _upload(client, [_row(), _row(worker_id="W002", bank_account=None)])
        client.post(f"/api/worker/uploaded-data/batches/{batch_id}/validate")
        page = client.get(f"/api/worker/uploaded-data/batches/{batch_id}/records?status=rejected").json()
        assert page["total_elements"] == 1
        assert page["content"][0]["row_num"] == 2
        assert "Bank account is required." in page["content"][0]["rejection_reason"]

    def test_generate_without_validated_records(self, client):
        batch_id = _upload(client, [_row(bank_account=None)])
        client.post(f"/api/worker/uploaded-data/batches/{batch_id}/validate")
        body = client.post(f"/api/worker/uploaded-data/batches/{batch_id}/generate-receipt").json()
        assert body["processed_count"] == 0
        assert body["receipt_number"] is None

    def test_records_by_receipt(self, client):
        number = _receipt(client)
        rows = client.get(f"/api/worker/uploaded-data/receipt/{number}").json()
        assert [r["status"] for r in rows] == ["REQUEST_GENERATED"] * 2

    def test_delete(self, client):
        batch_id = _upload(client, [_row()])
        assert client.delete(f"/api/worker/uploaded-data/batches/{batch_id}").json()["records_deleted"] == 1
        assert client.get(f"/api/worker/uploaded-data/batches/{batch_id}").status_code == 404

    def test_unknown_batch(self, client):
        resp = client.post("/api/worker/uploaded-data/batches/999/validate")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"
        assert resp.json()["error"]["identifier"] == "999"

    def test_page_envelope(self, client):
        for _ in range(3):
            _upload(client, [_row()])
        page = client.get("/api/worker/uploaded-data/batches?size=2&page=0").json()
        assert page["total_elements"] == 3
        assert page["total_pages"] == 2
        assert page["has_next"] is True
        assert page["has_previous"] is False
        assert len(page["content"]) == 2


class TestFilters:
    def test_invalid_status(self, client):
        resp = client.get("/api/board-receipts?status=DONE")
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "INVALID_FILTER"
        assert error["allowed"] == ["PENDING", "PROCESSED", "REJECTED", "VERIFIED"]

    def test_sort_outside_allow_list(self, client):
        resp = client.get("/api/worker-payments?sort_by=bank_account")
        assert resp.status_code == 400

    def test_reversed_date_window(self, client):
        resp = client.get("/api/employer/receipts?start_date=2025-02-01&end_date=2025-01-01")
        assert resp.status_code == 400


class TestWorkflow:
    def test_full_chain(self, client):
        number = _receipt(client)
        receipt = client.get(f"/api/worker/receipts/{number}").json()
        assert receipt["total_records"] == 2
        assert Decimal(receipt["total_amount"]) == Decimal("3200.00")

        sent = client.post(f"/api/worker/receipts/{number}/send-to-employer").json()
        assert sent["employer_receipt_status"] == "PENDING"
        assert sent["payments_requested"] == 2

        validated = client.post(
            "/api/employer/receipts/validate",
            json={"worker_receipt_number": number, "transaction_reference": "TXN-A", "validated_by": "employer1"},
        ).json()
        assert validated["receipt"]["status"] == "SEND TO BOARD"
        assert validated["receipt"]["employer_receipt_number"] == sent["employer_receipt_number"]
        assert validated["board_receipt_created"] is True
        assert validated["payments_initiated"] == 2

        board_ref = validated["board_reference"]
        processed = client.post(
            "/api/board-receipts/process",
            json={"board_ref": board_ref, "utr_number": "UTR123", "checker": "alice"},
        ).json()
        assert processed["status"] == "VERIFIED"
        assert processed["utr_number"] == "UTR123"

        payments = client.get(f"/api/worker-payments?receipt_number={number}").json()
        assert {p["status"] for p in payments["content"]} == {"PAYMENT_PROCESSED"}

        chain = client.get(f"/api/reconciliation/chain/{number}").json()
        assert chain["stage"] == "BOARD_VERIFIED"
        assert chain["employer_receipt"]["status"] == "VALIDATED"
        assert chain["board_receipt"]["board_reference"] == board_ref

        by_worker = client.get(f"/api/employer/receipts/by-worker-receipt/{number}").json()
        assert by_worker["transaction_reference"] == "TXN-A"
        assert client.get(f"/api/board-receipts/{board_ref}").json()["checker"] == "alice"

    def test_double_processing_conflicts(self, client):
        number = _receipt(client)
        validated = client.post(
            "/api/employer/receipts/validate",
            json={"worker_receipt_number": number, "transaction_reference": "TXN-A", "validated_by": "employer1"},
        ).json()
        board_ref = validated["board_reference"]
        client.post("/api/board-receipts/process", json={"board_ref": board_ref, "utr_number": "UTR123", "checker": "alice"})

        resp = client.post(
            "/api/board-receipts/process",
            json={"board_ref": board_ref, "utr_number": "UTR999", "checker": "bob"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["current_status"] == "VERIFIED"
        assert client.get(f"/api/board-receipts/{board_ref}").json()["utr_number"] == "UTR123"

        resp = client.post(
            "/api/employer/receipts/validate",
            json={"worker_receipt_number": number, "transaction_reference": "TXN-B", "validated_by": "employer1"},
        )
        assert resp.status_code == 409

    def test_validate_unknown_receipt(self, client):
        resp = client.post(
            "/api/employer/receipts/validate",
            json={"worker_receipt_number": "RCP-NOPE", "transaction_reference": "TXN-A", "validated_by": "e"},
        )
        assert resp.status_code == 404

    def test_reject(self, client):
        number = _receipt(client)
        board_ref = client.post(
            "/api/employer/receipts/validate",
            json={"worker_receipt_number": number, "transaction_reference": "TXN-A", "validated_by": "employer1"},
        ).json()["board_reference"]
        resp = client.post("/api/board-receipts/reject", json={"board_ref": board_ref, "checker": "alice"})
        assert resp.json()["status"] == "REJECTED"
        pending = client.get("/api/board-receipts?status=pending").json()
        assert pending["total_elements"] == 0

    def test_reject_then_revalidate(self, client):
        number = _receipt(client)
        payload = {"worker_receipt_number": number, "transaction_reference": "TXN-A", "validated_by": "employer1"}
        board_ref = client.post("/api/employer/receipts/validate", json=payload).json()["board_reference"]
        client.post("/api/board-receipts/reject", json={"board_ref": board_ref, "checker": "alice"})

        payload["transaction_reference"] = "TXN-B"
        again = client.post("/api/employer/receipts/validate", json=payload).json()
        assert again["board_reference"] == board_ref
        assert client.get(f"/api/board-receipts/{board_ref}").json()["status"] == "PENDING"

        processed = client.post(
            "/api/board-receipts/process",
            json={"board_ref": board_ref, "utr_number": "UTR123", "checker": "bob"},
        ).json()
        assert processed["status"] == "VERIFIED"
        chain = client.get(f"/api/reconciliation/chain/{number}").json()
        assert chain["employer_receipt"]["status"] == "VALIDATED"

    def test_missing_identity_is_rejected(self, client):
        resp = client.post("/api/board-receipts/process", json={"board_ref": "BRD-1", "utr_number": "UTR1"})
        assert resp.status_code == 422


class TestReconciliationApi:
    def test_steps_and_anomalies(self, client):
        number = _receipt(client)
        steps = client.get(f"/api/reconciliation/steps?receipt_number={number}").json()
        assert [s["step"] for s in steps] == ["RECEIPT_CREATED", "PAYMENTS_LINKED", "RECORDS_MARKED"]
        assert client.get("/api/reconciliation/anomalies").json() == []

        repaired = client.post("/api/reconciliation/repair", json={"actor": "ops"}).json()
        assert repaired["repaired"] == 0

    def test_chain_unknown(self, client):
        assert client.get("/api/reconciliation/chain/RCP-NOPE").status_code == 404


class TestGenerationExhausted:
    def test_maps_to_503(self, client, monkeypatch):
        from app.worker import receipts

        monkeypatch.setattr(settings, "RECEIPT_NUMBER_BACKOFF_SECONDS", 0)
        monkeypatch.setattr(receipts, "_number_exists", lambda db, number: True)
        batch_id = _upload(client, [_row()])
        client.post(f"/api/worker/uploaded-data/batches/{batch_id}/validate")

        resp = client.post(f"/api/worker/uploaded-data/batches/{batch_id}/generate-receipt")
        assert resp.status_code == 503
        error = resp.json()["error"]
        assert error["code"] == "GENERATION_EXHAUSTED"
        assert error["retryable"] is True
        assert error["attempts"] == settings.RECEIPT_NUMBER_MAX_ATTEMPTS
        assert "message" in error

    def test_message_hidden_outside_debug(self, client, monkeypatch):
        from app.worker import receipts

        monkeypatch.setattr(settings, "DEBUG", False)
        monkeypatch.setattr(settings, "RECEIPT_NUMBER_BACKOFF_SECONDS", 0)
        monkeypatch.setattr(receipts, "_number_exists", lambda db, number: True)
        batch_id = _upload(client, [_row()])
        client.post(f"/api/worker/uploaded-data/batches/{batch_id}/validate")

        error = client.post(f"/api/worker/uploaded-data/batches/{batch_id}/generate-receipt").json()["error"]
        assert error["code"] == "GENERATION_EXHAUSTED"
        assert error["retryable"] is True
        assert "message" not in error

    def test_client_errors_keep_message_outside_debug(self, client, monkeypatch):
        monkeypatch.setattr(settings, "DEBUG", False)
        error = client.get("/api/board-receipts/BRD-NOPE").json()["error"]
        assert error["message"] == "BoardReceipt not found: BRD-NOPE"
