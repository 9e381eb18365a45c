"""M-Pesa result callback: settlement, replays, and the always-200 acknowledgement."""
import pytest

from app.core.config import settings
from app.models.job_account import JobAccount
from app.models.order import Order
from app.models.purchase import Purchase
from app.services.orders.service import OrderService
from app.services.payments.service import MalformedCallback, parse_callback

ACK = {"ResultCode": 0, "ResultDesc": "Callback received successfully"}
CHECKOUT_ID = "ws_CO_191220191020363925"


def success_payload(checkout_id=CHECKOUT_ID, receipt="ABC123"):
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_id,
                "ResultCode": 0,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {
                    "Item": [
                        {"Name": "Amount", "Value": 3500},
                        {"Name": "MpesaReceiptNumber", "Value": receipt},
                        {"Name": "TransactionDate", "Value": 20191219102115},
                        {"Name": "PhoneNumber", "Value": 254712345678},
                    ]
                },
            }
        }
    }


def failure_payload(checkout_id=CHECKOUT_ID, code=1032, desc="Request cancelled by user"):
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_id,
                "ResultCode": code,
                "ResultDesc": desc,
            }
        }
    }


@pytest.fixture
def processing_order(db, make_job):
    job = make_job(price=3500, total_stock=10)
    svc = OrderService(db)
    order = svc.create_order(job.id, "Jane Wanjiku", "254712345678")
    assert svc.mark_processing(order.id, CHECKOUT_ID)
    return order


def _reload(db, order):
    db.expire_all()
    return db.get(Order, order.id)


class TestParseCallback:
    def test_extracts_metadata(self):
        data = parse_callback(success_payload())
        assert data["checkout_request_id"] == CHECKOUT_ID
        assert data["result_code"] == 0
        assert data["receipt_number"] == "ABC123"
        assert data["phone"] == "254712345678"
        assert data["amount"] == 3500

    def test_failure_has_no_receipt(self):
        data = parse_callback(failure_payload())
        assert data["result_code"] == 1032
        assert data["receipt_number"] is None

    @pytest.mark.parametrize("payload", [{}, {"Body": {}}, {"Body": {"stkCallback": {"ResultCode": 0}}}, []])
    def test_malformed(self, payload):
        with pytest.raises(MalformedCallback):
            parse_callback(payload)


class TestCallbackEndpoint:
    def test_success_completes_order(self, client, db, processing_order):
        r = client.post("/payments/mpesa/callback", json=success_payload())
        assert r.status_code == 200
        assert r.json() == ACK
        order = _reload(db, processing_order)
        assert order.payment_status == "completed"
        assert order.mpesa_receipt_number == "ABC123"
        assert order.completed_by == "callback"

    def test_success_fulfills_once(self, client, db, processing_order):
        client.post("/payments/mpesa/callback", json=success_payload())
        client.post("/payments/mpesa/callback", json=success_payload())
        db.expire_all()
        assert db.query(Purchase).filter(Purchase.order_id == processing_order.id).count() == 1
        assert db.get(JobAccount, processing_order.job_account_id).sold_count == 1

    def test_fulfillment_can_be_disabled(self, client, db, processing_order, monkeypatch):
        monkeypatch.setattr(settings, "fulfill_on_callback", False)
        client.post("/payments/mpesa/callback", json=success_payload())
        db.expire_all()
        assert _reload(db, processing_order).payment_status == "completed"
        assert db.query(Purchase).count() == 0
        assert db.get(JobAccount, processing_order.job_account_id).sold_count == 0

    def test_failure_marks_failed_without_receipt(self, client, db, processing_order):
        r = client.post("/payments/mpesa/callback", json=failure_payload())
        assert r.json() == ACK
        order = _reload(db, processing_order)
        assert order.payment_status == "failed"
        assert order.mpesa_receipt_number is None
        assert order.status_reason == "Request cancelled by user"

    def test_terminal_order_not_rewritten(self, client, db, processing_order):
        client.post("/payments/mpesa/callback", json=failure_payload())
        client.post("/payments/mpesa/callback", json=success_payload())
        order = _reload(db, processing_order)
        assert order.payment_status == "failed"
        assert order.mpesa_receipt_number is None

    def test_unknown_checkout_id_ignored(self, client, db, processing_order):
        r = client.post("/payments/mpesa/callback", json=success_payload(checkout_id="ws_CO_unknown"))
        assert r.status_code == 200
        assert _reload(db, processing_order).payment_status == "processing"

    def test_malformed_json_acknowledged(self, client):
        r = client.post(
            "/payments/mpesa/callback",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert r.status_code == 200
        assert r.json() == ACK

    def test_internal_error_acknowledged(self, client, processing_order):
        from unittest.mock import patch

        with patch("app.api.routes.payments.process_callback", side_effect=RuntimeError("db down")):
            r = client.post("/payments/mpesa/callback", json=success_payload())
        assert r.status_code == 200
        assert r.json() == ACK

    def test_token_checked_when_configured(self, client, db, processing_order, monkeypatch):
        monkeypatch.setattr(settings, "mpesa_callback_token", "cb-token")
        r = client.post("/payments/mpesa/callback?token=wrong", json=success_payload())
        assert r.json() == ACK
        assert _reload(db, processing_order).payment_status == "processing"

        client.post("/payments/mpesa/callback?token=cb-token", json=success_payload())
        assert _reload(db, processing_order).payment_status == "completed"
