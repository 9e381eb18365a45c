"""OrderService state machine: forward-only transitions and exactly-once fulfillment."""
from datetime import timedelta

import pytest

from app.models.audit_log import AuditLog
from app.models.job_account import JobAccount
from app.models.purchase import Purchase
from app.services.orders.service import OrderService
from app.services.payments.errors import (
    InvalidOrderTransition,
    InvalidPaymentRequest,
    JobAccountNotFound,
    OrderNotFound,
    OutOfStock,
)


@pytest.fixture
def svc(db):
    return OrderService(db)


@pytest.fixture
def job(make_job):
    return make_job(price=3500, total_stock=5)


def _sold(db, job):
    db.expire_all()
    return db.get(JobAccount, job.id).sold_count


class TestCreate:
    def test_amount_comes_from_job_price(self, svc, job):
        order = svc.create_order(job.id, "Jane Wanjiku", "254712345678", "jane@example.com")
        assert order.amount == 3500
        assert order.payment_status == "pending"
        assert order.user_id is None

    def test_unknown_job(self, svc):
        with pytest.raises(JobAccountNotFound):
            svc.create_order("7f1d2a3c-0000-4000-8000-000000000000", "Jane Wanjiku", "254712345678")

    def test_unavailable_job(self, svc, make_job):
        job = make_job(is_available=False)
        with pytest.raises(InvalidPaymentRequest):
            svc.create_order(job.id, "Jane Wanjiku", "254712345678")

    def test_out_of_stock(self, svc, make_job):
        job = make_job(total_stock=2, sold_count=2)
        with pytest.raises(OutOfStock):
            svc.create_order(job.id, "Jane Wanjiku", "254712345678")

    def test_untracked_stock_is_never_out(self, svc, make_job):
        job = make_job(total_stock=None, sold_count=500)
        assert svc.create_order(job.id, "Jane Wanjiku", "254712345678").payment_status == "pending"


class TestTransitions:
    def test_mark_processing_only_from_pending(self, svc, job):
        order = svc.create_order(job.id, "Jane Wanjiku", "254712345678")
        assert svc.mark_processing(order.id, "ws_CO_1") is True
        assert svc.mark_processing(order.id, "ws_CO_2") is False
        assert svc.get_order(order.id).mpesa_checkout_request_id == "ws_CO_1"

    def test_callback_requires_processing(self, svc, job):
        order = svc.create_order(job.id, "Jane Wanjiku", "254712345678")
        # still pending: the callback cannot match it
        assert svc.apply_callback_result("ws_CO_1", 0, "ok", "ABC123") is None
        assert svc.get_order(order.id).payment_status == "pending"

    def test_duplicate_callback_is_noop(self, svc, db, job):
        order = svc.create_order(job.id, "Jane Wanjiku", "254712345678")
        svc.mark_processing(order.id, "ws_CO_1")
        assert svc.apply_callback_result("ws_CO_1", 0, "ok", "ABC123").payment_status == "completed"
        assert svc.apply_callback_result("ws_CO_1", 0, "ok", "ABC123") is None
        assert svc.apply_callback_result("ws_CO_1", 1032, "cancelled", None) is None
        assert _sold(db, job) == 1
        assert db.query(Purchase).count() == 1

    def test_purchase_runs_program_days(self, svc, db, job):
        order = svc.create_order(job.id, "Jane Wanjiku", "254712345678")
        svc.mark_processing(order.id, "ws_CO_1")
        svc.apply_callback_result("ws_CO_1", 0, "ok", "ABC123")
        purchase = db.query(Purchase).filter(Purchase.order_id == order.id).one()
        assert purchase.end_date - purchase.start_date == timedelta(days=30)
        assert purchase.status == "active"


class TestAdminSettlement:
    def test_approve_pending_fulfills_exactly_once(self, svc, db, job):
        order = svc.create_order(job.id, "Jane Wanjiku", "254712345678")
        approved = svc.approve(order.id, "QK12ABC34", actor_id="admin-1")
        assert approved.payment_status == "completed"
        assert approved.completed_by == "admin"
        assert approved.mpesa_receipt_number == "QK12ABC34"
        assert _sold(db, job) == 1

        with pytest.raises(InvalidOrderTransition):
            svc.approve(order.id, "QK12ABC34", actor_id="admin-1")
        assert _sold(db, job) == 1
        assert db.query(Purchase).filter(Purchase.order_id == order.id).count() == 1

    def test_approve_after_callback_conflicts(self, svc, db, job):
        order = svc.create_order(job.id, "Jane Wanjiku", "254712345678")
        svc.mark_processing(order.id, "ws_CO_1")
        svc.apply_callback_result("ws_CO_1", 0, "ok", "ABC123")
        with pytest.raises(InvalidOrderTransition):
            svc.approve(order.id, "OTHER1", actor_id="admin-1")
        assert _sold(db, job) == 1
        assert svc.get_order(order.id).mpesa_receipt_number == "ABC123"

    def test_callback_after_approval_ignored(self, svc, db, job):
        order = svc.create_order(job.id, "Jane Wanjiku", "254712345678")
        svc.mark_processing(order.id, "ws_CO_1")
        svc.approve(order.id, "QK12ABC34", actor_id="admin-1")
        assert svc.apply_callback_result("ws_CO_1", 0, "ok", "ABC123") is None
        assert _sold(db, job) == 1

    def test_reject_then_approve_conflicts(self, svc, db, job):
        order = svc.create_order(job.id, "Jane Wanjiku", "254712345678")
        rejected = svc.reject(order.id, "No payment received", actor_id="admin-1")
        assert rejected.payment_status == "failed"
        assert rejected.status_reason == "No payment received"
        with pytest.raises(InvalidOrderTransition):
            svc.approve(order.id, "QK12ABC34", actor_id="admin-1")
        assert _sold(db, job) == 0

    def test_unknown_order(self, svc):
        with pytest.raises(OrderNotFound):
            svc.approve("7f1d2a3c-0000-4000-8000-000000000000", "QK12ABC34", actor_id=None)

    def test_admin_actions_audited(self, svc, db, job):
        order = svc.create_order(job.id, "Jane Wanjiku", "254712345678")
        svc.approve(order.id, "QK12ABC34", actor_id="admin-1")
        entry = db.query(AuditLog).filter(AuditLog.action == "order_approved").one()
        assert entry.entity_id == order.id
        assert entry.actor_id == "admin-1"
