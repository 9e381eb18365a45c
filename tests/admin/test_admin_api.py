"""Admin endpoints: approval tool, stock, users and roles."""
from uuid import uuid4

import pytest

from app.models.audit_log import AuditLog
from app.models.job_account import JobAccount
from app.models.order import Order
from app.models.profile import Profile
from app.models.purchase import Purchase
from app.models.support_ticket import SupportTicket
from app.models.user import User
from app.services.orders.service import OrderService


@pytest.fixture
def order(db, make_job):
    job = make_job(price=3500, total_stock=10)
    return OrderService(db).create_order(job.id, "Jane Wanjiku", "254712345678")


class TestAccess:
    def test_requires_token(self, client):
        assert client.get("/admin/orders/pending").status_code == 401

    def test_requires_admin_role(self, client, make_user):
        _, headers = make_user()
        r = client.get("/admin/orders/pending", headers=headers)
        assert r.status_code == 403


class TestApproval:
    def test_pending_list_includes_job_title(self, client, admin_headers, order):
        r = client.get("/admin/orders/pending", headers=admin_headers)
        assert r.status_code == 200
        rows = r.json()
        assert [o["id"] for o in rows] == [order.id]
        assert rows[0]["job_title"] == "Remote Data Entry Clerk"

    def test_approve_once(self, client, db, admin_headers, order):
        r = client.post(
            f"/admin/orders/{order.id}/approve",
            json={"receipt_number": "qk12abc34"},
            headers=admin_headers,
        )
        assert r.status_code == 200
        assert r.json()["payment_status"] == "completed"
        assert r.json()["mpesa_receipt_number"] == "QK12ABC34"
        assert r.json()["completed_by"] == "admin"

        again = client.post(
            f"/admin/orders/{order.id}/approve",
            json={"receipt_number": "QK12ABC34"},
            headers=admin_headers,
        )
        assert again.status_code == 409

        db.expire_all()
        assert db.get(JobAccount, order.job_account_id).sold_count == 1
        assert db.query(Purchase).filter(Purchase.order_id == order.id).count() == 1
        assert client.get("/admin/orders/pending", headers=admin_headers).json() == []

    def test_receipt_required(self, client, admin_headers, order):
        r = client.post(f"/admin/orders/{order.id}/approve", json={"receipt_number": ""}, headers=admin_headers)
        assert r.status_code == 400
        r = client.post(f"/admin/orders/{order.id}/approve", json={"receipt_number": "AB-12"}, headers=admin_headers)
        assert r.status_code == 400

    def test_reject(self, client, db, admin_headers, order):
        r = client.post(
            f"/admin/orders/{order.id}/reject",
            json={"reason": "No matching M-Pesa payment"},
            headers=admin_headers,
        )
        assert r.status_code == 200
        assert r.json()["payment_status"] == "failed"
        assert r.json()["status_reason"] == "No matching M-Pesa payment"
        db.expire_all()
        assert db.get(JobAccount, order.job_account_id).sold_count == 0

    def test_unknown_order(self, client, admin_headers):
        r = client.post(f"/admin/orders/{uuid4()}/approve", json={"receipt_number": "QK12"}, headers=admin_headers)
        assert r.status_code == 404

    def test_status_filter(self, client, admin_headers, order):
        assert len(client.get("/admin/orders", params={"status": "pending"}, headers=admin_headers).json()) == 1
        assert client.get("/admin/orders", params={"status": "completed"}, headers=admin_headers).json() == []
        assert client.get("/admin/orders", params={"status": "bogus"}, headers=admin_headers).status_code == 400


class TestStock:
    def test_update_total_stock(self, client, db, admin_headers, make_job):
        job = make_job(total_stock=10, sold_count=8)
        r = client.put(f"/admin/stock/{job.id}", json={"total_stock": 12}, headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["remaining_stock"] == 4
        assert r.json()["stock_status"] == "low_stock"
        assert db.query(AuditLog).filter(AuditLog.action == "stock_updated").count() == 1

    def test_negative_stock_rejected(self, client, admin_headers, make_job):
        job = make_job()
        r = client.put(f"/admin/stock/{job.id}", json={"total_stock": -1}, headers=admin_headers)
        assert r.status_code == 400

    def test_create_job_account_validation(self, client, admin_headers):
        r = client.post("/admin/job-accounts", json={
            "title": "Transcriber",
            "description": "Transcribe interviews and podcasts.",
            "price": 1500,
        }, headers=admin_headers)
        assert r.status_code == 400

        r = client.post("/admin/job-accounts", json={
            "title": "Transcriber",
            "description": "Transcribe interviews and podcasts.",
            "price": 4500,
            "skills_required": ["Typing", "English"],
        }, headers=admin_headers)
        assert r.status_code == 201
        assert r.json()["stock_status"] == "untracked"
        assert r.json()["skills_required"] == ["Typing", "English"]


class TestUsers:
    def test_list_users_with_roles(self, client, admin_headers, make_user):
        make_user(email="jane@example.com")
        rows = {u["email"]: u["role"] for u in client.get("/admin/users", headers=admin_headers).json()}
        assert rows == {"admin@example.com": "admin", "jane@example.com": "user"}

    def test_change_role(self, client, admin_headers, make_user):
        user, headers = make_user()
        r = client.put(f"/admin/users/{user.id}/role", json={"role": "moderator"}, headers=admin_headers)
        assert r.status_code == 200
        assert client.get("/auth/me", headers=headers).json()["role"] == "moderator"

    def test_delete_detaches_orders_and_tickets(self, client, db, admin_headers, make_user, make_job):
        user, _ = make_user()
        job = make_job()
        order = OrderService(db).create_order(job.id, "Jane Wanjiku", "254712345678", user_id=user.id)
        db.add(SupportTicket(
            user_id=user.id, telegram_user_id=1, telegram_chat_id=-1,
            category="other", message="hello", channel="web",
        ))
        db.commit()

        r = client.delete(f"/admin/users/{user.id}", headers=admin_headers)
        assert r.status_code == 200

        db.expire_all()
        assert db.get(User, user.id) is None
        assert db.query(Profile).filter(Profile.user_id == user.id).count() == 0
        assert db.get(Order, order.id).user_id is None
        assert db.query(SupportTicket).one().user_id is None

    def test_cannot_delete_self(self, client, db, admin_headers):
        admin = db.query(User).filter(User.email == "admin@example.com").one()
        r = client.delete(f"/admin/users/{admin.id}", headers=admin_headers)
        assert r.status_code == 400
