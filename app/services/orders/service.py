"""
OrderService: order lifecycle and fulfillment.

Three writers touch an order: the STK push handler, the M-Pesa callback and
the admin approval tool. Every transition is a conditional UPDATE on the
allowed source states, so a late or replayed writer affects zero rows and
changes nothing. Fulfillment (purchase + sold_count increment) runs only for
the writer whose UPDATE to `completed` hit the row, in the same transaction.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.job_account import JobAccount
from app.models.order import (
    COMPLETED_BY_ADMIN,
    COMPLETED_BY_CALLBACK,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    Order,
)
from app.models.purchase import Purchase
from app.services.audit.service import AuditService
from app.services.payments.errors import (
    InvalidOrderTransition,
    InvalidPaymentRequest,
    JobAccountNotFound,
    OrderNotFound,
    OutOfStock,
)
from app.utils.metrics import order_transitions_total
from app.utils.validation import mask_id

logger = logging.getLogger(__name__)

ADMIN_SETTLEABLE = (STATUS_PENDING, STATUS_PROCESSING)


class OrderService:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order | None:
        return self.db.query(Order).filter(Order.id == order_id).one_or_none()

    def get_order_or_raise(self, order_id: str) -> Order:
        order = self.get_order(order_id)
        if order is None:
            raise OrderNotFound()
        return order

    def get_by_checkout_request_id(self, checkout_request_id: str) -> Order | None:
        return (
            self.db.query(Order)
            .filter(Order.mpesa_checkout_request_id == checkout_request_id)
            .one_or_none()
        )

    def list_for_user(self, user_id: str) -> list[Order]:
        return (
            self.db.query(Order)
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .all()
        )

    def list_by_phone(self, phone: str, limit: int = 50) -> list[Order]:
        return (
            self.db.query(Order)
            .filter(Order.customer_phone == phone)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_orders(self, statuses: tuple[str, ...] | None = None, limit: int = 200) -> list[Order]:
        q = self.db.query(Order)
        if statuses:
            q = q.filter(Order.payment_status.in_(statuses))
        return q.order_by(Order.created_at.desc()).limit(limit).all()

    def list_with_job_titles(
        self, statuses: tuple[str, ...] | None = None, limit: int = 200
    ) -> list[tuple[Order, str | None]]:
        q = self.db.query(Order, JobAccount.title).outerjoin(JobAccount, JobAccount.id == Order.job_account_id)
        if statuses:
            q = q.filter(Order.payment_status.in_(statuses))
        return q.order_by(Order.created_at.desc()).limit(limit).all()

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create_order(
        self,
        job_account_id: str,
        customer_name: str,
        customer_phone: str,
        customer_email: str | None = None,
        user_id: str | None = None,
    ) -> Order:
        """customer_phone must already be normalized (2547XXXXXXXX)."""
        job = self.db.query(JobAccount).filter(JobAccount.id == job_account_id).one_or_none()
        if job is None:
            raise JobAccountNotFound()
        if not job.is_available:
            raise InvalidPaymentRequest("This job account is not available")
        remaining = job.remaining_stock()
        if remaining is not None and remaining <= 0:
            raise OutOfStock()
        order = Order(
            user_id=user_id,
            customer_name=customer_name.strip(),
            customer_phone=customer_phone,
            customer_email=customer_email,
            job_account_id=job.id,
            amount=job.price,
            payment_status=STATUS_PENDING,
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        logger.info("order_created", extra={"order_id": mask_id(order.id), "job_account_id": job.id})
        return order

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, where, sources: tuple[str, ...], **values) -> int:
        result = self.db.execute(
            update(Order)
            .where(where, Order.payment_status.in_(sources))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def mark_processing(self, order_id: str, checkout_request_id: str) -> bool:
        """pending -> processing, stamping the checkout-request id."""
        rows = self._transition(
            Order.id == order_id,
            (STATUS_PENDING,),
            payment_status=STATUS_PROCESSING,
            mpesa_checkout_request_id=checkout_request_id,
        )
        self.db.commit()
        if rows:
            order_transitions_total.labels(to_status=STATUS_PROCESSING, source="stk_push").inc()
        return bool(rows)

    def apply_callback_result(
        self,
        checkout_request_id: str,
        result_code: int,
        result_desc: str | None,
        receipt_number: str | None,
    ) -> Order | None:
        """
        processing -> completed | failed for the order holding this checkout id.
        Returns the updated order, or None if nothing matched (unknown id,
        replayed callback, or order already settled by an admin).
        """
        if result_code == 0:
            values = {
                "payment_status": STATUS_COMPLETED,
                "mpesa_receipt_number": receipt_number,
                "completed_by": COMPLETED_BY_CALLBACK,
            }
        else:
            values = {"payment_status": STATUS_FAILED, "status_reason": (result_desc or "")[:500] or None}
        rows = self._transition(
            Order.mpesa_checkout_request_id == checkout_request_id,
            (STATUS_PROCESSING,),
            **values,
        )
        if not rows:
            self.db.rollback()
            return None
        order = self.get_by_checkout_request_id(checkout_request_id)
        self.db.refresh(order)
        if result_code == 0 and settings.fulfill_on_callback:
            self._fulfill(order)
        AuditService(self.db).log(
            "callback", None, f"order_{values['payment_status']}", "order", order.id,
            {"result_code": result_code, "receipt": receipt_number, "result_desc": result_desc},
            commit=False,
        )
        self.db.commit()
        self.db.refresh(order)
        order_transitions_total.labels(to_status=order.payment_status, source="callback").inc()
        return order

    def approve(self, order_id: str, receipt_number: str, actor_id: str | None) -> Order:
        """Manual reconciliation: pending/processing -> completed, then fulfill once."""
        order = self.get_order_or_raise(order_id)
        rows = self._transition(
            Order.id == order_id,
            ADMIN_SETTLEABLE,
            payment_status=STATUS_COMPLETED,
            mpesa_receipt_number=receipt_number,
            completed_by=COMPLETED_BY_ADMIN,
        )
        if not rows:
            self.db.rollback()
            raise InvalidOrderTransition(f"Order is already {order.payment_status}")
        self.db.refresh(order)
        self._fulfill(order)
        AuditService(self.db).log(
            "admin", actor_id, "order_approved", "order", order.id,
            {"receipt": receipt_number}, commit=False,
        )
        self.db.commit()
        self.db.refresh(order)
        order_transitions_total.labels(to_status=STATUS_COMPLETED, source="admin").inc()
        logger.info("order_approved", extra={"order_id": mask_id(order.id), "actor_id": actor_id})
        return order

    def reject(self, order_id: str, reason: str | None, actor_id: str | None) -> Order:
        order = self.get_order_or_raise(order_id)
        rows = self._transition(
            Order.id == order_id,
            ADMIN_SETTLEABLE,
            payment_status=STATUS_FAILED,
            status_reason=reason or "Rejected by admin",
        )
        if not rows:
            self.db.rollback()
            raise InvalidOrderTransition(f"Order is already {order.payment_status}")
        AuditService(self.db).log(
            "admin", actor_id, "order_rejected", "order", order.id,
            {"reason": reason}, commit=False,
        )
        self.db.commit()
        self.db.refresh(order)
        order_transitions_total.labels(to_status=STATUS_FAILED, source="admin").inc()
        logger.info("order_rejected", extra={"order_id": mask_id(order.id), "actor_id": actor_id})
        return order

    # ------------------------------------------------------------------
    # Fulfillment
    # ------------------------------------------------------------------

    def _fulfill(self, order: Order) -> Purchase:
        """Caller owns the transaction and must have won the transition to completed."""
        now = datetime.now(timezone.utc)
        purchase = Purchase(
            user_id=order.user_id,
            job_account_id=order.job_account_id,
            order_id=order.id,
            purchase_date=now,
            start_date=now,
            end_date=now + timedelta(days=settings.purchase_program_days),
        )
        self.db.add(purchase)
        self.db.execute(
            update(JobAccount)
            .where(JobAccount.id == order.job_account_id)
            .values(sold_count=func.coalesce(JobAccount.sold_count, 0) + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
        logger.info(
            "order_fulfilled",
            extra={"order_id": mask_id(order.id), "job_account_id": order.job_account_id},
        )
        return purchase
