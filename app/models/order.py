"""
Order: one checkout attempt for one job account.

payment_status only moves forward:
    pending -> processing -> completed | failed
Admin overrides may also settle pending/processing orders directly.
All transitions go through OrderService (conditional UPDATEs); orders are never deleted.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from app.db.base import Base

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
PAYMENT_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)

COMPLETED_BY_CALLBACK = "callback"
COMPLETED_BY_ADMIN = "admin"


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)  # null = guest / deleted user
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False, index=True)  # 2547XXXXXXXX
    customer_email = Column(String, nullable=True)
    job_account_id = Column(String, ForeignKey("job_accounts.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # KES
    payment_status = Column(String, nullable=False, default=STATUS_PENDING, index=True)
    mpesa_checkout_request_id = Column(String, unique=True, nullable=True)
    mpesa_receipt_number = Column(String, nullable=True)
    status_reason = Column(String, nullable=True)  # provider ResultDesc or admin rejection reason
    completed_by = Column(String, nullable=True)  # callback / admin
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
