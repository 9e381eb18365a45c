from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, String

from app.db.base import Base

PURCHASE_ACTIVE = "active"
PURCHASE_COMPLETED = "completed"
PURCHASE_CANCELLED = "cancelled"


class Purchase(Base):
    """Created once per completed order (order_id is unique)."""

    __tablename__ = "user_purchases"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    job_account_id = Column(String, ForeignKey("job_accounts.id"), nullable=False)
    order_id = Column(String, ForeignKey("orders.id"), unique=True, nullable=False)
    purchase_date = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    start_date = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    end_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default=PURCHASE_ACTIVE)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
