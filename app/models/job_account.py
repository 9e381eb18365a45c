"""
JobAccount: sellable listing. sold_count is only ever changed by an atomic
UPDATE in OrderService.fulfill (one increment per completed order).
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from app.db.base import Base, JSONType


class JobAccount(Base):
    __tablename__ = "job_accounts"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    category_id = Column(String, ForeignKey("categories.id"), nullable=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    company = Column(String, nullable=True)
    price = Column(Integer, nullable=False)  # KES
    monthly_earnings = Column(String, nullable=True)  # free text, e.g. "KSH 30,000 - 45,000"
    skills_required = Column(JSONType, nullable=True)
    image_url = Column(String, nullable=True)
    total_stock = Column(Integer, nullable=True)  # null = stock not tracked
    sold_count = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def remaining_stock(self) -> int | None:
        """None when stock is not tracked."""
        if self.total_stock is None:
            return None
        return max(0, self.total_stock - (self.sold_count or 0))

    def stock_status(self, low_threshold: int = 5) -> str:
        remaining = self.remaining_stock()
        if remaining is None:
            return "untracked"
        if remaining == 0:
            return "out_of_stock"
        if remaining <= low_threshold:
            return "low_stock"
        return "in_stock"
