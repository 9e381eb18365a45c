from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from app.db.base import Base


class DailyTask(Base):
    __tablename__ = "daily_tasks"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    job_account_id = Column(String, ForeignKey("job_accounts.id"), nullable=False, index=True)
    day_number = Column(Integer, nullable=False)  # 1..30
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    estimated_time = Column(String, nullable=True)
    points = Column(Integer, nullable=False, default=10)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
