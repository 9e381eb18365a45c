from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint

from app.db.base import Base


class TaskProgress(Base):
    __tablename__ = "user_task_progress"
    __table_args__ = (UniqueConstraint("purchase_id", "task_id", name="uq_task_progress_purchase_task"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    purchase_id = Column(String, ForeignKey("user_purchases.id"), nullable=False, index=True)
    task_id = Column(String, ForeignKey("daily_tasks.id"), nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending / completed
    completed_at = Column(DateTime(timezone=True), nullable=True)
    submission_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
