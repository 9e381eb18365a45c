"""
Daily task program unlocked by a purchase.

Day 1 starts at purchase start_date; day N unlocks once N-1 full days have
passed. Completed tasks score 10 points each.
"""
import math
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.daily_task import DailyTask
from app.models.job_account import JobAccount
from app.models.purchase import Purchase
from app.models.task_progress import TaskProgress

POINTS_PER_TASK = 10
DAY_SECONDS = 24 * 60 * 60

TASK_COMPLETED = "completed"
TASK_AVAILABLE = "available"
TASK_LOCKED = "locked"


class TaskLocked(Exception):
    pass


def _aware(dt: datetime) -> datetime:
    # SQLite returns naive datetimes; everything is stored as UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def current_day(start_date: datetime, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    elapsed = (_aware(now) - _aware(start_date)).total_seconds()
    day = math.ceil(elapsed / DAY_SECONDS)
    return max(1, min(settings.purchase_program_days, day))


def task_status(day_number: int, today: int, completed: bool) -> str:
    if completed:
        return TASK_COMPLETED
    if day_number <= today:
        return TASK_AVAILABLE
    return TASK_LOCKED


class TaskService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def list_purchases(self, user_id: str) -> list[tuple[Purchase, str | None]]:
        return (
            self.db.query(Purchase, JobAccount.title)
            .outerjoin(JobAccount, JobAccount.id == Purchase.job_account_id)
            .filter(Purchase.user_id == user_id)
            .order_by(Purchase.purchase_date.desc())
            .all()
        )

    def get_purchase(self, user_id: str, purchase_id: str) -> Purchase | None:
        return (
            self.db.query(Purchase)
            .filter(Purchase.id == purchase_id, Purchase.user_id == user_id)
            .one_or_none()
        )

    def task_board(self, purchase: Purchase, now: datetime | None = None) -> dict:
        today = current_day(purchase.start_date, now)
        tasks = (
            self.db.query(DailyTask)
            .filter(DailyTask.job_account_id == purchase.job_account_id)
            .order_by(DailyTask.day_number)
            .all()
        )
        progress = {
            p.task_id: p
            for p in self.db.query(TaskProgress).filter(TaskProgress.purchase_id == purchase.id).all()
        }
        items = []
        completed_count = 0
        for task in tasks:
            p = progress.get(task.id)
            done = p is not None and p.status == TASK_COMPLETED
            completed_count += int(done)
            items.append({
                "id": task.id,
                "day_number": task.day_number,
                "title": task.title,
                "description": task.description,
                "estimated_time": task.estimated_time,
                "points": task.points,
                "status": task_status(task.day_number, today, done),
                "completed_at": p.completed_at if done else None,
                "submission_notes": p.submission_notes if p else None,
            })
        return {
            "purchase_id": purchase.id,
            "current_day": today,
            "completed_count": completed_count,
            "total_points": completed_count * POINTS_PER_TASK,
            "tasks": items,
        }

    def get_task(self, purchase: Purchase, task_id: str) -> DailyTask | None:
        return (
            self.db.query(DailyTask)
            .filter(DailyTask.id == task_id, DailyTask.job_account_id == purchase.job_account_id)
            .one_or_none()
        )

    def complete_task(
        self, purchase: Purchase, task: DailyTask, notes: str | None = None, now: datetime | None = None
    ) -> TaskProgress:
        """Upsert completed progress; completing twice keeps the first completion time."""
        if task.day_number > current_day(purchase.start_date, now):
            raise TaskLocked(task.id)
        progress = (
            self.db.query(TaskProgress)
            .filter(TaskProgress.purchase_id == purchase.id, TaskProgress.task_id == task.id)
            .one_or_none()
        )
        if progress is None:
            progress = TaskProgress(user_id=purchase.user_id, purchase_id=purchase.id, task_id=task.id)
        if progress.status != TASK_COMPLETED:
            progress.status = TASK_COMPLETED
            progress.completed_at = now or datetime.now(timezone.utc)
        if notes is not None:
            progress.submission_notes = notes
        self.db.add(progress)
        try:
            self.db.commit()
        except IntegrityError:
            # concurrent first completion; the other row wins
            self.db.rollback()
            progress = (
                self.db.query(TaskProgress)
                .filter(TaskProgress.purchase_id == purchase.id, TaskProgress.task_id == task.id)
                .one()
            )
        self.db.refresh(progress)
        return progress
