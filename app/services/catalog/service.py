"""
CatalogService: categories, job accounts and stock levels.
sold_count is written only by order fulfillment; admins manage total_stock.
"""
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.category import Category
from app.models.job_account import JobAccount
from app.services.audit.service import AuditService
from app.utils.validation import sanitize_search

logger = logging.getLogger(__name__)

JOB_FIELDS = (
    "title", "description", "company", "category_id", "price",
    "monthly_earnings", "skills_required", "image_url", "is_available",
)


class CatalogService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def list_categories(self) -> list[Category]:
        return self.db.query(Category).order_by(Category.name).all()

    def get_category(self, category_id: str) -> Category | None:
        return self.db.get(Category, category_id)

    def list_jobs(
        self,
        category_id: str | None = None,
        search: str | None = None,
        available_only: bool = False,
    ) -> list[JobAccount]:
        q = self.db.query(JobAccount)
        if category_id:
            q = q.filter(JobAccount.category_id == category_id)
        if available_only:
            q = q.filter(JobAccount.is_available.is_(True))
        term = sanitize_search(search)
        if term:
            like = f"%{term}%"
            q = q.filter(
                or_(
                    JobAccount.title.ilike(like),
                    JobAccount.description.ilike(like),
                    JobAccount.company.ilike(like),
                )
            )
        return q.order_by(JobAccount.created_at.desc()).all()

    def get_job(self, job_id: str) -> JobAccount | None:
        return self.db.get(JobAccount, job_id)

    def stock_info(self, job: JobAccount) -> dict:
        return {
            "total_stock": job.total_stock,
            "sold_count": job.sold_count or 0,
            "remaining_stock": job.remaining_stock(),
            "stock_status": job.stock_status(settings.low_stock_threshold),
        }

    def stock_overview(self) -> list[dict]:
        jobs = self.db.query(JobAccount).order_by(JobAccount.title).all()
        return [{"id": j.id, "title": j.title, "price": j.price, **self.stock_info(j)} for j in jobs]

    def set_total_stock(self, job: JobAccount, total_stock: int, actor_id: str | None) -> JobAccount:
        previous = job.total_stock
        job.total_stock = total_stock
        self.db.add(job)
        AuditService(self.db).log(
            "admin", actor_id, "stock_updated", "job_account", job.id,
            {"from": previous, "to": total_stock}, commit=False,
        )
        self.db.commit()
        self.db.refresh(job)
        logger.info("stock_updated", extra={"job_account_id": job.id, "actor_id": actor_id})
        return job

    def create_job(self, data: dict, actor_id: str | None) -> JobAccount:
        job = JobAccount(**{k: v for k, v in data.items() if k in JOB_FIELDS})
        self.db.add(job)
        self.db.flush()
        AuditService(self.db).log("admin", actor_id, "job_account_created", "job_account", job.id, commit=False)
        self.db.commit()
        self.db.refresh(job)
        return job

    def update_job(self, job: JobAccount, data: dict, actor_id: str | None) -> JobAccount:
        changed = {}
        for key, value in data.items():
            if key in JOB_FIELDS:
                setattr(job, key, value)
                changed[key] = value
        self.db.add(job)
        AuditService(self.db).log(
            "admin", actor_id, "job_account_updated", "job_account", job.id,
            {"fields": sorted(changed)}, commit=False,
        )
        self.db.commit()
        self.db.refresh(job)
        return job
