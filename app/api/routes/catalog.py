from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.catalog import CategoryOut, JobAccountOut
from app.services.catalog.service import CatalogService

router = APIRouter(tags=["catalog"])


def job_out(svc: CatalogService, job) -> dict:
    return {
        "id": job.id,
        "category_id": job.category_id,
        "title": job.title,
        "description": job.description,
        "company": job.company,
        "price": job.price,
        "monthly_earnings": job.monthly_earnings,
        "skills_required": job.skills_required or [],
        "image_url": job.image_url,
        "is_available": job.is_available,
        "created_at": job.created_at,
        **svc.stock_info(job),
    }


@router.get("/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return CatalogService(db).list_categories()


@router.get("/jobs", response_model=list[JobAccountOut])
def list_jobs(
    category_id: str | None = None,
    search: str | None = Query(default=None, max_length=200),
    available_only: bool = False,
    db: Session = Depends(get_db),
):
    svc = CatalogService(db)
    return [job_out(svc, j) for j in svc.list_jobs(category_id, search, available_only)]


@router.get("/jobs/{job_id}", response_model=JobAccountOut)
def get_job(job_id: str, db: Session = Depends(get_db)):
    svc = CatalogService(db)
    job = svc.get_job(job_id)
    if not job:
        raise HTTPException(404, "Job account not found")
    return job_out(svc, job)
