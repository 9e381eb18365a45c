"""Daily task program for the caller's purchases."""
from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.tasks import PurchaseOut, TaskComplete
from app.services.tasks.service import TaskLocked, TaskService

router = APIRouter(prefix="/me/purchases", tags=["tasks"])


@router.get("", response_model=list[PurchaseOut])
def my_purchases(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [
        {
            "id": p.id,
            "job_account_id": p.job_account_id,
            "job_title": title,
            "order_id": p.order_id,
            "purchase_date": p.purchase_date,
            "start_date": p.start_date,
            "end_date": p.end_date,
            "status": p.status,
        }
        for p, title in TaskService(db).list_purchases(user.id)
    ]


@router.get("/{purchase_id}/tasks")
def purchase_tasks(purchase_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    svc = TaskService(db)
    purchase = svc.get_purchase(user.id, purchase_id)
    if not purchase:
        raise HTTPException(404, "Purchase not found")
    return svc.task_board(purchase)


@router.post("/{purchase_id}/tasks/{task_id}/complete")
def complete_task(
    purchase_id: str,
    task_id: str,
    body: TaskComplete | None = Body(default=None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    svc = TaskService(db)
    purchase = svc.get_purchase(user.id, purchase_id)
    if not purchase:
        raise HTTPException(404, "Purchase not found")
    task = svc.get_task(purchase, task_id)
    if not task:
        raise HTTPException(404, "Task not found")
    try:
        progress = svc.complete_task(purchase, task, body.notes if body else None)
    except TaskLocked:
        raise HTTPException(400, "This task is not available yet")
    return {
        "task_id": task.id,
        "status": progress.status,
        "completed_at": progress.completed_at,
        "submission_notes": progress.submission_notes,
    }
