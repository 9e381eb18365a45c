"""
Admin API: transaction approval, stock and job accounts, users and roles,
support tickets, audit log. Every route requires the admin role.
"""
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import get_telegram_client, require_admin
from app.api.routes.catalog import job_out
from app.db.session import get_db
from app.models.order import PAYMENT_STATUSES, STATUS_PENDING, STATUS_PROCESSING
from app.models.user import User
from app.schemas.catalog import JobAccountIn, JobAccountOut, StockUpdate
from app.schemas.orders import AdminOrderOut, ApproveRequest, OrderOut, RejectRequest
from app.schemas.support import TicketOut, TicketReply, TicketStatusUpdate
from app.schemas.users import RoleUpdate, UserListOut
from app.services.audit.service import AuditService
from app.services.catalog.service import CatalogService
from app.services.orders.service import OrderService
from app.services.payments.errors import InvalidPaymentRequest
from app.services.support.service import SupportService
from app.services.telegram.client import TelegramClient, TelegramError
from app.services.users.service import UserService
from app.utils.validation import normalize_receipt

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _admin_order(order, job_title) -> dict:
    return {**OrderOut.model_validate(order).model_dump(), "job_title": job_title}


# ---------- Orders ----------
@router.get("/orders/pending", response_model=list[AdminOrderOut])
def pending_orders(db: Session = Depends(get_db)):
    rows = OrderService(db).list_with_job_titles((STATUS_PENDING, STATUS_PROCESSING))
    return [_admin_order(o, title) for o, title in rows]


@router.get("/orders", response_model=list[AdminOrderOut])
def list_orders(status: str | None = None, db: Session = Depends(get_db)):
    if status and status not in PAYMENT_STATUSES:
        raise HTTPException(400, "Unknown status")
    rows = OrderService(db).list_with_job_titles((status,) if status else None)
    return [_admin_order(o, title) for o, title in rows]


@router.post("/orders/{order_id}/approve", response_model=OrderOut)
def approve_order(
    order_id: str,
    body: ApproveRequest = Body(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    receipt = normalize_receipt(body.receipt_number)
    if receipt is None:
        raise InvalidPaymentRequest("Invalid M-Pesa receipt number")
    return OrderService(db).approve(order_id, receipt, actor_id=admin.id)


@router.post("/orders/{order_id}/reject", response_model=OrderOut)
def reject_order(
    order_id: str,
    body: RejectRequest | None = Body(default=None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    reason = body.reason.strip() if body and body.reason else None
    return OrderService(db).reject(order_id, reason, actor_id=admin.id)


# ---------- Stock & job accounts ----------
@router.get("/stock")
def stock_overview(db: Session = Depends(get_db)):
    return CatalogService(db).stock_overview()


@router.put("/stock/{job_id}", response_model=JobAccountOut)
def update_stock(
    job_id: str,
    body: StockUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    svc = CatalogService(db)
    job = svc.get_job(job_id)
    if not job:
        raise HTTPException(404, "Job account not found")
    svc.set_total_stock(job, body.total_stock, actor_id=admin.id)
    return job_out(svc, job)


def _check_category(svc: CatalogService, category_id: str | None) -> None:
    if category_id and not svc.get_category(category_id):
        raise HTTPException(400, "Category not found")


@router.post("/job-accounts", status_code=201, response_model=JobAccountOut)
def create_job_account(
    body: JobAccountIn,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    svc = CatalogService(db)
    _check_category(svc, body.category_id)
    job = svc.create_job(body.model_dump(), actor_id=admin.id)
    return job_out(svc, job)


@router.put("/job-accounts/{job_id}", response_model=JobAccountOut)
def update_job_account(
    job_id: str,
    body: JobAccountIn,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    svc = CatalogService(db)
    job = svc.get_job(job_id)
    if not job:
        raise HTTPException(404, "Job account not found")
    _check_category(svc, body.category_id)
    svc.update_job(job, body.model_dump(), actor_id=admin.id)
    return job_out(svc, job)


# ---------- Users ----------
@router.get("/users", response_model=list[UserListOut])
def list_users(db: Session = Depends(get_db)):
    return [
        {
            "id": user.id,
            "email": user.email,
            "full_name": profile.full_name if profile else None,
            "phone_number": profile.phone_number if profile else None,
            "county": profile.county if profile else None,
            "is_registration_complete": bool(profile and profile.is_registration_complete),
            "is_banned": user.is_banned,
            "role": role,
            "created_at": user.created_at,
            "last_login_at": user.last_login_at,
        }
        for user, profile, role in UserService(db).list_with_profiles()
    ]


@router.put("/users/{user_id}/role")
def set_user_role(
    user_id: str,
    body: RoleUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    svc = UserService(db)
    if not svc.get(user_id):
        raise HTTPException(404, "User not found")
    svc.set_role(user_id, body.role)
    AuditService(db).log("admin", admin.id, "user_role_changed", "user", user_id, {"role": body.role})
    return {"id": user_id, "role": body.role}


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if user_id == admin.id:
        raise HTTPException(400, "You cannot delete your own account")
    svc = UserService(db)
    if not svc.get(user_id):
        raise HTTPException(404, "User not found")
    svc.delete_user(user_id)
    AuditService(db).log("admin", admin.id, "user_deleted", "user", user_id)
    return {"success": True}


# ---------- Support tickets ----------
@router.get("/tickets", response_model=list[TicketOut])
def list_tickets(
    status: str | None = None,
    category: str | None = None,
    search: str | None = Query(default=None, max_length=200),
    db: Session = Depends(get_db),
):
    return SupportService(db).list_tickets(status=status, category=category, search=search)


@router.post("/tickets/{ticket_id}/reply", response_model=TicketOut)
def reply_ticket(
    ticket_id: str,
    body: TicketReply,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    telegram: TelegramClient = Depends(get_telegram_client),
):
    svc = SupportService(db)
    ticket = svc.get(ticket_id)
    if not ticket:
        raise HTTPException(404, "Ticket not found")
    try:
        svc.reply_from_panel(ticket, body.reply.strip(), telegram, actor_id=admin.id)
    except TelegramError:
        raise HTTPException(502, "Could not deliver the reply via Telegram")
    return ticket


@router.post("/tickets/{ticket_id}/status", response_model=TicketOut)
def set_ticket_status(
    ticket_id: str,
    body: TicketStatusUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    svc = SupportService(db)
    ticket = svc.get(ticket_id)
    if not ticket:
        raise HTTPException(404, "Ticket not found")
    return svc.set_status(ticket, body.status, actor_id=admin.id)


# ---------- Audit ----------
@router.get("/audit")
def audit_log(entity_type: str | None = None, limit: int = Query(default=100, ge=1, le=500), db: Session = Depends(get_db)):
    return [
        {
            "id": e.id,
            "actor_type": e.actor_type,
            "actor_id": e.actor_id,
            "action": e.action,
            "entity_type": e.entity_type,
            "entity_id": e.entity_id,
            "payload": e.payload,
            "created_at": e.created_at,
        }
        for e in AuditService(db).list_recent(limit=limit, entity_type=entity_type)
    ]
