from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_telegram_client
from app.db.session import get_db
from app.models.user import User
from app.schemas.support import TicketCreate, TicketCreated
from app.services.support.service import SupportService, TelegramNotConfigured
from app.services.telegram.client import TelegramClient
from app.services.users.service import UserService

router = APIRouter(prefix="/support", tags=["support"])


@router.post("/tickets", response_model=TicketCreated)
def create_ticket(
    body: TicketCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    telegram: TelegramClient = Depends(get_telegram_client),
):
    """Web support ticket; forwarded to the operator Telegram chat."""
    profile = UserService(db).get_profile(user.id)
    user_name = body.userName or (profile.full_name if profile else None)
    user_email = body.userEmail or user.email
    try:
        ticket = SupportService(db).create_web_ticket(
            user_id=user.id,
            category=body.category,
            message=body.message,
            user_name=user_name,
            user_email=user_email,
            telegram=telegram,
        )
    except TelegramNotConfigured:
        raise HTTPException(500, "Telegram not configured")
    return {"success": True, "ticketId": ticket.id}
