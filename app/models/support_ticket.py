"""
SupportTicket: one customer request, from the web app or the Telegram bot.

admin_message_id is the id of the notice posted to the operator chat;
an operator reply to that message is matched back to the ticket through it.
Web tickets carry derived chat/user ids (chat id is negative, never a real chat).
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String, Text

from app.db.base import Base

TICKET_OPEN = "open"
TICKET_REPLIED = "replied"
TICKET_CLOSED = "closed"
TICKET_STATUSES = (TICKET_OPEN, TICKET_REPLIED, TICKET_CLOSED)

CHANNEL_WEB = "web"
CHANNEL_TELEGRAM = "telegram"

CATEGORY_LABELS = {
    "payments": "💳 Payments",
    "technical": "🔧 Technical Support",
    "account": "👤 Account Issues",
    "other": "📝 Other",
}


class SupportTicket(Base):
    __tablename__ = "telegram_support_tickets"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)  # web tickets only
    telegram_user_id = Column(BigInteger, nullable=False)
    telegram_chat_id = Column(BigInteger, nullable=False)
    telegram_username = Column(String, nullable=True)
    telegram_first_name = Column(String, nullable=True)
    category = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String, nullable=False, default=TICKET_OPEN, index=True)
    admin_reply = Column(Text, nullable=True)
    admin_message_id = Column(BigInteger, unique=True, nullable=True)
    channel = Column(String, nullable=False, default=CHANNEL_TELEGRAM)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
