"""
SupportService: support tickets from the web app and the Telegram bot,
and their threading with the operator chat.

Correlation key: admin_message_id = id of the notice posted to the operator
chat. An operator reply to that notice is matched back through it.
"""
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.support_ticket import (
    CATEGORY_LABELS,
    CHANNEL_TELEGRAM,
    CHANNEL_WEB,
    TICKET_OPEN,
    TICKET_REPLIED,
    TICKET_STATUSES,
    SupportTicket,
)
from app.services.audit.service import AuditService
from app.services.support import messages
from app.services.telegram.client import TelegramClient, TelegramError
from app.utils.metrics import support_tickets_total
from app.utils.validation import sanitize_search

logger = logging.getLogger(__name__)

INT32_MAX = 2147483647
SUPPORT_CATEGORIES = tuple(CATEGORY_LABELS)


class TelegramNotConfigured(Exception):
    pass


def web_chat_ids(user_id: str) -> tuple[int, int]:
    """
    Stable (chat_id, telegram_user_id) for a web user.
    The chat id is negative so it can never collide with a private Telegram chat.
    """
    digest = user_id.replace("-", "")[:10]
    chat_id = -(int(digest, 16) % INT32_MAX)
    telegram_user_id = int(digest[:8], 16) % INT32_MAX
    return chat_id, telegram_user_id


def is_real_chat(chat_id: int) -> bool:
    return chat_id > 0


class SupportService:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Ingress
    # ------------------------------------------------------------------

    def create_web_ticket(
        self,
        user_id: str,
        category: str,
        message: str,
        user_name: str | None,
        user_email: str | None,
        telegram: TelegramClient,
    ) -> SupportTicket:
        if not settings.telegram_configured:
            raise TelegramNotConfigured()
        chat_id, tg_user_id = web_chat_ids(user_id)
        email_name = user_email.split("@")[0] if user_email else None
        ticket = SupportTicket(
            user_id=user_id,
            telegram_user_id=tg_user_id,
            telegram_chat_id=chat_id,
            telegram_username=email_name,
            telegram_first_name=user_name or email_name or "Web User",
            category=category,
            message=message.strip(),
            status=TICKET_OPEN,
            channel=CHANNEL_WEB,
        )
        self.db.add(ticket)
        self.db.commit()
        self.db.refresh(ticket)
        support_tickets_total.labels(channel=CHANNEL_WEB).inc()
        logger.info("support_ticket_created", extra={"ticket_id": ticket.id, "user_id": user_id})

        try:
            sent = telegram.send_message(
                settings.telegram_admin_chat_id,
                messages.web_ticket_notice(user_name, user_email, category, ticket.message, ticket.id),
            )
        except TelegramError as e:
            # ticket is kept; operators still see it in the admin panel
            logger.warning("support_ticket_notify_failed", extra={"ticket_id": ticket.id, "error": str(e)})
            return ticket
        if sent.get("message_id"):
            self.set_admin_message_id(ticket, sent["message_id"])
        return ticket

    def create_telegram_ticket(
        self,
        chat_id: int,
        telegram_user_id: int,
        username: str | None,
        first_name: str | None,
        category: str,
        message: str,
    ) -> SupportTicket:
        ticket = SupportTicket(
            telegram_user_id=telegram_user_id,
            telegram_chat_id=chat_id,
            telegram_username=username,
            telegram_first_name=first_name,
            category=category,
            message=message.strip(),
            status=TICKET_OPEN,
            channel=CHANNEL_TELEGRAM,
        )
        self.db.add(ticket)
        self.db.commit()
        self.db.refresh(ticket)
        support_tickets_total.labels(channel=CHANNEL_TELEGRAM).inc()
        logger.info("support_ticket_created", extra={"ticket_id": ticket.id, "chat_id": chat_id})
        return ticket

    def set_admin_message_id(self, ticket: SupportTicket, message_id: int) -> None:
        ticket.admin_message_id = int(message_id)
        self.db.add(ticket)
        self.db.commit()

    # ------------------------------------------------------------------
    # Replies
    # ------------------------------------------------------------------

    def find_by_admin_message_id(self, message_id: int) -> SupportTicket | None:
        return (
            self.db.query(SupportTicket)
            .filter(SupportTicket.admin_message_id == int(message_id))
            .one_or_none()
        )

    def record_reply(self, ticket: SupportTicket, reply: str, actor_id: str | None = None) -> SupportTicket:
        ticket.admin_reply = reply
        ticket.status = TICKET_REPLIED
        self.db.add(ticket)
        AuditService(self.db).log(
            "admin", actor_id, "ticket_replied", "support_ticket", ticket.id, commit=False,
        )
        self.db.commit()
        self.db.refresh(ticket)
        logger.info("support_ticket_replied", extra={"ticket_id": ticket.id, "actor_id": actor_id})
        return ticket

    def reply_from_panel(
        self, ticket: SupportTicket, reply: str, telegram: TelegramClient, actor_id: str | None
    ) -> bool:
        """Record the reply; relay it to Telegram tickets. Returns True if relayed."""
        relayed = False
        if is_real_chat(ticket.telegram_chat_id):
            # not recorded when the relay fails
            telegram.send_message(ticket.telegram_chat_id, messages.support_reply(reply))
            relayed = True
        self.record_reply(ticket, reply, actor_id)
        return relayed

    # ------------------------------------------------------------------
    # Admin panel
    # ------------------------------------------------------------------

    def get(self, ticket_id: str) -> SupportTicket | None:
        return self.db.get(SupportTicket, ticket_id)

    def list_tickets(
        self,
        status: str | None = None,
        category: str | None = None,
        search: str | None = None,
        limit: int = 200,
    ) -> list[SupportTicket]:
        q = self.db.query(SupportTicket)
        if status:
            q = q.filter(SupportTicket.status == status)
        if category:
            q = q.filter(SupportTicket.category == category)
        term = sanitize_search(search)
        if term:
            like = f"%{term}%"
            q = q.filter(
                or_(
                    SupportTicket.message.ilike(like),
                    SupportTicket.telegram_username.ilike(like),
                    SupportTicket.telegram_first_name.ilike(like),
                )
            )
        return q.order_by(SupportTicket.created_at.desc()).limit(limit).all()

    def set_status(self, ticket: SupportTicket, status: str, actor_id: str | None = None) -> SupportTicket:
        if status not in TICKET_STATUSES:
            raise ValueError(f"unknown ticket status: {status}")
        ticket.status = status
        self.db.add(ticket)
        AuditService(self.db).log(
            "admin", actor_id, "ticket_status_changed", "support_ticket", ticket.id,
            {"status": status}, commit=False,
        )
        self.db.commit()
        self.db.refresh(ticket)
        return ticket
