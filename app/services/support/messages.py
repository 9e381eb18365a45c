"""HTML texts for the support bot and the operator chat (Telegram parse_mode=HTML)."""
from html import escape

from app.models.support_ticket import CATEGORY_LABELS

RULE = "━━━━━━━━━━━━━━━━━━"
TICKET_NOT_FOUND = "⚠️ Could not find the original ticket for this reply."


def category_label(category: str) -> str:
    return CATEGORY_LABELS.get(category, category)


def welcome(first_name: str) -> str:
    return (
        f"👋 <b>Welcome to Remote Work Hub Support, {escape(first_name)}!</b>\n\n"
        "We're here to help you with any questions or issues. "
        "Please select the type of support you need:"
    )


HELP = (
    "🆘 <b>How to use Remote Work Hub Support Bot</b>\n\n"
    "1️⃣ Use /start to begin a new support request\n"
    "2️⃣ Select the category that best describes your issue\n"
    "3️⃣ Type your message with as much detail as possible\n"
    "4️⃣ Our support team will respond as soon as possible\n\n"
    "<b>Available Commands:</b>\n"
    "/start - Start a new support request\n"
    "/help - Show this help message"
)


def ask_for_message(category: str) -> str:
    return (
        f"📋 <b>Category:</b> {category_label(category)}\n\n"
        "Please describe your issue or question in detail. "
        "Type your message below and I'll forward it to our support team:"
    )


def operator_notice(
    full_name: str, username: str | None, telegram_user_id: int, category: str, message: str
) -> str:
    username_display = f"@{escape(username)}" if username else "No username"
    return (
        "🆕 <b>NEW SUPPORT REQUEST</b>\n\n"
        f"👤 <b>User:</b> {escape(full_name)}\n"
        f"🔗 <b>Username:</b> {username_display}\n"
        f"🆔 <b>Telegram ID:</b> <code>{telegram_user_id}</code>\n"
        f"📋 <b>Category:</b> {category_label(category)}\n\n"
        f"💬 <b>Message:</b>\n{escape(message)}\n\n"
        f"{RULE}\n"
        "<i>Reply to this message to respond to the user</i>"
    )


def web_ticket_notice(user_name: str | None, user_email: str | None, category: str, message: str, ticket_id: str) -> str:
    return (
        "🌐 <b>WEB TICKET</b>\n"
        f"👤 {escape(user_name or 'Unknown')}\n"
        f"📧 {escape(user_email or 'N/A')}\n"
        f"📋 {category_label(category)}\n\n"
        f"💬 {escape(message)}\n\n"
        f"<i>Reply to this message to respond (ID: {ticket_id[:8]})</i>"
    )


def request_received(category: str, message: str) -> str:
    preview = message[:100] + ("..." if len(message) > 100 else "")
    return (
        "✅ <b>Request Received!</b>\n\n"
        "Thank you for contacting Remote Work Hub Support. "
        "We've received your message and our team will respond shortly.\n\n"
        f"📋 <b>Category:</b> {category_label(category)}\n"
        f"📧 <b>Your message:</b> {escape(preview)}\n\n"
        "Need to send another request? Use /start to begin again."
    )


def support_reply(reply: str) -> str:
    return (
        "💬 <b>Reply from Remote Work Hub Support</b>\n\n"
        f"{escape(reply)}\n\n"
        f"{RULE}\n"
        "<i>Use /start to send another request</i>"
    )


def reply_delivered(ticket_id: str, relayed: bool) -> str:
    where = "sent to the user" if relayed else "saved; the user will see it on the website"
    return f"✅ Reply {where} (ticket {ticket_id[:8]})."
