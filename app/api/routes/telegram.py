"""
Telegram webhook ingress for the support bot, and webhook registration.
"""
import logging
import secrets

from aiogram.types import Update
from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import get_telegram_client, require_admin
from app.bot.main import get_bot, get_dispatcher
from app.core.config import settings
from app.services.telegram.client import TelegramClient, TelegramError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telegram"])

WEBHOOK_PATH = "/telegram/webhook"
SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


@router.post(WEBHOOK_PATH)
async def telegram_webhook(request: Request):
    expected = settings.telegram_webhook_secret
    if expected and not secrets.compare_digest(request.headers.get(SECRET_HEADER, ""), expected):
        raise HTTPException(403, "Forbidden")
    data = await request.json()
    bot = get_bot()
    update = Update.model_validate(data, context={"bot": bot})
    await get_dispatcher().feed_update(bot, update)
    return {"ok": True}


@router.post("/admin/telegram/setup-webhook", dependencies=[Depends(require_admin)])
def setup_webhook(telegram: TelegramClient = Depends(get_telegram_client)):
    if not settings.public_base_url:
        raise HTTPException(400, "PUBLIC_BASE_URL is not set")
    url = f"{settings.public_base_url.rstrip('/')}{WEBHOOK_PATH}"
    try:
        telegram.set_webhook(url, secret_token=settings.telegram_webhook_secret or None)
    except TelegramError as e:
        raise HTTPException(502, f"Webhook setup failed: {e}")
    return {"success": True, "message": "Webhook set successfully", "webhook_url": url}
