"""
Telegram client wrapper using httpx sync client.
Used by sync service code (web tickets, admin replies, webhook setup);
the bot itself talks to Telegram through aiogram.
"""
import time
import logging

import httpx

from app.core.config import settings
from app.utils.metrics import (
    telegram_requests_total,
    telegram_request_duration_seconds,
)


logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramError(Exception):
    """Telegram Bot API returned ok=false or could not be reached."""


class TelegramClient:
    """Sync Telegram Bot API client (sendMessage / setWebhook)."""

    def __init__(self, token: str | None = None, transport: httpx.BaseTransport | None = None) -> None:
        self._token = token if token is not None else settings.telegram_bot_token
        self._base_url = f"{TELEGRAM_API_BASE}/bot{self._token}"
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=settings.http_client_timeout, transport=self._transport)
        return self._client

    def _record_request(self, method: str, status: str, duration: float) -> None:
        telegram_requests_total.labels(method=method, status=status).inc()
        telegram_request_duration_seconds.labels(method=method).observe(duration)

    def _api_call(self, method: str, data: dict | None = None) -> dict:
        """Make API call to Telegram. Returns the `result` field."""
        url = f"{self._base_url}/{method}"
        start = time.time()
        try:
            resp = self.client.post(url, json=data)
            result = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            self._record_request(method, "error", time.time() - start)
            raise TelegramError(f"{method} failed: {type(e).__name__}") from e
        if not result.get("ok"):
            self._record_request(method, "error", time.time() - start)
            error_desc = result.get("description", "Unknown error")
            error_code = result.get("error_code", 0)
            logger.warning(f"Telegram API error: {method} -> {error_code}: {error_desc}")
            raise TelegramError(f"{error_code}: {error_desc}")
        self._record_request(method, "success", time.time() - start)
        return result.get("result") or {}

    def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_markup: dict | None = None,
        parse_mode: str | None = "HTML",
    ) -> dict:
        """Send text message to chat. Returns the sent Message (message_id, chat, ...)."""
        data = {"chat_id": int(chat_id), "text": text}
        if reply_markup:
            data["reply_markup"] = reply_markup
        if parse_mode:
            data["parse_mode"] = parse_mode
        try:
            return self._api_call("sendMessage", data)
        except TelegramError as e:
            logger.error("telegram_send_failed", extra={"error": str(e), "chat_id": chat_id})
            raise

    def set_webhook(self, url: str, secret_token: str | None = None) -> dict:
        data = {"url": url, "allowed_updates": ["message", "callback_query"]}
        if secret_token:
            data["secret_token"] = secret_token
        self._api_call("setWebhook", data)
        logger.info("telegram_webhook_set", extra={"path": url.split("?")[0]})
        return {"url": url}

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None
