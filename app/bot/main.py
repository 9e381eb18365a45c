"""
Support bot using aiogram 3.x.

Customers: /start -> pick a category -> send a message -> ticket is stored and
forwarded to the operator chat. Operators answer by replying to the forwarded
notice; the reply is matched back to the ticket by the notice's message id.

Runs either behind POST /telegram/webhook (app.api.routes.telegram) or in
polling mode: python -m app.bot.main
"""
import asyncio
import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Generator

from aiogram import Bot, Dispatcher, F, Router
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.fsm.storage.redis import RedisStorage
from aiogram.types import (
    CallbackQuery,
    ErrorEvent,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Message,
)
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.services.support import messages
from app.services.support.service import SUPPORT_CATEGORIES, SupportService, is_real_chat

logger = logging.getLogger("bot")

CATEGORY_CB_PREFIX = "category_"

router = Router()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.
    Handles commit on success and rollback on error.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class SupportStates(StatesGroup):
    waiting_for_message = State()  # category chosen, next text becomes the ticket


def categories_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=messages.category_label(c), callback_data=f"{CATEGORY_CB_PREFIX}{c}")]
            for c in SUPPORT_CATEGORIES
        ]
    )


def is_operator_chat(chat_id: int) -> bool:
    return bool(settings.telegram_admin_chat_id) and str(chat_id) == str(settings.telegram_admin_chat_id)


def is_operator_reply(message: Message) -> bool:
    return is_operator_chat(message.chat.id) and message.reply_to_message is not None


async def show_start(message: Message, state: FSMContext) -> None:
    await state.clear()
    first_name = (message.from_user.first_name if message.from_user else None) or "User"
    await message.answer(messages.welcome(first_name), reply_markup=categories_keyboard())


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext):
    if is_operator_chat(message.chat.id):
        return
    await show_start(message, state)


@router.message(Command("help"))
async def cmd_help(message: Message):
    await message.answer(messages.HELP)


@router.callback_query(F.data.startswith(CATEGORY_CB_PREFIX))
async def select_category(callback: CallbackQuery, state: FSMContext):
    category = callback.data[len(CATEGORY_CB_PREFIX):]
    if category not in SUPPORT_CATEGORIES:
        await callback.answer("Unknown category")
        return
    await callback.answer("Category selected")
    await state.set_state(SupportStates.waiting_for_message)
    await state.update_data(category=category)
    await callback.message.answer(messages.ask_for_message(category))


@router.message(is_operator_reply)
async def operator_reply(message: Message, bot: Bot):
    """Operator answered a ticket notice in the operator chat."""
    reply_text = message.text or message.caption
    if not reply_text:
        return
    original_id = message.reply_to_message.message_id
    with get_db_session() as db:
        service = SupportService(db)
        ticket = service.find_by_admin_message_id(original_id)
        if ticket is None:
            logger.info("operator_reply_unmatched", extra={"chat_id": message.chat.id})
            await message.reply(messages.TICKET_NOT_FOUND)
            return
        relayed = False
        if is_real_chat(ticket.telegram_chat_id):
            try:
                await bot.send_message(ticket.telegram_chat_id, messages.support_reply(reply_text))
                relayed = True
            except TelegramAPIError as e:
                logger.warning("operator_reply_relay_failed", extra={"ticket_id": ticket.id, "error": str(e)})
                await message.reply("❌ Could not deliver the reply to the user.")
                return
        operator_id = str(message.from_user.id) if message.from_user else None
        service.record_reply(ticket, reply_text, actor_id=operator_id)
        ticket_id = ticket.id
    await message.reply(messages.reply_delivered(ticket_id, relayed))


@router.message(SupportStates.waiting_for_message, F.text)
async def support_message(message: Message, state: FSMContext, bot: Bot):
    data = await state.get_data()
    category = data.get("category")
    if not category:
        await show_start(message, state)
        return
    user = message.from_user
    first_name = (user.first_name if user else None) or "User"
    full_name = " ".join(p for p in (first_name, user.last_name if user else None) if p)
    username = user.username if user else None
    telegram_user_id = user.id if user else message.chat.id

    with get_db_session() as db:
        service = SupportService(db)
        ticket = service.create_telegram_ticket(
            chat_id=message.chat.id,
            telegram_user_id=telegram_user_id,
            username=username,
            first_name=first_name,
            category=category,
            message=message.text,
        )
        if settings.telegram_admin_chat_id:
            try:
                sent = await bot.send_message(
                    int(settings.telegram_admin_chat_id),
                    messages.operator_notice(full_name, username, telegram_user_id, category, message.text),
                )
                service.set_admin_message_id(ticket, sent.message_id)
            except TelegramAPIError as e:
                logger.warning("support_ticket_notify_failed", extra={"ticket_id": ticket.id, "error": str(e)})

    await message.answer(messages.request_received(category, message.text))
    await state.clear()


@router.message(F.text)
async def fallback(message: Message, state: FSMContext):
    """Text without a chosen category: show the menu again."""
    if is_operator_chat(message.chat.id):
        return
    await show_start(message, state)


async def on_error(event: ErrorEvent, *args, **kwargs):
    """Global error handler."""
    logger.exception(
        "Error in handler",
        extra={"error": str(event.exception)},
    )


@lru_cache
def get_bot() -> Bot:
    return Bot(
        token=settings.telegram_bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )


@lru_cache
def get_dispatcher() -> Dispatcher:
    # Redis FSM storage: state survives restarts and is shared by webhook workers
    storage = RedisStorage.from_url(settings.redis_url)
    dp = Dispatcher(storage=storage)
    dp.errors.register(on_error)
    dp.include_router(router)
    return dp


async def main():
    """Start the bot in polling mode."""
    configure_logging()
    logger.info("Starting bot...")
    bot = get_bot()
    dp = get_dispatcher()

    # Delete webhook if exists (we use polling)
    await bot.delete_webhook(drop_pending_updates=True)
    logger.info("Bot started successfully!")
    try:
        await dp.start_polling(bot, allowed_updates=["message", "callback_query"])
    finally:
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
