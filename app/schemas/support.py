from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SupportCategory = Literal["payments", "technical", "account", "other"]
TicketStatus = Literal["open", "replied", "closed"]


class TicketCreate(BaseModel):
    category: SupportCategory
    message: str
    userName: str | None = Field(default=None, max_length=100)
    userEmail: str | None = Field(default=None, max_length=255)

    @field_validator("message")
    @classmethod
    def check_message(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message is required")
        if len(v) > 2000:
            raise ValueError("Message must be less than 2000 characters")
        return v


class TicketCreated(BaseModel):
    success: bool = True
    ticketId: str


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str | None = None
    telegram_user_id: int
    telegram_chat_id: int
    telegram_username: str | None = None
    telegram_first_name: str | None = None
    category: str
    message: str
    status: str
    admin_reply: str | None = None
    admin_message_id: int | None = None
    channel: str
    created_at: datetime
    updated_at: datetime


class TicketReply(BaseModel):
    reply: str = Field(min_length=1, max_length=4000)


class TicketStatusUpdate(BaseModel):
    status: TicketStatus
