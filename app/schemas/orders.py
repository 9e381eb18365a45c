from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.validation import is_valid_email, is_valid_name, is_valid_uuid, normalize_phone


class OrderCreate(BaseModel):
    job_account_id: str
    customer_name: str
    customer_phone: str
    customer_email: str | None = None

    @field_validator("job_account_id")
    @classmethod
    def check_job_account_id(cls, v: str) -> str:
        if not is_valid_uuid(v):
            raise ValueError("Invalid job account reference")
        return v

    @field_validator("customer_name")
    @classmethod
    def check_name(cls, v: str) -> str:
        v = v.strip()
        if not is_valid_name(v):
            raise ValueError("Name must be 2-100 characters and contain only letters, spaces, hyphens and apostrophes")
        return v

    @field_validator("customer_phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        phone = normalize_phone(v)
        if phone is None:
            raise ValueError("Please enter a valid Kenyan phone number (e.g., 0712345678)")
        return phone

    @field_validator("customer_email")
    @classmethod
    def check_email(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if not is_valid_email(v):
            raise ValueError("Invalid email address")
        return v


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str | None = None
    customer_name: str
    customer_phone: str
    customer_email: str | None = None
    job_account_id: str
    amount: int
    payment_status: str
    mpesa_checkout_request_id: str | None = None
    mpesa_receipt_number: str | None = None
    status_reason: str | None = None
    completed_by: str | None = None
    created_at: datetime
    updated_at: datetime


class AdminOrderOut(OrderOut):
    job_title: str | None = None


class ApproveRequest(BaseModel):
    receipt_number: str = Field(min_length=1, max_length=32)


class RejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)
