from datetime import datetime

from pydantic import BaseModel, Field


class PurchaseOut(BaseModel):
    id: str
    job_account_id: str
    job_title: str | None = None
    order_id: str
    purchase_date: datetime
    start_date: datetime
    end_date: datetime
    status: str


class TaskComplete(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)
