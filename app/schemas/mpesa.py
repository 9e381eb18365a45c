"""
STK push request body. Fields are deliberately loose (Any): presence, format
and range checks run in StkPushService.validate so that each failure gets
its own error message.
"""
from typing import Any

from pydantic import BaseModel


class StkPushRequest(BaseModel):
    phone: Any = None
    amount: Any = None
    orderId: Any = None
    accountReference: Any = None
    transactionDesc: Any = None


class StkPushResponse(BaseModel):
    success: bool
    message: str
    checkoutRequestId: str | None = None
    merchantRequestId: str | None = None


CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Callback received successfully"}
