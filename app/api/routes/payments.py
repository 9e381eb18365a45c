"""
M-Pesa endpoints: STK push initiation and the Daraja result callback.
The callback always answers 200 with the Daraja acknowledgement body.
"""
import json
import logging
import secrets

import redis
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_daraja_client
from app.core.config import settings
from app.db.session import get_db
from app.schemas.mpesa import CALLBACK_ACK, StkPushRequest, StkPushResponse
from app.services.mpesa.client import DarajaClient
from app.services.payments.service import StkPushService, process_callback
from app.services.rate_limit import StkRateLimiter, get_redis
from app.utils.metrics import mpesa_callbacks_total

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments/mpesa", tags=["payments"])


@router.post("/stk-push", response_model=StkPushResponse)
def stk_push(
    body: StkPushRequest,
    db: Session = Depends(get_db),
    daraja: DarajaClient = Depends(get_daraja_client),
    redis_client: redis.Redis = Depends(get_redis),
):
    service = StkPushService(db, daraja, StkRateLimiter(redis_client))
    return service.initiate(
        body.phone,
        body.amount,
        body.orderId,
        body.accountReference,
        body.transactionDesc,
    )


@router.post("/callback")
async def mpesa_callback(request: Request, db: Session = Depends(get_db)):
    expected = settings.mpesa_callback_token
    if expected and not secrets.compare_digest(request.query_params.get("token", ""), expected):
        logger.warning("mpesa_callback_unauthorized")
        mpesa_callbacks_total.labels(result="unauthorized").inc()
        return CALLBACK_ACK

    raw = await request.body()
    try:
        payload = json.loads(raw)
    except ValueError:
        logger.warning("mpesa_callback_malformed", extra={"error": "invalid json"})
        mpesa_callbacks_total.labels(result="malformed").inc()
        return CALLBACK_ACK

    try:
        await run_in_threadpool(process_callback, db, payload)
    except Exception:
        # never fail toward the provider; reconciliation falls back to admin approval
        logger.exception("mpesa_callback_error")
        mpesa_callbacks_total.labels(result="error").inc()
    return CALLBACK_ACK
