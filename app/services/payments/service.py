"""
M-Pesa payment flows.

StkPushService: validate, rate-limit, push, stamp the order `processing`.
process_callback: settle the order from the Daraja result callback.

Logs carry masked phone numbers and order ids only.
"""
import logging

from sqlalchemy.orm import Session

from app.models.order import STATUS_PENDING
from app.services.mpesa.client import DarajaClient
from app.services.orders.service import OrderService
from app.services.payments.errors import (
    InvalidOrderTransition,
    InvalidPaymentRequest,
    OrderNotFound,
    PaymentError,
    ProviderRejected,
)
from app.services.rate_limit import StkRateLimiter
from app.utils.metrics import mpesa_callbacks_total, stk_push_requests_total
from app.utils.validation import (
    is_valid_amount,
    is_valid_msisdn,
    is_valid_uuid,
    mask_id,
    mask_phone,
    sanitize_account_reference,
    sanitize_transaction_desc,
)

logger = logging.getLogger(__name__)

OUTCOME_BY_ERROR = {
    400: "invalid",
    404: "invalid",
    409: "invalid",
    429: "rate_limited",
    500: "unavailable",
}


class StkPushService:
    def __init__(self, db: Session, daraja: DarajaClient, limiter: StkRateLimiter) -> None:
        self.db = db
        self.daraja = daraja
        self.limiter = limiter
        self.orders = OrderService(db)

    @staticmethod
    def validate(phone, amount, order_id) -> None:
        """Field checks, in order; the first failure wins."""
        if not phone or not amount or not order_id:
            raise InvalidPaymentRequest("Missing required fields")
        if not isinstance(phone, str) or not is_valid_msisdn(phone):
            raise InvalidPaymentRequest("Invalid phone number format")
        if not is_valid_amount(amount):
            raise InvalidPaymentRequest("Invalid amount")
        if not is_valid_uuid(order_id):
            raise InvalidPaymentRequest("Invalid order reference")

    def initiate(
        self,
        phone,
        amount,
        order_id,
        account_reference: str | None = None,
        transaction_desc: str | None = None,
    ) -> dict:
        try:
            result = self._initiate(phone, amount, order_id, account_reference, transaction_desc)
        except PaymentError as e:
            if isinstance(e, ProviderRejected):
                outcome = "rejected"
            else:
                outcome = OUTCOME_BY_ERROR.get(e.status_code, "invalid")
            stk_push_requests_total.labels(outcome=outcome).inc()
            raise
        stk_push_requests_total.labels(outcome="sent").inc()
        return result

    def _initiate(self, phone, amount, order_id, account_reference, transaction_desc) -> dict:
        self.validate(phone, amount, order_id)
        self.limiter.check(phone)

        order = self.orders.get_order(order_id)
        if order is None:
            raise OrderNotFound()
        if order.payment_status != STATUS_PENDING:
            raise InvalidOrderTransition(f"Order is already {order.payment_status}")
        amount = int(amount)
        if order.amount != amount:
            raise InvalidPaymentRequest("Amount does not match order")

        reference = sanitize_account_reference(account_reference, fallback=order_id)
        description = sanitize_transaction_desc(transaction_desc)
        logger.info(
            "stk_push_initiated",
            extra={"phone": mask_phone(phone), "order_id": mask_id(order_id)},
        )
        response = self.daraja.stk_push(phone, amount, reference, description)

        response_code = str(response.get("ResponseCode", ""))
        if response_code != "0":
            logger.warning(
                "stk_push_rejected",
                extra={
                    "order_id": mask_id(order_id),
                    "response_code": response_code or response.get("errorCode"),
                    "error": response.get("errorMessage") or response.get("ResponseDescription"),
                },
            )
            raise ProviderRejected(response_code=response_code or None)

        checkout_request_id = response.get("CheckoutRequestID")
        merchant_request_id = response.get("MerchantRequestID")
        if not self.orders.mark_processing(order_id, checkout_request_id):
            # settled concurrently (e.g. admin approval); the callback will be ignored
            logger.warning("stk_push_order_not_pending", extra={"order_id": mask_id(order_id)})
        logger.info(
            "stk_push_sent",
            extra={
                "order_id": mask_id(order_id),
                "checkout_request_id": checkout_request_id,
                "merchant_request_id": merchant_request_id,
            },
        )
        return {
            "success": True,
            "message": "STK Push sent successfully",
            "checkoutRequestId": checkout_request_id,
            "merchantRequestId": merchant_request_id,
        }


class MalformedCallback(ValueError):
    pass


def parse_callback(payload) -> dict:
    """
    Daraja envelope -> {merchant_request_id, checkout_request_id, result_code,
    result_desc, receipt_number, amount, phone}.
    """
    try:
        cb = payload["Body"]["stkCallback"]
        checkout_request_id = cb["CheckoutRequestID"]
        result_code = int(cb["ResultCode"])
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedCallback("invalid stkCallback envelope") from e
    if not checkout_request_id:
        raise MalformedCallback("empty CheckoutRequestID")

    items = {}
    metadata = cb.get("CallbackMetadata") or {}
    for item in metadata.get("Item") or []:
        if isinstance(item, dict) and "Name" in item:
            items[item["Name"]] = item.get("Value")

    receipt = items.get("MpesaReceiptNumber")
    return {
        "merchant_request_id": cb.get("MerchantRequestID"),
        "checkout_request_id": str(checkout_request_id),
        "result_code": result_code,
        "result_desc": cb.get("ResultDesc"),
        "receipt_number": str(receipt) if receipt is not None else None,
        "amount": items.get("Amount"),
        "phone": str(items["PhoneNumber"]) if items.get("PhoneNumber") is not None else None,
    }


def process_callback(db: Session, payload) -> str:
    """
    Apply one Daraja callback. Returns the outcome label
    (completed / failed / ignored / malformed). Never raises MalformedCallback.
    """
    try:
        data = parse_callback(payload)
    except MalformedCallback as e:
        logger.warning("mpesa_callback_malformed", extra={"error": str(e)})
        mpesa_callbacks_total.labels(result="malformed").inc()
        return "malformed"

    extra = {
        "checkout_request_id": data["checkout_request_id"],
        "merchant_request_id": data["merchant_request_id"],
        "result_code": data["result_code"],
    }
    if data["result_code"] == 0 and not data["receipt_number"]:
        logger.warning("mpesa_callback_missing_receipt", extra=extra)

    order = OrderService(db).apply_callback_result(
        data["checkout_request_id"],
        data["result_code"],
        data["result_desc"],
        data["receipt_number"] if data["result_code"] == 0 else None,
    )
    if order is None:
        logger.info("mpesa_callback_ignored", extra=extra)
        mpesa_callbacks_total.labels(result="ignored").inc()
        return "ignored"

    logger.info(
        "mpesa_callback_applied",
        extra={**extra, "order_id": mask_id(order.id)},
    )
    mpesa_callbacks_total.labels(result=order.payment_status).inc()
    return order.payment_status
