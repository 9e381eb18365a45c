"""
Daraja (Safaricom M-Pesa) client using httpx sync client.

- OAuth token: Basic auth with consumer key/secret, cached until shortly before expiry.
- STK push: CustomerPayBillOnline with password = base64(shortcode + passkey + timestamp).

Transport failures, 5xx answers and token failures raise ProviderUnavailable.
A 4xx answer with a JSON body is returned to the caller as-is (Daraja puts
the rejection reason there).
"""
import base64
import logging
import threading
import time
from datetime import datetime, timedelta, timezone

import httpx
import pybreaker

from app.core.config import settings
from app.services.circuit_breaker import mpesa_breaker
from app.services.payments.errors import ProviderUnavailable
from app.utils.metrics import mpesa_request_duration_seconds, mpesa_requests_total
from app.utils.validation import mask_phone

logger = logging.getLogger(__name__)

# Kenya has no DST
NAIROBI_TZ = timezone(timedelta(hours=3), name="EAT")
TOKEN_EXPIRY_MARGIN = 60  # seconds

OAUTH_PATH = "/oauth/v1/generate?grant_type=client_credentials"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"


class _ProviderHTTPError(Exception):
    """Counted by the breaker: 5xx or unreadable answer."""


def mpesa_timestamp(now: datetime | None = None) -> str:
    """YYYYMMDDHHMMSS in Nairobi time."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(NAIROBI_TZ).strftime("%Y%m%d%H%M%S")


def build_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


class DarajaClient:
    def __init__(
        self,
        transport: httpx.BaseTransport | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
    ) -> None:
        self._base_url = settings.mpesa_base_url
        self._consumer_key = settings.mpesa_consumer_key
        self._consumer_secret = settings.mpesa_consumer_secret
        self.shortcode = settings.mpesa_shortcode
        self._passkey = settings.mpesa_passkey
        self._transport = transport
        self._breaker = breaker or mpesa_breaker
        self._client: httpx.Client | None = None
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._lock = threading.Lock()

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self._base_url,
                timeout=settings.mpesa_timeout,
                transport=self._transport,
            )
        return self._client

    def _record_request(self, endpoint: str, status: str, duration: float) -> None:
        mpesa_requests_total.labels(endpoint=endpoint, status=status).inc()
        mpesa_request_duration_seconds.labels(endpoint=endpoint).observe(duration)

    def _request(self, endpoint: str, method: str, path: str, **kwargs) -> httpx.Response:
        start = time.time()
        try:
            resp = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            self._record_request(endpoint, "error", time.time() - start)
            raise _ProviderHTTPError(type(e).__name__) from e
        status = "success" if resp.status_code < 400 else str(resp.status_code)
        self._record_request(endpoint, status, time.time() - start)
        if resp.status_code >= 500:
            raise _ProviderHTTPError(f"HTTP {resp.status_code}")
        return resp

    def _fetch_token(self) -> tuple[str, int]:
        credentials = base64.b64encode(f"{self._consumer_key}:{self._consumer_secret}".encode()).decode()
        resp = self._request("oauth", "GET", OAUTH_PATH, headers={"Authorization": f"Basic {credentials}"})
        if resp.status_code != 200:
            raise _ProviderHTTPError(f"oauth HTTP {resp.status_code}")
        try:
            data = resp.json()
            token = data["access_token"]
        except (ValueError, KeyError) as e:
            raise _ProviderHTTPError("oauth response without access_token") from e
        return token, int(data.get("expires_in") or 3599)

    def get_access_token(self) -> str:
        with self._lock:
            if self._token and time.time() < self._token_expires_at:
                return self._token
            try:
                token, expires_in = self._breaker.call(self._fetch_token)
            except (_ProviderHTTPError, pybreaker.CircuitBreakerError) as e:
                logger.error("mpesa_token_failed", extra={"error": str(e) or type(e).__name__})
                raise ProviderUnavailable() from e
            self._token = token
            self._token_expires_at = time.time() + max(0, expires_in - TOKEN_EXPIRY_MARGIN)
            return token

    def build_stk_payload(
        self,
        phone: str,
        amount: int,
        account_reference: str,
        transaction_desc: str,
        timestamp: str | None = None,
    ) -> dict:
        """Caller passes already-sanitized reference/description."""
        timestamp = timestamp or mpesa_timestamp()
        return {
            "BusinessShortCode": self.shortcode,
            "Password": build_password(self.shortcode, self._passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(amount),
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": settings.mpesa_callback_endpoint,
            "AccountReference": account_reference,
            "TransactionDesc": transaction_desc,
        }

    def stk_push(self, phone: str, amount: int, account_reference: str, transaction_desc: str) -> dict:
        """
        Submit an STK push. Returns the Daraja JSON answer
        (ResponseCode, CheckoutRequestID, MerchantRequestID, ... or errorCode/errorMessage).
        """
        token = self.get_access_token()
        payload = self.build_stk_payload(phone, amount, account_reference, transaction_desc)
        logger.info(
            "stk_push_request",
            extra={"phone": mask_phone(phone)},
        )

        def _send() -> httpx.Response:
            return self._request(
                "stkpush", "POST", STK_PUSH_PATH,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )

        try:
            resp = self._breaker.call(_send)
            return resp.json()
        except (_ProviderHTTPError, pybreaker.CircuitBreakerError, ValueError) as e:
            logger.error("mpesa_stk_push_failed", extra={"error": str(e) or type(e).__name__})
            raise ProviderUnavailable() from e

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
