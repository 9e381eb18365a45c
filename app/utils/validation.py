"""
Input validation and sanitisation helpers shared by schemas and services.
Phone numbers are Kenyan MSISDNs, normalised to 254XXXXXXXXX.
"""
import re

from app.core.config import settings

MSISDN_RE = re.compile(r"254[17]\d{8}")
NAME_RE = re.compile(r"[a-zA-Z\s'-]+")
EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
RECEIPT_RE = re.compile(r"[A-Z0-9]{1,32}")
UUID_RE = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")

ACCOUNT_REFERENCE_MAX = 12
TRANSACTION_DESC_MAX = 13
SEARCH_MAX = 100


def is_valid_msisdn(phone: str) -> bool:
    """STK push accepts only fully normalised 2547/2541 numbers."""
    return bool(phone) and bool(MSISDN_RE.fullmatch(phone))


def normalize_phone(raw: str) -> str | None:
    """
    07XXXXXXXX / 01XXXXXXXX / +2547XXXXXXXX / 2547XXXXXXXX / 7XXXXXXXX -> 2547XXXXXXXX.
    Returns None if the result is not a valid MSISDN.
    """
    if not raw:
        return None
    digits = re.sub(r"[\s\-()]", "", raw.strip())
    if digits.startswith("+"):
        digits = digits[1:]
    if not digits.isdigit():
        return None
    if digits.startswith("0") and len(digits) == 10:
        digits = "254" + digits[1:]
    elif len(digits) == 9 and digits[0] in "17":
        digits = "254" + digits
    return digits if is_valid_msisdn(digits) else None


def is_valid_amount(amount) -> bool:
    # bool is an int subclass; True must not pass as 1
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return False
    if isinstance(amount, float) and not amount.is_integer():
        return False
    return 1 <= amount <= settings.mpesa_max_amount


def is_valid_uuid(value) -> bool:
    """Canonical 8-4-4-4-12 form only (no braces, urn: prefix or bare hex)."""
    return isinstance(value, str) and bool(UUID_RE.fullmatch(value))


def is_valid_name(name: str) -> bool:
    name = (name or "").strip()
    return 2 <= len(name) <= 100 and bool(NAME_RE.fullmatch(name))


def is_valid_email(email: str) -> bool:
    return bool(email) and len(email) <= 255 and bool(EMAIL_RE.fullmatch(email))


def password_problem(password: str) -> str | None:
    """Human-readable reason the password is too weak, or None."""
    if len(password) < 8:
        return "Password must be at least 8 characters"
    if len(password) > 128:
        return "Password must be less than 128 characters"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"\d", password):
        return "Password must contain at least one number"
    return None


def sanitize_account_reference(value: str | None, fallback: str = "") -> str:
    cleaned = re.sub(r"[^A-Za-z0-9-]", "", value or "")[:ACCOUNT_REFERENCE_MAX]
    return cleaned or re.sub(r"[^A-Za-z0-9-]", "", fallback)[:ACCOUNT_REFERENCE_MAX]


def sanitize_transaction_desc(value: str | None) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9 -]", "", value or "")[:TRANSACTION_DESC_MAX].strip()
    return cleaned or "Payment"


def sanitize_search(value: str | None) -> str:
    return re.sub(r"[<>'\"]", "", (value or "").strip()[:SEARCH_MAX])


def normalize_receipt(value: str) -> str | None:
    receipt = (value or "").strip().upper()
    return receipt if RECEIPT_RE.fullmatch(receipt) else None


def mask_phone(phone: str | None) -> str:
    """2547XX*** (never log a full number)."""
    if not phone:
        return ""
    return phone[:6] + "***"


def mask_id(value: str | None) -> str:
    if not value:
        return ""
    return value[:8] + "***"
