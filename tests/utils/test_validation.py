import pytest

from app.utils.validation import (
    is_valid_amount,
    is_valid_email,
    is_valid_msisdn,
    is_valid_name,
    is_valid_uuid,
    mask_id,
    mask_phone,
    normalize_phone,
    normalize_receipt,
    password_problem,
    sanitize_account_reference,
    sanitize_search,
    sanitize_transaction_desc,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("0712345678", "254712345678"),
        ("0112345678", "254112345678"),
        ("+254712345678", "254712345678"),
        ("254712345678", "254712345678"),
        ("712345678", "254712345678"),
        ("0712 345-678", "254712345678"),
        ("0812345678", None),
        ("07123456", None),
        ("07123abc78", None),
        ("", None),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_msisdn_must_be_normalized():
    assert is_valid_msisdn("254712345678")
    assert not is_valid_msisdn("0712345678")
    assert not is_valid_msisdn("2547123456789")
    assert not is_valid_msisdn("254712345678\n")


@pytest.mark.parametrize(
    "amount,ok",
    [(1, True), (3500, True), (3500.0, True), (150000, True), (0, False), (-5, False),
     (150001, False), (10.5, False), (True, False), ("100", False), (None, False)],
)
def test_is_valid_amount(amount, ok):
    assert is_valid_amount(amount) is ok


def test_sanitize_account_reference():
    assert sanitize_account_reference("JOB-123 <x>!") == "JOB-123x"
    assert sanitize_account_reference("ABCDEFGHIJKLMNOP") == "ABCDEFGHIJKL"
    assert sanitize_account_reference("!!!", fallback="ab12cd34-ef") == "ab12cd34-ef"


def test_sanitize_transaction_desc():
    assert sanitize_transaction_desc("Job: Data Entry!") == "Job Data Entr"
    assert sanitize_transaction_desc("@@@") == "Payment"
    assert sanitize_transaction_desc(None) == "Payment"


def test_sanitize_search():
    assert sanitize_search("  <script>'x'  ") == "scriptx"
    assert len(sanitize_search("a" * 500)) == 100


def test_normalize_receipt():
    assert normalize_receipt(" qk12abc34 ") == "QK12ABC34"
    assert normalize_receipt("QK12-ABC") is None
    assert normalize_receipt("") is None


def test_masks():
    assert mask_phone("254712345678") == "254712***"
    assert mask_phone(None) == ""
    assert mask_id("0f8fad5b-d9cb-469f-a165-70867728950e") == "0f8fad5b***"


@pytest.mark.parametrize(
    "password,problem",
    [
        ("Secret123", None),
        ("Sh0rt", "Password must be at least 8 characters"),
        ("alllower123", "Password must contain at least one uppercase letter"),
        ("ALLUPPER123", "Password must contain at least one lowercase letter"),
        ("NoDigitsHere", "Password must contain at least one number"),
    ],
)
def test_password_problem(password, problem):
    assert password_problem(password) == problem


def test_is_valid_name():
    assert is_valid_name("Mary-Jane O'Neil")
    assert not is_valid_name("J")
    assert not is_valid_name("Robert'); DROP")


def test_is_valid_email_whole_string():
    assert is_valid_email("jane@example.com")
    assert not is_valid_email("jane@example.com\n")
    assert not is_valid_email("jane@@example.com")


@pytest.mark.parametrize(
    "value,ok",
    [
        ("0f8fad5b-d9cb-469f-a165-70867728950e", True),
        ("0F8FAD5B-D9CB-469F-A165-70867728950E", True),
        ("0f8fad5bd9cb469fa16570867728950e", False),
        ("{0f8fad5b-d9cb-469f-a165-70867728950e}", False),
        ("urn:uuid:0f8fad5b-d9cb-469f-a165-70867728950e", False),
        ("0f8fad5b-d9cb-469f-a165-70867728950e\n", False),
        (12345, False),
    ],
)
def test_is_valid_uuid_canonical_only(value, ok):
    assert is_valid_uuid(value) is ok
