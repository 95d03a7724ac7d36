"""Tests for callback signature verification and header reconstruction"""
import hashlib
import hmac

import pytest

from cloudpay.core.exceptions import ConfigurationError, SignatureError
from cloudpay.services.cloudpayments_service import (
    compute_signature,
    environ_from_asgi_headers,
    get_all_headers,
    normalize_header_name,
    verify_signature,
)
from tests.conftest import sign

BODY = b"TransactionId=504&Amount=12.35&InvoiceId=app7_m42_ORD-99"
SECRET = "test_api_secret"


def test_compute_signature_matches_hmac_sha256_base64():
    assert compute_signature(BODY, SECRET) == sign(BODY, SECRET)


def test_valid_signature_passes():
    verify_signature(BODY, {"Content-Hmac": sign(BODY, SECRET)}, SECRET)


def test_missing_header_is_rejected():
    with pytest.raises(SignatureError):
        verify_signature(BODY, {}, SECRET)


def test_empty_header_is_rejected():
    with pytest.raises(SignatureError):
        verify_signature(BODY, {"Content-Hmac": ""}, SECRET)


def test_single_bit_flip_in_body_is_rejected():
    signature = sign(BODY, SECRET)
    tampered = bytes([BODY[0] ^ 0x01]) + BODY[1:]

    with pytest.raises(SignatureError):
        verify_signature(tampered, {"Content-Hmac": signature}, SECRET)


def test_single_bit_flip_in_secret_is_rejected():
    signature = sign(BODY, SECRET)
    other_secret = chr(ord(SECRET[0]) ^ 0x01) + SECRET[1:]

    with pytest.raises(SignatureError):
        verify_signature(BODY, {"Content-Hmac": signature}, other_secret)


def test_hex_digest_is_not_accepted():
    hex_signature = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    with pytest.raises(SignatureError):
        verify_signature(BODY, {"Content-Hmac": hex_signature}, SECRET)


def test_missing_secret_is_configuration_error():
    with pytest.raises(ConfigurationError) as exc_info:
        verify_signature(BODY, {"Content-Hmac": sign(BODY, SECRET)}, "")

    assert exc_info.value.message == "API secret is not configured"
    assert not isinstance(exc_info.value, SignatureError)


@pytest.mark.parametrize(
    "environ_key,expected",
    [
        ("HTTP_CONTENT_HMAC", "Content-Hmac"),
        ("HTTP_X_REQUEST_ID", "X-Request-Id"),
        ("HTTP_HOST", "Host"),
        ("HTTP_USER_AGENT", "User-Agent"),
    ],
)
def test_normalize_header_name(environ_key, expected):
    assert normalize_header_name(environ_key) == expected


def test_get_all_headers_skips_non_http_keys():
    environ = {
        "HTTP_CONTENT_HMAC": "abc=",
        "CONTENT_TYPE": "application/x-www-form-urlencoded",
        "REQUEST_METHOD": "POST",
    }

    assert get_all_headers(environ) == {"Content-Hmac": "abc="}


def test_asgi_headers_are_reconstructed_case_insensitively():
    raw = [(b"content-hmac", b"abc="), (b"X-Custom-HEADER", b"1")]

    headers = get_all_headers(environ_from_asgi_headers(raw))

    assert headers["Content-Hmac"] == "abc="
    assert headers["X-Custom-Header"] == "1"
