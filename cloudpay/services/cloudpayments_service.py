"""
CloudPayments Payment Gateway Service.

Covers both directions of the integration:

  - outbound: build the token authorization request for a host order,
    POST it to the gateway and turn the returned PaymentURL into an
    auto-submitting redirect form;
  - inbound: verify the Content-Hmac signature of a payment callback,
    extract the composite invoice id, normalize the callback into a
    transaction record, persist it and notify the host.

Every request gets its own context object; the service instance only
holds configuration.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import html
import json
import logging
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qs, parse_qsl, urlsplit, urlunsplit

import httpx
from pydantic import ValidationError

from cloudpay.core.config import Settings, settings
from cloudpay.core.exceptions import (
    BusinessValidationError,
    ConfigurationError,
    MalformedCallbackError,
    MalformedIdentifierError,
    SignatureError,
    TransportError,
    UnsupportedCurrencyError,
)
from cloudpay.schemas.cloudpayments import (
    CALLBACK_PAYMENT,
    CallbackAck,
    CallbackFields,
    GatewayResponse,
    InvoiceIdentifier,
    OrderData,
    StoredTransaction,
    TransactionRecord,
)
from cloudpay.services.host_service import PaymentHost

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════
# Constants
# ══════════════════════════════════════════════════════════════════════

# Russian legal entities must agree non-RUB currencies with CloudPayments.
ALLOWED_CURRENCIES: Tuple[str, ...] = (
    "RUB", "EUR", "USD", "GBP", "UAH", "BYN", "KZT", "AZN", "CHF",
    "CZK", "CAD", "PLN", "SEK", "TRY", "CNY", "INR", "BRL",
)

# app_id and merchant_id never contain the delimiter; the order id may.
INVOICE_ID_RE = re.compile(r"^([^\W_][^\W_]+)_([^\W_]+)_(.+)$")
INVOICE_ID_TEMPLATE = "{app_id}_{merchant_id}_{order_id}"

HMAC_HEADER = "Content-Hmac"
DESCRIPTION_MAX_LENGTH = 255

# Payment details shown in the order UI: callback field → label
VIEW_DATA_FIELDS: List[Tuple[str, str]] = [
    ("Name", "Имя держателя карты"),
    ("Email", "E-mail адрес плательщика"),
]
CARD_NUMBER_LINE = "Номер карты: {first_six}****{last_four}"


# ══════════════════════════════════════════════════════════════════════
# Request context
# ══════════════════════════════════════════════════════════════════════


@dataclass
class GatewayCredentials:
    public_id: str
    api_secret: str
    app_id: str
    merchant_id: str

    @classmethod
    def from_settings(cls, config: Settings) -> "GatewayCredentials":
        return cls(
            public_id=(config.CLOUDPAYMENTS_PUBLIC_ID or "").strip(),
            api_secret=(config.CLOUDPAYMENTS_API_SECRET or "").strip(),
            app_id=config.CLOUDPAYMENTS_APP_ID,
            merchant_id=config.CLOUDPAYMENTS_MERCHANT_ID,
        )


@dataclass
class AuthorizationContext:
    credentials: GatewayCredentials
    order: OrderData
    email: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)
    response: Optional[GatewayResponse] = None


@dataclass
class AuthorizationResult:
    response: GatewayResponse
    form_html: Optional[str] = None

    @property
    def has_redirect(self) -> bool:
        return self.form_html is not None


@dataclass
class CallbackContext:
    credentials: GatewayCredentials
    raw_body: bytes
    headers: Dict[str, str]
    content_type: str = ""
    raw_fields: Dict[str, Any] = field(default_factory=dict)
    fields: Optional[CallbackFields] = None
    identifier: Optional[InvoiceIdentifier] = None
    record: Optional[TransactionRecord] = None
    stored: Optional[StoredTransaction] = None


# ══════════════════════════════════════════════════════════════════════
# Pure helper functions
# ══════════════════════════════════════════════════════════════════════


def normalize_header_name(environ_key: str) -> str:
    """
    HTTP_CONTENT_HMAC → Content-Hmac.

    Underscores become word breaks, every word is capitalised, words are
    joined with hyphens.
    """
    name = environ_key[5:] if environ_key.startswith("HTTP_") else environ_key
    words = name.replace("_", " ").lower().split(" ")
    return "-".join(w[:1].upper() + w[1:] for w in words)


def get_all_headers(environ: Mapping[str, str]) -> Dict[str, str]:
    """Collect HTTP headers from a CGI/WSGI-style environment mapping."""
    return {
        normalize_header_name(key): value
        for key, value in environ.items()
        if key.startswith("HTTP_")
    }


def environ_from_asgi_headers(
    raw_headers: Iterable[Tuple[bytes, bytes]],
) -> Dict[str, str]:
    """Render ASGI header pairs the way a CGI gateway exposes them."""
    environ: Dict[str, str] = {}
    for name, value in raw_headers:
        key = "HTTP_" + name.decode("latin-1").upper().replace("-", "_")
        environ[key] = value.decode("latin-1")
    return environ


def compute_signature(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes, headers: Mapping[str, str], secret: str) -> None:
    """
    Check the Content-Hmac header against HMAC-SHA256 of the raw body.

    Raises ConfigurationError when no secret is configured and
    SignatureError when the header is missing or does not match.
    """
    if not secret:
        raise ConfigurationError("API secret is not configured")

    received = headers.get(HMAC_HEADER) or ""
    expected = compute_signature(body, secret)

    if not received or not hmac.compare_digest(
        received.encode("utf-8"), expected.encode("utf-8")
    ):
        raise SignatureError("Invalid request signature (possible fraud)")


def parse_invoice_id(invoice_id: Optional[str]) -> InvoiceIdentifier:
    match = INVOICE_ID_RE.match(invoice_id or "")
    if not match:
        raise MalformedIdentifierError(
            "Invalid invoice number", details={"invoice_id": invoice_id or ""}
        )
    return InvoiceIdentifier(*match.groups())


def build_invoice_id(app_id: str, merchant_id: str, order_id: str) -> str:
    return INVOICE_ID_TEMPLATE.format(
        app_id=app_id, merchant_id=merchant_id, order_id=order_id
    )


def parse_callback_body(raw_body: bytes, content_type: str = "") -> Dict[str, Any]:
    """
    Decode a callback body. The gateway posts form-encoded data by default
    and JSON when configured to.
    """
    try:
        text = raw_body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedCallbackError("Callback body is not valid UTF-8") from e

    if "json" in (content_type or "").lower():
        try:
            data = json.loads(text) if text.strip() else {}
        except ValueError as e:
            raise MalformedCallbackError("Callback body is not valid JSON") from e
        if not isinstance(data, dict):
            raise MalformedCallbackError("Callback JSON body must be an object")
        return data

    return {k: v[-1] for k, v in parse_qs(text, keep_blank_values=True).items()}


def build_callback_fields(raw_fields: Mapping[str, Any]) -> CallbackFields:
    try:
        return CallbackFields.model_validate(dict(raw_fields))
    except ValidationError as e:
        raise MalformedCallbackError(
            "Callback fields have invalid values",
            details={"errors": [err["loc"][0] for err in e.errors() if err["loc"]]},
        ) from e


def build_view_data(fields: CallbackFields) -> str:
    lines = []
    for name, label in VIEW_DATA_FIELDS:
        value = getattr(fields, name, "")
        if value:
            lines.append(f"{label}: {value}")
    lines.append(
        CARD_NUMBER_LINE.format(
            first_six=fields.CardFirstSix, last_four=fields.CardLastFour
        )
    )
    return "\n".join(lines)


def to_minor_units(amount: Union[float, int, str, Decimal]) -> int:
    """Major → minor currency units, rounding half away from zero."""
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def truncate_description(text: str, limit: int = DESCRIPTION_MAX_LENGTH) -> str:
    return text[:limit]


def resolve_description(order: OrderData) -> str:
    return order.description or order.description_en or f"Order {order.id}"


def is_currency_allowed(currency: str) -> bool:
    return (currency or "").upper() in ALLOWED_CURRENCIES


def build_authorization_payload(
    order: OrderData,
    credentials: GatewayCredentials,
    email: str,
) -> Dict[str, Any]:
    return {
        "Amount": to_minor_units(order.amount),
        "Currency": order.currency.upper(),
        "PublicId": credentials.public_id,
        "Token": credentials.api_secret,
        "InvoiceId": build_invoice_id(
            credentials.app_id, credentials.merchant_id, order.id
        ),
        "Description": truncate_description(resolve_description(order)),
        "Email": email,
    }


def parse_gateway_response(raw: Union[bytes, str]) -> GatewayResponse:
    """
    Interpret the gateway answer. Non-JSON bodies leave both the error and
    the success fields empty; missing success fields are tolerated.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    result = GatewayResponse(raw=text)

    try:
        parsed = json.loads(text)
    except ValueError:
        return result
    if not isinstance(parsed, dict):
        return result

    error_code = parsed.get("ErrorCode")
    if error_code is not None and str(error_code) != "0":
        details = parsed.get("Details")
        result.error = str(details) if details is not None else f"ErrorCode {error_code}"
        return result

    payment_url = parsed.get("PaymentURL")
    status = parsed.get("Status")
    result.payment_url = str(payment_url) if payment_url else None
    result.payment_id = parsed.get("PaymentId")
    result.status = str(status) if status is not None else None
    return result


def render_redirect_form(payment_url: str, auto_submit: bool = True) -> str:
    """
    Minimal page that sends the browser to the gateway payment page.

    Query parameters of the payment URL are carried as hidden inputs, a
    GET form submission would drop them otherwise.
    """
    parts = urlsplit(payment_url)
    action = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    inputs = "".join(
        f'<input type="hidden" name="{html.escape(k)}" value="{html.escape(v)}">'
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    )
    script = (
        "<script>document.getElementById('cloudpayments-form').submit();</script>"
        if auto_submit
        else ""
    )
    return (
        "<!DOCTYPE html>"
        '<html><head><meta charset="utf-8"><title>CloudPayments</title></head><body>'
        f'<form id="cloudpayments-form" action="{html.escape(action)}" method="get">'
        f"{inputs}"
        '<input type="submit" value="Pay">'
        "</form>"
        f"{script}"
        "</body></html>"
    )


def _mask_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    masked = dict(payload)
    if masked.get("Token"):
        masked["Token"] = "***"
    return masked


# ══════════════════════════════════════════════════════════════════════
# CloudPaymentsService class
# ══════════════════════════════════════════════════════════════════════


class CloudPaymentsService:
    """Service class that encapsulates the CloudPayments gateway operations."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or settings
        self._transport = transport

    def credentials(self) -> GatewayCredentials:
        return GatewayCredentials.from_settings(self.config)

    # ──────────────────────────────────────────────────────────────
    # Outbound authorization
    # ──────────────────────────────────────────────────────────────

    async def authorize(
        self,
        order_id: str,
        host: PaymentHost,
        auto_submit: bool = True,
    ) -> AuthorizationResult:
        """
        Create a two-step (auth) payment for a host order and build the
        redirect page.
        """
        credentials = self.credentials()
        if not credentials.public_id or not credentials.api_secret:
            raise ConfigurationError("CloudPayments public id or API secret is not configured")

        order = await host.get_order(order_id)
        if not is_currency_allowed(order.currency):
            raise UnsupportedCurrencyError(
                f"Currency {order.currency} is not supported by CloudPayments",
                details={"allowed": list(ALLOWED_CURRENCIES)},
            )

        ctx = AuthorizationContext(credentials=credentials, order=order)
        ctx.email = await self._resolve_email(order, host)
        ctx.payload = build_authorization_payload(order, credentials, ctx.email)

        logger.info(
            f"[cloudpayments] authorize — order={order.id}, "
            f"amount={ctx.payload['Amount']} {order.currency}, "
            f"invoice={ctx.payload['InvoiceId']}"
        )

        ctx.response = await self.send_request(self.config.CLOUDPAYMENTS_API_URL, ctx.payload)

        if not ctx.response.payment_url:
            logger.warning(
                f"[cloudpayments] no PaymentURL for order={order.id}, "
                f"error={ctx.response.error!r}"
            )
            return AuthorizationResult(response=ctx.response)

        return AuthorizationResult(
            response=ctx.response,
            form_html=render_redirect_form(ctx.response.payment_url, auto_submit),
        )

    async def _resolve_email(self, order: OrderData, host: PaymentHost) -> str:
        email = None
        if order.customer_contact_id:
            email = await host.get_customer_email(order.customer_contact_id)
        return email or self.config.CLOUDPAYMENTS_DEFAULT_EMAIL

    async def send_request(self, api_url: str, payload: Dict[str, Any]) -> GatewayResponse:
        """POST a JSON payload to the gateway and parse the answer."""
        try:
            async with httpx.AsyncClient(
                timeout=self.config.CLOUDPAYMENTS_TIMEOUT,
                verify=self.config.CLOUDPAYMENTS_VERIFY_TLS,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    api_url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.TransportError as e:
            logger.error(f"[cloudpayments] POST {api_url} error: {e}")
            raise TransportError(
                f"Cannot create connection to {api_url}",
                details={"error": str(e)},
            ) from e

        if self.config.gateway_logging_enabled:
            logger.info(
                f"[cloudpayments] sent to {api_url}: "
                f"{json.dumps(_mask_payload(payload), ensure_ascii=False)}"
            )
            logger.info(
                f"[cloudpayments] received: http_code={resp.status_code}; "
                f"response={resp.text}"
            )

        return parse_gateway_response(resp.content)

    # ──────────────────────────────────────────────────────────────
    # Inbound callback
    # ──────────────────────────────────────────────────────────────

    def init_callback(self, ctx: CallbackContext) -> None:
        """
        Authenticate the callback, then decode its fields and the invoice id.
        Nothing from the body is read before the signature is checked.
        """
        verify_signature(ctx.raw_body, ctx.headers, ctx.credentials.api_secret)

        ctx.raw_fields = parse_callback_body(ctx.raw_body, ctx.content_type)
        ctx.fields = build_callback_fields(ctx.raw_fields)
        ctx.identifier = parse_invoice_id(ctx.fields.InvoiceId)

        if (
            ctx.identifier.app_id != ctx.credentials.app_id
            or ctx.identifier.merchant_id != ctx.credentials.merchant_id
        ):
            logger.warning(
                f"[cloudpayments] invoice {ctx.fields.InvoiceId} was not issued "
                f"by app={ctx.credentials.app_id} merchant={ctx.credentials.merchant_id}"
            )

    def formalize_fields(self, ctx: CallbackContext) -> TransactionRecord:
        fields = ctx.fields
        ctx.record = TransactionRecord(
            native_id=fields.TransactionId,
            amount=fields.Amount,
            currency_id=fields.Currency,
            order_id=ctx.identifier.order_id,
            view_data=build_view_data(fields),
        )
        return ctx.record

    async def persist(self, ctx: CallbackContext, host: PaymentHost) -> StoredTransaction:
        ctx.stored = await host.save_transaction(
            ctx.record,
            ctx.fields.model_dump(mode="json"),
            ctx.identifier,
        )
        return ctx.stored

    async def handle_callback(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        host: PaymentHost,
        content_type: str = "",
    ) -> CallbackAck:
        ctx = CallbackContext(
            credentials=self.credentials(),
            raw_body=raw_body,
            headers=dict(headers),
            content_type=content_type,
        )

        self.init_callback(ctx)
        logger.info(
            f"[cloudpayments] callback verified — invoice={ctx.fields.InvoiceId}, "
            f"transaction={ctx.fields.TransactionId}"
        )

        self.formalize_fields(ctx)
        stored = await self.persist(ctx, host)

        result = await host.dispatch(CALLBACK_PAYMENT, stored)
        if result.get("error"):
            raise BusinessValidationError(
                f"Forbidden (validate error): {result['error']}",
                details={"order_id": stored.order_id, "transaction_id": stored.id},
            )

        logger.info(
            f"[cloudpayments] callback accepted — order={stored.order_id}, "
            f"transaction={stored.id}"
        )
        return CallbackAck(code=0)


# Module-level instance; holds configuration only
cloudpayments_service = CloudPaymentsService()


def get_cloudpayments_service() -> CloudPaymentsService:
    return cloudpayments_service
