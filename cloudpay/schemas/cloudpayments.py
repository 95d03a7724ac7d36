"""
Pydantic models for the CloudPayments routes and gateway payloads.

Gateway-facing models keep the gateway's PascalCase field names so that
callback bodies and API responses validate without aliasing.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


OPERATION_AUTH_ONLY = "authorization-only"
CALLBACK_PAYMENT = "payment"


# ──────────────────────────────────────────────────────────────────────
#  Payment – POST /api/v1/cloudpayments/payment
# ──────────────────────────────────────────────────────────────────────


class PaymentRequest(BaseModel):
    """Request body for starting a gateway authorization for a host order."""

    order_id: str = Field(..., min_length=1)
    auto_submit: bool = True


class OrderData(BaseModel):
    """Order as returned by the host order lookup."""

    model_config = ConfigDict(extra="ignore")

    id: str
    amount: float
    currency: str
    description: Optional[str] = None
    description_en: Optional[str] = None
    customer_contact_id: Optional[str] = None


class GatewayResponse(BaseModel):
    """
    Parsed gateway answer to the token authorization request.

    Either ``error`` is set, or the success triple is (possibly partially)
    set, or nothing is set when the body was not JSON.
    """

    raw: str = ""
    error: Optional[str] = None
    payment_url: Optional[str] = None
    payment_id: Optional[Union[int, str]] = None
    status: Optional[str] = None


# ──────────────────────────────────────────────────────────────────────
#  Callback – POST /api/v1/cloudpayments/callback
# ──────────────────────────────────────────────────────────────────────


class CallbackFields(BaseModel):
    """
    Callback notification fields with the defaults applied when the gateway
    omits them. Unknown fields are kept.
    """

    model_config = ConfigDict(extra="allow")

    TransactionId: int = 0
    InvoiceId: str = ""
    Description: str = ""
    Amount: float = 0.0
    Currency: str = ""
    Name: str = ""
    Email: str = ""
    Data: Any = ""
    CardFirstSix: str = ""
    CardLastFour: str = ""

    @field_validator(
        "TransactionId", "InvoiceId", "Description", "Amount", "Currency",
        "Name", "Email", "Data", "CardFirstSix", "CardLastFour",
        mode="before",
    )
    @classmethod
    def null_to_default(cls, v: Any, info: ValidationInfo) -> Any:
        # JSON notifications carry null for fields the payer left empty
        if v is None:
            return cls.model_fields[info.field_name].default
        return v


class InvoiceIdentifier(NamedTuple):
    app_id: str
    merchant_id: str
    order_id: str


class TransactionRecord(BaseModel):
    type: str = OPERATION_AUTH_ONLY
    native_id: int
    amount: float
    currency_id: str
    result: int = 1
    order_id: str
    view_data: str


class StoredTransaction(TransactionRecord):
    model_config = ConfigDict(from_attributes=True)

    id: str
    native_id: Union[int, str]
    app_id: Optional[str] = None
    merchant_id: Optional[str] = None
    created_at: Optional[datetime] = None


class CallbackAck(BaseModel):
    code: int = 0
