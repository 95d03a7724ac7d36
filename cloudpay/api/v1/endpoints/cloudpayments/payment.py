"""
CloudPayments Payment Route — token authorization (two-step payment).

Endpoint:
  POST /api/v1/cloudpayments/payment — Start a payment for a host order

Answers with an auto-submitting HTML form pointing at the gateway payment
page. When the gateway returns no PaymentURL the answer is a JSON
GenericApiResponse with success=false and the gateway error details.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, JSONResponse

from cloudpay.schemas.cloudpayments import PaymentRequest
from cloudpay.schemas.common import ErrorResponse, GenericApiResponse
from cloudpay.services.cloudpayments_service import (
    CloudPaymentsService,
    get_cloudpayments_service,
)
from cloudpay.services.host_service import PaymentHost, get_payment_host

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/payment",
    summary="Create a CloudPayments payment for an order",
    description=(
        "Builds the token authorization request for the host order, posts it "
        "to CloudPayments and redirects the browser to the payment page. "
    ),
    responses={
        200: {
            "description": "Redirect form (text/html) or JSON when no payment URL was returned",
            "content": {"text/html": {}},
            "model": GenericApiResponse,
        },
        404: {"description": "Order not found", "model": ErrorResponse},
        422: {"description": "Currency not supported", "model": ErrorResponse},
        502: {"description": "Gateway unreachable", "model": ErrorResponse},
    },
    tags=["cloudpayments", "payments"],
)
async def create_payment(
    body: PaymentRequest,
    host: PaymentHost = Depends(get_payment_host),
    service: CloudPaymentsService = Depends(get_cloudpayments_service),
):
    result = await service.authorize(
        body.order_id,
        host,
        auto_submit=body.auto_submit,
    )

    if result.has_redirect:
        return HTMLResponse(content=result.form_html)

    response = GenericApiResponse(
        success=False,
        message=result.response.error or "CloudPayments returned no payment URL",
        data={
            "order_id": body.order_id,
            "payment_id": result.response.payment_id,
            "status": result.response.status,
        },
    )
    return JSONResponse(content=response.model_dump())
