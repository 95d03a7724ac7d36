"""
CloudPayments Callback Route.

Endpoint:
  POST /api/v1/cloudpayments/callback — Payment notification from CloudPayments

Flow: verify Content-Hmac → parse fields → parse InvoiceId → normalize →
save transaction → notify host → {"code": 0}.

Every rejection reaches the gateway as the same CALLBACK_REJECTED error;
the gateway retries delivery on its own schedule.
"""

import logging

from fastapi import APIRouter, Depends, Request

from cloudpay.core.exceptions import (
    AppException,
    BusinessValidationError,
    CallbackProcessingError,
    CallbackRejectedError,
    SignatureError,
)
from cloudpay.schemas.cloudpayments import CallbackAck
from cloudpay.services.cloudpayments_service import (
    CloudPaymentsService,
    environ_from_asgi_headers,
    get_all_headers,
    get_cloudpayments_service,
)
from cloudpay.services.host_service import PaymentHost, get_payment_host
from cloudpay.services.slack_service import slack_service

logger = logging.getLogger(__name__)

router = APIRouter()


async def _send_alert(title: str, alert: str) -> None:
    try:
        await slack_service.send_critical_alert(title=title, alert=alert)
    except Exception as slack_err:
        logger.error(f"[cloudpayments] Failed to send Slack alert: {slack_err}")


@router.post(
    "/callback",
    response_model=CallbackAck,
    summary="Receive CloudPayments payment notifications",
    description=(
        "Verifies the HMAC signature of a CloudPayments notification, records "
        "the transaction and acknowledges with {\"code\": 0}. "
    ),
    tags=["cloudpayments", "webhooks"],
)
async def handle_cloudpayments_callback(
    request: Request,
    host: PaymentHost = Depends(get_payment_host),
    service: CloudPaymentsService = Depends(get_cloudpayments_service),
):
    raw_body = await request.body()
    headers = get_all_headers(environ_from_asgi_headers(request.headers.raw))
    content_type = request.headers.get("content-type", "")

    logger.info(
        f"[cloudpayments] callback received — {len(raw_body)} bytes, "
        f"content-type={content_type}"
    )

    try:
        return await service.handle_callback(
            raw_body,
            headers,
            host,
            content_type=content_type,
        )

    except SignatureError as exc:
        logger.warning(f"[cloudpayments] callback rejected: {exc.message}")
        await _send_alert(
            title="CloudPayments callback — Invalid signature",
            alert=f"*Error:* {exc.message}\n*Body size:* `{len(raw_body)}` bytes",
        )
        raise

    except BusinessValidationError as exc:
        logger.error(f"[cloudpayments] callback failed host validation: {exc.message}")
        await _send_alert(
            title="CloudPayments callback — Validation Failed",
            alert=(
                f"*Order:* `{exc.details.get('order_id')}`\n"
                f"*Transaction:* `{exc.details.get('transaction_id')}`\n"
                f"*Error:* {exc.message}"
            ),
        )
        raise

    except CallbackRejectedError as exc:
        logger.warning(f"[cloudpayments] callback rejected: {exc.message}")
        raise

    except AppException:
        raise

    except Exception as exc:
        logger.exception(f"[cloudpayments] unexpected error processing callback: {exc}")
        await _send_alert(
            title="CloudPayments callback — Unexpected Error",
            alert=f"*Error:* {exc}",
        )
        raise CallbackProcessingError(
            "An unexpected error occurred while processing the callback"
        ) from exc
