"""
CloudPayments Router Aggregator.

Combines the CloudPayments sub-routers. When registered in the main app
under /api/v1 with prefix /cloudpayments, the full paths become:

  POST /api/v1/cloudpayments/payment    — Create payment, redirect to gateway
  POST /api/v1/cloudpayments/callback   — Gateway payment notification

"""

from fastapi import APIRouter

from cloudpay.api.v1.endpoints.cloudpayments.callback import router as callback_router
from cloudpay.api.v1.endpoints.cloudpayments.payment import router as payment_router

cloudpayments_router = APIRouter()

cloudpayments_router.include_router(payment_router)
cloudpayments_router.include_router(callback_router)
