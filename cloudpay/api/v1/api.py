from fastapi import APIRouter

from cloudpay.api.v1.endpoints.cloudpayments.router import cloudpayments_router

api_router = APIRouter()

# CloudPayments gateway routes, prefix /cloudpayments
# Full paths: /api/v1/cloudpayments/payment, /api/v1/cloudpayments/callback
api_router.include_router(
    cloudpayments_router,
    prefix="/cloudpayments",
    tags=["cloudpayments"],
)
