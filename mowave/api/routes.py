"""
Public API routes: vouchers, payments, auth and monitoring.
"""
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from mowave.core.container import Services
from mowave.core.settlement import estimated_processing_time
from mowave.database.models import User

from .dependencies import get_current_user, get_services, require_admin
from .schemas import (
    CreatePaymentRequest,
    GenerateVoucherRequest,
    LoginRequest,
    RedeemVoucherRequest,
    ValidateVoucherRequest,
    envelope,
)

logger = structlog.get_logger(__name__)

# Create routers
voucher_router = APIRouter(prefix="/vouchers", tags=["vouchers"])
payment_router = APIRouter(prefix="/payments", tags=["payments"])
auth_router = APIRouter(prefix="/auth", tags=["auth"])
monitoring_router = APIRouter(tags=["monitoring"])


# ----------------------------------------------------------------------
# Vouchers
# ----------------------------------------------------------------------


@voucher_router.get("", summary="List available vouchers")
async def list_vouchers(services: Services = Depends(get_services)) -> Dict[str, Any]:
    vouchers = services.vouchers.list_available()
    return envelope(data=[v.to_dict() for v in vouchers], count=len(vouchers))


@voucher_router.post(
    "/generate",
    status_code=status.HTTP_201_CREATED,
    summary="Generate a voucher",
)
async def generate_voucher(
    request: GenerateVoucherRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    voucher = services.vouchers.create_voucher(
        duration=request.duration,
        price=request.price,
        data_limit=request.data_limit,
    )
    return envelope(data=voucher.to_dict(), message="Voucher generated successfully")


@voucher_router.post("/validate", summary="Check a voucher code")
async def validate_voucher(
    request: ValidateVoucherRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    summary = services.vouchers.validate(request.code)
    return envelope(data=summary, message="Voucher is valid")


@voucher_router.post(
    "/redeem",
    summary="Redeem a voucher code",
    description="Consume the voucher and open a hotspot session",
)
async def redeem_voucher(
    request: RedeemVoucherRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    session, voucher = await services.vouchers.redeem(request.code, request.user_info)
    return envelope(
        data={"session": session.to_dict(), "voucher": voucher},
        message="Voucher redeemed successfully",
    )


@voucher_router.get("/{voucher_id}", summary="Get a voucher")
async def get_voucher(
    voucher_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return envelope(data=services.vouchers.get_voucher(voucher_id).to_dict())


# ----------------------------------------------------------------------
# Payments
# ----------------------------------------------------------------------


@payment_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Initiate a payment",
    description="Create a pending mobile-money payment for a voucher and queue its settlement",
)
async def create_payment(
    request: CreatePaymentRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Initiate a voucher purchase.

    Returns immediately with the pending payment; poll the status endpoints
    for the outcome.
    """
    logger.info(
        "api_create_payment_request",
        payment_method=request.payment_method,
        amount=request.amount,
        voucher_id=request.voucher_id,
    )
    payment = services.settlement.initiate(
        amount=request.amount,
        phone_number=request.phone_number,
        payment_method=request.payment_method,
        voucher_id=request.voucher_id,
        user_id=request.user_id,
    )
    return envelope(
        message="Payment initiated successfully",
        data={
            "payment_id": payment.id,
            "reference": payment.reference,
            "status": payment.status,
            "amount": payment.amount,
            "phone_number": payment.phone_number,
            "payment_method": payment.payment_method,
            "estimated_processing_time": estimated_processing_time(payment.payment_method),
        },
    )


@payment_router.get(
    "/stats/summary",
    summary="Payment statistics",
    dependencies=[Depends(require_admin)],
)
async def payment_stats(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return envelope(data=services.reporting.payment_stats())


@payment_router.get("/reference/{reference}", summary="Payment status by reference")
async def payment_status_by_reference(
    reference: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return envelope(data=services.settlement.status_by_reference(reference))


@payment_router.get("/{payment_id}/verify", summary="Verify a payment")
async def verify_payment(
    payment_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return envelope(data=services.settlement.verify(payment_id))


@payment_router.get("/{payment_id}", summary="Get a payment")
async def get_payment(
    payment_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return envelope(data=services.settlement.payment_details(payment_id))


@payment_router.delete("/{payment_id}", summary="Cancel a pending payment")
async def cancel_payment(
    payment_id: str,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    payment = await services.settlement.cancel(payment_id)
    logger.info("api_payment_cancelled", payment_id=payment_id, user_id=user.id)
    return envelope(data=payment.to_dict(), message="Payment cancelled successfully")


# ----------------------------------------------------------------------
# Auth
# ----------------------------------------------------------------------


@auth_router.post("/login", summary="Exchange credentials for an access token")
async def login(
    request: LoginRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return envelope(
        data=services.users.authenticate(request.email, request.password),
        message="Login successful",
    )


@auth_router.get("/me", summary="Current user")
async def me(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    return envelope(data=user.to_public_dict())


# ----------------------------------------------------------------------
# Monitoring
# ----------------------------------------------------------------------


@monitoring_router.get(
    "/health",
    summary="Health check",
    description="Check overall system health",
)
async def health(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.health.check_all()


@monitoring_router.get(
    "/health/live",
    summary="Liveness probe",
    description="Kubernetes liveness probe",
)
async def liveness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.health.liveness()


@monitoring_router.get(
    "/health/ready",
    summary="Readiness probe",
    description="Kubernetes readiness probe",
)
async def readiness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    result = await services.health.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
