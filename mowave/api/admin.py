"""
Admin API routes. Every route requires a bearer token with the admin role.
"""
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status

from mowave.core.container import Services
from mowave.core.reporting import paginate
from mowave.database.models import User

from .dependencies import get_services, require_admin
from .schemas import (
    BulkVouchersRequest,
    CreateUserRequest,
    CreateVouchersRequest,
    UpdatePaymentRequest,
    UpdateUserRequest,
    UpdateVoucherRequest,
    envelope,
)

logger = structlog.get_logger(__name__)

admin_router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@admin_router.get("/dashboard", summary="Dashboard statistics")
async def dashboard(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return envelope(data=services.reporting.dashboard())


# ==================== USERS ====================


@admin_router.get("/users", summary="List users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[str] = None,
    user_status: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    users = services.users.list_users(role=role, status=user_status, search=search)
    page_items, pagination = paginate(users, page, limit)
    return envelope(data=[u.to_public_dict() for u in page_items], pagination=pagination)


@admin_router.post("/users", status_code=status.HTTP_201_CREATED, summary="Create a user")
async def create_user(
    request: CreateUserRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    user = services.users.create_user(request.email, request.password, request.role)
    return envelope(data=user.to_public_dict(), message="User created successfully")


@admin_router.put("/users/{user_id}", summary="Update a user")
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    services: Services = Depends(get_services),
    admin: User = Depends(require_admin),
) -> Dict[str, Any]:
    user = services.users.update_user(
        user_id,
        acting_user_id=admin.id,
        email=request.email,
        role=request.role,
        is_active=request.is_active,
        password=request.password,
    )
    return envelope(data=user.to_public_dict(), message="User updated successfully")


@admin_router.delete("/users/{user_id}", summary="Delete a user")
async def delete_user(
    user_id: str,
    services: Services = Depends(get_services),
    admin: User = Depends(require_admin),
) -> Dict[str, Any]:
    services.users.delete_user(user_id, acting_user_id=admin.id)
    return envelope(message="User deleted successfully")


# ==================== VOUCHERS ====================


@admin_router.get("/vouchers", summary="List vouchers")
async def list_vouchers(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    voucher_status: Optional[str] = Query(None, alias="status"),
    duration: Optional[int] = None,
    used: Optional[bool] = None,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    vouchers = services.reporting.list_vouchers(status=voucher_status, duration=duration, used=used)
    page_items, pagination = paginate(vouchers, page, limit)
    return envelope(data=[v.to_dict() for v in page_items], pagination=pagination)


@admin_router.post("/vouchers", status_code=status.HTTP_201_CREATED, summary="Create vouchers")
async def create_vouchers(
    request: CreateVouchersRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    vouchers = services.vouchers.create_batch(
        duration=request.duration,
        price=request.price,
        data_limit=request.data_limit,
        quantity=request.quantity,
    )
    return envelope(
        data=[v.to_dict() for v in vouchers],
        message=f"{len(vouchers)} voucher(s) created successfully",
    )


@admin_router.put("/vouchers/{voucher_id}", summary="Update an unused voucher")
async def update_voucher(
    voucher_id: str,
    request: UpdateVoucherRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    voucher = await services.vouchers.update_voucher(
        voucher_id,
        duration=request.duration,
        price=request.price,
        data_limit=request.data_limit,
        status=request.status,
    )
    return envelope(data=voucher.to_dict(), message="Voucher updated successfully")


@admin_router.delete("/vouchers/{voucher_id}", summary="Delete an unused voucher")
async def delete_voucher(
    voucher_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    await services.vouchers.delete_voucher(voucher_id)
    return envelope(message="Voucher deleted successfully")


@admin_router.post(
    "/bulk/vouchers",
    status_code=status.HTTP_201_CREATED,
    summary="Bulk create vouchers",
)
async def bulk_create_vouchers(
    request: BulkVouchersRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    created, errors = services.vouchers.bulk_create(
        spec.model_dump() for spec in request.vouchers
    )
    return envelope(
        data=[v.to_dict() for v in created],
        message=f"{len(created)} voucher(s) created successfully",
        errors=errors or None,
    )


# ==================== PAYMENTS ====================


@admin_router.get("/payments", summary="List payments")
async def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    payment_status: Optional[str] = Query(None, alias="status"),
    payment_method: Optional[str] = None,
    phone_number: Optional[str] = None,
    user_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    min_amount: Optional[int] = None,
    max_amount: Optional[int] = None,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    payments = services.reporting.list_payments(
        status=payment_status,
        payment_method=payment_method,
        user_id=user_id,
        phone_number=phone_number,
        start_date=start_date,
        end_date=end_date,
        min_amount=min_amount,
        max_amount=max_amount,
    )
    page_items, pagination = paginate(payments, page, limit)
    return envelope(
        data=[services.settlement.payment_details(p.id) for p in page_items],
        pagination=pagination,
    )


@admin_router.put("/payments/{payment_id}", summary="Correct a payment")
async def update_payment(
    payment_id: str,
    request: UpdatePaymentRequest,
    services: Services = Depends(get_services),
    admin: User = Depends(require_admin),
) -> Dict[str, Any]:
    payment = await services.settlement.admin_correct(
        payment_id,
        new_status=request.status,
        failure_reason=request.failure_reason,
        notes=request.notes,
    )
    logger.info("api_payment_corrected", payment_id=payment_id, admin_id=admin.id)
    return envelope(data=payment.to_dict(), message="Payment updated successfully")


# ==================== ANALYTICS ====================


@admin_router.get("/analytics/revenue", summary="Revenue analytics")
async def revenue_analytics(
    period: str = Query("month", pattern="^(day|week|month|year)$"),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return envelope(
        data=services.reporting.revenue_analytics(period, start_date, end_date)
    )


@admin_router.get("/analytics/vouchers", summary="Voucher analytics")
async def voucher_analytics(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return envelope(data=services.reporting.voucher_analytics())


# ==================== SMS ====================


@admin_router.get("/sms/logs", summary="SMS log")
async def sms_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: Optional[str] = None,
    kind: Optional[str] = None,
    sms_status: Optional[str] = Query(None, alias="status"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    logs = services.notifier.get_logs(user_id=user_id, kind=kind, status=sms_status)
    page_items, pagination = paginate(logs, page, limit)
    return envelope(data=page_items, pagination=pagination)


@admin_router.get("/sms/stats", summary="SMS statistics")
async def sms_stats(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return envelope(data=services.notifier.get_stats())
