"""In-memory persistence for the voucher platform."""
from .models import (
    Payment,
    PaymentMethod,
    PaymentPatch,
    PaymentStatus,
    Role,
    Session,
    SessionPatch,
    User,
    UserPatch,
    Voucher,
    VoucherPatch,
    VoucherStatus,
)
from .store import Store

__all__ = [
    "Payment",
    "PaymentMethod",
    "PaymentPatch",
    "PaymentStatus",
    "Role",
    "Session",
    "SessionPatch",
    "Store",
    "User",
    "UserPatch",
    "Voucher",
    "VoucherPatch",
    "VoucherStatus",
]
