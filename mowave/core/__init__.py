"""Core voucher, settlement, account and reporting services."""
from .exceptions import (
    AlreadyUsedError,
    AmountMismatchError,
    AuthenticationError,
    ExpiredError,
    InactiveError,
    InvalidStateError,
    MoWaveError,
    NotFoundError,
    PermissionDeniedError,
    ProcessingError,
    ValidationError,
)
from .reporting import ReportingService
from .settlement import SettlementOrchestrator
from .users import UserService
from .vouchers import VoucherManager

__all__ = [
    "AlreadyUsedError",
    "AmountMismatchError",
    "AuthenticationError",
    "ExpiredError",
    "InactiveError",
    "InvalidStateError",
    "MoWaveError",
    "NotFoundError",
    "PermissionDeniedError",
    "ProcessingError",
    "ReportingService",
    "SettlementOrchestrator",
    "UserService",
    "VoucherManager",
]
