"""
Entity models held by the in-memory store.

Entities are plain dataclasses owned by the Store. Mutations go through the
per-entity patch dataclasses: a patch field left at ``UNSET`` is preserved,
every other field overwrites the stored value (shallow merge).
"""
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    """User roles."""

    ADMIN = "admin"
    USER = "user"


class VoucherStatus(str, Enum):
    """Administrative voucher status, independent of redemption."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class PaymentStatus(str, Enum):
    """Payment lifecycle states."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class PaymentMethod(str, Enum):
    """Supported mobile-money providers."""

    MTN_MOMO = "mtn_momo"
    AIRTEL_MONEY = "airtel_money"


class _Unset:
    """Marker for patch fields that should not be touched."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def apply_patch(entity: Any, patch: Any) -> None:
    """Copy every field of ``patch`` that is not UNSET onto ``entity``."""
    for patch_field in fields(patch):
        value = getattr(patch, patch_field.name)
        if value is not UNSET:
            setattr(entity, patch_field.name, value)


@dataclass
class User:
    id: str
    email: str
    password_hash: str
    role: Role = Role.USER
    is_active: bool = True
    created_at: Optional[datetime] = None

    def to_public_dict(self) -> Dict[str, Any]:
        """User fields that are safe to return from the API."""
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": self.created_at,
        }


@dataclass
class Voucher:
    id: str
    code: str
    duration: int
    price: int
    data_limit: str
    status: VoucherStatus = VoucherStatus.ACTIVE
    is_used: bool = False
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    user_id: Optional[str] = None
    user_info: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> Dict[str, Any]:
        """Public voucher details shown after validation."""
        return {
            "code": self.code,
            "duration": self.duration,
            "data_limit": self.data_limit,
            "expires_at": self.expires_at,
        }


@dataclass
class Payment:
    id: str
    amount: int
    phone_number: str
    payment_method: PaymentMethod
    voucher_id: str
    reference: str
    user_id: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    provider_response: Optional[Dict[str, Any]] = None
    failure_reason: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Session:
    id: str
    voucher_id: str
    duration: int
    data_limit: str
    start_time: datetime
    end_time: datetime
    user_id: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UserPatch:
    email: Any = UNSET
    password_hash: Any = UNSET
    role: Any = UNSET
    is_active: Any = UNSET


@dataclass
class VoucherPatch:
    duration: Any = UNSET
    price: Any = UNSET
    data_limit: Any = UNSET
    status: Any = UNSET
    is_used: Any = UNSET
    expires_at: Any = UNSET
    used_at: Any = UNSET
    user_id: Any = UNSET
    user_info: Any = UNSET


@dataclass
class PaymentPatch:
    status: Any = UNSET
    transaction_id: Any = UNSET
    provider_response: Any = UNSET
    failure_reason: Any = UNSET
    error_code: Any = UNSET
    admin_notes: Any = UNSET
    completed_at: Any = UNSET
    cancelled_at: Any = UNSET


@dataclass
class SessionPatch:
    is_active: Any = UNSET
    end_time: Any = UNSET
