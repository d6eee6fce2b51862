"""
Pydantic schemas for API requests, and the response envelope.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from mowave.database.models import Role, VoucherStatus


def envelope(
    data: Any = None,
    message: Optional[str] = None,
    pagination: Optional[Dict[str, int]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Build the ``{success, message?, data?, pagination?}`` response body.

    Keys whose value is None are left out.
    """
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    if pagination is not None:
        body["pagination"] = pagination
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


# ----------------------------------------------------------------------
# Vouchers
# ----------------------------------------------------------------------


class GenerateVoucherRequest(BaseModel):
    """Request schema for generating a single voucher."""

    duration: int = Field(..., gt=0, description="Access duration in hours")
    price: int = Field(..., gt=0, description="Price in UGX")
    data_limit: Optional[str] = Field(default=None, description="Data allowance, e.g. 5GB")

    model_config = {
        "json_schema_extra": {
            "examples": [{"duration": 24, "price": 10000, "data_limit": "5GB"}]
        }
    }


class ValidateVoucherRequest(BaseModel):
    code: str = Field(..., min_length=1, description="Voucher code")


class RedeemVoucherRequest(BaseModel):
    """Request schema for redeeming a voucher code."""

    code: str = Field(..., min_length=1, description="Voucher code")
    user_info: Optional[Dict[str, Any]] = Field(
        default=None, description="Client details stored on the voucher; user_id is linked"
    )


# ----------------------------------------------------------------------
# Payments
# ----------------------------------------------------------------------


class CreatePaymentRequest(BaseModel):
    """Request schema for purchasing a voucher with mobile money."""

    amount: int = Field(..., description="Amount in UGX, must equal the voucher price")
    phone_number: str = Field(..., description="Payer number in 256XXXXXXXXX format")
    payment_method: str = Field(..., description="mtn_momo or airtel_money")
    voucher_id: str = Field(..., description="Voucher being purchased")
    user_id: Optional[str] = Field(default=None, description="Optional buyer")

    @field_validator("phone_number")
    @classmethod
    def strip_phone_number(cls, v: str) -> str:
        """Drop surrounding whitespace and a leading plus sign."""
        return v.strip().lstrip("+")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "amount": 10000,
                    "phone_number": "256700000000",
                    "payment_method": "mtn_momo",
                    "voucher_id": "123e4567-e89b-12d3-a456-426614174000",
                }
            ]
        }
    }


class UpdatePaymentRequest(BaseModel):
    """Admin correction of a payment."""

    status: Optional[str] = Field(default=None, description="New payment status")
    failure_reason: Optional[str] = Field(default=None, description="Reason recorded on failure")
    notes: Optional[str] = Field(default=None, description="Administrator notes")


# ----------------------------------------------------------------------
# Auth and users
# ----------------------------------------------------------------------


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class CreateUserRequest(BaseModel):
    email: str = Field(..., min_length=3, description="Login email")
    password: str = Field(..., min_length=1, description="Plain-text password")
    role: Role = Field(default=Role.USER, description="admin or user")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Minimal email shape check."""
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v.strip().lower()


class UpdateUserRequest(BaseModel):
    email: Optional[str] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    password: Optional[str] = None


# ----------------------------------------------------------------------
# Admin vouchers
# ----------------------------------------------------------------------


class CreateVouchersRequest(BaseModel):
    """Create ``quantity`` identical vouchers."""

    duration: int = Field(..., gt=0, description="Access duration in hours")
    price: int = Field(..., gt=0, description="Price in UGX")
    data_limit: str = Field(..., min_length=1, description="Data allowance")
    quantity: int = Field(default=1, ge=1, le=1000, description="Number of vouchers")


class UpdateVoucherRequest(BaseModel):
    duration: Optional[int] = Field(default=None, gt=0)
    price: Optional[int] = Field(default=None, gt=0)
    data_limit: Optional[str] = None
    status: Optional[VoucherStatus] = None


class BulkVoucherSpec(BaseModel):
    """One entry of a bulk request; missing fields are reported per entry."""

    duration: Optional[int] = None
    price: Optional[int] = None
    data_limit: Optional[str] = None
    quantity: int = Field(default=1, ge=1, le=1000)


class BulkVouchersRequest(BaseModel):
    vouchers: List[BulkVoucherSpec] = Field(..., min_length=1)
