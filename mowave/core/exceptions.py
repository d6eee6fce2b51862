"""
Domain exceptions for the voucher platform.

Every exception carries an error code for clients and the HTTP status the
API renders it with. None of them is fatal to the process.
"""

from typing import Any, Dict, Optional


class MoWaveError(Exception):
    """Base exception for all voucher and payment errors."""

    error_code = "ERROR"
    http_status = 500

    def __init__(self, message: str, error_code: Optional[str] = None, **context: Any):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the API error envelope."""
        return {
            "success": False,
            "message": self.message,
            "error": self.error_code,
        }


class ValidationError(MoWaveError):
    """Missing or out-of-range input."""

    error_code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(MoWaveError):
    """Unknown id, code or reference."""

    error_code = "NOT_FOUND"
    http_status = 404


class AlreadyUsedError(MoWaveError):
    """Voucher has already been redeemed."""

    error_code = "VOUCHER_ALREADY_USED"
    http_status = 400


class ExpiredError(MoWaveError):
    """Voucher is past its expiry time."""

    error_code = "VOUCHER_EXPIRED"
    http_status = 400


class InactiveError(MoWaveError):
    """Voucher has been deactivated."""

    error_code = "VOUCHER_INACTIVE"
    http_status = 400


class AmountMismatchError(MoWaveError):
    """Payment amount differs from the voucher price."""

    error_code = "AMOUNT_MISMATCH"
    http_status = 400


class InvalidStateError(MoWaveError):
    """Illegal payment state transition."""

    error_code = "INVALID_STATE"
    http_status = 400


class ProcessingError(MoWaveError):
    """Unexpected failure while settling a payment."""

    error_code = "PROCESSING_ERROR"
    http_status = 500


class AuthenticationError(MoWaveError):
    """Missing, invalid or expired credentials."""

    error_code = "AUTHENTICATION_FAILED"
    http_status = 401


class PermissionDeniedError(MoWaveError):
    """Authenticated user lacks the required role."""

    error_code = "PERMISSION_DENIED"
    http_status = 403
