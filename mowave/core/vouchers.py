"""
Voucher lifecycle: creation, validation, redemption and admin edits.

Every change to a voucher's ``is_used`` flag happens while holding the
store's per-voucher lock, so a voucher is redeemed at most once.
"""
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

from mowave.core.exceptions import (
    AlreadyUsedError,
    ExpiredError,
    InactiveError,
    NotFoundError,
    ValidationError,
)
from mowave.database.models import (
    UNSET,
    Session,
    SessionPatch,
    Voucher,
    VoucherPatch,
    VoucherStatus,
)
from mowave.database.store import Store
from mowave.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

DEFAULT_DATA_LIMIT = "1GB"


class VoucherManager:
    """Creates, validates and redeems vouchers held in the store."""

    def __init__(self, store: Store):
        self.store = store

    @staticmethod
    def _validate_voucher_spec(duration: Any, price: Any) -> None:
        """
        Validate voucher creation parameters.

        Raises:
            ValidationError: If duration or price is missing or not positive
        """
        if duration is None or price is None:
            raise ValidationError("Duration and price are required")
        if not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0:
            raise ValidationError("Duration must be a positive number of hours")
        if not isinstance(price, int) or isinstance(price, bool) or price <= 0:
            raise ValidationError("Price must be a positive amount")

    def create_voucher(
        self, duration: int, price: int, data_limit: Optional[str] = None
    ) -> Voucher:
        """Create one active, unused voucher expiring ``duration`` hours from now."""
        self._validate_voucher_spec(duration, price)
        voucher = self.store.create_voucher(duration, price, data_limit or DEFAULT_DATA_LIMIT)
        logger.info(
            "voucher_created",
            voucher_id=voucher.id,
            code=voucher.code,
            duration=duration,
            price=price,
        )
        return voucher

    def create_batch(
        self, duration: int, price: int, data_limit: str, quantity: int = 1
    ) -> List[Voucher]:
        """Create ``quantity`` identical vouchers."""
        if duration is None or price is None or not data_limit:
            raise ValidationError("Duration, price, and data_limit are required")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        self._validate_voucher_spec(duration, price)
        return [self.create_voucher(duration, price, data_limit) for _ in range(quantity)]

    def bulk_create(self, specs: Iterable[Dict[str, Any]]) -> Tuple[List[Voucher], List[str]]:
        """
        Create vouchers from several specs, collecting per-spec errors.

        Returns:
            Tuple of created vouchers and error strings (1-based spec index)
        """
        created: List[Voucher] = []
        errors: List[str] = []
        for index, spec in enumerate(specs, start=1):
            try:
                created.extend(
                    self.create_batch(
                        duration=spec.get("duration"),
                        price=spec.get("price"),
                        data_limit=spec.get("data_limit"),
                        quantity=spec.get("quantity", 1),
                    )
                )
            except ValidationError as e:
                errors.append(f"Voucher {index}: {e.message}")
        logger.info("vouchers_bulk_created", created=len(created), errors=len(errors))
        return created, errors

    def get_voucher(self, voucher_id: str) -> Voucher:
        voucher = self.store.get_voucher_by_id(voucher_id)
        if voucher is None:
            raise NotFoundError("Voucher not found", voucher_id=voucher_id)
        return voucher

    def list_available(self) -> List[Voucher]:
        return self.store.get_available_vouchers()

    def _lookup(self, code: str) -> Voucher:
        if not code:
            raise ValidationError("Voucher code is required")
        voucher = self.store.get_voucher_by_code(code)
        if voucher is None:
            raise NotFoundError("Invalid voucher code", code=code)
        return voucher

    def _check_redeemable(self, voucher: Voucher) -> None:
        if voucher.is_used:
            raise AlreadyUsedError("Voucher has already been used", code=voucher.code)
        if voucher.status != VoucherStatus.ACTIVE:
            raise InactiveError("Voucher is not active", code=voucher.code)
        if self.store.clock() > voucher.expires_at:
            raise ExpiredError("Voucher has expired", code=voucher.code)

    def validate(self, code: str) -> Dict[str, Any]:
        """
        Check that a code can be redeemed right now. Does not mutate state.

        Raises:
            NotFoundError, AlreadyUsedError, InactiveError, ExpiredError
        """
        voucher = self._lookup(code)
        self._check_redeemable(voucher)
        return voucher.summary()

    async def redeem(
        self, code: str, user_info: Optional[Dict[str, Any]] = None
    ) -> Tuple[Session, Dict[str, Any]]:
        """
        Consume a voucher and open an access session.

        Returns:
            Tuple of the new session and a voucher summary
        """
        voucher = self._lookup(code)
        async with self.store.voucher_lock(voucher.id):
            self._check_redeemable(voucher)
            user_id = (user_info or {}).get("user_id")
            session = self.mark_redeemed(voucher.id, user_id=user_id, user_info=user_info)

        return session, {
            "code": voucher.code,
            "duration": voucher.duration,
            "data_limit": voucher.data_limit,
        }

    def mark_redeemed(
        self,
        voucher_id: str,
        user_id: Optional[str] = None,
        user_info: Optional[Dict[str, Any]] = None,
        source: str = "redeem",
    ) -> Session:
        """
        Flag a voucher as used and open its session.

        The caller must hold ``store.voucher_lock(voucher_id)`` and must have
        checked that the voucher is unused.
        """
        now = self.store.clock()
        voucher = self.store.update_voucher(
            voucher_id,
            VoucherPatch(
                is_used=True,
                used_at=now,
                user_id=user_id,
                user_info=user_info if user_info is not None else UNSET,
            ),
        )
        if voucher is None:
            raise NotFoundError("Voucher not found", voucher_id=voucher_id)

        session = self.store.create_session(
            voucher_id=voucher.id,
            duration=voucher.duration,
            data_limit=voucher.data_limit,
            user_id=user_id,
        )
        metrics.record_redemption(source)
        logger.info(
            "voucher_redeemed",
            voucher_id=voucher.id,
            code=voucher.code,
            session_id=session.id,
            source=source,
        )
        return session

    def release(self, voucher_id: str) -> Optional[Voucher]:
        """
        Return a used voucher to the available pool and close its sessions.

        The caller must hold ``store.voucher_lock(voucher_id)``.
        """
        voucher = self.store.update_voucher(
            voucher_id, VoucherPatch(is_used=False, used_at=None, user_id=None)
        )
        if voucher is None:
            return None
        for session in self.store.get_sessions_for_voucher(voucher_id):
            if session.is_active:
                self.store.update_session(
                    session.id, SessionPatch(is_active=False, end_time=self.store.clock())
                )
        logger.info("voucher_released", voucher_id=voucher_id, code=voucher.code)
        return voucher

    async def update_voucher(
        self,
        voucher_id: str,
        duration: Optional[int] = None,
        price: Optional[int] = None,
        data_limit: Optional[str] = None,
        status: Optional[VoucherStatus] = None,
    ) -> Voucher:
        """
        Edit an unused voucher. A new duration restarts expiry from now.

        Raises:
            NotFoundError: Unknown voucher
            AlreadyUsedError: Voucher has been redeemed
            ValidationError: Non-positive duration or price
        """
        voucher = self.get_voucher(voucher_id)
        async with self.store.voucher_lock(voucher_id):
            if voucher.is_used:
                raise AlreadyUsedError("Cannot update used voucher", voucher_id=voucher_id)

            self._validate_voucher_spec(
                duration if duration is not None else voucher.duration,
                price if price is not None else voucher.price,
            )
            patch = VoucherPatch()
            if duration is not None:
                patch.duration = duration
                patch.expires_at = self.store.clock() + timedelta(hours=duration)
            if price is not None:
                patch.price = price
            if data_limit is not None:
                patch.data_limit = data_limit
            if status is not None:
                patch.status = VoucherStatus(status)

            updated = self.store.update_voucher(voucher_id, patch)

        logger.info("voucher_updated", voucher_id=voucher_id)
        return updated

    async def delete_voucher(self, voucher_id: str) -> None:
        """
        Delete an unused voucher.

        Raises:
            NotFoundError: Unknown voucher
            AlreadyUsedError: Voucher has been redeemed
        """
        voucher = self.get_voucher(voucher_id)
        async with self.store.voucher_lock(voucher_id):
            if voucher.is_used:
                raise AlreadyUsedError("Cannot delete used voucher", voucher_id=voucher_id)
            self.store.delete_voucher(voucher_id)
        logger.info("voucher_deleted", voucher_id=voucher_id, code=voucher.code)
