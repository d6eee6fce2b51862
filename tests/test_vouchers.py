"""
Unit tests for the voucher manager.
"""
import asyncio
from datetime import timedelta

import pytest

from mowave.core.exceptions import (
    AlreadyUsedError,
    ExpiredError,
    InactiveError,
    NotFoundError,
    ValidationError,
)
from mowave.core.vouchers import DEFAULT_DATA_LIMIT, VoucherManager
from mowave.database.models import VoucherPatch, VoucherStatus
from mowave.database.store import Store


@pytest.fixture
def manager(clock) -> VoucherManager:
    return VoucherManager(Store(clock=clock))


class TestVoucherCreation:
    """Voucher creation and admin edits."""

    @pytest.mark.unit
    def test_create_voucher_defaults_data_limit(self, manager: VoucherManager) -> None:
        voucher = manager.create_voucher(duration=1, price=1000)
        assert voucher.data_limit == DEFAULT_DATA_LIMIT

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "duration,price,message",
        [
            (None, 1000, "Duration and price are required"),
            (24, None, "Duration and price are required"),
            (0, 1000, "Duration must be a positive"),
            (24, -5, "Price must be a positive"),
        ],
    )
    def test_create_voucher_rejects_bad_input(
        self, manager: VoucherManager, duration, price, message: str
    ) -> None:
        with pytest.raises(ValidationError, match=message):
            manager.create_voucher(duration=duration, price=price)

    @pytest.mark.unit
    def test_create_batch(self, manager: VoucherManager) -> None:
        vouchers = manager.create_batch(6, 5000, "2GB", quantity=3)

        assert len(vouchers) == 3
        assert len({v.code for v in vouchers}) == 3

    @pytest.mark.unit
    def test_bulk_create_collects_errors(self, manager: VoucherManager) -> None:
        created, errors = manager.bulk_create(
            [
                {"duration": 1, "price": 1000, "data_limit": "500MB", "quantity": 2},
                {"duration": 24, "price": 10000},
                {"duration": 6, "price": 5000, "data_limit": "2GB"},
            ]
        )

        assert len(created) == 3
        assert errors == ["Voucher 2: Duration, price, and data_limit are required"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_voucher_restarts_expiry(self, manager: VoucherManager, clock) -> None:
        voucher = manager.create_voucher(1, 1000, "500MB")
        clock.advance(minutes=30)

        updated = await manager.update_voucher(voucher.id, duration=6, price=5000)

        assert updated.duration == 6
        assert updated.price == 5000
        assert updated.expires_at == clock.now + timedelta(hours=6)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_used_voucher_cannot_be_edited_or_deleted(self, manager: VoucherManager) -> None:
        voucher = manager.create_voucher(1, 1000, "500MB")
        await manager.redeem(voucher.code)

        with pytest.raises(AlreadyUsedError, match="Cannot update used voucher"):
            await manager.update_voucher(voucher.id, price=2000)
        with pytest.raises(AlreadyUsedError, match="Cannot delete used voucher"):
            await manager.delete_voucher(voucher.id)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_delete_voucher(self, manager: VoucherManager) -> None:
        voucher = manager.create_voucher(1, 1000, "500MB")
        await manager.delete_voucher(voucher.id)

        with pytest.raises(NotFoundError):
            manager.get_voucher(voucher.id)


class TestValidation:
    """Redeemability checks."""

    @pytest.mark.unit
    def test_validate_returns_summary(self, manager: VoucherManager) -> None:
        voucher = manager.create_voucher(24, 10000, "5GB")

        summary = manager.validate(voucher.code)

        assert summary == {
            "code": voucher.code,
            "duration": 24,
            "data_limit": "5GB",
            "expires_at": voucher.expires_at,
        }
        assert voucher.is_used is False

    @pytest.mark.unit
    def test_validate_unknown_code(self, manager: VoucherManager) -> None:
        with pytest.raises(NotFoundError, match="Invalid voucher code"):
            manager.validate("MW-NOPE0000")

    @pytest.mark.unit
    def test_validate_requires_code(self, manager: VoucherManager) -> None:
        with pytest.raises(ValidationError, match="Voucher code is required"):
            manager.validate("")

    @pytest.mark.unit
    def test_validate_inactive(self, manager: VoucherManager) -> None:
        voucher = manager.create_voucher(24, 10000, "5GB")
        manager.store.update_voucher(voucher.id, VoucherPatch(status=VoucherStatus.INACTIVE))

        with pytest.raises(InactiveError):
            manager.validate(voucher.code)

    @pytest.mark.unit
    def test_validate_expired(self, manager: VoucherManager, clock) -> None:
        voucher = manager.create_voucher(1, 1000, "500MB")

        clock.advance(hours=1)
        manager.validate(voucher.code)

        clock.advance(seconds=1)
        with pytest.raises(ExpiredError, match="Voucher has expired"):
            manager.validate(voucher.code)


class TestRedemption:
    """Redeeming vouchers."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_redeem_opens_session(self, manager: VoucherManager, clock) -> None:
        voucher = manager.create_voucher(24, 10000, "5GB")

        session, summary = await manager.redeem(
            voucher.code, user_info={"user_id": "user-1", "device": "phone"}
        )

        assert voucher.is_used is True
        assert voucher.used_at == clock.now
        assert voucher.user_id == "user-1"
        assert voucher.user_info == {"user_id": "user-1", "device": "phone"}
        assert session.voucher_id == voucher.id
        assert session.user_id == "user-1"
        assert session.is_active is True
        assert session.end_time - session.start_time == timedelta(hours=24)
        assert summary == {"code": voucher.code, "duration": 24, "data_limit": "5GB"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_redeem_twice_fails(self, manager: VoucherManager, clock) -> None:
        voucher = manager.create_voucher(1, 1000, "500MB")
        await manager.redeem(voucher.code, {"user_id": "user-1"})
        used_at = voucher.used_at

        clock.advance(minutes=5)
        with pytest.raises(AlreadyUsedError, match="already been used"):
            await manager.redeem(voucher.code, {"user_id": "user-2"})

        assert voucher.used_at == used_at
        assert voucher.user_id == "user-1"
        assert len(manager.store.get_sessions_for_voucher(voucher.id)) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_redeem_expired_voucher_fails(self, manager: VoucherManager, clock) -> None:
        voucher = manager.create_voucher(1, 1000, "500MB")

        clock.advance(hours=1, seconds=1)
        with pytest.raises(ExpiredError, match="Voucher has expired"):
            await manager.redeem(voucher.code, {"user_id": "user-1"})

        assert voucher.is_used is False
        assert voucher.used_at is None
        assert voucher.user_id is None
        assert manager.store.get_sessions_for_voucher(voucher.id) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_redeem_inactive_voucher_fails(self, manager: VoucherManager) -> None:
        voucher = manager.create_voucher(1, 1000, "500MB")
        await manager.update_voucher(voucher.id, status=VoucherStatus.INACTIVE)

        with pytest.raises(InactiveError):
            await manager.redeem(voucher.code)
        assert voucher.is_used is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_release_closes_sessions(self, manager: VoucherManager) -> None:
        voucher = manager.create_voucher(1, 1000, "500MB")
        session, _ = await manager.redeem(voucher.code, {"user_id": "user-1"})

        manager.release(voucher.id)

        assert voucher.is_used is False
        assert voucher.used_at is None
        assert voucher.user_id is None
        assert session.is_active is False
        assert manager.list_available() == [voucher]

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_redeems_yield_one_session(self, manager: VoucherManager) -> None:
        voucher = manager.create_voucher(24, 10000, "5GB")

        results = await asyncio.gather(
            *(manager.redeem(voucher.code) for _ in range(10)),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, AlreadyUsedError)]
        assert len(successes) == 1
        assert len(failures) == 9
        assert len(manager.store.get_sessions_for_voucher(voucher.id)) == 1
