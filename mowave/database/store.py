"""
In-memory store for users, vouchers, payments and sessions.

The store is constructed once at process start and injected into the
services that need it. Lookups by id and by the unique fields (voucher code,
payment reference, user email) are O(1) through secondary indices; filtered
listings are linear scans.
"""
import asyncio
import random
import string
import uuid
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from mowave.database.models import (
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
    apply_patch,
    utcnow,
)

logger = structlog.get_logger(__name__)

VOUCHER_CODE_PREFIX = "MW-"
VOUCHER_CODE_ALPHABET = string.ascii_uppercase + string.digits
VOUCHER_CODE_LENGTH = 8

# (duration hours, price, data limit), ten vouchers each
SAMPLE_VOUCHER_TIERS: Tuple[Tuple[int, int, str], ...] = (
    (1, 1000, "500MB"),
    (6, 5000, "2GB"),
    (24, 10000, "5GB"),
    (168, 50000, "20GB"),
)
SAMPLE_VOUCHERS_PER_TIER = 10


class Store:
    """
    Exclusive owner of every entity collection.

    Args:
        rng: Random source for voucher codes and references. Pass a seeded
            ``random.Random`` for reproducible output.
        clock: Callable returning the current aware datetime.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], Any]] = None,
    ):
        self.rng = rng or random.SystemRandom()
        self.clock = clock or utcnow

        self._users: Dict[str, User] = {}
        self._vouchers: Dict[str, Voucher] = {}
        self._payments: Dict[str, Payment] = {}
        self._sessions: Dict[str, Session] = {}

        self._user_ids_by_email: Dict[str, str] = {}
        self._voucher_ids_by_code: Dict[str, str] = {}
        self._payment_ids_by_reference: Dict[str, str] = {}

        self._voucher_locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def generate_voucher_code(self) -> str:
        """Draw a fresh ``MW-XXXXXXXX`` code, retrying on collision."""
        while True:
            code = VOUCHER_CODE_PREFIX + "".join(
                self.rng.choice(VOUCHER_CODE_ALPHABET) for _ in range(VOUCHER_CODE_LENGTH)
            )
            if code not in self._voucher_ids_by_code:
                return code
            logger.warning("voucher_code_collision", code=code)

    def generate_reference(self) -> str:
        """Draw a fresh ``MW-<epoch ms>-<8 hex>`` payment reference."""
        while True:
            timestamp_ms = int(self.clock().timestamp() * 1000)
            reference = f"MW-{timestamp_ms}-{self.rng.getrandbits(32):08X}"
            if reference not in self._payment_ids_by_reference:
                return reference

    def voucher_lock(self, voucher_id: str) -> asyncio.Lock:
        """Lock serialising every ``is_used`` transition of one voucher."""
        lock = self._voucher_locks.get(voucher_id)
        if lock is None:
            lock = self._voucher_locks.setdefault(voucher_id, asyncio.Lock())
        return lock

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, email: str, password_hash: str, role: Role = Role.USER) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            password_hash=password_hash,
            role=Role(role),
            is_active=True,
            created_at=self.clock(),
        )
        self._users[user.id] = user
        self._user_ids_by_email[email] = user.id
        return user

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        user_id = self._user_ids_by_email.get(email)
        return self._users.get(user_id) if user_id else None

    def get_all_users(self) -> List[User]:
        return list(self._users.values())

    def update_user(self, user_id: str, patch: UserPatch) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None:
            return None
        old_email = user.email
        apply_patch(user, patch)
        if user.email != old_email:
            self._user_ids_by_email.pop(old_email, None)
            self._user_ids_by_email[user.email] = user.id
        return user

    def delete_user(self, user_id: str) -> bool:
        user = self._users.pop(user_id, None)
        if user is None:
            return False
        self._user_ids_by_email.pop(user.email, None)
        return True

    # ------------------------------------------------------------------
    # Vouchers
    # ------------------------------------------------------------------

    def create_voucher(self, duration: int, price: int, data_limit: str) -> Voucher:
        now = self.clock()
        voucher = Voucher(
            id=str(uuid.uuid4()),
            code=self.generate_voucher_code(),
            duration=duration,
            price=price,
            data_limit=data_limit,
            status=VoucherStatus.ACTIVE,
            is_used=False,
            created_at=now,
            expires_at=now + timedelta(hours=duration),
        )
        self._vouchers[voucher.id] = voucher
        self._voucher_ids_by_code[voucher.code] = voucher.id
        return voucher

    def get_voucher_by_id(self, voucher_id: str) -> Optional[Voucher]:
        return self._vouchers.get(voucher_id)

    def get_voucher_by_code(self, code: str) -> Optional[Voucher]:
        voucher_id = self._voucher_ids_by_code.get(code)
        return self._vouchers.get(voucher_id) if voucher_id else None

    def get_all_vouchers(self) -> List[Voucher]:
        return list(self._vouchers.values())

    def get_available_vouchers(self) -> List[Voucher]:
        return [
            v for v in self._vouchers.values()
            if not v.is_used and v.status == VoucherStatus.ACTIVE
        ]

    def update_voucher(self, voucher_id: str, patch: VoucherPatch) -> Optional[Voucher]:
        voucher = self._vouchers.get(voucher_id)
        if voucher is None:
            return None
        apply_patch(voucher, patch)
        return voucher

    def delete_voucher(self, voucher_id: str) -> bool:
        voucher = self._vouchers.pop(voucher_id, None)
        if voucher is None:
            return False
        self._voucher_ids_by_code.pop(voucher.code, None)
        self._voucher_locks.pop(voucher_id, None)
        return True

    def seed_sample_vouchers(self) -> List[Voucher]:
        """Create the sample catalogue the storefront starts with."""
        created = []
        for duration, price, data_limit in SAMPLE_VOUCHER_TIERS:
            for _ in range(SAMPLE_VOUCHERS_PER_TIER):
                created.append(self.create_voucher(duration, price, data_limit))
        logger.info("sample_vouchers_seeded", count=len(created))
        return created

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def create_payment(
        self,
        amount: int,
        phone_number: str,
        payment_method: PaymentMethod,
        voucher_id: str,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        payment = Payment(
            id=str(uuid.uuid4()),
            amount=amount,
            phone_number=phone_number,
            payment_method=PaymentMethod(payment_method),
            voucher_id=voucher_id,
            reference=self.generate_reference(),
            user_id=user_id,
            status=PaymentStatus.PENDING,
            metadata=metadata or {},
            created_at=self.clock(),
        )
        self._payments[payment.id] = payment
        self._payment_ids_by_reference[payment.reference] = payment.id
        return payment

    def get_payment_by_id(self, payment_id: str) -> Optional[Payment]:
        return self._payments.get(payment_id)

    def get_payment_by_reference(self, reference: str) -> Optional[Payment]:
        payment_id = self._payment_ids_by_reference.get(reference)
        return self._payments.get(payment_id) if payment_id else None

    def get_all_payments(self) -> List[Payment]:
        return list(self._payments.values())

    def update_payment(self, payment_id: str, patch: PaymentPatch) -> Optional[Payment]:
        payment = self._payments.get(payment_id)
        if payment is None:
            return None
        apply_patch(payment, patch)
        return payment

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        voucher_id: str,
        duration: int,
        data_limit: str,
        user_id: Optional[str] = None,
    ) -> Session:
        now = self.clock()
        session = Session(
            id=str(uuid.uuid4()),
            voucher_id=voucher_id,
            duration=duration,
            data_limit=data_limit,
            start_time=now,
            end_time=now + timedelta(hours=duration),
            user_id=user_id,
            is_active=True,
            created_at=now,
        )
        self._sessions[session.id] = session
        return session

    def get_sessions_for_voucher(self, voucher_id: str) -> List[Session]:
        return [s for s in self._sessions.values() if s.voucher_id == voucher_id]

    def update_session(self, session_id: str, patch: SessionPatch) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        apply_patch(session, patch)
        return session

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, int]:
        vouchers = self._vouchers.values()
        payments = self._payments.values()
        total_vouchers = len(self._vouchers)
        used_vouchers = sum(1 for v in vouchers if v.is_used)
        successful = [p for p in payments if p.status == PaymentStatus.SUCCESS]

        return {
            "total_vouchers": total_vouchers,
            "used_vouchers": used_vouchers,
            "available_vouchers": total_vouchers - used_vouchers,
            "total_payments": len(self._payments),
            "successful_payments": len(successful),
            "total_revenue": sum(p.amount for p in successful),
            "active_users": len(self._users),
        }
