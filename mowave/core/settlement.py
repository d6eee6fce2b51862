"""
Payment settlement orchestration.

Orchestrates the voucher purchase flow:
1. Validate the purchase request
2. Check the voucher (exists, unused, price matches)
3. Create the pending payment and return it
4. Queue a settlement job for the worker pool
5. Call the simulated gateway
6. Apply the outcome under the voucher lock (compare-and-set)
7. Dispatch the SMS notification

A payment leaves ``pending`` exactly once. Only `admin_correct` moves a
payment out of a terminal state.
"""
import asyncio
import re
import time
from typing import Any, Dict, Optional

import structlog

from mowave.config import Settings
from mowave.core.exceptions import (
    AlreadyUsedError,
    AmountMismatchError,
    InvalidStateError,
    NotFoundError,
    ProcessingError,
    ValidationError,
)
from mowave.core.vouchers import VoucherManager
from mowave.database.models import (
    Payment,
    PaymentMethod,
    PaymentPatch,
    PaymentStatus,
    Voucher,
)
from mowave.database.store import Store
from mowave.integrations.gateway import (
    GatewayOutcome,
    GatewayRequest,
    PaymentGatewaySimulator,
    Provider,
)
from mowave.integrations.notifications import NotificationDispatcher, NotificationKind
from mowave.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

PHONE_NUMBER_PATTERN = re.compile(r"^256[0-9]{9}$")

NETWORK_PREFIXES: Dict[PaymentMethod, tuple] = {
    PaymentMethod.MTN_MOMO: ("25677", "25678", "25676", "25639"),
    PaymentMethod.AIRTEL_MONEY: ("25670", "25675", "25674", "25620"),
}

ESTIMATED_PROCESSING_TIME = {
    PaymentMethod.MTN_MOMO: "3-5 seconds",
    PaymentMethod.AIRTEL_MONEY: "4-6 seconds",
}

VOUCHER_UNAVAILABLE = "VOUCHER_UNAVAILABLE"
PROCESSING_ERROR = ProcessingError.error_code
ADMIN_CORRECTION = "ADMIN_CORRECTION"


def estimated_processing_time(payment_method: PaymentMethod | str) -> str:
    return ESTIMATED_PROCESSING_TIME[PaymentMethod(payment_method)]


class SettlementOrchestrator:
    """
    Drives payments from ``pending`` to a terminal state.

    `initiate` returns as soon as the pending payment exists; the gateway
    call happens in `settle`, which the settlement worker runs for every
    queued payment id.
    """

    def __init__(
        self,
        store: Store,
        vouchers: VoucherManager,
        gateway: PaymentGatewaySimulator,
        notifier: NotificationDispatcher,
        settings: Settings,
        queue: Optional["asyncio.Queue[str]"] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            store: Entity store
            vouchers: Voucher manager used to consume and release vouchers
            gateway: Gateway simulator
            notifier: SMS dispatcher
            settings: Payment bounds and prefix enforcement
            queue: Settlement job queue (payment ids)
        """
        self.store = store
        self.vouchers = vouchers
        self.gateway = gateway
        self.notifier = notifier
        self.settings = settings
        self.queue: "asyncio.Queue[str]" = queue if queue is not None else asyncio.Queue()

        logger.info("settlement_orchestrator_initialized")

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def _validate_payment_request(
        self,
        amount: Any,
        phone_number: Any,
        payment_method: Any,
        voucher_id: Any,
    ) -> PaymentMethod:
        """
        Validate payment request parameters.

        Returns:
            PaymentMethod: Parsed payment method

        Raises:
            ValidationError: If validation fails
        """
        min_amount = self.settings.min_payment_amount
        max_amount = self.settings.max_payment_amount
        if (
            not isinstance(amount, int)
            or isinstance(amount, bool)
            or amount < min_amount
            or amount > max_amount
        ):
            raise ValidationError(
                f"Amount must be between {min_amount} and {max_amount} {self.settings.currency}"
            )

        if not phone_number or not PHONE_NUMBER_PATTERN.match(str(phone_number)):
            raise ValidationError("Invalid phone number format. Use 256XXXXXXXXX")

        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError("Payment method must be mtn_momo or airtel_money")

        if self.settings.enforce_network_prefixes and not phone_number.startswith(
            NETWORK_PREFIXES[method]
        ):
            network = "MTN" if method == PaymentMethod.MTN_MOMO else "Airtel"
            raise ValidationError(f"Phone number is not a valid {network} number")

        if not voucher_id:
            raise ValidationError("Voucher ID is required")

        return method

    def _purchasable_voucher(self, voucher_id: str, amount: int) -> Voucher:
        voucher = self.store.get_voucher_by_id(voucher_id)
        if voucher is None:
            raise NotFoundError("Voucher not found", voucher_id=voucher_id)
        if voucher.is_used:
            raise AlreadyUsedError("Voucher already used", voucher_id=voucher_id)
        if voucher.price != amount:
            raise AmountMismatchError(
                "Payment amount does not match voucher price",
                voucher_id=voucher_id,
                amount=amount,
                price=voucher.price,
            )
        return voucher

    def initiate(
        self,
        amount: int,
        phone_number: str,
        payment_method: PaymentMethod | str,
        voucher_id: str,
        user_id: Optional[str] = None,
    ) -> Payment:
        """
        Create a pending payment for a voucher and queue its settlement.

        Args:
            amount: Amount in UGX, must equal the voucher price
            phone_number: Payer MSISDN (256XXXXXXXXX)
            payment_method: mtn_momo or airtel_money
            voucher_id: Voucher being purchased
            user_id: Optional buyer

        Returns:
            Payment: The pending payment

        Raises:
            ValidationError, NotFoundError, AlreadyUsedError, AmountMismatchError
        """
        try:
            method = self._validate_payment_request(
                amount, phone_number, payment_method, voucher_id
            )
            voucher = self._purchasable_voucher(voucher_id, amount)
        except (ValidationError, NotFoundError, AlreadyUsedError, AmountMismatchError) as e:
            metrics.record_payment_rejected(e.error_code)
            logger.warning(
                "payment_rejected",
                voucher_id=voucher_id,
                error_code=e.error_code,
                reason=e.message,
            )
            raise

        payment = self.store.create_payment(
            amount=amount,
            phone_number=phone_number,
            payment_method=method,
            voucher_id=voucher.id,
            user_id=user_id,
            metadata={
                "voucher_code": voucher.code,
                "data_limit": voucher.data_limit,
                "duration": voucher.duration,
            },
        )
        self.queue.put_nowait(payment.id)
        metrics.record_payment_initiated(method.value, amount)
        metrics.set_settlement_queue_depth(self.queue.qsize())

        logger.info(
            "payment_initiated",
            payment_id=payment.id,
            reference=payment.reference,
            payment_method=method.value,
            amount=amount,
            voucher_id=voucher.id,
        )
        return payment

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def settle(self, payment_id: str) -> Optional[Payment]:
        """
        Run the gateway call for a queued payment and record the outcome.

        Never raises: unexpected errors fail the payment with
        ``PROCESSING_ERROR``.

        Returns:
            Optional[Payment]: The payment after settlement, None if unknown
        """
        start_time = time.time()
        payment = self.store.get_payment_by_id(payment_id)
        if payment is None:
            logger.warning("settlement_payment_missing", payment_id=payment_id)
            return None

        if payment.status.is_terminal:
            logger.info(
                "settlement_skipped",
                payment_id=payment_id,
                status=payment.status.value,
            )
            metrics.record_settlement(
                payment.payment_method.value, "skipped", time.time() - start_time
            )
            return payment

        try:
            outcome = await self.gateway.process_payment(
                GatewayRequest(
                    amount=payment.amount,
                    phone_number=payment.phone_number,
                    reference=payment.reference,
                    provider=Provider.for_method(payment.payment_method),
                )
            )
            if outcome.success:
                payment = await self._apply_success(payment_id, outcome)
            else:
                payment = self._apply_decline(payment_id, outcome)

        except Exception as e:
            logger.error(
                "settlement_processing_error",
                payment_id=payment_id,
                error=str(e),
                exc_info=True,
            )
            payment = self._apply_processing_error(payment_id, e)

        metrics.record_settlement(
            payment.payment_method.value, payment.status.value, time.time() - start_time
        )
        return payment

    async def _apply_success(self, payment_id: str, outcome: GatewayOutcome) -> Payment:
        payment = self.store.get_payment_by_id(payment_id)
        async with self.store.voucher_lock(payment.voucher_id):
            if payment.status.is_terminal:
                logger.info(
                    "settlement_result_discarded",
                    payment_id=payment_id,
                    status=payment.status.value,
                    transaction_id=outcome.transaction_id,
                )
                return payment

            now = self.store.clock()
            voucher = self.store.get_voucher_by_id(payment.voucher_id)
            if voucher is None or voucher.is_used:
                self.store.update_payment(
                    payment_id,
                    PaymentPatch(
                        status=PaymentStatus.FAILED,
                        transaction_id=outcome.transaction_id,
                        provider_response=outcome.provider_response,
                        failure_reason="Voucher is no longer available",
                        error_code=VOUCHER_UNAVAILABLE,
                        completed_at=now,
                    ),
                )
                logger.warning(
                    "settlement_voucher_unavailable",
                    payment_id=payment_id,
                    voucher_id=payment.voucher_id,
                    transaction_id=outcome.transaction_id,
                )
                self._notify_failure(payment, "Voucher is no longer available")
                return payment

            self.store.update_payment(
                payment_id,
                PaymentPatch(
                    status=PaymentStatus.SUCCESS,
                    transaction_id=outcome.transaction_id,
                    provider_response=outcome.provider_response,
                    completed_at=now,
                ),
            )
            self.vouchers.mark_redeemed(
                voucher.id, user_id=payment.user_id, source="settlement"
            )

        logger.info(
            "payment_settled",
            payment_id=payment_id,
            reference=payment.reference,
            transaction_id=outcome.transaction_id,
        )
        self._notify_voucher_code(payment, voucher)
        return payment

    def _apply_decline(self, payment_id: str, outcome: GatewayOutcome) -> Payment:
        payment = self.store.get_payment_by_id(payment_id)
        if payment.status.is_terminal:
            logger.info(
                "settlement_result_discarded",
                payment_id=payment_id,
                status=payment.status.value,
                error_code=outcome.error_code,
            )
            return payment

        self.store.update_payment(
            payment_id,
            PaymentPatch(
                status=PaymentStatus.FAILED,
                provider_response=outcome.provider_response,
                failure_reason=outcome.message,
                error_code=outcome.error_code,
                completed_at=self.store.clock(),
            ),
        )
        logger.info(
            "payment_declined",
            payment_id=payment_id,
            reference=payment.reference,
            error_code=outcome.error_code,
        )
        self._notify_failure(payment, outcome.message)
        return payment

    def _apply_processing_error(self, payment_id: str, error: Exception) -> Payment:
        payment = self.store.get_payment_by_id(payment_id)
        if payment.status.is_terminal:
            return payment

        self.store.update_payment(
            payment_id,
            PaymentPatch(
                status=PaymentStatus.FAILED,
                failure_reason=f"Payment processing error: {error}",
                error_code=PROCESSING_ERROR,
                completed_at=self.store.clock(),
            ),
        )
        self._notify_failure(payment, "Payment processing failed")
        return payment

    def _notify_voucher_code(self, payment: Payment, voucher: Voucher) -> None:
        self.notifier.dispatch(
            NotificationKind.VOUCHER_CODE,
            payment.phone_number,
            {
                "voucher_code": voucher.code,
                "data_limit": voucher.data_limit,
                "duration": voucher.duration,
                "payment_reference": payment.reference,
            },
            user_id=payment.user_id,
        )

    def _notify_failure(self, payment: Payment, reason: str) -> None:
        self.notifier.dispatch(
            NotificationKind.PAYMENT_FAILURE,
            payment.phone_number,
            {"payment_reference": payment.reference, "reason": reason},
            user_id=payment.user_id,
        )

    # ------------------------------------------------------------------
    # Cancellation and admin correction
    # ------------------------------------------------------------------

    async def cancel(self, payment_id: str) -> Payment:
        """
        Cancel a pending payment. An in-flight gateway call is not aborted;
        its result is discarded.

        Raises:
            NotFoundError: Unknown payment
            InvalidStateError: Payment is not pending
        """
        payment = self.get_payment(payment_id)
        async with self.store.voucher_lock(payment.voucher_id):
            if payment.status.is_terminal:
                raise InvalidStateError(
                    "Only pending payments can be cancelled",
                    payment_id=payment_id,
                    status=payment.status.value,
                )
            self.store.update_payment(
                payment_id,
                PaymentPatch(status=PaymentStatus.CANCELLED, cancelled_at=self.store.clock()),
            )

        logger.info("payment_cancelled", payment_id=payment_id, reference=payment.reference)
        self.notifier.dispatch(
            NotificationKind.PAYMENT_CANCELLED,
            payment.phone_number,
            {"payment_reference": payment.reference},
            user_id=payment.user_id,
        )
        return payment

    async def admin_correct(
        self,
        payment_id: str,
        new_status: Optional[PaymentStatus | str] = None,
        failure_reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Payment:
        """
        Apply an administrator's status correction.

        Allowed transitions:
        - success -> failed: frees the voucher and closes its sessions
        - pending/failed -> success: consumes the voucher and sends its code

        Without a status change only the failure reason and notes are
        updated.

        Raises:
            NotFoundError: Unknown payment
            ValidationError: Unknown status
            AlreadyUsedError: Voucher was consumed by another payment
            InvalidStateError: Any other transition
        """
        payment = self.get_payment(payment_id)
        if new_status is not None:
            try:
                new_status = PaymentStatus(new_status)
            except ValueError:
                raise ValidationError("Invalid payment status", status=new_status)

        voucher: Optional[Voucher] = None
        async with self.store.voucher_lock(payment.voucher_id):
            current = payment.status
            now = self.store.clock()

            if new_status is None or new_status == current:
                self.store.update_payment(
                    payment_id,
                    PaymentPatch(
                        failure_reason=failure_reason or payment.failure_reason,
                        admin_notes=notes or payment.admin_notes,
                    ),
                )

            elif current == PaymentStatus.SUCCESS and new_status == PaymentStatus.FAILED:
                self.vouchers.release(payment.voucher_id)
                self.store.update_payment(
                    payment_id,
                    PaymentPatch(
                        status=PaymentStatus.FAILED,
                        failure_reason=failure_reason or "Marked as failed by administrator",
                        error_code=ADMIN_CORRECTION,
                        admin_notes=notes or payment.admin_notes,
                        completed_at=now,
                    ),
                )

            elif (
                current in (PaymentStatus.PENDING, PaymentStatus.FAILED)
                and new_status == PaymentStatus.SUCCESS
            ):
                voucher = self.store.get_voucher_by_id(payment.voucher_id)
                if voucher is None:
                    raise NotFoundError("Voucher not found", voucher_id=payment.voucher_id)
                if voucher.is_used:
                    raise AlreadyUsedError(
                        "Voucher has already been used by another payment",
                        voucher_id=voucher.id,
                    )
                self.store.update_payment(
                    payment_id,
                    PaymentPatch(
                        status=PaymentStatus.SUCCESS,
                        failure_reason=None,
                        error_code=None,
                        admin_notes=notes or payment.admin_notes,
                        completed_at=now,
                    ),
                )
                self.vouchers.mark_redeemed(
                    voucher.id, user_id=payment.user_id, source="admin"
                )

            else:
                raise InvalidStateError(
                    f"Cannot change payment status from {current.value} to {new_status.value}",
                    payment_id=payment_id,
                )

        logger.info(
            "payment_corrected",
            payment_id=payment_id,
            status=payment.status.value,
        )
        if voucher is not None:
            self._notify_voucher_code(payment, voucher)
        return payment

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.store.get_payment_by_id(payment_id)
        if payment is None:
            raise NotFoundError("Payment not found", payment_id=payment_id)
        return payment

    def payment_details(self, payment_id: str) -> Dict[str, Any]:
        """Payment fields plus a summary of its voucher."""
        payment = self.get_payment(payment_id)
        details = payment.to_dict()
        voucher = self.store.get_voucher_by_id(payment.voucher_id)
        details["voucher"] = (
            {
                "code": voucher.code,
                "data_limit": voucher.data_limit,
                "duration": voucher.duration,
                "is_used": voucher.is_used,
                "used_at": voucher.used_at,
            }
            if voucher
            else None
        )
        return details

    def verify(self, payment_id: str) -> Dict[str, Any]:
        """Payment status, with voucher details once the payment succeeded."""
        payment = self.get_payment(payment_id)
        voucher_details = None
        if payment.status == PaymentStatus.SUCCESS:
            voucher = self.store.get_voucher_by_id(payment.voucher_id)
            if voucher:
                voucher_details = voucher.summary()

        return {
            "id": payment.id,
            "reference": payment.reference,
            "status": payment.status,
            "transaction_id": payment.transaction_id,
            "amount": payment.amount,
            "phone_number": payment.phone_number,
            "payment_method": payment.payment_method,
            "created_at": payment.created_at,
            "completed_at": payment.completed_at,
            "failure_reason": payment.failure_reason,
            "error_code": payment.error_code,
            "provider_response": payment.provider_response,
            "voucher": voucher_details,
        }

    def status_by_reference(self, reference: str) -> Dict[str, Any]:
        payment = self.store.get_payment_by_reference(reference)
        if payment is None:
            raise NotFoundError("Payment not found", reference=reference)

        return {
            "reference": payment.reference,
            "status": payment.status,
            "transaction_id": payment.transaction_id,
            "amount": payment.amount,
            "phone_number": payment.phone_number,
            "payment_method": payment.payment_method,
            "created_at": payment.created_at,
            "completed_at": payment.completed_at,
            "failure_reason": payment.failure_reason,
        }
