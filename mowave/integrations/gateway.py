"""
Simulated mobile-money gateways.

Implements:
- A strategy per provider (MTN MoMo, Airtel Money)
- Fixed success probability and simulated latency per provider
- Provider-shaped success and failure payloads
- Injectable random source so outcomes can be forced in tests

The simulator has no access to the store; a real provider client can
replace a strategy as long as it returns a GatewayOutcome.
"""
import asyncio
import random
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import structlog

from mowave.config import Settings
from mowave.database.models import PaymentMethod
from mowave.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class Provider(str, Enum):
    """Provider identifiers as they appear in gateway payloads."""

    MTN_MOMO = "MTN_MOMO"
    AIRTEL_MONEY = "AIRTEL_MONEY"

    @classmethod
    def for_method(cls, payment_method: PaymentMethod | str) -> "Provider":
        """Map a payment method (``mtn_momo``) to its provider."""
        return cls(PaymentMethod(payment_method).value.upper())


class GatewayError(Exception):
    """Raised when a request cannot be routed to any gateway."""

    pass


@dataclass(frozen=True)
class GatewayRequest:
    """Collection request sent to a provider."""

    amount: int
    phone_number: str
    reference: str
    provider: Provider


@dataclass
class GatewayOutcome:
    """Normalised provider response. Declines are outcomes, not exceptions."""

    success: bool
    provider: Provider
    reference: str
    amount: int
    phone_number: str
    status: str
    message: str
    timestamp: str
    transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    provider_response: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    """
    Base strategy for a simulated provider.

    Subclasses define the provider identity, its failure taxonomy and the
    shape of its raw payloads.
    """

    provider: Provider
    transaction_prefix: str
    success_message: str
    failure_scenarios: Tuple[Tuple[str, str], ...]

    def __init__(
        self,
        success_probability: float,
        delay_seconds: float,
        currency: str = "UGX",
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize gateway.

        Args:
            success_probability: Chance in [0, 1] that a collection succeeds
            delay_seconds: Simulated processing latency
            currency: Currency echoed in provider payloads
            rng: Random source for outcomes and identifiers
            sleep: Awaitable used for the simulated latency
        """
        self.success_probability = success_probability
        self.delay_seconds = delay_seconds
        self.currency = currency
        self.rng = rng or random.SystemRandom()
        self._sleep = sleep

    def generate_transaction_id(self) -> str:
        """``<PREFIX>_`` followed by 12 upper-case hex digits."""
        return f"{self.transaction_prefix}_{self.rng.getrandbits(48):012X}"

    async def submit(self, request: GatewayRequest) -> GatewayOutcome:
        """
        Simulate a collection request.

        Args:
            request: Collection request

        Returns:
            GatewayOutcome: Success or decline
        """
        logger.info(
            "gateway_request_started",
            provider=self.provider.value,
            reference=request.reference,
            amount=request.amount,
        )

        if self.delay_seconds > 0:
            await self._sleep(self.delay_seconds)

        timestamp = datetime.now(timezone.utc).isoformat()

        if self.rng.random() < self.success_probability:
            transaction_id = self.generate_transaction_id()
            outcome = GatewayOutcome(
                success=True,
                provider=self.provider,
                reference=request.reference,
                amount=request.amount,
                phone_number=request.phone_number,
                status="COMPLETED",
                message=self.success_message,
                timestamp=timestamp,
                transaction_id=transaction_id,
                provider_response=self._success_payload(request, transaction_id),
            )
            logger.info(
                "gateway_payment_completed",
                provider=self.provider.value,
                reference=request.reference,
                transaction_id=transaction_id,
            )
            return outcome

        error_code, message = self.rng.choice(self.failure_scenarios)
        logger.warning(
            "gateway_payment_declined",
            provider=self.provider.value,
            reference=request.reference,
            error_code=error_code,
        )
        return GatewayOutcome(
            success=False,
            provider=self.provider,
            reference=request.reference,
            amount=request.amount,
            phone_number=request.phone_number,
            status="FAILED",
            message=message,
            timestamp=timestamp,
            error_code=error_code,
            provider_response=self._failure_payload(request, error_code, message),
        )

    @abstractmethod
    def _success_payload(self, request: GatewayRequest, transaction_id: str) -> Dict[str, Any]:
        """Raw provider body for a completed collection."""

    @abstractmethod
    def _failure_payload(
        self, request: GatewayRequest, error_code: str, message: str
    ) -> Dict[str, Any]:
        """Raw provider body for a declined collection."""


class MtnMomoGateway(PaymentGateway):
    """MTN MoMo Collection API simulation."""

    provider = Provider.MTN_MOMO
    transaction_prefix = "MTN"
    success_message = "Payment completed successfully"
    failure_scenarios = (
        ("INSUFFICIENT_FUNDS", "Insufficient balance in your MTN MoMo account"),
        ("INVALID_PHONE_NUMBER", "Phone number is not registered for MTN MoMo"),
        ("TRANSACTION_DECLINED", "Transaction was declined by MTN MoMo"),
        ("ACCOUNT_BLOCKED", "Your MTN MoMo account is temporarily blocked"),
        ("NETWORK_ERROR", "Network error occurred. Please try again"),
    )

    def _success_payload(self, request: GatewayRequest, transaction_id: str) -> Dict[str, Any]:
        return {
            "externalId": transaction_id,
            "amount": str(request.amount),
            "currency": self.currency,
            "payer": {"partyIdType": "MSISDN", "partyId": request.phone_number},
            "payerMessage": f"MoWave Hotspot Voucher - {request.amount} {self.currency}",
            "payeeNote": "Hotspot voucher purchase",
            "requestId": request.reference,
            "deliveryNotification": False,
            "notificationUrl": None,
            "callbackUrl": None,
        }

    def _failure_payload(
        self, request: GatewayRequest, error_code: str, message: str
    ) -> Dict[str, Any]:
        return {"code": error_code, "message": message, "requestId": request.reference}


class AirtelMoneyGateway(PaymentGateway):
    """Airtel Money API simulation."""

    provider = Provider.AIRTEL_MONEY
    transaction_prefix = "AIRTEL"
    success_message = "Payment processed successfully"
    failure_scenarios = (
        ("INSUFFICIENT_BALANCE", "Insufficient balance in your Airtel Money account"),
        ("INVALID_SUBSCRIBER", "Invalid Airtel Money subscriber"),
        ("TRANSACTION_LIMIT_EXCEEDED", "Transaction limit exceeded"),
        ("SERVICE_UNAVAILABLE", "Airtel Money service is temporarily unavailable"),
        ("PIN_BLOCKED", "Your Airtel Money PIN is blocked"),
    )

    def _airtel_money_id(self) -> str:
        alphabet = string.digits + string.ascii_uppercase
        return "AM" + "".join(self.rng.choice(alphabet) for _ in range(9))

    def _success_payload(self, request: GatewayRequest, transaction_id: str) -> Dict[str, Any]:
        return {
            "transaction_id": transaction_id,
            "transaction_reference": request.reference,
            "amount": str(request.amount),
            "currency": self.currency,
            "subscriber_msisdn": request.phone_number,
            "transaction_status": "SUCCESS",
            "transaction_message": "Transaction completed successfully",
            "airtel_money_id": self._airtel_money_id(),
        }

    def _failure_payload(
        self, request: GatewayRequest, error_code: str, message: str
    ) -> Dict[str, Any]:
        return {
            "error_code": error_code,
            "error_message": message,
            "transaction_reference": request.reference,
            "transaction_status": "FAILED",
        }


class PaymentGatewaySimulator:
    """Routes collection requests to the strategy for their provider."""

    def __init__(self, gateways: Dict[Provider, PaymentGateway]):
        self.gateways = dict(gateways)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        rng: Optional[random.Random] = None,
    ) -> "PaymentGatewaySimulator":
        """Build both provider strategies from configuration."""
        rng = rng or random.SystemRandom()
        return cls(
            {
                Provider.MTN_MOMO: MtnMomoGateway(
                    success_probability=settings.mtn_success_probability,
                    delay_seconds=settings.mtn_delay_seconds,
                    currency=settings.currency,
                    rng=rng,
                ),
                Provider.AIRTEL_MONEY: AirtelMoneyGateway(
                    success_probability=settings.airtel_success_probability,
                    delay_seconds=settings.airtel_delay_seconds,
                    currency=settings.currency,
                    rng=rng,
                ),
            }
        )

    async def process_payment(self, request: GatewayRequest) -> GatewayOutcome:
        """
        Submit a request to its provider.

        Raises:
            GatewayError: If no gateway is registered for the provider
        """
        gateway = self.gateways.get(request.provider)
        if gateway is None:
            raise GatewayError(f"Unsupported payment provider: {request.provider}")

        start_time = time.time()
        outcome = await gateway.submit(request)
        metrics.record_gateway_call(
            request.provider.value, outcome.success, time.time() - start_time
        )
        return outcome
