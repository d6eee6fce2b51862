"""
SMS notification dispatch.

Sends voucher codes, payment failure and cancellation notices, welcome
messages and OTPs. Delivery is best effort: `send` never raises, failures
are recorded in the SMS log and logged.
"""
import asyncio
import random
import re
import string
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

import httpx
import structlog

from mowave.config import Settings
from mowave.database.models import utcnow
from mowave.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


class NotificationKind(str, Enum):
    """Message types the platform sends."""

    VOUCHER_CODE = "voucher_code"
    PAYMENT_FAILURE = "payment_failure"
    PAYMENT_CANCELLED = "payment_cancelled"
    WELCOME = "welcome"
    OTP = "otp"


MESSAGE_TEMPLATES: Dict[NotificationKind, str] = {
    NotificationKind.VOUCHER_CODE: (
        "Your MoWave voucher code: {voucher_code}. {data_limit} for {duration} hours. "
        "Payment ref: {payment_reference}. Use this code to access the internet. Thanks!"
    ),
    NotificationKind.PAYMENT_FAILURE: (
        "Your MoWave payment {payment_reference} failed: {reason}. Please try again."
    ),
    NotificationKind.PAYMENT_CANCELLED: (
        "Your MoWave payment {payment_reference} has been cancelled."
    ),
    NotificationKind.WELCOME: (
        "Welcome to MoWave, {user_name}! Your account is now active. "
        "Purchase vouchers to get started with high-speed internet."
    ),
    NotificationKind.OTP: (
        "Your MoWave verification code: {otp}. This code expires in 10 minutes. "
        "Do not share this code."
    ),
}


class SmsDeliveryError(Exception):
    """Raised by senders when a message could not be delivered."""

    pass


def format_uganda_phone_number(phone_number: str) -> str:
    """
    Normalise a Ugandan number to ``+256XXXXXXXXX``.

    Accepts ``256...``, ``0...`` and bare 9-digit forms; anything else is
    returned unchanged.
    """
    cleaned = re.sub(r"\D", "", phone_number)
    if cleaned.startswith("256"):
        return f"+{cleaned}"
    if cleaned.startswith("0"):
        return f"+256{cleaned[1:]}"
    if len(cleaned) == 9:
        return f"+256{cleaned}"
    return phone_number


def is_valid_phone_number(phone_number: str) -> bool:
    """Check E.164 format."""
    return bool(E164_PATTERN.match(phone_number))


@dataclass
class SmsResult:
    message_id: str
    status: str


@dataclass
class SmsLog:
    id: str
    phone_number: str
    message: str
    kind: NotificationKind
    user_id: Optional[str] = None
    status: str = "pending"
    created_at: datetime = field(default_factory=utcnow)
    sent_at: Optional[datetime] = None
    external_id: Optional[str] = None
    error: Optional[str] = None


class SmsSender(ABC):
    """Transport for a single SMS."""

    @abstractmethod
    async def send(self, phone_number: str, message: str, log_id: str) -> SmsResult:
        """Deliver one message or raise SmsDeliveryError."""


class MockSmsSender(SmsSender):
    """Logs messages instead of sending them."""

    def __init__(self, delay_seconds: float = 1.0):
        self.delay_seconds = delay_seconds
        self.sent: List[Dict[str, str]] = []

    async def send(self, phone_number: str, message: str, log_id: str) -> SmsResult:
        logger.info("mock_sms_sent", to=phone_number, sms_message=message)
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        self.sent.append({"to": phone_number, "message": message})
        return SmsResult(message_id=f"mock_{log_id}", status="sent")


class HttpSmsSender(SmsSender):
    """Posts messages to an HTTP SMS gateway."""

    def __init__(
        self,
        gateway_url: str,
        api_key: str,
        sender_id: str = "MoWave",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.gateway_url = gateway_url
        self.api_key = api_key
        self.sender_id = sender_id
        self.timeout = timeout
        self._transport = transport

    async def send(self, phone_number: str, message: str, log_id: str) -> SmsResult:
        payload = {
            "to": phone_number,
            "from": self.sender_id,
            "message": message,
            "client_reference": log_id,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.gateway_url, json=payload, headers=headers)
                response.raise_for_status()
                body = response.json()

        except httpx.TimeoutException as e:
            raise SmsDeliveryError(f"SMS gateway timed out after {self.timeout}s") from e

        except httpx.HTTPStatusError as e:
            raise SmsDeliveryError(
                f"SMS gateway error: {e.response.status_code} - {e.response.text}"
            ) from e

        except httpx.HTTPError as e:
            raise SmsDeliveryError(f"SMS gateway request failed: {e}") from e

        return SmsResult(
            message_id=str(body.get("message_id") or body.get("id") or log_id),
            status=str(body.get("status", "sent")),
        )


class NotificationDispatcher:
    """
    Formats and sends SMS notifications, keeping an in-memory SMS log.

    The settlement flow calls `dispatch`, which schedules `send` on the
    running loop and returns immediately.
    """

    def __init__(
        self,
        sender: SmsSender,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
        max_logs: Optional[int] = None,
    ):
        self.sender = sender
        self.max_logs = max_logs
        self.rng = rng or random.SystemRandom()
        self.clock = clock
        self._logs: Dict[str, SmsLog] = {}
        self._tasks: Set["asyncio.Task[Optional[SmsLog]]"] = set()

    @classmethod
    def from_settings(
        cls, settings: Settings, rng: Optional[random.Random] = None
    ) -> "NotificationDispatcher":
        sender: SmsSender
        if settings.is_mock_sms:
            sender = MockSmsSender(delay_seconds=settings.sms_mock_delay_seconds)
        else:
            sender = HttpSmsSender(
                gateway_url=settings.sms_gateway_url,
                api_key=settings.sms_api_key,
                sender_id=settings.sms_sender_id,
                timeout=settings.sms_timeout_seconds,
            )
        logger.info("notification_dispatcher_initialized", sms_mode=settings.sms_mode)
        return cls(sender=sender, rng=rng, max_logs=settings.sms_log_max_entries)

    @staticmethod
    def render(kind: NotificationKind, payload: Dict[str, Any]) -> str:
        """Fill the template for ``kind`` from ``payload``."""
        return MESSAGE_TEMPLATES[NotificationKind(kind)].format(**payload)

    async def send(
        self,
        kind: NotificationKind,
        destination: str,
        payload: Dict[str, Any],
        user_id: Optional[str] = None,
    ) -> Optional[SmsLog]:
        """
        Send one notification. Never raises.

        Args:
            kind: Notification type
            destination: Phone number in any Ugandan format; anything else is
                logged as a failed message
            payload: Template values
            user_id: Optional user the message relates to

        Returns:
            Optional[SmsLog]: Log entry, or None for an unknown kind or bad payload
        """
        try:
            kind = NotificationKind(kind)
        except ValueError:
            logger.error("sms_unknown_kind", kind=str(kind))
            metrics.record_notification("unknown", "failed")
            return None

        try:
            message = self.render(kind, payload)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("sms_template_error", kind=kind.value, error=repr(e))
            metrics.record_notification(kind.value, "failed")
            return None

        if isinstance(destination, str):
            phone_number = format_uganda_phone_number(destination)
        else:
            phone_number = ""
        log = SmsLog(
            id=str(uuid.uuid4()),
            phone_number=phone_number,
            message=message,
            kind=kind,
            user_id=user_id,
            created_at=self.clock(),
        )
        self._record(log)

        if not is_valid_phone_number(phone_number):
            log.status = "failed"
            log.error = "Invalid phone number format"
            logger.warning("sms_invalid_phone_number", kind=kind.value, phone_number=destination)
            metrics.record_notification(kind.value, "failed")
            return log

        try:
            result = await self.sender.send(phone_number, message, log.id)
        except Exception as e:
            log.status = "failed"
            log.error = str(e)
            logger.error("sms_sending_failed", kind=kind.value, log_id=log.id, error=str(e))
            metrics.record_notification(kind.value, "failed")
            return log

        log.status = "sent"
        log.sent_at = self.clock()
        log.external_id = result.message_id
        metrics.record_notification(kind.value, "sent")
        logger.info("sms_sent", kind=kind.value, log_id=log.id, external_id=result.message_id)
        return log

    def _record(self, log: SmsLog) -> None:
        self._logs[log.id] = log
        if self.max_logs is None:
            return
        # Insertion order is creation order
        while len(self._logs) > self.max_logs:
            del self._logs[next(iter(self._logs))]

    def dispatch(
        self,
        kind: NotificationKind,
        destination: str,
        payload: Dict[str, Any],
        user_id: Optional[str] = None,
    ) -> "asyncio.Task[Optional[SmsLog]]":
        """Schedule `send` in the background and return immediately."""
        task = asyncio.get_running_loop().create_task(
            self.send(kind, destination, payload, user_id=user_id)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched notification to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def generate_otp(self, length: int = 6) -> str:
        return "".join(self.rng.choice(string.digits) for _ in range(length))

    def get_logs(
        self,
        user_id: Optional[str] = None,
        kind: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[SmsLog]:
        """SMS log entries, newest first."""
        logs = list(self._logs.values())
        if user_id:
            logs = [log for log in logs if log.user_id == user_id]
        if kind:
            logs = [log for log in logs if log.kind == kind]
        if status:
            logs = [log for log in logs if log.status == status]
        logs.sort(key=lambda log: log.created_at, reverse=True)
        return logs

    def get_stats(self) -> Dict[str, Any]:
        logs = list(self._logs.values())
        total = len(logs)
        successful = sum(1 for log in logs if log.status == "sent")
        type_stats: Dict[str, int] = {}
        for log in logs:
            type_stats[log.kind.value] = type_stats.get(log.kind.value, 0) + 1

        return {
            "total_sent": total,
            "successful": successful,
            "failed": sum(1 for log in logs if log.status == "failed"),
            "pending": sum(1 for log in logs if log.status == "pending"),
            "success_rate": round(successful / total * 100, 2) if total else 0.0,
            "type_stats": type_stats,
            "is_mock_mode": isinstance(self.sender, MockSmsSender),
        }

    def clear_old_logs(self, days_old: int = 30) -> int:
        """Drop log entries older than ``days_old`` days."""
        cutoff = self.clock() - timedelta(days=days_old)
        stale = [log_id for log_id, log in self._logs.items() if log.created_at < cutoff]
        for log_id in stale:
            del self._logs[log_id]
        logger.info("sms_logs_cleared", cleared=len(stale))
        return len(stale)

    async def prune_logs_periodically(self, days_old: int, interval_seconds: float) -> None:
        """Run `clear_old_logs` every ``interval_seconds`` until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            self.clear_old_logs(days_old=days_old)
