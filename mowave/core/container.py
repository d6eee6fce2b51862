"""
Service wiring.

Builds the store and every service around it once per process. The API
keeps the result on ``app.state.services``; tests build their own.
"""
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from mowave.config import Settings, get_settings
from mowave.core.reporting import ReportingService
from mowave.core.settlement import SettlementOrchestrator
from mowave.core.users import UserService
from mowave.core.vouchers import VoucherManager
from mowave.database.store import Store
from mowave.integrations.gateway import PaymentGatewaySimulator
from mowave.integrations.notifications import NotificationDispatcher, SmsSender
from mowave.monitoring.health import HealthCheck
from mowave.workers.settlement_worker import SettlementWorker

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    store: Store
    vouchers: VoucherManager
    gateway: PaymentGatewaySimulator
    notifier: NotificationDispatcher
    settlement: SettlementOrchestrator
    users: UserService
    reporting: ReportingService
    worker: SettlementWorker
    health: HealthCheck


def build_services(
    settings: Optional[Settings] = None,
    rng: Optional[random.Random] = None,
    clock: Optional[Callable[[], Any]] = None,
    gateway: Optional[PaymentGatewaySimulator] = None,
    sms_sender: Optional[SmsSender] = None,
) -> Services:
    """
    Construct the service graph and seed the store.

    Args:
        settings: Settings (defaults to the cached environment settings)
        rng: Random source shared by the store, gateways and OTPs
        clock: Current-time callable for the store
        gateway: Gateway simulator override
        sms_sender: SMS transport override
    """
    settings = settings or get_settings()

    store = Store(rng=rng, clock=clock)
    vouchers = VoucherManager(store)
    gateway = gateway or PaymentGatewaySimulator.from_settings(settings, rng=rng)
    if sms_sender is not None:
        notifier = NotificationDispatcher(
            sms_sender, rng=rng, clock=store.clock, max_logs=settings.sms_log_max_entries
        )
    else:
        notifier = NotificationDispatcher.from_settings(settings, rng=rng)
    settlement = SettlementOrchestrator(store, vouchers, gateway, notifier, settings)
    users = UserService(store, settings)
    worker = SettlementWorker(settlement, concurrency=settings.settlement_workers)

    if settings.seed_default_admin:
        users.ensure_default_admin()
    if settings.seed_sample_vouchers:
        store.seed_sample_vouchers()

    logger.info(
        "services_built",
        vouchers=len(store.get_all_vouchers()),
        settlement_workers=settings.settlement_workers,
    )
    return Services(
        settings=settings,
        store=store,
        vouchers=vouchers,
        gateway=gateway,
        notifier=notifier,
        settlement=settlement,
        users=users,
        reporting=ReportingService(store),
        worker=worker,
        health=HealthCheck(store, worker),
    )
