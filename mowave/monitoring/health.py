"""
Health check endpoints for readiness/liveness probes.

Checks:
- Store availability
- Settlement worker status
"""
from typing import Any, Dict

import structlog

from mowave.database.store import Store
from mowave.workers.settlement_worker import SettlementWorker

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for the in-process dependencies.

    Provides:
    - Store check
    - Settlement worker check
    - Overall system health status
    """

    def __init__(self, store: Store, worker: SettlementWorker):
        self.store = store
        self.worker = worker

    async def check_store(self) -> Dict[str, Any]:
        """
        Check the store answers queries.

        Raises:
            HealthCheckError: If the store check fails
        """
        try:
            stats = self.store.get_stats()
        except Exception as e:
            logger.error("store_health_check_failed", error=str(e))
            raise HealthCheckError(f"Store health check failed: {str(e)}")

        return {
            "status": "healthy",
            "service": "store",
            "vouchers": stats["total_vouchers"],
            "payments": stats["total_payments"],
        }

    async def check_worker(self) -> Dict[str, Any]:
        """
        Check the settlement consumers are running.

        Raises:
            HealthCheckError: If no consumer is running
        """
        if not self.worker.is_running:
            logger.error("settlement_worker_health_check_failed")
            raise HealthCheckError("Settlement worker is not running")

        return {
            "status": "healthy",
            "service": "settlement_worker",
            "concurrency": self.worker.concurrency,
            "pending_jobs": self.worker.pending_jobs,
        }

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        for name, check in (("store", self.check_store), ("settlement_worker", self.check_worker)):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """Simple check that the application is running."""
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Ready when the store answers and settlement consumers are running."""
        return await self.check_all()
