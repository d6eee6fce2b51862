"""
Settlement worker pool.

Consumes payment ids from the orchestrator's queue and settles each one.
Started and stopped by the API lifespan.
"""
import asyncio
from typing import List

import structlog

from mowave.core.settlement import SettlementOrchestrator
from mowave.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class SettlementWorker:
    """
    Runs ``concurrency`` consumer tasks over the settlement queue.

    Each consumer settles one payment at a time; settlements of different
    payments overlap, settlements touching the same voucher serialise on
    its lock.
    """

    def __init__(self, orchestrator: SettlementOrchestrator, concurrency: int = 4):
        self.orchestrator = orchestrator
        self.concurrency = max(concurrency, 1)
        self._tasks: List["asyncio.Task[None]"] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running and any(not task.done() for task in self._tasks)

    @property
    def pending_jobs(self) -> int:
        return self.orchestrator.queue.qsize()

    def start(self) -> None:
        """Start the consumer tasks on the running loop. Idempotent."""
        if self._running:
            return
        self._running = True
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._consume(index), name=f"settlement-worker-{index}")
            for index in range(self.concurrency)
        ]
        logger.info("settlement_worker_started", concurrency=self.concurrency)

    async def _consume(self, index: int) -> None:
        queue = self.orchestrator.queue
        while True:
            payment_id = await queue.get()
            metrics.set_settlement_queue_depth(queue.qsize())
            try:
                await self.orchestrator.settle(payment_id)
            except Exception as e:
                logger.error(
                    "settlement_worker_error",
                    worker=index,
                    payment_id=payment_id,
                    error=str(e),
                )
            finally:
                queue.task_done()

    async def join(self) -> None:
        """Wait until every queued payment has been settled."""
        await self.orchestrator.queue.join()

    async def stop(self) -> None:
        """Cancel the consumers. Jobs still queued stay pending. Idempotent."""
        if not self._running:
            return
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("settlement_worker_stopped", pending_jobs=self.pending_jobs)
