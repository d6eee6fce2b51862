"""Background workers."""
from .settlement_worker import SettlementWorker

__all__ = ["SettlementWorker"]
