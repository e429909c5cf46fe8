"""Background runtime: the queue worker loop and the cleanup schedule."""

from queue_processor.runtime.scheduler import CleanupScheduler
from queue_processor.runtime.worker import QueueWorker

__all__ = ["CleanupScheduler", "QueueWorker"]
