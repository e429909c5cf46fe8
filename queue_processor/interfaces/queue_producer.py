"""Abstract base class for sending messages onto a work queue."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


# Concrete implementations:
#   MemoryQueueBroker - in-process queues with redelivery and dead letters
# Located in: queue_processor/providers/queue/
class IQueueProducer(ABC):
    """Contract used by processors to enqueue follow-up work."""

    @abstractmethod
    async def send(self, queue_name: str, body: dict[str, Any]) -> str:
        """Enqueue *body* on *queue_name* and return the transport message id."""
