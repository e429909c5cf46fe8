"""Queue transports."""

from queue_processor.providers.queue.memory_broker import MemoryQueueBroker

__all__ = ["MemoryQueueBroker"]
