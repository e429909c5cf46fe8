"""Queue processor: coordinated, idempotent document processing from work queues."""

__version__ = "1.0.0"
