"""Per-document coordination: locks, processing state and content-hash dedup."""

from queue_processor.coordination.coordinator import DocumentCoordinator
from queue_processor.coordination.notifier import StateChangeNotifier

__all__ = ["DocumentCoordinator", "StateChangeNotifier"]
