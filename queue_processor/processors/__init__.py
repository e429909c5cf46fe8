"""Type-specific message processors.

=========================  =============================================
Message type               Processor
=========================  =============================================
document_ingestion         :class:`DocumentProcessor`
document_update / delete   :class:`DocumentLifecycleProcessor`
webhook_sync               :class:`WebhookProcessor`
batch_reprocess            :class:`BatchReprocessProcessor`
=========================  =============================================
"""

from queue_processor.processors.base import BaseProcessor
from queue_processor.processors.batch_processor import BatchReprocessProcessor
from queue_processor.processors.document_processor import DocumentProcessor
from queue_processor.processors.lifecycle_processor import DocumentLifecycleProcessor
from queue_processor.processors.webhook_processor import WebhookProcessor

__all__ = [
    "BaseProcessor",
    "BatchReprocessProcessor",
    "DocumentLifecycleProcessor",
    "DocumentProcessor",
    "WebhookProcessor",
]
