"""Per-queue dispatch configuration.

=====================  ==========  ===========  ====================
Queue                  Batch size  Max retries  Concurrency
=====================  ==========  ===========  ====================
document-ingestion     10          3            groups of 5
webhook-processing     5           5            groups of 10
batch-reprocessing     20          2            sequential
=====================  ==========  ===========  ====================
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from queue_processor.models.messages import MessageType

DOCUMENT_INGESTION_QUEUE = "document-ingestion"
WEBHOOK_PROCESSING_QUEUE = "webhook-processing"
BATCH_REPROCESSING_QUEUE = "batch-reprocessing"


class QueueConfig(BaseModel):
    """Dispatch settings for one named queue.

    ``concurrency`` of 0 means strictly sequential processing.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    batch_size: int = Field(ge=1)
    max_retries: int = Field(ge=0)
    concurrency: int = Field(ge=0)
    primary_type: MessageType
    accepted_types: tuple[MessageType, ...]
    description: str = ""

    @model_validator(mode="after")
    def _primary_is_accepted(self) -> "QueueConfig":
        if self.primary_type not in self.accepted_types:
            raise ValueError(f"primary_type {self.primary_type.value} must be one of accepted_types")
        return self

    @property
    def sequential(self) -> bool:
        return self.concurrency == 0

    @property
    def group_size(self) -> int:
        """Largest number of messages processed at the same time."""
        return 1 if self.sequential else self.concurrency

    def accepts(self, message_type: MessageType) -> bool:
        return message_type in self.accepted_types


DEFAULT_QUEUE_CONFIGS: dict[str, QueueConfig] = {
    DOCUMENT_INGESTION_QUEUE: QueueConfig(
        name=DOCUMENT_INGESTION_QUEUE,
        batch_size=10,
        max_retries=3,
        concurrency=5,
        primary_type=MessageType.DOCUMENT_INGESTION,
        accepted_types=(
            MessageType.DOCUMENT_INGESTION,
            MessageType.DOCUMENT_UPDATE,
            MessageType.DOCUMENT_DELETE,
        ),
        description="Document processing queue",
    ),
    WEBHOOK_PROCESSING_QUEUE: QueueConfig(
        name=WEBHOOK_PROCESSING_QUEUE,
        batch_size=5,
        max_retries=5,
        concurrency=10,
        primary_type=MessageType.WEBHOOK_SYNC,
        accepted_types=(MessageType.WEBHOOK_SYNC,),
        description="Webhook event processing",
    ),
    BATCH_REPROCESSING_QUEUE: QueueConfig(
        name=BATCH_REPROCESSING_QUEUE,
        batch_size=20,
        max_retries=2,
        concurrency=0,
        primary_type=MessageType.BATCH_REPROCESS,
        accepted_types=(MessageType.BATCH_REPROCESS,),
        description="Batch reprocessing operations",
    ),
}
