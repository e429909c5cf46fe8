"""Queue message envelope and payload variants.

A :class:`QueueMessage` is the per-delivery view the dispatcher builds
from a transport message; it is never persisted.  The payload is a
tagged union discriminated on ``type``:

    document_ingestion -> DocumentIngestionPayload
    webhook_sync       -> WebhookSyncPayload
    batch_reprocess    -> BatchReprocessPayload
    document_update    -> DocumentUpdatePayload
    document_delete    -> DocumentDeletePayload

Free-form maps coming from external systems (webhook metadata, reprocess
options) are parsed into typed models that still keep unrecognised keys
(``extra="allow"``), so dispatch on source type and reason is exhaustive
without dropping data the sender attached.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from queue_processor.models.wire import WireModel


class MessageType(str, Enum):
    DOCUMENT_INGESTION = "document_ingestion"
    WEBHOOK_SYNC = "webhook_sync"
    BATCH_REPROCESS = "batch_reprocess"
    DOCUMENT_UPDATE = "document_update"
    DOCUMENT_DELETE = "document_delete"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SourceType(str, Enum):
    SHAREPOINT = "sharepoint"
    CONFLUENCE = "confluence"
    JIRA = "jira"
    WEBSITE = "website"


class EventType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    MOVED = "moved"


class ReprocessReason(str, Enum):
    SCHEMA_CHANGE = "schema_change"
    MODEL_UPDATE = "model_update"
    POLICY_CHANGE = "policy_change"
    MANUAL_REINDEX = "manual_reindex"


class _OpenWireModel(WireModel):
    """Wire model that keeps keys it does not declare."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
class Document(WireModel):
    """A source document as submitted for ingestion."""

    id: str = Field(min_length=1)
    text: str
    source: str
    url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def acl(self) -> list[str]:
        return list(self.metadata.get("acl") or [])


class DocumentIngestionOptions(_OpenWireModel):
    chunk_size: int | None = Field(default=None, ge=1)
    overlap: int | None = Field(default=None, ge=0)
    dlp_enabled: bool = False
    force_reprocess: bool = False


class DocumentIngestionPayload(WireModel):
    type: Literal["document_ingestion"] = "document_ingestion"
    document: Document
    options: DocumentIngestionOptions = Field(default_factory=DocumentIngestionOptions)


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------
class SourceMetadata(_OpenWireModel):
    """Fields every source may attach to a webhook."""

    permissions: list[str] | None = None
    last_modified: str | None = None
    title: str | None = None
    # Original source of a moved resource.
    source_type: SourceType | None = None

    def resolve_document_id(self, resource_id: str) -> str:
        """Id the resource is ingested and deleted under.

        Sources with their own stable key override this; everything else
        uses the webhook ``resourceId``.
        """
        return resource_id


class SharePointMetadata(SourceMetadata):
    document_id: str | None = None
    author: str | None = None

    def resolve_document_id(self, resource_id: str) -> str:
        return self.document_id or resource_id


class ConfluenceMetadata(SourceMetadata):
    page_id: str | None = None
    space_key: str | None = None

    def resolve_document_id(self, resource_id: str) -> str:
        return self.page_id or resource_id


class JiraMetadata(SourceMetadata):
    issue_key: str | None = None
    project_key: str | None = None
    issue_type: str | None = None
    status: str | None = None

    def resolve_document_id(self, resource_id: str) -> str:
        return self.issue_key or resource_id


class WebsiteMetadata(SourceMetadata):
    content_type: str | None = None


SOURCE_METADATA_MODELS: dict[SourceType, type[SourceMetadata]] = {
    SourceType.SHAREPOINT: SharePointMetadata,
    SourceType.CONFLUENCE: ConfluenceMetadata,
    SourceType.JIRA: JiraMetadata,
    SourceType.WEBSITE: WebsiteMetadata,
}


class WebhookSyncPayload(WireModel):
    type: Literal["webhook_sync"] = "webhook_sync"
    source_type: SourceType
    event_type: EventType
    resource_id: str = Field(min_length=1)
    resource_url: str
    change_token: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def source_metadata(self) -> SourceMetadata:
        """Webhook metadata parsed into the model for this payload's source."""
        return SOURCE_METADATA_MODELS[self.source_type].model_validate(self.metadata)


# ---------------------------------------------------------------------------
# Batch reprocessing
# ---------------------------------------------------------------------------
class ReprocessOptions(_OpenWireModel):
    force_full_reprocess: bool = False
    preserve_versions: bool = False
    # schema_change
    new_schema_version: str | None = None
    transformation_type: str | None = None
    # policy_change
    new_acl: list[str] | None = None
    policy_version: str | None = None
    policy_type: str | None = None


class BatchReprocessPayload(WireModel):
    type: Literal["batch_reprocess"] = "batch_reprocess"
    document_ids: list[str]
    reason: ReprocessReason
    options: ReprocessOptions = Field(default_factory=ReprocessOptions)


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------
class DocumentChanges(WireModel):
    text: str | None = None
    metadata: dict[str, Any] | None = None
    acl: list[str] | None = None


class DocumentUpdatePayload(WireModel):
    type: Literal["document_update"] = "document_update"
    document_id: str = Field(min_length=1)
    changes: DocumentChanges
    incremental_update: bool = False


class DocumentDeletePayload(WireModel):
    type: Literal["document_delete"] = "document_delete"
    document_id: str = Field(min_length=1)
    hard_delete: bool = False
    reason: str | None = None


QueuePayload = Annotated[
    Union[
        DocumentIngestionPayload,
        WebhookSyncPayload,
        BatchReprocessPayload,
        DocumentUpdatePayload,
        DocumentDeletePayload,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------
class MessageMetadata(WireModel):
    priority: Priority = Priority.MEDIUM
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    scheduled_time: datetime | None = None
    correlation_id: str
    source: str = "queue-processor"


class QueueMessage(WireModel):
    """Internal envelope handed to a type-specific processor."""

    type: MessageType
    payload: QueuePayload
    metadata: MessageMetadata

    @model_validator(mode="after")
    def _payload_matches_type(self) -> "QueueMessage":
        if self.payload.type != self.type.value:
            raise ValueError(
                f"payload type '{self.payload.type}' does not match message type '{self.type.value}'"
            )
        return self

    @property
    def message_id(self) -> str:
        return self.metadata.correlation_id
