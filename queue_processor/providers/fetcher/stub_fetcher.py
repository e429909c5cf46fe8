"""Placeholder fetchers for SharePoint, Confluence and Jira.

No connector to these systems exists yet.  Each stub builds a document
from the webhook metadata alone so the rest of the pipeline (queueing,
ingestion, deletion) can run end to end.  The document id comes from
``SourceMetadata.resolve_document_id``: the source-specific key
(``documentId``, ``pageId``, ``issueKey``), else the ``resourceId``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from queue_processor.interfaces.content_fetcher import IContentFetcher
from queue_processor.models.messages import (
    ConfluenceMetadata,
    Document,
    JiraMetadata,
    SharePointMetadata,
    SourceMetadata,
    SourceType,
)

logger = structlog.get_logger(logger_name=__name__)

_LABELS = {
    SourceType.SHAREPOINT: "SharePoint document",
    SourceType.CONFLUENCE: "Confluence page",
    SourceType.JIRA: "Jira issue",
}


class StubSourceFetcher(IContentFetcher):
    def __init__(self, source_type: SourceType) -> None:
        if source_type not in _LABELS:
            raise ValueError(f"no stub fetcher for {source_type.value}")
        self._source_type = source_type

    async def fetch(self, resource_id: str, url: str, metadata: SourceMetadata) -> Document | None:
        logger.info(f"fetching_{self._source_type.value}_resource", url=url)

        fields: dict[str, Any] = {
            "acl": metadata.permissions or ["internal"],
            "lastModified": metadata.last_modified or datetime.now(tz=timezone.utc).isoformat(),
            "title": metadata.title,
        }
        if isinstance(metadata, SharePointMetadata):
            fields["author"] = metadata.author
        elif isinstance(metadata, ConfluenceMetadata):
            fields["spaceKey"] = metadata.space_key
        elif isinstance(metadata, JiraMetadata):
            fields.update(
                projectKey=metadata.project_key,
                issueType=metadata.issue_type,
                status=metadata.status,
            )

        return Document(
            id=metadata.resolve_document_id(resource_id),
            text=f"{_LABELS[self._source_type]} content from {url}",
            source=self._source_type.value,
            url=url,
            metadata={k: v for k, v in fields.items() if v is not None},
        )

    def get_provider_name(self) -> str:
        return f"{self._source_type.value}_stub"
