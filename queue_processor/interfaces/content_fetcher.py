"""Abstract base class for fetching a remote resource referenced by a webhook."""

from __future__ import annotations

from abc import ABC, abstractmethod

from queue_processor.models.messages import Document, SourceMetadata


# Concrete implementations:
#   WebsiteFetcher      - HTTP GET with HTML text extraction
#   StubSourceFetcher   - placeholder documents for SharePoint / Confluence / Jira
# Located in: queue_processor/providers/fetcher/
class IContentFetcher(ABC):
    """Contract for turning a webhook's resource reference into a :class:`Document`."""

    @abstractmethod
    async def fetch(self, resource_id: str, url: str, metadata: SourceMetadata) -> Document | None:
        """Fetch the resource at *url*.

        Returns ``None`` when the resource is permanently unavailable and
        should be skipped.  Transient failures raise
        :class:`~queue_processor.utils.errors.ProviderUnavailableError` or
        :class:`~queue_processor.utils.errors.RateLimitError`.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"website"``."""
