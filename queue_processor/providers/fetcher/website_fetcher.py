"""Website content fetcher using httpx and trafilatura.

Fetches the page referenced by a website webhook and extracts readable
text with trafilatura, falling back to BeautifulSoup tag stripping when
trafilatura finds no main content (short pages, feeds, plain listings).

HTTP failures are mapped onto the typed errors the webhook processor
uses for retry decisions:

    timeout / connection error   -> ProviderUnavailableError (retry)
    429                          -> RateLimitError          (retry)
    5xx                          -> ProviderUnavailableError (retry)
    other 4xx                    -> logged, resource skipped (None)

Responses are cached for a short TTL so a burst of webhooks for the same
URL triggers one fetch.
"""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import structlog
import trafilatura
from cachetools import TTLCache

from queue_processor.interfaces.content_fetcher import IContentFetcher
from queue_processor.models.messages import Document, SourceMetadata, SourceType
from queue_processor.utils.errors import ProviderUnavailableError, RateLimitError
from queue_processor.utils.text import clean_text, html_to_text

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; queue-processor/1.0)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class WebsiteFetcher(IContentFetcher):
    """Fetch a web page and turn it into a public :class:`Document`.

    The document id is the webhook ``resourceId`` so repeated updates of
    one page replace the same document instead of creating new ones.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        cache_ttl: int = 60,
        cache_size: int = 256,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers=_DEFAULT_HEADERS,
            follow_redirects=True,
        )
        self._cache: TTLCache[str, tuple[str, str]] = TTLCache(maxsize=cache_size, ttl=cache_ttl)

    async def fetch(self, resource_id: str, url: str, metadata: SourceMetadata) -> Document | None:
        logger.info("fetching_web_content", url=url)

        cached = self._cache.get(url)
        if cached is None:
            try:
                response = await self._client.get(url)
                response.raise_for_status()
            except httpx.TimeoutException as exc:
                raise ProviderUnavailableError(
                    message=f"timeout fetching {url}",
                    provider_name=self.get_provider_name(),
                ) from exc
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status == 429:
                    raise RateLimitError(
                        message=f"rate limit (429) fetching {url}",
                        provider_name=self.get_provider_name(),
                    ) from exc
                if status >= 500:
                    raise ProviderUnavailableError(
                        message=f"HTTP {status} fetching {url}",
                        provider_name=self.get_provider_name(),
                    ) from exc
                logger.warning("web_content_fetch_failed", url=url, status=status)
                return None
            except httpx.HTTPError as exc:
                raise ProviderUnavailableError(
                    message=f"network error fetching {url}: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc

            cached = (response.text, response.headers.get("content-type", "text/html"))
            self._cache[url] = cached

        html, content_type = cached
        text = self._extract_text(html)
        if not text:
            logger.warning("web_content_empty", url=url)
            return None

        return Document(
            id=metadata.resolve_document_id(resource_id),
            text=text,
            source=SourceType.WEBSITE.value,
            url=url,
            metadata={
                "acl": metadata.permissions or ["public"],
                "lastModified": metadata.last_modified or datetime.now(tz=timezone.utc).isoformat(),
                "contentType": content_type,
                "title": metadata.title,
            },
        )

    @staticmethod
    def _extract_text(html: str) -> str:
        extracted = trafilatura.extract(html, include_comments=False, include_tables=True)
        if extracted:
            return clean_text(extracted)
        return html_to_text(html)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def get_provider_name(self) -> str:
        return "website"
