"""Remote content fetchers used by the webhook processor."""

from queue_processor.providers.fetcher.stub_fetcher import StubSourceFetcher
from queue_processor.providers.fetcher.website_fetcher import WebsiteFetcher

__all__ = ["StubSourceFetcher", "WebsiteFetcher"]
