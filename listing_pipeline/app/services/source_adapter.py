from __future__ import annotations

import logging
from typing import List

from listing_pipeline.app.parsers._listing_common import DiscoveredUrl, DraftListing, FieldExtractor
from listing_pipeline.app.services.fetch_client import PageFetcher

logger = logging.getLogger(__name__)


class SourceAdapter:
    """Binds one source's extractor to the shared page fetcher."""

    def __init__(self, extractor: FieldExtractor, fetcher: PageFetcher):
        self.extractor = extractor
        self.fetcher = fetcher

    @property
    def source(self) -> str:
        return self.extractor.source

    async def fetch_draft(self, url: str) -> DraftListing:
        page = await self.fetcher.fetch(url)
        fields = self.extractor.extract_fields(page.content)
        if fields.rejected:
            logger.debug("%s rejected values on %s: %s", self.source, url, fields.rejected)
        return DraftListing(source=self.source, url=url, fields=fields, content=page.content)

    async def discover(self, index_url: str) -> List[DiscoveredUrl]:
        page = await self.fetcher.fetch(index_url)
        found = self.extractor.discover_listing_urls(page.content, index_url)
        logger.info("Discovered %d %s listing URLs on %s", len(found), self.source, index_url)
        return found
