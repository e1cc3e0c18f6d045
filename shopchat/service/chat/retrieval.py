"""Cascading product retrieval.

Tiers run in order and a tier is only consulted when every earlier tier
came back empty:

1. ``semantic`` - embed the query and ask the catalog for nearest neighbours.
2. ``keyword`` - full-text match over name, brand and description.
3. ``recent`` - newest active products that are in stock.

A tier that raises counts as an empty tier. The failure is recorded on the
result so logs can tell "nothing matched" apart from "the tier broke", but
the cascade itself treats both the same way.
"""

import logging
from typing import Awaitable, Callable, List, Optional

import shopchat.config.config as configs
from shopchat.client.llm.embedding import EmbeddingClient
from shopchat.model.product.product import ProductContext, RetrievalResult
from shopchat.service.store.product_catalog import BaseProductCatalog

logger = logging.getLogger(__name__)


class ProductRetriever:
    def __init__(self, embedder: EmbeddingClient, catalog: BaseProductCatalog):
        self.embedder = embedder
        self.catalog = catalog

    async def _semantic(self, query: str, limit: int) -> List[ProductContext]:
        vector = await self.embedder.embed(query)
        return await self.catalog.vector_search(vector, limit)

    async def _keyword(self, query: str, limit: int) -> List[ProductContext]:
        return await self.catalog.keyword_search(query, limit)

    async def _recent(self, _query: str, limit: int) -> List[ProductContext]:
        return await self.catalog.recent_in_stock(limit)

    async def retrieve(self, query: str, limit: Optional[int] = None) -> RetrievalResult:
        if limit is None:
            limit = configs.RETRIEVAL_LIMIT
        result = RetrievalResult()
        tiers: List[tuple[str, Callable[[str, int], Awaitable[List[ProductContext]]]]] = [
            ("semantic", self._semantic),
            ("keyword", self._keyword),
            ("recent", self._recent),
        ]

        for name, tier in tiers:
            if name != "recent" and not (query or "").strip():
                continue
            try:
                found = await tier(query, limit)
            except Exception as exc:
                logger.warning("retrieval tier %s failed: %s", name, exc)
                result.errors[name] = str(exc)
                continue

            products = [p for p in found if p.is_active][:limit]
            if products:
                result.products = products
                result.tier = name
                break
            logger.debug("retrieval tier %s returned no products", name)

        logger.info(
            "retrieved %s products tier=%s failed_tiers=%s",
            len(result.products),
            result.tier,
            list(result.errors),
        )
        return result

    async def search(self, query: str, limit: Optional[int] = None) -> List[ProductContext]:
        return (await self.retrieve(query, limit)).products
