import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from shopchat.client.db.psql import session_scope
from shopchat.db.models import Product
from shopchat.model.product.product import ProductContext

logger = logging.getLogger(__name__)

TEXT_SEARCH_CONFIG = "simple"


def to_context(product: Product, score: Optional[float] = None) -> ProductContext:
    return ProductContext(
        id=str(product.id),
        name=product.name,
        brand=product.brand,
        price=float(product.price or 0),
        description=product.description,
        specs=product.specs or None,
        in_stock=product.in_stock or 0,
        is_active=bool(product.is_active),
        score=float(score) if score is not None else None,
    )


class BaseProductCatalog(ABC):
    """Read-only product search capability consumed by the retriever."""

    @abstractmethod
    async def vector_search(self, embedding: Sequence[float], limit: int) -> List[ProductContext]:
        """Active products nearest to ``embedding``, best first, with ``score`` set."""

    @abstractmethod
    async def keyword_search(self, query: str, limit: int) -> List[ProductContext]:
        """Active products whose name, brand or description match ``query``."""

    @abstractmethod
    async def recent_in_stock(self, limit: int) -> List[ProductContext]:
        """Newest active products with positive stock."""


class SqlProductCatalog(BaseProductCatalog):
    """Catalog search over the products table using pgvector and Postgres full-text search."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory

    def _vector_search(self, embedding: Sequence[float], limit: int) -> List[ProductContext]:
        distance = Product.embedding.cosine_distance(list(embedding))
        with session_scope(self._session_factory) as db:
            rows = db.execute(
                select(Product, (1 - distance).label("similarity"))
                .where(Product.is_active.is_(True), Product.embedding.is_not(None))
                .order_by(distance)
                .limit(limit)
            ).all()
            return [to_context(product, similarity) for product, similarity in rows]

    def _keyword_search(self, query: str, limit: int) -> List[ProductContext]:
        document = func.to_tsvector(
            TEXT_SEARCH_CONFIG,
            func.concat_ws(" ", Product.name, Product.brand, func.coalesce(Product.description, "")),
        )
        ts_query = func.plainto_tsquery(TEXT_SEARCH_CONFIG, query)
        rank = func.ts_rank(document, ts_query)
        with session_scope(self._session_factory) as db:
            rows = db.execute(
                select(Product, rank.label("rank"))
                .where(Product.is_active.is_(True), document.op("@@")(ts_query))
                .order_by(rank.desc())
                .limit(limit)
            ).all()
            return [to_context(product, score) for product, score in rows]

    def _recent_in_stock(self, limit: int) -> List[ProductContext]:
        with session_scope(self._session_factory) as db:
            rows = db.execute(
                select(Product)
                .where(Product.is_active.is_(True), Product.in_stock > 0)
                .order_by(Product.created_at.desc(), Product.id.desc())
                .limit(limit)
            ).scalars().all()
            return [to_context(product) for product in rows]

    async def vector_search(self, embedding: Sequence[float], limit: int) -> List[ProductContext]:
        return await asyncio.to_thread(self._vector_search, embedding, limit)

    async def keyword_search(self, query: str, limit: int) -> List[ProductContext]:
        return await asyncio.to_thread(self._keyword_search, query, limit)

    async def recent_in_stock(self, limit: int) -> List[ProductContext]:
        return await asyncio.to_thread(self._recent_in_stock, limit)
