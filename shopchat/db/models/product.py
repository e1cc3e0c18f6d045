from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from shopchat.db.session import Base, utcnow


class Product(Base):
    """Catalog product, owned by the catalog service and only read here."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    brand = Column(String(100), nullable=False)
    price = Column(Numeric(14, 2), nullable=False)
    description = Column(Text, nullable=True)
    specs = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    in_stock = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    # text-embedding-3-small output, precomputed by the catalog service
    embedding = Column(Vector(1536), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_products_active_created", is_active, created_at),
    )
