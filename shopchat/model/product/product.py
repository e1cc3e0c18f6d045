from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ProductContext(BaseModel):
    """Product projection handed to prompts; never carries the embedding."""

    id: str
    name: str
    brand: Optional[str] = None
    price: float = 0.0
    description: Optional[str] = None
    specs: Optional[Dict[str, Any]] = None
    in_stock: int = 0
    is_active: bool = True
    score: Optional[float] = None


class RetrievalResult(BaseModel):
    products: List[ProductContext] = Field(default_factory=list)
    # semantic | keyword | recent | none
    tier: str = "none"
    # tiers that raised instead of answering
    errors: Dict[str, str] = Field(default_factory=dict)
