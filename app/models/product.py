from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from app.models.base import utc_now


class Product(SQLModel, table=True):
    """Catalog record. The order engine only reads it and moves `stock`."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    sku: Optional[str] = Field(default=None, index=True, unique=True)
    price: float
    stock: int = Field(default=0)
    image_url: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
