from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from app.models.base import utc_now


class OrderItem(SQLModel, table=True):
    """Line item with a snapshot of the product as it was at order time."""

    __tablename__ = "order_item"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    product_id: Optional[int] = Field(default=None, foreign_key="product.id")

    product_name: str
    product_sku: Optional[str] = None
    product_image_url: Optional[str] = None

    unit_price: float
    quantity: int
    total_price: float
    discount_amount: float = 0

    created_at: datetime = Field(default_factory=utc_now)
