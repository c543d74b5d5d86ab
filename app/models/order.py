from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from typing import Optional
from datetime import datetime

from app.constants.order_status import OrderStatus, PaymentMethod, PaymentStatus
from app.models.base import utc_now


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: str = Field(index=True, unique=True)
    user_id: str = Field(index=True)

    # denormalized customer contact
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None

    status: str = Field(default=OrderStatus.pending.value, index=True)

    subtotal: float
    tax: float
    shipping_cost: float = 0
    total: float

    shipping_address: dict = Field(default_factory=dict, sa_column=Column(JSON))

    payment_method: str = Field(default=PaymentMethod.cod.value)
    payment_status: str = Field(default=PaymentStatus.pending.value)

    tracking_number: Optional[str] = None
    tracking_carrier: Optional[str] = None
    tracking_url: Optional[str] = None

    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_by_role: Optional[str] = None
    cancellation_reason: Optional[str] = None

    item_count: int = 0

    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)
