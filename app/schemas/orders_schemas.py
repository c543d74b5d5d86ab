from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime

from app.config import settings
from app.constants.order_status import ActorRole, OrderStatus


class ShippingAddress(BaseModel):
    first_name: str
    last_name: Optional[str] = None
    street: str
    city: str
    state: str
    zip_code: str
    country: str = settings.DEFAULT_COUNTRY
    phone: Optional[str] = None


class OrderItemInput(BaseModel):
    product_id: int
    product_name: str
    product_sku: Optional[str] = None
    product_image_url: Optional[str] = None
    unit_price: float = Field(ge=0)
    quantity: int = Field(ge=1)


class CreateOrderInput(BaseModel):
    user_id: str
    customer_name: str
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    shipping_address: ShippingAddress
    items: List[OrderItemInput] = Field(min_length=1)


class CreateOrderResult(BaseModel):
    order_id: int
    order_number: str


class Actor(BaseModel):
    """Pre-verified identity handed over by the upstream auth middleware."""

    id: str
    email: Optional[EmailStr] = None
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.admin


SYSTEM_ACTOR = Actor(id="system", role=ActorRole.system)


class TrackingInfo(BaseModel):
    tracking_number: str = Field(min_length=1)
    tracking_carrier: Optional[str] = None
    tracking_url: Optional[str] = None


class UpdateStatusRequest(BaseModel):
    status: OrderStatus
    reason: Optional[str] = None
    tracking: Optional[TrackingInfo] = None


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = None


class CheckoutItem(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


class CheckoutRequest(BaseModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: ShippingAddress
    items: List[CheckoutItem] = Field(min_length=1)


# -------- read models --------

class OrderRead(BaseModel):
    id: int
    order_number: str
    user_id: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    status: str
    subtotal: float
    tax: float
    shipping_cost: float
    total: float
    shipping_address: dict
    payment_method: str
    payment_status: str
    tracking_number: Optional[str] = None
    tracking_carrier: Optional[str] = None
    tracking_url: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_by_role: Optional[str] = None
    cancellation_reason: Optional[str] = None
    item_count: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderItemRead(BaseModel):
    id: int
    order_id: int
    product_id: Optional[int] = None
    product_name: str
    product_sku: Optional[str] = None
    product_image_url: Optional[str] = None
    unit_price: float
    quantity: int
    total_price: float
    discount_amount: float

    class Config:
        from_attributes = True


class OrderHistoryRead(BaseModel):
    id: str
    order_id: int
    sequence: int
    previous_status: Optional[str] = None
    new_status: str
    changed_by: str
    changed_by_email: Optional[str] = None
    changed_by_role: str
    reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OrderDetails(BaseModel):
    order: OrderRead
    items: List[OrderItemRead]
    history: List[OrderHistoryRead]
