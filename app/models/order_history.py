from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlmodel import SQLModel, Field

from app.models.base import utc_now


class OrderHistory(SQLModel, table=True):
    """Append-only status timeline. previous_status is None only for the creation entry."""

    __tablename__ = "order_history"
    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)

    order_id: int = Field(foreign_key="orders.id", index=True)
    sequence: int = 0  # position in this order's timeline, 0 = creation

    previous_status: Optional[str] = None
    new_status: str

    changed_by: str = Field(default="system")
    changed_by_email: Optional[str] = None
    changed_by_role: str = Field(default="system")
    reason: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
