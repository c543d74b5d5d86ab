from typing import Optional

import pydantic
from fastapi import Depends, Header, HTTPException

from app.constants.order_status import ActorRole
from app.errors import ValidationError
from app.schemas.orders_schemas import Actor


def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    """Identity verified upstream and forwarded as request headers."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    role = x_user_role or ActorRole.customer.value
    if role not in (ActorRole.admin.value, ActorRole.customer.value):
        raise HTTPException(status_code=403, detail="Unknown role")

    try:
        return Actor(id=x_user_id, email=x_user_email or None, role=ActorRole(role))
    except pydantic.ValidationError:
        raise ValidationError(f'"{x_user_email}" is not a valid email address.', code="INVALID_EMAIL")


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return actor
