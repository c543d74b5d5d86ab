# app/services/order_history_service.py

from typing import List, Optional

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.models.base import utc_now
from app.models.order_history import OrderHistory
from app.schemas.orders_schemas import Actor


def log_order_history(
    session: AsyncSession,
    order_id: int,
    previous_status: Optional[str],
    new_status: str,
    actor: Actor,
    reason: Optional[str] = None,
    sequence: int = 0,
) -> OrderHistory:
    """
    Append-only status timeline entry, written in the caller's transaction
    """

    entry = OrderHistory(
        order_id=order_id,
        sequence=sequence,
        previous_status=previous_status,
        new_status=new_status,
        changed_by=actor.id,
        changed_by_email=actor.email,
        changed_by_role=actor.role.value,
        reason=reason,
        created_at=utc_now(),
    )

    session.add(entry)
    return entry


async def get_order_history(session: AsyncSession, order_id: int) -> List[OrderHistory]:
    return (
        await session.exec(
            select(OrderHistory)
            .where(OrderHistory.order_id == order_id)
            .order_by(OrderHistory.sequence)
        )
    ).all()


async def next_history_sequence(session: AsyncSession, order_id: int) -> int:
    return (
        await session.exec(
            select(func.count()).select_from(OrderHistory).where(OrderHistory.order_id == order_id)
        )
    ).one()
