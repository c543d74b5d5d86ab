# app/services/order_queries.py
from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.constants.order_status import ORDER_STATUSES
from app.models.order import Order
from app.schemas.orders_schemas import (
    OrderDetails,
    OrderHistoryRead,
    OrderItemRead,
    OrderRead,
)
from app.services.inventory_service import get_order_items
from app.services.order_history_service import get_order_history
from app.utils.pagination import paginate


async def get_order(session: AsyncSession, order_id: int, user_id: Optional[str] = None) -> Optional[Order]:
    """Get order by ID, optionally checking user ownership"""
    statement = select(Order).where(Order.id == order_id)
    if user_id:
        statement = statement.where(Order.user_id == user_id)

    return (await session.exec(statement)).first()


async def get_order_details(session: AsyncSession, order_id: int) -> Optional[OrderDetails]:
    """Order plus its items and history, or None when the order does not exist.

    Read-only. Items and history are fetched independently and joined on
    order_id.
    """
    order = await session.get(Order, order_id)
    if order is None:
        return None

    items = await get_order_items(session, order_id)
    history = await get_order_history(session, order_id)

    return OrderDetails(
        order=OrderRead.model_validate(order),
        items=[OrderItemRead.model_validate(i) for i in items],
        history=[OrderHistoryRead.model_validate(h) for h in history],
    )


async def list_user_orders(session: AsyncSession, user_id: str) -> List[Order]:
    return (
        await session.exec(
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
    ).all()


async def list_orders(
    session: AsyncSession,
    *,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 20,
):
    query = select(Order)

    if status and status != "all":
        query = query.where(Order.status == status)

    if start_date:
        query = query.where(Order.created_at >= datetime.combine(start_date, time.min, tzinfo=timezone.utc))

    if end_date:
        query = query.where(Order.created_at <= datetime.combine(end_date, time.max, tzinfo=timezone.utc))

    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return await paginate(session=session, query=query, page=page, limit=limit)


async def get_order_stats(session: AsyncSession) -> Dict[str, int]:
    """Order counts by status for the admin dashboard"""
    rows = (
        await session.exec(
            select(Order.status, func.count(Order.id)).group_by(Order.status)
        )
    ).all()

    stats = {status: 0 for status in ORDER_STATUSES}
    for status, count in rows:
        stats[status] = count
    return stats
