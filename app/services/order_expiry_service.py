import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from app.config import settings
from app.constants.order_status import OrderStatus
from app.errors import InvalidTransitionError, TerminalStateError, ValidationError
from app.models.base import utc_now
from app.models.order import Order
from app.schemas.orders_schemas import SYSTEM_ACTOR
from app.services.order_service import update_order_status_with_transaction

logger = logging.getLogger(__name__)


async def expire_stale_pending_orders(
    session_factory: async_sessionmaker,
    now: Optional[datetime] = None,
    max_age_hours: Optional[int] = None,
) -> int:
    """Cancel orders left in pending for too long, restoring their stock.

    Each order goes through the transactional status updater on its own, so
    an order confirmed or cancelled in the meantime is skipped, not failed.
    """
    now = now or utc_now()
    cutoff = now - timedelta(hours=max_age_hours or settings.PENDING_ORDER_EXPIRY_HOURS)

    async with session_factory() as session:
        order_ids = (
            await session.exec(
                select(Order.id)
                .where(Order.status == OrderStatus.pending.value)
                .where(Order.created_at < cutoff)
                .order_by(Order.id)
            )
        ).all()

    expired = 0
    for order_id in order_ids:
        try:
            await update_order_status_with_transaction(
                session_factory,
                order_id,
                OrderStatus.cancelled,
                SYSTEM_ACTOR,
                reason="Order expired",
                allowed_from=[OrderStatus.pending.value],
            )
        except (TerminalStateError, InvalidTransitionError, ValidationError) as e:
            logger.info(f"Skipping expiry of order {order_id}: {e.message}")
            continue
        expired += 1

    logger.info(f"Expired {expired} stale pending orders")
    return expired
