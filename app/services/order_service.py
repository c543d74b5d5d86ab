# app/services/order_service.py
"""Transactional order creation and status updates.

Both operations run as a single atomic unit through
``app.database.run_in_transaction``: every read happens before any write,
stock moves only through relative SQL updates, and the whole unit is retried
on storage conflicts.
"""

import logging
from collections import OrderedDict
from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.config import settings
from app.constants.order_status import (
    CUSTOMER_CANCELLABLE_STATES,
    ORDER_STATUSES,
    STATUS_LABELS,
    OrderStatus,
)
from app.database import run_in_transaction
from app.errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
    TerminalStateError,
    ValidationError,
)
from app.models.base import utc_now
from app.models.order import Order
from app.models.order_item import OrderItem
from app.schemas.orders_schemas import (
    SYSTEM_ACTOR,
    Actor,
    CreateOrderInput,
    CreateOrderResult,
    OrderItemInput,
    TrackingInfo,
)
from app.services.inventory_service import (
    decrement_stock,
    get_order_items,
    lock_products,
    restore_stock,
)
from app.services.order_history_service import log_order_history, next_history_sequence
from app.services.order_number import generate_order_number
from app.services.order_state_machine import is_terminal_state, validate_transition
from app.services.order_totals import TotalsConfig, calculate_order_totals

logger = logging.getLogger(__name__)


def _requested_quantities(items: Iterable[OrderItemInput]) -> Dict[int, Tuple[str, int]]:
    """product_id -> (product name, total quantity across lines)."""
    requested: Dict[int, Tuple[str, int]] = OrderedDict()
    for item in items:
        name, quantity = requested.get(item.product_id, (item.product_name, 0))
        requested[item.product_id] = (name, quantity + item.quantity)
    return requested


async def _unused_order_number(session: AsyncSession) -> str:
    for _ in range(settings.ORDER_NUMBER_MAX_ATTEMPTS):
        candidate = generate_order_number()
        taken = (
            await session.exec(select(Order.id).where(Order.order_number == candidate))
        ).first()
        if taken is None:
            return candidate
        logger.warning(f"Order number collision on {candidate}, regenerating")

    raise ConcurrencyConflictError("Could not allocate a unique order number.")


async def create_order_with_transaction(
    session_factory: async_sessionmaker,
    data: CreateOrderInput,
    totals_config: Optional[TotalsConfig] = None,
) -> CreateOrderResult:
    """Create an order, its items and its first history entry, and take the stock.

    Raises InsufficientStockError (nothing written) when any product is
    missing or cannot cover the quantity ordered.
    """
    totals_config = totals_config or TotalsConfig.from_settings()
    requested = _requested_quantities(data.items)

    async def _create(session: AsyncSession) -> CreateOrderResult:
        # ---- read phase ----
        products = await lock_products(session, requested.keys())
        for product_id, (name, quantity) in requested.items():
            product = products.get(product_id)
            if product is None:
                raise InsufficientStockError(product_id, name, 0, quantity, code="PRODUCT_NOT_FOUND")
            if product.stock < quantity:
                raise InsufficientStockError(product_id, name, product.stock, quantity)

        totals = calculate_order_totals(
            [item.unit_price * item.quantity for item in data.items],
            totals_config,
        )
        order_number = await _unused_order_number(session)

        # ---- write phase ----
        now = utc_now()
        shipping_address = data.shipping_address.model_dump()
        order = Order(
            order_number=order_number,
            user_id=data.user_id,
            customer_name=data.customer_name,
            customer_email=str(data.customer_email),
            customer_phone=data.customer_phone or shipping_address.get("phone"),
            status=OrderStatus.pending.value,
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping_cost=totals.shipping_cost,
            total=totals.total,
            shipping_address=shipping_address,
            item_count=len(data.items),
            created_at=now,
            updated_at=now,
        )
        session.add(order)
        await session.flush()

        for item in data.items:
            session.add(
                OrderItem(
                    order_id=order.id,
                    product_id=item.product_id,
                    product_name=item.product_name,
                    product_sku=item.product_sku,
                    product_image_url=item.product_image_url,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    total_price=item.unit_price * item.quantity,
                    discount_amount=0,
                    created_at=now,
                )
            )

        # guarded again at the row: a concurrent order may have taken the stock
        for product_id, (name, quantity) in requested.items():
            await decrement_stock(session, product_id, quantity, name)

        log_order_history(
            session,
            order_id=order.id,
            previous_status=None,
            new_status=OrderStatus.pending.value,
            actor=SYSTEM_ACTOR,
            reason="Order created",
            sequence=0,
        )
        return CreateOrderResult(order_id=order.id, order_number=order.order_number)

    try:
        result = await run_in_transaction(session_factory, _create)
    except InsufficientStockError as e:
        logger.warning(f"Order rejected for user {data.user_id}: {e.message}")
        raise

    logger.info(f"Order {result.order_number} (id={result.order_id}) created for user {data.user_id}")
    return result


async def update_order_status_with_transaction(
    session_factory: async_sessionmaker,
    order_id: int,
    new_status,
    actor: Actor,
    reason: Optional[str] = None,
    tracking: Optional[TrackingInfo] = None,
    allowed_from: Optional[Iterable[str]] = None,
) -> Order:
    """Validate and apply a status change; cancelling also restores stock.

    The terminal-state check is repeated here on the row read inside the
    transaction, and the status write is conditional on the status that was
    read, so two concurrent updates cannot both apply. ``allowed_from``
    narrows the source states further (customer self-cancel).
    """
    target = getattr(new_status, "value", new_status)
    if target not in ORDER_STATUSES:
        raise ValidationError(f'Unknown order status "{target}".')
    allowed_from = list(allowed_from) if allowed_from is not None else None

    async def _update(session: AsyncSession) -> None:
        # ---- read phase ----
        order = (
            await session.exec(
                select(Order)
                .where(Order.id == order_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).first()
        if order is None:
            raise NotFoundError("Order not found.")

        current = order.status
        if is_terminal_state(current):
            raise TerminalStateError(
                f'Order is already {current}. No changes allowed.',
                current=current,
            )
        if allowed_from is not None and current not in allowed_from:
            allowed_labels = ", ".join(STATUS_LABELS[s] for s in allowed_from)
            raise ValidationError(
                f'Orders in "{STATUS_LABELS[current]}" status cannot be moved to '
                f'"{STATUS_LABELS[target]}" here. Allowed from: {allowed_labels}.',
                code="CANNOT_CANCEL" if target == OrderStatus.cancelled.value else None,
            )
        validate_transition(current, target)

        sequence = await next_history_sequence(session, order_id)
        cancelling = target == OrderStatus.cancelled.value
        items = await get_order_items(session, order_id) if cancelling else []

        # ---- write phase ----
        now = utc_now()
        values = {"status": target, "updated_at": now}
        if cancelling:
            values.update(
                cancelled_at=now,
                cancelled_by=actor.id,
                cancelled_by_role=actor.role.value,
                cancellation_reason=reason or "No reason provided",
            )
        if tracking is not None:
            values.update(tracking.model_dump(exclude_none=True))

        result = await session.exec(
            update(Order)
            .where(Order.id == order_id, Order.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError("The order was modified concurrently. Please retry.")

        if cancelling:
            await restore_stock(session, order_id, items)

        log_order_history(
            session,
            order_id=order_id,
            previous_status=current,
            new_status=target,
            actor=actor,
            reason=reason,
            sequence=sequence,
        )
        logger.info(
            f"Order {order.order_number} status {current} -> {target} by {actor.role.value}:{actor.id}"
        )

    await run_in_transaction(session_factory, _update)

    async with session_factory() as session:
        updated = await session.get(Order, order_id)
    if updated is None:
        raise NotFoundError("Failed to fetch updated order.")
    return updated


async def update_order_tracking(
    session_factory: async_sessionmaker,
    order_id: int,
    tracking: TrackingInfo,
) -> Order:
    """Replace the tracking fields of an order. Status and history are untouched."""

    async def _update(session: AsyncSession) -> None:
        found = (
            await session.exec(select(Order.id).where(Order.id == order_id).with_for_update())
        ).first()
        if found is None:
            raise NotFoundError("Order not found.")

        await session.exec(
            update(Order)
            .where(Order.id == order_id)
            .values(**tracking.model_dump(), updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

    await run_in_transaction(session_factory, _update)

    async with session_factory() as session:
        updated = await session.get(Order, order_id)
    logger.info(f"Tracking for order {order_id} set to {tracking.tracking_number}")
    return updated


async def cancel_order_by_customer(
    session_factory: async_sessionmaker,
    order_id: int,
    actor: Actor,
    reason: Optional[str] = None,
) -> Order:
    """Self-service cancellation, only while the order is pending or confirmed."""
    return await update_order_status_with_transaction(
        session_factory,
        order_id,
        OrderStatus.cancelled,
        actor,
        reason=reason or "Cancelled by customer",
        allowed_from=CUSTOMER_CANCELLABLE_STATES,
    )
