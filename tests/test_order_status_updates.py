"""Tests for the transactional status updater and customer self-cancel."""

import asyncio

import pytest
from sqlalchemy import update
from sqlmodel import select

from app.constants.order_status import OrderStatus
from app.errors import (
    AlreadyInStateError,
    InvalidTransitionError,
    NotFoundError,
    TerminalStateError,
    ValidationError,
)
from app.models.order import Order
from app.models.order_item import OrderItem
from app.schemas.orders_schemas import TrackingInfo
from app.services.order_history_service import get_order_history
from app.services.order_service import (
    cancel_order_by_customer,
    update_order_status_with_transaction,
    update_order_tracking,
)
from app.services.order_state_machine import can_transition
from tests.conftest import ADMIN, CUSTOMER


async def _history(session_factory, order_id):
    async with session_factory() as session:
        return await get_order_history(session, order_id)


async def _advance(session_factory, order_id, *statuses):
    order = None
    for status in statuses:
        order = await update_order_status_with_transaction(session_factory, order_id, status, ADMIN)
    return order


async def test_unknown_order_is_not_found(session_factory):
    with pytest.raises(NotFoundError):
        await update_order_status_with_transaction(session_factory, 404, "confirmed", ADMIN)


async def test_unknown_status_is_rejected(session_factory, make_product, place_order):
    bulb = await make_product()
    result = await place_order([(bulb, 1)])

    with pytest.raises(ValidationError):
        await update_order_status_with_transaction(session_factory, result.order_id, "refunded", ADMIN)


async def test_happy_path_records_a_legal_history(session_factory, make_product, place_order, stock_of):
    bulb = await make_product(stock=10)
    result = await place_order([(bulb, 2)])

    order = await _advance(session_factory, result.order_id, "confirmed", "processing", "shipped", "delivered")
    assert order.status == "delivered"
    assert order.cancelled_at is None
    assert await stock_of(bulb.id) == 8

    history = await _history(session_factory, result.order_id)
    assert [h.sequence for h in history] == [0, 1, 2, 3, 4]
    assert [h.new_status for h in history] == ["pending", "confirmed", "processing", "shipped", "delivered"]
    for prev, entry in zip(history, history[1:]):
        assert entry.previous_status == prev.new_status
        assert can_transition(entry.previous_status, entry.new_status)
    assert history[1].changed_by == ADMIN.id
    assert history[1].changed_by_email == ADMIN.email
    assert history[1].changed_by_role == "admin"


async def test_confirmed_straight_to_delivered(session_factory, make_product, place_order):
    bulb = await make_product()
    result = await place_order([(bulb, 1)])

    order = await _advance(session_factory, result.order_id, "confirmed", "delivered")
    assert order.status == "delivered"


async def test_invalid_transition_leaves_order_untouched(session_factory, make_product, place_order, load_order):
    bulb = await make_product()
    result = await place_order([(bulb, 1)])

    with pytest.raises(InvalidTransitionError) as exc:
        await update_order_status_with_transaction(session_factory, result.order_id, "shipped", ADMIN)
    assert exc.value.allowed == ["confirmed", "cancelled"]

    with pytest.raises(AlreadyInStateError):
        await update_order_status_with_transaction(session_factory, result.order_id, "pending", ADMIN)

    assert (await load_order(result.order_id)).status == "pending"
    assert len(await _history(session_factory, result.order_id)) == 1


async def test_delivered_order_is_frozen(session_factory, make_product, place_order, stock_of):
    bulb = await make_product(stock=10)
    result = await place_order([(bulb, 3)])
    await _advance(session_factory, result.order_id, "confirmed", "delivered")

    with pytest.raises(TerminalStateError):
        await update_order_status_with_transaction(session_factory, result.order_id, "cancelled", ADMIN)

    assert await stock_of(bulb.id) == 7
    assert len(await _history(session_factory, result.order_id)) == 3


async def test_tracking_written_with_status(session_factory, make_product, place_order):
    bulb = await make_product()
    result = await place_order([(bulb, 1)])
    await _advance(session_factory, result.order_id, "confirmed")

    order = await update_order_status_with_transaction(
        session_factory,
        result.order_id,
        OrderStatus.shipped,
        ADMIN,
        reason="Handed to courier",
        tracking=TrackingInfo(tracking_number="DTDC123", tracking_carrier="DTDC"),
    )

    assert order.status == "shipped"
    assert order.tracking_number == "DTDC123"
    assert order.tracking_carrier == "DTDC"
    assert order.tracking_url is None
    assert (await _history(session_factory, result.order_id))[-1].reason == "Handed to courier"


class TestTrackingUpdates:
    async def test_replaces_tracking_and_keeps_status(self, session_factory, make_product, place_order, load_order):
        bulb = await make_product()
        result = await place_order([(bulb, 1)])
        await update_order_status_with_transaction(
            session_factory,
            result.order_id,
            "confirmed",
            ADMIN,
            tracking=TrackingInfo(tracking_number="DTDC123", tracking_carrier="DTDC", tracking_url="https://t.example/1"),
        )
        before = await load_order(result.order_id)

        order = await update_order_tracking(session_factory, result.order_id, TrackingInfo(tracking_number="BD991"))

        assert order.status == "confirmed"
        assert order.tracking_number == "BD991"
        assert order.tracking_carrier is None
        assert order.tracking_url is None
        assert order.updated_at >= before.updated_at
        assert len(await _history(session_factory, result.order_id)) == 2

    async def test_allowed_on_terminal_orders(self, session_factory, make_product, place_order):
        bulb = await make_product()
        result = await place_order([(bulb, 1)])
        await _advance(session_factory, result.order_id, "confirmed", "delivered")

        order = await update_order_tracking(
            session_factory, result.order_id, TrackingInfo(tracking_number="LATE-42", tracking_carrier="India Post")
        )

        assert order.status == "delivered"
        assert order.tracking_number == "LATE-42"

    async def test_unknown_order_is_not_found(self, session_factory):
        with pytest.raises(NotFoundError):
            await update_order_tracking(session_factory, 404, TrackingInfo(tracking_number="X1"))


class TestCancellation:
    async def test_cancel_restores_stock_and_records_metadata(
        self, session_factory, make_product, place_order, stock_of
    ):
        bulb = await make_product(stock=10)
        mcb = await make_product(name="MCB 32A", price=450, stock=4)
        result = await place_order([(bulb, 2), (mcb, 4)])
        assert (await stock_of(bulb.id), await stock_of(mcb.id)) == (8, 0)

        order = await update_order_status_with_transaction(
            session_factory, result.order_id, "cancelled", ADMIN
        )

        assert order.status == "cancelled"
        assert order.cancelled_at is not None
        assert order.cancelled_by == ADMIN.id
        assert order.cancelled_by_role == "admin"
        assert order.cancellation_reason == "No reason provided"
        assert (await stock_of(bulb.id), await stock_of(mcb.id)) == (10, 4)

        history = await _history(session_factory, result.order_id)
        assert [(h.previous_status, h.new_status) for h in history] == [
            (None, "pending"),
            ("pending", "cancelled"),
        ]

    async def test_shipped_order_can_be_cancelled(self, session_factory, make_product, place_order, stock_of):
        bulb = await make_product(stock=5)
        result = await place_order([(bulb, 5)])
        await _advance(session_factory, result.order_id, "confirmed", "processing", "shipped")

        order = await update_order_status_with_transaction(
            session_factory, result.order_id, "cancelled", ADMIN, reason="Delivery failed"
        )

        assert order.cancellation_reason == "Delivery failed"
        assert await stock_of(bulb.id) == 5

    async def test_items_without_product_are_skipped(self, session_factory, make_product, place_order, stock_of):
        bulb = await make_product(stock=10)
        fan = await make_product(name="Ceiling Fan", price=2500, stock=3)
        result = await place_order([(bulb, 2), (fan, 1)])

        async with session_factory() as session:
            await session.exec(
                update(OrderItem)
                .where(OrderItem.order_id == result.order_id, OrderItem.product_id == fan.id)
                .values(product_id=None)
            )
            await session.commit()

        order = await update_order_status_with_transaction(
            session_factory, result.order_id, "cancelled", ADMIN
        )

        assert order.status == "cancelled"
        assert await stock_of(bulb.id) == 10
        assert await stock_of(fan.id) == 2

    async def test_second_cancel_is_rejected(self, session_factory, make_product, place_order, stock_of):
        bulb = await make_product(stock=10)
        result = await place_order([(bulb, 4)])

        await update_order_status_with_transaction(session_factory, result.order_id, "cancelled", ADMIN)
        with pytest.raises(TerminalStateError) as exc:
            await update_order_status_with_transaction(session_factory, result.order_id, "cancelled", ADMIN)

        assert exc.value.current == "cancelled"
        assert await stock_of(bulb.id) == 10
        assert len(await _history(session_factory, result.order_id)) == 2

    async def test_stale_outer_read_is_caught_inside_the_transaction(
        self, session_factory, make_product, place_order, load_order, stock_of
    ):
        bulb = await make_product(stock=10)
        result = await place_order([(bulb, 4)])

        # both callers observe a non-terminal order before either commits
        seen_by_first = await load_order(result.order_id)
        seen_by_second = await load_order(result.order_id)
        assert seen_by_first.status == seen_by_second.status == "pending"

        await update_order_status_with_transaction(session_factory, result.order_id, "cancelled", ADMIN)
        with pytest.raises(TerminalStateError):
            await update_order_status_with_transaction(session_factory, result.order_id, "cancelled", ADMIN)

        assert await stock_of(bulb.id) == 10

    async def test_concurrent_cancels_restore_stock_once(self, session_factory, make_product, place_order, stock_of):
        bulb = await make_product(stock=10)
        result = await place_order([(bulb, 4)])

        outcomes = await asyncio.gather(
            *[
                update_order_status_with_transaction(session_factory, result.order_id, "cancelled", ADMIN)
                for _ in range(3)
            ],
            return_exceptions=True,
        )

        cancelled = [o for o in outcomes if isinstance(o, Order)]
        rejected = [o for o in outcomes if isinstance(o, TerminalStateError)]
        assert len(cancelled) == 1
        assert len(rejected) == 2
        assert await stock_of(bulb.id) == 10

        history = await _history(session_factory, result.order_id)
        assert [h.new_status for h in history] == ["pending", "cancelled"]

    async def test_create_then_cancel_conserves_stock(self, session_factory, make_product, place_order, stock_of):
        products = [
            await make_product(name=f"Part {n}", price=10 * (n + 1), stock=20)
            for n in range(4)
        ]
        result = await place_order([(p, n + 1) for n, p in enumerate(products)])
        await update_order_status_with_transaction(session_factory, result.order_id, "cancelled", ADMIN)

        assert [await stock_of(p.id) for p in products] == [20, 20, 20, 20]


class TestCustomerCancel:
    async def test_customer_cancels_pending_order(self, session_factory, make_product, place_order, stock_of):
        bulb = await make_product(stock=10)
        result = await place_order([(bulb, 2)])

        order = await cancel_order_by_customer(session_factory, result.order_id, CUSTOMER)

        assert order.status == "cancelled"
        assert order.cancellation_reason == "Cancelled by customer"
        assert order.cancelled_by_role == "customer"
        assert await stock_of(bulb.id) == 10

    async def test_customer_cancels_confirmed_order_with_reason(self, session_factory, make_product, place_order):
        bulb = await make_product()
        result = await place_order([(bulb, 1)])
        await _advance(session_factory, result.order_id, "confirmed")

        order = await cancel_order_by_customer(session_factory, result.order_id, CUSTOMER, reason="Ordered twice")
        assert order.cancellation_reason == "Ordered twice"

    async def test_customer_cannot_cancel_after_processing(
        self, session_factory, make_product, place_order, stock_of, load_order
    ):
        bulb = await make_product(stock=10)
        result = await place_order([(bulb, 2)])
        await _advance(session_factory, result.order_id, "confirmed", "processing")

        with pytest.raises(ValidationError) as exc:
            await cancel_order_by_customer(session_factory, result.order_id, CUSTOMER)

        assert exc.value.code == "CANNOT_CANCEL"
        assert (await load_order(result.order_id)).status == "processing"
        assert await stock_of(bulb.id) == 8


async def test_history_entries_are_ordered_by_sequence(session_factory, make_product, place_order):
    bulb = await make_product()
    result = await place_order([(bulb, 1)])
    await _advance(session_factory, result.order_id, "confirmed", "shipped")

    async with session_factory() as session:
        rows = (
            await session.exec(select(Order.status).where(Order.id == result.order_id))
        ).all()
    history = await _history(session_factory, result.order_id)

    assert rows == ["shipped"]
    assert [h.sequence for h in history] == sorted(h.sequence for h in history)
