from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from app.constants.order_status import OrderStatus
from app.database import get_session, get_session_factory
from app.dependencies.actor import get_current_actor, require_admin
from app.errors import NotFoundError, TerminalStateError
from app.schemas.orders_schemas import (
    Actor,
    CancelOrderRequest,
    CheckoutRequest,
    OrderHistoryRead,
    OrderRead,
    TrackingInfo,
    UpdateStatusRequest,
)
from app.services.checkout_service import prepare_checkout
from app.services.order_history_service import get_order_history
from app.services.order_queries import (
    get_order,
    get_order_details,
    get_order_stats,
    list_orders,
    list_user_orders,
)
from app.services.order_service import (
    cancel_order_by_customer,
    create_order_with_transaction,
    update_order_status_with_transaction,
    update_order_tracking,
)
from app.services.order_state_machine import is_terminal_state, validate_transition

router = APIRouter()


async def _visible_order(session: AsyncSession, order_id: int, actor: Actor):
    order = await get_order(session, order_id, user_id=None if actor.is_admin else actor.id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post("", status_code=201)
async def place_order(
    data: CheckoutRequest,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    actor: Actor = Depends(get_current_actor),
):
    # catalog read is closed before the atomic unit opens its own transaction
    async with session_factory() as session:
        order_input = await prepare_checkout(session, actor, data)

    result = await create_order_with_transaction(session_factory, order_input)

    async with session_factory() as session:
        order = await get_order(session, result.order_id)

    return {
        "message": "Order placed successfully",
        "order": OrderRead.model_validate(order),
    }


@router.get("")
async def list_my_orders(
    status: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = 1,
    limit: int = 20,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    if not actor.is_admin:
        orders = await list_user_orders(session, actor.id)
        return {"results": [OrderRead.model_validate(o) for o in orders]}

    paged = await list_orders(
        session,
        status=status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    paged["results"] = [OrderRead.model_validate(o) for o in paged["results"]]
    return paged


@router.get("/stats")
async def order_stats(
    session: AsyncSession = Depends(get_session),
    _: Actor = Depends(require_admin),
):
    return await get_order_stats(session)


@router.get("/{order_id}", response_model=OrderRead)
async def read_order(
    order_id: int,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    return await _visible_order(session, order_id, actor)


@router.get("/{order_id}/details")
async def read_order_details(
    order_id: int,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    await _visible_order(session, order_id, actor)
    details = await get_order_details(session, order_id)
    if details is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return details


@router.get("/{order_id}/history")
async def read_order_history(
    order_id: int,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    await _visible_order(session, order_id, actor)
    history = await get_order_history(session, order_id)
    return [OrderHistoryRead.model_validate(h) for h in history]


@router.put("/{order_id}/status")
async def change_order_status(
    order_id: int,
    data: UpdateStatusRequest,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    admin: Actor = Depends(require_admin),
):
    # early feedback on a fresh read; the updater re-checks inside its transaction
    async with session_factory() as session:
        order = await get_order(session, order_id)
    if order is None:
        raise NotFoundError("Order not found.")
    if is_terminal_state(order.status):
        raise TerminalStateError(
            f"Order is already {order.status}. No changes allowed.",
            current=order.status,
        )
    validate_transition(order.status, data.status)

    updated = await update_order_status_with_transaction(
        session_factory,
        order_id,
        data.status,
        admin,
        reason=data.reason,
        tracking=data.tracking,
    )
    return {
        "message": f"Order status updated to {data.status.value}",
        "order": OrderRead.model_validate(updated),
    }


@router.put("/{order_id}/tracking")
async def change_order_tracking(
    order_id: int,
    data: TrackingInfo,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    _: Actor = Depends(require_admin),
):
    updated = await update_order_tracking(session_factory, order_id, data)
    return {
        "message": "Tracking information updated",
        "order": OrderRead.model_validate(updated),
    }


@router.post("/{order_id}/cancel")
async def cancel_my_order(
    order_id: int,
    data: Optional[CancelOrderRequest] = None,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    actor: Actor = Depends(get_current_actor),
):
    async with session_factory() as session:
        await _visible_order(session, order_id, actor)

    updated = await cancel_order_by_customer(
        session_factory,
        order_id,
        actor,
        reason=data.reason if data else None,
    )
    return {
        "message": "Order cancelled successfully",
        "order": OrderRead.model_validate(updated),
        "status": OrderStatus.cancelled.value,
    }
