# app/services/inventory_service.py
import logging
from typing import Dict, Iterable, List

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.errors import InsufficientStockError
from app.models.base import utc_now
from app.models.order_item import OrderItem
from app.models.product import Product
from app.schemas.checkout_schemas import StockValidationItem, StockValidationResult

logger = logging.getLogger(__name__)


def validate_stock_availability(items: Iterable[StockValidationItem]) -> StockValidationResult:
    """Split items into those the pre-fetched stock covers and those it does not.

    Advisory only: stock can move between this check and commit, so the
    order creator repeats the check inside its transaction.
    """
    valid_items: List[StockValidationItem] = []
    invalid_items: List[StockValidationItem] = []

    for item in items:
        if item.requested_quantity > item.available_stock:
            invalid_items.append(item)
        else:
            valid_items.append(item)

    return StockValidationResult(
        valid=not invalid_items,
        valid_items=valid_items,
        invalid_items=invalid_items,
    )


async def get_products(session: AsyncSession, product_ids: Iterable[int]) -> Dict[int, Product]:
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    products = (
        await session.exec(select(Product).where(Product.id.in_(ids)).order_by(Product.id))
    ).all()
    return {p.id: p for p in products}


async def lock_products(session: AsyncSession, product_ids: Iterable[int]) -> Dict[int, Product]:
    """Read products for update inside the current transaction.

    Rows are locked in ascending id order so two orders touching the same
    products cannot deadlock each other.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    statement = (
        select(Product)
        .where(Product.id.in_(ids))
        .order_by(Product.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    products = (await session.exec(statement)).all()
    return {p.id: p for p in products}


async def decrement_stock(
    session: AsyncSession,
    product_id: int,
    quantity: int,
    product_name: str,
) -> None:
    """Relative, guarded decrement: never lets stock drop below zero."""
    result = await session.exec(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    current = (
        await session.exec(select(Product.stock).where(Product.id == product_id))
    ).first()
    if current is None:
        raise InsufficientStockError(product_id, product_name, 0, quantity, code="PRODUCT_NOT_FOUND")
    raise InsufficientStockError(product_id, product_name, current, quantity)


async def get_order_items(session: AsyncSession, order_id: int) -> List[OrderItem]:
    return (
        await session.exec(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        )
    ).all()


async def restore_stock(session: AsyncSession, order_id: int, items: Iterable[OrderItem]) -> int:
    """Give back the stock held by an order's items. Returns the units restored.

    Items without a product_id, or whose product has left the catalog, are
    skipped.
    """
    restored = 0
    for item in items:
        if item.product_id is None:
            continue

        result = await session.exec(
            update(Product)
            .where(Product.id == item.product_id)
            .values(stock=Product.stock + item.quantity, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                f"Product {item.product_id} not found while restocking order {order_id}; skipped"
            )
            continue
        restored += item.quantity

    logger.info(f"Restored {restored} units for order {order_id}")
    return restored
