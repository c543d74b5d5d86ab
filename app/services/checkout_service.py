# app/services/checkout_service.py
import logging

from sqlmodel.ext.asyncio.session import AsyncSession

from app.errors import InsufficientStockError, ValidationError
from app.schemas.checkout_schemas import StockValidationItem
from app.schemas.orders_schemas import (
    Actor,
    CheckoutRequest,
    CreateOrderInput,
    OrderItemInput,
)
from app.services.inventory_service import get_products, validate_stock_availability

logger = logging.getLogger(__name__)


async def prepare_checkout(session: AsyncSession, actor: Actor, request: CheckoutRequest) -> CreateOrderInput:
    """Build the order creator's input from the catalog, never from client prices.

    Runs the advisory stock check so an obviously short cart fails before
    a transaction is opened.
    """
    if not actor.email:
        raise ValidationError("Customer email is required to place an order.")

    products = await get_products(session, (i.product_id for i in request.items))

    items = []
    checks = []
    for line in request.items:
        product = products.get(line.product_id)
        if product is None:
            raise InsufficientStockError(
                line.product_id, f"Product {line.product_id}", 0, line.quantity,
                code="PRODUCT_NOT_FOUND",
            )

        items.append(
            OrderItemInput(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                product_image_url=product.image_url,
                unit_price=product.price,
                quantity=line.quantity,
            )
        )
        checks.append(
            StockValidationItem(
                product_id=product.id,
                product_name=product.name,
                requested_quantity=line.quantity,
                available_stock=product.stock,
            )
        )

    result = validate_stock_availability(checks)
    if not result.valid:
        short = result.invalid_items[0]
        logger.info(f"Checkout for user {actor.id} short on {len(result.invalid_items)} item(s)")
        raise InsufficientStockError(
            short.product_id,
            short.product_name,
            short.available_stock,
            short.requested_quantity,
            short_items=[i.model_dump() for i in result.invalid_items],
        )

    address = request.shipping_address
    customer_name = (
        request.customer_name
        or " ".join(p for p in (address.first_name, address.last_name) if p).strip()
        or actor.email.split("@")[0]
    )

    return CreateOrderInput(
        user_id=actor.id,
        customer_name=customer_name,
        customer_email=actor.email,
        customer_phone=request.customer_phone or address.phone,
        shipping_address=address,
        items=items,
    )
