"""Pytest fixtures for the order engine tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from app.constants.order_status import ActorRole
from app.database import (
    build_engine,
    build_session_factory,
    create_db_and_tables,
    get_session_factory,
)
from app.main import app
from app.models.order import Order
from app.models.product import Product
from app.schemas.orders_schemas import (
    Actor,
    CreateOrderInput,
    OrderItemInput,
    ShippingAddress,
)
from app.services.order_service import create_order_with_transaction

ADMIN = Actor(id="admin-1", email="ops@example.com", role=ActorRole.admin)
CUSTOMER = Actor(id="user-1", email="asha@example.com", role=ActorRole.customer)

ADMIN_HEADERS = {"X-User-Id": ADMIN.id, "X-User-Email": ADMIN.email, "X-User-Role": "admin"}
CUSTOMER_HEADERS = {"X-User-Id": CUSTOMER.id, "X-User-Email": CUSTOMER.email, "X-User-Role": "customer"}

ADDRESS = {
    "first_name": "Asha",
    "last_name": "Rao",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "zip_code": "560001",
    "phone": "9800000000",
}


@pytest.fixture
async def engine(tmp_path):
    """A fresh SQLite file database per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await create_db_and_tables(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def make_product(session_factory):
    """Insert a catalog product and return it."""

    async def _make(name="LED Bulb 9W", price=1000.0, stock=10, sku=None, image_url=None):
        async with session_factory() as session:
            product = Product(name=name, price=price, stock=stock, sku=sku, image_url=image_url)
            session.add(product)
            await session.commit()
            await session.refresh(product)
            return product

    return _make


@pytest.fixture
def stock_of(session_factory):
    async def _stock(product_id):
        async with session_factory() as session:
            product = await session.get(Product, product_id)
            return product.stock

    return _stock


@pytest.fixture
def load_order(session_factory):
    async def _load(order_id):
        async with session_factory() as session:
            return await session.get(Order, order_id)

    return _load


def order_input(lines, user_id=CUSTOMER.id, email=CUSTOMER.email):
    """Build a CreateOrderInput from (product, quantity) pairs."""
    return CreateOrderInput(
        user_id=user_id,
        customer_name="Asha Rao",
        customer_email=email,
        shipping_address=ShippingAddress(**ADDRESS),
        items=[
            OrderItemInput(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                product_image_url=product.image_url,
                unit_price=product.price,
                quantity=quantity,
            )
            for product, quantity in lines
        ],
    )


@pytest.fixture
def place_order(session_factory):
    async def _place(lines, **kwargs):
        return await create_order_with_transaction(session_factory, order_input(lines, **kwargs))

    return _place


@pytest.fixture
async def client(session_factory):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
