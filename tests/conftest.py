"""Shared fixtures: a file-backed SQLite database per test plus seed helpers."""

from decimal import Decimal

import pytest

from order_engine.db import (
    Order,
    OrderItem,
    Product,
    PromoCode,
    UnitOfWork,
    create_tables,
    get_engine,
    get_session_factory,
)
from order_engine.models import Actor, ActorRole, DiscountType, OrderStatus, PaymentMethod
from order_engine.services import OrderService

ADMIN = Actor(id="admin-1", role=ActorRole.ADMIN)
CUSTOMER = Actor(id="user-1", role=ActorRole.CUSTOMER)
OTHER_CUSTOMER = Actor(id="user-2", role=ActorRole.CUSTOMER)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}"


@pytest.fixture
async def engine(database_url):
    engine = get_engine(database_url)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def service(session_factory):
    return OrderService(session_factory)


@pytest.fixture
def seed(session_factory):
    """Persist objects in one committed unit of work and return them."""

    async def _seed(*objects):
        async with UnitOfWork(session_factory) as uow:
            uow.session.add_all(objects)
            await uow.commit()
        return objects if len(objects) > 1 else objects[0]

    return _seed


@pytest.fixture
def fetch_product(session_factory):
    async def _fetch(product_id):
        async with UnitOfWork(session_factory) as uow:
            return await uow.products.get_by_id(product_id)

    return _fetch


@pytest.fixture
def fetch_promo(session_factory):
    async def _fetch(promo_code_id):
        async with UnitOfWork(session_factory) as uow:
            return await uow.promo_codes.find_by_id(promo_code_id)

    return _fetch


def make_product(name="Widget", price="10.00", stock=10, **kwargs):
    return Product(name=name, price=Decimal(price), stock=stock, **kwargs)


def make_promo(code="SAVE10", discount_type="FLAT", amount=None, percent=None, **kwargs):
    return PromoCode(
        code=code,
        discount_type=DiscountType(discount_type),
        discount_amount=Decimal(amount) if amount is not None else None,
        discount_percent=Decimal(percent) if percent is not None else None,
        **kwargs,
    )


def make_order(lines, status=OrderStatus.PENDING, user_id=CUSTOMER.id, **kwargs):
    """
    Build an order from (product, quantity, price) tuples.

    The price defaults to the product's catalog price when None.
    """
    kwargs.setdefault("payment_method", PaymentMethod.CASH)
    return Order(
        status=status,
        user_id=user_id,
        recipient_name="Jane Doe",
        phone="555-0100",
        shipping_address="1 Main St",
        items=[
            OrderItem(
                product=product,
                quantity=quantity,
                price=product.price if price is None else Decimal(price),
            )
            for product, quantity, price in lines
        ],
        **kwargs,
    )
