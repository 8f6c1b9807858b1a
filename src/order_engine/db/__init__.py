"""Database module."""

from .base import Base, create_tables, get_engine, get_session_factory, init_db
from .models import (
    Order,
    OrderItem,
    OrderStatusHistory,
    Product,
    PromoCode,
    PromoCodeExclusion,
    UserPromoCode,
)
from .repository import (
    OrderRepository,
    ProductRepository,
    PromoCodeRepository,
    StatusHistoryRepository,
)
from .unit_of_work import UnitOfWork

__all__ = [
    "Base",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "init_db",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Product",
    "PromoCode",
    "PromoCodeExclusion",
    "UserPromoCode",
    "OrderRepository",
    "ProductRepository",
    "PromoCodeRepository",
    "StatusHistoryRepository",
    "UnitOfWork",
]
