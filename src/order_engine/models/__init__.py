"""Pydantic models and shared enums."""

from order_engine.models.actor import Actor
from order_engine.models.enums import ActorRole, DiscountType, OrderStatus, PaymentMethod

__all__ = ["Actor", "ActorRole", "DiscountType", "OrderStatus", "PaymentMethod"]
