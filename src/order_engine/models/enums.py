"""Closed value sets shared by the ORM, the schemas and the services."""

from enum import Enum


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PENDING = "PENDING"
    ADMIN_PENDING = "ADMIN_PENDING"
    CUSTOMER_PENDING = "CUSTOMER_PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ActorRole(str, Enum):
    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    PENDING = "PENDING"


class DiscountType(str, Enum):
    """How a promo code (or a catalog discount) reduces a price."""

    NONE = "NONE"
    FLAT = "FLAT"
    PERCENTAGE = "PERCENTAGE"
    BOTH = "BOTH"
