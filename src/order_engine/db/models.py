"""SQLAlchemy models for orders, products and promo codes."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from order_engine.models.enums import DiscountType, OrderStatus, PaymentMethod

from .base import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


def _enum(enum_cls):
    return Enum(enum_cls, native_enum=False, length=32, validate_strings=True)


class Product(Base):
    """
    Catalog product, as far as the order engine needs it.

    The catalog itself (categories, media, reviews) is owned elsewhere;
    this table carries only the price, stock and visibility flags.
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Stock
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    use_stock: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Visibility and pricing flags
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    hide_price: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    negotiable_price: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Catalog discount, already reflected in an order item's snapshot price
    discount_type: Mapped[Optional[DiscountType]] = mapped_column(_enum(DiscountType), nullable=True)
    discount_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    discount_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)

    discount_type: Mapped[DiscountType] = mapped_column(
        _enum(DiscountType), default=DiscountType.NONE, nullable=False
    )
    discount_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    discount_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    has_expiry_date: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Usage limits
    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    min_order_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class UserPromoCode(Base):
    """Assignment of a promo code to one user, optionally exclusive."""

    __tablename__ = "user_promo_codes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    promo_code_id: Mapped[str] = mapped_column(
        ForeignKey("promo_codes.id", ondelete="CASCADE"), index=True, nullable=False
    )
    is_exclusive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_expiry_date: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class PromoCodeExclusion(Base):
    __tablename__ = "promo_code_exclusions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    promo_code_id: Mapped[str] = mapped_column(
        ForeignKey("promo_codes.id", ondelete="CASCADE"), index=True, nullable=False
    )
    excluded_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Order(Base):
    """
    One customer purchase.

    Orders are never deleted; COMPLETED, REJECTED and CANCELLED orders stay
    for history.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    status: Mapped[OrderStatus] = mapped_column(
        _enum(OrderStatus), default=OrderStatus.PENDING, index=True, nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)

    # Recipient and shipping
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    shipping_address: Mapped[str] = mapped_column(Text, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        _enum(PaymentMethod), default=PaymentMethod.CASH, nullable=False
    )

    # Pricing
    savings: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    admin_discount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    admin_discount_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    promo_code_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("promo_codes.id", ondelete="SET NULL"), nullable=True
    )
    # Only set once the promo discount has been materialized at acceptance
    promo_discount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    items_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.created_at",
    )
    promo_code: Mapped[Optional[PromoCode]] = relationship(lazy="selectin")


class OrderItem(Base):
    """One product line within an order."""

    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
    )
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), index=True, nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # Snapshot at time of order or edit, not the live catalog price
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    price_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    quantity_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Decoded through services.audit.ValueAudit
    original_values: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    admin_added: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")
    product: Mapped[Product] = relationship(lazy="selectin")


class OrderStatusHistory(Base):
    """Append-only ledger of status changes."""

    __tablename__ = "order_status_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
    )
    previous_status: Mapped[OrderStatus] = mapped_column(_enum(OrderStatus), nullable=False)
    new_status: Mapped[OrderStatus] = mapped_column(_enum(OrderStatus), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
