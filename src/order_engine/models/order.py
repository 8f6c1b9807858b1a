"""Pydantic models for order requests and responses."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from order_engine.models.enums import OrderStatus, PaymentMethod


class OrderItemUpdate(BaseModel):
    """Edit of an existing line item (admin quote preparation)."""

    id: str
    quantity: Optional[int] = Field(None, ge=1)
    quantity_note: Optional[str] = Field(None, alias="quantityNote")
    price: Optional[Decimal] = Field(None, ge=0)
    price_note: Optional[str] = Field(None, alias="priceNote")

    class Config:
        extra = "forbid"
        populate_by_name = True


class NewOrderItem(BaseModel):
    """Product line added to an existing order by an admin."""

    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)
    price_note: Optional[str] = Field(None, alias="priceNote")
    quantity_note: Optional[str] = Field(None, alias="quantityNote")

    class Config:
        extra = "forbid"
        populate_by_name = True


class OrderUpdateRequest(BaseModel):
    """Admin update: status change, item edits and admin discount in one request."""

    status: Optional[OrderStatus] = None
    items: List[OrderItemUpdate] = Field(default_factory=list)
    new_items: List[NewOrderItem] = Field(default_factory=list, alias="newItems")
    removed_item_ids: List[str] = Field(default_factory=list, alias="removedItemIds")
    status_note: Optional[str] = Field(None, alias="statusNote")
    admin_discount: Optional[Decimal] = Field(None, ge=0, alias="adminDiscount")
    admin_discount_reason: Optional[str] = Field(None, alias="adminDiscountReason")

    class Config:
        extra = "forbid"
        populate_by_name = True

    @property
    def has_item_changes(self) -> bool:
        return bool(self.items or self.new_items or self.removed_item_ids)

    def provided(self, field_name: str) -> bool:
        """Whether the field was present in the payload (null counts as present)."""
        return field_name in self.model_fields_set


class CancelOrderRequest(BaseModel):
    """Cancellation of an accepted order."""

    restore_stock: bool = Field(..., alias="restoreStock")
    note: Optional[str] = None

    class Config:
        extra = "forbid"
        populate_by_name = True


class CustomerStatusRequest(BaseModel):
    """Customer answer to a quote."""

    status: OrderStatus
    note: Optional[str] = None

    class Config:
        extra = "forbid"


class CustomerItemChange(BaseModel):
    id: str
    quantity: Optional[int] = Field(None, ge=1)
    removed: bool = False

    class Config:
        extra = "forbid"


class CustomerNewItem(BaseModel):
    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., ge=1)

    class Config:
        extra = "forbid"
        populate_by_name = True


class CustomerItemsRequest(BaseModel):
    """Customer edits to a quote while the order awaits their approval."""

    items: List[CustomerItemChange] = Field(default_factory=list)
    new_items: List[CustomerNewItem] = Field(default_factory=list, alias="newItems")
    submit_for_review: bool = Field(False, alias="submitForReview")
    accept_changes: bool = Field(False, alias="acceptChanges")
    note: str = ""

    class Config:
        extra = "forbid"
        populate_by_name = True


class CartLine(BaseModel):
    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., ge=1)

    class Config:
        extra = "forbid"
        populate_by_name = True


class PlaceOrderRequest(BaseModel):
    """Checkout of a cart (cart storage is owned elsewhere)."""

    recipient_name: str = Field(..., min_length=1, alias="recipientName")
    phone: str = Field(..., min_length=1)
    shipping_address: str = Field(..., min_length=1, alias="shippingAddress")
    items: List[CartLine] = Field(default_factory=list)
    promo_code: Optional[str] = Field(None, alias="promoCode")

    class Config:
        extra = "forbid"
        populate_by_name = True


class OrderItemOut(BaseModel):
    """Line item as returned to callers."""

    id: str
    product_id: str
    quantity: int
    price: Decimal
    price_edited: bool
    quantity_edited: bool
    admin_added: bool
    original_values: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    """Order as returned to callers."""

    id: str
    status: OrderStatus
    user_id: str
    recipient_name: str
    phone: str
    shipping_address: str
    payment_method: PaymentMethod
    savings: Decimal
    admin_discount: Optional[Decimal] = None
    admin_discount_reason: Optional[str] = None
    promo_code_id: Optional[str] = None
    promo_discount: Optional[Decimal] = None
    items_edited: bool
    items: List[OrderItemOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StatusHistoryOut(BaseModel):
    id: str
    order_id: str
    previous_status: OrderStatus
    new_status: OrderStatus
    note: Optional[str] = None
    created_by_id: str
    created_at: datetime

    class Config:
        from_attributes = True


class OrderTotalsOut(BaseModel):
    subtotal: Decimal
    admin_discount: Decimal
    promo_discount: Decimal
    total: Decimal
    promo_estimated: bool

    class Config:
        from_attributes = True
