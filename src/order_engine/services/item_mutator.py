"""Audited edits, additions and removals of an order's line items."""

from decimal import Decimal
from typing import Any, Dict, Optional

from order_engine.config.settings import settings
from order_engine.core.exceptions import NotFoundError, ValidationError
from order_engine.core.logger import setup_logger
from order_engine.db.models import Order, OrderItem, Product
from order_engine.services.audit import ValueAudit
from order_engine.services.discounts import to_decimal

logger = setup_logger(__name__)

# Live flag set alongside each audited field
EDITED_FLAGS = {"price": "price_edited", "quantity": "quantity_edited"}


class OrderItemMutator:
    """
    Applies line item changes to one loaded order.

    Lookups by item id go against the items the order had when the mutator
    was created, so a batch of changes sees one consistent view.
    """

    def __init__(self, order: Order):
        """Snapshot the order's current items."""
        self.order = order
        self.original_items: Dict[str, OrderItem] = {item.id: item for item in order.items}

    def mark_edited(self) -> None:
        self.order.items_edited = True

    def record_edit(
        self,
        item: OrderItem,
        field_name: str,
        new_value: Any,
        note: Optional[str] = None,
    ) -> bool:
        """
        Set an audited field, keeping its first pre-edit value.

        Args:
            item: Line item to change
            field_name: "price" or "quantity"
            new_value: Value to set
            note: Optional note; replaces the stored note when non-empty

        Returns:
            True if the field changed, False for a no-op edit
        """
        if field_name not in EDITED_FLAGS:
            raise ValidationError(f"Field {field_name!r} cannot be edited")

        current = getattr(item, field_name)
        if field_name == "price":
            new_value = to_decimal(new_value)
            current = to_decimal(current)

        if new_value == current:
            logger.debug(f"Item {item.id}: {field_name} unchanged, nothing to record")
            return False

        audit = ValueAudit.from_json(item.original_values)
        audit.record(field_name, current, note)
        item.original_values = audit.to_json()

        setattr(item, field_name, new_value)
        setattr(item, EDITED_FLAGS[field_name], True)
        self.mark_edited()
        return True

    def update_item(
        self,
        item_id: str,
        quantity: Optional[int] = None,
        quantity_note: Optional[str] = None,
        price: Optional[Decimal] = None,
        price_note: Optional[str] = None,
    ) -> OrderItem:
        """Edit price and/or quantity of an existing item."""
        item = self._find_original(item_id)

        if price is not None:
            self.record_edit(item, "price", price, price_note)
        if quantity is not None:
            self.record_edit(item, "quantity", quantity, quantity_note)
        return item

    def add_item(
        self,
        product: Product,
        quantity: int,
        price: Decimal,
        price_note: Optional[str] = None,
    ) -> OrderItem:
        """
        Insert an admin-added line item.

        Only a price that differs from the catalog price is audited; a fresh
        item has no prior quantity.
        """
        price = to_decimal(price)
        catalog = to_decimal(product.price)

        audit = ValueAudit()
        price_edited = price != catalog
        if price_edited:
            audit.record("price", catalog, price_note or settings.default_admin_price_note)

        item = OrderItem(
            product_id=product.id,
            product=product,
            quantity=quantity,
            price=price,
            price_edited=price_edited,
            quantity_edited=False,
            admin_added=True,
            original_values=audit.to_json(),
        )
        self.order.items.append(item)
        self.mark_edited()

        logger.info(
            f"Added {quantity} x {product.name} at {price} to order {self.order.id}",
            extra={"order_id": self.order.id},
        )
        return item

    def add_or_merge(
        self,
        product: Product,
        quantity: int,
        price: Decimal,
        price_note: Optional[str] = None,
        quantity_note: Optional[str] = None,
    ) -> OrderItem:
        """Add a product, or raise the quantity of its existing line instead."""
        existing = self._find_by_product(product.id)
        if existing is None:
            return self.add_item(product, quantity, price, price_note)

        self.record_edit(
            existing,
            "quantity",
            existing.quantity + quantity,
            quantity_note or settings.default_admin_quantity_note,
        )
        return existing

    def remove_item(self, item_id: str) -> OrderItem:
        """Delete a line item. There is no undo for removals."""
        item = self._find_original(item_id)
        if item not in self.order.items:
            raise NotFoundError(
                f"Order item {item_id} was already removed from order {self.order.id}",
                {"order_id": self.order.id, "item_id": item_id},
            )

        self.order.items.remove(item)
        self.mark_edited()
        logger.info(f"Removed item {item_id} from order {self.order.id}", extra={"order_id": self.order.id})
        return item

    def _find_original(self, item_id: str) -> OrderItem:
        item = self.original_items.get(item_id)
        if item is None:
            raise NotFoundError(
                f"Order item {item_id} not found in order {self.order.id}",
                {"order_id": self.order.id, "item_id": item_id},
            )
        return item

    def _find_by_product(self, product_id: str) -> Optional[OrderItem]:
        for item in self.original_items.values():
            if item.product_id == product_id and item in self.order.items:
                return item
        return None

    def add_customer_item(self, product: Product, quantity: int, price: Decimal) -> OrderItem:
        """
        Add a catalog item on the customer's behalf.

        Merges into the customer's own line for the same product if there is
        one; admin-added lines are left alone.
        """
        for item in self.original_items.values():
            if item.product_id == product.id and not item.admin_added and item in self.order.items:
                self.record_edit(item, "quantity", item.quantity + quantity)
                return item

        item = OrderItem(
            product_id=product.id,
            product=product,
            quantity=quantity,
            price=to_decimal(price),
            price_edited=False,
            quantity_edited=False,
            admin_added=False,
        )
        self.order.items.append(item)
        return item
