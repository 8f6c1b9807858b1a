"""Order operations: the admin update orchestrator and its companions."""

from collections import OrderedDict
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from order_engine.config.constants import ZERO
from order_engine.core.exceptions import (
    ConflictError,
    IllegalTransitionError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from order_engine.core.logger import setup_logger
from order_engine.db.models import Order, OrderItem, OrderStatusHistory, Product
from order_engine.db.unit_of_work import UnitOfWork
from order_engine.models.actor import Actor
from order_engine.models.enums import ActorRole, OrderStatus, PaymentMethod
from order_engine.models.order import (
    CancelOrderRequest,
    CustomerItemsRequest,
    CustomerNewItem,
    CustomerStatusRequest,
    NewOrderItem,
    OrderUpdateRequest,
    PlaceOrderRequest,
)
from order_engine.models.promo import ApplyPromoRequest
from order_engine.services.discounts import (
    OrderTotals,
    catalog_price,
    order_subtotal,
    order_totals,
    quantize_money,
    to_decimal,
)
from order_engine.services.finalizer import OrderFinalizer, cancel_accepted_order
from order_engine.services.item_mutator import OrderItemMutator
from order_engine.services.promo_validator import PromoCodeValidator
from order_engine.services.transitions import (
    items_are_editable,
    requires_cancellation_operation,
    validate_status_update,
)

logger = setup_logger(__name__)

RequestModel = TypeVar("RequestModel", bound=BaseModel)
LineModel = TypeVar("LineModel", NewOrderItem, CustomerNewItem)


def parse_request(model_cls: Type[RequestModel], payload: Any) -> RequestModel:
    """
    Validate a request payload.

    Raises:
        ValidationError: with one entry per offending field
    """
    if isinstance(payload, model_cls):
        return payload
    try:
        return model_cls.model_validate(payload)
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationError("Invalid request data", {"errors": errors}) from e


def merge_new_lines(lines: List[LineModel]) -> List[LineModel]:
    """
    Collapse lines naming the same product into one, summing quantities.

    The first line for a product supplies its price and notes.
    """
    merged: Dict[str, LineModel] = OrderedDict()
    for line in lines:
        first = merged.get(line.product_id)
        if first is None:
            merged[line.product_id] = line
        else:
            merged[line.product_id] = first.model_copy(update={"quantity": first.quantity + line.quantity})
    return list(merged.values())


class OrderService:
    """Runs each order operation in its own unit of work."""

    def __init__(self, session_factory):
        """Initialize service with an async session factory."""
        self.session_factory = session_factory

    def _uow(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory)

    # ------------------------------------------------------------------
    # Admin update
    # ------------------------------------------------------------------

    async def update_order(self, actor: Actor, order_id: str, payload: Any) -> Order:
        """
        Apply an admin update: status change, item edits and admin discount.

        Sequence:
            1. load the order with its items
            2. parse the request
            3. refuse item changes unless the order is PENDING or ADMIN_PENDING
            4. validate the status change; finalize when it enters ACCEPTED
            5. apply item updates, additions and removals
            6. persist, write history for an actual status change, reload

        A same-status request is not a status change. Item updates and
        removals naming an item that is not in the order are skipped with a
        warning; everything else is all-or-nothing.

        Args:
            actor: Acting admin
            order_id: Order to update
            payload: OrderUpdateRequest or its dict form

        Returns:
            The refreshed order
        """
        self._require_admin(actor, "update orders")

        async with self._uow() as uow:
            order = await self._load_order(uow, order_id, lock=True)
            request = parse_request(OrderUpdateRequest, payload)

            if request.has_item_changes and not items_are_editable(order.status):
                raise ValidationError(
                    "Order items can only be edited when the order is in PENDING or ADMIN_PENDING status",
                    {"status": order.status.value},
                )

            previous_status = order.status
            new_status = request.status
            status_changed = new_status is not None and new_status != previous_status
            history_note = request.status_note

            if status_changed:
                self._check_transition(order, new_status, actor, request.has_item_changes)

                if new_status == OrderStatus.ACCEPTED:
                    history_note = await self._finalize(uow, order, actor, history_note)
                    if previous_status == OrderStatus.ADMIN_PENDING:
                        order.payment_method = PaymentMethod.CASH

            new_products = await self._load_products_to_add(uow, request.new_items)
            self._apply_item_changes(order, request, new_products)

            if status_changed:
                order.status = new_status
            if request.provided("admin_discount"):
                order.admin_discount = request.admin_discount
            if request.provided("admin_discount_reason"):
                order.admin_discount_reason = request.admin_discount_reason

            if status_changed:
                await uow.history.append(
                    order.id, previous_status, new_status, history_note, actor.id
                )
                logger.info(
                    f"Order {order.id} moved from {previous_status.value} to {new_status.value}",
                    extra={"order_id": order.id, "actor_id": actor.id},
                )

            await uow.commit()
            return await uow.orders.get_with_items(order.id, refresh=True)

    def _check_transition(
        self, order: Order, new_status: OrderStatus, actor: Actor, has_item_changes: bool
    ) -> None:
        if actor.is_admin and requires_cancellation_operation(order.status, new_status):
            raise InvariantViolation(
                "Cannot cancel an accepted order through an order update; "
                "use the cancel operation, which decides on stock restoration",
                {"status": order.status.value},
            )

        result = validate_status_update(
            order.status, order.items_edited, new_status, actor.role, has_item_changes
        )
        if not result.valid:
            logger.warning(
                f"Rejected transition for order {order.id}: {result.message}",
                extra={"order_id": order.id, "actor_id": actor.id},
            )
            raise IllegalTransitionError(
                result.message,
                current_status=order.status.value,
                requested_status=new_status.value,
                actor_role=actor.role.value,
            )

    async def _finalize(self, uow: UnitOfWork, order: Order, actor: Actor, note):
        """Run acceptance side effects; return the history note with any promo line."""
        try:
            result = await OrderFinalizer(uow).finalize(order)
        except ConflictError as e:
            logger.error(
                f"Failed to finalize order {order.id}: {e.message}",
                exc_info=True,
                extra={"order_id": order.id, "actor_id": actor.id},
            )
            raise

        if result.promo_note:
            return f"{note}\n\n{result.promo_note}" if note else result.promo_note
        return note

    async def _load_products_to_add(
        self, uow: UnitOfWork, new_items: List[NewOrderItem]
    ) -> Dict[str, Product]:
        """Fetch products for new items, refusing unknown or archived ones up front."""
        if not new_items:
            return {}

        product_ids = {item.product_id for item in new_items}
        products = {p.id: p for p in await uow.products.find_many(product_ids)}

        missing = sorted(product_ids - set(products))
        if missing:
            raise NotFoundError("One or more products not found", {"product_ids": missing})

        archived = [p.name for p in products.values() if p.is_archived]
        if archived:
            raise ConflictError(
                "Cannot add archived products to order", {"archived_products": archived}
            )
        return products

    def _apply_item_changes(
        self, order: Order, request: OrderUpdateRequest, products: Dict[str, Product]
    ) -> None:
        mutator = OrderItemMutator(order)

        for update in request.items:
            try:
                mutator.update_item(
                    update.id,
                    quantity=update.quantity,
                    quantity_note=update.quantity_note,
                    price=update.price,
                    price_note=update.price_note,
                )
            except NotFoundError as e:
                logger.warning(f"Skipping item update: {e.message}", extra={"order_id": order.id})

        for new_item in merge_new_lines(request.new_items):
            mutator.add_or_merge(
                products[new_item.product_id],
                new_item.quantity,
                new_item.price,
                price_note=new_item.price_note,
                quantity_note=new_item.quantity_note,
            )

        for item_id in request.removed_item_ids:
            try:
                mutator.remove_item(item_id)
            except NotFoundError as e:
                logger.warning(f"Skipping item removal: {e.message}", extra={"order_id": order.id})

    # ------------------------------------------------------------------
    # Cancellation and promo codes (admin)
    # ------------------------------------------------------------------

    async def cancel_order(self, actor: Actor, order_id: str, payload: Any) -> Order:
        """Cancel an ACCEPTED order, restoring stock if asked to."""
        self._require_admin(actor, "cancel orders")

        async with self._uow() as uow:
            order = await self._load_order(uow, order_id, lock=True)
            request = parse_request(CancelOrderRequest, payload)
            await cancel_accepted_order(uow, order, actor.id, request.restore_stock, request.note)
            await uow.commit()
            return await uow.orders.get_with_items(order.id, refresh=True)

    async def apply_promo_code(self, actor: Actor, order_id: str, payload: Any) -> Order:
        """
        Attach a promo code to a pending order.

        The code is validated against the current subtotal; the discount
        itself is only materialized at acceptance.
        """
        self._require_admin(actor, "apply promo codes")

        async with self._uow() as uow:
            order = await self._load_order(uow, order_id, lock=True)
            request = parse_request(ApplyPromoRequest, payload)

            if order.promo_code_id:
                raise ConflictError(
                    "Order already has a promo code applied. Remove it first before applying a new one.",
                    {"promo_code_id": order.promo_code_id},
                )
            if not items_are_editable(order.status):
                raise ValidationError(
                    "Promo codes can only be applied to pending orders",
                    {"status": order.status.value},
                )

            validation = await PromoCodeValidator(uow.promo_codes).validate(
                request.code, order.user_id, order_subtotal(order.items)
            )
            if not validation.is_valid:
                raise ValidationError(validation.message, {"code": request.code})

            order.promo_code = validation.promo_code
            order.promo_code_id = validation.promo_code.id
            order.promo_discount = None

            await uow.commit()
            logger.info(
                f"Promo code {request.code!r} applied to order {order.id}",
                extra={"order_id": order.id, "actor_id": actor.id},
            )
            return await uow.orders.get_with_items(order.id, refresh=True)

    async def remove_promo_code(self, actor: Actor, order_id: str) -> Order:
        self._require_admin(actor, "remove promo codes")

        async with self._uow() as uow:
            order = await self._load_order(uow, order_id, lock=True)

            if not items_are_editable(order.status):
                raise ValidationError(
                    "Promo codes can only be removed from pending orders",
                    {"status": order.status.value},
                )
            if not order.promo_code_id:
                raise ValidationError("Order does not have a promo code applied")

            code = order.promo_code.code if order.promo_code else "Unknown"
            order.promo_code = None
            order.promo_code_id = None
            order.promo_discount = None

            await uow.commit()
            logger.info(
                f"Promo code {code!r} removed from order {order.id}",
                extra={"order_id": order.id, "actor_id": actor.id},
            )
            return await uow.orders.get_with_items(order.id, refresh=True)

    # ------------------------------------------------------------------
    # Customer operations
    # ------------------------------------------------------------------

    async def place_order(self, actor: Actor, payload: Any) -> Order:
        """
        Create an order from cart lines.

        Prices are snapshotted after catalog discounts. Orders holding a
        hidden-price or negotiable product start in ADMIN_PENDING.
        """
        request = parse_request(PlaceOrderRequest, payload)
        if not request.items:
            raise ValidationError("Cart is empty")

        quantities: Dict[str, int] = OrderedDict()
        for line in request.items:
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

        async with self._uow() as uow:
            products = {p.id: p for p in await uow.products.find_many(quantities)}
            missing = sorted(set(quantities) - set(products))
            if missing:
                raise NotFoundError("One or more products not found", {"product_ids": missing})

            for product_id, quantity in quantities.items():
                self._check_purchasable(products[product_id], quantity)

            special = any(
                products[pid].hide_price or products[pid].negotiable_price for pid in quantities
            )
            order = Order(
                user_id=actor.id,
                status=OrderStatus.ADMIN_PENDING if special else OrderStatus.PENDING,
                payment_method=PaymentMethod.PENDING if special else PaymentMethod.CASH,
                recipient_name=request.recipient_name,
                phone=request.phone,
                shipping_address=request.shipping_address,
                items=[
                    OrderItem(
                        product_id=pid,
                        product=products[pid],
                        quantity=quantity,
                        price=catalog_price(products[pid]),
                    )
                    for pid, quantity in quantities.items()
                ],
            )
            order.savings = quantize_money(
                sum(
                    ((to_decimal(products[item.product_id].price) - item.price) * item.quantity for item in order.items),
                    ZERO,
                )
            )

            if request.promo_code:
                validation = await PromoCodeValidator(uow.promo_codes).validate(
                    request.promo_code, actor.id, order_subtotal(order.items)
                )
                if not validation.is_valid:
                    raise ValidationError(validation.message, {"code": request.promo_code})
                order.promo_code = validation.promo_code

            uow.orders.add(order)
            await uow.commit()
            logger.info(
                f"Order {order.id} placed with {len(order.items)} items ({order.status.value})",
                extra={"order_id": order.id, "actor_id": actor.id},
            )
            return await uow.orders.get_with_items(order.id, refresh=True)

    @staticmethod
    def _check_purchasable(product: Product, quantity: int) -> None:
        if product.is_archived:
            raise ConflictError(f'"{product.name}" is no longer available', {"product": product.name})
        if not product.is_public:
            raise ConflictError(
                f'Product "{product.name}" is not offered right now', {"product": product.name}
            )
        if product.use_stock and product.stock < quantity:
            raise ConflictError(
                f"Insufficient stock for {product.name}",
                {"product": product.name, "available": product.stock, "required": quantity},
            )

    async def customer_respond(self, actor: Actor, order_id: str, payload: Any) -> Order:
        """
        Customer answer to a quote: approve (PENDING) or reject (REJECTED).

        Approval clears the items-edited flag and settles payment as cash.
        """
        self._require_customer(actor)
        request = parse_request(CustomerStatusRequest, payload)

        async with self._uow() as uow:
            order = await self._load_order(uow, order_id, actor, lock=True)
            previous_status = order.status
            self._check_transition(order, request.status, actor, has_item_changes=False)

            if previous_status == OrderStatus.CUSTOMER_PENDING and request.status == OrderStatus.PENDING:
                order.items_edited = False
                order.payment_method = PaymentMethod.CASH

            order.status = request.status
            await uow.history.append(order.id, previous_status, request.status, request.note, actor.id)
            await uow.commit()
            logger.info(
                f"Customer moved order {order.id} from {previous_status.value} to {request.status.value}",
                extra={"order_id": order.id, "actor_id": actor.id},
            )
            return await uow.orders.get_with_items(order.id, refresh=True)

    async def customer_update_items(self, actor: Actor, order_id: str, payload: Any) -> Order:
        """
        Customer edits to a quote while the order is CUSTOMER_PENDING.

        Admin-added items are off limits. Adding a hidden-price product sends
        the order back to ADMIN_PENDING for pricing; otherwise submitting or
        accepting moves it to PENDING. The customer's own edits do not set
        the items-edited flag.
        """
        self._require_customer(actor)
        request = parse_request(CustomerItemsRequest, payload)

        async with self._uow() as uow:
            order = await self._load_order(uow, order_id, actor, lock=True)
            if order.status != OrderStatus.CUSTOMER_PENDING:
                raise ValidationError(
                    "Cannot modify order items unless the order is in CUSTOMER_PENDING status",
                    {"status": order.status.value},
                )

            mutator = OrderItemMutator(order)
            for change in request.items:
                item = mutator.original_items.get(change.id)
                if item is None:
                    raise NotFoundError(
                        f"Order item {change.id} not found",
                        {"order_id": order.id, "item_id": change.id},
                    )
                if item.admin_added:
                    raise ConflictError(
                        f"Item {item.product.name} was added by admin and cannot be modified",
                        {"item_id": item.id},
                    )
                if change.removed:
                    mutator.remove_item(change.id)
                elif change.quantity is not None:
                    mutator.record_edit(item, "quantity", change.quantity)

            has_hidden_price_items = False
            if request.new_items:
                product_ids = {line.product_id for line in request.new_items}
                products = {p.id: p for p in await uow.products.find_many(product_ids)}
                missing = sorted(product_ids - set(products))
                if missing:
                    raise NotFoundError("One or more products not found", {"product_ids": missing})
                for line in merge_new_lines(request.new_items):
                    product = products[line.product_id]
                    self._check_purchasable(product, line.quantity)
                    has_hidden_price_items = has_hidden_price_items or product.hide_price
                    mutator.add_customer_item(product, line.quantity, catalog_price(product))

            previous_status = order.status
            if has_hidden_price_items:
                new_status = OrderStatus.ADMIN_PENDING
                note = "Customer submitted order for admin price review"
            elif request.accept_changes or request.submit_for_review:
                new_status = OrderStatus.PENDING
                note = "Customer approved changes and submitted order"
            else:
                new_status = previous_status
                note = "Customer modified order items"
            if request.note:
                note = f"{note}: {request.note}"

            order.items_edited = False
            order.status = new_status
            if new_status != previous_status:
                await uow.history.append(order.id, previous_status, new_status, note, actor.id)

            await uow.commit()
            logger.info(note, extra={"order_id": order.id, "actor_id": actor.id})
            return await uow.orders.get_with_items(order.id, refresh=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(self, actor: Actor, order_id: str) -> Order:
        async with self._uow() as uow:
            return await self._load_order(uow, order_id, actor)

    async def list_orders(self, actor: Actor, status: Optional[OrderStatus] = None) -> List[Order]:
        """The actor's own orders, newest first."""
        async with self._uow() as uow:
            return await uow.orders.list_for_user(actor.id, status)

    async def get_totals(self, actor: Actor, order_id: str) -> OrderTotals:
        """Totals, estimating the promo discount until it is materialized."""
        async with self._uow() as uow:
            order = await self._load_order(uow, order_id, actor)
            return order_totals(order, order.promo_code)

    async def get_history(self, actor: Actor, order_id: str) -> List[OrderStatusHistory]:
        async with self._uow() as uow:
            order = await self._load_order(uow, order_id, actor)
            return await uow.history.list_for_order(order.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _load_order(
        uow: UnitOfWork, order_id: str, actor: Actor = None, lock: bool = False
    ) -> Order:
        """Load an order; customers only see their own. `lock` holds the row until commit."""
        order = await uow.orders.get_with_items(order_id, for_update=lock)
        if order is None or (
            actor is not None and not actor.is_admin and order.user_id != actor.id
        ):
            raise NotFoundError("Order not found", {"order_id": order_id})
        return order

    @staticmethod
    def _require_admin(actor: Actor, action: str) -> None:
        if not actor.is_admin:
            raise InvariantViolation(f"Only administrators may {action}", {"actor_role": actor.role.value})

    @staticmethod
    def _require_customer(actor: Actor) -> None:
        if actor.role != ActorRole.CUSTOMER:
            raise InvariantViolation(
                "This operation is reserved for the customer who owns the order",
                {"actor_role": actor.role.value},
            )
