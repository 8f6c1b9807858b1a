"""
Side effects of accepting and cancelling an order.

Everything here runs inside the caller's UnitOfWork. Any exception aborts
the whole transaction: no partial stock decrement, no partial promo usage.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from order_engine.config.settings import settings
from order_engine.core.exceptions import ConflictError, IllegalTransitionError
from order_engine.core.logger import setup_logger
from order_engine.db.models import Order
from order_engine.db.unit_of_work import UnitOfWork
from order_engine.models.enums import OrderStatus
from order_engine.services.discounts import (
    PromoDescriptor,
    calculate_promo_discount,
    order_subtotal,
)
from order_engine.services.promo_validator import PromoCodeValidator

logger = setup_logger(__name__)


def format_currency(amount: Decimal) -> str:
    return f"{settings.currency_symbol}{amount:,.2f}"


@dataclass
class FinalizationResult:
    """What acceptance changed, for the caller's history entry."""

    promo_discount: Optional[Decimal] = None
    promo_note: Optional[str] = None


class OrderFinalizer:
    """Commits stock and promo usage when an order enters ACCEPTED."""

    def __init__(self, uow: UnitOfWork):
        """Initialize with the unit of work the acceptance runs in."""
        self.uow = uow

    async def finalize(self, order: Order) -> FinalizationResult:
        """
        Run the acceptance side effects for `order`.

        Steps, in order:
            1. refuse if any referenced product is archived now
            2. revalidate the attached promo code against the live subtotal
            3. count the promo usage and stamp the user's assignment
            4. materialize the promo discount if not already set
            5. decrement stock for stock-managed products

        The caller sets the status and appends history afterwards, in the
        same unit of work.

        Raises:
            ConflictError: archived product, invalid promo, stock shortfall
        """
        logger.info(f"Finalizing order {order.id}", extra={"order_id": order.id})

        await self._check_archived_products(order)
        result = FinalizationResult()
        if order.promo_code_id:
            result = await self._commit_promo_code(order)
        await self._decrement_stock(order)

        logger.info(f"Order {order.id} finalized", extra={"order_id": order.id})
        return result

    async def _check_archived_products(self, order: Order) -> None:
        products = await self.uow.products.find_many(
            (item.product_id for item in order.items), refresh=True
        )
        archived = [product.name for product in products if product.is_archived]
        if archived:
            raise ConflictError(
                f"Cannot accept order with archived products: {', '.join(archived)}",
                {"archived_products": archived},
            )

    async def _commit_promo_code(self, order: Order) -> FinalizationResult:
        promo_code = await self.uow.promo_codes.find_by_id(order.promo_code_id)
        if promo_code is None:
            raise ConflictError(
                "The promo code associated with this order no longer exists",
                {"promo_code_id": order.promo_code_id},
            )

        subtotal = order_subtotal(order.items)
        validation = await PromoCodeValidator(self.uow.promo_codes).validate(
            promo_code.code, order.user_id, subtotal
        )
        if not validation.is_valid:
            raise ConflictError(validation.message, {"promo_code": promo_code.code})

        await self.uow.promo_codes.increment_usage(promo_code.id)
        assignment = await self.uow.promo_codes.find_user_assignment(order.user_id, promo_code.id)
        if assignment is not None:
            await self.uow.promo_codes.mark_assignment_used(assignment)

        if order.promo_discount is None:
            order.promo_discount = calculate_promo_discount(
                subtotal, PromoDescriptor.from_promo_code(promo_code)
            )

        note = (
            f'Promo code "{promo_code.code}" applied with discount of '
            f"{format_currency(order.promo_discount)}."
        )
        return FinalizationResult(promo_discount=order.promo_discount, promo_note=note)

    async def _decrement_stock(self, order: Order) -> None:
        for item in order.items:
            product = await self.uow.products.get_for_update(item.product_id)
            if product is None or not product.use_stock:
                continue

            if product.stock < item.quantity:
                self._raise_shortfall(product.name, product.stock, item.quantity)

            # Conditional update guards against a writer that slipped in after the read
            if not await self.uow.products.decrement_stock(product.id, item.quantity):
                product = await self.uow.products.get_for_update(item.product_id)
                self._raise_shortfall(product.name, product.stock, item.quantity)

    @staticmethod
    def _raise_shortfall(name: str, available: int, required: int) -> None:
        raise ConflictError(
            f'Not enough stock for "{name}". Available: {available}, Required: {required}',
            {"product": name, "available": available, "required": required},
        )


async def cancel_accepted_order(
    uow: UnitOfWork,
    order: Order,
    actor_id: str,
    restore_stock: bool,
    note: Optional[str] = None,
) -> None:
    """
    Move an ACCEPTED order to CANCELLED.

    Optionally puts the accepted quantities back into stock, releases the
    promo code usage counted at acceptance, and writes history. Promo codes
    are not revalidated.

    Raises:
        IllegalTransitionError: order is not ACCEPTED
    """
    if order.status != OrderStatus.ACCEPTED:
        raise IllegalTransitionError(
            "Only accepted orders can be cancelled with stock restoration option",
            current_status=order.status.value,
            requested_status=OrderStatus.CANCELLED.value,
        )

    if restore_stock:
        for item in order.items:
            product = await uow.products.get_for_update(item.product_id)
            if product is not None and product.use_stock:
                await uow.products.increment_stock(product.id, item.quantity)

    if order.promo_code_id:
        await uow.promo_codes.decrement_usage(order.promo_code_id)
        assignment = await uow.promo_codes.find_user_assignment(order.user_id, order.promo_code_id)
        if assignment is not None:
            await uow.promo_codes.clear_assignment_used(assignment)

    order.status = OrderStatus.CANCELLED
    order.promo_code = None
    order.promo_code_id = None
    order.promo_discount = None

    if not note:
        note = "Order cancelled " + (
            "with stock restoration" if restore_stock else "without stock restoration"
        )
    await uow.history.append(
        order.id, OrderStatus.ACCEPTED, OrderStatus.CANCELLED, note, actor_id
    )
    logger.info(
        f"Order {order.id} cancelled (restore_stock={restore_stock})",
        extra={"order_id": order.id, "actor_id": actor_id},
    )
