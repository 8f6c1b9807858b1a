"""Business logic: state machine, pricing, item edits and order operations."""

from order_engine.services.audit import AuditEntry, ValueAudit
from order_engine.services.discounts import (
    OrderTotals,
    PromoDescriptor,
    calculate_final_total,
    calculate_promo_discount,
    order_totals,
)
from order_engine.services.finalizer import FinalizationResult, OrderFinalizer, cancel_accepted_order
from order_engine.services.item_mutator import OrderItemMutator
from order_engine.services.order_service import OrderService
from order_engine.services.promo_validator import PromoCodeValidator
from order_engine.services.transitions import TransitionResult, validate_status_update

__all__ = [
    "AuditEntry",
    "ValueAudit",
    "OrderTotals",
    "PromoDescriptor",
    "calculate_final_total",
    "calculate_promo_discount",
    "order_totals",
    "FinalizationResult",
    "OrderFinalizer",
    "cancel_accepted_order",
    "OrderItemMutator",
    "OrderService",
    "PromoCodeValidator",
    "TransitionResult",
    "validate_status_update",
]
