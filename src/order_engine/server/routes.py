"""API routes for the order engine."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends

from order_engine import __version__
from order_engine.config.settings import settings
from order_engine.models.actor import Actor
from order_engine.models.enums import OrderStatus
from order_engine.models.order import OrderOut, OrderTotalsOut, StatusHistoryOut
from order_engine.server.auth import get_actor, require_admin
from order_engine.services.order_service import OrderService

router = APIRouter()


def get_order_service_stub() -> OrderService:
    """Replaced in create_app() once the database is initialized."""
    raise NotImplementedError("Order service dependency not configured")


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "order-engine",
        "version": __version__,
        "environment": settings.environment,
    }


# ----------------------------------------------------------------------
# Customer
# ----------------------------------------------------------------------


@router.post("/orders", response_model=OrderOut, status_code=201)
async def place_order(
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service_stub),
) -> OrderOut:
    order = await service.place_order(actor, payload)
    return OrderOut.model_validate(order)


@router.get("/orders", response_model=List[OrderOut])
async def list_orders(
    status: Optional[OrderStatus] = None,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service_stub),
) -> List[OrderOut]:
    orders = await service.list_orders(actor, status)
    return [OrderOut.model_validate(order) for order in orders]


@router.get("/orders/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service_stub),
) -> OrderOut:
    order = await service.get_order(actor, order_id)
    return OrderOut.model_validate(order)


@router.get("/orders/{order_id}/totals", response_model=OrderTotalsOut)
async def get_order_totals(
    order_id: str,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service_stub),
) -> OrderTotalsOut:
    """Totals for display; the promo discount is estimated until acceptance."""
    totals = await service.get_totals(actor, order_id)
    return OrderTotalsOut.model_validate(totals)


@router.get("/orders/{order_id}/history", response_model=List[StatusHistoryOut])
async def get_order_history(
    order_id: str,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service_stub),
) -> List[StatusHistoryOut]:
    entries = await service.get_history(actor, order_id)
    return [StatusHistoryOut.model_validate(entry) for entry in entries]


@router.patch("/orders/{order_id}/status", response_model=OrderOut)
async def respond_to_quote(
    order_id: str,
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service_stub),
) -> OrderOut:
    order = await service.customer_respond(actor, order_id, payload)
    return OrderOut.model_validate(order)


@router.patch("/orders/{order_id}/items", response_model=OrderOut)
async def update_quote_items(
    order_id: str,
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service_stub),
) -> OrderOut:
    order = await service.customer_update_items(actor, order_id, payload)
    return OrderOut.model_validate(order)


# ----------------------------------------------------------------------
# Admin
# ----------------------------------------------------------------------


@router.patch("/admin/orders/{order_id}", response_model=OrderOut)
async def admin_update_order(
    order_id: str,
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service_stub),
) -> OrderOut:
    """Status change, item edits and admin discount in one request."""
    order = await service.update_order(actor, order_id, payload)
    return OrderOut.model_validate(order)


@router.post("/admin/orders/{order_id}/cancel", response_model=OrderOut)
async def admin_cancel_order(
    order_id: str,
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service_stub),
) -> OrderOut:
    order = await service.cancel_order(actor, order_id, payload)
    return OrderOut.model_validate(order)


@router.post("/admin/orders/{order_id}/promo", response_model=OrderOut)
async def admin_apply_promo(
    order_id: str,
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service_stub),
) -> OrderOut:
    order = await service.apply_promo_code(actor, order_id, payload)
    return OrderOut.model_validate(order)


@router.delete("/admin/orders/{order_id}/promo", response_model=OrderOut)
async def admin_remove_promo(
    order_id: str,
    actor: Actor = Depends(require_admin),
    service: OrderService = Depends(get_order_service_stub),
) -> OrderOut:
    order = await service.remove_promo_code(actor, order_id)
    return OrderOut.model_validate(order)
