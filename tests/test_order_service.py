"""Tests for order operations: admin updates, cancellation, promo codes, customer flows."""

from decimal import Decimal

import pytest

from order_engine.core.exceptions import (
    ConflictError,
    IllegalTransitionError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from order_engine.db import UnitOfWork, UserPromoCode
from order_engine.models import OrderStatus, PaymentMethod

from .conftest import ADMIN, CUSTOMER, OTHER_CUSTOMER, make_order, make_product, make_promo


async def history_for(service, order_id):
    return await service.get_history(ADMIN, order_id)


@pytest.fixture
async def pending_order(seed):
    kettle = await seed(make_product("Kettle", "50.00", stock=5))
    return await seed(make_order([(kettle, 2, None)]))


# ----------------------------------------------------------------------
# Admin update
# ----------------------------------------------------------------------


async def test_quote_with_item_edits(service, pending_order):
    item_id = pending_order.items[0].id

    updated = await service.update_order(
        ADMIN,
        pending_order.id,
        {
            "status": "CUSTOMER_PENDING",
            "statusNote": "Adjusted for bulk",
            "items": [{"id": item_id, "price": "45.00", "priceNote": "bulk"}],
        },
    )

    item = updated.items[0]
    assert updated.status == OrderStatus.CUSTOMER_PENDING
    assert updated.items_edited is True
    assert item.price == Decimal("45.00")
    assert item.original_values == {"price": {"value": 50.0, "note": "bulk"}}

    history = await history_for(service, pending_order.id)
    assert [(h.new_status, h.note) for h in history] == [(OrderStatus.CUSTOMER_PENDING, "Adjusted for bulk")]


async def test_accept_with_item_changes_is_rolled_back(service, pending_order):
    item_id = pending_order.items[0].id

    with pytest.raises(IllegalTransitionError) as exc_info:
        await service.update_order(
            ADMIN, pending_order.id, {"status": "ACCEPTED", "items": [{"id": item_id, "quantity": 5}]}
        )

    assert exc_info.value.details == {
        "current_status": "PENDING",
        "requested_status": "ACCEPTED",
        "actor_role": "ADMIN",
    }
    order = await service.get_order(ADMIN, pending_order.id)
    assert order.items[0].quantity == 2
    assert order.items_edited is False


async def test_generic_path_cannot_cancel_accepted_order(service, seed):
    kettle = await seed(make_product("Kettle", stock=5))
    order = await seed(make_order([(kettle, 1, None)], status=OrderStatus.ACCEPTED))

    with pytest.raises(InvariantViolation):
        await service.update_order(ADMIN, order.id, {"status": "CANCELLED"})

    assert (await service.get_order(ADMIN, order.id)).status == OrderStatus.ACCEPTED


async def test_accepted_order_can_be_completed(service, seed):
    kettle = await seed(make_product("Kettle", stock=5))
    order = await seed(make_order([(kettle, 1, None)], status=OrderStatus.ACCEPTED))

    updated = await service.update_order(ADMIN, order.id, {"status": "COMPLETED"})

    assert updated.status == OrderStatus.COMPLETED


async def test_same_status_is_not_a_transition(service, pending_order):
    updated = await service.update_order(
        ADMIN,
        pending_order.id,
        {"status": "PENDING", "adminDiscount": "5", "adminDiscountReason": "loyal customer"},
    )

    assert updated.status == OrderStatus.PENDING
    assert updated.admin_discount == Decimal("5")
    assert updated.admin_discount_reason == "loyal customer"
    assert await history_for(service, pending_order.id) == []


async def test_returned_orders_stay_readable(service, pending_order):
    updated = await service.update_order(ADMIN, pending_order.id, {"status": "CUSTOMER_PENDING"})
    fetched = await service.get_order(ADMIN, pending_order.id)
    listed = await service.list_orders(CUSTOMER)

    assert updated.status == OrderStatus.CUSTOMER_PENDING
    assert updated.items[0].price == Decimal("50.00")
    assert fetched.recipient_name == "Jane Doe"
    assert fetched.items[0].quantity == 2
    assert [(o.id, o.status) for o in listed] == [(pending_order.id, OrderStatus.CUSTOMER_PENDING)]


async def test_item_changes_refused_outside_editable_statuses(
service, seed):
    kettle = await seed(make_product("Kettle", stock=5))
    order = await seed(make_order([(kettle, 1, None)], status=OrderStatus.CUSTOMER_PENDING))

    with pytest.raises(ValidationError):
        await service.update_order(ADMIN, order.id, {"items": [{"id": order.items[0].id, "quantity": 3}]})


async def test_invalid_payload_reports_fields(service, pending_order):
    with pytest.raises(ValidationError) as exc_info:
        await service.update_order(
            ADMIN, pending_order.id, {"items": [{"id": pending_order.items[0].id, "quantity": 0}]}
        )

    fields = [error["field"] for error in exc_info.value.details["errors"]]
    assert fields == ["items.0.quantity"]


async def test_unknown_product_rejects_whole_request(service, pending_order):
    with pytest.raises(NotFoundError):
        await service.update_order(
            ADMIN,
            pending_order.id,
            {
                "items": [{"id": pending_order.items[0].id, "quantity": 4}],
                "newItems": [{"productId": "nope", "quantity": 1, "price": "1"}],
            },
        )

    order = await service.get_order(ADMIN, pending_order.id)
    assert order.items[0].quantity == 2


async def test_unknown_item_ids_are_skipped(service, pending_order):
    updated = await service.update_order(
        ADMIN,
        pending_order.id,
        {"items": [{"id": "ghost", "quantity": 3}], "removedItemIds": ["ghost"]},
    )

    assert len(updated.items) == 1
    assert updated.items_edited is False


async def test_admin_adds_and_removes_items(service, seed, pending_order):
    mug = await seed(make_product("Mug", "19.99", stock=3))

    updated = await service.update_order(
        ADMIN,
        pending_order.id,
        {
            "newItems": [{"productId": mug.id, "quantity": 1, "price": "19.99"}],
            "removedItemIds": [pending_order.items[0].id],
        },
    )

    assert [item.product_id for item in updated.items] == [mug.id]
    added = updated.items[0]
    assert added.admin_added is True
    assert added.price_edited is False
    assert updated.items_edited is True


async def test_duplicate_new_items_become_one_line(service, seed, pending_order):
    mug = await seed(make_product("Mug", "8.00", stock=5))

    updated = await service.update_order(
        ADMIN,
        pending_order.id,
        {
            "newItems": [
                {"productId": mug.id, "quantity": 1, "price": "8.00"},
                {"productId": mug.id, "quantity": 2, "price": "7.50"},
            ]
        },
    )

    mugs = [item for item in updated.items if item.product_id == mug.id]
    assert len(mugs) == 1
    assert mugs[0].quantity == 3
    assert mugs[0].price == Decimal("8.00")
    assert mugs[0].quantity_edited is False
    assert mugs[0].original_values is None


async def test_archived_product_cannot_be_added(
service, seed, pending_order):
    old = await seed(make_product("Old", stock=3, is_archived=True))

    with pytest.raises(ConflictError):
        await service.update_order(
            ADMIN, pending_order.id, {"newItems": [{"productId": old.id, "quantity": 1, "price": "1"}]}
        )


async def test_customers_cannot_use_admin_update(service, pending_order):
    with pytest.raises(InvariantViolation):
        await service.update_order(CUSTOMER, pending_order.id, {"status": "REJECTED"})


async def test_missing_order(service):
    with pytest.raises(NotFoundError):
        await service.update_order(ADMIN, "missing", {"status": "REJECTED"})


# ----------------------------------------------------------------------
# Cancellation
# ----------------------------------------------------------------------


async def test_cancel_with_stock_restoration(service, seed, fetch_product):
    kettle = await seed(make_product("Kettle", stock=3))
    order = await seed(make_order([(kettle, 2, None)], status=OrderStatus.ACCEPTED))

    updated = await service.cancel_order(ADMIN, order.id, {"restoreStock": True})

    assert updated.status == OrderStatus.CANCELLED
    assert (await fetch_product(kettle.id)).stock == 5
    history = await history_for(service, order.id)
    assert history[0].note == "Order cancelled with stock restoration"


async def test_cancel_without_stock_restoration(service, seed, fetch_product):
    kettle = await seed(make_product("Kettle", stock=3))
    order = await seed(make_order([(kettle, 2, None)], status=OrderStatus.ACCEPTED))

    await service.cancel_order(ADMIN, order.id, {"restoreStock": False, "note": "Customer unreachable"})

    assert (await fetch_product(kettle.id)).stock == 3
    history = await history_for(service, order.id)
    assert history[0].note == "Customer unreachable"


async def test_cancel_releases_promo_usage(service, seed, fetch_promo):
    promo = await seed(make_promo("TAKE5", "FLAT", amount="5", used_count=1))
    kettle = await seed(make_product("Kettle", stock=3))
    order = await seed(
        make_order(
            [(kettle, 1, None)],
            status=OrderStatus.ACCEPTED,
            promo_code_id=promo.id,
            promo_discount=Decimal("5"),
        )
    )

    updated = await service.cancel_order(ADMIN, order.id, {"restoreStock": True})

    assert updated.promo_code_id is None
    assert updated.promo_discount is None
    assert (await fetch_promo(promo.id)).used_count == 0


async def test_cancel_requires_accepted_order(service, pending_order):
    with pytest.raises(IllegalTransitionError):
        await service.cancel_order(ADMIN, pending_order.id, {"restoreStock": True})


# ----------------------------------------------------------------------
# Promo codes
# ----------------------------------------------------------------------


async def test_apply_and_remove_promo(service, seed, pending_order):
    await seed(make_promo("TAKE10", "PERCENTAGE", percent="10"))

    applied = await service.apply_promo_code(ADMIN, pending_order.id, {"code": "TAKE10"})
    assert applied.promo_code_id is not None
    assert applied.promo_discount is None

    totals = await service.get_totals(CUSTOMER, pending_order.id)
    assert totals.subtotal == Decimal("100.00")
    assert totals.promo_discount == Decimal("10.00")
    assert totals.total == Decimal("90.00")
    assert totals.promo_estimated is True

    with pytest.raises(ConflictError):
        await service.apply_promo_code(ADMIN, pending_order.id, {"code": "TAKE10"})

    removed = await service.remove_promo_code(ADMIN, pending_order.id)
    assert removed.promo_code_id is None
    assert (await service.get_totals(CUSTOMER, pending_order.id)).promo_discount == Decimal("0")
    assert await history_for(service, pending_order.id) == []


async def test_apply_invalid_promo(service, pending_order):
    with pytest.raises(ValidationError) as exc_info:
        await service.apply_promo_code(ADMIN, pending_order.id, {"code": "NOPE"})
    assert exc_info.value.message == "Invalid or inactive promo code"


async def test_promo_reserved_for_someone_else(service, seed, pending_order):
    promo = await seed(make_promo("VIP", "FLAT", amount="5"))
    await seed(UserPromoCode(user_id=OTHER_CUSTOMER.id, promo_code_id=promo.id, is_exclusive=True))

    with pytest.raises(ValidationError) as exc_info:
        await service.apply_promo_code(ADMIN, pending_order.id, {"code": "VIP"})
    assert "exclusively reserved" in exc_info.value.message


async def test_remove_promo_without_one(service, pending_order):
    with pytest.raises(ValidationError):
        await service.remove_promo_code(ADMIN, pending_order.id)


# ----------------------------------------------------------------------
# Customer flows
# ----------------------------------------------------------------------


async def test_place_order(service, seed):
    kettle = await seed(
        make_product("Kettle", "50.00", stock=5, discount_type="FLAT", discount_amount=Decimal("5"))
    )

    order = await service.place_order(
        CUSTOMER,
        {
            "recipientName": "Jane Doe",
            "phone": "555-0100",
            "shippingAddress": "1 Main St",
            "items": [{"productId": kettle.id, "quantity": 1}, {"productId": kettle.id, "quantity": 1}],
        },
    )

    assert order.status == OrderStatus.PENDING
    assert order.payment_method == PaymentMethod.CASH
    assert order.user_id == CUSTOMER.id
    assert [(item.quantity, item.price) for item in order.items] == [(2, Decimal("45.00"))]
    assert order.savings == Decimal("10.00")


async def test_place_order_with_hidden_price_needs_admin(service, seed):
    quote = await seed(make_product("Custom sofa", "900", stock=1, hide_price=True))

    order = await service.place_order(
        CUSTOMER,
        {
            "recipientName": "Jane Doe",
            "phone": "555-0100",
            "shippingAddress": "1 Main St",
            "items": [{"productId": quote.id, "quantity": 1}],
        },
    )

    assert order.status == OrderStatus.ADMIN_PENDING
    assert order.payment_method == PaymentMethod.PENDING


@pytest.mark.parametrize(
    "product_kwargs,quantity",
    [({"stock": 1}, 2), ({"is_archived": True}, 1), ({"is_public": False}, 1)],
)
async def test_place_order_refuses_unavailable_products(service, seed, product_kwargs, quantity):
    product = await seed(make_product("Kettle", **product_kwargs))

    with pytest.raises(ConflictError):
        await service.place_order(
            CUSTOMER,
            {
                "recipientName": "Jane Doe",
                "phone": "555-0100",
                "shippingAddress": "1 Main St",
                "items": [{"productId": product.id, "quantity": quantity}],
            },
        )


async def test_place_order_with_empty_cart(service):
    with pytest.raises(ValidationError):
        await service.place_order(
            CUSTOMER, {"recipientName": "Jane", "phone": "1", "shippingAddress": "x", "items": []}
        )


async def test_customer_approves_quote(service, seed):
    kettle = await seed(make_product("Kettle", stock=5))
    order = await seed(
        make_order(
            [(kettle, 1, None)],
            status=OrderStatus.CUSTOMER_PENDING,
            items_edited=True,
            payment_method=PaymentMethod.PENDING,
        )
    )

    updated = await service.customer_respond(CUSTOMER, order.id, {"status": "PENDING", "note": "ok"})

    assert updated.status == OrderStatus.PENDING
    assert updated.items_edited is False
    assert updated.payment_method == PaymentMethod.CASH
    history = await history_for(service, order.id)
    assert [(h.new_status, h.created_by_id) for h in history] == [(OrderStatus.PENDING, CUSTOMER.id)]


async def test_customer_cannot_accept_directly(service, seed):
    kettle = await seed(make_product("Kettle", stock=5))
    order = await seed(make_order([(kettle, 1, None)], status=OrderStatus.CUSTOMER_PENDING))

    with pytest.raises(IllegalTransitionError):
        await service.customer_respond(CUSTOMER, order.id, {"status": "ACCEPTED"})


async def test_customer_cannot_cancel_accepted_order(service, seed):
    kettle = await seed(make_product("Kettle", stock=5))
    order = await seed(make_order([(kettle, 1, None)], status=OrderStatus.ACCEPTED))

    with pytest.raises(IllegalTransitionError):
        await service.customer_respond(CUSTOMER, order.id, {"status": "CANCELLED"})

    assert (await service.get_order(CUSTOMER, order.id)).status == OrderStatus.ACCEPTED


async def test_other_customers_orders_are_invisible(
service, pending_order):
    with pytest.raises(NotFoundError):
        await service.get_order(OTHER_CUSTOMER, pending_order.id)
    with pytest.raises(NotFoundError):
        await service.customer_respond(OTHER_CUSTOMER, pending_order.id, {"status": "REJECTED"})

    assert (await service.get_order(CUSTOMER, pending_order.id)).id == pending_order.id


async def test_list_orders(service, seed, pending_order):
    kettle = await seed(make_product("Kettle", stock=5))
    await seed(make_order([(kettle, 1, None)], user_id=OTHER_CUSTOMER.id))

    assert [o.id for o in await service.list_orders(CUSTOMER)] == [pending_order.id]
    assert await service.list_orders(CUSTOMER, OrderStatus.ACCEPTED) == []


async def test_customer_edits_quote_and_submits(service, seed):
    kettle, mug = await seed(make_product("Kettle", stock=5), make_product("Mug", "8.00", stock=5))
    order = await seed(make_order([(kettle, 3, None)], status=OrderStatus.CUSTOMER_PENDING, items_edited=True))

    updated = await service.customer_update_items(
        CUSTOMER,
        order.id,
        {
            "items": [{"id": order.items[0].id, "quantity": 1}],
            "newItems": [{"productId": mug.id, "quantity": 2}],
            "acceptChanges": True,
        },
    )

    assert updated.status == OrderStatus.PENDING
    assert updated.items_edited is False
    assert sorted((item.product_id, item.quantity) for item in updated.items) == sorted(
        [(kettle.id, 1), (mug.id, 2)]
    )
    history = await history_for(service, order.id)
    assert history[0].note == "Customer approved changes and submitted order"


async def test_customer_duplicate_new_items_become_one_line(service, seed):
    kettle, mug = await seed(make_product("Kettle", stock=5), make_product("Mug", "8.00", stock=5))
    order = await seed(make_order([(kettle, 1, None)], status=OrderStatus.CUSTOMER_PENDING))

    updated = await service.customer_update_items(
        CUSTOMER,
        order.id,
        {"newItems": [{"productId": mug.id, "quantity": 1}, {"productId": mug.id, "quantity": 2}]},
    )

    mugs = [item for item in updated.items if item.product_id == mug.id]
    assert [(item.quantity, item.quantity_edited, item.original_values) for item in mugs] == [(3, False, None)]


async def test_customer_cannot_touch_admin_added_items(
service, seed, session_factory):
    kettle = await seed(make_product("Kettle", stock=5))
    order = make_order([(kettle, 1, None)], status=OrderStatus.CUSTOMER_PENDING)
    order.items[0].admin_added = True
    order = await seed(order)

    with pytest.raises(ConflictError):
        await service.customer_update_items(
            CUSTOMER, order.id, {"items": [{"id": order.items[0].id, "removed": True}]}
        )

    async with UnitOfWork(session_factory) as uow:
        assert len((await uow.orders.get_with_items(order.id)).items) == 1


async def test_customer_adding_hidden_price_item_goes_to_admin(service, seed):
    kettle, sofa = await seed(
        make_product("Kettle", stock=5), make_product("Sofa", "900", stock=1, hide_price=True)
    )
    order = await seed(make_order([(kettle, 1, None)], status=OrderStatus.CUSTOMER_PENDING))

    updated = await service.customer_update_items(
        CUSTOMER, order.id, {"newItems": [{"productId": sofa.id, "quantity": 1}], "note": "add sofa"}
    )

    assert updated.status == OrderStatus.ADMIN_PENDING
    history = await history_for(service, order.id)
    assert history[0].note == "Customer submitted order for admin price review: add sofa"


async def test_customer_item_edits_need_customer_pending(service, pending_order):
    with pytest.raises(ValidationError):
        await service.customer_update_items(
            CUSTOMER, pending_order.id, {"items": [{"id": pending_order.items[0].id, "quantity": 1}]}
        )
