from decimal import Decimal

import pytest

from storefront.errors import InvalidStateError, NotFoundError
from storefront.models import CartItem, Order, OrderStatus
from storefront.orders import OrderService, can_transition, generate_order_number, transition_order


@pytest.fixture
def service(catalog, settings):
    return OrderService(catalog, settings)


def place_order(service, items=None, notes=None):
    items = items or [{"product_id": "prod-1", "quantity": 2}, {"product_id": "prod-2", "quantity": 1}]
    return service.create_order("user-1", "addr-1", items, notes)


def mark_paid(db, order):
    """Move the order the way a completed checkout does."""
    assert transition_order(order, OrderStatus.PROCESSING)
    db.commit()

def test_create_order_over_free_shipping_threshold(service):
    """Subtotal 200 ships free and pays 10% tax."""
    order = place_order(service, items=[{"product_id": "prod-1", "quantity": 2}, {"product_id": "prod-2", "quantity": 2}])

    assert order.subtotal == Decimal("200.00")
    assert order.shipping_cost == Decimal("0.00")
    assert order.tax == Decimal("20.00")
    assert order.total == Decimal("220.00")
    assert order.total == order.subtotal + order.tax + order.shipping_cost
    assert order.status == OrderStatus.PENDING
    assert order.shipping_address.id == "addr-1"


def test_create_order_under_threshold_pays_flat_shipping(service):
    order = place_order(service, items=[{"product_id": "prod-2", "quantity": 3}])

    assert order.subtotal == Decimal("60.00")
    assert order.shipping_cost == Decimal("10.00")
    assert order.tax == Decimal("6.00")
    assert order.total == Decimal("76.00")


def test_subtotal_of_exactly_100_is_not_free(service):
    order = place_order(service, items=[{"product_id": "prod-2", "quantity": 5}])

    assert order.shipping_cost == Decimal("10.00")


def test_items_snapshot_current_price(service, catalog):
    order = place_order(service)

    first, second = order.items
    assert (first.product_id, first.quantity, first.price, first.total) == ("prod-1", 2, Decimal("80.00"), Decimal("160.00"))
    assert (second.product_id, second.quantity, second.total) == ("prod-2", 1, Decimal("20.00"))

    # later catalogue changes do not touch the order
    first.product.price = Decimal("999.00")
    catalog.commit()
    catalog.refresh(first)
    assert first.price == Decimal("80.00")


def test_create_order_clears_cart(service, catalog):
    place_order(service)

    assert catalog.query(CartItem).count() == 0


def test_inactive_product_rolls_back_everything(service, catalog):
    with pytest.raises(InvalidStateError, match='Product "Old Monitor" is not available'):
        place_order(service, items=[{"product_id": "prod-1", "quantity": 1}, {"product_id": "prod-3", "quantity": 1}])

    assert catalog.query(Order).count() == 0
    assert catalog.query(CartItem).count() == 2


def test_unknown_product(service):
    with pytest.raises(NotFoundError, match="Product with ID nope not found"):
        place_order(service, items=[{"product_id": "nope", "quantity": 1}])


def test_address_must_belong_to_user(service):
    with pytest.raises(NotFoundError, match="Shipping address not found"):
        service.create_order("user-1", "addr-2", [{"product_id": "prod-1", "quantity": 1}])


def test_order_number_format():
    number = generate_order_number()
    prefix, millis, suffix = number.split("-")

    assert prefix == "ORD"
    assert millis.isdigit()
    assert len(suffix) == 3 and suffix.isdigit()


def test_order_number_collision_is_retried(service, mocker):
    first = place_order(service)
    mocker.patch(
        "storefront.orders.generate_order_number",
        side_effect=[first.order_number, "ORD-1700000000000-042"],
    )

    second = place_order(service)

    assert second.order_number == "ORD-1700000000000-042"


def test_orders_are_scoped_to_owner(service):
    order = place_order(service)

    assert service.get_order("user-1", order.id).id == order.id
    assert service.get_order_by_number("user-1", order.order_number).id == order.id
    assert [o.id for o in service.list_orders("user-1")] == [order.id]
    assert service.list_orders("user-2") == []
    with pytest.raises(NotFoundError, match="Order not found"):
        service.get_order("user-2", order.id)
    with pytest.raises(NotFoundError):
        service.get_order_by_number("user-2", order.order_number)


def test_update_pending_order(service, catalog):
    order = place_order(service)

    updated = service.update_order("user-1", order.id, notes="Leave at the door")

    assert updated.notes == "Leave at the door"
    with pytest.raises(NotFoundError, match="Shipping address not found"):
        service.update_order("user-1", order.id, shipping_address_id="addr-2")


def test_only_pending_orders_can_be_modified(service, catalog):
    order = place_order(service)
    mark_paid(catalog, order)

    with pytest.raises(InvalidStateError, match="Only pending orders can be modified"):
        service.update_order("user-1", order.id, notes="too late")


def test_cancel_pending_and_processing(service, catalog):
    pending = place_order(service)
    assert service.cancel_order("user-1", pending.id).status == OrderStatus.CANCELLED

    processing = place_order(service)
    mark_paid(catalog, processing)
    assert service.cancel_order("user-1", processing.id).status == OrderStatus.CANCELLED

    with pytest.raises(InvalidStateError, match="Only pending or processing orders can be cancelled"):
        service.cancel_order("user-1", pending.id)


def test_cancelled_is_terminal(service):
    order = place_order(service)
    service.cancel_order("user-1", order.id)

    with pytest.raises(InvalidStateError, match="Cannot change order status from CANCELLED to COMPLETED"):
        service.update_status("user-1", order.id, OrderStatus.COMPLETED)


def test_state_machine():
    assert can_transition(OrderStatus.PENDING, OrderStatus.PROCESSING)
    assert can_transition(OrderStatus.PROCESSING, OrderStatus.REFUNDED)
    assert not can_transition(OrderStatus.PENDING, OrderStatus.REFUNDED)
    assert not can_transition(OrderStatus.COMPLETED, OrderStatus.CANCELLED)
    assert not can_transition(OrderStatus.REFUNDED, OrderStatus.PROCESSING)


@pytest.mark.parametrize("status", [OrderStatus.PROCESSING, OrderStatus.REFUNDED])
def test_payment_driven_statuses_cannot_be_set_directly(service, catalog, status):
    order = place_order(service)
    if status == OrderStatus.REFUNDED:
        mark_paid(catalog, order)
    before = order.status

    with pytest.raises(InvalidStateError, match=f"Order status {status.value} is set by payment events"):
        service.update_status("user-1", order.id, status)

    catalog.refresh(order)
    assert order.status == before


def test_paid_order_can_be_completed(service, catalog):
    order = place_order(service)
    mark_paid(catalog, order)

    assert service.update_status("user-1", order.id, OrderStatus.COMPLETED).status == OrderStatus.COMPLETED


@pytest.mark.parametrize("quantity", [2.7, "2", True])
def test_quantity_must_be_an_integer(service, catalog, quantity):
    with pytest.raises(InvalidStateError, match="Quantity must be a positive integer"):
        place_order(service, items=[{"product_id": "prod-1", "quantity": quantity}])

    assert catalog.query(Order).count() == 0
