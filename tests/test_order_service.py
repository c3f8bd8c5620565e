import pytest

from errors import InvalidOrderStateError, InvalidTransitionError, NotFoundError
from order_service import OrderService, build_order_items
from schemas import CartItem


def _cart_item(item_id, price, quantity):
    return CartItem(id=item_id, restaurant_id="r", name=item_id, price=price, category_id="c", quantity=quantity)


@pytest.fixture
def orders(store):
    return OrderService(store)


@pytest.fixture
def order_id(orders):
    return orders.create_order(
        "r", "7", [_cart_item("a", 10, 2), _cart_item("b", 5, 1)], tax_rate=10, service_charge=2
    )


def test_create_order_prices(orders, order_id):
    order = orders.get_order(order_id)
    assert order.subtotal == 25
    assert order.tax == pytest.approx(2.5)
    assert order.total == pytest.approx(29.5)
    assert order.tax_rate == 10
    assert order.status == "pending"
    assert order.payment_status == "pending"
    assert [i.status for i in order.items] == ["pending", "pending"]


def test_remove_item_reprices_at_stored_rate(orders, order_id):
    order = orders.remove_order_item(order_id, "b")
    assert [i.id for i in order.items] == ["a"]
    assert order.subtotal == 20
    assert order.tax == pytest.approx(2.0)
    assert order.total == pytest.approx(24.0)
    assert order.service_charge == 2


def test_remove_keeps_totals_consistent(orders, order_id):
    order = orders.remove_order_item(order_id, "a")
    assert order.subtotal == sum(i.price * i.quantity for i in order.items)
    assert order.total == pytest.approx(order.subtotal + order.tax + (order.service_charge or 0) - (order.discount or 0))


def test_remove_last_item(orders, order_id):
    orders.remove_order_item(order_id, "a")
    order = orders.remove_order_item(order_id, "b")
    assert order.items == []
    assert order.total == pytest.approx(2)


def test_remove_unknown_item(orders, order_id):
    with pytest.raises(NotFoundError):
        orders.remove_order_item(order_id, "zzz")


def test_remove_from_finished_order(orders, order_id):
    orders.cancel_order(order_id)
    with pytest.raises(InvalidOrderStateError):
        orders.remove_order_item(order_id, "a")


def test_remove_from_order_without_tax_rate(orders, store):
    # documents written before taxRate was stored
    order_id = store.add("orders", {
        "restaurantId": "r",
        "tableNumber": "1",
        "items": [
            {"id": "a", "menuItemId": "a", "name": "a", "price": 10, "quantity": 2},
            {"id": "b", "menuItemId": "b", "name": "b", "price": 5, "quantity": 1},
        ],
        "subtotal": 25,
        "tax": 2.0,
        "total": 27,
        "status": "pending",
    })
    order = orders.remove_order_item(order_id, "b")
    assert order.tax == pytest.approx(1.6)
    assert order.tax_rate == pytest.approx(8)


def test_status_flow_stamps_once(orders, order_id):
    order = orders.update_order_status(order_id, "confirmed")
    confirmed_at = order.confirmed_at
    assert confirmed_at is not None

    again = orders.update_order_status(order_id, "confirmed")
    assert again.confirmed_at == confirmed_at

    order = orders.advance_order(order_id)
    assert order.status == "preparing"
    assert order.prepared_at is not None


def test_invalid_transition(orders, order_id):
    with pytest.raises(InvalidTransitionError):
        orders.update_order_status(order_id, "served")


def test_advance_finished_order(orders, order_id):
    orders.cancel_order(order_id)
    with pytest.raises(InvalidOrderStateError):
        orders.advance_order(order_id)


def test_item_status(orders, order_id):
    orders.update_order_item_status(order_id, "a", "ready")
    order = orders.get_order(order_id)
    assert {i.id: i.status for i in order.items} == {"a": "ready", "b": "pending"}
    assert order.status == "pending"

    with pytest.raises(NotFoundError):
        orders.update_order_item_status(order_id, "zzz", "ready")


def test_payment_and_kitchen_notes(orders, order_id):
    orders.update_payment_status(order_id, "paid")
    orders.add_kitchen_notes(order_id, "no onions")
    order = orders.get_order(order_id)
    assert order.payment_status == "paid"
    assert order.kitchen_notes == "no onions"


def test_active_and_table_orders(orders, order_id):
    other = orders.create_order("r", "8", [_cart_item("a", 10, 1)])
    orders.cancel_order(other)

    assert [o.id for o in orders.get_active_orders("r")] == [order_id]
    assert [o.id for o in orders.get_table_orders("r", "7")] == [order_id]
    assert [o.id for o in orders.get_restaurant_orders("r", "cancelled")] == [other]
    assert len(orders.get_restaurant_orders("r")) == 2


def test_kitchen_subscription(orders, order_id):
    seen = []
    unsubscribe = orders.subscribe_to_kitchen_orders("r", lambda found: seen.append([o.id for o in found]))
    orders.update_order_status(order_id, "confirmed")
    orders.update_order_status(order_id, "preparing")
    orders.update_order_status(order_id, "ready")
    unsubscribe()
    assert seen == [[], [order_id], [order_id], []]


def test_duplicate_lines_get_unique_ids():
    items = build_order_items([_cart_item("a", 1, 1), _cart_item("a", 1, 2)])
    assert [i.id for i in items] == ["a", "a-2"]
    assert all(i.menu_item_id == "a" for i in items)
