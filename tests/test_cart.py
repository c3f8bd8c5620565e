import pytest

from cart import Cart, cart_items_from_lines
from errors import NotFoundError, ValidationError
from schemas import Addon, MenuItem, Variant


def _menu_item(item_id, price, **kwargs):
    return MenuItem(id=item_id, restaurant_id="r", name=item_id, price=price, category_id="c", **kwargs)


def test_add_merges_same_item_and_options():
    cart = Cart()
    burger = _menu_item("burger", 10)
    cart.add_item(burger)
    cart.add_item(burger, 2)
    assert cart.total_items == 3
    assert len(cart.items) == 1
    assert cart.subtotal == 30


def test_update_quantity_to_zero_removes():
    cart = Cart()
    cart.add_item(_menu_item("burger", 10), 2)
    cart.update_quantity("burger", 0)
    assert cart.is_empty


def test_notes_and_totals():
    cart = Cart()
    line = cart.add_item(_menu_item("fries", 5), 1, variant=Variant(name="Large", price_modifier=2),
                         addons=[Addon(name="Cheese", price=1)])
    cart.update_notes(line, "extra salt")
    assert cart.items[0].notes == "extra salt"
    assert cart.subtotal == 8
    assert cart.calculate_total(tax_rate=10, service_charge=2) == pytest.approx(10.8)


def test_options_keep_separate_lines():
    cart = Cart()
    fries = _menu_item("fries", 5)
    large = cart.add_item(fries, variant=Variant(name="Large", price_modifier=2))
    plain = cart.add_item(fries)
    assert large != plain
    assert plain == "fries"
    assert len(cart.items) == 2
    assert cart.subtotal == 12

    cart.add_item(fries, variant=Variant(name="Large", price_modifier=2))
    assert [i.quantity for i in cart.items] == [2, 1]

    cart.update_quantity(large, 0)
    assert [i.line_id for i in cart.items] == ["fries"]
    assert cart.subtotal == 5


def test_addon_order_does_not_split_lines():
    cart = Cart()
    fries = _menu_item("fries", 5)
    cheese, bacon = Addon(name="Cheese", price=1), Addon(name="Bacon", price=2)
    cart.add_item(fries, addons=[cheese, bacon])
    cart.add_item(fries, addons=[bacon, cheese])
    assert len(cart.items) == 1
    assert cart.total_items == 2


def test_session_round_trip():
    cart = Cart()
    cart.add_item(_menu_item("fries", 5), 2, variant=Variant(name="Large", price_modifier=2))
    restored = Cart(cart.to_session())
    assert restored.total_items == 2
    assert restored.items[0].selected_variant.name == "Large"
    assert restored.subtotal == cart.subtotal


def test_clear():
    cart = Cart()
    cart.add_item(_menu_item("burger", 10))
    cart.remove_item("missing")
    assert not cart.is_empty
    cart.clear()
    assert cart.total_items == 0


class FakeMenu:
    def __init__(self, *items):
        self.items = {i.id: i for i in items}

    def get_menu_item(self, item_id):
        return self.items.get(item_id)


def test_lines_use_stored_prices():
    menu = FakeMenu(_menu_item("fries", 5, addons=[Addon(name="Cheese", price=1.5)]))
    (item,) = cart_items_from_lines(menu, "r", [{"id": "fries", "quantity": 2, "addons": ["Cheese"], "price": 0}])
    assert item.price == 5
    assert item.quantity == 2
    assert item.selected_addons[0].name == "Cheese"


def test_lines_reject_other_restaurant():
    menu = FakeMenu(MenuItem(id="x", restaurant_id="other", name="x", price=1, category_id="c"))
    with pytest.raises(NotFoundError):
        cart_items_from_lines(menu, "r", [{"id": "x"}])


@pytest.mark.parametrize("line", [
    {"id": ""},
    {"id": "fries", "quantity": 0},
    {"id": "fries", "quantity": "many"},
    {"id": "fries", "variant": "Huge"},
    {"id": "fries", "addons": ["Gravy"]},
    {"id": "soup"},
])
def test_lines_validation(line):
    menu = FakeMenu(_menu_item("fries", 5), _menu_item("soup", 6, available=False))
    with pytest.raises(ValidationError):
        cart_items_from_lines(menu, "r", [line])
