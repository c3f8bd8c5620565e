from conftest import PASSWORD


def _table_url(path=""):
    return f"/r/la-maison/table/1{path}"


def test_menu_page(client, seed):
    resp = client.get(_table_url())
    assert resp.status_code == 200
    page = resp.get_data(as_text=True)
    assert "Burger" in page
    assert "Soup" not in page


def test_unknown_restaurant_redirects_home(client, seed):
    resp = client.get("/r/nowhere/table/1")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/")


def test_cart_and_checkout(client, seed, services):
    burger = seed["items"]["burger"]
    client.post(_table_url(f"/cart/add/{burger}"), data={"quantity": "2"})
    client.post(_table_url(f"/cart/add/{seed['items']['fries']}"), data={"variant": "Large", "addons": ["Cheese"]})
    client.post(_table_url(f"/cart/update/{burger}"), data={"action": "dec"})

    cart_page = client.get(_table_url("/cart")).get_data(as_text=True)
    # 10 + (5 + 2 + 1.5) = 18.50, tax 1.85, service 2
    assert "18.50" in cart_page
    assert "22.35" in cart_page

    resp = client.post(_table_url("/checkout"), data={"notes": "window seat"})
    assert resp.status_code == 302
    order_id = resp.headers["Location"].rsplit("/", 1)[1]

    order = services.orders.get_order(order_id)
    assert order.notes == "window seat"
    assert order.subtotal == 18.5
    assert [(i.name, i.quantity) for i in order.items] == [("Burger", 1), ("Fries", 1)]

    assert "Your cart is empty." in client.get(_table_url("/cart")).get_data(as_text=True)
    assert client.get(f"/orders/{order_id}").status_code == 200


def test_checkout_empty_cart(client, seed):
    resp = client.post(_table_url("/checkout"))
    assert resp.headers["Location"].endswith(_table_url("/cart"))


def test_unavailable_item_not_added(client, seed):
    client.post(_table_url(f"/cart/add/{seed['items']['soup']}"))
    assert "Your cart is empty." in client.get(_table_url("/cart")).get_data(as_text=True)


def test_remove_from_cart(client, seed):
    burger = seed["items"]["burger"]
    client.post(_table_url(f"/cart/add/{burger}"))
    client.post(_table_url(f"/cart/remove/{burger}"))
    assert "Your cart is empty." in client.get(_table_url("/cart")).get_data(as_text=True)


def test_cart_keeps_variant_lines_apart(client, seed, services):
    fries = seed["items"]["fries"]
    client.post(_table_url(f"/cart/add/{fries}"), data={"variant": "Large"})
    client.post(_table_url(f"/cart/add/{fries}"))
    assert "12.00" in client.get(_table_url("/cart")).get_data(as_text=True)

    client.post(_table_url(f"/cart/remove/{fries}"))
    order_id = client.post(_table_url("/checkout")).headers["Location"].rsplit("/", 1)[1]
    order = services.orders.get_order(order_id)
    assert [(i.name, i.price) for i in order.items] == [("Fries", 7)]


def test_dashboard_advance(client, seed, services):
    burger = seed["items"]["burger"]
    client.post(_table_url(f"/cart/add/{burger}"))
    order_id = client.post(_table_url("/checkout")).headers["Location"].rsplit("/", 1)[1]

    client.post("/staff/login", data={"email": "chef@lamaison.test", "password": PASSWORD})
    page = client.get("/staff").get_data(as_text=True)
    assert "Mark confirmed" in page

    client.post(f"/staff/orders/{order_id}/advance")
    assert services.orders.get_order(order_id).status == "confirmed"


def test_dashboard_requires_login(client, seed):
    resp = client.get("/staff")
    assert resp.headers["Location"].endswith("/staff/login")
