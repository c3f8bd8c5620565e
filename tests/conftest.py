"""
Shared fixtures: the app runs on an in-memory SQLite document store with
local password accounts, seeded with one restaurant, its menu, tables and staff.
"""

import pytest

from app import create_app
from permissions import Role
from schemas import Addon, Category, MenuItem, Restaurant, RestaurantSettings, Staff, Variant
from services import EXTENSION_KEY
from sql_db import SqlStore

PASSWORD = "correct-horse"

TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "test-secret",
    "LOCAL_DB": True,
    "AUTH_PROVIDER": "local",
    "CLOUDINARY_CLOUD_NAME": "demo",
    "CLOUDINARY_API_KEY": "key",
    "CLOUDINARY_API_SECRET": "secret",
    "PUBLIC_BASE_URL": "https://example.com",
    "STAFF_INVITE_TTL_DAYS": 7,
    "DEFAULT_TAX_RATE": 0.0,
    "LOG_LEVEL": "WARNING",
}


@pytest.fixture
def store():
    store = SqlStore("sqlite://").open()
    yield store
    store.close()


@pytest.fixture
def app(store):
    return create_app(TEST_CONFIG, store=store)


@pytest.fixture
def services(app):
    return app.extensions[EXTENSION_KEY]


@pytest.fixture
def client(app):
    return app.test_client()


def _add_staff(services, restaurant_id, email, name, role, approved=True):
    staff_id = services.staff.create_staff(Staff(
        restaurant_id=restaurant_id,
        email=email,
        name=name,
        role=role,
        is_approved=approved,
    ))
    services.identity.set_password(staff_id, PASSWORD)
    return staff_id


@pytest.fixture
def seed(services):
    restaurant_id = services.restaurants.create_restaurant(Restaurant(
        name="La Maison",
        slug="la-maison",
        settings=RestaurantSettings(tax_rate=10, service_charge=2),
    ))
    mains = services.menu.create_category(Category(restaurant_id=restaurant_id, name="Mains", order=1))
    sides = services.menu.create_category(Category(restaurant_id=restaurant_id, name="Sides", order=2))

    burger = services.menu.create_menu_item(MenuItem(
        restaurant_id=restaurant_id, name="Burger", price=10, category_id=mains,
    ))
    fries = services.menu.create_menu_item(MenuItem(
        restaurant_id=restaurant_id,
        name="Fries",
        price=5,
        category_id=sides,
        variants=[Variant(name="Large", price_modifier=2)],
        addons=[Addon(name="Cheese", price=1.5)],
    ))
    soup = services.menu.create_menu_item(MenuItem(
        restaurant_id=restaurant_id, name="Soup", price=6, category_id=mains, available=False,
    ))

    table_ids = services.tables.bulk_create_tables(restaurant_id, 1, 3)

    return {
        "restaurant_id": restaurant_id,
        "slug": "la-maison",
        "categories": {"mains": mains, "sides": sides},
        "items": {"burger": burger, "fries": fries, "soup": soup},
        "tables": dict(zip(["1", "2", "3"], table_ids)),
        "staff": {
            "admin": _add_staff(services, restaurant_id, "admin@lamaison.test", "Ada", Role.ADMIN),
            "kitchen": _add_staff(services, restaurant_id, "chef@lamaison.test", "Carl", Role.KITCHEN),
            "waiter": _add_staff(services, restaurant_id, "wait@lamaison.test", "Wes", Role.WAITER),
            "pending": _add_staff(
                services, restaurant_id, "new@lamaison.test", "Nia", Role.WAITER, approved=False
            ),
        },
    }


def login(client, email):
    return client.post("/api/auth/login", json={"email": email, "password": PASSWORD})


@pytest.fixture
def admin_client(client, seed):
    assert login(client, "admin@lamaison.test").status_code == 200
    return client


@pytest.fixture
def kitchen_client(client, seed):
    assert login(client, "chef@lamaison.test").status_code == 200
    return client


def place(client, slug="la-maison", table="1", items=None, **extra):
    return client.post(
        f"/api/r/{slug}/table/{table}/orders",
        json={"items": items or [], **extra},
    )
