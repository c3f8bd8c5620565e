from dataclasses import dataclass

from flask import current_app

import order_status
from errors import ConflictError, NotFoundError, ValidationError
from menu_service import MenuService
from order_service import OrderService
from restaurant_service import RestaurantService
from staff_service import StaffService
from table_service import TableService

EXTENSION_KEY = "tablemenu"


@dataclass
class Services:
    store: object
    identity: object
    orders: OrderService
    tables: TableService
    menu: MenuService
    restaurants: RestaurantService
    staff: StaffService
    public_base_url: str = "http://localhost:5000"
    image_folder: str = "menu-items"

    @classmethod
    def build(cls, store, identity, invite_ttl_days: int = 7, default_tax_rate: float = 0, **settings) -> "Services":
        return cls(
            store=store,
            identity=identity,
            orders=OrderService(store),
            tables=TableService(store),
            menu=MenuService(store),
            restaurants=RestaurantService(store, default_tax_rate=default_tax_rate),
            staff=StaffService(store, invite_ttl_days=invite_ttl_days),
            **settings,
        )

    def place_table_order(
        self,
        restaurant,
        table_number: str,
        cart_items,
        notes=None,
        customer_name=None,
        customer_phone=None,
    ) -> str:
        """
        Place a customer order for a table.

        The order is priced with the restaurant's tax rate and service charge,
        added to the table's open session (one is started if needed) and set
        as the table's current order.
        """
        settings = restaurant.settings
        if not settings.accepts_orders:
            raise ConflictError(f"{restaurant.name} is not accepting orders")
        if not cart_items:
            raise ValidationError("Your cart is empty.")

        table = self.tables.get_table_by_number(restaurant.id, table_number)
        if table is None and settings.requires_table_number:
            raise NotFoundError("Table", str(table_number))

        session_id = None
        if table is not None:
            session = self.tables.get_active_session(table.id)
            session_id = session.id if session else self.tables.start_table_session(
                table.id, restaurant.id, table.table_number
            )

        order_id = self.orders.create_order(
            restaurant.id,
            table_number,
            cart_items,
            notes=notes,
            tax_rate=settings.tax_rate,
            service_charge=settings.service_charge or 0,
            customer_name=customer_name,
            customer_phone=customer_phone,
            table_id=table.id if table else None,
            session_id=session_id,
        )

        if table is not None:
            self.tables.add_order_to_session(session_id, order_id)
            self.tables.assign_order_to_table(table.id, order_id)
        return order_id

    def release_table(self, order) -> None:
        """Put the order's table into cleaning once the order is finished."""
        if not order.table_id or not order_status.is_terminal(order.status):
            return
        table = self.tables.get_table(order.table_id)
        if table is not None and table.current_order_id == order.id:
            self.tables.clear_table(table.id)


def current_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
