import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

import order_status
from errors import InvalidOrderStateError, NotFoundError
from firestore_db import ORDERS, Unsubscribe
from pricing import calculate_pricing, effective_tax_rate, line_subtotal
from schemas import CartItem, Order, OrderItem, OrderItemStatus, OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _statuses(statuses) -> List[str]:
    return [OrderStatus(s).value for s in statuses]


def build_order_items(cart_items: Sequence[CartItem]) -> List[OrderItem]:
    """Line items for a new order; ids are unique within the order."""
    items = []
    seen: Dict[str, int] = {}
    for cart_item in cart_items:
        item = OrderItem.from_cart_item(cart_item)
        seen[item.id] = seen.get(item.id, 0) + 1
        if seen[item.id] > 1:
            item.id = f"{item.id}-{seen[item.id]}"
        items.append(item)
    return items


class OrderService:
    def __init__(self, store):
        self.store = store

    # -----------------------
    # create / read
    # -----------------------
    def create_order(
        self,
        restaurant_id: str,
        table_number: str,
        cart_items: Sequence[CartItem],
        notes: Optional[str] = None,
        tax_rate: float = 0,
        service_charge: float = 0,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        table_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        items = build_order_items(cart_items)
        pricing = calculate_pricing(line_subtotal(items), tax_rate, service_charge)

        order = Order(
            restaurant_id=restaurant_id,
            table_number=str(table_number),
            table_id=table_id,
            session_id=session_id,
            items=items,
            subtotal=pricing.subtotal,
            tax=pricing.tax,
            tax_rate=tax_rate,
            service_charge=service_charge if service_charge > 0 else None,
            total=pricing.total,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            customer_name=customer_name or None,
            customer_phone=customer_phone or None,
            notes=notes or None,
        )
        order_id = self.store.add(ORDERS, order.to_document())
        logger.info("Order %s placed for table %s (total %.2f)", order_id, table_number, pricing.total)
        return order_id

    def get_order(self, order_id: str) -> Optional[Order]:
        return Order.from_document(self.store.get(ORDERS, order_id))

    def require_order(self, order_id: str) -> Order:
        order = self.get_order(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def get_restaurant_orders(self, restaurant_id: str, status=None) -> List[Order]:
        filters = [("restaurantId", "==", restaurant_id)]
        if status:
            filters.insert(0, ("status", "==", OrderStatus(status).value))
        return self._list(filters, [("createdAt", "desc")])

    def get_active_orders(self, restaurant_id: str) -> List[Order]:
        return self._list(
            [
                ("restaurantId", "==", restaurant_id),
                ("status", "in", _statuses(order_status.ACTIVE_STATUSES)),
            ],
            [("createdAt", "desc")],
        )

    def get_table_orders(self, restaurant_id: str, table_number: str) -> List[Order]:
        return self._list(
            [
                ("restaurantId", "==", restaurant_id),
                ("tableNumber", "==", str(table_number)),
                ("status", "in", _statuses(order_status.ACTIVE_STATUSES)),
            ],
            [("createdAt", "desc")],
        )

    # -----------------------
    # status
    # -----------------------
    def update_order_status(self, order_id: str, status) -> Order:
        order = self.require_order(order_id)
        updates = order_status.transition_updates(order, status, _now())
        if not updates:
            return order

        self.store.update(ORDERS, order_id, updates)
        logger.info("Order %s: %s -> %s", order_id, order.status, updates["status"])
        return self.require_order(order_id)

    def advance_order(self, order_id: str) -> Order:
        order = self.require_order(order_id)
        target = order_status.next_status(order.status)
        if target is None:
            raise InvalidOrderStateError(f"Order {order_id} is already {order.status}")
        return self.update_order_status(order_id, target)

    def cancel_order(self, order_id: str) -> Order:
        return self.update_order_status(order_id, OrderStatus.CANCELLED)

    def update_payment_status(self, order_id: str, payment_status) -> None:
        self.store.update(ORDERS, order_id, {"paymentStatus": PaymentStatus(payment_status).value})

    # -----------------------
    # items
    # -----------------------
    def update_order_item_status(self, order_id: str, item_id: str, status) -> None:
        order = self.require_order(order_id)
        status = OrderItemStatus(status)

        if not any(item.id == item_id for item in order.items):
            raise NotFoundError("Order item", item_id)

        items = [
            item.model_copy(update={"status": status.value}) if item.id == item_id else item
            for item in order.items
        ]
        self.store.update(ORDERS, order_id, {"items": [i.to_document() for i in items]})

    def remove_order_item(self, order_id: str, item_id: str) -> Order:
        """
        Drop one line and re-price the order.

        Tax is re-applied at the rate the order was created with; service
        charge and discount are kept as they are.
        """
        order = self.require_order(order_id)
        if order_status.is_terminal(order.status):
            raise InvalidOrderStateError(f"Order {order_id} is {order.status}", status=order.status)

        items = [item for item in order.items if item.id != item_id]
        if len(items) == len(order.items):
            raise NotFoundError("Order item", item_id)

        tax_rate = effective_tax_rate(order)
        pricing = calculate_pricing(
            line_subtotal(items),
            tax_rate,
            order.service_charge or 0,
            order.discount or 0,
        )
        self.store.update(ORDERS, order_id, {
            "items": [i.to_document() for i in items],
            "subtotal": pricing.subtotal,
            "tax": pricing.tax,
            "taxRate": tax_rate,
            "total": pricing.total,
        })
        return self.require_order(order_id)

    def add_kitchen_notes(self, order_id: str, notes: str) -> None:
        self.store.update(ORDERS, order_id, {"kitchenNotes": notes})

    # -----------------------
    # real-time
    # -----------------------
    def subscribe_to_restaurant_orders(
        self, restaurant_id: str, callback: Callable[[List[Order]], None]
    ) -> Unsubscribe:
        return self.store.subscribe_collection(
            ORDERS,
            lambda docs: callback([Order.from_document(d) for d in docs]),
            [
                ("restaurantId", "==", restaurant_id),
                ("status", "in", _statuses(order_status.ACTIVE_STATUSES)),
            ],
            [("createdAt", "desc")],
        )

    def subscribe_to_order(self, order_id: str, callback: Callable[[Optional[Order]], None]) -> Unsubscribe:
        return self.store.subscribe_document(
            ORDERS, order_id, lambda doc: callback(Order.from_document(doc))
        )

    def subscribe_to_kitchen_orders(
        self, restaurant_id: str, callback: Callable[[List[Order]], None]
    ) -> Unsubscribe:
        return self.store.subscribe_collection(
            ORDERS,
            lambda docs: callback([Order.from_document(d) for d in docs]),
            [
                ("restaurantId", "==", restaurant_id),
                ("status", "in", _statuses(order_status.KITCHEN_STATUSES)),
            ],
            [("createdAt", "asc")],
        )

    def _list(self, filters, order_by) -> List[Order]:
        return [Order.from_document(d) for d in self.store.list(ORDERS, filters, order_by)]
