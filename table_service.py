import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from errors import ConflictError, NotFoundError
from firestore_db import ORDERS, TABLE_SESSIONS, TABLES, Unsubscribe
from schemas import Order, OrderStatus, Table, TableSession, TableStatus

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def table_number_key(table: Table):
    """Sort key: numeric table numbers in number order, then the rest by name."""
    number = table.table_number
    return (0, int(number), "") if number.isdigit() else (1, 0, number)


class TableService:
    def __init__(self, store):
        self.store = store

    def get_tables(self, restaurant_id: str) -> List[Table]:
        tables = self._list([("restaurantId", "==", restaurant_id), ("isActive", "==", True)])
        return sorted(tables, key=table_number_key)

    def get_table(self, table_id: str) -> Optional[Table]:
        return Table.from_document(self.store.get(TABLES, table_id))

    def require_table(self, table_id: str) -> Table:
        table = self.get_table(table_id)
        if table is None:
            raise NotFoundError("Table", table_id)
        return table

    def get_table_by_number(self, restaurant_id: str, table_number: str) -> Optional[Table]:
        tables = self._list([
            ("restaurantId", "==", restaurant_id),
            ("tableNumber", "==", str(table_number)),
            ("isActive", "==", True),
        ])
        return tables[0] if tables else None

    def get_tables_by_status(self, restaurant_id: str, status) -> List[Table]:
        return self._list([
            ("restaurantId", "==", restaurant_id),
            ("status", "==", TableStatus(status).value),
            ("isActive", "==", True),
        ])

    def get_occupied_tables(self, restaurant_id: str) -> List[Table]:
        return self.get_tables_by_status(restaurant_id, TableStatus.OCCUPIED)

    # -----------------------
    # writes
    # -----------------------
    def create_table(self, table: Table) -> str:
        return self.store.add(TABLES, table.to_document())

    def update_table(self, table_id: str, data: dict) -> None:
        self.store.update(TABLES, table_id, data)

    def update_table_status(self, table_id: str, status) -> None:
        self.store.update(TABLES, table_id, {"status": TableStatus(status).value})

    def assign_order_to_table(self, table_id: str, order_id: str) -> None:
        self.store.update(TABLES, table_id, {
            "currentOrderId": order_id,
            "status": TableStatus.OCCUPIED.value,
        })

    def clear_table(self, table_id: str) -> None:
        self.store.update(TABLES, table_id, {
            "currentOrderId": None,
            "status": TableStatus.CLEANING.value,
        })

    def set_table_available(self, table_id: str) -> None:
        self.store.update(TABLES, table_id, {
            "currentOrderId": None,
            "status": TableStatus.AVAILABLE.value,
        })

    def delete_table(self, table_id: str) -> None:
        # soft delete
        self.store.update(TABLES, table_id, {"isActive": False})

    def bulk_create_tables(
        self,
        restaurant_id: str,
        start_number: int,
        end_number: int,
        capacity: int = 4,
        section: Optional[str] = None,
    ) -> List[str]:
        table_ids = []
        for n in range(start_number, end_number + 1):
            table = Table(
                restaurant_id=restaurant_id,
                table_number=str(n),
                display_name=f"Table {n}",
                capacity=capacity,
                status=TableStatus.AVAILABLE,
                section=section,
                is_active=True,
            )
            table_ids.append(self.create_table(table))
        logger.info("Created %d tables for restaurant %s", len(table_ids), restaurant_id)
        return table_ids

    def subscribe_to_tables(self, restaurant_id: str, callback: Callable[[List[Table]], None]) -> Unsubscribe:
        return self.store.subscribe_collection(
            TABLES,
            lambda docs: callback(sorted((Table.from_document(d) for d in docs), key=table_number_key)),
            [("restaurantId", "==", restaurant_id), ("isActive", "==", True)],
        )

    # -----------------------
    # sessions
    # -----------------------
    def start_table_session(self, table_id: str, restaurant_id: str, table_number: str) -> str:
        session = TableSession(
            table_id=table_id,
            table_number=str(table_number),
            restaurant_id=restaurant_id,
            started_at=_now(),
            order_ids=[],
            total_spent=0,
            is_active=True,
        )
        return self.store.add(TABLE_SESSIONS, session.to_document())

    def get_session(self, session_id: str) -> Optional[TableSession]:
        return TableSession.from_document(self.store.get(TABLE_SESSIONS, session_id))

    def require_session(self, session_id: str) -> TableSession:
        session = self.get_session(session_id)
        if session is None:
            raise NotFoundError("Table session", session_id)
        return session

    def get_active_session(self, table_id: str) -> Optional[TableSession]:
        docs = self.store.list(
            TABLE_SESSIONS,
            [("tableId", "==", table_id), ("isActive", "==", True)],
            [("startedAt", "desc")],
            limit=1,
        )
        return TableSession.from_document(docs[0]) if docs else None

    def add_order_to_session(self, session_id: str, order_id: str) -> None:
        session = self.require_session(session_id)
        if not session.is_active:
            raise ConflictError(f"Table session {session_id} is closed")
        self.store.update(TABLE_SESSIONS, session_id, {
            "orderIds": [*session.order_ids, order_id],
        })

    def session_total(self, session: TableSession) -> float:
        total = 0.0
        for order_id in session.order_ids:
            order = Order.from_document(self.store.get(ORDERS, order_id))
            if order is not None and order.status != OrderStatus.CANCELLED:
                total += order.total
        return total

    def end_table_session(self, session_id: str) -> float:
        """Close the session; total spent is summed from its non-cancelled orders."""
        session = self.require_session(session_id)
        total_spent = self.session_total(session)
        self.store.update(TABLE_SESSIONS, session_id, {
            "endedAt": _now(),
            "totalSpent": total_spent,
            "isActive": False,
        })
        logger.info("Table session %s closed (%.2f)", session_id, total_spent)
        return total_spent

    def _list(self, filters, order_by=()) -> List[Table]:
        return [Table.from_document(d) for d in self.store.list(TABLES, filters, order_by)]
