from typing import Callable, List, Optional

from errors import NotFoundError
from firestore_db import CATEGORIES, MENU_ITEMS, Unsubscribe
from schemas import Category, MenuItem


class MenuService:
    def __init__(self, store):
        self.store = store

    # -----------------------
    # categories
    # -----------------------
    def get_categories(self, restaurant_id: str) -> List[Category]:
        docs = self.store.list(
            CATEGORIES,
            [("restaurantId", "==", restaurant_id), ("active", "==", True)],
            [("order", "asc")],
        )
        return [Category.from_document(d) for d in docs]

    def get_category(self, category_id: str) -> Optional[Category]:
        return Category.from_document(self.store.get(CATEGORIES, category_id))

    def create_category(self, category: Category) -> str:
        return self.store.add(CATEGORIES, category.to_document())

    def update_category(self, category_id: str, data: dict) -> None:
        self.store.update(CATEGORIES, category_id, data)

    def delete_category(self, category_id: str) -> None:
        # soft delete, items keep their categoryId
        self.store.update(CATEGORIES, category_id, {"active": False})

    def subscribe_to_categories(
        self, restaurant_id: str, callback: Callable[[List[Category]], None]
    ) -> Unsubscribe:
        return self.store.subscribe_collection(
            CATEGORIES,
            lambda docs: callback([Category.from_document(d) for d in docs]),
            [("restaurantId", "==", restaurant_id), ("active", "==", True)],
            [("order", "asc")],
        )

    # -----------------------
    # menu items
    # -----------------------
    def get_menu_items(self, restaurant_id: str) -> List[MenuItem]:
        return self._items([("restaurantId", "==", restaurant_id)])

    def get_menu_items_by_category(self, restaurant_id: str, category_id: str) -> List[MenuItem]:
        return self._items([
            ("restaurantId", "==", restaurant_id),
            ("categoryId", "==", category_id),
            ("available", "==", True),
        ])

    def get_available_menu_items(self, restaurant_id: str) -> List[MenuItem]:
        return self._items([("restaurantId", "==", restaurant_id), ("available", "==", True)])

    def get_special_items(self, restaurant_id: str) -> List[MenuItem]:
        return self._items([
            ("restaurantId", "==", restaurant_id),
            ("isSpecial", "==", True),
            ("available", "==", True),
        ])

    def get_menu_item(self, item_id: str) -> Optional[MenuItem]:
        return MenuItem.from_document(self.store.get(MENU_ITEMS, item_id))

    def require_menu_item(self, item_id: str) -> MenuItem:
        item = self.get_menu_item(item_id)
        if item is None:
            raise NotFoundError("Menu item", item_id)
        return item

    def create_menu_item(self, item: MenuItem) -> str:
        return self.store.add(MENU_ITEMS, item.to_document())

    def update_menu_item(self, item_id: str, data: dict) -> None:
        self.store.update(MENU_ITEMS, item_id, data)

    def delete_menu_item(self, item_id: str) -> None:
        self.store.delete(MENU_ITEMS, item_id)

    def toggle_item_availability(self, item_id: str, available: bool) -> None:
        self.store.update(MENU_ITEMS, item_id, {"available": bool(available)})

    def subscribe_to_menu_items(
        self, restaurant_id: str, callback: Callable[[List[MenuItem]], None]
    ) -> Unsubscribe:
        return self.store.subscribe_collection(
            MENU_ITEMS,
            lambda docs: callback([MenuItem.from_document(d) for d in docs]),
            [("restaurantId", "==", restaurant_id)],
            [("order", "asc")],
        )

    def _items(self, filters) -> List[MenuItem]:
        docs = self.store.list(MENU_ITEMS, filters, [("order", "asc")])
        return [MenuItem.from_document(d) for d in docs]
