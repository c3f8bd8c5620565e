from typing import Callable, Optional

from errors import NotFoundError
from firestore_db import RESTAURANTS, Unsubscribe
from schemas import Restaurant


class RestaurantService:
    def __init__(self, store, default_tax_rate: float = 0):
        self.store = store
        self.default_tax_rate = default_tax_rate

    def get_restaurant(self, restaurant_id: str) -> Optional[Restaurant]:
        return Restaurant.from_document(self.store.get(RESTAURANTS, restaurant_id))

    def get_restaurant_by_slug(self, slug: str) -> Optional[Restaurant]:
        docs = self.store.list(RESTAURANTS, [("slug", "==", slug), ("isActive", "==", True)], limit=1)
        return Restaurant.from_document(docs[0]) if docs else None

    def require_restaurant_by_slug(self, slug: str) -> Restaurant:
        restaurant = self.get_restaurant_by_slug(slug)
        if restaurant is None:
            raise NotFoundError("Restaurant", slug)
        return restaurant

    def create_restaurant(self, restaurant: Restaurant) -> str:
        if "tax_rate" not in restaurant.settings.model_fields_set:
            restaurant.settings.tax_rate = self.default_tax_rate
        return self.store.add(RESTAURANTS, restaurant.to_document())

    def update_restaurant(self, restaurant_id: str, data: dict) -> None:
        self.store.update(RESTAURANTS, restaurant_id, data)

    def subscribe_to_restaurant(
        self, restaurant_id: str, callback: Callable[[Optional[Restaurant]], None]
    ) -> Unsubscribe:
        return self.store.subscribe_document(
            RESTAURANTS, restaurant_id, lambda doc: callback(Restaurant.from_document(doc))
        )
