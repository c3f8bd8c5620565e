import hashlib
from typing import Any, Dict, List, Optional

from errors import NotFoundError, ValidationError
from pricing import calculate_pricing, cart_item_total
from schemas import Addon, CartItem, MenuItem, Variant

_CART_FIELDS = {"line_id", "quantity", "notes", "selected_variant", "selected_addons"}


def cart_key(restaurant_id: str, table_number: str) -> str:
    return f"cart:{restaurant_id}:{table_number}"


def line_id(item_id: str, variant: Optional[Variant] = None, addons: Optional[List[Addon]] = None) -> str:
    """Cart line id: the menu item id, suffixed when options are chosen."""
    options = [variant.name if variant else ""] + sorted(a.name for a in addons or [])
    if not any(options):
        return item_id
    digest = hashlib.sha1("\x1f".join(options).encode("utf-8")).hexdigest()[:8]
    return f"{item_id}-{digest}"


class Cart:
    """
    A customer's cart for one table, kept in the Flask session.

    One line per menu item and choice of options (variant and add-ons);
    adding the same item with the same options bumps that line's quantity.
    """

    def __init__(self, lines: Optional[List[Dict[str, Any]]] = None):
        self._items: Dict[str, CartItem] = {}
        for line in lines or []:
            item = CartItem.model_validate(line)
            if item.line_id is None:
                item.line_id = line_id(item.id, item.selected_variant, item.selected_addons)
            self._items[item.line_id] = item

    @property
    def items(self) -> List[CartItem]:
        return list(self._items.values())

    @property
    def is_empty(self) -> bool:
        return not self._items

    def add_item(
        self,
        menu_item: MenuItem,
        quantity: int = 1,
        variant: Optional[Variant] = None,
        addons: Optional[List[Addon]] = None,
    ) -> str:
        """Add to the cart; returns the id of the line that holds the item."""
        key = line_id(menu_item.id, variant, addons)
        existing = self._items.get(key)
        if existing is not None:
            existing.quantity += quantity
            return key

        self._items[key] = CartItem(
            **menu_item.model_dump(exclude=_CART_FIELDS),
            line_id=key,
            quantity=quantity,
            selected_variant=variant,
            selected_addons=addons or [],
        )
        return key

    def update_quantity(self, line: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(line)
        elif line in self._items:
            self._items[line].quantity = quantity

    def remove_item(self, line: str) -> None:
        self._items.pop(line, None)

    def update_notes(self, line: str, notes: str) -> None:
        if line in self._items:
            self._items[line].notes = notes or None

    def clear(self) -> None:
        self._items.clear()

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self._items.values())

    @property
    def subtotal(self) -> float:
        return sum(cart_item_total(item) for item in self._items.values())

    def calculate_total(self, tax_rate: float = 0, service_charge: float = 0) -> float:
        return calculate_pricing(self.subtotal, tax_rate, service_charge).total

    def to_session(self) -> List[Dict[str, Any]]:
        return [item.model_dump(mode="json") for item in self._items.values()]


def cart_items_from_lines(menu_service, restaurant_id: str, lines: List[Dict[str, Any]]) -> List[CartItem]:
    """
    Build cart items from posted lines ``{id, quantity, notes, variant, addons}``.

    Prices always come from the stored menu item; variants and addons are
    matched by name against what the item offers.
    """
    cart = Cart()
    for line in lines:
        item_id = str(line.get("id") or line.get("menuItemId") or "")
        if not item_id:
            raise ValidationError("Each line needs a menu item id")
        menu_item = menu_service.get_menu_item(item_id)
        if menu_item is None or menu_item.restaurant_id != restaurant_id:
            raise NotFoundError("Menu item", item_id)
        if not menu_item.available:
            raise ValidationError(f"{menu_item.name} is not available right now", id=item_id)

        try:
            quantity = int(line.get("quantity", 1))
        except (TypeError, ValueError):
            raise ValidationError("Quantity must be a whole number", id=item_id)
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", id=item_id)

        variant = None
        if line.get("variant"):
            variant = next((v for v in menu_item.variants if v.name == line["variant"]), None)
            if variant is None:
                raise ValidationError(f"Unknown option {line['variant']!r}", id=item_id)

        addons = []
        for name in line.get("addons") or []:
            addon = next((a for a in menu_item.addons if a.name == name), None)
            if addon is None:
                raise ValidationError(f"Unknown add-on {name!r}", id=item_id)
            addons.append(addon)

        key = cart.add_item(menu_item, quantity, variant=variant, addons=addons)
        if line.get("notes"):
            cart.update_notes(key, line["notes"])
    return cart.items
