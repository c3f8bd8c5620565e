from dataclasses import dataclass
from typing import Iterable

# Rate assumed for orders stored before taxRate was kept on the document
LEGACY_TAX_RATE = 5.0


@dataclass(frozen=True)
class Pricing:
    subtotal: float
    tax: float
    service_charge: float
    discount: float
    total: float


def calculate_pricing(
    subtotal: float,
    tax_rate: float,
    service_charge: float = 0,
    discount: float = 0,
) -> Pricing:
    """tax = subtotal * rate / 100; total = subtotal + tax + service charge - discount."""
    tax = subtotal * (tax_rate / 100)
    total = subtotal + tax + service_charge - discount
    return Pricing(
        subtotal=subtotal,
        tax=tax,
        service_charge=service_charge,
        discount=discount,
        total=total,
    )


def line_subtotal(items: Iterable) -> float:
    return sum(item.price * item.quantity for item in items)


def cart_item_total(item) -> float:
    total = item.price * item.quantity
    variant = getattr(item, "selected_variant", None)
    if variant is not None:
        total += variant.price_modifier * item.quantity
    addons = getattr(item, "selected_addons", None) or []
    total += sum(addon.price for addon in addons) * item.quantity
    return total


def effective_tax_rate(order) -> float:
    """
    Tax rate (percent) to re-apply when an order's lines change.

    Orders carry the rate they were created with. Older documents only have
    tax and subtotal, so the rate is derived from those, or LEGACY_TAX_RATE
    when the subtotal was zero.
    """
    if order.tax_rate is not None:
        return order.tax_rate
    if order.subtotal > 0:
        return order.tax / order.subtotal * 100
    return LEGACY_TAX_RATE
