"""
Domain records for the ordering service.

Each model mirrors one document in the store. Stored field names are camelCase
(``tableNumber``, ``createdAt``); Python attributes are snake_case. Use
``to_document()`` for writes and ``Model.from_document()`` for reads.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from permissions import Role
from pricing import cart_item_total


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    VERIFIED = "verified"
    REFUNDED = "refunded"


class OrderItemStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"


class TableStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    CLEANING = "cleaning"


class InviteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]):
        if doc is None:
            return None
        return cls.model_validate(doc)

    def to_document(self) -> Dict[str, Any]:
        """Serialise for the store: camelCase keys, no id, no unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"id"})

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Stamped(Record):
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# -----------------------
# Menu
# -----------------------
class Category(Stamped):
    restaurant_id: str
    name: str
    order: int = 0
    active: bool = True


class Variant(Record):
    name: str
    price_modifier: float = 0


class Addon(Record):
    name: str
    price: float = 0


class MenuItem(Stamped):
    restaurant_id: str
    name: str
    description: str = ""
    price: float = Field(ge=0)
    image: str = ""
    category_id: str
    available: bool = True
    is_special: bool = False
    order: int = 0
    variants: List[Variant] = Field(default_factory=list)
    addons: List[Addon] = Field(default_factory=list)


class CartItem(MenuItem):
    line_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    notes: Optional[str] = None
    selected_variant: Optional[Variant] = None
    selected_addons: List[Addon] = Field(default_factory=list)


# -----------------------
# Orders
# -----------------------
class OrderItem(Record):
    id: str
    menu_item_id: str
    name: str
    price: float = Field(ge=0)
    quantity: int = Field(ge=1)
    notes: Optional[str] = None
    image: Optional[str] = None
    status: OrderItemStatus = OrderItemStatus.PENDING

    @classmethod
    def from_cart_item(cls, item: CartItem) -> "OrderItem":
        return cls(
            id=item.id,
            menu_item_id=item.id,
            name=item.name,
            price=cart_item_total(item) / item.quantity,
            quantity=item.quantity,
            notes=item.notes,
            image=item.image or None,
            status=OrderItemStatus.PENDING,
        )

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Order(Stamped):
    restaurant_id: str
    table_number: str
    table_id: Optional[str] = None
    session_id: Optional[str] = None

    items: List[OrderItem] = Field(default_factory=list)

    subtotal: float = 0
    tax: float = 0
    tax_rate: Optional[float] = None
    service_charge: Optional[float] = None
    discount: Optional[float] = None
    total: float = 0

    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING

    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    kitchen_notes: Optional[str] = None

    confirmed_at: Optional[datetime] = None
    prepared_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    served_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


# -----------------------
# Tables
# -----------------------
class Table(Stamped):
    restaurant_id: str
    table_number: str
    display_name: Optional[str] = None
    capacity: int = Field(default=4, ge=1)
    status: TableStatus = TableStatus.AVAILABLE
    current_order_id: Optional[str] = None
    section: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True


class TableSession(Record):
    id: Optional[str] = None
    table_id: str
    table_number: str
    restaurant_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    order_ids: List[str] = Field(default_factory=list)
    total_spent: float = 0
    is_active: bool = True


class TableLink(Record):
    table_id: Optional[str] = None
    table_number: str
    display_name: Optional[str] = None
    menu_url: str


# -----------------------
# Staff
# -----------------------
class Staff(Stamped):
    restaurant_id: str
    email: str
    name: str
    phone: Optional[str] = None
    role: Role = Role.WAITER
    avatar: Optional[str] = None
    is_active: bool = True
    is_approved: bool = False
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class StaffInvite(Record):
    id: Optional[str] = None
    restaurant_id: str
    email: str
    name: str
    role: Role = Role.WAITER
    invited_by: str
    invited_at: datetime
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    status: InviteStatus = InviteStatus.PENDING


# -----------------------
# Restaurant
# -----------------------
class RestaurantSettings(Record):
    currency: str = "USD"
    currency_symbol: str = "$"
    tax_rate: float = 0
    service_charge: Optional[float] = None
    accepts_orders: bool = True
    requires_table_number: bool = True
    notification_email: Optional[str] = None


class RestaurantPayment(Record):
    upi_id: Optional[str] = None
    upi_qr_code: Optional[str] = None
    payment_instructions: Optional[str] = None


class Restaurant(Stamped):
    name: str
    slug: str
    tagline: Optional[str] = None
    description: Optional[str] = None
    logo: Optional[str] = None
    cover_image: Optional[str] = None
    contact: Dict[str, str] = Field(default_factory=dict)
    address: Dict[str, Any] = Field(default_factory=dict)
    hours: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    settings: RestaurantSettings = Field(default_factory=RestaurantSettings)
    payment: Optional[RestaurantPayment] = None
    is_active: bool = True
