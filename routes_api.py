import json
import logging
import queue

from flask import Blueprint, Response, jsonify, request, session
from pydantic import ValidationError as SchemaError

import images
import order_status
from auth import (
    AuthStatus,
    LocalIdentity,
    current_staff,
    login_required,
    permission_required,
    sign_in_staff,
)
from cart import cart_items_from_lines
from errors import ConflictError, NotFoundError, TableMenuError, ValidationError
from permissions import Permission, Role, permission_table, role_display_name
from schemas import Category, MenuItem, Restaurant, Table
from services import current_services
from table_links import generate_table_link, generate_table_links, table_qr_png

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

SSE_KEEPALIVE_SECONDS = 15


# -----------------------
# Errors
# -----------------------
@api.errorhandler(TableMenuError)
def handle_domain_error(e: TableMenuError):
    return jsonify(e.to_dict()), e.status_code


@api.errorhandler(SchemaError)
def handle_schema_error(e: SchemaError):
    errors = [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()]
    return jsonify({"error": "validation_error", "message": "Invalid data", "detail": errors}), 400


# -----------------------
# Helpers
# -----------------------
def _json() -> dict:
    return request.get_json(silent=True) or {}


def _restaurant_id() -> str:
    return current_staff().restaurant_id


def _restaurant() -> Restaurant:
    restaurant = current_services().restaurants.get_restaurant(_restaurant_id())
    if restaurant is None:
        raise NotFoundError("Restaurant", _restaurant_id())
    return restaurant


def _owned(record, kind: str, ident: str):
    # records of another restaurant are reported as missing
    if record is None or record.restaurant_id != _restaurant_id():
        raise NotFoundError(kind, ident)
    return record


def _patch(model_cls, existing, payload: dict, protected=("id", "restaurantId", "createdAt", "updatedAt")) -> dict:
    """
    Validate a partial update against the full record; returns the document fields to write.

    Keys may be camelCase or snake_case. Unknown keys are dropped, and nested
    objects (``settings``) are merged into what is stored.
    """
    aliases = {name: field.alias or name for name, field in model_cls.model_fields.items()}
    current = existing.to_document()

    updates = {}
    for key, value in payload.items():
        key = aliases.get(key, key)
        if key in protected or key not in aliases.values():
            continue
        if isinstance(value, dict) and isinstance(current.get(key), dict):
            value = {**current[key], **value}
        updates[key] = value

    merged = model_cls.model_validate({**current, **updates}).to_document()
    return {k: merged.get(k) for k in updates}


def _menu_item_json(item: MenuItem) -> dict:
    data = item.to_json()
    data["imageUrl"] = images.optimized_image_url(item.image) if item.image else ""
    data["thumbnailUrl"] = images.optimized_image_url(item.image, "thumbnail") if item.image else ""
    return data


# -----------------------
# Customer: menu + ordering
# -----------------------
@api.get("/r/<slug>")
def restaurant_menu(slug):
    svc = current_services()
    restaurant = svc.restaurants.require_restaurant_by_slug(slug)
    return jsonify({
        "restaurant": restaurant.to_json(),
        "categories": [c.to_json() for c in svc.menu.get_categories(restaurant.id)],
        "items": [_menu_item_json(i) for i in svc.menu.get_available_menu_items(restaurant.id)],
    })


@api.post("/r/<slug>/table/<table_number>/orders")
def place_order(slug, table_number):
    svc = current_services()
    restaurant = svc.restaurants.require_restaurant_by_slug(slug)
    data = _json()

    lines = data.get("items")
    if not isinstance(lines, list) or not lines:
        raise ValidationError("Your cart is empty.")

    cart_items = cart_items_from_lines(svc.menu, restaurant.id, lines)
    order_id = svc.place_table_order(
        restaurant,
        table_number,
        cart_items,
        notes=data.get("notes"),
        customer_name=data.get("customerName"),
        customer_phone=data.get("customerPhone"),
    )
    return jsonify({"ok": True, "id": order_id, "order": svc.orders.require_order(order_id).to_json()}), 201


@api.get("/orders/<order_id>")
def get_order(order_id):
    return jsonify(current_services().orders.require_order(order_id).to_json())


@api.get("/orders/<order_id>/events")
def order_events(order_id):
    """Server-sent events: one ``data`` frame per order snapshot until the order is finished."""
    svc = current_services()
    svc.orders.require_order(order_id)

    updates = queue.Queue()
    unsubscribe = svc.orders.subscribe_to_order(order_id, updates.put)

    def stream():
        try:
            while True:
                try:
                    order = updates.get(timeout=SSE_KEEPALIVE_SECONDS)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                if order is None:
                    yield "event: deleted\ndata: {}\n\n"
                    return
                yield f"data: {json.dumps(order.to_json())}\n\n"
                if order_status.is_terminal(order.status):
                    return
        finally:
            unsubscribe()

    return Response(stream(), mimetype="text/event-stream", headers={"Cache-Control": "no-cache"})


# -----------------------
# Auth
# -----------------------
def _auth_response(result):
    body = {"status": result.status.value}
    if result.staff is not None:
        body["staff"] = result.staff.to_json()
    if result.is_authenticated:
        body["permissions"] = permission_table(result.staff.role)
        return jsonify(body)
    return jsonify(body), 403


@api.post("/auth/login")
def login():
    data = _json()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        raise ValidationError("Email and password are required.")

    verified_email = current_services().identity.sign_in(email, password)
    return _auth_response(sign_in_staff(verified_email))


@api.post("/auth/token")
def login_with_token():
    token = _json().get("idToken")
    if not token:
        raise ValidationError("idToken is required.")
    email = current_services().identity.verify_token(token)
    return _auth_response(sign_in_staff(email))


@api.post("/auth/logout")
def logout():
    session.clear()
    return jsonify({"ok": True})


@api.get("/auth/me")
@login_required
def me():
    staff = current_staff()
    return jsonify({
        "status": AuthStatus.AUTHENTICATED.value,
        "staff": staff.to_json(),
        "roleName": role_display_name(staff.role),
        "permissions": permission_table(staff.role),
    })


@api.post("/auth/register")
def register():
    """Staff self-registration. The account stays pending until an admin approves it."""
    svc = current_services()
    data = _json()
    restaurant = svc.restaurants.require_restaurant_by_slug(data.get("restaurantSlug", ""))
    name = (data.get("name") or "").strip()

    if data.get("idToken"):
        email = svc.identity.verify_token(data["idToken"])
    else:
        email = (data.get("email") or "").strip().lower()
    if not email or not name:
        raise ValidationError("Name and email are required.")

    password = data.get("password") or ""
    if isinstance(svc.identity, LocalIdentity) and len(password) < 8:
        raise ValidationError("Password must be at least 8 characters.")

    staff_id = svc.staff.register_staff_from_oauth(restaurant.id, email, name)
    if isinstance(svc.identity, LocalIdentity):
        svc.identity.set_password(staff_id, password)
    return jsonify({"ok": True, "id": staff_id, "status": AuthStatus.PENDING_APPROVAL.value}), 201


# -----------------------
# Staff: orders
# -----------------------
def _order(order_id):
    return _owned(current_services().orders.get_order(order_id), "Order", order_id)


@api.get("/staff/orders")
@permission_required(Permission.MANAGE_ORDERS)
def list_orders():
    svc = current_services()
    status = request.args.get("status")
    if request.args.get("active") == "1":
        orders = svc.orders.get_active_orders(_restaurant_id())
    elif request.args.get("table"):
        orders = svc.orders.get_table_orders(_restaurant_id(), request.args["table"])
    else:
        orders = svc.orders.get_restaurant_orders(_restaurant_id(), status or None)
    return jsonify([o.to_json() for o in orders])


@api.post("/staff/orders/<order_id>/status")
@permission_required(Permission.UPDATE_ORDER_STATUS)
def update_order_status(order_id):
    svc = current_services()
    _order(order_id)
    status = _json().get("status")
    if not status:
        raise ValidationError("status is required.")
    try:
        order = svc.orders.update_order_status(order_id, status)
    except ValueError:
        raise ValidationError(f"Unknown status {status!r}")
    svc.release_table(order)
    return jsonify(order.to_json())


@api.post("/staff/orders/<order_id>/advance")
@permission_required(Permission.UPDATE_ORDER_STATUS)
def advance_order(order_id):
    svc = current_services()
    _order(order_id)
    order = svc.orders.advance_order(order_id)
    svc.release_table(order)
    return jsonify(order.to_json())


@api.post("/staff/orders/<order_id>/cancel")
@permission_required(Permission.MANAGE_ORDERS)
def cancel_order(order_id):
    svc = current_services()
    _order(order_id)
    order = svc.orders.cancel_order(order_id)
    svc.release_table(order)
    return jsonify(order.to_json())


@api.post("/staff/orders/<order_id>/payment")
@permission_required(Permission.VERIFY_PAYMENTS)
def update_payment_status(order_id):
    _order(order_id)
    payment_status = _json().get("paymentStatus")
    try:
        current_services().orders.update_payment_status(order_id, payment_status)
    except ValueError:
        raise ValidationError(f"Unknown payment status {payment_status!r}")
    return jsonify({"ok": True})


@api.post("/staff/orders/<order_id>/items/<item_id>/status")
@permission_required(Permission.UPDATE_ORDER_STATUS)
def update_order_item_status(order_id, item_id):
    _order(order_id)
    status = _json().get("status")
    try:
        current_services().orders.update_order_item_status(order_id, item_id, status)
    except ValueError:
        raise ValidationError(f"Unknown item status {status!r}")
    return jsonify({"ok": True})


@api.delete("/staff/orders/<order_id>/items/<item_id>")
@permission_required(Permission.MANAGE_ORDERS)
def remove_order_item(order_id, item_id):
    _order(order_id)
    order = current_services().orders.remove_order_item(order_id, item_id)
    return jsonify(order.to_json())


@api.post("/staff/orders/<order_id>/kitchen-notes")
@permission_required(Permission.MANAGE_ORDERS)
def add_kitchen_notes(order_id):
    _order(order_id)
    current_services().orders.add_kitchen_notes(order_id, _json().get("notes", ""))
    return jsonify({"ok": True})


# -----------------------
# Staff: tables
# -----------------------
def _table(table_id):
    return _owned(current_services().tables.get_table(table_id), "Table", table_id)


@api.get("/staff/tables")
@permission_required(Permission.MANAGE_TABLES)
def list_tables():
    svc = current_services()
    status = request.args.get("status")
    if status:
        tables = svc.tables.get_tables_by_status(_restaurant_id(), status)
    else:
        tables = svc.tables.get_tables(_restaurant_id())
    return jsonify([t.to_json() for t in tables])


@api.post("/staff/tables")
@permission_required(Permission.MANAGE_TABLES)
def create_table():
    table = Table.model_validate({**_json(), "restaurantId": _restaurant_id()})
    if current_services().tables.get_table_by_number(table.restaurant_id, table.table_number):
        raise ConflictError(f"Table {table.table_number} already exists")
    table_id = current_services().tables.create_table(table)
    return jsonify({"ok": True, "id": table_id}), 201


@api.post("/staff/tables/bulk")
@permission_required(Permission.MANAGE_TABLES)
def bulk_create_tables():
    data = _json()
    try:
        start, end = int(data["start"]), int(data["end"])
        capacity = int(data.get("capacity", 4))
    except (KeyError, TypeError, ValueError):
        raise ValidationError("start and end table numbers are required.")
    if start < 1 or end < start:
        raise ValidationError("Table range is invalid.")

    ids = current_services().tables.bulk_create_tables(
        _restaurant_id(), start, end, capacity, data.get("section")
    )
    return jsonify({"ok": True, "ids": ids}), 201


@api.patch("/staff/tables/<table_id>")
@permission_required(Permission.MANAGE_TABLES)
def update_table(table_id):
    svc = current_services()
    table = _table(table_id)
    updates = _patch(Table, table, _json())
    number = updates.get("tableNumber")
    if number and number != table.table_number:
        clash = svc.tables.get_table_by_number(table.restaurant_id, number)
        if clash is not None and clash.id != table_id:
            raise ConflictError(f"Table {number} already exists")
    svc.tables.update_table(table_id, updates)
    return jsonify({"ok": True})


@api.delete("/staff/tables/<table_id>")
@permission_required(Permission.MANAGE_TABLES)
def delete_table(table_id):
    _table(table_id)
    current_services().tables.delete_table(table_id)
    return jsonify({"ok": True})


@api.post("/staff/tables/<table_id>/status")
@permission_required(Permission.MANAGE_TABLES)
def update_table_status(table_id):
    _table(table_id)
    status = _json().get("status")
    svc = current_services()
    if status == "available":
        svc.tables.set_table_available(table_id)
    else:
        try:
            svc.tables.update_table_status(table_id, status)
        except ValueError:
            raise ValidationError(f"Unknown table status {status!r}")
    return jsonify({"ok": True})


@api.get("/staff/tables/links")
@permission_required(Permission.MANAGE_TABLES)
def table_links():
    svc = current_services()
    restaurant = _restaurant()
    base_url = request.args.get("baseUrl") or svc.public_base_url
    links = generate_table_links(svc.tables.get_tables(restaurant.id), restaurant.slug, base_url)
    return jsonify([link.to_json() for link in links])


@api.get("/staff/tables/<table_id>/qr.png")
@permission_required(Permission.MANAGE_TABLES)
def table_qr(table_id):
    svc = current_services()
    link = generate_table_link(_table(table_id), _restaurant().slug, svc.public_base_url)
    png = table_qr_png(link.menu_url)
    return Response(
        png,
        mimetype="image/png",
        headers={"Content-Disposition": f"attachment; filename=table-{link.table_number}-qr.png"},
    )


@api.post("/staff/tables/<table_id>/sessions")
@permission_required(Permission.MANAGE_TABLES)
def start_session(table_id):
    table = _table(table_id)
    svc = current_services()
    if svc.tables.get_active_session(table_id) is not None:
        raise ValidationError(f"Table {table.table_number} already has an open session")
    session_id = svc.tables.start_table_session(table_id, table.restaurant_id, table.table_number)
    return jsonify({"ok": True, "id": session_id}), 201


@api.get("/staff/tables/<table_id>/session")
@permission_required(Permission.MANAGE_TABLES)
def get_active_session(table_id):
    _table(table_id)
    table_session = current_services().tables.get_active_session(table_id)
    if table_session is None:
        raise NotFoundError("Table session", table_id)
    return jsonify(table_session.to_json())


@api.post("/staff/sessions/<session_id>/end")
@permission_required(Permission.MANAGE_TABLES)
def end_session(session_id):
    svc = current_services()
    _owned(svc.tables.get_session(session_id), "Table session", session_id)
    total_spent = svc.tables.end_table_session(session_id)
    return jsonify({"ok": True, "totalSpent": total_spent})


# -----------------------
# Staff: menu
# -----------------------
@api.get("/staff/menu/categories")
@permission_required(Permission.MANAGE_MENU)
def list_categories():
    return jsonify([c.to_json() for c in current_services().menu.get_categories(_restaurant_id())])


@api.post("/staff/menu/categories")
@permission_required(Permission.MANAGE_MENU)
def create_category():
    category = Category.model_validate({**_json(), "restaurantId": _restaurant_id()})
    return jsonify({"ok": True, "id": current_services().menu.create_category(category)}), 201


@api.patch("/staff/menu/categories/<category_id>")
@permission_required(Permission.MANAGE_MENU)
def update_category(category_id):
    menu = current_services().menu
    existing = _owned(menu.get_category(category_id), "Category", category_id)
    menu.update_category(category_id, _patch(Category, existing, _json()))
    return jsonify({"ok": True})


@api.delete("/staff/menu/categories/<category_id>")
@permission_required(Permission.MANAGE_MENU)
def delete_category(category_id):
    menu = current_services().menu
    _owned(menu.get_category(category_id), "Category", category_id)
    menu.delete_category(category_id)
    return jsonify({"ok": True})


@api.get("/staff/menu/items")
@permission_required(Permission.MANAGE_MENU)
def list_menu_items():
    menu = current_services().menu
    category_id = request.args.get("category")
    if category_id:
        items = menu.get_menu_items_by_category(_restaurant_id(), category_id)
    elif request.args.get("special") == "1":
        items = menu.get_special_items(_restaurant_id())
    else:
        items = menu.get_menu_items(_restaurant_id())
    return jsonify([_menu_item_json(i) for i in items])


@api.post("/staff/menu/items")
@permission_required(Permission.MANAGE_MENU)
def create_menu_item():
    item = MenuItem.model_validate({**_json(), "restaurantId": _restaurant_id()})
    menu = current_services().menu
    _owned(menu.get_category(item.category_id), "Category", item.category_id)
    return jsonify({"ok": True, "id": menu.create_menu_item(item)}), 201


@api.patch("/staff/menu/items/<item_id>")
@permission_required(Permission.MANAGE_MENU)
def update_menu_item(item_id):
    menu = current_services().menu
    existing = _owned(menu.get_menu_item(item_id), "Menu item", item_id)
    menu.update_menu_item(item_id, _patch(MenuItem, existing, _json()))
    return jsonify({"ok": True})


@api.delete("/staff/menu/items/<item_id>")
@permission_required(Permission.MANAGE_MENU)
def delete_menu_item(item_id):
    menu = current_services().menu
    _owned(menu.get_menu_item(item_id), "Menu item", item_id)
    menu.delete_menu_item(item_id)
    return jsonify({"ok": True})


@api.post("/staff/menu/items/<item_id>/availability")
@permission_required(Permission.MANAGE_MENU)
def toggle_availability(item_id):
    menu = current_services().menu
    _owned(menu.get_menu_item(item_id), "Menu item", item_id)
    menu.toggle_item_availability(item_id, bool(_json().get("available")))
    return jsonify({"ok": True})


@api.post("/staff/menu/images")
@permission_required(Permission.MANAGE_MENU)
def upload_menu_image():
    svc = current_services()
    url = images.upload_image(request.files.get("image"), folder=svc.image_folder)
    return jsonify({"ok": True, "url": url, "cardUrl": images.optimized_image_url(url)}), 201


# -----------------------
# Staff: accounts and invites
# -----------------------
def _member(staff_id):
    return _owned(current_services().staff.get_staff_by_id(staff_id), "Staff", staff_id)


@api.get("/staff/members")
@permission_required(Permission.MANAGE_STAFF)
def list_staff():
    staff = current_services().staff
    role = request.args.get("role")
    if role:
        members = staff.get_staff_by_role(_restaurant_id(), role)
    else:
        members = staff.get_staff(_restaurant_id())
    return jsonify([m.to_json() for m in members])


@api.get("/staff/members/pending")
@permission_required(Permission.MANAGE_STAFF)
def list_pending_staff():
    return jsonify([m.to_json() for m in current_services().staff.get_pending_staff(_restaurant_id())])


@api.post("/staff/members/<staff_id>/approve")
@permission_required(Permission.MANAGE_STAFF)
def approve_staff(staff_id):
    _member(staff_id)
    current_services().staff.approve_staff(staff_id, current_staff().id)
    return jsonify({"ok": True})


@api.post("/staff/members/<staff_id>/deactivate")
@permission_required(Permission.MANAGE_STAFF)
def deactivate_staff(staff_id):
    _member(staff_id)
    if staff_id == current_staff().id:
        raise ValidationError("You cannot deactivate your own account.")
    current_services().staff.deactivate_staff(staff_id)
    return jsonify({"ok": True})


@api.post("/staff/members/<staff_id>/role")
@permission_required(Permission.MANAGE_STAFF)
def change_role(staff_id):
    _member(staff_id)
    role = _json().get("role")
    try:
        current_services().staff.change_staff_role(staff_id, role)
    except ValueError:
        raise ValidationError(f"Unknown role {role!r}")
    return jsonify({"ok": True})


@api.get("/staff/invites")
@permission_required(Permission.MANAGE_STAFF)
def list_invites():
    return jsonify([i.to_json() for i in current_services().staff.get_pending_invites(_restaurant_id())])


@api.post("/staff/invites")
@permission_required(Permission.MANAGE_STAFF)
def create_invite():
    data = _json()
    email = (data.get("email") or "").strip().lower()
    name = (data.get("name") or "").strip()
    if not email or not name:
        raise ValidationError("Name and email are required.")
    try:
        role = Role(data.get("role", Role.WAITER.value))
    except ValueError:
        raise ValidationError(f"Unknown role {data.get('role')!r}")

    invite_id = current_services().staff.create_invite(
        _restaurant_id(), email, name, role, current_staff().id
    )
    return jsonify({"ok": True, "id": invite_id}), 201


@api.post("/staff/invites/<invite_id>/cancel")
@permission_required(Permission.MANAGE_STAFF)
def cancel_invite(invite_id):
    staff = current_services().staff
    _owned(staff.get_invite(invite_id), "Invite", invite_id)
    staff.cancel_invite(invite_id)
    return jsonify({"ok": True})


@api.post("/invites/<invite_id>/accept")
def accept_invite(invite_id):
    """
    Accept an invite. With local accounts a new invitee chooses a password
    here; an account that already exists keeps the password it has.
    """
    svc = current_services()
    invite = svc.staff.get_invite(invite_id)
    if invite is None:
        raise NotFoundError("Invite", invite_id)

    sets_password = isinstance(svc.identity, LocalIdentity) and svc.staff.get_staff_by_email(invite.email) is None
    password = _json().get("password") or ""
    if sets_password and len(password) < 8:
        raise ValidationError("Password must be at least 8 characters.")

    staff_id = svc.staff.accept_invite(invite_id)
    if sets_password:
        svc.identity.set_password(staff_id, password)
    return jsonify({"ok": True, "id": staff_id})


# -----------------------
# Staff: restaurant settings
# -----------------------
@api.get("/staff/restaurant")
@login_required
def get_restaurant():
    return jsonify(_restaurant().to_json())


@api.patch("/staff/restaurant")
@permission_required(Permission.MANAGE_SETTINGS)
def update_restaurant():
    restaurant = _restaurant()
    updates = _patch(Restaurant, restaurant, _json(), protected=("id", "createdAt", "updatedAt"))
    current_services().restaurants.update_restaurant(restaurant.id, updates)
    return jsonify({"ok": True})
