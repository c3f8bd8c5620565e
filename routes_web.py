import logging

from flask import Blueprint, render_template, request, redirect, url_for, session, flash

import images
import order_status
from auth import AuthStatus, current_staff, login_required, permission_required, sign_in_staff
from cart import Cart, cart_key, cart_items_from_lines
from errors import TableMenuError
from permissions import Permission, permission_table, role_display_name
from pricing import calculate_pricing
from services import current_services

logger = logging.getLogger(__name__)

web = Blueprint("web", __name__)


# -----------------------
# Home
# -----------------------
@web.get("/")
def index():
    return render_template("index.html")


# -----------------------
# Customer menu (reached from the table QR code)
# -----------------------
def _table_context(slug, table_number):
    svc = current_services()
    restaurant = svc.restaurants.require_restaurant_by_slug(slug)
    key = cart_key(restaurant.id, table_number)
    return svc, restaurant, key, Cart(session.get(key))


def _save_cart(key, cart: Cart):
    session[key] = cart.to_session()


@web.get("/r/<slug>/table/<table_number>")
def table_menu(slug, table_number):
    try:
        svc, restaurant, _, cart = _table_context(slug, table_number)
    except TableMenuError as e:
        flash(e.message)
        return redirect(url_for("web.index"))

    selected = request.args.get("category", "").strip()
    categories = svc.menu.get_categories(restaurant.id)
    if selected:
        items = [i for i in svc.menu.get_menu_items_by_category(restaurant.id, selected) if i.available]
    else:
        items = svc.menu.get_available_menu_items(restaurant.id)

    return render_template(
        "menu.html",
        restaurant=restaurant,
        table_number=table_number,
        categories=categories,
        items=items,
        selected=selected,
        cart=cart,
        image_url=images.optimized_image_url,
        srcset=images.responsive_srcset,
    )


# -----------------------
# Cart
# -----------------------
@web.post("/r/<slug>/table/<table_number>/cart/add/<item_id>")
def cart_add(slug, table_number, item_id):
    try:
        svc, restaurant, key, cart = _table_context(slug, table_number)
        line = {
            "id": item_id,
            "quantity": request.form.get("quantity", 1),
            "variant": request.form.get("variant") or None,
            "addons": request.form.getlist("addons"),
        }
        (item,) = cart_items_from_lines(svc.menu, restaurant.id, [line])
    except TableMenuError as e:
        flash(e.message)
        return redirect(url_for("web.table_menu", slug=slug, table_number=table_number))

    cart.add_item(item, item.quantity, variant=item.selected_variant, addons=item.selected_addons)
    _save_cart(key, cart)
    flash(f"Added {item.name} to cart.")
    return redirect(url_for("web.table_menu", slug=slug, table_number=table_number))


@web.get("/r/<slug>/table/<table_number>/cart")
def cart_view(slug, table_number):
    try:
        _, restaurant, _, cart = _table_context(slug, table_number)
    except TableMenuError as e:
        flash(e.message)
        return redirect(url_for("web.index"))

    settings = restaurant.settings
    pricing = calculate_pricing(cart.subtotal, settings.tax_rate, settings.service_charge or 0)
    return render_template(
        "cart.html",
        restaurant=restaurant,
        table_number=table_number,
        cart=cart,
        pricing=pricing,
    )


@web.post("/r/<slug>/table/<table_number>/cart/update/<line>")
def cart_update(slug, table_number, line):
    try:
        _, _, key, cart = _table_context(slug, table_number)
    except TableMenuError as e:
        flash(e.message)
        return redirect(url_for("web.index"))

    action = request.form.get("action", "")
    current = next((i.quantity for i in cart.items if i.line_id == line), 0)
    if action == "inc":
        cart.update_quantity(line, current + 1)
    elif action == "dec":
        cart.update_quantity(line, current - 1)
    if "notes" in request.form:
        cart.update_notes(line, request.form["notes"].strip())

    _save_cart(key, cart)
    return redirect(url_for("web.cart_view", slug=slug, table_number=table_number))


@web.post("/r/<slug>/table/<table_number>/cart/remove/<line>")
def cart_remove(slug, table_number, line):
    try:
        _, _, key, cart = _table_context(slug, table_number)
    except TableMenuError as e:
        flash(e.message)
        return redirect(url_for("web.index"))

    cart.remove_item(line)
    _save_cart(key, cart)
    return redirect(url_for("web.cart_view", slug=slug, table_number=table_number))


# -----------------------
# Checkout
# -----------------------
@web.post("/r/<slug>/table/<table_number>/checkout")
def checkout(slug, table_number):
    try:
        svc, restaurant, key, cart = _table_context(slug, table_number)
    except TableMenuError as e:
        flash(e.message)
        return redirect(url_for("web.index"))

    if cart.is_empty:
        flash("Your cart is empty.")
        return redirect(url_for("web.cart_view", slug=slug, table_number=table_number))

    lines = [
        {
            "id": i.id,
            "quantity": i.quantity,
            "notes": i.notes,
            "variant": i.selected_variant.name if i.selected_variant else None,
            "addons": [a.name for a in i.selected_addons],
        }
        for i in cart.items
    ]
    try:
        # re-read prices and availability from the menu
        cart_items = cart_items_from_lines(svc.menu, restaurant.id, lines)
        order_id = svc.place_table_order(
            restaurant,
            table_number,
            cart_items,
            notes=request.form.get("notes", "").strip() or None,
            customer_name=request.form.get("customer_name", "").strip() or None,
            customer_phone=request.form.get("customer_phone", "").strip() or None,
        )
    except TableMenuError as e:
        flash(e.message)
        return redirect(url_for("web.cart_view", slug=slug, table_number=table_number))

    session.pop(key, None)
    flash("Order placed!")
    return redirect(url_for("web.order_tracking", order_id=order_id))


# -----------------------
# Order tracking
# -----------------------
@web.get("/orders/<order_id>")
def order_tracking(order_id):
    order = current_services().orders.get_order(order_id)
    if order is None:
        flash("Order not found.")
        return redirect(url_for("web.index"))
    return render_template(
        "order.html",
        order=order,
        events_url=url_for("api.order_events", order_id=order_id),
    )


# -----------------------
# Staff auth
# -----------------------
@web.route("/staff/login", methods=["GET", "POST"])
def staff_login():
    if request.method == "POST":
        email = request.form.get("email", "").strip().lower()
        pw = request.form.get("password", "")

        try:
            verified_email = current_services().identity.sign_in(email, pw)
        except TableMenuError as e:
            flash(e.message)
            return redirect(url_for("web.staff_login"))

        result = sign_in_staff(verified_email)
        if result.status == AuthStatus.PENDING_APPROVAL:
            flash("Your account is waiting for approval by an administrator.")
            return redirect(url_for("web.staff_login"))
        if not result.is_authenticated:
            flash("This account is not registered as staff.")
            return redirect(url_for("web.staff_login"))

        flash("Logged in.")
        return redirect(url_for("web.dashboard"))

    return render_template("staff_login.html")


@web.get("/staff/logout")
def staff_logout():
    session.clear()
    flash("Logged out.")
    return redirect(url_for("web.staff_login"))


# -----------------------
# Staff: orders board
# -----------------------
@web.get("/staff")
@login_required
def dashboard():
    staff = current_staff()
    svc = current_services()
    orders = svc.orders.get_active_orders(staff.restaurant_id)

    return render_template(
        "dashboard.html",
        staff=staff,
        role_name=role_display_name(staff.role),
        permissions=permission_table(staff.role),
        orders=orders,
        next_status=order_status.next_status,
    )


@web.post("/staff/orders/<order_id>/advance")
@permission_required(Permission.UPDATE_ORDER_STATUS)
def dashboard_advance(order_id):
    svc = current_services()
    order = svc.orders.get_order(order_id)
    if order is None or order.restaurant_id != current_staff().restaurant_id:
        flash("Order not found.")
        return redirect(url_for("web.dashboard"))

    try:
        order = svc.orders.advance_order(order_id)
        svc.release_table(order)
    except TableMenuError as e:
        flash(e.message)
        return redirect(url_for("web.dashboard"))

    flash(f"Order for table {order.table_number} is now {order.status}.")
    return redirect(url_for("web.dashboard"))


@web.post("/staff/orders/<order_id>/cancel")
@permission_required(Permission.MANAGE_ORDERS)
def dashboard_cancel(order_id):
    svc = current_services()
    order = svc.orders.get_order(order_id)
    if order is None or order.restaurant_id != current_staff().restaurant_id:
        flash("Order not found.")
        return redirect(url_for("web.dashboard"))

    try:
        order = svc.orders.cancel_order(order_id)
        svc.release_table(order)
    except TableMenuError as e:
        flash(e.message)
        return redirect(url_for("web.dashboard"))

    flash(f"Order for table {order.table_number} cancelled.")
    return redirect(url_for("web.dashboard"))
