from datetime import datetime, timedelta, timezone

import pytest

import order_status
from errors import InvalidTransitionError
from schemas import Order, OrderStatus

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _order(status, **kwargs):
    return Order(restaurant_id="r", table_number="1", status=status, **kwargs)


@pytest.mark.parametrize("current,target", [
    ("pending", "confirmed"),
    ("confirmed", "preparing"),
    ("preparing", "ready"),
    ("ready", "served"),
    ("served", "completed"),
    ("pending", "cancelled"),
    ("served", "cancelled"),
])
def test_allowed_transitions(current, target):
    assert order_status.can_transition(current, target)


@pytest.mark.parametrize("current,target", [
    ("pending", "ready"),
    ("ready", "preparing"),
    ("completed", "pending"),
    ("cancelled", "confirmed"),
    ("completed", "cancelled"),
])
def test_rejected_transitions(current, target):
    assert not order_status.can_transition(current, target)
    with pytest.raises(InvalidTransitionError):
        order_status.transition_updates(_order(current), target, NOW)


def test_transition_stamps_timestamp():
    updates = order_status.transition_updates(_order("confirmed"), "preparing", NOW)
    assert updates == {"status": "preparing", "preparedAt": NOW}


def test_cancel_has_no_timestamp():
    assert order_status.transition_updates(_order("ready"), "cancelled", NOW) == {"status": "cancelled"}


def test_same_status_is_noop():
    order = _order("ready", ready_at=NOW)
    assert order_status.transition_updates(order, "ready", NOW + timedelta(minutes=5)) == {}


def test_existing_timestamp_is_kept():
    # confirmedAt already set, e.g. by an earlier write that raced this one
    order = _order("pending", confirmed_at=NOW)
    updates = order_status.transition_updates(order, "confirmed", NOW + timedelta(minutes=1))
    assert updates == {"status": "confirmed"}


def test_next_status():
    assert order_status.next_status("pending") == OrderStatus.CONFIRMED
    assert order_status.next_status("served") == OrderStatus.COMPLETED
    assert order_status.next_status("completed") is None
    assert order_status.next_status("cancelled") is None


def test_terminal():
    assert order_status.is_terminal("completed")
    assert order_status.is_terminal("cancelled")
    assert not order_status.is_terminal("served")


def test_unknown_status():
    with pytest.raises(ValueError):
        order_status.can_transition("pending", "eaten")
