from datetime import datetime, timedelta, timezone

import pytest

from errors import ConflictError, NotFoundError, ValidationError
from permissions import Role
from schemas import Staff
from staff_service import StaffService


@pytest.fixture
def staff(store):
    return StaffService(store, invite_ttl_days=7)


def test_registration_waits_for_approval(staff):
    staff_id = staff.register_staff_from_oauth("r", "New@Example.com", "Nia")
    member = staff.get_staff_by_id(staff_id)
    assert member.email == "new@example.com"
    assert member.is_approved is False
    assert [m.id for m in staff.get_pending_staff("r")] == [staff_id]

    staff.approve_staff(staff_id, "admin-1")
    member = staff.get_staff_by_id(staff_id)
    assert member.is_approved is True
    assert member.approved_by == "admin-1"
    assert member.approved_at is not None
    assert [m.id for m in staff.get_approved_staff("r")] == [staff_id]


def test_duplicate_registration(staff):
    staff.register_staff_from_oauth("r", "a@example.com", "A")
    with pytest.raises(ValidationError):
        staff.register_staff_from_oauth("r", "A@example.com", "A again")


def test_roles_and_deactivation(staff):
    staff_id = staff.create_staff(Staff(restaurant_id="r", email="w@example.com", name="W", is_approved=True))
    staff.change_staff_role(staff_id, "kitchen")
    assert [m.id for m in staff.get_staff_by_role("r", Role.KITCHEN)] == [staff_id]

    staff.deactivate_staff(staff_id)
    assert staff.get_staff("r") == []
    assert staff.get_staff_by_email("w@example.com") is None


def test_unknown_role(staff):
    with pytest.raises(ValueError):
        staff.change_staff_role("x", "owner")


def test_accept_invite_creates_approved_staff(staff):
    invite_id = staff.create_invite("r", "Chef@Example.com", "Carl", Role.KITCHEN, "admin-1")
    invite = staff.get_invite(invite_id)
    assert invite.expires_at - invite.invited_at == timedelta(days=7)
    assert [i.id for i in staff.get_pending_invites("r")] == [invite_id]

    staff_id = staff.accept_invite(invite_id)
    member = staff.get_staff_by_id(staff_id)
    assert member.email == "chef@example.com"
    assert member.role == "kitchen"
    assert member.is_approved is True
    assert staff.get_invite(invite_id).status == "accepted"
    assert staff.get_pending_invites("r") == []

    with pytest.raises(ConflictError):
        staff.accept_invite(invite_id)


def test_accept_invite_approves_existing_registration(staff):
    staff_id = staff.register_staff_from_oauth("r", "x@example.com", "X")
    invite_id = staff.create_invite("r", "x@example.com", "X", Role.MANAGER, "admin-1")
    assert staff.accept_invite(invite_id) == staff_id
    member = staff.get_staff_by_id(staff_id)
    assert member.is_approved is True
    assert member.role == "manager"


def test_invite_for_other_restaurant_account_is_refused(staff):
    staff_id = staff.create_staff(Staff(
        restaurant_id="r", email="ada@example.com", name="Ada", role="admin", is_approved=True,
    ))
    invite_id = staff.create_invite("other", "ada@example.com", "Ada", Role.WAITER, "admin-2")
    with pytest.raises(ConflictError):
        staff.accept_invite(invite_id)

    member = staff.get_staff_by_id(staff_id)
    assert member.restaurant_id == "r"
    assert member.role == "admin"
    assert staff.get_invite(invite_id).status == "pending"


def test_invite_for_approved_account_is_refused(staff):
    staff_id = staff.create_staff(Staff(
        restaurant_id="r", email="wes@example.com", name="Wes", role="waiter", is_approved=True,
    ))
    invite_id = staff.create_invite("r", "wes@example.com", "Wes", Role.MANAGER, "admin-1")
    with pytest.raises(ConflictError):
        staff.accept_invite(invite_id)
    assert staff.get_staff_by_id(staff_id).role == "waiter"


def test_invite_for_pending_registration_elsewhere_is_refused(staff):
    staff_id = staff.register_staff_from_oauth("r", "nia@example.com", "Nia")
    invite_id = staff.create_invite("other", "nia@example.com", "Nia", Role.WAITER, "admin-2")
    with pytest.raises(ConflictError):
        staff.accept_invite(invite_id)
    member = staff.get_staff_by_id(staff_id)
    assert member.restaurant_id == "r"
    assert member.is_approved is False


def test_expired_invite(staff, store):
    invite_id = staff.create_invite("r", "late@example.com", "Late", Role.WAITER, "admin-1")
    store.update("staffInvites", invite_id, {"expiresAt": datetime.now(timezone.utc) - timedelta(minutes=1)})

    with pytest.raises(ConflictError):
        staff.accept_invite(invite_id)
    assert staff.get_invite(invite_id).status == "expired"
    assert staff.get_staff_by_email("late@example.com") is None


def test_cancelled_invite(staff):
    invite_id = staff.create_invite("r", "c@example.com", "C", Role.WAITER, "admin-1")
    staff.cancel_invite(invite_id)
    with pytest.raises(ConflictError):
        staff.accept_invite(invite_id)


def test_missing_invite(staff):
    with pytest.raises(NotFoundError):
        staff.accept_invite("nope")
