import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from errors import ConflictError, NotFoundError, ValidationError
from firestore_db import STAFF_INVITES, USERS, Unsubscribe
from permissions import Role
from schemas import InviteStatus, Staff, StaffInvite

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StaffService:
    def __init__(self, store, invite_ttl_days: int = 7):
        self.store = store
        self.invite_ttl_days = invite_ttl_days

    # -----------------------
    # staff
    # -----------------------
    def get_staff(self, restaurant_id: str) -> List[Staff]:
        return self._list(
            [("restaurantId", "==", restaurant_id), ("isActive", "==", True)],
            [("name", "asc")],
        )

    def get_approved_staff(self, restaurant_id: str) -> List[Staff]:
        return self._list([
            ("restaurantId", "==", restaurant_id),
            ("isActive", "==", True),
            ("isApproved", "==", True),
        ])

    def get_pending_staff(self, restaurant_id: str) -> List[Staff]:
        return self._list([
            ("restaurantId", "==", restaurant_id),
            ("isActive", "==", True),
            ("isApproved", "==", False),
        ])

    def get_staff_by_email(self, email: str) -> Optional[Staff]:
        staff = self._list([("email", "==", email.strip().lower()), ("isActive", "==", True)])
        return staff[0] if staff else None

    def get_staff_by_id(self, staff_id: str) -> Optional[Staff]:
        return Staff.from_document(self.store.get(USERS, staff_id))

    def require_staff(self, staff_id: str) -> Staff:
        staff = self.get_staff_by_id(staff_id)
        if staff is None:
            raise NotFoundError("Staff", staff_id)
        return staff

    def get_staff_by_role(self, restaurant_id: str, role) -> List[Staff]:
        return self._list([
            ("restaurantId", "==", restaurant_id),
            ("role", "==", Role(role).value),
            ("isActive", "==", True),
            ("isApproved", "==", True),
        ])

    def create_staff(self, staff: Staff) -> str:
        staff = staff.model_copy(update={"email": staff.email.strip().lower()})
        return self.store.add(USERS, staff.to_document())

    def update_staff(self, staff_id: str, data: dict) -> None:
        self.store.update(USERS, staff_id, data)

    def approve_staff(self, staff_id: str, approved_by: str) -> None:
        self.store.update(USERS, staff_id, {
            "isApproved": True,
            "approvedBy": approved_by,
            "approvedAt": _now(),
        })
        logger.info("Staff %s approved by %s", staff_id, approved_by)

    def deactivate_staff(self, staff_id: str) -> None:
        self.store.update(USERS, staff_id, {"isActive": False})

    def change_staff_role(self, staff_id: str, new_role) -> None:
        self.store.update(USERS, staff_id, {"role": Role(new_role).value})

    def update_last_login(self, staff_id: str) -> None:
        self.store.update(USERS, staff_id, {"lastLoginAt": _now()})

    def subscribe_to_staff(self, restaurant_id: str, callback: Callable[[List[Staff]], None]) -> Unsubscribe:
        return self.store.subscribe_collection(
            USERS,
            lambda docs: callback([Staff.from_document(d) for d in docs]),
            [("restaurantId", "==", restaurant_id), ("isActive", "==", True)],
        )

    def register_staff_from_oauth(
        self, restaurant_id: str, email: str, name: str, role=Role.WAITER
    ) -> str:
        """Self-registration after sign-in; the record waits for admin approval."""
        if self.get_staff_by_email(email):
            raise ValidationError("Staff member with this email already exists", email=email)

        return self.create_staff(Staff(
            restaurant_id=restaurant_id,
            email=email,
            name=name,
            role=Role(role),
            is_active=True,
            is_approved=False,
        ))

    # -----------------------
    # invites
    # -----------------------
    def create_invite(self, restaurant_id: str, email: str, name: str, role, invited_by: str) -> str:
        now = _now()
        invite = StaffInvite(
            restaurant_id=restaurant_id,
            email=email.strip().lower(),
            name=name,
            role=Role(role),
            invited_by=invited_by,
            invited_at=now,
            expires_at=now + timedelta(days=self.invite_ttl_days),
            status=InviteStatus.PENDING,
        )
        return self.store.add(STAFF_INVITES, invite.to_document())

    def get_invite(self, invite_id: str) -> Optional[StaffInvite]:
        return StaffInvite.from_document(self.store.get(STAFF_INVITES, invite_id))

    def get_pending_invites(self, restaurant_id: str) -> List[StaffInvite]:
        docs = self.store.list(STAFF_INVITES, [
            ("restaurantId", "==", restaurant_id),
            ("status", "==", InviteStatus.PENDING.value),
        ])
        return [StaffInvite.from_document(d) for d in docs]

    def accept_invite(self, invite_id: str) -> str:
        """
        Accept a pending invite and create its (already approved) staff record.
        Returns the staff id. Expired invites are marked expired and rejected.
        An unapproved registration at the same restaurant is approved in place;
        any other account with the email is left alone and the invite refused.
        """
        invite = self.get_invite(invite_id)
        if invite is None:
            raise NotFoundError("Invite", invite_id)
        if invite.status != InviteStatus.PENDING:
            raise ConflictError(f"Invite {invite_id} is {invite.status}")

        now = _now()
        if invite.expires_at < now:
            self.store.update(STAFF_INVITES, invite_id, {"status": InviteStatus.EXPIRED.value})
            raise ConflictError(f"Invite {invite_id} has expired")

        existing = self.get_staff_by_email(invite.email)
        if existing and (existing.restaurant_id != invite.restaurant_id or existing.is_approved):
            raise ConflictError(f"{invite.email} already has a staff account", email=invite.email)
        if existing:
            # a pending self-registration at the same restaurant
            staff_id = existing.id
            self.update_staff(staff_id, {"role": Role(invite.role).value})
            self.approve_staff(staff_id, invite.invited_by)
        else:
            staff_id = self.create_staff(Staff(
                restaurant_id=invite.restaurant_id,
                email=invite.email,
                name=invite.name,
                role=Role(invite.role),
                is_active=True,
                is_approved=True,
                approved_by=invite.invited_by,
                approved_at=now,
            ))

        self.store.update(STAFF_INVITES, invite_id, {
            "status": InviteStatus.ACCEPTED.value,
            "acceptedAt": now,
        })
        return staff_id

    def cancel_invite(self, invite_id: str) -> None:
        self.store.update(STAFF_INVITES, invite_id, {"status": InviteStatus.CANCELLED.value})

    def _list(self, filters, order_by=()) -> List[Staff]:
        return [Staff.from_document(d) for d in self.store.list(USERS, filters, order_by)]
