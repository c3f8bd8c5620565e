import logging
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Optional

import google.auth.transport.requests
import requests
from flask import flash, g, redirect, request, session, url_for
from google.oauth2 import id_token
from werkzeug.security import check_password_hash, generate_password_hash

from errors import AuthenticationError, PermissionDeniedError
from firestore_db import USERS
from permissions import has_permission
from schemas import Staff
from services import current_services

logger = logging.getLogger(__name__)

FIREBASE_SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"


def hash_password(pw: str) -> str:
    return generate_password_hash(pw)


def verify_password(pw: str, pw_hash: str) -> bool:
    return check_password_hash(pw_hash, pw)


class AuthStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NOT_STAFF = "not_staff"
    PENDING_APPROVAL = "pending_approval"
    AUTHENTICATED = "authenticated"


@dataclass
class AuthResult:
    status: AuthStatus
    staff: Optional[Staff] = None

    @property
    def is_authenticated(self) -> bool:
        return self.status == AuthStatus.AUTHENTICATED


def resolve_auth_status(staff: Optional[Staff]) -> AuthStatus:
    """A verified identity only becomes a dashboard user through an approved, active staff record."""
    if staff is None or not staff.is_active:
        return AuthStatus.NOT_STAFF
    if not staff.is_approved:
        return AuthStatus.PENDING_APPROVAL
    return AuthStatus.AUTHENTICATED


# -----------------------
# Identity providers
# -----------------------
class FirebaseIdentity:
    """Firebase Authentication: password sign-in over REST, ID tokens checked with google-auth."""

    def __init__(self, api_key: str, project_id: str, timeout: float = 10):
        self.api_key = api_key
        self.project_id = project_id
        self.timeout = timeout
        self._request = google.auth.transport.requests.Request()

    def sign_in(self, email: str, password: str) -> str:
        try:
            resp = requests.post(
                FIREBASE_SIGN_IN_URL,
                params={"key": self.api_key},
                json={"email": email, "password": password, "returnSecureToken": True},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Firebase sign-in request failed: %s", e)
            raise AuthenticationError("Sign-in service unavailable")

        if resp.status_code != 200:
            raise AuthenticationError("Invalid login.")
        return self.verify_token(resp.json()["idToken"])

    def verify_token(self, token: str) -> str:
        try:
            claims = id_token.verify_firebase_token(token, self._request, audience=self.project_id)
        except ValueError as e:
            raise AuthenticationError(f"Invalid ID token: {e}")
        if not claims or not claims.get("email"):
            raise AuthenticationError("ID token has no email")
        return claims["email"].lower()


class LocalIdentity:
    """Password hashes kept on the staff documents, for local development."""

    def __init__(self, store):
        self.store = store

    def set_password(self, staff_id: str, password: str) -> None:
        self.store.update(USERS, staff_id, {"passwordHash": hash_password(password)})

    def sign_in(self, email: str, password: str) -> str:
        email = email.strip().lower()
        docs = self.store.list(USERS, [("email", "==", email)])
        pw_hash = next((d["passwordHash"] for d in docs if d.get("passwordHash")), None)
        if not pw_hash or not verify_password(password, pw_hash):
            raise AuthenticationError("Invalid login.")
        return email

    def verify_token(self, token: str) -> str:
        raise AuthenticationError("Token sign-in is not available with local accounts")


# -----------------------
# Session
# -----------------------
def sign_in_staff(email: str) -> AuthResult:
    """Match a verified email to its staff record and open a session if it is approved."""
    svc = current_services()
    staff = svc.staff.get_staff_by_email(email)
    status = resolve_auth_status(staff)

    session.clear()
    if status != AuthStatus.AUTHENTICATED:
        logger.info("Sign-in for %s refused: %s", email, status.value)
        return AuthResult(status, staff)

    svc.staff.update_last_login(staff.id)
    session["staff_id"] = staff.id
    session["role"] = staff.role
    logger.info("Staff %s signed in as %s", staff.id, staff.role)
    return AuthResult(status, staff)


def current_staff() -> Optional[Staff]:
    if "staff" in g:
        return g.staff

    staff = None
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        svc = current_services()
        email = svc.identity.verify_token(header[len("Bearer "):])
        candidate = svc.staff.get_staff_by_email(email)
        if resolve_auth_status(candidate) == AuthStatus.AUTHENTICATED:
            staff = candidate
    elif session.get("staff_id"):
        candidate = current_services().staff.get_staff_by_id(session["staff_id"])
        # approval can be withdrawn while a session is open
        if resolve_auth_status(candidate) == AuthStatus.AUTHENTICATED:
            staff = candidate
        else:
            session.clear()

    g.staff = staff
    return staff


def _is_api() -> bool:
    return request.blueprint == "api"


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_staff() is None:
            if _is_api():
                raise AuthenticationError("Please login first.")
            flash("Please login first.")
            return redirect(url_for("web.staff_login"))
        return fn(*args, **kwargs)
    return wrapper


def permission_required(*permissions):
    def decorator(fn):
        @wraps(fn)
        @login_required
        def wrapper(*args, **kwargs):
            staff = current_staff()
            missing = [p for p in permissions if not has_permission(staff.role, p)]
            if missing:
                if _is_api():
                    raise PermissionDeniedError(
                        "Your role cannot do this.", missing=[p.value for p in missing]
                    )
                flash("You do not have access to that page.")
                return redirect(url_for("web.dashboard"))
            return fn(*args, **kwargs)
        return wrapper
    return decorator
