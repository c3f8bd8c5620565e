class TableMenuError(Exception):
    """Base class for errors raised by the ordering services."""

    status_code = 400
    code = "error"

    def __init__(self, message: str = "", **detail):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class ValidationError(TableMenuError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(TableMenuError):
    status_code = 401
    code = "login_required"


class PermissionDeniedError(TableMenuError):
    status_code = 403
    code = "permission_denied"


class NotFoundError(TableMenuError):
    status_code = 404
    code = "not_found"

    def __init__(self, kind: str, ident: str):
        super().__init__(f"{kind} {ident} not found", kind=kind, id=ident)


class InvalidTransitionError(TableMenuError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move order from {current} to {target}",
            current=current,
            target=target,
        )
        self.current = current
        self.target = target


class ConflictError(TableMenuError):
    status_code = 409
    code = "conflict"


class InvalidOrderStateError(ConflictError):
    code = "invalid_order_state"


class StoreError(TableMenuError):
    """The document store failed and retrying did not help."""

    status_code = 503
    code = "store_unavailable"
