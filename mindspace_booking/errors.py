"""Errors raised by the booking core.

Every error is terminal for the request that triggered it. Callers must treat
``Forbidden`` and ``NotFound`` the same way; ``NotFound`` subclasses
``Forbidden`` so a single ``except Forbidden`` covers both without revealing
whether a hidden record exists.
"""


class BookingError(Exception):
    """Base class for all booking core errors."""
    pass


class Unauthenticated(BookingError):
    """Raised when no valid principal is attached to the request."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class Forbidden(BookingError):
    """Raised when the principal is authenticated but not allowed."""

    def __init__(self, message: str = "Operation not permitted"):
        super().__init__(message)


class NotFound(Forbidden):
    """Raised when a record is absent or invisible to the caller."""

    def __init__(self, what: str = "Record"):
        super().__init__(f"{what} not found")


class InvalidTransition(BookingError):
    """Raised when a status change is not in the transition table."""

    def __init__(self, current, target, message: str | None = None):
        self.current = current
        self.target = target
        if message is None:
            message = f"Cannot move booking from '{_value(current)}' to '{_value(target)}'"
        super().__init__(message)


class ValidationError(BookingError):
    """Raised when input violates a field constraint."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(f"{field}: {message}" if field else message)


class ConflictError(BookingError):
    """Raised when a precondition no longer holds at application time."""
    pass


def _value(status) -> str:
    return getattr(status, "value", status)
