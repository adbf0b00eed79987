"""
Planner-wide exception hierarchy.

Services raise these types; the plan service boundary converts them into
structured ``{"success": False, ...}`` results and blueprints map the result
kind onto an HTTP status code.

Usage:
    from orgplan.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Plan", resource_id="proposal-q1")
    raise ValidationError("Invalid email address", details={"email": "..."})
"""


class NotFoundError(Exception):
    """Raised when a plan, table or permission row does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Plan", "Permission entry").
        resource_id: The identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" {resource_id!r}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a planner rule.

    Examples: malformed email, unknown permission level, plan id outside the
    slug alphabet, deleting the live ``current`` plan.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Args:
        resource: Entity name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class AuthorizationError(Exception):
    """Raised when the caller's permission level does not allow an action."""

    def __init__(self, action: str, permission: str | None = None) -> None:
        self.action = action
        self.permission = permission
        super().__init__(f"Permission denied: '{action}' requires owner or edit access")


class StoreAccessError(Exception):
    """Raised when the tabular store is unreachable or returns malformed data.

    Wraps the backend exception in ``__cause__``; never retried internally.
    """


class TokenInvalidError(Exception):
    """Raised when a share token is blank or unknown."""


class TokenExpiredError(Exception):
    """Raised when a share token is older than its validity window."""

    def __init__(self, token: str, age_seconds: float) -> None:
        self.token = token
        self.age_seconds = age_seconds
        super().__init__(f"Share token expired {age_seconds:.0f}s after issue")
