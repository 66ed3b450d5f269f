"""
Service-wide exception hierarchy.

Every service raises these types; blueprints register handlers against
them once and get consistent HTTP status codes everywhere.

Usage:
    from montage_flow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Montage", resource_id="4f1c...")
    raise ValidationError("label is required", details={"label": "empty"})

HTTP mapping (see montage_flow.utils.errors):
    NotFoundError                 404
    ValidationError               422
    UnknownStatusError            400
    PolicyViolationError          409
    ConcurrentModificationError   409
    ForbiddenError                403
"""


class NotFoundError(Exception):
    """Raised when a requested montage, checklist item or rule does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Montage", "ChecklistItem").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Examples: an empty template label, deleting a locked template,
    attaching a file to an item that does not allow attachments.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class UnknownStatusError(Exception):
    """Raised when a requested status is neither a stage nor a terminal state.

    The request is rejected, never coerced to a nearby status.
    """

    def __init__(self, status: str | None) -> None:
        self.status = status
        super().__init__(f"Unknown status: {status!r}")


class PolicyViolationError(Exception):
    """Raised when a transition guard is not satisfied.

    Args:
        message: Explanation shown inline to the operator.
        policy: Key of the policy that blocked the transition.
    """

    def __init__(self, message: str, policy: str | None = None) -> None:
        self.policy = policy
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the caller's role may not perform the operation."""

    def __init__(self, message: str = "Administrator role required", role: str | None = None) -> None:
        self.role = role
        super().__init__(message)


class ConcurrentModificationError(Exception):
    """Raised when a save carries a stale ``updated_at`` for the montage.

    Args:
        resource_id: Montage id.
        expected: The ``updated_at`` the caller based its change on.
        actual: The ``updated_at`` currently stored.
    """

    def __init__(self, resource_id: str, expected: str | None, actual: str | None) -> None:
        self.resource_id = resource_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Montage id={resource_id} was modified concurrently "
            f"(expected updated_at={expected}, stored={actual})"
        )
