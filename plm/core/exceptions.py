"""
Platform-wide exception hierarchy.

Every service raises one of these three types; the application factory
registers a handler for each once, so the HTTP layer maps them to distinct
responses everywhere:

    ForbiddenError   -> 403  (capability missing or actor deactivated)
    NotFoundError    -> 404  (model / track / actor missing)
    ValidationError  -> 400  (unrecognised enum value, malformed payload)

Usage:
    from plm.core.exceptions import ForbiddenError, NotFoundError, ValidationError

    raise NotFoundError(resource="Model", resource_id=42)
    raise ValidationError("Unknown status 'done'", details={"status": "done"})
    raise ForbiddenError(actor_id=7, capability="can_delete_models")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Model", "ApprovalTrack").
        resource_id: The key that was looked up. Included in logs and message.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input carries a value outside a closed vocabulary.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are field names; values are the offending input.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the authorization gate denies an action.

    ``reason`` is ``"inactive"`` when the actor is deactivated and
    ``"missing_capability"`` otherwise, so callers can tell the two apart
    without parsing the message.
    """

    def __init__(
        self,
        actor_id: int | None,
        capability: str,
        reason: str = "missing_capability",
    ) -> None:
        self.actor_id = actor_id
        self.capability = capability
        self.reason = reason
        if reason == "inactive":
            msg = f"User {actor_id} is deactivated"
        else:
            msg = f"User {actor_id} lacks permission '{capability}'"
        super().__init__(msg)
