"""
Authorization Gate — the single checkpoint for every mutating operation.

    allow  iff  actor.is_active  and  store.get_permissions(actor.id)[capability]

Deactivated actors are denied every capability regardless of what the store
says. Checks are synchronous and read current stored state; there are no
retries and no caching: every check asks the injected store.

Usage:
    gate = AuthorizationGate(DatabasePermissionStore())
    gate.require(actor, Capability.DELETE_MODELS)      # raises ForbiddenError
    if gate.authorize(actor, "can_upload_files"): ...

The gate for the running app is built by ``init_app`` and fetched with
``current_gate()``; tests construct their own around a fake store.
"""

import logging

from flask import current_app

from plm.core.exceptions import ForbiddenError, ValidationError
from plm.models.product import APPROVAL_TRACKS
from plm.services.capabilities import Capability, parse_capability
from plm.services.permission_store import DatabasePermissionStore, PermissionStore

logger = logging.getLogger(__name__)

EXTENSION_KEY = "plm.authorization_gate"

TRACK_CAPABILITY = {
    "buyer": Capability.APPROVE_AS_BUYER,
    "constructor": Capability.APPROVE_AS_CONSTRUCTOR,
}


def capability_for_track(track: str) -> Capability:
    if track not in TRACK_CAPABILITY:
        raise ValidationError(
            f"Unknown approval track '{track}'. Must be one of: {', '.join(APPROVAL_TRACKS)}",
            details={"track": track},
        )
    return TRACK_CAPABILITY[track]


class AuthorizationGate:
    """Combines actor state with the store's resolved permissions."""

    def __init__(self, store: PermissionStore):
        self.store = store

    def authorize(self, actor, capability: str | Capability) -> bool:
        cap = parse_capability(capability)
        if actor is None or not actor.is_active:
            return False
        return self.store.get_permissions(actor.id)[cap] is True

    def require(self, actor, capability: str | Capability) -> None:
        """Raise ForbiddenError unless ``authorize`` allows."""
        cap = parse_capability(capability)
        if self.authorize(actor, cap):
            return
        actor_id = getattr(actor, "id", None)
        reason = "inactive" if actor is not None and not actor.is_active else "missing_capability"
        logger.warning(
            "User %s denied: %s '%s'", actor_id, reason, cap.value,
            extra={"actor_id": actor_id, "capability": cap.value, "event_type": "authz.deny"},
        )
        raise ForbiddenError(actor_id=actor_id, capability=cap.value, reason=reason)

    def authorize_approval_decision(self, actor, track: str) -> bool:
        return self.authorize(actor, capability_for_track(track))

    def authorize_status_change(self, actor) -> bool:
        return self.authorize(actor, Capability.EDIT_MODEL_STATUS)

    def require_approval_decision(self, actor, track: str) -> None:
        self.require(actor, capability_for_track(track))

    def require_status_change(self, actor) -> None:
        self.require(actor, Capability.EDIT_MODEL_STATUS)


def init_app(app, store: PermissionStore | None = None) -> AuthorizationGate:
    """Build the app's gate around ``store`` (database-backed by default)."""
    if store is None:
        store = DatabasePermissionStore()
    gate = AuthorizationGate(store)
    app.extensions[EXTENSION_KEY] = gate
    return gate


def current_gate() -> AuthorizationGate:
    return current_app.extensions[EXTENSION_KEY]
