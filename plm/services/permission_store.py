"""
Permission Store — per-user override storage and resolution.

``PermissionStore`` is the contract the authorization gate depends on; the
gate never reaches for a global. ``DatabasePermissionStore`` backs it with
the ``users`` and ``user_permission_overrides`` tables: two primary-key
lookups per check, no resolved-permission cache. Every worker process
therefore sees a grant or revoke as soon as it is committed.

Override writes accumulate: only keys present in the incoming map change,
and ``None`` clears a key back to "inherit from role".
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Optional

from plm.core.exceptions import NotFoundError, ValidationError
from plm.models import db
from plm.models.auth import User, UserPermissionOverride
from plm.services.capabilities import (
    CAPABILITY_NAMES,
    Capability,
    PermissionSet,
    resolve,
)

logger = logging.getLogger(__name__)


def validate_overrides(overrides) -> dict[str, Optional[bool]]:
    """Normalise an incoming override map or raise ValidationError.

    Keys must name a capability; values must be ``True``, ``False`` or
    ``None`` (inherit).
    """
    if not isinstance(overrides, Mapping):
        raise ValidationError("Permission overrides must be an object")

    normalised: dict[str, Optional[bool]] = {}
    unknown = []
    bad_values = {}
    for key, value in overrides.items():
        name = key.value if isinstance(key, Capability) else key
        if name not in CAPABILITY_NAMES:
            unknown.append(name)
            continue
        if value is not None and not isinstance(value, bool):
            bad_values[name] = value
            continue
        normalised[name] = value

    if unknown:
        raise ValidationError(
            f"Unknown capability: {', '.join(sorted(map(str, unknown)))}",
            details={"unknown": sorted(map(str, unknown))},
        )
    if bad_values:
        raise ValidationError(
            "Permission values must be true, false or null",
            details={"invalid": bad_values},
        )
    return normalised


class PermissionStore(ABC):
    """Contract consulted by ``AuthorizationGate`` on every check."""

    @abstractmethod
    def get_permissions(self, actor_id: int) -> PermissionSet:
        """Resolved capability set; unknown actors resolve to deny-all."""

    @abstractmethod
    def get_overrides(self, actor_id: int) -> dict[str, bool]:
        """Only the explicitly overridden capabilities."""

    @abstractmethod
    def set_overrides(self, actor_id: int, overrides: Mapping) -> PermissionSet:
        """Merge ``overrides`` into the actor's record and return the new set."""

    def invalidate(self, actor_id: int) -> None:
        """Hook called after a role change or deactivation of ``actor_id``.

        Stores that keep a derived view of an actor drop it here. Such a
        view must be shared by every process serving the gate.
        """


class DatabasePermissionStore(PermissionStore):
    """Flask-SQLAlchemy backed store; every read hits the current rows."""

    # ── Reads ────────────────────────────────────────────────────────────

    def get_permissions(self, actor_id: int) -> PermissionSet:
        user = db.session.get(User, actor_id)
        if user is None:
            return PermissionSet()

        row = db.session.get(UserPermissionOverride, actor_id)
        overrides = row.explicit(CAPABILITY_NAMES) if row is not None else None
        return resolve(user.role, overrides)

    def get_overrides(self, actor_id: int) -> dict[str, bool]:
        row = db.session.get(UserPermissionOverride, actor_id)
        if row is None:
            return {}
        return row.explicit(sorted(CAPABILITY_NAMES))

    # ── Writes ───────────────────────────────────────────────────────────

    def set_overrides(self, actor_id: int, overrides: Mapping) -> PermissionSet:
        changes = validate_overrides(overrides)

        user = db.session.get(User, actor_id)
        if user is None:
            raise NotFoundError(resource="User", resource_id=actor_id)

        row = db.session.get(UserPermissionOverride, actor_id)
        if row is None:
            row = UserPermissionOverride(user_id=actor_id)
            db.session.add(row)
        for name, value in changes.items():
            setattr(row, name, value)
        db.session.flush()

        logger.info(
            "Permission overrides updated",
            extra={"actor_id": actor_id, "event_type": "permissions.override"},
        )
        return self.get_permissions(actor_id)
