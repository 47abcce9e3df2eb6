"""
User Service — actor administration and permission overrides.

All operations pass the authorization gate:

    create_user          can_create_users
    update_user          can_edit_users
    deactivate_user      can_delete_users   (soft: users are never removed)
    get_permissions      self, or can_view_users
    update_permissions   can_edit_users

Role and activation changes reach the gate on its next check; the store is
still told (``invalidate``) in case it keeps a per-actor view.
"""

import logging

from email_validator import EmailNotValidError, validate_email

from plm.core.exceptions import NotFoundError, ValidationError
from plm.models import db
from plm.models.audit import write_audit
from plm.models.auth import VALID_ROLES, User
from plm.services.capabilities import Capability

logger = logging.getLogger(__name__)


def _validate_role(role) -> str:
    if not isinstance(role, str) or role not in VALID_ROLES:
        raise ValidationError(
            f"Invalid role '{role}'. Must be one of: {', '.join(sorted(VALID_ROLES))}",
            details={"role": role},
        )
    return role


def _load(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def get_user(gate, actor, user_id: int) -> User:
    if actor is None or actor.id != user_id:
        gate.require(actor, Capability.VIEW_USERS)
    return _load(user_id)


def list_users(gate, actor, include_inactive: bool = True) -> list[User]:
    gate.require(actor, Capability.VIEW_USERS)
    query = User.query
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(User.id.asc()).all()


def create_user(gate, actor, data: dict) -> User:
    """Create an actor, optionally with initial permission overrides.

    Required: ``email``, ``role``. ``factory_id`` is kept only for factory users.
    """
    gate.require(actor, Capability.CREATE_USERS)

    email = (data.get("email") or "").strip()
    if not email:
        raise ValidationError("email is required", details={"email": None})
    try:
        email = validate_email(email, check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": email})
    role = _validate_role(data.get("role"))
    if User.query.filter_by(email=email).first():
        raise ValidationError(f"User with email '{email}' already exists", details={"email": email})

    user = User(
        email=email,
        full_name=data.get("full_name"),
        role=role,
        is_active=True,
        factory_id=data.get("factory_id") if role == "factory" else None,
    )
    db.session.add(user)
    db.session.flush()

    overrides = data.get("permissions")
    if overrides:
        gate.store.set_overrides(user.id, overrides)

    write_audit(
        entity_type="user",
        entity_id=user.id,
        action="user.create",
        actor_user_id=actor.id,
        diff={"role": {"old": None, "new": role}, "permissions": overrides or {}},
    )
    db.session.commit()
    logger.info("User %s created with role %s", user.id, role, extra={"actor_id": actor.id})
    return user


def update_user(gate, actor, user_id: int, data: dict) -> User:
    """Update name, role, activation or factory binding."""
    gate.require(actor, Capability.EDIT_USERS)
    user = _load(user_id)

    diff = {}
    if "full_name" in data and data["full_name"] != user.full_name:
        diff["full_name"] = {"old": user.full_name, "new": data["full_name"]}
        user.full_name = data["full_name"]
    if "role" in data and data["role"] != user.role:
        role = _validate_role(data["role"])
        diff["role"] = {"old": user.role, "new": role}
        user.role = role
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise ValidationError("is_active must be a boolean", details={"is_active": data["is_active"]})
        if data["is_active"] != user.is_active:
            diff["is_active"] = {"old": user.is_active, "new": data["is_active"]}
            user.is_active = data["is_active"]
    if "factory_id" in data and data["factory_id"] != user.factory_id:
        diff["factory_id"] = {"old": user.factory_id, "new": data["factory_id"]}
        user.factory_id = data["factory_id"]
    if user.role != "factory" and user.factory_id is not None:
        diff["factory_id"] = {"old": user.factory_id, "new": None}
        user.factory_id = None

    if diff:
        write_audit(
            entity_type="user",
            entity_id=user.id,
            action="user.update",
            actor_user_id=actor.id,
            diff=diff,
        )
    db.session.commit()
    gate.store.invalidate(user.id)
    return user


def deactivate_user(gate, actor, user_id: int) -> User:
    """Soft delete: the user stays, every capability is denied from now on."""
    gate.require(actor, Capability.DELETE_USERS)
    user = _load(user_id)
    if user.is_active:
        user.is_active = False
        write_audit(
            entity_type="user",
            entity_id=user.id,
            action="user.deactivate",
            actor_user_id=actor.id,
            diff={"is_active": {"old": True, "new": False}},
        )
        db.session.commit()
    gate.store.invalidate(user.id)
    logger.info("User %s deactivated", user.id, extra={"actor_id": actor.id})
    return user


def get_permissions(gate, actor, user_id: int) -> dict:
    """Resolved capability map plus the explicit overrides behind it."""
    user = get_user(gate, actor, user_id)
    return {
        "user_id": user.id,
        "role": user.role,
        "permissions": gate.store.get_permissions(user.id).to_dict(),
        "overrides": gate.store.get_overrides(user.id),
    }


def update_permissions(gate, actor, user_id: int, overrides) -> dict:
    """Merge ``overrides`` into the user's record (``None`` = inherit)."""
    gate.require(actor, Capability.EDIT_USERS)
    _load(user_id)

    before = gate.store.get_overrides(user_id)
    perms = gate.store.set_overrides(user_id, overrides)
    after = gate.store.get_overrides(user_id)
    write_audit(
        entity_type="user",
        entity_id=user_id,
        action="user.permissions_update",
        actor_user_id=actor.id,
        diff={
            name: {"old": before.get(name), "new": after.get(name)}
            for name in sorted(set(before) | set(after))
            if before.get(name) != after.get(name)
        },
    )
    db.session.commit()
    return {
        "user_id": user_id,
        "permissions": perms.to_dict(),
        "overrides": after,
        # The caller's client-side permission view is stale: it must re-fetch.
        "refresh_self": actor.id == user_id,
    }
