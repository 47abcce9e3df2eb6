"""
Capability vocabulary — PermissionSet and role-default templates.

The capability set is closed: ``Capability`` enumerates every permission bit
the platform knows, and ``PermissionSet`` is a frozen record with exactly one
boolean field per capability. Anything not named here does not exist, and
anything not granted is denied.

Resolution order for one capability (``resolve``):
    1. the actor's override, when it defines the capability (True/False)
    2. the role-default template for the actor's role
    3. False

Usage:
    from plm.services.capabilities import Capability, resolve

    perms = resolve("designer", {"can_upload_files": False})
    perms[Capability.CREATE_MODELS]        # True  (designer default)
    perms.can_upload_files                 # False (override wins)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum


class Capability(str, Enum):
    # General
    VIEW_DASHBOARD = "can_view_dashboard"
    # Models
    VIEW_MODELS = "can_view_models"
    CREATE_MODELS = "can_create_models"
    EDIT_MODELS = "can_edit_models"
    DELETE_MODELS = "can_delete_models"
    EDIT_MODEL_STATUS = "can_edit_model_status"
    # Files
    VIEW_FILES = "can_view_files"
    UPLOAD_FILES = "can_upload_files"
    DELETE_FILES = "can_delete_files"
    # Materials
    VIEW_MATERIALS = "can_view_materials"
    EDIT_MATERIALS = "can_edit_materials"
    DELETE_MATERIALS = "can_delete_materials"
    # Comments
    VIEW_COMMENTS = "can_view_comments"
    CREATE_COMMENTS = "can_create_comments"
    EDIT_OWN_COMMENTS = "can_edit_own_comments"
    DELETE_OWN_COMMENTS = "can_delete_own_comments"
    DELETE_ANY_COMMENTS = "can_delete_any_comments"
    # Collections / seasons
    VIEW_COLLECTIONS = "can_view_collections"
    EDIT_COLLECTIONS = "can_edit_collections"
    VIEW_SEASONS = "can_view_seasons"
    EDIT_SEASONS = "can_edit_seasons"
    # Users
    VIEW_USERS = "can_view_users"
    CREATE_USERS = "can_create_users"
    EDIT_USERS = "can_edit_users"
    DELETE_USERS = "can_delete_users"
    # Approvals
    APPROVE_AS_BUYER = "can_approve_as_buyer"
    APPROVE_AS_CONSTRUCTOR = "can_approve_as_constructor"


CAPABILITY_NAMES = frozenset(c.value for c in Capability)

CAPABILITY_GROUPS: dict[str, tuple[Capability, ...]] = {
    "general": (Capability.VIEW_DASHBOARD,),
    "models": (
        Capability.VIEW_MODELS, Capability.CREATE_MODELS, Capability.EDIT_MODELS,
        Capability.DELETE_MODELS, Capability.EDIT_MODEL_STATUS,
    ),
    "files": (Capability.VIEW_FILES, Capability.UPLOAD_FILES, Capability.DELETE_FILES),
    "materials": (
        Capability.VIEW_MATERIALS, Capability.EDIT_MATERIALS, Capability.DELETE_MATERIALS,
    ),
    "comments": (
        Capability.VIEW_COMMENTS, Capability.CREATE_COMMENTS, Capability.EDIT_OWN_COMMENTS,
        Capability.DELETE_OWN_COMMENTS, Capability.DELETE_ANY_COMMENTS,
    ),
    "collections": (
        Capability.VIEW_COLLECTIONS, Capability.EDIT_COLLECTIONS,
        Capability.VIEW_SEASONS, Capability.EDIT_SEASONS,
    ),
    "users": (
        Capability.VIEW_USERS, Capability.CREATE_USERS,
        Capability.EDIT_USERS, Capability.DELETE_USERS,
    ),
    "approvals": (Capability.APPROVE_AS_BUYER, Capability.APPROVE_AS_CONSTRUCTOR),
}


def parse_capability(value: str | Capability) -> Capability:
    """Coerce a capability name; raises ValueError for names outside the vocabulary."""
    if isinstance(value, Capability):
        return value
    return Capability(value)


@dataclass(frozen=True)
class PermissionSet:
    """Resolved permissions for one actor: one field per ``Capability``."""

    can_view_dashboard: bool = False
    can_view_models: bool = False
    can_create_models: bool = False
    can_edit_models: bool = False
    can_delete_models: bool = False
    can_edit_model_status: bool = False
    can_view_files: bool = False
    can_upload_files: bool = False
    can_delete_files: bool = False
    can_view_materials: bool = False
    can_edit_materials: bool = False
    can_delete_materials: bool = False
    can_view_comments: bool = False
    can_create_comments: bool = False
    can_edit_own_comments: bool = False
    can_delete_own_comments: bool = False
    can_delete_any_comments: bool = False
    can_view_collections: bool = False
    can_edit_collections: bool = False
    can_view_seasons: bool = False
    can_edit_seasons: bool = False
    can_view_users: bool = False
    can_create_users: bool = False
    can_edit_users: bool = False
    can_delete_users: bool = False
    can_approve_as_buyer: bool = False
    can_approve_as_constructor: bool = False

    def __getitem__(self, capability: str | Capability) -> bool:
        return getattr(self, parse_capability(capability).value)

    @classmethod
    def from_grants(cls, granted) -> PermissionSet:
        """Build a set where exactly the given capabilities are True."""
        names = {parse_capability(c).value for c in granted}
        return cls(**{name: True for name in names})

    def granted(self) -> frozenset[Capability]:
        return frozenset(c for c in Capability if getattr(self, c.value))

    def to_dict(self) -> dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ═════════════════════════════════════════════════════════════════════════════
# Role defaults: one row per role, auditable as data
# ═════════════════════════════════════════════════════════════════════════════

USER_ROLES = ("designer", "constructor", "buyer", "china_office", "factory")

_EVERYONE = (
    Capability.VIEW_DASHBOARD,
    Capability.VIEW_MODELS,
    Capability.VIEW_FILES,
    Capability.VIEW_MATERIALS,
    Capability.VIEW_COMMENTS,
    Capability.CREATE_COMMENTS,
    Capability.EDIT_OWN_COMMENTS,
    Capability.DELETE_OWN_COMMENTS,
    Capability.VIEW_COLLECTIONS,
    Capability.VIEW_SEASONS,
)

_ROLE_GRANTS: dict[str, tuple[Capability, ...]] = {
    "designer": _EVERYONE + (
        Capability.CREATE_MODELS,
        Capability.EDIT_MODELS,
        Capability.UPLOAD_FILES,
        Capability.DELETE_FILES,
        Capability.EDIT_MATERIALS,
        Capability.DELETE_MATERIALS,
    ),
    "constructor": _EVERYONE + (
        Capability.EDIT_MODELS,
        Capability.UPLOAD_FILES,
        Capability.EDIT_MATERIALS,
        Capability.APPROVE_AS_CONSTRUCTOR,
    ),
    # Buyer is the administrative role: everything except the constructor lane.
    "buyer": tuple(c for c in Capability if c is not Capability.APPROVE_AS_CONSTRUCTOR),
    "china_office": _EVERYONE + (Capability.UPLOAD_FILES,),
    "factory": _EVERYONE,
}

ROLE_DEFAULTS: dict[str, dict[Capability, bool]] = {
    role: {c: c in grants for c in Capability}
    for role, grants in _ROLE_GRANTS.items()
}


def role_default(role: str | None) -> PermissionSet:
    """Template for ``role``; unknown roles get the all-deny set."""
    template = ROLE_DEFAULTS.get(role or "", {})
    return PermissionSet(**{c.value: granted for c, granted in template.items()})


def resolve(role: str | None, overrides: Mapping | None) -> PermissionSet:
    """Merge a role default with a sparse override mapping.

    Total by construction: unknown roles resolve to deny, override keys
    outside the vocabulary are ignored, and override values that are not
    booleans (``None`` included) mean "inherit".
    """
    base = role_default(role)
    if not overrides:
        return base

    merged = base.to_dict()
    for key, value in overrides.items():
        name = key.value if isinstance(key, Capability) else key
        if name in CAPABILITY_NAMES and isinstance(value, bool):
            merged[name] = value
    return PermissionSet(**merged)
