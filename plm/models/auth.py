"""
Auth Models — users (actors) and their sparse permission overrides.

A user has exactly one coarse ``role``; the effective permissions are that
role's default template merged with the optional ``UserPermissionOverride``
row (see ``plm.services.capabilities.resolve``).

Users are never hard-deleted: deactivation flips ``is_active``.
"""

from datetime import datetime, timezone

from plm.models import db

# ── Constants ────────────────────────────────────────────────────────────────

VALID_ROLES = frozenset({"designer", "constructor", "buyer", "china_office", "factory"})


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    full_name = db.Column(db.String(200))
    role = db.Column(
        db.String(30), nullable=False,
        comment="designer | constructor | buyer | china_office | factory",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    factory_id = db.Column(
        db.Integer, nullable=True,
        comment="Only meaningful when role = factory",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    permission_override = db.relationship(
        "UserPermissionOverride", back_populates="user", uselist=False,
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
            "factory_id": self.factory_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"


# ═══════════════════════════════════════════════════════════════
# 2. PERMISSION OVERRIDES
# ═══════════════════════════════════════════════════════════════
class UserPermissionOverride(db.Model):
    """
    Sparse per-user exceptions to the role default.

    One row per user, keyed by ``user_id``. Each capability column is
    nullable: NULL means "inherit from role", True/False overrides it.
    Column names are the capability names.
    """

    __tablename__ = "user_permission_overrides"

    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
    )

    can_view_dashboard = db.Column(db.Boolean, nullable=True)
    can_view_models = db.Column(db.Boolean, nullable=True)
    can_create_models = db.Column(db.Boolean, nullable=True)
    can_edit_models = db.Column(db.Boolean, nullable=True)
    can_delete_models = db.Column(db.Boolean, nullable=True)
    can_edit_model_status = db.Column(db.Boolean, nullable=True)
    can_view_files = db.Column(db.Boolean, nullable=True)
    can_upload_files = db.Column(db.Boolean, nullable=True)
    can_delete_files = db.Column(db.Boolean, nullable=True)
    can_view_materials = db.Column(db.Boolean, nullable=True)
    can_edit_materials = db.Column(db.Boolean, nullable=True)
    can_delete_materials = db.Column(db.Boolean, nullable=True)
    can_view_comments = db.Column(db.Boolean, nullable=True)
    can_create_comments = db.Column(db.Boolean, nullable=True)
    can_edit_own_comments = db.Column(db.Boolean, nullable=True)
    can_delete_own_comments = db.Column(db.Boolean, nullable=True)
    can_delete_any_comments = db.Column(db.Boolean, nullable=True)
    can_view_collections = db.Column(db.Boolean, nullable=True)
    can_edit_collections = db.Column(db.Boolean, nullable=True)
    can_view_seasons = db.Column(db.Boolean, nullable=True)
    can_edit_seasons = db.Column(db.Boolean, nullable=True)
    can_view_users = db.Column(db.Boolean, nullable=True)
    can_create_users = db.Column(db.Boolean, nullable=True)
    can_edit_users = db.Column(db.Boolean, nullable=True)
    can_delete_users = db.Column(db.Boolean, nullable=True)
    can_approve_as_buyer = db.Column(db.Boolean, nullable=True)
    can_approve_as_constructor = db.Column(db.Boolean, nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", back_populates="permission_override")

    def explicit(self, capability_names) -> dict:
        """Only the capabilities this row actually sets (non-NULL)."""
        out = {}
        for name in capability_names:
            value = getattr(self, name, None)
            if value is not None:
                out[name] = value
        return out

    def __repr__(self):
        return f"<UserPermissionOverride user={self.user_id}>"
