"""
Product model domain — models, their lifecycle record and approval tracks.

A ``ProductModel`` owns exactly one ``ModelLifecycle`` and exactly two
``ApprovalTrack`` rows (buyer, constructor). Lifecycle and tracks are
siblings: neither drives the other. Deleting the model cascades to all three.

State vocabularies live here next to the tables that store them, the same
way every other status column in the platform keeps its constants beside
its model.
"""

from datetime import datetime, timezone

from plm.models import db

# ── Constants ────────────────────────────────────────────────────────────────

# Ordered conceptually; not enforced as forward-only.
LIFECYCLE_STATUSES = ("draft", "under_review", "approved", "ds", "pps", "in_production")
INITIAL_LIFECYCLE_STATUS = "draft"

# Spellings used by earlier clients, normalised on input.
LIFECYCLE_STATUS_ALIASES = {
    "pending_review": "under_review",
    "ds_stage": "ds",
    "pps_stage": "pps",
}

# Statuses a factory user may see models in.
FACTORY_VISIBLE_STATUSES = frozenset({"approved", "ds", "pps", "in_production"})

APPROVAL_TRACKS = ("buyer", "constructor")
APPROVAL_STATUSES = ("pending", "approved", "approved_with_comments", "not_approved")
DECISION_STATUSES = frozenset({"approved", "approved_with_comments", "not_approved"})
INITIAL_APPROVAL_STATUS = "pending"

PRODUCT_TYPES = frozenset({"textile", "denim", "sweater", "knitwear"})


class ProductModel(db.Model):
    """An apparel model moving through design → production."""

    __tablename__ = "product_models"

    id = db.Column(db.Integer, primary_key=True)
    model_number = db.Column(db.String(100), unique=True, nullable=False)
    model_name = db.Column(db.String(255), nullable=True)
    product_type = db.Column(
        db.String(30), nullable=True, comment="textile | denim | sweater | knitwear",
    )
    designer_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    assigned_factory_id = db.Column(db.Integer, nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    lifecycle = db.relationship(
        "ModelLifecycle", back_populates="model", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )
    approval_tracks = db.relationship(
        "ApprovalTrack", back_populates="model",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="ApprovalTrack.track",
    )

    def track(self, name: str):
        for t in self.approval_tracks:
            if t.track == name:
                return t
        return None

    def to_dict(self, include_workflow=True):
        d = {
            "id": self.id,
            "model_number": self.model_number,
            "model_name": self.model_name,
            "product_type": self.product_type,
            "designer_id": self.designer_id,
            "created_by": self.created_by,
            "assigned_factory_id": self.assigned_factory_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_workflow:
            d["lifecycle"] = self.lifecycle.to_dict() if self.lifecycle else None
            d["approvals"] = {t.track: t.to_dict() for t in self.approval_tracks}
        return d

    def __repr__(self):
        return f"<ProductModel {self.id}: {self.model_number}>"


class ModelLifecycle(db.Model):
    """Coarse production stage of one model; history lives in the audit log."""

    __tablename__ = "model_lifecycles"

    id = db.Column(db.Integer, primary_key=True)
    model_id = db.Column(
        db.Integer, db.ForeignKey("product_models.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    status = db.Column(
        db.String(20), nullable=False, default=INITIAL_LIFECYCLE_STATUS,
        comment="draft | under_review | approved | ds | pps | in_production",
    )
    changed_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    changed_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    model = db.relationship("ProductModel", back_populates="lifecycle")

    def to_dict(self):
        return {
            "model_id": self.model_id,
            "status": self.status,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }

    def __repr__(self):
        return f"<ModelLifecycle model={self.model_id} {self.status}>"


class ApprovalTrack(db.Model):
    """
    One sign-off lane (buyer or constructor) on a model.

    ``decided_by`` / ``decided_at`` are populated only once the lane has left
    ``pending``; every later decision overwrites them (last write wins).
    """

    __tablename__ = "approval_tracks"

    id = db.Column(db.Integer, primary_key=True)
    model_id = db.Column(
        db.Integer, db.ForeignKey("product_models.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    track = db.Column(db.String(20), nullable=False, comment="buyer | constructor")
    status = db.Column(
        db.String(30), nullable=False, default=INITIAL_APPROVAL_STATUS,
        comment="pending | approved | approved_with_comments | not_approved",
    )
    comment = db.Column(db.Text, nullable=True)
    decided_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    model = db.relationship("ProductModel", back_populates="approval_tracks")

    __table_args__ = (
        db.UniqueConstraint("model_id", "track", name="uq_approval_model_track"),
    )

    def to_dict(self):
        return {
            "model_id": self.model_id,
            "track": self.track,
            "status": self.status,
            "comment": self.comment,
            "decided_by": self.decided_by,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }

    def __repr__(self):
        return f"<ApprovalTrack model={self.model_id} {self.track}={self.status}>"
