"""
Apparel PLM Approval Platform
Audit domain model.

Models:
    - AuditLog: immutable, append-only trail of every gated mutation.

The lifecycle record keeps only the current status; previous values are
recovered from here (``diff_json`` carries ``{field: {old, new}}``).
"""

import json
from datetime import datetime, timezone

from plm.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"model", "user"}

AUDIT_ACTIONS = {
    # Model lifecycle
    "model.create",
    "model.delete",
    "model.status_change",
    # Approval tracks
    "approval.buyer.decide",
    "approval.constructor.decide",
    # Users
    "user.create",
    "user.update",
    "user.deactivate",
    "user.permissions_update",
}


class AuditLog(db.Model):
    """
    Immutable audit trail: one row per action.

    ``entity_id`` is deliberately not a foreign key so history survives
    model deletion.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor_user_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference
    entity_type = db.Column(db.String(30), nullable=False, comment="model | user")
    entity_id = db.Column(db.String(36), nullable=False)

    # What happened
    action = db.Column(
        db.String(60), nullable=False,
        comment="model.status_change | approval.buyer.decide | …",
    )
    actor_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="NULL for system entries",
    )

    # Change payload
    diff_json = db.Column(db.Text, default="{}", comment="JSON: {field: {old, new}}")

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor_user_id: int | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_user_id=actor_user_id,
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log


def history_for(entity_type: str, entity_id, actions=None) -> list[AuditLog]:
    """Audit rows for one entity, oldest first."""
    query = AuditLog.query.filter_by(entity_type=entity_type, entity_id=str(entity_id))
    if actions:
        query = query.filter(AuditLog.action.in_(list(actions)))
    return query.order_by(AuditLog.timestamp.asc(), AuditLog.id.asc()).all()
