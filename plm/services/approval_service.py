"""
Approval Track Service — buyer / constructor sign-off lanes.

Each model carries two independent lanes created as ``pending``:

    pending → approved | approved_with_comments | not_approved

Decided lanes stay open for re-review: any decided status may be replaced
by any other decided status. Only ``record_decision`` mutates a lane.

Business rules enforced here (not in the blueprint):
    - buyer lane requires ``can_approve_as_buyer``; constructor lane requires
      ``can_approve_as_constructor``. Holding one does not imply the other.
    - ``comment`` is optional for every status, ``not_approved`` included;
      blank comments are stored as NULL.
    - Concurrent decisions on the same lane are last-write-wins.
"""

import logging
from datetime import datetime, timezone

from plm.core.exceptions import NotFoundError, ValidationError
from plm.models import db
from plm.models.audit import write_audit
from plm.models.product import (
    DECISION_STATUSES,
    ApprovalTrack,
    ProductModel,
)
from plm.services.authorization import capability_for_track
from plm.services.events import ChangeEvent

logger = logging.getLogger(__name__)


def _validate_decision(status) -> str:
    if not isinstance(status, str) or status not in DECISION_STATUSES:
        raise ValidationError(
            f"Invalid approval status '{status}'. "
            f"Must be one of: {', '.join(sorted(DECISION_STATUSES))}",
            details={"status": status},
        )
    return status


def record_decision(
    gate,
    model_id: int,
    track: str,
    new_status,
    actor,
    comment: str | None = None,
    *,
    now: datetime | None = None,
):
    """Record a buyer or constructor decision on a model.

    Raises:
        ValidationError: unknown track, or status outside the decided set.
        ForbiddenError: actor lacks the lane's capability or is inactive.
        NotFoundError: model or lane does not exist.

    Returns:
        (ApprovalTrack, ChangeEvent)
    """
    capability_for_track(track)
    status = _validate_decision(new_status)
    gate.require_approval_decision(actor, track)

    model = db.session.get(ProductModel, model_id)
    if model is None:
        raise NotFoundError(resource="Model", resource_id=model_id)
    lane = model.track(track)
    if lane is None:
        raise NotFoundError(resource="ApprovalTrack", resource_id=f"{model_id}/{track}")

    old_status = lane.status
    old_comment = lane.comment
    comment = (comment or "").strip() or None
    now = now or datetime.now(timezone.utc)

    lane.status = status
    lane.comment = comment
    lane.decided_by = actor.id
    lane.decided_at = now

    write_audit(
        entity_type="model",
        entity_id=model.id,
        action=f"approval.{track}.decide",
        actor_user_id=actor.id,
        diff={
            "status": {"old": old_status, "new": status},
            "comment": {"old": old_comment, "new": comment},
        },
    )
    db.session.commit()

    logger.info(
        "Approval recorded on %s track: %s -> %s", track, old_status, status,
        extra={"model_id": model.id, "actor_id": actor.id, "event_type": f"approval.{track}"},
    )
    event = ChangeEvent(
        model_id=model.id,
        subject=track,
        old_value=old_status,
        new_value=status,
        actor_id=actor.id,
        comment=comment,
        occurred_at=now,
    )
    return lane, event


def get_track(model_id: int, track: str) -> ApprovalTrack:
    capability_for_track(track)
    lane = ApprovalTrack.query.filter_by(model_id=model_id, track=track).first()
    if lane is None:
        raise NotFoundError(resource="ApprovalTrack", resource_id=f"{model_id}/{track}")
    return lane


def approval_summary(model: ProductModel) -> dict:
    """Per-lane status plus whether both lanes signed off."""
    lanes = {t.track: t.status for t in model.approval_tracks}
    signed = {"approved", "approved_with_comments"}
    return {
        "tracks": lanes,
        "fully_approved": bool(lanes) and all(s in signed for s in lanes.values()),
        "any_rejected": any(s == "not_approved" for s in lanes.values()),
    }
