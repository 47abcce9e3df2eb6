"""
Model Lifecycle Service — coarse production stage of a model.

    draft → under_review → approved → ds → pps → in_production

The order is conceptual only. Any actor holding ``can_edit_model_status``
may set any of the six values directly, including moving backwards
(e.g. pps → ds) to correct what happened on the factory floor. Do not add
a forward-only rule here without a product decision.

Each change records ``(status, changed_by, changed_at)`` on the lifecycle
row; the previous value is written to the audit log only.
"""

import logging
from datetime import datetime, timezone

from plm.core.exceptions import NotFoundError, ValidationError
from plm.models import db
from plm.models.audit import write_audit
from plm.models.product import (
    LIFECYCLE_STATUS_ALIASES,
    LIFECYCLE_STATUSES,
    ProductModel,
)
from plm.services.events import ChangeEvent

logger = logging.getLogger(__name__)


def normalize_status(value) -> str:
    """Map input onto the lifecycle vocabulary or raise ValidationError."""
    status = value.strip() if isinstance(value, str) else ""
    status = LIFECYCLE_STATUS_ALIASES.get(status, status)
    if status not in LIFECYCLE_STATUSES:
        raise ValidationError(
            f"Invalid status '{value}'. Must be one of: {', '.join(LIFECYCLE_STATUSES)}",
            details={"status": value},
        )
    return status


def set_status(gate, model_id: int, new_status, actor, *, now: datetime | None = None):
    """Set the lifecycle status of a model.

    Raises:
        ValidationError: ``new_status`` is not a lifecycle value.
        ForbiddenError: actor lacks ``can_edit_model_status`` or is inactive.
        NotFoundError: model (or its lifecycle row) does not exist.

    Returns:
        (ModelLifecycle, ChangeEvent)
    """
    status = normalize_status(new_status)
    gate.require_status_change(actor)

    model = db.session.get(ProductModel, model_id)
    if model is None:
        raise NotFoundError(resource="Model", resource_id=model_id)
    lifecycle = model.lifecycle
    if lifecycle is None:
        raise NotFoundError(resource="ModelLifecycle", resource_id=model_id)

    old_status = lifecycle.status
    now = now or datetime.now(timezone.utc)
    lifecycle.status = status
    lifecycle.changed_by = actor.id
    lifecycle.changed_at = now

    write_audit(
        entity_type="model",
        entity_id=model.id,
        action="model.status_change",
        actor_user_id=actor.id,
        diff={"status": {"old": old_status, "new": status}},
    )
    db.session.commit()

    logger.info(
        "Model status changed %s -> %s", old_status, status,
        extra={"model_id": model.id, "actor_id": actor.id, "event_type": "lifecycle.change"},
    )
    event = ChangeEvent(
        model_id=model.id,
        subject="lifecycle",
        old_value=old_status,
        new_value=status,
        actor_id=actor.id,
        occurred_at=now,
    )
    return lifecycle, event

