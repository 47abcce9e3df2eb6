"""
Model Service — creation, lookup, visibility and deletion of product models.

Creating a model also creates its ``draft`` lifecycle row and both
``pending`` approval tracks in the same transaction; deleting it removes
all three. Both operations pass the authorization gate.

Factory users only see models assigned to their own factory once the model
has reached ``approved`` or later. A hidden model is reported as not found.
"""

import logging

from plm.core.exceptions import NotFoundError, ValidationError
from plm.models import db
from plm.models.audit import history_for, write_audit
from plm.models.product import (
    APPROVAL_TRACKS,
    FACTORY_VISIBLE_STATUSES,
    INITIAL_APPROVAL_STATUS,
    INITIAL_LIFECYCLE_STATUS,
    PRODUCT_TYPES,
    ApprovalTrack,
    ModelLifecycle,
    ProductModel,
)
from plm.services.capabilities import Capability
from plm.services.lifecycle_service import normalize_status

logger = logging.getLogger(__name__)

HISTORY_ACTIONS = (
    "model.create",
    "model.status_change",
    "approval.buyer.decide",
    "approval.constructor.decide",
)


def is_visible_to(actor, model: ProductModel) -> bool:
    if actor.role != "factory":
        return True
    status = model.lifecycle.status if model.lifecycle else None
    return (
        status in FACTORY_VISIBLE_STATUSES
        and actor.factory_id is not None
        and model.assigned_factory_id == actor.factory_id
    )


def create_model(gate, actor, data: dict) -> ProductModel:
    """Create a model with its lifecycle and both approval tracks.

    Required: ``model_number``. Optional: ``model_name``, ``product_type``,
    ``designer_id``, ``assigned_factory_id``.
    """
    gate.require(actor, Capability.CREATE_MODELS)

    model_number = (data.get("model_number") or "").strip()
    if not model_number:
        raise ValidationError("model_number is required", details={"model_number": None})
    product_type = data.get("product_type")
    if product_type is not None and product_type not in PRODUCT_TYPES:
        raise ValidationError(
            f"Invalid product_type '{product_type}'. "
            f"Must be one of: {', '.join(sorted(PRODUCT_TYPES))}",
            details={"product_type": product_type},
        )
    if ProductModel.query.filter_by(model_number=model_number).first():
        raise ValidationError(
            f"Model number '{model_number}' already exists",
            details={"model_number": model_number},
        )

    model = ProductModel(
        model_number=model_number,
        model_name=data.get("model_name"),
        product_type=product_type,
        designer_id=data.get("designer_id") or (actor.id if actor.role == "designer" else None),
        created_by=actor.id,
        assigned_factory_id=data.get("assigned_factory_id"),
    )
    model.lifecycle = ModelLifecycle(status=INITIAL_LIFECYCLE_STATUS, changed_by=actor.id)
    model.approval_tracks = [
        ApprovalTrack(track=name, status=INITIAL_APPROVAL_STATUS) for name in APPROVAL_TRACKS
    ]
    db.session.add(model)
    db.session.flush()

    write_audit(
        entity_type="model",
        entity_id=model.id,
        action="model.create",
        actor_user_id=actor.id,
        diff={"status": {"old": None, "new": INITIAL_LIFECYCLE_STATUS}},
    )
    db.session.commit()

    logger.info(
        "Model %s created", model_number,
        extra={"model_id": model.id, "actor_id": actor.id, "event_type": "model.create"},
    )
    return model


def get_model(gate, actor, model_id: int) -> ProductModel:
    gate.require(actor, Capability.VIEW_MODELS)
    model = db.session.get(ProductModel, model_id)
    if model is None or not is_visible_to(actor, model):
        raise NotFoundError(resource="Model", resource_id=model_id)
    return model


def list_models(gate, actor, status=None) -> list[ProductModel]:
    """Models the actor may see, newest first, optionally by lifecycle status."""
    gate.require(actor, Capability.VIEW_MODELS)

    query = ProductModel.query.join(ModelLifecycle)
    if status:
        query = query.filter(ModelLifecycle.status == normalize_status(status))
    if actor.role == "factory":
        if actor.factory_id is None:
            return []
        query = query.filter(
            ModelLifecycle.status.in_(sorted(FACTORY_VISIBLE_STATUSES)),
            ProductModel.assigned_factory_id == actor.factory_id,
        )
    return query.order_by(ProductModel.created_at.desc(), ProductModel.id.desc()).all()


def delete_model(gate, actor, model_id: int) -> None:
    """Delete a model; its lifecycle and tracks go with it."""
    gate.require(actor, Capability.DELETE_MODELS)

    model = db.session.get(ProductModel, model_id)
    if model is None:
        raise NotFoundError(resource="Model", resource_id=model_id)

    write_audit(
        entity_type="model",
        entity_id=model.id,
        action="model.delete",
        actor_user_id=actor.id,
        diff={
            "model_number": {"old": model.model_number, "new": None},
            "status": {"old": model.lifecycle.status if model.lifecycle else None, "new": None},
        },
    )
    db.session.delete(model)
    db.session.commit()

    logger.info(
        "Model %s deleted", model_id,
        extra={"model_id": model_id, "actor_id": actor.id, "event_type": "model.delete"},
    )


def get_history(gate, actor, model_id: int) -> list[dict]:
    """Lifecycle and approval history of a model, oldest first."""
    get_model(gate, actor, model_id)
    return [row.to_dict() for row in history_for("model", model_id, HISTORY_ACTIONS)]
