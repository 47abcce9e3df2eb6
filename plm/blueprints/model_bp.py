"""
Product Model Blueprint.

Endpoints:
    POST   /api/v1/models                          can_create_models
    GET    /api/v1/models?status=<status>          can_view_models
    GET    /api/v1/models/<id>                     can_view_models
    DELETE /api/v1/models/<id>                     can_delete_models
    GET    /api/v1/models/<id>/history             can_view_models

    PUT    /api/v1/models/<id>/status              can_edit_model_status
           Body: { "status": "<lifecycle status>" }
    GET    /api/v1/models/<id>/approvals/<track>   can_view_models
    PUT    /api/v1/models/<id>/approvals/<track>   can_approve_as_<track>
           Body: { "status": "approved|approved_with_comments|not_approved",
                   "comment": "..." }

Each mutation returns the updated entity and the change event; the event is
then published to in-process subscribers (notifications).

Layer contract:
    - Blueprint: resolve caller, parse JSON, call service, publish event.
    - NO db.session calls here: all writes owned by the services.
    - NO inline capability checks: the services call the authorization gate.
"""

import logging

from flask import Blueprint, jsonify, request

from plm.blueprints import require_actor
from plm.services import approval_service, lifecycle_service, model_service
from plm.services.authorization import current_gate
from plm.services.events import current_dispatcher

logger = logging.getLogger(__name__)

model_bp = Blueprint("model_bp", __name__, url_prefix="/api/v1")


def _publish(event):
    delivered = current_dispatcher().publish(event)
    logger.debug(
        "Change event delivered to %d subscriber(s)", delivered,
        extra={"model_id": event.model_id, "event_type": f"{event.subject}.change"},
    )


# ── Models ──────────────────────────────────────────────────────────────────


@model_bp.route("/models", methods=["POST"])
def create_model():
    actor, err = require_actor()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    model = model_service.create_model(current_gate(), actor, data)
    return jsonify(model.to_dict()), 201


@model_bp.route("/models", methods=["GET"])
def list_models():
    """Models visible to the caller, newest first."""
    actor, err = require_actor()
    if err:
        return err
    models = model_service.list_models(
        current_gate(), actor, status=request.args.get("status") or None,
    )
    return jsonify({"items": [m.to_dict() for m in models], "total": len(models)}), 200


@model_bp.route("/models/<int:model_id>", methods=["GET"])
def get_model(model_id):
    actor, err = require_actor()
    if err:
        return err
    model = model_service.get_model(current_gate(), actor, model_id)
    result = model.to_dict()
    result["approval_summary"] = approval_service.approval_summary(model)
    return jsonify(result), 200


@model_bp.route("/models/<int:model_id>", methods=["DELETE"])
def delete_model(model_id):
    actor, err = require_actor()
    if err:
        return err
    model_service.delete_model(current_gate(), actor, model_id)
    return jsonify({"deleted": True, "id": model_id}), 200


@model_bp.route("/models/<int:model_id>/history", methods=["GET"])
def get_history(model_id):
    """Lifecycle and approval history, oldest first."""
    actor, err = require_actor()
    if err:
        return err
    history = model_service.get_history(current_gate(), actor, model_id)
    return jsonify({"history": history, "total": len(history)}), 200


# ── Lifecycle ───────────────────────────────────────────────────────────────


@model_bp.route("/models/<int:model_id>/status", methods=["PUT"])
def set_status(model_id):
    actor, err = require_actor()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    lifecycle, event = lifecycle_service.set_status(
        current_gate(), model_id, data.get("status"), actor,
    )
    response = {"lifecycle": lifecycle.to_dict(), "event": event.to_dict()}
    _publish(event)
    return jsonify(response), 200


# ── Approval tracks ─────────────────────────────────────────────────────────


@model_bp.route("/models/<int:model_id>/approvals/<track>", methods=["GET"])
def get_approval(model_id, track):
    actor, err = require_actor()
    if err:
        return err
    model_service.get_model(current_gate(), actor, model_id)
    lane = approval_service.get_track(model_id, track)
    return jsonify(lane.to_dict()), 200


@model_bp.route("/models/<int:model_id>/approvals/<track>", methods=["PUT"])
def record_approval(model_id, track):
    """Record a buyer or constructor decision.

    Returns 200 with the lane and the event, 400 on an unknown track or
    status, 403 without the lane's capability, 404 for a missing model.
    """
    actor, err = require_actor()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    lane, event = approval_service.record_decision(
        current_gate(), model_id, track, data.get("status"), actor,
        comment=data.get("comment"),
    )
    response = {"approval": lane.to_dict(), "event": event.to_dict()}
    _publish(event)
    return jsonify(response), 200
