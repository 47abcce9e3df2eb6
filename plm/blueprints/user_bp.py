"""
User & Permission Blueprint.

Endpoints:
    POST   /api/v1/users                        can_create_users
           Body: { "email", "role", "full_name"?, "factory_id"?,
                   "permissions"?: { "<capability>": true|false|null } }
    GET    /api/v1/users                        can_view_users
    GET    /api/v1/users/<id>                   self, or can_view_users
    PUT    /api/v1/users/<id>                   can_edit_users
    DELETE /api/v1/users/<id>                   can_delete_users (deactivates)

    GET    /api/v1/users/<id>/permissions       self, or can_view_users
    PUT    /api/v1/users/<id>/permissions       can_edit_users
           Body: { "permissions": { "<capability>": true|false|null } }
           (a bare capability map is accepted as well)
"""

import logging

from flask import Blueprint, jsonify, request

from plm.blueprints import require_actor
from plm.services import user_service
from plm.services.authorization import current_gate

logger = logging.getLogger(__name__)

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1")


@user_bp.route("/users", methods=["POST"])
def create_user():
    actor, err = require_actor()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    user = user_service.create_user(current_gate(), actor, data)
    return jsonify(user.to_dict()), 201


@user_bp.route("/users", methods=["GET"])
def list_users():
    actor, err = require_actor()
    if err:
        return err
    include_inactive = request.args.get("include_inactive", "true").lower() != "false"
    users = user_service.list_users(current_gate(), actor, include_inactive=include_inactive)
    return jsonify({"items": [u.to_dict() for u in users], "total": len(users)}), 200


@user_bp.route("/users/<int:user_id>", methods=["GET"])
def get_user(user_id):
    actor, err = require_actor()
    if err:
        return err
    user = user_service.get_user(current_gate(), actor, user_id)
    return jsonify(user.to_dict()), 200


@user_bp.route("/users/<int:user_id>", methods=["PUT"])
def update_user(user_id):
    actor, err = require_actor()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    user = user_service.update_user(current_gate(), actor, user_id, data)
    return jsonify(user.to_dict()), 200


@user_bp.route("/users/<int:user_id>", methods=["DELETE"])
def deactivate_user(user_id):
    actor, err = require_actor()
    if err:
        return err
    user = user_service.deactivate_user(current_gate(), actor, user_id)
    return jsonify(user.to_dict()), 200


# ── Permissions ─────────────────────────────────────────────────────────────


@user_bp.route("/users/<int:user_id>/permissions", methods=["GET"])
def get_permissions(user_id):
    actor, err = require_actor()
    if err:
        return err
    return jsonify(user_service.get_permissions(current_gate(), actor, user_id)), 200


@user_bp.route("/users/<int:user_id>/permissions", methods=["PUT"])
def update_permissions(user_id):
    """Merge explicit overrides; ``null`` resets a capability to its role default."""
    actor, err = require_actor()
    if err:
        return err
    data = request.get_json(silent=True)
    if isinstance(data, dict) and "permissions" in data:
        data = data["permissions"]
    result = user_service.update_permissions(current_gate(), actor, user_id, data)
    return jsonify(result), 200
