"""
Apparel PLM Approval Platform
Notification Blueprint.

In-app notifications produced by lifecycle changes and approval decisions.
Callers only ever see their own notifications.
"""

import logging

from flask import Blueprint, jsonify, request

from plm.blueprints import pagination_args, require_actor
from plm.services.notification import NotificationService
from plm.utils.errors import E, api_error

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """Caller's notifications, newest first.

    Query params:
        unread_only  — "true" to hide read notifications
        limit/offset — pagination
    """
    actor, err = require_actor()
    if err:
        return err
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    limit, offset = pagination_args()
    items = NotificationService.list_for_recipient(
        actor.id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": len(items)}), 200


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    actor, err = require_actor()
    if err:
        return err
    notif = NotificationService.mark_read(notification_id, actor.id)
    if notif is None:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify(notif.to_dict()), 200
