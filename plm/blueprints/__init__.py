"""
Apparel PLM Approval Platform
Blueprint registry.
"""

from flask import request

from plm.middleware.jwt_auth import current_actor
from plm.utils.errors import E, api_error


def require_actor():
    """Load the authenticated caller.

    Returns:
        (actor, None) on success, (None, (response, 401)) otherwise.

    Usage:
        actor, err = require_actor()
        if err:
            return err
    """
    actor = current_actor()
    if actor is None:
        return None, api_error(E.UNAUTHENTICATED, "Authentication required")
    return actor, None


def pagination_args(default_limit=50, max_limit=200):
    """Read limit/offset query params.

    Query params:
        limit  — max items (default 50, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset
