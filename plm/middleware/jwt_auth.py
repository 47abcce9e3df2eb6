"""
JWT Auth Middleware — parses the Bearer token, sets ``g.actor_id``.

The middleware only establishes identity. It never blocks a request:
endpoints that need a caller use ``require_actor()``, which answers 401
when no valid identity is present. Capability checks happen later, in the
authorization gate.
"""

import logging

import jwt as pyjwt
from flask import g, request

from plm.models import db
from plm.models.auth import User
from plm.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.actor_id = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "
        try:
            payload = decode_access_token(token)
            g.actor_id = int(payload.get("sub"))
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", path)
        except (pyjwt.InvalidTokenError, TypeError, ValueError):
            logger.warning("Invalid access token on %s", path)


def current_actor():
    """The authenticated ``User`` or None."""
    actor_id = getattr(g, "actor_id", None)
    if actor_id is None:
        return None
    return db.session.get(User, actor_id)
