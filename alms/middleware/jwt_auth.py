"""
JWT Auth Middleware — verifies the bearer token and sets g.jwt_user_id.

Every /api/v1/ route except the health checks requires
``Authorization: Bearer <token>``.  The workflow never trusts a user id
taken from the request body, a query string or a cookie: the actor is
always ``g.jwt_user_id``.
"""

import logging

import jwt as pyjwt
from flask import g, request

from alms.services.jwt_service import decode_access_token
from alms.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT verification as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_role = None

        path = request.path
        if not path.startswith("/api/v1/") or path.startswith(JWT_SKIP_PREFIXES):
            return None
        if request.method == "OPTIONS":
            return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return api_error(E.UNAUTHORIZED, "Bearer token required")

        try:
            payload = decode_access_token(auth_header[7:])
            g.jwt_user_id = int(payload["sub"])
            g.jwt_role = payload.get("role")
        except pyjwt.ExpiredSignatureError:
            return api_error(E.TOKEN_EXPIRED, "Token expired")
        except (pyjwt.InvalidTokenError, KeyError, ValueError):
            logger.info("Rejected invalid bearer token on %s", path)
            return api_error(E.UNAUTHORIZED, "Invalid token")
        return None
