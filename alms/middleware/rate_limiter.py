"""
Rate limiting configuration.

The Limiter instance is created in alms/__init__.py with no default
limits; this module applies per-route limits:

    - Workflow action submission: ACTION_RATE_LIMIT (default 60/minute)
    - Health checks:              exempt

Keyed by the authenticated user when there is one, else the remote IP.

Usage:
    from alms.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)


def rate_limit_key():
    """Authenticated user id if available, else remote IP."""
    user_id = getattr(g, "jwt_user_id", None)
    if user_id:
        return f"user:{user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """Apply limits to registered routes.  Disabled in testing mode."""
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    action_limit = app.config.get("ACTION_RATE_LIMIT", "60/minute")
    view = app.view_functions.get("workflow.submit_action")
    if view is not None:
        app.view_functions["workflow.submit_action"] = limiter.limit(
            action_limit, key_func=rate_limit_key
        )(view)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — workflow actions: %s", action_limit)
