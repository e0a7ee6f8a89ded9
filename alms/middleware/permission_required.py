"""
Role Decorators — restrict a route to officers of given roles.

Usage:
    @flow_mapping_bp.route("/roles/<int:role_id>/next-roles", methods=["PUT"])
    @require_role("ADMIN")
    def update_next_roles(role_id): ...

The role is looked up in the directory for g.jwt_user_id on every call;
the role claim inside the token is not trusted, so a demoted or
deactivated officer loses access immediately.
"""

import functools
import logging

from flask import g

from alms.services.user_directory import SqlUserDirectory
from alms.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_role(*role_codes: str):
    """Decorator: the authenticated officer's active role must be one of *role_codes*."""
    allowed = frozenset(c.upper() for c in role_codes)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_id = getattr(g, "jwt_user_id", None)
            if user_id is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")

            role = SqlUserDirectory(hierarchy=None).resolve_role(user_id)
            if role not in allowed:
                logger.warning(
                    "User %s (role %s) denied on %s: requires %s",
                    user_id, role, f.__name__, sorted(allowed),
                )
                return api_error(E.FORBIDDEN, "Permission denied", required=sorted(allowed))

            return f(*args, **kwargs)
        return decorated
    return decorator
