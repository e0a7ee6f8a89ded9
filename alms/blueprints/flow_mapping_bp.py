"""
Flow Mapping Blueprint — which roles each role may forward files to.

Endpoints:
    GET    /api/v1/flow-mapping
           Returns: 200 with every role that has next roles.

    GET    /api/v1/roles/<id>/next-roles
           Returns: 200 {current_role_id, current_role_code, next_roles: [...]}

    PUT    /api/v1/roles/<id>/next-roles                       (ADMIN)
           Body: { "nextRoleIds": [4, 5] }
           Returns: 200 with the new mapping
                    422 when a role id is unknown or the mapping closes a cycle

    POST   /api/v1/flow-mapping/validate
           Body: { "currentRoleId": 3, "nextRoleIds": [4, 5] }
           Returns: 200 {is_valid, has_circular_dependency, circle_path, message}

    POST   /api/v1/flow-mapping/<source>/duplicate/<target>    (ADMIN)
    POST   /api/v1/flow-mapping/<id>/reset                     (ADMIN)
    DELETE /api/v1/roles/<id>/next-roles                       (ADMIN)

Layer contract:
    - Blueprint: parse input, call flow_mapping_service, render JSON.
    - Cycle detection and existence checks live in the service.
"""

import logging

from flask import Blueprint, g, jsonify, request

from alms.core.exceptions import NotFoundError, ValidationError
from alms.middleware.permission_required import require_role
from alms.services import flow_mapping_service
from alms.utils.errors import E, api_error

logger = logging.getLogger(__name__)

flow_mapping_bp = Blueprint("flow_mapping", __name__, url_prefix="/api/v1")


# ── Error handlers ─────────────────────────────────────────────────────────────


@flow_mapping_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@flow_mapping_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_RULE, str(error), details=error.details)


# ── Helpers ────────────────────────────────────────────────────────────────────


def _role_ids(data: dict):
    """``nextRoleIds`` as a list of ints.  Returns (value, err_response)."""
    raw = data.get("nextRoleIds", data.get("next_role_ids"))
    if raw is None:
        return None, api_error(E.VALIDATION_REQUIRED, "Field 'nextRoleIds' is required.")
    if not isinstance(raw, list) or any(isinstance(i, bool) or not isinstance(i, int) for i in raw):
        return None, api_error(E.VALIDATION_INVALID, "Field 'nextRoleIds' must be a list of integers.")
    return raw, None


# ── Read ───────────────────────────────────────────────────────────────────────


@flow_mapping_bp.route("/flow-mapping", methods=["GET"])
def list_flow_mappings():
    items = flow_mapping_service.list_mappings()
    return jsonify({"items": items, "total": len(items)}), 200


@flow_mapping_bp.route("/roles/<int:role_id>/next-roles", methods=["GET"])
def get_next_roles(role_id: int):
    return jsonify(flow_mapping_service.get_next_roles(role_id)), 200


@flow_mapping_bp.route("/flow-mapping/validate", methods=["POST"])
def validate_flow_mapping():
    data = request.get_json(silent=True) or {}
    role_id = data.get("currentRoleId", data.get("current_role_id"))
    if role_id is None:
        return api_error(E.VALIDATION_REQUIRED, "Field 'currentRoleId' is required.")
    if isinstance(role_id, bool) or not isinstance(role_id, int):
        return api_error(E.VALIDATION_INVALID, "Field 'currentRoleId' must be an integer.")
    next_role_ids, err = _role_ids(data)
    if err:
        return err
    return jsonify(flow_mapping_service.validate_mapping(role_id, next_role_ids)), 200


# ── Write (ADMIN) ──────────────────────────────────────────────────────────────


@flow_mapping_bp.route("/roles/<int:role_id>/next-roles", methods=["PUT"])
@require_role("ADMIN")
def update_next_roles(role_id: int):
    data = request.get_json(silent=True) or {}
    next_role_ids, err = _role_ids(data)
    if err:
        return err
    mapping = flow_mapping_service.update_next_roles(role_id, next_role_ids, actor_user_id=g.jwt_user_id)
    return jsonify(mapping), 200


@flow_mapping_bp.route("/flow-mapping/<int:source_role_id>/duplicate/<int:target_role_id>", methods=["POST"])
@require_role("ADMIN")
def duplicate_flow_mapping(source_role_id: int, target_role_id: int):
    mapping = flow_mapping_service.duplicate_mapping(
        source_role_id, target_role_id, actor_user_id=g.jwt_user_id
    )
    return jsonify(mapping), 200


@flow_mapping_bp.route("/flow-mapping/<int:role_id>/reset", methods=["POST"])
@flow_mapping_bp.route("/roles/<int:role_id>/next-roles", methods=["DELETE"])
@require_role("ADMIN")
def reset_flow_mapping(role_id: int):
    return jsonify(flow_mapping_service.reset_mapping(role_id, actor_user_id=g.jwt_user_id)), 200
