"""
Workflow Blueprint — licence application review endpoints.

Endpoints:
    POST   /api/v1/applications
           Body: { "applicantName": "...", "licenceType": "...", "attachments": [...] }
           Returns: 201 with the new DRAFT application held by the caller.

    GET    /api/v1/applications/<id>
           Returns: 200 with the application and its full history.

    GET    /api/v1/applications/<id>/candidates
           Returns: 200 with the officers the file may be sent to.

    GET    /api/v1/applications/<id>/available-actions
           Returns: 200 with the actions the caller may submit now.

    POST   /api/v1/workflow/action
           Body: { "applicationId": 42, "actionCode": "FORWARD" | 1,
                   "remarks": "...", "nextUserId": 7,
                   "attachments": [{name, type, contentType, url}],
                   "actionKey": "forward-application-42" }
           Returns: 200 {new_status, history_entry, application}
                    409 {"blocked": true} when a duplicate is in flight
                    422 when the action is refused

    GET    /api/v1/workflow/statuses-actions
    GET    /api/v1/workflow/inbox?bucket=forwarded
    GET    /api/v1/workflow/inbox/counts?buckets=forwarded,returned

Layer contract:
    - Blueprint: parse input, take the actor from g.jwt_user_id, call
      workflow_service, render JSON.
    - NO db.session calls and NO workflow rules here.
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from alms.core.exceptions import ConflictError, NotFoundError, TransitionError, ValidationError
from alms.services import workflow_service
from alms.services.action_coordinator import is_blocked
from alms.services.workflow_catalog import get_catalog
from alms.utils.errors import E, api_error

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")


# ── Error handlers ─────────────────────────────────────────────────────────────


@workflow_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@workflow_bp.errorhandler(TransitionError)
def _handle_transition(error: TransitionError):
    return api_error(E.TRANSITION_REFUSED, str(error), details=error.details, reason=error.reason)


@workflow_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_RULE, str(error), details=error.details)


@workflow_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_STATE, str(error), retryable=True)


# ── Helpers ────────────────────────────────────────────────────────────────────


def _int_field(data: dict, *names):
    """First present field among *names* as int.  Returns (value, err_response)."""
    raw = next((data[n] for n in names if data.get(n) not in (None, "")), None)
    if raw is None:
        return None, None
    if not isinstance(raw, bool):
        try:
            return int(raw), None
        except (TypeError, ValueError):
            pass
    return None, api_error(E.VALIDATION_INVALID, f"Field '{names[0]}' must be an integer.")


# ── Applications ───────────────────────────────────────────────────────────────


@workflow_bp.route("/applications", methods=["POST"])
def create_application():
    data = request.get_json(silent=True) or {}
    applicant_name = (data.get("applicantName") or data.get("applicant_name") or "").strip()
    if not applicant_name:
        return api_error(E.VALIDATION_REQUIRED, "Field 'applicantName' is required.")

    app = workflow_service.create_application(
        applicant_name,
        actor_user_id=g.jwt_user_id,
        licence_type=data.get("licenceType") or data.get("licence_type"),
        attachments=data.get("attachments"),
    )
    return jsonify(app.to_dict()), 201


@workflow_bp.route("/applications/<int:application_id>", methods=["GET"])
def get_application(application_id: int):
    return jsonify(workflow_service.get_application(application_id)), 200


@workflow_bp.route("/applications/<int:application_id>/candidates", methods=["GET"])
def list_candidates(application_id: int):
    users = workflow_service.candidate_assignees(application_id)
    return jsonify({"items": users, "total": len(users)}), 200


@workflow_bp.route("/applications/<int:application_id>/available-actions", methods=["GET"])
def list_available_actions(application_id: int):
    actions = workflow_service.available_actions(application_id, g.jwt_user_id)
    return jsonify({"items": actions, "total": len(actions)}), 200


# ── Workflow actions ───────────────────────────────────────────────────────────


@workflow_bp.route("/workflow/action", methods=["POST"])
def submit_action():
    """Submit one workflow decision for the authenticated officer.

    Input validation here (required fields, types).  Every workflow rule
    is enforced in workflow_service / the transition function.
    """
    data = request.get_json(silent=True) or {}

    application_id, err = _int_field(data, "applicationId", "application_id")
    if err:
        return err
    if application_id is None:
        return api_error(E.VALIDATION_REQUIRED, "Field 'applicationId' is required.")

    action_code = data.get("actionCode", data.get("action_code"))
    if action_code is None or action_code == "":
        return api_error(E.VALIDATION_REQUIRED, "Field 'actionCode' is required.")

    next_user_id, err = _int_field(data, "nextUserId", "next_user_id")
    if err:
        return err

    attachments = data.get("attachments") or []
    if not isinstance(attachments, list):
        return api_error(E.VALIDATION_INVALID, "Field 'attachments' must be a list.")

    result = workflow_service.submit_workflow_action(
        application_id,
        action_code,
        data.get("remarks") or "",
        actor_user_id=g.jwt_user_id,
        next_assignee_id=next_user_id,
        attachments=attachments,
        action_id=(data.get("actionKey") or "").strip() or None,
        debounce_ms=current_app.config.get("ACTION_DEBOUNCE_MS"),
    )
    if is_blocked(result):
        return api_error(
            E.ACTION_IN_PROGRESS,
            "This action is already being processed.",
            blocked=True,
        )

    return jsonify({
        "new_status": int(result["new_status"]),
        "new_status_code": result["new_status"].name,
        "history_entry": result["history_entry"].to_dict(),
        "application": result["application"].to_dict(),
    }), 200


@workflow_bp.route("/workflow/statuses-actions", methods=["GET"])
def statuses_actions():
    return jsonify(get_catalog().describe()), 200


# ── Inbox ──────────────────────────────────────────────────────────────────────


@workflow_bp.route("/workflow/inbox", methods=["GET"])
def inbox():
    bucket = (request.args.get("bucket") or "").strip()
    if not bucket:
        return api_error(E.VALIDATION_REQUIRED, "Query parameter 'bucket' is required.")
    items = workflow_service.inbox(g.jwt_user_id, bucket)
    return jsonify({"bucket": bucket, "items": items, "total": len(items)}), 200


@workflow_bp.route("/workflow/inbox/counts", methods=["GET"])
def inbox_counts():
    raw = request.args.get("buckets")
    keys = [k.strip() for k in raw.split(",") if k.strip()] if raw else get_catalog().bucket_keys()
    return jsonify(workflow_service.inbox_counts(g.jwt_user_id, keys)), 200
