"""
Workflow Service — submitWorkflowAction and the read operations around it.

    submit_workflow_action(application_id, action_code, remarks, actor_user_id, ...)
        → {"new_status", "history_entry", "application"}  on success
        → BLOCKED                                         duplicate in flight / debounced
        raises TransitionError                            refused, nothing written
        raises NotFoundError                              unknown application
        raises ConflictError                              lost a commit race, retryable

Flow:
    coordinator.execute(action_id) ─▶ load snapshot ─▶ resolve actor / next assignee
        ─▶ transition() ─▶ commit (app row + history, one transaction) ─▶ side effects

The actor is always the authenticated user id handed in by the caller;
nothing here reads identity from request data.
"""

from __future__ import annotations

import logging

from flask import current_app

from alms.core.exceptions import ConflictError, NotFoundError, ValidationError
from alms.models.workflow import ActionCode, ActionKind, parse_action
from alms.services.action_coordinator import BLOCKED, get_coordinator
from alms.services.application_store import SqlApplicationStore
from alms.services.attachment_store import AttachmentStore
from alms.services.bucket_classifier import classify, counts_by_bucket
from alms.services.role_hierarchy import RoleHierarchy
from alms.services.user_directory import SqlUserDirectory
from alms.services.workflow_catalog import get_catalog
from alms.services.workflow_engine import ActionInput, SideEffect, transition

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────


def _hierarchy() -> RoleHierarchy:
    return RoleHierarchy.from_database(current_app.config.get("GROUND_REPORT_ROLES", ("SHO",)))


def default_action_id(action_code, application_id) -> str:
    """Single-flight identity for one kind of action on one application."""
    action = parse_action(action_code)
    name = action.name if action else str(action_code)
    return f"{name.lower().replace('_', '-')}-application-{application_id}"


def _log_side_effects(outcome) -> None:
    for effect in outcome.side_effects:
        target = (
            outcome.state.current_user_id
            if effect is SideEffect.NOTIFY_NEXT_ASSIGNEE
            else "applicant"
        )
        logger.info(
            "Side effect %s for application %s → %s",
            effect.value, outcome.state.id, target,
            extra={"application_id": outcome.state.id},
        )


# ── Public API ─────────────────────────────────────────────────────────────


def submit_workflow_action(
    application_id: int,
    action_code,
    remarks: str,
    actor_user_id: int,
    next_assignee_id: int | None = None,
    attachments: list | None = None,
    *,
    action_id: str | None = None,
    debounce_ms: int | None = None,
    coordinator=None,
    store=None,
    directory=None,
    attachment_store=None,
    catalog=None,
    hierarchy=None,
    notifier=None,
    now=None,
):
    """Apply one workflow decision under the single-flight guard.

    Args:
        application_id: Target application.
        action_code:    ActionCode, numeric id or name.
        remarks:        Mandatory, non-empty.
        actor_user_id:  Authenticated submitting officer.
        next_assignee_id: Required for FORWARD / RECOMMEND / RETURN.
        attachments:    Descriptors {name, type, contentType, url}.
        action_id:      Single-flight identity; defaults to
                        "<action>-application-<id>".
        debounce_ms:    When set, a completion of the same identity inside
                        this window is also reported as BLOCKED.
        notifier:       Optional callable(effect, outcome) driving side effects.

    Returns:
        dict with new_status, history_entry, application — or BLOCKED.
    """
    coordinator = coordinator or get_coordinator()
    action_id = action_id or default_action_id(action_code, application_id)
    log_extra = {"application_id": application_id, "action_id": action_id}

    if debounce_ms and coordinator.was_recently_completed(action_id, debounce_ms):
        logger.info("Action %s debounced (completed within %sms)", action_id, debounce_ms, extra=log_extra)
        return BLOCKED

    def _run():
        return _apply_action(
            application_id, action_code, remarks, actor_user_id, next_assignee_id, attachments,
            store=store, directory=directory, attachment_store=attachment_store,
            catalog=catalog, hierarchy=hierarchy, notifier=notifier, now=now,
        )

    try:
        return coordinator.execute(action_id, _run)
    except (ValidationError, NotFoundError, ConflictError):
        raise
    except Exception:
        logger.exception("Unexpected failure in workflow action %s", action_id, extra=log_extra)
        raise


def _apply_action(
    application_id, action_code, remarks, actor_user_id, next_assignee_id, attachments,
    *, store, directory, attachment_store, catalog, hierarchy, notifier, now,
):
    catalog = catalog or get_catalog()
    hierarchy = hierarchy or _hierarchy()
    store = store or SqlApplicationStore()
    directory = directory or SqlUserDirectory(hierarchy)
    attachment_store = attachment_store or AttachmentStore()
    log_extra = {"application_id": application_id, "action_code": str(action_code)}

    state = store.load_application(application_id)
    actor = directory.resolve_user(actor_user_id)
    next_officer = directory.resolve_user(next_assignee_id) if next_assignee_id is not None else None

    # Descriptors go in raw; the transition validates them after the state,
    # responsibility and capability checks.
    outcome, err = transition(
        state,
        ActionInput(
            action_code=action_code,
            remarks=remarks,
            actor=actor,
            next_assignee_id=next_assignee_id,
            next_assignee=next_officer,
            attachments=tuple(attachments or ()),
            submitted_at=now,
        ),
        catalog=catalog,
        hierarchy=hierarchy,
        attachment_store=attachment_store,
    )
    if err:
        logger.info("Action rejected on application %s: %s", application_id, err.reason, extra=log_extra)
        raise err

    row = store.commit_transition(application_id, outcome)
    logger.info(
        "Application %s: %s by user %s (%s → %s)",
        application_id, outcome.action.name, actor.user_id,
        outcome.previous.status_code.name, outcome.new_status.name,
        extra=log_extra,
    )

    if notifier is not None:
        for effect in outcome.side_effects:
            notifier(effect, outcome)
    else:
        _log_side_effects(outcome)

    return {
        "new_status": outcome.new_status,
        "history_entry": outcome.entry,
        "application": row,
    }


def create_application(applicant_name, actor_user_id, licence_type=None, attachments=None,
                       store=None, directory=None, hierarchy=None):
    """Open a DRAFT application held by the creating officer."""
    if not (applicant_name or "").strip():
        raise ValidationError("applicant_name is required", {"field": "applicant_name"})
    hierarchy = hierarchy or _hierarchy()
    directory = directory or SqlUserDirectory(hierarchy)
    store = store or SqlApplicationStore()

    actor = directory.resolve_user(actor_user_id)
    if actor is None or not hierarchy.can_submit(actor.role_code, ActionCode.INITIATE):
        raise ValidationError(
            "Only an officer who can initiate applications may open one",
            {"user_id": actor_user_id},
        )
    refs = [r.to_dict() for r in AttachmentStore().store_all(attachments)]
    app = store.create_application(applicant_name.strip(), licence_type, assignee=actor, attachments=refs)
    logger.info("Application %s created by user %s", app.id, actor.user_id, extra={"application_id": app.id})
    return app


def get_application(application_id, store=None) -> dict:
    return (store or SqlApplicationStore()).get_row(application_id).to_dict(include_history=True)


def available_actions(application_id, actor_user_id, store=None, directory=None) -> list[dict]:
    """Actions the actor may submit now; empty unless the actor holds the file."""
    hierarchy = _hierarchy()
    store = store or SqlApplicationStore()
    directory = directory or SqlUserDirectory(hierarchy)
    state = store.load_application(application_id)
    actor = directory.resolve_user(actor_user_id)
    if actor is None or actor.user_id != state.current_user_id:
        return []
    result = []
    for action in get_catalog().available_actions(state.status_code, actor.role_code, hierarchy):
        requirement = hierarchy.requires_artifact(actor.role_code, action.code)
        d = action.to_dict()
        d["requires_next_assignee"] = action.kind is ActionKind.MOVE
        d["required_artifact"] = requirement.attachment_type if requirement else None
        result.append(d)
    return result


def candidate_assignees(application_id, store=None) -> list[dict]:
    (store or SqlApplicationStore()).get_row(application_id)
    directory = SqlUserDirectory(_hierarchy())
    return [u.to_dict() for u in directory.list_candidate_assignees(application_id)]


def inbox(actor_user_id, bucket_key, store=None) -> list[dict]:
    apps = (store or SqlApplicationStore()).list_for_user(actor_user_id)
    return [a.to_dict() for a in classify(apps, bucket_key, assignee_id=actor_user_id)]


def inbox_counts(actor_user_id, bucket_keys, store=None) -> dict:
    apps = (store or SqlApplicationStore()).list_for_user(actor_user_id)
    return counts_by_bucket(apps, bucket_keys, assignee_id=actor_user_id)
