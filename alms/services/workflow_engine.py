"""
Workflow Transition Function.

    transition(application, action_input) → (TransitionOutcome, None)
                                          | (None, TransitionError)

Pure: it reads an immutable ApplicationState snapshot and returns a new
snapshot plus the history entry and the side effects the caller must
drive.  It performs no I/O — next-assignee lookups, persistence and
notifications all happen in workflow_service around it.

Validation order (first failure wins):
    1. application exists and is not terminal
    2. actor is the currently responsible officer; remarks present
    3. action is known, active, legal from the current status and permitted
       for the actor's role; attachment descriptors complete
    4. mandatory artifact attached
    5. next assignee supplied, resolved and reachable (moving actions only)

When an ``attachment_store`` is passed, raw descriptors are normalised
through it only after step 3, so a refused file never reports a
descriptor problem ahead of its state or responsibility.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from alms.core.exceptions import TransitionError, ValidationError
from alms.models.workflow import (
    TERMINAL_STATUSES,
    ActionCode,
    ActionKind,
    StatusCode,
)
from alms.services.role_hierarchy import RoleHierarchy
from alms.services.workflow_catalog import WorkflowCatalog, get_catalog


@dataclass(frozen=True)
class Officer:
    """A user together with the role they act under."""

    user_id: int
    role_id: int | None
    role_code: str


@dataclass(frozen=True)
class HistoryEntry:
    previous_user_id: int | None
    previous_role_id: int | None
    action_taken: str
    from_status: StatusCode
    to_status: StatusCode
    next_user_id: int | None
    next_role_id: int | None
    remarks: str
    attachments: tuple = ()
    created_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "previous_user_id": self.previous_user_id,
            "previous_role_id": self.previous_role_id,
            "action_taken": self.action_taken,
            "from_status": int(self.from_status),
            "to_status": int(self.to_status),
            "next_user_id": self.next_user_id,
            "next_role_id": self.next_role_id,
            "remarks": self.remarks,
            "attachments": [dict(a) for a in self.attachments],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class ApplicationState:
    id: int
    status_code: StatusCode
    current_user_id: int | None = None
    current_role_id: int | None = None
    previous_user_id: int | None = None
    previous_role_id: int | None = None
    is_approved: bool = False
    is_rejected: bool = False
    is_pending: bool = False
    is_re_enquiry: bool = False
    is_re_enquiry_done: bool = False
    is_ground_report_generated: bool = False
    is_flaf_generated: bool = False
    remarks: str | None = None
    attachments: tuple = ()
    history: tuple[HistoryEntry, ...] = ()
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status_code in TERMINAL_STATUSES


@dataclass(frozen=True)
class ActionInput:
    """One submitted decision.

    ``actor`` and ``next_assignee`` are directory resolutions (None when
    the id did not resolve to an active officer); the caller performs
    the lookups.
    """

    action_code: object
    remarks: str
    actor: Officer | None
    next_assignee_id: int | None = None
    next_assignee: Officer | None = None
    attachments: tuple = ()
    submitted_at: datetime | None = None


class SideEffect(enum.Enum):
    NOTIFY_NEXT_ASSIGNEE = "notify_next_assignee"
    NOTIFY_APPLICANT = "notify_applicant"


@dataclass(frozen=True)
class TransitionOutcome:
    previous: ApplicationState
    state: ApplicationState
    entry: HistoryEntry
    action: ActionCode
    side_effects: tuple[SideEffect, ...] = ()

    @property
    def new_status(self) -> StatusCode:
        return self.state.status_code


def transition(
    application: ApplicationState | None,
    action_input: ActionInput,
    *,
    catalog: WorkflowCatalog | None = None,
    hierarchy: RoleHierarchy | None = None,
    attachment_store=None,
) -> tuple[TransitionOutcome, None] | tuple[None, TransitionError]:
    """Validate *action_input* against *application* and compute the result."""
    catalog = catalog or get_catalog()
    hierarchy = hierarchy or RoleHierarchy.default()
    actor = action_input.actor

    # 1. Application state
    if application is None:
        return None, TransitionError("application_not_found", "Application not found")
    if application.is_terminal:
        return None, TransitionError(
            "already_terminal",
            f"Application {application.id} is already {application.status_code.name}",
            {"status": application.status_code.name},
        )

    # 2. Responsibility
    if actor is None:
        return None, TransitionError(
            "not_current_assignee", "Submitting user is not an active officer"
        )
    if actor.user_id != application.current_user_id or (
        application.current_role_id is not None
        and actor.role_id is not None
        and actor.role_id != application.current_role_id
    ):
        return None, TransitionError(
            "not_current_assignee",
            f"User {actor.user_id} is not the officer currently responsible for application {application.id}",
        )
    remarks = (action_input.remarks or "").strip()
    if not remarks:
        return None, TransitionError("missing_remarks", "Remarks are required for every action")

    # 3. Action and role capability
    action_def = catalog.resolve_action(action_input.action_code)
    if action_def is None or not action_def.is_active:
        return None, TransitionError(
            "unknown_action", f"Unknown or inactive action: {action_input.action_code!r}"
        )
    action = action_def.code
    new_status = catalog.next_status(application.status_code, action)
    if new_status is None:
        return None, TransitionError(
            "action_not_allowed",
            f"Cannot '{action.name}' an application in status {application.status_code.name}",
        )
    if not hierarchy.can_submit(actor.role_code, action):
        return None, TransitionError(
            "role_not_permitted",
            f"Role {actor.role_code} may not submit '{action.name}'",
            {"role": actor.role_code},
        )
    attachments = tuple(action_input.attachments or ())
    if attachment_store is not None:
        try:
            attachments = tuple(r.to_dict() for r in attachment_store.store_all(attachments))
        except ValidationError as exc:
            return None, TransitionError("invalid_attachment", str(exc), exc.details)

    # 4. Mandatory artifact
    requirement = hierarchy.requires_artifact(actor.role_code, action)
    if requirement is not None and not requirement.is_satisfied_by(attachments):
        return None, TransitionError(
            "missing_artifact",
            f"{requirement.label} is required for submission",
            {"attachment_type": requirement.attachment_type},
        )

    # 5. Next assignee
    next_officer = None
    if action_def.kind is ActionKind.MOVE:
        next_officer, err = _check_next_assignee(application, action_input, action, hierarchy)
        if err:
            return None, err

    return _apply(
        application, action_input, action_def.kind, action, new_status, remarks, attachments, next_officer
    ), None


def _check_next_assignee(application, action_input, action, hierarchy):
    actor = action_input.actor
    if action_input.next_assignee_id is None:
        return None, TransitionError(
            "next_assignee_required", f"'{action.name}' requires a next assignee"
        )
    officer = action_input.next_assignee
    if officer is None or officer.user_id != action_input.next_assignee_id:
        return None, TransitionError(
            "unknown_next_assignee",
            f"Next assignee {action_input.next_assignee_id} does not resolve to an active officer",
        )
    if officer.user_id == actor.user_id:
        return None, TransitionError(
            "unknown_next_assignee", "An application cannot be assigned to the submitting officer"
        )
    # Returning to whoever sent the file is always permitted.
    returning = action is ActionCode.RETURN and officer.user_id == application.previous_user_id
    if not returning and not hierarchy.can_forward_to(actor.role_code, officer.role_code):
        return None, TransitionError(
            "forward_target_not_allowed",
            f"Role {actor.role_code} may not send applications to role {officer.role_code}",
            {"from_role": actor.role_code, "to_role": officer.role_code},
        )
    return officer, None


def _apply(application, action_input, kind, action, new_status, remarks, attachments, next_officer):
    actor = action_input.actor
    attachments = tuple(dict(a) for a in attachments)
    at = action_input.submitted_at or datetime.now(timezone.utc)

    if kind is ActionKind.MOVE:
        current_user_id, current_role_id = next_officer.user_id, next_officer.role_id
        previous_user_id, previous_role_id = actor.user_id, actor.role_id
    elif kind is ActionKind.TERMINAL:
        current_user_id = current_role_id = None
        previous_user_id, previous_role_id = actor.user_id, actor.role_id
    else:
        current_user_id, current_role_id = application.current_user_id, application.current_role_id
        previous_user_id, previous_role_id = application.previous_user_id, application.previous_role_id

    entry = HistoryEntry(
        previous_user_id=actor.user_id,
        previous_role_id=actor.role_id,
        action_taken=action.name,
        from_status=application.status_code,
        to_status=new_status,
        next_user_id=current_user_id,
        next_role_id=current_role_id,
        remarks=remarks,
        attachments=attachments,
        created_at=at,
    )

    state = replace(
        application,
        status_code=new_status,
        current_user_id=current_user_id,
        current_role_id=current_role_id,
        previous_user_id=previous_user_id,
        previous_role_id=previous_role_id,
        remarks=remarks,
        history=application.history + (entry,),
        version=application.version + 1,
        **_flags(application, action, new_status, attachments),
    )

    effects = []
    if kind is ActionKind.MOVE:
        effects.append(SideEffect.NOTIFY_NEXT_ASSIGNEE)
    if new_status in TERMINAL_STATUSES:
        effects.append(SideEffect.NOTIFY_APPLICANT)

    return TransitionOutcome(
        previous=application,
        state=state,
        entry=entry,
        action=action,
        side_effects=tuple(effects),
    )


def _flags(application, action, new_status, attachments) -> dict:
    """Flag columns consistent with *new_status*."""
    leaving_re_enquiry = (
        application.status_code is StatusCode.RE_ENQUIRY and new_status is not StatusCode.RE_ENQUIRY
    )
    return {
        "is_approved": new_status in (StatusCode.APPROVED, StatusCode.DISPOSE),
        "is_rejected": new_status is StatusCode.REJECT,
        "is_pending": new_status not in TERMINAL_STATUSES and new_status is not StatusCode.DRAFT,
        "is_re_enquiry": new_status is StatusCode.RE_ENQUIRY,
        "is_re_enquiry_done": (
            False if new_status is StatusCode.RE_ENQUIRY
            else application.is_re_enquiry_done or leaving_re_enquiry
        ),
        "is_ground_report_generated": application.is_ground_report_generated or any(
            (a.get("type") or "").upper() == "GROUND_REPORT" for a in attachments
        ),
        "is_flaf_generated": application.is_flaf_generated or action is ActionCode.INITIATE,
    }
