"""
Workflow vocabulary — statuses, actions, transitions and inbox buckets.

Status and action codes share one numeric space: submitting an action
moves the application into the status of the same name (FORWARD → 1,
DISPOSE → 7 …).  The ids are stable and persisted; never renumber them.

Tables:
    TRANSITIONS        {status: {action: new_status}} — exhaustive over StatusCode
    BUCKETS            {bucket_key: frozenset(status)} — inbox classification
    ACTION_DEFAULTS    display name / priority / active flag per action
    ACTION_CAPABILITY  role capability flag gating each action
"""

import enum


class StatusCode(enum.IntEnum):
    FORWARD = 1
    REJECT = 2
    APPROVED = 3
    CANCEL = 4
    RE_ENQUIRY = 5
    GROUND_REPORT = 6
    DISPOSE = 7
    RED_FLAG = 8
    INITIATE = 9
    CLOSE = 10
    RECOMMEND = 11
    DRAFT = 12
    RETURN = 13


class ActionCode(enum.IntEnum):
    FORWARD = 1
    REJECT = 2
    APPROVED = 3
    CANCEL = 4
    RE_ENQUIRY = 5
    GROUND_REPORT = 6
    DISPOSE = 7
    RED_FLAG = 8
    INITIATE = 9
    CLOSE = 10
    RECOMMEND = 11
    RETURN = 13


class ActionKind(enum.Enum):
    """How an action treats the currently responsible officer."""

    MOVE = "move"          # responsibility passes to a chosen next assignee
    IN_PLACE = "in_place"  # current assignee keeps the file
    TERMINAL = "terminal"  # workflow ends, nobody is responsible


ACTION_KINDS: dict[ActionCode, ActionKind] = {
    ActionCode.FORWARD: ActionKind.MOVE,
    ActionCode.RECOMMEND: ActionKind.MOVE,
    ActionCode.RETURN: ActionKind.MOVE,
    ActionCode.INITIATE: ActionKind.IN_PLACE,
    ActionCode.RE_ENQUIRY: ActionKind.IN_PLACE,
    ActionCode.GROUND_REPORT: ActionKind.IN_PLACE,
    ActionCode.RED_FLAG: ActionKind.IN_PLACE,
    ActionCode.APPROVED: ActionKind.TERMINAL,
    ActionCode.REJECT: ActionKind.TERMINAL,
    ActionCode.DISPOSE: ActionKind.TERMINAL,
    ActionCode.CLOSE: ActionKind.TERMINAL,
    ActionCode.CANCEL: ActionKind.TERMINAL,
}

TERMINAL_STATUSES = frozenset({
    StatusCode.APPROVED,
    StatusCode.REJECT,
    StatusCode.DISPOSE,
    StatusCode.CLOSE,
    StatusCode.CANCEL,
})

# Moves available to an officer holding a file that is under review.
_REVIEW_MOVES = {
    ActionCode.FORWARD: StatusCode.FORWARD,
    ActionCode.RECOMMEND: StatusCode.RECOMMEND,
    ActionCode.RETURN: StatusCode.RETURN,
    ActionCode.RE_ENQUIRY: StatusCode.RE_ENQUIRY,
    ActionCode.GROUND_REPORT: StatusCode.GROUND_REPORT,
    ActionCode.RED_FLAG: StatusCode.RED_FLAG,
    ActionCode.APPROVED: StatusCode.APPROVED,
    ActionCode.REJECT: StatusCode.REJECT,
    ActionCode.DISPOSE: StatusCode.DISPOSE,
    ActionCode.CLOSE: StatusCode.CLOSE,
    ActionCode.CANCEL: StatusCode.CANCEL,
}

TRANSITIONS: dict[StatusCode, dict[ActionCode, StatusCode]] = {
    StatusCode.DRAFT: {
        ActionCode.INITIATE: StatusCode.INITIATE,
        ActionCode.CANCEL: StatusCode.CANCEL,
    },
    StatusCode.INITIATE: dict(_REVIEW_MOVES),
    StatusCode.FORWARD: dict(_REVIEW_MOVES),
    StatusCode.RECOMMEND: dict(_REVIEW_MOVES),
    StatusCode.RETURN: dict(_REVIEW_MOVES),
    StatusCode.RE_ENQUIRY: dict(_REVIEW_MOVES),
    StatusCode.GROUND_REPORT: dict(_REVIEW_MOVES),
    StatusCode.RED_FLAG: dict(_REVIEW_MOVES),
    StatusCode.APPROVED: {},
    StatusCode.REJECT: {},
    StatusCode.DISPOSE: {},
    StatusCode.CLOSE: {},
    StatusCode.CANCEL: {},
}

BUCKETS: dict[str, frozenset[StatusCode]] = {
    "draft": frozenset({StatusCode.DRAFT}),
    "fresh-form": frozenset({StatusCode.INITIATE}),
    "forwarded": frozenset({StatusCode.FORWARD, StatusCode.INITIATE}),
    "pending": frozenset({
        StatusCode.FORWARD,
        StatusCode.INITIATE,
        StatusCode.RECOMMEND,
        StatusCode.RETURN,
        StatusCode.RE_ENQUIRY,
        StatusCode.GROUND_REPORT,
        StatusCode.RED_FLAG,
    }),
    # Resolved against the previous assignee, see bucket_classifier.
    "sent": frozenset({StatusCode.FORWARD, StatusCode.INITIATE, StatusCode.RECOMMEND}),
    "returned": frozenset({StatusCode.RETURN}),
    "red-flagged": frozenset({StatusCode.RED_FLAG}),
    "re-enquiry": frozenset({StatusCode.RE_ENQUIRY}),
    "ground-report": frozenset({StatusCode.GROUND_REPORT}),
    "approved": frozenset({StatusCode.RECOMMEND, StatusCode.APPROVED}),
    "rejected": frozenset({StatusCode.REJECT}),
    "disposed": frozenset({StatusCode.DISPOSE}),
    "final-disposal": frozenset({StatusCode.DISPOSE, StatusCode.APPROVED, StatusCode.REJECT}),
    "closed": frozenset({StatusCode.CLOSE}),
    "cancelled": frozenset({StatusCode.CANCEL}),
}

# Buckets whose membership is relative to the officer who sent the file on.
SENDER_BUCKETS = frozenset({"sent"})

STATUS_LABELS: dict[StatusCode, str] = {
    StatusCode.FORWARD: "Forward",
    StatusCode.REJECT: "Reject",
    StatusCode.APPROVED: "Approved",
    StatusCode.CANCEL: "Cancel",
    StatusCode.RE_ENQUIRY: "Re-Enquiry",
    StatusCode.GROUND_REPORT: "Ground Report",
    StatusCode.DISPOSE: "Dispose",
    StatusCode.RED_FLAG: "Red-Flag",
    StatusCode.INITIATE: "Initiate",
    StatusCode.CLOSE: "Close",
    StatusCode.RECOMMEND: "Recommend",
    StatusCode.DRAFT: "Draft",
    StatusCode.RETURN: "Returned",
}

# Lower priority sorts first in the action picker.
ACTION_DEFAULTS: dict[ActionCode, dict] = {
    ActionCode.INITIATE: {"display_name": "Initiate", "priority": 10, "is_active": True},
    ActionCode.FORWARD: {"display_name": "Forward", "priority": 20, "is_active": True},
    ActionCode.RECOMMEND: {"display_name": "Recommend", "priority": 30, "is_active": True},
    ActionCode.RETURN: {"display_name": "Return", "priority": 40, "is_active": True},
    ActionCode.RE_ENQUIRY: {"display_name": "Re-Enquiry", "priority": 50, "is_active": True},
    ActionCode.GROUND_REPORT: {"display_name": "Ground Report", "priority": 60, "is_active": True},
    ActionCode.RED_FLAG: {"display_name": "Red-Flag", "priority": 70, "is_active": True},
    ActionCode.APPROVED: {"display_name": "Approve", "priority": 80, "is_active": True},
    ActionCode.REJECT: {"display_name": "Reject", "priority": 80, "is_active": True},
    ActionCode.DISPOSE: {"display_name": "Dispose", "priority": 90, "is_active": True},
    ActionCode.CLOSE: {"display_name": "Close", "priority": 100, "is_active": True},
    ActionCode.CANCEL: {"display_name": "Cancel", "priority": 110, "is_active": True},
}

ACTION_CAPABILITY: dict[ActionCode, str] = {
    ActionCode.INITIATE: "can_flaf",
    ActionCode.FORWARD: "can_forward",
    ActionCode.RECOMMEND: "can_forward",
    ActionCode.RETURN: "can_forward",
    ActionCode.RE_ENQUIRY: "can_re_enquiry",
    ActionCode.GROUND_REPORT: "can_generate_ground_report",
    ActionCode.RED_FLAG: "can_red_flag",
    ActionCode.APPROVED: "can_approve_final",
    ActionCode.REJECT: "can_approve_final",
    ActionCode.DISPOSE: "can_approve_final",
    ActionCode.CLOSE: "can_close",
    ActionCode.CANCEL: "can_close",
}

CAPABILITY_FLAGS = (
    "can_forward",
    "can_re_enquiry",
    "can_generate_ground_report",
    "can_flaf",
    "can_approve_final",
    "can_red_flag",
    "can_close",
)

GROUND_REPORT_ATTACHMENT = "GROUND_REPORT"


def parse_status(value) -> StatusCode | None:
    """Accept a StatusCode, its numeric id or its name; None when unknown."""
    return _parse(StatusCode, value)


def parse_action(value) -> ActionCode | None:
    """Accept an ActionCode, its numeric id or its name; None when unknown."""
    return _parse(ActionCode, value)


def _parse(enum_cls, value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, int):
        try:
            return enum_cls(value)
        except ValueError:
            return None
    text = str(value).strip()
    if text.isdigit():
        return _parse(enum_cls, int(text))
    return enum_cls.__members__.get(text.upper().replace("-", "_"))
