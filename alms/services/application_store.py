"""
Persistence store for licence applications.

    load_application(id)              → ApplicationState (NotFoundError if absent)
    commit_transition(id, outcome)    → LicenseApplication (ConflictError on a race)

commit_transition writes the application update and the history row in
one transaction.  The UPDATE is guarded by the version the transition was
computed from, so a writer that lost a race changes nothing and gets a
ConflictError to retry.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update

from alms.core.exceptions import ConflictError, NotFoundError
from alms.models import db
from alms.models.application import LicenseApplication, WorkflowHistory
from alms.models.workflow import StatusCode
from alms.services.workflow_engine import ApplicationState, HistoryEntry, TransitionOutcome

logger = logging.getLogger(__name__)

_STATE_COLUMNS = (
    "current_user_id",
    "current_role_id",
    "previous_user_id",
    "previous_role_id",
    "is_approved",
    "is_rejected",
    "is_pending",
    "is_re_enquiry",
    "is_re_enquiry_done",
    "is_ground_report_generated",
    "is_flaf_generated",
    "remarks",
)


def _entry_from_row(row: WorkflowHistory) -> HistoryEntry:
    return HistoryEntry(
        previous_user_id=row.previous_user_id,
        previous_role_id=row.previous_role_id,
        action_taken=row.action_taken,
        from_status=StatusCode(row.from_status),
        to_status=StatusCode(row.to_status),
        next_user_id=row.next_user_id,
        next_role_id=row.next_role_id,
        remarks=row.remarks,
        attachments=tuple(row.attachments or ()),
        created_at=row.created_at,
    )


def to_state(app: LicenseApplication) -> ApplicationState:
    """Immutable snapshot of an application row and its history."""
    return ApplicationState(
        id=app.id,
        status_code=StatusCode(app.status_code),
        attachments=tuple(app.attachments or ()),
        history=tuple(_entry_from_row(h) for h in app.history),
        version=app.version,
        **{col: getattr(app, col) for col in _STATE_COLUMNS},
    )


class SqlApplicationStore:
    """Application persistence over the Flask-SQLAlchemy session."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def get_row(self, application_id: int) -> LicenseApplication:
        app = self.session.get(LicenseApplication, application_id)
        if app is None:
            raise NotFoundError(resource="Application", resource_id=application_id)
        return app

    def load_application(self, application_id: int) -> ApplicationState:
        return to_state(self.get_row(application_id))

    def commit_transition(self, application_id: int, outcome: TransitionOutcome) -> LicenseApplication:
        state = outcome.state
        expected_version = outcome.previous.version
        values = {col: getattr(state, col) for col in _STATE_COLUMNS}
        values["status_code"] = int(state.status_code)
        values["version"] = state.version

        session = self.session
        try:
            result = session.execute(
                update(LicenseApplication)
                .where(
                    LicenseApplication.id == application_id,
                    LicenseApplication.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(resource="Application", field="version", value=expected_version)

            entry = outcome.entry
            session.add(
                WorkflowHistory(
                    application_id=application_id,
                    previous_user_id=entry.previous_user_id,
                    previous_role_id=entry.previous_role_id,
                    action_taken=entry.action_taken,
                    from_status=int(entry.from_status),
                    to_status=int(entry.to_status),
                    next_user_id=entry.next_user_id,
                    next_role_id=entry.next_role_id,
                    remarks=entry.remarks,
                    attachments=[dict(a) for a in entry.attachments],
                    created_at=entry.created_at,
                )
            )
            session.commit()
        except ConflictError:
            session.rollback()
            logger.warning(
                "Commit conflict on application %s (expected version %s)",
                application_id, expected_version,
                extra={"application_id": application_id},
            )
            raise
        except Exception:
            session.rollback()
            raise

        app = self.get_row(application_id)
        session.refresh(app)
        return app

    def create_application(self, applicant_name, licence_type=None, assignee=None,
                           attachments=None) -> LicenseApplication:
        """Insert a DRAFT application held by *assignee* (an Officer)."""
        app = LicenseApplication(
            applicant_name=applicant_name,
            licence_type=licence_type,
            status_code=int(StatusCode.DRAFT),
            current_user_id=assignee.user_id if assignee else None,
            current_role_id=assignee.role_id if assignee else None,
            attachments=list(attachments or []),
        )
        self.session.add(app)
        self.session.commit()
        return app

    def list_for_user(self, user_id: int) -> list[LicenseApplication]:
        """Applications the officer holds now or last passed on."""
        stmt = (
            select(LicenseApplication)
            .where(
                (LicenseApplication.current_user_id == user_id)
                | (LicenseApplication.previous_user_id == user_id)
            )
            .order_by(LicenseApplication.updated_at.desc(), LicenseApplication.id.desc())
        )
        return list(self.session.execute(stmt).scalars())
