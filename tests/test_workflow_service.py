"""
Workflow service & persistence store tests (SQLite in-memory).

Covers:
  - submit_workflow_action success / refusal / BLOCKED / debounce
  - Atomic commit with optimistic locking (ConflictError, nothing written)
  - Lock release on unexpected failures
  - Application creation, available actions, candidates, inbox
"""

import pytest
from sqlalchemy.exc import IntegrityError

from alms.core.exceptions import ConflictError, NotFoundError, TransitionError, ValidationError
from alms.models import db
from alms.models.application import LicenseApplication, WorkflowHistory
from alms.models.auth import Role
from alms.models.workflow import ActionCode, StatusCode
from alms.services import workflow_service
from alms.services.action_coordinator import BLOCKED, ActionCoordinator, get_coordinator
from alms.services.application_store import SqlApplicationStore
from alms.services.role_hierarchy import RoleHierarchy
from alms.services.workflow_engine import ActionInput, Officer, SideEffect, transition
from alms.services.workflow_service import default_action_id, submit_workflow_action

GROUND_REPORT_DOC = {
    "name": "ground-report.pdf",
    "type": "GROUND_REPORT",
    "contentType": "application/pdf",
    "url": "https://files.example/gr/1.pdf",
}


class FakeClock:
    def __init__(self):
        self.now = 5_000.0

    def __call__(self):
        return self.now


def _officer(user):
    return Officer(user_id=user.id, role_id=user.role_id, role_code=user.role.code)


def _history_count(application_id):
    return WorkflowHistory.query.filter_by(application_id=application_id).count()


# ═════════════════════════════════════════════════════════════════════════
# SUBMIT
# ═════════════════════════════════════════════════════════════════════════


class TestSubmit:
    def test_forward_persists_state_and_history(self, officers, make_application):
        zs, acp = officers["ZS"], officers["ACP"]
        app = make_application(StatusCode.FORWARD, holder=zs)

        result = submit_workflow_action(app.id, "FORWARD", "Verified documents", zs.id, next_assignee_id=acp.id)

        assert result["new_status"] is StatusCode.FORWARD
        assert result["history_entry"].next_user_id == acp.id
        row = db.session.get(LicenseApplication, app.id)
        assert row.current_user_id == acp.id
        assert row.current_role_id == acp.role_id
        assert row.previous_user_id == zs.id
        assert row.version == 2
        assert [h.action_taken for h in row.history] == ["FORWARD"]
        assert row.history[0].remarks == "Verified documents"

    def test_refusal_writes_nothing(self, officers, make_application):
        sho, acp = officers["SHO"], officers["ACP"]
        app = make_application(StatusCode.FORWARD, holder=sho)

        with pytest.raises(TransitionError) as exc:
            submit_workflow_action(app.id, ActionCode.FORWARD, "done", sho.id, next_assignee_id=acp.id)

        assert exc.value.reason == "missing_artifact"
        row = db.session.get(LicenseApplication, app.id)
        assert row.status_code == StatusCode.FORWARD
        assert row.current_user_id == sho.id
        assert row.version == 1
        assert _history_count(app.id) == 0

    def test_ground_report_attachment_is_recorded(self, officers, make_application):
        sho, acp = officers["SHO"], officers["ACP"]
        app = make_application(StatusCode.FORWARD, holder=sho)

        submit_workflow_action(
            app.id, "FORWARD", "Report attached", sho.id,
            next_assignee_id=acp.id, attachments=[GROUND_REPORT_DOC],
        )

        row = db.session.get(LicenseApplication, app.id)
        assert row.is_ground_report_generated is True
        assert row.history[0].attachments[0]["type"] == "GROUND_REPORT"
        assert row.history[0].attachments[0]["url"] == GROUND_REPORT_DOC["url"]

    def test_dispose_then_already_terminal(self, officers, make_application):
        dcp = officers["DCP"]
        app = make_application(StatusCode.FORWARD, holder=dcp)

        result = submit_workflow_action(app.id, "DISPOSE", "Granted", dcp.id)
        assert result["new_status"] is StatusCode.DISPOSE
        row = db.session.get(LicenseApplication, app.id)
        assert row.is_approved is True
        assert row.current_user_id is None

        with pytest.raises(TransitionError) as exc:
            submit_workflow_action(app.id, "CLOSE", "again", dcp.id, action_id="retry-1")
        assert exc.value.reason == "already_terminal"
        assert _history_count(app.id) == 1

    def test_unknown_application(self, officers):
        with pytest.raises(NotFoundError):
            submit_workflow_action(404, "FORWARD", "x", officers["ZS"].id)

    def test_unknown_actor(self, officers, make_application):
        app = make_application(StatusCode.FORWARD, holder=officers["ZS"])
        with pytest.raises(TransitionError) as exc:
            submit_workflow_action(app.id, "FORWARD", "x", 9999, next_assignee_id=officers["ACP"].id)
        assert exc.value.reason == "not_current_assignee"

    def test_inactive_next_assignee(self, officers, make_application):
        zs, acp = officers["ZS"], officers["ACP"]
        acp.is_active = False
        db.session.commit()
        app = make_application(StatusCode.FORWARD, holder=zs)

        with pytest.raises(TransitionError) as exc:
            submit_workflow_action(app.id, "FORWARD", "x", zs.id, next_assignee_id=acp.id)
        assert exc.value.reason == "unknown_next_assignee"

    def test_incomplete_attachment_descriptor(self, officers, make_application):
        zs, acp = officers["ZS"], officers["ACP"]
        app = make_application(StatusCode.FORWARD, holder=zs)

        with pytest.raises(TransitionError) as exc:
            submit_workflow_action(
                app.id, "FORWARD", "x", zs.id,
                next_assignee_id=acp.id, attachments=[{"name": "a.pdf", "type": "ID_PROOF"}],
            )
        assert exc.value.reason == "invalid_attachment"
        assert set(exc.value.details["missing"]) == {"contentType", "url"}
        assert _history_count(app.id) == 0

    def test_notifier_receives_side_effects(self, officers, make_application):
        zs, acp = officers["ZS"], officers["ACP"]
        app = make_application(StatusCode.FORWARD, holder=zs)
        seen = []

        submit_workflow_action(
            app.id, "FORWARD", "ok", zs.id, next_assignee_id=acp.id,
            notifier=lambda effect, outcome: seen.append((effect, outcome.state.current_user_id)),
        )
        assert seen == [(SideEffect.NOTIFY_NEXT_ASSIGNEE, acp.id)]


# ═════════════════════════════════════════════════════════════════════════
# REFUSAL ORDER
# ═════════════════════════════════════════════════════════════════════════


class TestRefusalOrder:
    PARTIAL = [{"name": "a.pdf", "type": "ID_PROOF"}]

    def test_terminal_reported_before_attachment(self, officers, make_application):
        dcp = officers["DCP"]
        app = make_application(StatusCode.DISPOSE, previous=dcp)

        with pytest.raises(TransitionError) as exc:
            submit_workflow_action(app.id, "CLOSE", "again", dcp.id, attachments=self.PARTIAL)
        assert exc.value.reason == "already_terminal"

    def test_holder_reported_before_attachment(self, officers, make_application):
        zs, acp, dcp = officers["ZS"], officers["ACP"], officers["DCP"]
        app = make_application(StatusCode.FORWARD, holder=zs)

        with pytest.raises(TransitionError) as exc:
            submit_workflow_action(
                app.id, "FORWARD", "x", acp.id, next_assignee_id=dcp.id, attachments=self.PARTIAL
            )
        assert exc.value.reason == "not_current_assignee"

    def test_terminal_reported_before_empty_remarks(self, officers, make_application):
        dcp = officers["DCP"]
        app = make_application(StatusCode.DISPOSE, previous=dcp)

        with pytest.raises(TransitionError) as exc:
            submit_workflow_action(app.id, "CLOSE", "   ", dcp.id)
        assert exc.value.reason == "already_terminal"

    def test_unknown_actor_reported_before_attachment(self, officers, make_application):
        app = make_application(StatusCode.FORWARD, holder=officers["ZS"])

        with pytest.raises(TransitionError) as exc:
            submit_workflow_action(
                app.id, "FORWARD", "x", 9999,
                next_assignee_id=officers["ACP"].id, attachments=self.PARTIAL,
            )
        assert exc.value.reason == "not_current_assignee"


# ═════════════════════════════════════════════════════════════════════════
# SINGLE-FLIGHT & DEBOUNCE
# ═════════════════════════════════════════════════════════════════════════


class TestSingleFlight:
    def test_default_identity(self):
        assert default_action_id("FORWARD", 42) == "forward-application-42"
        assert default_action_id(5, 7) == "re-enquiry-application-7"

    def test_blocked_while_same_action_in_flight(self, officers, make_application):
        zs, acp = officers["ZS"], officers["ACP"]
        app = make_application(StatusCode.FORWARD, holder=zs)
        coordinator = get_coordinator()
        token = coordinator.backend.try_acquire(default_action_id("FORWARD", app.id))

        result = submit_workflow_action(app.id, "FORWARD", "ok", zs.id, next_assignee_id=acp.id)

        assert result is BLOCKED
        assert _history_count(app.id) == 0
        coordinator.backend.release(default_action_id("FORWARD", app.id), token, 0.0)

    def test_other_action_kind_not_blocked(self, officers, make_application):
        zs = officers["ZS"]
        app = make_application(StatusCode.FORWARD, holder=zs)
        get_coordinator().backend.try_acquire(default_action_id("FORWARD", app.id))

        result = submit_workflow_action(app.id, "CLOSE", "Withdrawn by applicant", zs.id)
        assert result["new_status"] is StatusCode.CLOSE

    def test_debounce_window(self, officers, make_application):
        zs, acp, dcp = officers["ZS"], officers["ACP"], officers["DCP"]
        app = make_application(StatusCode.FORWARD, holder=zs)
        clock = FakeClock()
        coordinator = ActionCoordinator(clock=clock)

        submit_workflow_action(app.id, "FORWARD", "ok", zs.id, next_assignee_id=acp.id,
                               coordinator=coordinator, debounce_ms=1000)
        repeat = submit_workflow_action(app.id, "FORWARD", "ok", acp.id, next_assignee_id=dcp.id,
                                        coordinator=coordinator, debounce_ms=1000)
        assert repeat is BLOCKED

        clock.now += 1.5
        result = submit_workflow_action(app.id, "FORWARD", "ok", acp.id, next_assignee_id=dcp.id,
                                        coordinator=coordinator, debounce_ms=1000)
        assert result["application"].current_user_id == dcp.id
        assert _history_count(app.id) == 2

    def test_refused_attempt_does_not_start_debounce(self, officers, make_application):
        sho, acp = officers["SHO"], officers["ACP"]
        app = make_application(StatusCode.FORWARD, holder=sho)
        coordinator = ActionCoordinator(clock=FakeClock())

        with pytest.raises(TransitionError):
            submit_workflow_action(app.id, "FORWARD", "ok", sho.id, next_assignee_id=acp.id,
                                   coordinator=coordinator, debounce_ms=1000)
        result = submit_workflow_action(app.id, "FORWARD", "ok", sho.id, next_assignee_id=acp.id,
                                        attachments=[GROUND_REPORT_DOC],
                                        coordinator=coordinator, debounce_ms=1000)

        assert result["application"].current_user_id == acp.id
        assert _history_count(app.id) == 1

    def test_unexpected_failure_releases_lock(self, officers):
        class BrokenStore:
            def load_application(self, application_id):
                raise RuntimeError("database unreachable")

        coordinator = ActionCoordinator()
        with pytest.raises(RuntimeError, match="unreachable"):
            submit_workflow_action(1, "FORWARD", "x", officers["ZS"].id,
                                   coordinator=coordinator, store=BrokenStore())
        assert coordinator.is_in_flight(default_action_id("FORWARD", 1)) is False


# ═════════════════════════════════════════════════════════════════════════
# STORE
# ═════════════════════════════════════════════════════════════════════════


class TestApplicationStore:
    def test_load_application_snapshot(self, officers, make_application):
        zs, acp = officers["ZS"], officers["ACP"]
        app = make_application(StatusCode.FORWARD, holder=zs)
        submit_workflow_action(app.id, "FORWARD", "ok", zs.id, next_assignee_id=acp.id)

        state = SqlApplicationStore().load_application(app.id)

        assert state.status_code is StatusCode.FORWARD
        assert state.current_user_id == acp.id
        assert state.version == 2
        assert len(state.history) == 1
        assert state.history[0].from_status is StatusCode.FORWARD

    def test_stale_commit_conflicts_and_writes_nothing(self, officers, make_application):
        zs, acp, dcp = officers["ZS"], officers["ACP"], officers["DCP"]
        app = make_application(StatusCode.FORWARD, holder=zs)
        store = SqlApplicationStore()
        hierarchy = RoleHierarchy.from_database()
        state = store.load_application(app.id)

        first, _ = transition(
            state,
            ActionInput(ActionCode.FORWARD, "to ACP", _officer(zs), acp.id, _officer(acp)),
            hierarchy=hierarchy,
        )
        second, _ = transition(
            state,
            ActionInput(ActionCode.FORWARD, "to DCP", _officer(zs), dcp.id, _officer(dcp)),
            hierarchy=hierarchy,
        )
        store.commit_transition(app.id, first)

        with pytest.raises(ConflictError):
            store.commit_transition(app.id, second)

        row = db.session.get(LicenseApplication, app.id)
        assert row.current_user_id == acp.id
        assert row.version == 2
        assert _history_count(app.id) == 1

    def test_holder_cannot_be_deleted_while_holding_a_file(self, officers, make_application):
        zs = officers["ZS"]
        app = make_application(StatusCode.FORWARD, holder=zs)

        db.session.delete(zs)
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

        row = db.session.get(LicenseApplication, app.id)
        assert row.current_user_id == zs.id
        assert row.current_role_id == zs.role_id

    def test_holder_role_cannot_be_deleted_while_holding_a_file(self, officers, make_application):
        zs = officers["ZS"]
        app = make_application(StatusCode.FORWARD, holder=zs)

        db.session.execute(db.delete(Role).where(Role.id == zs.role_id))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

        assert db.session.get(LicenseApplication, app.id).current_role_id == zs.role_id


# ═════════════════════════════════════════════════════════════════════════
# READ OPERATIONS
# ═════════════════════════════════════════════════════════════════════════


class TestReadOperations:
    def test_create_application_as_draft(self, officers):
        zs = officers["ZS"]
        app = workflow_service.create_application("Asha Rao", zs.id, licence_type="NEW")

        assert app.status_code == StatusCode.DRAFT
        assert app.current_user_id == zs.id
        assert app.is_pending is False

    def test_create_requires_initiating_officer(self, officers):
        with pytest.raises(ValidationError):
            workflow_service.create_application("Asha Rao", officers["SHO"].id)

    def test_create_requires_name(self, officers):
        with pytest.raises(ValidationError):
            workflow_service.create_application("  ", officers["ZS"].id)

    def test_available_actions_for_holder_only(self, officers, make_application):
        sho = officers["SHO"]
        app = make_application(StatusCode.FORWARD, holder=sho)

        actions = {a["code"]: a for a in workflow_service.available_actions(app.id, sho.id)}
        assert set(actions) == {"FORWARD", "RECOMMEND", "RETURN", "GROUND_REPORT", "RED_FLAG"}
        assert actions["FORWARD"]["required_artifact"] == "GROUND_REPORT"
        assert actions["FORWARD"]["requires_next_assignee"] is True
        assert actions["RED_FLAG"]["required_artifact"] is None

        assert workflow_service.available_actions(app.id, officers["ACP"].id) == []

    def test_candidates_follow_hierarchy_and_include_previous(self, officers, make_application):
        zs, sho = officers["ZS"], officers["SHO"]
        app = make_application(StatusCode.FORWARD, holder=zs, previous=sho)

        codes = {u["role_code"] for u in workflow_service.candidate_assignees(app.id)}
        assert codes == {"ACP", "DCP", "SHO"}

    def test_inbox_and_sent(self, officers, make_application):
        zs, acp = officers["ZS"], officers["ACP"]
        app = make_application(StatusCode.FORWARD, holder=zs)
        submit_workflow_action(app.id, "FORWARD", "ok", zs.id, next_assignee_id=acp.id)

        assert [a["id"] for a in workflow_service.inbox(acp.id, "forwarded")] == [app.id]
        assert workflow_service.inbox(zs.id, "forwarded") == []
        assert [a["id"] for a in workflow_service.inbox(zs.id, "sent")] == [app.id]
        assert workflow_service.inbox_counts(acp.id, ["pending", "sent", "nope"]) == {
            "pending": 1, "sent": 0, "nope": 0,
        }

    def test_get_application_includes_history(self, officers, make_application):
        zs, acp = officers["ZS"], officers["ACP"]
        app = make_application(StatusCode.FORWARD, holder=zs)
        submit_workflow_action(app.id, "FORWARD", "ok", zs.id, next_assignee_id=acp.id)

        data = workflow_service.get_application(app.id)
        assert data["status"] == "FORWARD"
        assert len(data["history"]) == 1
