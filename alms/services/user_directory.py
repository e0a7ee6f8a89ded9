"""
User/Role directory lookups used by the workflow service.

The engine treats these as opaque reads; nothing here mutates users or
roles.  Inactive users and users of inactive roles never resolve.
"""

from __future__ import annotations

from sqlalchemy import select

from alms.models import db
from alms.models.application import LicenseApplication
from alms.models.auth import Role, User
from alms.services.workflow_engine import Officer


class SqlUserDirectory:
    def __init__(self, hierarchy, session=None):
        self._hierarchy = hierarchy
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def _active_user(self, user_id):
        if user_id is None:
            return None
        user = self.session.get(User, user_id)
        if user is None or not user.is_active or user.role is None or not user.role.is_active:
            return None
        return user

    def resolve_user(self, user_id) -> Officer | None:
        user = self._active_user(user_id)
        if user is None:
            return None
        return Officer(user_id=user.id, role_id=user.role_id, role_code=user.role.code)

    def resolve_role(self, user_id) -> str | None:
        officer = self.resolve_user(user_id)
        return officer.role_code if officer else None

    def list_candidate_assignees(self, application_id) -> list[User]:
        """Active officers the current holder of *application_id* may send it to.

        Includes the previous holder, who can always be returned to.
        """
        app = self.session.get(LicenseApplication, application_id)
        if app is None or app.current_role_id is None:
            return []
        holder_role = self.session.get(Role, app.current_role_id)
        targets = self._hierarchy.forward_targets(holder_role.code if holder_role else None)

        stmt = (
            select(User)
            .join(Role, User.role_id == Role.id)
            .where(User.is_active.is_(True), Role.is_active.is_(True))
            .order_by(Role.hierarchy_rank, User.full_name, User.id)
        )
        return [
            u for u in self.session.execute(stmt).scalars()
            if u.id != app.current_user_id
            and (u.role.code in targets or u.id == app.previous_user_id)
        ]
