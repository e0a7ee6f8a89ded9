"""
Role Hierarchy & Capability Gate.

Answers two questions for the transition function, without touching the
database at decision time:

    can_submit(role_code, action_code)        → bool
    requires_artifact(role_code, action_code) → ArtifactRequirement | None

plus ``can_forward_to(from_role, to_role)`` for next-assignee validation.

The gate is an immutable snapshot.  Build it from the directory tables
with ``RoleHierarchy.from_database()`` or from the built-in seed with
``RoleHierarchy.default()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from alms.models import db
from alms.models.auth import DEFAULT_FORWARD_PAIRS, DEFAULT_ROLES, Role, RoleHierarchy as RoleHierarchyRow
from alms.models.workflow import (
    ACTION_CAPABILITY,
    CAPABILITY_FLAGS,
    GROUND_REPORT_ATTACHMENT,
    ActionCode,
    parse_action,
)

# Actions that carry the ground-report obligation for GROUND_REPORT_ROLES.
_GROUND_REPORT_GATED = frozenset({ActionCode.FORWARD, ActionCode.RECOMMEND})


@dataclass(frozen=True)
class ArtifactRequirement:
    """An attachment that must accompany an action before it is accepted."""

    attachment_type: str
    label: str

    def is_satisfied_by(self, attachments) -> bool:
        return any(
            (a.get("type") or "").upper() == self.attachment_type
            for a in attachments or ()
        )


GROUND_REPORT = ArtifactRequirement(GROUND_REPORT_ATTACHMENT, "Ground Report Letter")


@dataclass(frozen=True)
class RoleProfile:
    code: str
    hierarchy_rank: int
    capabilities: frozenset[str] = field(default_factory=frozenset)
    is_active: bool = True


class RoleHierarchy:
    """Read-only capability gate over a set of roles."""

    def __init__(self, roles, forward_pairs=(), ground_report_roles=("SHO",)):
        self._roles = {r.code: r for r in roles}
        targets: dict[str, set[str]] = {}
        for src, dst in forward_pairs:
            targets.setdefault(src, set()).add(dst)
        self._targets = {k: frozenset(v) for k, v in targets.items()}
        self._ground_report_roles = frozenset(c.upper() for c in ground_report_roles)

    # ── Construction ────────────────────────────────────────────────────

    @classmethod
    def default(cls, ground_report_roles=("SHO",)) -> RoleHierarchy:
        roles = [
            RoleProfile(code=code, hierarchy_rank=rank, capabilities=frozenset(flags))
            for code, (_name, rank, flags) in DEFAULT_ROLES.items()
        ]
        return cls(roles, DEFAULT_FORWARD_PAIRS, ground_report_roles)

    @classmethod
    def from_database(cls, ground_report_roles=("SHO",)) -> RoleHierarchy:
        rows = db.session.execute(db.select(Role)).scalars().all()
        roles = [
            RoleProfile(
                code=r.code,
                hierarchy_rank=r.hierarchy_rank,
                capabilities=frozenset(f for f in CAPABILITY_FLAGS if getattr(r, f)),
                is_active=r.is_active,
            )
            for r in rows
        ]
        by_id = {r.id: r.code for r in rows}
        pairs = [
            (by_id[h.from_role_id], by_id[h.to_role_id])
            for h in db.session.execute(db.select(RoleHierarchyRow)).scalars()
            if h.from_role_id in by_id and h.to_role_id in by_id
        ]
        return cls(roles, pairs, ground_report_roles)

    # ── Gate ────────────────────────────────────────────────────────────

    def get(self, role_code: str | None) -> RoleProfile | None:
        if not role_code:
            return None
        return self._roles.get(role_code.upper())

    def can_submit(self, role_code: str | None, action_code) -> bool:
        role = self.get(role_code)
        action = parse_action(action_code)
        if role is None or not role.is_active or action is None:
            return False
        return ACTION_CAPABILITY[action] in role.capabilities

    def requires_artifact(self, role_code: str | None, action_code) -> ArtifactRequirement | None:
        action = parse_action(action_code)
        if action is ActionCode.GROUND_REPORT:
            return GROUND_REPORT
        if action in _GROUND_REPORT_GATED and (role_code or "").upper() in self._ground_report_roles:
            return GROUND_REPORT
        return None

    def can_forward_to(self, from_role: str | None, to_role: str | None) -> bool:
        """True when *to_role* is an allowed forward target of *from_role*.

        With no hierarchy configured at all every active role is reachable.
        """
        target = self.get(to_role)
        if target is None or not target.is_active:
            return False
        if not self._targets:
            return True
        return target.code in self._targets.get((from_role or "").upper(), frozenset())

    def forward_targets(self, from_role: str | None) -> frozenset[str]:
        if not self._targets:
            return frozenset(code for code, r in self._roles.items() if r.is_active)
        return self._targets.get((from_role or "").upper(), frozenset())
