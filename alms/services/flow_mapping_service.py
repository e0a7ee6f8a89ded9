"""
Flow Mapping Service — maintains the role_hierarchy forward graph.

Business context:
    Each role has a list of "next roles" an officer holding a file may
    forward it to.  The transition function reads this graph through
    RoleHierarchy.from_database(); this module is the only writer after
    the initial seed.

    Invariant: the forward graph stays acyclic.  A file travels back down
    through RETURN to its previous holder, never through a forward edge,
    so a mapping that would let a file loop forever is refused.

    get_next_roles(role_id)                       → mapping dict
    list_mappings()                               → [mapping dict]
    validate_mapping(role_id, next_role_ids)      → {is_valid, circle_path, …}
    update_next_roles(role_id, next_role_ids)     → mapping dict
    duplicate_mapping(source_role_id, target_id)  → mapping dict
    reset_mapping(role_id)                        → mapping dict (empty)
"""

import logging

from sqlalchemy import delete, select

from alms.core.exceptions import NotFoundError, ValidationError
from alms.models import db
from alms.models.auth import Role, RoleHierarchy

logger = logging.getLogger(__name__)

_ARROW = " → "


# ── Graph helpers ─────────────────────────────────────────────────────────────


def find_cycle(adjacency: dict, start) -> list | None:
    """Return the first cycle reachable from *start*, or None.

    The path begins and ends on the repeated node, e.g. ``[a, b, c, a]``.
    """
    visited = set()
    path = []
    on_path = set()

    def _visit(node):
        visited.add(node)
        path.append(node)
        on_path.add(node)
        for nxt in adjacency.get(node, ()):
            if nxt in on_path:
                return path[path.index(nxt):] + [nxt]
            if nxt not in visited:
                found = _visit(nxt)
                if found:
                    return found
        path.pop()
        on_path.discard(node)
        return None

    return _visit(start)


def _adjacency() -> dict[int, list[int]]:
    graph: dict[int, list[int]] = {}
    rows = db.session.execute(select(RoleHierarchy).order_by(RoleHierarchy.id)).scalars()
    for row in rows:
        graph.setdefault(row.from_role_id, []).append(row.to_role_id)
    return graph


def _role_or_404(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError(resource="Role", resource_id=role_id)
    return role


def _normalise(next_role_ids) -> list[int]:
    seen = []
    for rid in next_role_ids or ():
        if rid not in seen:
            seen.append(rid)
    if not seen:
        raise ValidationError(
            "At least one next role is required", {"field": "nextRoleIds"}
        )
    return seen


def _check_roles_exist(next_role_ids: list[int]) -> dict[int, Role]:
    found = {
        r.id: r
        for r in db.session.execute(select(Role).where(Role.id.in_(next_role_ids))).scalars()
    }
    invalid = [rid for rid in next_role_ids if rid not in found]
    if invalid:
        raise ValidationError(
            f"Invalid role IDs: {', '.join(str(i) for i in invalid)}",
            {"invalid_role_ids": invalid},
        )
    return found


def _cycle_with(role_id: int, next_role_ids: list[int]) -> list[str] | None:
    """Cycle (as role codes) the graph would contain with *role_id* remapped."""
    graph = _adjacency()
    graph[role_id] = list(next_role_ids)
    cycle = find_cycle(graph, role_id)
    if cycle is None:
        return None
    codes = {r.id: r.code for r in db.session.execute(select(Role).where(Role.id.in_(cycle))).scalars()}
    return [codes.get(rid, str(rid)) for rid in cycle]


def _replace_targets(role_id: int, next_role_ids: list[int], actor_user_id=None) -> None:
    db.session.execute(delete(RoleHierarchy).where(RoleHierarchy.from_role_id == role_id))
    for rid in next_role_ids:
        db.session.add(RoleHierarchy(from_role_id=role_id, to_role_id=rid, created_by=actor_user_id))
    db.session.commit()


def _mapping_dict(role: Role) -> dict:
    rows = db.session.execute(
        select(RoleHierarchy)
        .where(RoleHierarchy.from_role_id == role.id)
        .order_by(RoleHierarchy.id)
    ).scalars().all()
    latest = max(rows, key=lambda r: r.id) if rows else None
    return {
        "current_role_id": role.id,
        "current_role_code": role.code,
        "current_role_name": role.name,
        "next_role_ids": [r.to_role_id for r in rows],
        "next_roles": [
            {"id": r.to_role.id, "code": r.to_role.code, "name": r.to_role.name} for r in rows
        ],
        "updated_by": latest.created_by if latest else None,
        "updated_at": latest.created_at.isoformat() if latest and latest.created_at else None,
    }


# ── Public service functions ──────────────────────────────────────────────────


def get_next_roles(role_id: int) -> dict:
    """Roles that *role_id* may forward to.  Raises NotFoundError for an unknown role."""
    return _mapping_dict(_role_or_404(role_id))


def list_mappings() -> list[dict]:
    """Every role that has at least one next role, ordered by role id."""
    role_ids = db.session.execute(
        select(RoleHierarchy.from_role_id).distinct().order_by(RoleHierarchy.from_role_id)
    ).scalars().all()
    return [_mapping_dict(db.session.get(Role, rid)) for rid in role_ids]


def validate_mapping(role_id: int, next_role_ids) -> dict:
    """Dry-run of update_next_roles: reports a cycle instead of raising.

    Unknown roles still raise (NotFoundError / ValidationError).
    """
    _role_or_404(role_id)
    next_role_ids = _normalise(next_role_ids)
    _check_roles_exist(next_role_ids)
    cycle = _cycle_with(role_id, next_role_ids)
    circle_path = _ARROW.join(cycle) if cycle else None
    return {
        "is_valid": cycle is None,
        "has_circular_dependency": cycle is not None,
        "circle_path": circle_path,
        "message": (
            f"Circular workflow detected: {circle_path}" if cycle else "Flow mapping is valid"
        ),
    }


def update_next_roles(role_id: int, next_role_ids, actor_user_id: int | None = None) -> dict:
    """Replace the forward targets of *role_id*.

    Raises:
        NotFoundError: role_id does not exist.
        ValidationError: empty list, unknown next role ids, or the new
            mapping would close a cycle (details carry ``circle_path``).
    """
    role = _role_or_404(role_id)
    next_role_ids = _normalise(next_role_ids)
    _check_roles_exist(next_role_ids)
    cycle = _cycle_with(role_id, next_role_ids)
    if cycle:
        raise ValidationError(
            f"Circular workflow detected: {_ARROW.join(cycle)}",
            {"circle_path": cycle},
        )

    _replace_targets(role_id, next_role_ids, actor_user_id)
    logger.info(
        "Flow mapping for role %s set to %s by user %s",
        role.code, next_role_ids, actor_user_id,
        extra={"role_id": role_id},
    )
    return _mapping_dict(role)


def duplicate_mapping(source_role_id: int, target_role_id: int, actor_user_id: int | None = None) -> dict:
    """Copy the forward targets of one role onto another (cycle-checked)."""
    source = _role_or_404(source_role_id)
    targets = _mapping_dict(source)["next_role_ids"]
    if not targets:
        raise NotFoundError(resource="Flow mapping", resource_id=source_role_id)
    target = _role_or_404(target_role_id)
    cycle = _cycle_with(target_role_id, targets)
    if cycle:
        raise ValidationError(
            f"Cannot duplicate mapping: circular workflow detected - {_ARROW.join(cycle)}",
            {"circle_path": cycle},
        )

    _replace_targets(target_role_id, targets, actor_user_id)
    logger.info(
        "Flow mapping of role %s copied to role %s by user %s",
        source.code, target.code, actor_user_id,
        extra={"role_id": target_role_id},
    )
    return _mapping_dict(target)


def reset_mapping(role_id: int, actor_user_id: int | None = None) -> dict:
    """Remove every forward target of *role_id*."""
    role = _role_or_404(role_id)
    if not _adjacency().get(role_id):
        raise NotFoundError(resource="Flow mapping", resource_id=role_id)

    db.session.execute(delete(RoleHierarchy).where(RoleHierarchy.from_role_id == role_id))
    db.session.commit()
    logger.info("Flow mapping for role %s cleared by user %s", role.code, actor_user_id,
                extra={"role_id": role_id})
    return _mapping_dict(role)
