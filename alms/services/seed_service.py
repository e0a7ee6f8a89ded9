"""
Directory seeding — roles, forward hierarchy and one officer per role.

Idempotent: existing rows (matched by role code / username) are left
alone, so the command can run on every deploy.

Usage:
    flask seed-workflow
"""

import logging

from sqlalchemy import select

from alms.models import db
from alms.models.auth import DEFAULT_FORWARD_PAIRS, DEFAULT_ROLES, Role, RoleHierarchy, User
from alms.models.workflow import CAPABILITY_FLAGS

logger = logging.getLogger(__name__)


def seed_roles() -> dict[str, Role]:
    existing = {r.code: r for r in db.session.execute(select(Role)).scalars()}
    created = 0
    for code, (name, rank, flags) in DEFAULT_ROLES.items():
        if code in existing:
            continue
        role = Role(
            code=code,
            name=name,
            hierarchy_rank=rank,
            **{flag: flag in flags for flag in CAPABILITY_FLAGS},
        )
        db.session.add(role)
        existing[code] = role
        created += 1
    db.session.flush()
    logger.info("Seeded %d roles (%d already present)", created, len(existing) - created)
    return existing


def seed_hierarchy(roles: dict[str, Role]) -> int:
    present = {
        (h.from_role_id, h.to_role_id)
        for h in db.session.execute(select(RoleHierarchy)).scalars()
    }
    created = 0
    for src, dst in DEFAULT_FORWARD_PAIRS:
        key = (roles[src].id, roles[dst].id)
        if key in present:
            continue
        db.session.add(RoleHierarchy(from_role_id=key[0], to_role_id=key[1]))
        present.add(key)
        created += 1
    db.session.flush()
    logger.info("Seeded %d forward-hierarchy pairs", created)
    return created


def seed_users(roles: dict[str, Role]) -> int:
    usernames = set(db.session.execute(select(User.username)).scalars())
    created = 0
    for code, role in roles.items():
        if code == "APPLICANT":
            continue
        username = code.lower()
        if username in usernames:
            continue
        db.session.add(User(
            username=username,
            email=f"{username}@alms.local",
            full_name=f"{role.name} (seed)",
            role_id=role.id,
        ))
        created += 1
    db.session.flush()
    logger.info("Seeded %d officers", created)
    return created


def seed_workflow_directory() -> dict:
    """Seed everything in one transaction."""
    roles = seed_roles()
    pairs = seed_hierarchy(roles)
    users = seed_users(roles)
    db.session.commit()
    return {"roles": len(roles), "new_pairs": pairs, "new_users": users}
