"""
Directory Models — reviewing roles, role hierarchy and officers.

The workflow engine only reads these tables.  Rows are created by the
``flask seed-workflow`` command (see services/seed_service.py); the
role_hierarchy pairs are maintained afterwards through the flow-mapping
endpoints (services/flow_mapping_service.py).
"""

from datetime import datetime, timezone

from alms.models import db

# ── Seed data ────────────────────────────────────────────────────────────────

# code → (name, hierarchy_rank, capability flags).  Lower rank = more senior.
DEFAULT_ROLES = {
    "APPLICANT": ("Citizen Applicant", 14, ()),
    "ZS": ("Zonal Superintendent", 13, ("can_flaf", "can_forward", "can_close")),
    "SHO": ("Station House Officer", 12, ("can_forward", "can_generate_ground_report", "can_red_flag")),
    "ACP": ("Assistant Commissioner of Police", 11, ("can_forward", "can_re_enquiry", "can_red_flag")),
    "DCP": (
        "Deputy Commissioner of Police", 10,
        ("can_forward", "can_re_enquiry", "can_red_flag", "can_approve_final", "can_close"),
    ),
    "AS": ("Arms Superintendent", 9, ("can_forward",)),
    "ADO": ("Administrative Officer", 8, ("can_forward",)),
    "CADO": ("Chief Administrative Officer", 7, ("can_forward", "can_red_flag")),
    "JTCP": ("Joint Commissioner of Police", 6, ("can_forward", "can_re_enquiry", "can_red_flag")),
    "CP": (
        "Commissioner of Police", 5,
        ("can_forward", "can_re_enquiry", "can_red_flag", "can_approve_final", "can_close"),
    ),
    "ARMS_SUPDT": ("Arms Superintendent (Verification)", 4, ("can_forward",)),
    "ARMS_SEAT": ("Arms Seat", 3, ("can_forward",)),
    "ACO": ("Assistant Compliance Officer", 2, ("can_forward", "can_red_flag")),
    "ADMIN": (
        "System Administrator", 1,
        (
            "can_forward", "can_re_enquiry", "can_generate_ground_report", "can_flaf",
            "can_approve_final", "can_red_flag", "can_close",
        ),
    ),
}

# (from_role, to_role) pairs an officer may forward to.  ADMIN reaches every role.
# The graph is acyclic; files travel back down through RETURN to the previous holder.
DEFAULT_FORWARD_PAIRS = (
    ("ZS", "ACP"), ("ZS", "DCP"), ("SHO", "ACP"), ("ACP", "DCP"),
    ("DCP", "AS"), ("DCP", "CP"), ("AS", "ADO"), ("ADO", "CADO"), ("CADO", "JTCP"), ("JTCP", "CP"),
    ("ARMS_SUPDT", "ARMS_SEAT"), ("ARMS_SUPDT", "ADO"), ("ARMS_SEAT", "ADO"),
    ("ACO", "ACP"), ("ACO", "DCP"), ("ACO", "CP"),
) + tuple(("ADMIN", code) for code in DEFAULT_ROLES if code != "ADMIN")


# ═══════════════════════════════════════════════════════════════
# 1. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(30), unique=True, nullable=False)  # e.g. "SHO", "DCP"
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    hierarchy_rank = db.Column(db.Integer, nullable=False, default=0)  # lower = more senior
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Capability flags gating workflow actions
    can_forward = db.Column(db.Boolean, nullable=False, default=False)
    can_re_enquiry = db.Column(db.Boolean, nullable=False, default=False)
    can_generate_ground_report = db.Column(db.Boolean, nullable=False, default=False)
    can_flaf = db.Column(db.Boolean, nullable=False, default=False)  # fresh licence application form
    can_approve_final = db.Column(db.Boolean, nullable=False, default=False)
    can_red_flag = db.Column(db.Boolean, nullable=False, default=False)
    can_close = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    users = db.relationship("User", back_populates="role", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "hierarchy_rank": self.hierarchy_rank,
            "is_active": self.is_active,
            "can_forward": self.can_forward,
            "can_re_enquiry": self.can_re_enquiry,
            "can_generate_ground_report": self.can_generate_ground_report,
            "can_flaf": self.can_flaf,
            "can_approve_final": self.can_approve_final,
            "can_red_flag": self.can_red_flag,
            "can_close": self.can_close,
        }


# ═══════════════════════════════════════════════════════════════
# 2. ROLE HIERARCHY (flow mapping: allowed forward targets)
# ═══════════════════════════════════════════════════════════════
class RoleHierarchy(db.Model):
    __tablename__ = "role_hierarchy"

    id = db.Column(db.Integer, primary_key=True)
    from_role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    to_role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("from_role_id", "to_role_id", name="uq_role_hierarchy_pair"),
    )

    from_role = db.relationship("Role", foreign_keys=[from_role_id])
    to_role = db.relationship("Role", foreign_keys=[to_role_id])


# ═══════════════════════════════════════════════════════════════
# 3. USERS (reviewing officers)
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    email = db.Column(db.String(200))
    full_name = db.Column(db.String(200))
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    role = db.relationship("Role", back_populates="users")

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "role_id": self.role_id,
            "role_code": self.role.code if self.role else None,
            "is_active": self.is_active,
        }
