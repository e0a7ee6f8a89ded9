"""
Licence Application domain model.

Models:
    - LicenseApplication: the file moving through the reviewing hierarchy.
    - WorkflowHistory: immutable, append-only record of each accepted action.

Business rules:
    - status_code is always a known StatusCode id.
    - current_user_id / current_role_id are NULL only in terminal statuses.
    - The flag columns are denormalised from status_code by the transition
      function; they are never written independently.
    - WorkflowHistory rows are never updated or deleted; order is by id.
    - ``version`` is bumped on every accepted transition and guards the
      commit against concurrent writers (optimistic locking).
"""

from datetime import datetime, timezone

from alms.models import db
from alms.models.workflow import STATUS_LABELS, StatusCode


class LicenseApplication(db.Model):
    __tablename__ = "license_applications"
    __table_args__ = (
        db.Index("idx_application_status", "status_code"),
        db.Index("idx_application_current_user", "current_user_id"),
        db.Index("idx_application_previous_user", "previous_user_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    applicant_name = db.Column(db.String(200), nullable=False)
    licence_type = db.Column(db.String(50), nullable=True)

    status_code = db.Column(db.Integer, nullable=False, default=int(StatusCode.DRAFT))

    # Responsibility; a holder row cannot be deleted while it holds a file
    current_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=True
    )
    current_role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="RESTRICT"), nullable=True
    )
    previous_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    previous_role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True
    )

    # Denormalised workflow flags
    is_approved = db.Column(db.Boolean, nullable=False, default=False)
    is_rejected = db.Column(db.Boolean, nullable=False, default=False)
    is_pending = db.Column(db.Boolean, nullable=False, default=False)  # True once under review
    is_re_enquiry = db.Column(db.Boolean, nullable=False, default=False)
    is_re_enquiry_done = db.Column(db.Boolean, nullable=False, default=False)
    is_ground_report_generated = db.Column(db.Boolean, nullable=False, default=False)
    is_flaf_generated = db.Column(db.Boolean, nullable=False, default=False)

    remarks = db.Column(db.Text, nullable=True, comment="Remarks of the latest accepted action")
    attachments = db.Column(db.JSON, nullable=False, default=list)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    history = db.relationship(
        "WorkflowHistory",
        back_populates="application",
        order_by="WorkflowHistory.id",
        lazy="select",
    )

    def to_dict(self, include_history=False):
        d = {
            "id": self.id,
            "applicant_name": self.applicant_name,
            "licence_type": self.licence_type,
            "status_code": self.status_code,
            "status": StatusCode(self.status_code).name,
            "status_label": STATUS_LABELS[StatusCode(self.status_code)],
            "current_user_id": self.current_user_id,
            "current_role_id": self.current_role_id,
            "previous_user_id": self.previous_user_id,
            "previous_role_id": self.previous_role_id,
            "is_approved": self.is_approved,
            "is_rejected": self.is_rejected,
            "is_pending": self.is_pending,
            "is_re_enquiry": self.is_re_enquiry,
            "is_re_enquiry_done": self.is_re_enquiry_done,
            "is_ground_report_generated": self.is_ground_report_generated,
            "is_flaf_generated": self.is_flaf_generated,
            "remarks": self.remarks,
            "attachments": list(self.attachments or []),
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_history:
            d["history"] = [h.to_dict() for h in self.history]
        return d

    def __repr__(self):
        return f"<LicenseApplication {self.id}: status={self.status_code} v{self.version}>"


class WorkflowHistory(db.Model):
    """
    Immutable audit trail for every accepted workflow action.

    One row per transition, written in the same transaction as the
    application update.
    """

    __tablename__ = "workflow_history"
    __table_args__ = (
        db.Index("idx_history_application", "application_id", "id"),
        db.Index("idx_history_previous_user", "previous_user_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer,
        db.ForeignKey("license_applications.id", ondelete="CASCADE"),
        nullable=False,
    )

    previous_user_id = db.Column(db.Integer, nullable=True, comment="Officer who acted")
    previous_role_id = db.Column(db.Integer, nullable=True)
    action_taken = db.Column(db.String(30), nullable=False, comment="FORWARD | DISPOSE | …")
    from_status = db.Column(db.Integer, nullable=False)
    to_status = db.Column(db.Integer, nullable=False)
    next_user_id = db.Column(db.Integer, nullable=True)
    next_role_id = db.Column(db.Integer, nullable=True)
    remarks = db.Column(db.Text, nullable=False)
    attachments = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    application = db.relationship("LicenseApplication", back_populates="history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "application_id": self.application_id,
            "previous_user_id": self.previous_user_id,
            "previous_role_id": self.previous_role_id,
            "action_taken": self.action_taken,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "next_user_id": self.next_user_id,
            "next_role_id": self.next_role_id,
            "remarks": self.remarks,
            "attachments": list(self.attachments or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<WorkflowHistory {self.id}: {self.action_taken} on application/{self.application_id}>"
