"""
Project domain models.

Models:
    - Project: client-owned engagement, optionally assigned to a controller
    - ProjectFile: attachment uploaded against a project
"""

from datetime import datetime, timezone

from agencyflow.models import db


# ── Status vocabulary ────────────────────────────────────────────────────────
# ``status`` is stored as an open string. The table below is only enforced
# when PROJECT_STRICT_TRANSITIONS is enabled.

PROJECT_STATUSES = {
    "pending", "planning", "designing", "development", "testing",
    "delivery", "completed", "cancelled", "in_progress",
}

TERMINAL_STATUSES = {"completed", "cancelled"}

PROJECT_TRANSITIONS = {
    "pending": {"planning", "designing", "cancelled"},
    "planning": {"designing", "development", "cancelled"},
    "designing": {"development", "cancelled"},
    "development": {"testing", "cancelled"},
    "in_progress": {"testing", "cancelled"},
    "testing": {"delivery", "development", "cancelled"},
    "delivery": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

# Fields a client may change on their own project.
CLIENT_EDITABLE_FIELDS = ("title", "description", "amount", "amount_description")

# Fields the generic update path writes; anything else in a patch is ignored.
UPDATABLE_FIELDS = (
    "title", "description", "service_id", "status", "progress",
    "start_date", "end_date", "amount", "amount_description",
)

PROGRESS_FIELDS = ("progress", "status")


def _utcnow():
    return datetime.now(timezone.utc)


class Project(db.Model):
    """Engagement owned by a client and delivered by at most one controller."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    service_id = db.Column(db.Integer, nullable=True, index=True)
    client_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    controller_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status = db.Column(db.String(30), nullable=False, default="pending")
    progress = db.Column(db.Integer, nullable=False, default=0)
    amount = db.Column(db.Numeric(12, 2), nullable=True)
    amount_description = db.Column(db.Text, nullable=True)
    requirements_pdf = db.Column(db.String(500), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    client = db.relationship("User", foreign_keys=[client_id], lazy="joined")
    controller = db.relationship("User", foreign_keys=[controller_id], lazy="joined")
    files = db.relationship(
        "ProjectFile",
        backref="project",
        lazy="dynamic",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self) -> dict:
        """Serialize project fields plus the joined display names."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "service_id": self.service_id,
            "client_id": self.client_id,
            "controller_id": self.controller_id,
            "client_name": self.client.full_name if self.client else None,
            "controller_name": self.controller.full_name if self.controller else None,
            "status": self.status,
            "progress": self.progress,
            "amount": float(self.amount) if self.amount is not None else None,
            "amount_description": self.amount_description,
            "requirements_pdf": self.requirements_pdf,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.title[:40]}>"


class ProjectFile(db.Model):
    __tablename__ = "project_files"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name = db.Column(db.String(300), nullable=False)
    file_path = db.Column(db.String(500), nullable=True)
    file_type = db.Column(db.String(100), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    uploader = db.relationship("User", foreign_keys=[uploaded_by], lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "file_name": self.file_name,
            "file_path": self.file_path,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "uploaded_by": self.uploaded_by,
            "first_name": self.uploader.first_name if self.uploader else None,
            "last_name": self.uploader.last_name if self.uploader else None,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }

    def __repr__(self):
        return f"<ProjectFile {self.id}: {self.file_name}>"
