"""
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from agencyflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────
# ``type`` is a free-form tag; these are the values the platform itself emits.

NOTIFICATION_TYPE_PROJECT_UPDATE = "project_update"
NOTIFICATION_TYPE_PROFILE_UPDATE = "profile_update"
NOTIFICATION_TYPE_USER_UPDATE = "user_update"
NOTIFICATION_TYPE_SYSTEM = "system"
NOTIFICATION_TYPE_ANNOUNCEMENT = "announcement"

NOTIFICATION_TYPES = {
    NOTIFICATION_TYPE_PROJECT_UPDATE,
    NOTIFICATION_TYPE_PROFILE_UPDATE,
    NOTIFICATION_TYPE_USER_UPDATE,
    NOTIFICATION_TYPE_SYSTEM,
    NOTIFICATION_TYPE_ANNOUNCEMENT,
}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_unread", "user_id", "is_read"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    type = db.Column(db.String(50), default=NOTIFICATION_TYPE_SYSTEM)

    # Read tracking
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
