"""
User model: read-only from the core's point of view.

The identity subsystem owns registration, credentials and profile edits.
The project core only reads ``id``, ``role``, ``is_active`` and the display
names used in project listings.
"""

from datetime import datetime, timezone

from agencyflow.models import db


# ── Roles ────────────────────────────────────────────────────────────────────

ROLE_ADMIN = "admin"
ROLE_CONTROLLER = "controller"
ROLE_CLIENT = "client"

USER_ROLES = {ROLE_ADMIN, ROLE_CONTROLLER, ROLE_CLIENT}


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    first_name = db.Column(db.String(100), default="")
    last_name = db.Column(db.String(100), default="")
    role = db.Column(db.String(20), nullable=False, default=ROLE_CLIENT, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.role}>"
