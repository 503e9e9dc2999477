from __future__ import annotations

from ..extensions import db
from pawpal.time_utils import to_utc_z


class Notification(db.Model):
    """In-app message addressed to one user."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(32), nullable=False, default="info")
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    related_type = db.Column(db.String(32), nullable=True)
    related_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "is_read": self.is_read,
            "related_type": self.related_type,
            "related_id": self.related_id,
            "created_at": to_utc_z(self.created_at),
        }


OUTBOX_PENDING = "pending"
OUTBOX_SENT = "sent"
OUTBOX_FAILED = "failed"


class EmailOutbox(db.Model):
    """
    Outgoing mail, written in the same transaction as the change that
    triggered it and delivered after commit.
    """
    __tablename__ = "email_outbox"
    __table_args__ = (
        db.Index("ix_email_outbox_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    to_address = db.Column(db.String(255), nullable=False)
    subject = db.Column(db.String(255), nullable=False)
    html_body = db.Column(db.Text, nullable=False)
    text_body = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=OUTBOX_PENDING)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "to_address": self.to_address,
            "subject": self.subject,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "sent_at": to_utc_z(self.sent_at),
        }
