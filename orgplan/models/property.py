"""
Application property model — namespaced key/value records.

Used for state that has no natural tabular home, such as anonymous share
tokens (``share_token_<token>``). Values are JSON documents.
"""

from datetime import datetime, timezone

from orgplan.models import db


class AppProperty(db.Model):
    """One persisted key/value pair."""
    __tablename__ = "app_properties"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(200), unique=True, nullable=False)
    value = db.Column(db.JSON, nullable=False, default=dict)
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "key": self.key,
            "value": self.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
