"""
Soft Delete Mixin for canvases and agents.

Deleted canvases and agents keep their rows (agent history points at them)
but carry a ``deleted_at`` timestamp. Grouping, search and listing only ever
see active rows; the record dict exposes the timestamp as ``deletedAt`` in
epoch milliseconds so the engine can skip it without a DB round trip.

Usage:
    agent.soft_delete()
    db.session.commit()

    Agent.query_active().filter_by(canvas_id=cid).all()
"""

from datetime import datetime, timezone

from agentcanvas.models import db


def to_epoch_ms(value):
    """Convert a datetime to epoch milliseconds, None stays None."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class SoftDeleteMixin:
    """Mixin that adds soft delete support to a model."""

    deleted_at = db.Column(db.DateTime, nullable=True, default=None, index=True)

    def soft_delete(self, when=None):
        """Mark this record as deleted. Deleting twice keeps the first stamp."""
        if self.deleted_at is None:
            self.deleted_at = when or datetime.now(timezone.utc)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @property
    def deleted_at_ms(self):
        return to_epoch_ms(self.deleted_at)

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.deleted_at.is_(None))
