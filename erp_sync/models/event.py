"""
Calendar events (site visits, inspections, meetings) mirrored to Google Calendar.
"""

import uuid

from sqlalchemy import Column, String, Text, DateTime, Boolean, Integer
from sqlalchemy.sql import func

from erp_sync.database import Base
from erp_sync.errors import RepresentationError
from erp_sync.models.sync_link import SyncLinkMixin


class CalendarEvent(SyncLinkMixin, Base):
    """A local calendar entry; Google Calendar holds a one-way copy."""
    __tablename__ = "events"

    entity_type = "Event"
    synced_fields = (
        "title", "description", "location", "start_time", "end_time",
        "all_day", "reminder_minutes", "recurrence_rule",
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    title = Column(String(255), nullable=False)
    description = Column(Text)
    location = Column(String(255))

    # ============ TIMING ============
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime)
    all_day = Column(Boolean, nullable=False, default=False)
    reminder_minutes = Column(Integer)
    recurrence_rule = Column(String(255))  # RRULE body without the prefix

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def to_remote_representation(self, timezone: str = "Asia/Taipei", **options) -> dict:
        """Build a Calendar API ``Event`` body."""
        if not (self.title or "").strip():
            raise RepresentationError(f"Event {self.id} has no title")
        if self.start_time is None:
            raise RepresentationError(f"Event {self.id} has no start time")

        end_time = self.end_time or self.start_time
        if end_time < self.start_time:
            raise RepresentationError(f"Event {self.id} ends before it starts")

        if self.all_day:
            start = {"date": self.start_time.date().isoformat()}
            end = {"date": end_time.date().isoformat()}
        else:
            start = {"dateTime": self.start_time.isoformat(), "timeZone": timezone}
            end = {"dateTime": end_time.isoformat(), "timeZone": timezone}

        body = {
            "summary": self.title,
            "description": self.description or "",
            "location": self.location or "",
            "start": start,
            "end": end,
            "reminders": {
                "useDefault": False,
                "overrides": [{"method": "popup", "minutes": self.reminder_minutes or 30}],
            },
            "extendedProperties": {"private": {"erp_id": str(self.id)}},
        }
        if self.recurrence_rule:
            body["recurrence"] = [f"RRULE:{self.recurrence_rule}"]
        return body

    def __repr__(self):
        return f"<CalendarEvent(id={self.id}, title={self.title}, status={self.sync_status})>"
