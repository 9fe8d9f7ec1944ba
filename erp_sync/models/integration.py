"""
Per-principal Google integration settings and last bulk sync summary.

Kept apart from Credential so re-authorizing (which replaces the credential
row) does not lose the user's calendar/label choices.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean
from sqlalchemy.sql import func

from erp_sync.database import Base


class IntegrationSettings(Base):
    """Sync preferences and last bulk sync outcome for one principal."""
    __tablename__ = "google_integrations"

    id = Column(Integer, primary_key=True)
    principal_id = Column(String(50), unique=True, nullable=False, index=True)

    calendar_id = Column(String(255), nullable=False, default="primary")
    contacts_label = Column(String(100))

    # Stored preferences; nothing syncs in the background
    auto_sync_events = Column(Boolean, nullable=False, default=True)
    auto_sync_contacts = Column(Boolean, nullable=False, default=True)

    # Last bulk sync summary shown in the UI
    last_synced_at = Column(DateTime)
    last_sync_error = Column(Text)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<IntegrationSettings(principal={self.principal_id}, calendar={self.calendar_id})>"
