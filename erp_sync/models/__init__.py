"""
SQLAlchemy models for the Google sync engine.

This package contains:
- Credential: OAuth tokens, one row per principal
- IntegrationSettings: per-principal sync preferences + last bulk sync summary
- ClientContact / VendorContact / CalendarEvent: records mirrored to Google
- AuditLog: before/after trail of every sync transition
"""

from erp_sync.models.sync_link import SyncLinkMixin, SyncStatus
from erp_sync.models.credential import Credential
from erp_sync.models.integration import IntegrationSettings
from erp_sync.models.contact import ClientContact, VendorContact
from erp_sync.models.event import CalendarEvent
from erp_sync.models.audit_log import AuditLog

__all__ = [
    "SyncLinkMixin",
    "SyncStatus",
    "Credential",
    "IntegrationSettings",
    "ClientContact",
    "VendorContact",
    "CalendarEvent",
    "AuditLog",
]
