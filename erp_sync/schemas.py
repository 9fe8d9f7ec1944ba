"""
Result and request models shared by the sync services and the API.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from erp_sync.utils import utcnow


class SyncResult(BaseModel):
    """Outcome of a single sync/delete attempt. Failures are data, not exceptions."""
    success: bool
    remote_id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    synced_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def ok(cls, remote_id: str | None = None, synced_at: datetime | None = None) -> "SyncResult":
        return cls(success=True, remote_id=remote_id, synced_at=synced_at or utcnow())

    @classmethod
    def fail(cls, error: str, error_type: str | None = None) -> "SyncResult":
        return cls(success=False, error=error, error_type=error_type)


class SyncItemError(BaseModel):
    entity_id: str
    error: str


class BulkResult(BaseModel):
    """Aggregate outcome of a bulk run; ``errors`` may be capped, counts never are."""
    total: int = 0
    synced: int = 0
    failed: int = 0
    errors: list[SyncItemError] = Field(default_factory=list)
    errors_truncated: bool = False


class ConnectionStatus(BaseModel):
    connected: bool
    account_email: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)
    calendar_id: Optional[str] = None
    contacts_label: Optional[str] = None
    auto_sync_events: bool = False
    auto_sync_contacts: bool = False
    last_synced_at: Optional[datetime] = None
    last_error: Optional[str] = None


class AuditContext(BaseModel):
    """Who triggered an operation, copied into audit records."""
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class TokenGrant(BaseModel):
    """Token tuple produced by the authorization-code exchange."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime
    scopes: list[str] = Field(default_factory=list)
    account_email: Optional[str] = None


class IntegrationConfig(BaseModel):
    """Partial update of a principal's integration settings."""
    calendar_id: Optional[str] = None
    contacts_label: Optional[str] = None
    auto_sync_events: Optional[bool] = None
    auto_sync_contacts: Optional[bool] = None
