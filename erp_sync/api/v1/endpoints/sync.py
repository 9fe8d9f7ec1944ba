"""
Sync endpoints for contacts (Google Contacts) and events (Google Calendar).

Single-record endpoints return a SyncResult; bulk endpoints return aggregate
counts plus a capped list of per-record errors. A failed sync is a normal
200 response with ``success: false`` - the record's state says why.
"""

import enum

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from erp_sync.api.v1.deps import get_audit_context, get_principal_id, get_sync_service
from erp_sync.schemas import AuditContext, BulkResult, SyncResult
from erp_sync.services.sync_service import DirectorySyncService, EntityNotFound


router = APIRouter(prefix="/integrations/google", tags=["Google Sync"])


class ContactKind(str, enum.Enum):
    CLIENT = "client_contact"
    VENDOR = "vendor_contact"


class EntityKind(str, enum.Enum):
    CLIENT = "client_contact"
    VENDOR = "vendor_contact"
    EVENT = "event"


# ============ Request / Response Schemas ============

class BulkSyncRequest(BaseModel):
    """Records to sync, processed in this order."""
    entity_ids: list[str] = Field(default_factory=list)


class OrganizationRequest(BaseModel):
    organization: str


class SyncEnabledRequest(BaseModel):
    enabled: bool


class LinkStateResponse(BaseModel):
    """Current link of a record to its Google copy."""
    id: str
    sync_status: str
    remote_resource_id: str | None = None
    owner_id: str | None = None

    class Config:
        from_attributes = True


# ============ CONTACTS ============

@router.post("/contacts/{kind}/organization/sync", response_model=BulkResult)
def sync_organization_contacts(
    kind: ContactKind,
    body: OrganizationRequest,
    principal_id: str = Depends(get_principal_id),
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """Sync every active contact of one client / vendor."""
    return service.sync_organization_contacts(kind.value, body.organization, principal_id, context)


@router.post("/contacts/{kind}/organization/delete", response_model=BulkResult)
def delete_organization_contacts(
    kind: ContactKind,
    body: OrganizationRequest,
    principal_id: str = Depends(get_principal_id),
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """Remove the Google copies of every contact of one client / vendor."""
    return service.delete_organization_contacts(kind.value, body.organization, principal_id, context)


@router.post("/contacts/{kind}/sync", response_model=BulkResult)
def sync_contacts(
    kind: ContactKind,
    body: BulkSyncRequest,
    principal_id: str = Depends(get_principal_id),
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """
    Sync a list of contacts sequentially.

    **Returns:**
    - 200: `{total, synced, failed, errors}`
    - 404: one of the ids does not exist (nothing was synced)
    """
    try:
        return service.sync_all(kind.value, body.entity_ids, principal_id, context)
    except EntityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/contacts/{kind}/retry", response_model=BulkResult)
def retry_failed_contacts(
    kind: ContactKind,
    principal_id: str = Depends(get_principal_id),
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """Retry the caller's FAILED contacts. There is no automatic retry."""
    return service.retry_failed(kind.value, principal_id, context)


@router.post("/contacts/{kind}/{entity_id}/sync", response_model=SyncResult)
def sync_contact(
    kind: ContactKind,
    entity_id: str,
    principal_id: str = Depends(get_principal_id),
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    return service.sync_one(kind.value, entity_id, principal_id, context)


@router.delete("/contacts/{kind}/{entity_id}/remote", response_model=SyncResult)
def delete_contact_remote(
    kind: ContactKind,
    entity_id: str,
    principal_id: str = Depends(get_principal_id),
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """Delete the Google copy; the local contact is kept and goes back to PENDING."""
    return service.delete_remote(kind.value, entity_id, principal_id, context)


# ============ CALENDAR ============

@router.post("/calendar/sync", response_model=BulkResult)
def sync_pending_events(
    principal_id: str = Depends(get_principal_id),
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """Sync PENDING events (unowned or owned by the caller), earliest first."""
    return service.sync_pending_events(principal_id, context)


@router.post("/calendar/retry", response_model=BulkResult)
def retry_failed_events(
    principal_id: str = Depends(get_principal_id),
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    return service.retry_failed("event", principal_id, context)


@router.post("/calendar/events/{event_id}/sync", response_model=SyncResult)
def sync_event(
    event_id: str,
    principal_id: str = Depends(get_principal_id),
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    return service.sync_one("event", event_id, principal_id, context)


@router.delete("/calendar/events/{event_id}/remote", response_model=SyncResult)
def delete_event_remote(
    event_id: str,
    principal_id: str = Depends(get_principal_id),
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    return service.delete_remote("event", event_id, principal_id, context)


# ============ OPT-OUT ============

@router.put("/{kind}/{entity_id}/sync-enabled", response_model=LinkStateResponse)
def set_sync_enabled(
    kind: EntityKind,
    entity_id: str,
    body: SyncEnabledRequest,
    context: AuditContext = Depends(get_audit_context),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """Manually disable (or re-enable) syncing of one record."""
    try:
        return service.set_sync_enabled(kind.value, entity_id, body.enabled, context)
    except EntityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
