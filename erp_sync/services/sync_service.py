"""
Caller-facing facade of the Google sync engine.

Controllers (and any other trigger) talk to DirectorySyncService by entity
kind and id; it loads rows, wires the reconciler to the right Google API for
the kind, and delegates to SyncReconciler / BulkSyncCoordinator.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from erp_sync.config import Settings, get_settings
from erp_sync.database import SessionLocal
from erp_sync.errors import NoCredential
from erp_sync.models import CalendarEvent, ClientContact, VendorContact
from erp_sync.models.sync_link import SyncLinkMixin, SyncStatus
from erp_sync.schemas import (
    AuditContext,
    BulkResult,
    ConnectionStatus,
    IntegrationConfig,
    SyncResult,
)
from erp_sync.services import oauth_flow
from erp_sync.services.audit import AuditRecorder
from erp_sync.services.bulk_sync import BulkSyncCoordinator
from erp_sync.services.credential_store import CredentialStore
from erp_sync.services.google_clients import (
    ClientFactory,
    calendar_client_factory,
    contacts_client_factory,
)
from erp_sync.services.reconciler import SyncReconciler
from erp_sync.services.token_manager import TokenLifecycleManager

logger = logging.getLogger(__name__)

ENTITY_KINDS: dict[str, type[SyncLinkMixin]] = {
    "client_contact": ClientContact,
    "vendor_contact": VendorContact,
    "event": CalendarEvent,
}

CONTACT_KINDS = ("client_contact", "vendor_contact")

# Upper bounds from the calendar screens
PENDING_EVENTS_BATCH = 100
RETRY_BATCH = 50


class UnknownEntityKind(LookupError):
    pass


class EntityNotFound(LookupError):
    pass


def model_for(kind: str) -> type[SyncLinkMixin]:
    try:
        return ENTITY_KINDS[kind]
    except KeyError:
        raise UnknownEntityKind(f"Unknown entity kind: {kind}") from None


class DirectorySyncService:
    def __init__(
        self,
        db: Session,
        settings: Settings | None = None,
        audit: AuditRecorder | None = None,
        token_manager: TokenLifecycleManager | None = None,
        contacts_factory: ClientFactory | None = None,
        calendar_factory: Callable[[str], ClientFactory] | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.store = CredentialStore(db, self.settings.default_contacts_label)
        self.audit = audit or AuditRecorder(SessionLocal)
        self.token_manager = token_manager or TokenLifecycleManager(self.store, self.settings)

        timeout = self.settings.google_http_timeout_seconds
        self.contacts_factory = contacts_factory or contacts_client_factory(timeout)
        self.calendar_factory = calendar_factory or (
            lambda calendar_id: calendar_client_factory(calendar_id, timeout)
        )

    # ============ WIRING ============

    def reconciler_for(self, kind: str, principal_id: str) -> SyncReconciler:
        model_for(kind)
        integration = self.store.get_settings(principal_id)

        if kind == "event":
            factory = self.calendar_factory(integration.calendar_id or "primary")
            options = {"timezone": self.settings.calendar_timezone}
        else:
            factory = self.contacts_factory
            options = {"source_label": integration.contacts_label or self.settings.default_contacts_label}

        return SyncReconciler(
            self.db,
            self.token_manager,
            factory,
            self.audit,
            representation_options=options,
        )

    def coordinator_for(self, kind: str, principal_id: str) -> BulkSyncCoordinator:
        return BulkSyncCoordinator(
            self.db,
            self.reconciler_for(kind, principal_id),
            self.store,
            error_limit=self.settings.bulk_error_limit,
            noun="events" if kind == "event" else "contacts",
        )

    def get_entity(self, kind: str, entity_id: str) -> Optional[SyncLinkMixin]:
        model = model_for(kind)
        return self.db.query(model).filter(model.id == entity_id).first()

    def _load_all(self, kind: str, entity_ids: list[str]) -> list[SyncLinkMixin]:
        """Rows in the order of ``entity_ids``; all must exist."""
        model = model_for(kind)
        rows = self.db.query(model).filter(model.id.in_(entity_ids)).all()
        by_id = {row.id: row for row in rows}

        missing = [i for i in entity_ids if i not in by_id]
        if missing:
            raise EntityNotFound(f"Unknown {kind} ids: {', '.join(missing)}")
        return [by_id[i] for i in entity_ids]

    # ============ SYNC OPERATIONS ============

    def sync_one(self, kind: str, entity_id: str, owner_id: str,
                 context: AuditContext | None = None) -> SyncResult:
        entity = self.get_entity(kind, entity_id)
        if entity is None:
            return SyncResult.fail("Record not found", "NotFound")
        return self.reconciler_for(kind, owner_id).sync_one(entity, owner_id, context)

    def sync_all(self, kind: str, entity_ids: list[str], owner_id: str,
                 context: AuditContext | None = None) -> BulkResult:
        entities = self._load_all(kind, entity_ids)
        return self.coordinator_for(kind, owner_id).sync_all(entities, owner_id, context)

    def retry_failed(self, kind: str, owner_id: str,
                     context: AuditContext | None = None) -> BulkResult:
        return self.coordinator_for(kind, owner_id).retry_failed(
            model_for(kind), owner_id, context, limit=RETRY_BATCH
        )

    def delete_remote(self, kind: str, entity_id: str, owner_id: str,
                      context: AuditContext | None = None) -> SyncResult:
        entity = self.get_entity(kind, entity_id)
        if entity is None:
            return SyncResult.fail("Record not found", "NotFound")
        return self.reconciler_for(kind, owner_id).delete_remote(entity, owner_id, context)

    def sync_pending_events(self, owner_id: str,
                            context: AuditContext | None = None) -> BulkResult:
        """PENDING events that are unowned or owned by ``owner_id``."""
        events = self.db.query(CalendarEvent).filter(
            CalendarEvent.sync_status == SyncStatus.PENDING.value,
            (CalendarEvent.owner_id == owner_id) | (CalendarEvent.owner_id.is_(None))
        ).order_by(CalendarEvent.start_time, CalendarEvent.id).limit(PENDING_EVENTS_BATCH).all()

        return self.coordinator_for("event", owner_id).sync_all(events, owner_id, context)

    def _organization_contacts(self, kind: str, organization: str, active_only: bool):
        if kind not in CONTACT_KINDS:
            raise UnknownEntityKind(f"Not a contact kind: {kind}")
        model = model_for(kind)
        query = self.db.query(model).filter(model.organization == organization)
        if active_only:
            query = query.filter(model.is_active.is_(True))
        return query.order_by(model.created_at, model.id).all()

    def sync_organization_contacts(self, kind: str, organization: str, owner_id: str,
                                   context: AuditContext | None = None) -> BulkResult:
        contacts = self._organization_contacts(kind, organization, active_only=True)
        return self.coordinator_for(kind, owner_id).sync_all(contacts, owner_id, context)

    def delete_organization_contacts(self, kind: str, organization: str, owner_id: str,
                                     context: AuditContext | None = None) -> BulkResult:
        contacts = self._organization_contacts(kind, organization, active_only=False)
        return self.coordinator_for(kind, owner_id).delete_all(contacts, owner_id, context)

    def set_sync_enabled(self, kind: str, entity_id: str, enabled: bool,
                         context: AuditContext | None = None) -> SyncLinkMixin:
        """Manual opt-out (DISABLED) or opt-in (back to PENDING)."""
        entity = self.get_entity(kind, entity_id)
        if entity is None:
            raise EntityNotFound(f"Unknown {kind} id: {entity_id}")

        before = entity.link_snapshot()
        entity.set_sync_enabled(enabled)
        self.db.commit()

        after = entity.link_snapshot()
        if after != before:
            self.audit.append(entity.entity_type, entity.id, before, after, context)
        return entity

    # ============ CONNECTION ============

    def authorization_url(self, principal_id: str) -> str:
        return oauth_flow.build_authorization_url(self.settings, principal_id)

    def principal_from_state(self, state: str) -> str:
        """Principal a signed OAuth state was issued to; AuthorizationError if forged."""
        return oauth_flow.verify_state(self.settings, state)

    def complete_authorization(self, code: str, principal_id: str):
        """Exchange the code and replace the principal's credential."""
        grant = oauth_flow.exchange_code(self.settings, code)
        credential = self.store.replace(principal_id, grant)
        logger.info("Connected Google account %s for principal %s", grant.account_email, principal_id)
        return credential

    def get_connection_status(self, principal_id: str) -> ConnectionStatus:
        credential = self.store.get(principal_id)
        if credential is None:
            return ConnectionStatus(connected=False)

        integration = self.store.get_settings(principal_id)
        # A dead credential's error explains why the user is disconnected
        last_error = integration.last_sync_error
        if not credential.active and credential.last_error:
            last_error = credential.last_error

        return ConnectionStatus(
            connected=bool(credential.active),
            account_email=credential.account_email,
            scopes=sorted(credential.scope_set),
            calendar_id=integration.calendar_id,
            contacts_label=integration.contacts_label,
            auto_sync_events=integration.auto_sync_events,
            auto_sync_contacts=integration.auto_sync_contacts,
            last_synced_at=integration.last_synced_at,
            last_error=last_error,
        )

    def update_settings(self, principal_id: str, config: IntegrationConfig):
        if self.store.get_active(principal_id) is None:
            raise NoCredential()
        return self.store.update_settings(principal_id, config)

    def disconnect(self, principal_id: str) -> None:
        self.token_manager.revoke(principal_id)
