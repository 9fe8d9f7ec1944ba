"""
Create-or-update reconciliation of one local record against Google.

State machine of a record's link:
    PENDING --sync--> SYNCED | FAILED
    FAILED  --sync--> SYNCED | FAILED
    SYNCED  --local edit--> PENDING
    any     --manual--> DISABLED (never left automatically)

Failures are returned as SyncResult data, never raised, so a bulk run can
keep going after a bad record.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from erp_sync.errors import (
    NoCredential,
    RemoteNotFound,
    SyncDisabled,
    SyncError,
)
from erp_sync.models.sync_link import SyncLinkMixin
from erp_sync.schemas import AuditContext, SyncResult
from erp_sync.services.audit import AuditRecorder
from erp_sync.services.google_clients import ClientFactory
from erp_sync.services.token_manager import TokenLifecycleManager
from erp_sync.utils import utcnow

logger = logging.getLogger(__name__)


class SyncReconciler:
    """Mirrors single records and keeps their link state in step with the remote outcome."""

    def __init__(
        self,
        db: Session,
        token_manager: TokenLifecycleManager,
        client_factory: ClientFactory,
        audit: AuditRecorder,
        representation_options: Optional[dict] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.token_manager = token_manager
        self.client_factory = client_factory
        self.audit = audit
        self.representation_options = representation_options or {}
        self.clock = clock

    def _save(self, entity: SyncLinkMixin) -> Optional[SyncResult]:
        """Commit the link state; a database failure is returned as a failed result."""
        entity_type, entity_id = entity.entity_type, entity.id
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Could not save sync state of %s %s: %s", entity_type, entity_id, e)
            return SyncResult.fail(f"Could not save sync state: {e}", type(e).__name__)
        finally:
            entity.discard_outcome()
        return None

    def _principal_for(self, entity: SyncLinkMixin, principal_id: str | None) -> str:
        principal = principal_id or entity.owner_id
        if not principal:
            raise NoCredential()
        return principal

    def sync_one(
        self,
        entity: SyncLinkMixin,
        principal_id: str | None = None,
        context: AuditContext | None = None,
    ) -> SyncResult:
        """
        Push the record's current fields to Google.

        The syncing principal is ``principal_id`` when given (the user who
        triggered the sync), otherwise the record's current owner.
        """
        if entity.is_sync_disabled:
            error = SyncDisabled()
            return SyncResult.fail(error.message, type(error).__name__)

        before = entity.link_snapshot()

        try:
            principal = self._principal_for(entity, principal_id)

            # No credential, no remote call
            access_token = self.token_manager.get_valid_access_token(principal)
            representation = entity.to_remote_representation(**self.representation_options)
            client = self.client_factory(access_token)

            if entity.remote_resource_id:
                logger.info("Updating %s %s -> %s", entity.entity_type, entity.id, entity.remote_resource_id)
                current = client.get(entity.remote_resource_id)
                remote_id = client.update(
                    entity.remote_resource_id,
                    representation,
                    current.get("etag")
                )
            else:
                logger.info("Creating remote copy of %s %s", entity.entity_type, entity.id)
                remote_id = client.create(representation)

        except SyncError as e:
            return self._record_failure(entity, before, e.message, type(e).__name__,
                                        principal_id, context)
        except Exception as e:
            logger.exception("Unexpected error syncing %s %s", entity.entity_type, entity.id)
            return self._record_failure(entity, before, str(e) or "Unknown error",
                                        type(e).__name__, principal_id, context)

        synced_at = self.clock()
        entity.mark_synced(remote_id, synced_at, owner_id=principal)
        failure = self._save(entity)
        if failure:
            return failure

        self.audit.append(entity.entity_type, entity.id, before, entity.link_snapshot(), context)
        logger.info("%s %s synced to Google: %s", entity.entity_type, entity.id, remote_id)
        return SyncResult.ok(remote_id, synced_at)

    def _record_failure(
        self,
        entity: SyncLinkMixin,
        before: dict,
        message: str,
        error_type: str,
        principal_id: str | None,
        context: AuditContext | None,
    ) -> SyncResult:
        entity.mark_failed(message, owner_id=principal_id)
        failure = self._save(entity)
        if failure:
            return failure

        after = entity.link_snapshot()
        after["lastSyncError"] = message
        self.audit.append(entity.entity_type, entity.id, before, after, context)

        logger.error("Sync failed for %s %s: %s", entity.entity_type, entity.id, message)
        return SyncResult.fail(message, error_type)

    def delete_remote(
        self,
        entity: SyncLinkMixin,
        principal_id: str | None = None,
        context: AuditContext | None = None,
    ) -> SyncResult:
        """
        Delete the remote mirror and unlink the record.

        On failure the link is kept so a later attempt can target the same
        remote id. A mirror that is already gone counts as deleted.
        """
        if not entity.remote_resource_id:
            return SyncResult.ok()

        before = entity.link_snapshot()

        try:
            principal = self._principal_for(entity, principal_id)
            access_token = self.token_manager.get_valid_access_token(principal)
            client = self.client_factory(access_token)
            client.delete(entity.remote_resource_id)
        except RemoteNotFound:
            logger.warning("Remote copy of %s %s was already deleted", entity.entity_type, entity.id)
        except SyncError as e:
            logger.error("Delete from Google failed for %s %s: %s", entity.entity_type, entity.id, e.message)
            return SyncResult.fail(e.message, type(e).__name__)
        except Exception as e:
            logger.exception("Unexpected error deleting %s %s", entity.entity_type, entity.id)
            return SyncResult.fail(str(e) or "Unknown error", type(e).__name__)

        entity.clear_remote_link()
        failure = self._save(entity)
        if failure:
            return failure

        self.audit.append(entity.entity_type, entity.id, before, entity.link_snapshot(), context)
        logger.info("%s %s deleted from Google", entity.entity_type, entity.id)
        return SyncResult.ok()
