"""
Bulk fan-out of the reconciler with partial-failure aggregation.

Records are processed sequentially, in input order, one remote call at a
time; Google rate-limits per principal, so no parallelism here.
"""

import logging
from typing import Iterable

from sqlalchemy.orm import Session

from erp_sync.models.sync_link import SyncLinkMixin, SyncStatus
from erp_sync.schemas import AuditContext, BulkResult, SyncItemError, SyncResult
from erp_sync.services.credential_store import CredentialStore
from erp_sync.services.reconciler import SyncReconciler

logger = logging.getLogger(__name__)


class BulkSyncCoordinator:
    def __init__(
        self,
        db: Session,
        reconciler: SyncReconciler,
        store: CredentialStore,
        error_limit: int = 50,
        noun: str = "records",
    ):
        self.db = db
        self.reconciler = reconciler
        self.store = store
        self.error_limit = error_limit
        self.noun = noun

    def _add(self, result: BulkResult, entity_id: str, outcome: SyncResult) -> None:
        if outcome.success:
            result.synced += 1
            return

        result.failed += 1
        if len(result.errors) < self.error_limit:
            result.errors.append(SyncItemError(
                entity_id=str(entity_id),
                error=outcome.error or "Unknown error"
            ))
        else:
            result.errors_truncated = True

    def sync_all(
        self,
        entities: Iterable[SyncLinkMixin],
        principal_id: str,
        context: AuditContext | None = None,
    ) -> BulkResult:
        """
        Sync every record, never aborting on a single failure.

        Afterwards the principal's integration record gets the run time and
        a failure summary (cleared when everything synced).
        """
        entities = list(entities)
        result = BulkResult(total=len(entities))

        for entity in entities:
            outcome = self.reconciler.sync_one(entity, principal_id, context)
            self._add(result, entity.id, outcome)

        summary = None
        if result.failed:
            summary = f"{result.failed} of {result.total} {self.noun} failed to sync"
        self.store.record_bulk_sync(principal_id, summary)

        logger.info(
            "Bulk sync for principal %s: %d/%d synced, %d failed",
            principal_id, result.synced, result.total, result.failed
        )
        return result

    def retry_failed(
        self,
        model: type[SyncLinkMixin],
        owner_id: str,
        context: AuditContext | None = None,
        limit: int | None = None,
    ) -> BulkResult:
        """Re-run only the FAILED records owned by ``owner_id``. The only retry there is."""
        query = self.db.query(model).filter(
            model.sync_status == SyncStatus.FAILED.value,
            model.owner_id == owner_id
        ).order_by(model.created_at, model.id)
        if limit:
            query = query.limit(limit)

        return self.sync_all(query.all(), owner_id, context)

    def delete_all(
        self,
        entities: Iterable[SyncLinkMixin],
        principal_id: str,
        context: AuditContext | None = None,
    ) -> BulkResult:
        """Delete the remote copies of every linked record; unlinked ones are skipped."""
        linked = [e for e in entities if e.remote_resource_id]
        result = BulkResult(total=len(linked))

        for entity in linked:
            outcome = self.reconciler.delete_remote(entity, principal_id, context)
            self._add(result, entity.id, outcome)

        logger.info(
            "Bulk delete for principal %s: %d/%d deleted, %d failed",
            principal_id, result.synced, result.total, result.failed
        )
        return result
