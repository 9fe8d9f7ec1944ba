"""
Link state shared by every record that can be mirrored to Google.

Stores, per local record:
- remote_resource_id: Google resource name / event id once created
- sync_status: PENDING, SYNCED, FAILED or DISABLED
- owner_id: principal whose credential last synced the record
"""

import enum

from sqlalchemy import Column, String, Text, DateTime, event, inspect


class SyncStatus(str, enum.Enum):
    """Mirror state of a local record."""
    PENDING = "PENDING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"
    DISABLED = "DISABLED"  # manual opt-out only


class SyncLinkMixin:
    """
    Columns and behaviour common to syncable rows.

    Subclasses set ``entity_type`` (used in audit records), list the columns
    mirrored remotely in ``synced_fields`` and implement
    ``to_remote_representation``.
    """

    entity_type = "Entity"
    synced_fields: tuple[str, ...] = ()

    owner_id = Column(String(50), index=True)
    remote_resource_id = Column(String(255))
    sync_status = Column(String(20), nullable=False, default=SyncStatus.PENDING.value, index=True)
    last_synced_at = Column(DateTime)
    last_sync_error = Column(Text)

    def to_remote_representation(self, **options) -> dict:
        raise NotImplementedError

    @property
    def is_sync_disabled(self) -> bool:
        return self.sync_status == SyncStatus.DISABLED.value

    def link_snapshot(self) -> dict:
        """Fields recorded before/after each transition in the audit log."""
        return {
            "syncStatus": self.sync_status,
            "remoteResourceId": self.remote_resource_id,
        }

    def mark_synced(self, remote_id: str, at, owner_id: str | None = None) -> None:
        self.remote_resource_id = remote_id
        self.sync_status = SyncStatus.SYNCED.value
        self.last_synced_at = at
        self.last_sync_error = None
        if owner_id:
            self.owner_id = owner_id
        self._outcome_unflushed = True

    def mark_failed(self, message: str, owner_id: str | None = None) -> None:
        self.sync_status = SyncStatus.FAILED.value
        self.last_sync_error = message
        if owner_id:
            self.owner_id = owner_id
        self._outcome_unflushed = True

    def discard_outcome(self) -> None:
        """Forget a recorded outcome whose flush was rolled back."""
        self._outcome_unflushed = False

    def clear_remote_link(self) -> None:
        self.remote_resource_id = None
        if not self.is_sync_disabled:
            self.sync_status = SyncStatus.PENDING.value

    def set_sync_enabled(self, enabled: bool) -> None:
        """Manual opt-out / opt-in. Re-enabling always starts from PENDING."""
        if enabled:
            if self.is_sync_disabled:
                self.sync_status = SyncStatus.PENDING.value
        else:
            self.sync_status = SyncStatus.DISABLED.value


@event.listens_for(SyncLinkMixin, "before_update", propagate=True)
def _reset_on_local_edit(mapper, connection, target):
    """A material edit of a mirrored field makes the record PENDING again."""
    # An outcome recorded in this flush already covers the pending edits
    if getattr(target, "_outcome_unflushed", False):
        target._outcome_unflushed = False
        return

    if target.sync_status not in (SyncStatus.SYNCED.value, SyncStatus.FAILED.value):
        return

    state = inspect(target)
    for name in target.synced_fields:
        if state.attrs[name].history.has_changes():
            target.sync_status = SyncStatus.PENDING.value
            return
