"""
Persistence for OAuth credentials and per-principal integration settings.

This module provides keyed access with replace/upsert semantics:
- get_active / get: load a principal's credential
- replace: store a freshly issued credential (old row is deleted, not reactivated)
- save: persist lifecycle changes (refresh, deactivation)
- get_settings / update_settings / record_bulk_sync: integration record
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from erp_sync.models.credential import Credential
from erp_sync.models.integration import IntegrationSettings
from erp_sync.schemas import TokenGrant, IntegrationConfig
from erp_sync.utils import utcnow

logger = logging.getLogger(__name__)


class CredentialStore:
    """Keyed store of one Credential (and one IntegrationSettings) per principal."""

    def __init__(self, db: Session, default_contacts_label: str = "ERP"):
        self.db = db
        self.default_contacts_label = default_contacts_label

    # ============ CREDENTIALS ============

    def get(self, principal_id: str) -> Optional[Credential]:
        """Credential row for the principal, active or not."""
        return self.db.query(Credential).filter(
            Credential.principal_id == principal_id
        ).first()

    def get_active(self, principal_id: str) -> Optional[Credential]:
        return self.db.query(Credential).filter(
            Credential.principal_id == principal_id,
            Credential.active.is_(True)
        ).first()

    def replace(self, principal_id: str, grant: TokenGrant) -> Credential:
        """
        Store a newly issued credential for the principal.

        Any existing row (active or terminal) is deleted first, so the
        principal ends up with exactly one active credential.

        Google only returns a refresh token on first consent; when the grant
        has none, the previous row's refresh token is carried over.
        """
        existing = self.get(principal_id)
        refresh_token = grant.refresh_token
        if existing:
            refresh_token = refresh_token or existing.refresh_token
            self.db.delete(existing)
            self.db.flush()

        credential = Credential(
            principal_id=principal_id,
            account_email=grant.account_email,
            access_token=grant.access_token,
            refresh_token=refresh_token,
            expires_at=grant.expires_at,
            scopes=" ".join(sorted(set(grant.scopes))),
            active=True,
            last_error=None,
        )
        self.db.add(credential)

        try:
            self.db.commit()
        except IntegrityError:
            # Concurrent authorization for the same principal won the insert
            self.db.rollback()
            logger.warning("Concurrent credential replace for principal %s", principal_id)
            raise

        self.db.refresh(credential)
        self.get_settings(principal_id)
        logger.info("Stored new Google credential for principal %s", principal_id)
        return credential

    def save(self, credential: Credential) -> Credential:
        self.db.add(credential)
        self.db.commit()
        return credential

    # ============ INTEGRATION RECORD ============

    def get_settings(self, principal_id: str) -> IntegrationSettings:
        """Integration record for the principal, created on first access."""
        settings = self.db.query(IntegrationSettings).filter(
            IntegrationSettings.principal_id == principal_id
        ).first()

        if settings:
            return settings

        settings = IntegrationSettings(
            principal_id=principal_id,
            calendar_id="primary",
            contacts_label=self.default_contacts_label,
            auto_sync_events=True,
            auto_sync_contacts=True,
        )
        self.db.add(settings)

        try:
            self.db.commit()
            self.db.refresh(settings)
            return settings
        except IntegrityError:
            # Race condition - another request created it
            self.db.rollback()
            return self.db.query(IntegrationSettings).filter(
                IntegrationSettings.principal_id == principal_id
            ).first()

    def update_settings(self, principal_id: str, config: IntegrationConfig) -> IntegrationSettings:
        """Apply only the fields present in ``config``."""
        settings = self.get_settings(principal_id)

        if config.calendar_id is not None:
            settings.calendar_id = config.calendar_id
        if config.contacts_label is not None:
            settings.contacts_label = config.contacts_label
        if config.auto_sync_events is not None:
            settings.auto_sync_events = config.auto_sync_events
        if config.auto_sync_contacts is not None:
            settings.auto_sync_contacts = config.auto_sync_contacts

        self.db.commit()
        return settings

    def record_bulk_sync(self, principal_id: str, error: str | None = None) -> IntegrationSettings:
        """Stamp the last bulk sync time and its error summary (cleared on full success)."""
        settings = self.get_settings(principal_id)
        settings.last_synced_at = utcnow()
        settings.last_sync_error = error
        self.db.commit()
        return settings
