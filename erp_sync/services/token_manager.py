"""
OAuth token lifecycle: hand out valid access tokens, refresh, revoke.

Flow:
1. get_valid_access_token loads the principal's active credential
2. If it expires within the refresh buffer, refresh() exchanges the refresh
   token at Google's token endpoint
3. A failed refresh deactivates the credential; the principal must reconnect
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials

from erp_sync.config import Settings, get_settings
from erp_sync.errors import NoCredential, RefreshFailed
from erp_sync.models.credential import Credential
from erp_sync.services.credential_store import CredentialStore
from erp_sync.utils import utcnow

logger = logging.getLogger(__name__)

# (credential, settings) -> (new access token, new expiry)
RefreshHandler = Callable[[Credential, Settings], tuple[str, Optional[datetime]]]
# (token, settings) -> None, raises on failure
RevokeHandler = Callable[[str, Settings], None]


def google_refresh_handler(credential: Credential, settings: Settings) -> tuple[str, Optional[datetime]]:
    """Exchange the stored refresh token using google-auth."""
    creds = Credentials(
        token=None,
        refresh_token=credential.refresh_token,
        token_uri=settings.google_token_uri,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        scopes=sorted(credential.scope_set) or None,
    )
    session = requests.Session()
    creds.refresh(GoogleRequest(session=session))
    return creds.token, creds.expiry


def google_revoke_handler(token: str, settings: Settings) -> None:
    """POST the token to Google's revocation endpoint."""
    response = requests.post(
        settings.google_revoke_uri,
        params={"token": token},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        timeout=settings.google_http_timeout_seconds,
    )
    response.raise_for_status()


class TokenLifecycleManager:
    """
    Produces valid access tokens for principals.

    There is no lock around the refresh decision: two concurrent callers
    may both refresh, which Google's token endpoint tolerates.
    """

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings | None = None,
        refresh_handler: RefreshHandler = google_refresh_handler,
        revoke_handler: RevokeHandler = google_revoke_handler,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.refresh_handler = refresh_handler
        self.revoke_handler = revoke_handler
        self.clock = clock

    @property
    def refresh_buffer(self) -> timedelta:
        return timedelta(seconds=self.settings.token_refresh_buffer_seconds)

    def needs_refresh(self, credential: Credential) -> bool:
        if credential.expires_at is None:
            return True
        return credential.expires_at - self.refresh_buffer <= self.clock()

    def get_valid_access_token(self, principal_id: str) -> str:
        """
        Return an access token usable for at least the refresh buffer.

        Raises:
            NoCredential: principal never connected, or was disconnected
            RefreshFailed: the refresh token no longer works
        """
        credential = self.store.get_active(principal_id)
        if credential is None:
            raise NoCredential()

        if not self.needs_refresh(credential):
            return credential.access_token

        return self.refresh(credential)

    def refresh(self, credential: Credential) -> str:
        """Refresh the access token; deactivates the credential on any failure."""
        if not credential.refresh_token:
            self._deactivate(credential, "No refresh token stored")
            raise RefreshFailed()

        try:
            token, expiry = self.refresh_handler(credential, self.settings)
        except (GoogleAuthError, requests.RequestException) as e:
            # invalid_grant lands here too: refresh token revoked externally
            logger.error("Token refresh failed for principal %s: %s", credential.principal_id, e)
            self._deactivate(credential, f"Token refresh failed: {e}")
            raise RefreshFailed() from e

        if not token:
            self._deactivate(credential, "Token endpoint returned no access token")
            raise RefreshFailed()

        credential.access_token = token
        credential.expires_at = expiry or (self.clock() + timedelta(hours=1))
        credential.last_error = None
        self.store.save(credential)

        logger.info("Token refreshed for principal %s", credential.principal_id)
        return token

    def revoke(self, principal_id: str) -> None:
        """
        Disconnect the principal.

        The remote revocation is best effort; the credential is marked
        inactive locally whatever the provider answers.
        """
        credential = self.store.get_active(principal_id)
        if credential is None:
            return

        token = credential.refresh_token or credential.access_token
        if token:
            try:
                self.revoke_handler(token, self.settings)
                logger.info("Token revoked for principal %s", principal_id)
            except Exception as e:
                logger.warning("Token revocation failed for principal %s: %s", principal_id, e)

        credential.active = False
        credential.last_error = None
        self.store.save(credential)
        logger.info("Disconnected Google account for principal %s", principal_id)

    def _deactivate(self, credential: Credential, message: str) -> None:
        credential.active = False
        credential.last_error = message
        self.store.save(credential)
