"""
Error taxonomy for the Google sync engine.

Every error carries a user-legible ``message``. The reconciler turns these
into ``SyncResult`` data instead of letting them escape, so a bulk run can
continue past a bad record.
"""


class SyncError(Exception):
    """Base class for every sync engine failure."""

    default_message = "Sync failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NoCredential(SyncError):
    """Principal never authorized, or was disconnected."""

    default_message = "Google account not linked"


class RefreshFailed(SyncError):
    """Refresh token invalid or revoked; terminal until re-authorization."""

    default_message = "Authorization expired, please reconnect"


class RemoteApiError(SyncError):
    """Transient network or provider error."""

    default_message = "Google API request failed"

    def __init__(self, message: str | None = None, status: int | None = None):
        super().__init__(message)
        self.status = status


class RemotePreconditionFailed(RemoteApiError):
    """The remote object changed since its version tag was fetched."""

    default_message = "Remote record was modified concurrently, please retry"


class RemoteNotFound(RemoteApiError):
    """The remote object does not exist (any more)."""

    default_message = "Remote record not found"


class SyncDisabled(SyncError):
    """Entity has been opted out of syncing."""

    default_message = "Sync is disabled for this record"


class RepresentationError(SyncError):
    """Local record is malformed and cannot be mirrored."""

    default_message = "Record cannot be converted for sync"


class AuthorizationError(SyncError):
    """The OAuth authorization-code exchange failed."""

    default_message = "Google authorization failed"


# Public name used by callers; kept distinct from pydantic.ValidationError.
ValidationError = RepresentationError
