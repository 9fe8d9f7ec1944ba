from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (matches DB and google-auth expiry)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
