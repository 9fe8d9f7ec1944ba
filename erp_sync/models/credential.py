"""
OAuth credential storage - one row per principal.

A row is never reactivated: once ``active`` is false the principal has to go
through the authorization flow again, which replaces the row.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean
from sqlalchemy.sql import func

from erp_sync.database import Base


class Credential(Base):
    """Google OAuth tokens of a single principal."""
    __tablename__ = "google_credentials"

    id = Column(Integer, primary_key=True)

    # Local actor (unique - at most one credential per principal)
    principal_id = Column(String(50), unique=True, nullable=False, index=True)
    account_email = Column(String(255))

    # ============ TOKEN MATERIAL ============
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    expires_at = Column(DateTime, nullable=False)  # naive UTC
    scopes = Column(Text, nullable=False, default="")  # space separated

    # ============ LIFECYCLE ============
    active = Column(Boolean, nullable=False, default=True)
    last_error = Column(Text)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def scope_set(self) -> set[str]:
        return set((self.scopes or "").split())

    def __repr__(self):
        return f"<Credential(principal={self.principal_id}, active={self.active}, expires_at={self.expires_at})>"
