from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from erp_sync.database import get_db
from erp_sync.schemas import AuditContext
from erp_sync.services.sync_service import DirectorySyncService


def get_sync_service(db: Session = Depends(get_db)) -> DirectorySyncService:
    return DirectorySyncService(db)


def get_principal_id(x_user_id: str | None = Header(default=None)) -> str:
    """Authenticated principal, set by the gateway in front of this service."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


def get_audit_context(
    request: Request,
    principal_id: str = Depends(get_principal_id)
) -> AuditContext:
    return AuditContext(
        user_id=principal_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
