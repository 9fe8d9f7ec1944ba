"""
Google account connection endpoints.

Flow:
1. POST /integrations/google/connect -> returns Google consent URL
2. Google redirects back to GET /integrations/google/callback with code + state
3. The callback exchanges the code and stores the principal's credential
"""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from erp_sync.api.v1.deps import get_principal_id, get_sync_service
from erp_sync.errors import AuthorizationError, NoCredential
from erp_sync.schemas import ConnectionStatus, IntegrationConfig
from erp_sync.services.sync_service import DirectorySyncService

logger = logging.getLogger(__name__)


# Request / Response Models
class ConnectResponse(BaseModel):
    """Consent screen URL the browser should be sent to."""
    auth_url: str


class CallbackRequest(BaseModel):
    code: str
    state: str | None = None


class SuccessResponse(BaseModel):
    success: bool = True


router = APIRouter(prefix="/integrations/google", tags=["Google Integration"])


@router.get("/status", response_model=ConnectionStatus)
def connection_status(
    principal_id: str = Depends(get_principal_id),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """Is the principal connected, and how did the last bulk sync go."""
    return service.get_connection_status(principal_id)


@router.post("/connect", response_model=ConnectResponse)
def connect(
    principal_id: str = Depends(get_principal_id),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """
    Start OAuth flow - returns the Google consent screen URL.

    After the user grants permission, Google redirects to /callback with
    the signed principal id as ``state``.
    """
    try:
        return ConnectResponse(auth_url=service.authorization_url(principal_id))
    except AuthorizationError as e:
        raise HTTPException(status_code=500, detail=e.message)


@router.get("/callback")
def callback_redirect(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    service: DirectorySyncService = Depends(get_sync_service)
):
    """
    OAuth callback hit by the user's browser.

    Always answers with a redirect to the frontend; failures are logged and
    reported through the ``error`` query parameter.
    """
    frontend_url = service.settings.frontend_url.rstrip("/")

    if error:
        return RedirectResponse(url=f"{frontend_url}/integrations?error={quote(error)}")

    if not code or not state:
        return RedirectResponse(url=f"{frontend_url}/integrations?error=missing_params")

    try:
        principal_id = service.principal_from_state(state)
        service.complete_authorization(code, principal_id)
    except Exception as e:
        logger.error("Google OAuth callback failed: %s", e)
        message = getattr(e, "message", None) or str(e) or "Unknown error"
        return RedirectResponse(url=f"{frontend_url}/integrations?error={quote(message)}")

    return RedirectResponse(url=f"{frontend_url}/integrations?google_connected=true")


@router.post("/callback", response_model=SuccessResponse)
def callback(
    body: CallbackRequest,
    principal_id: str = Depends(get_principal_id),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """
    Code exchange for SPA clients that receive the code themselves.

    The credential always belongs to the caller; a ``state`` issued to
    anyone else is rejected.
    """
    if body.state is not None:
        try:
            state_principal = service.principal_from_state(body.state)
        except AuthorizationError as e:
            raise HTTPException(status_code=403, detail=e.message)
        if state_principal != principal_id:
            raise HTTPException(status_code=403, detail="OAuth state was issued to another user")

    try:
        service.complete_authorization(body.code, principal_id)
    except AuthorizationError as e:
        raise HTTPException(status_code=401, detail=e.message)
    return SuccessResponse()


@router.post("/disconnect", response_model=SuccessResponse)
def disconnect(
    principal_id: str = Depends(get_principal_id),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """Revoke the Google token (best effort) and mark the credential inactive."""
    service.disconnect(principal_id)
    return SuccessResponse()


@router.post("/configure", response_model=SuccessResponse)
def configure(
    body: IntegrationConfig,
    principal_id: str = Depends(get_principal_id),
    service: DirectorySyncService = Depends(get_sync_service)
):
    """Update calendar id, contacts label and auto-sync preferences."""
    try:
        service.update_settings(principal_id, body)
    except NoCredential as e:
        raise HTTPException(status_code=401, detail=e.message)
    return SuccessResponse()
