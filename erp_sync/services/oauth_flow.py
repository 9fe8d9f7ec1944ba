"""
Google OAuth authorization-code exchange.

Flow:
1. build_authorization_url -> user is sent to Google's consent screen
   (offline access, state = principal id signed with the client secret)
2. Google redirects back with a one-time code; verify_state recovers the
   principal the flow was started for
3. exchange_code swaps the code for tokens; the caller hands the resulting
   TokenGrant to CredentialStore.replace
"""

import hashlib
import hmac
import logging
from datetime import timedelta

import requests
from google_auth_oauthlib.flow import Flow

from erp_sync.config import GOOGLE_SCOPES, Settings
from erp_sync.errors import AuthorizationError
from erp_sync.schemas import TokenGrant
from erp_sync.utils import utcnow

logger = logging.getLogger(__name__)

USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


def get_oauth_flow(settings: Settings) -> Flow:
    """Create OAuth flow from the configured client id/secret."""
    if not settings.google_client_id or not settings.google_client_secret:
        raise AuthorizationError("Google OAuth client is not configured")

    client_config = {
        "web": {
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": settings.google_token_uri,
            "redirect_uris": [settings.google_redirect_uri],
        }
    }
    return Flow.from_client_config(
        client_config,
        scopes=GOOGLE_SCOPES,
        redirect_uri=settings.google_redirect_uri,
        # The code is exchanged by a fresh Flow, which cannot know a generated PKCE verifier
        autogenerate_code_verifier=False
    )


def sign_state(settings: Settings, principal_id: str) -> str:
    """``<principal>.<hmac>`` keyed with the OAuth client secret."""
    digest = hmac.new(
        settings.google_client_secret.encode("utf-8"),
        principal_id.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()
    return f"{principal_id}.{digest}"


def verify_state(settings: Settings, state: str) -> str:
    """Return the principal a signed state was issued to."""
    state = state or ""
    principal_id = state.rpartition(".")[0]
    expected = sign_state(settings, principal_id)
    if not principal_id or not hmac.compare_digest(expected.encode("utf-8"), state.encode("utf-8")):
        raise AuthorizationError("Invalid OAuth state")
    return principal_id


def build_authorization_url(settings: Settings, principal_id: str) -> str:
    flow = get_oauth_flow(settings)
    auth_url, _ = flow.authorization_url(
        access_type="offline",  # Get refresh token
        include_granted_scopes="true",
        prompt="consent",  # Force consent to get refresh token
        state=sign_state(settings, principal_id)
    )
    return auth_url


def fetch_account_email(access_token: str, timeout: int = 30) -> str | None:
    """Google account address of the token owner; None when unavailable."""
    try:
        response = requests.get(
            USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout
        )
        response.raise_for_status()
        return response.json().get("email")
    except (requests.RequestException, ValueError) as e:
        logger.warning("Failed to get Google user info: %s", e)
        return None


def exchange_code(settings: Settings, code: str) -> TokenGrant:
    """Exchange a one-time authorization code for a token tuple."""
    flow = get_oauth_flow(settings)

    try:
        flow.fetch_token(code=code)
    except Exception as e:
        logger.error("Failed to exchange authorization code: %s", e)
        raise AuthorizationError(f"Google authorization failed: {e}") from e

    credentials = flow.credentials
    scopes = credentials.granted_scopes or credentials.scopes or GOOGLE_SCOPES

    return TokenGrant(
        access_token=credentials.token,
        refresh_token=credentials.refresh_token,
        expires_at=credentials.expiry or (utcnow() + timedelta(hours=1)),
        scopes=list(scopes),
        account_email=fetch_account_email(credentials.token, settings.google_http_timeout_seconds),
    )
