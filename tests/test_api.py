"""HTTP-level tests for the integration and sync routers."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from erp_sync.api.v1.deps import get_sync_service
from erp_sync.errors import RemoteApiError
from erp_sync.models import AuditLog, SyncStatus
from erp_sync.schemas import TokenGrant
from erp_sync.services.oauth_flow import sign_state
from erp_sync.services.sync_service import DirectorySyncService
from erp_sync.utils import utcnow
from main import app

from conftest import FakeDirectory

BASE = "/api/v1/integrations/google"
HEADERS = {"X-User-Id": "u1", "User-Agent": "erp-web/1.0"}


@pytest.fixture
def calendar():
    return FakeDirectory(prefix="evt")


@pytest.fixture
def client(db, settings, audit, token_manager, remote, calendar):
    service = DirectorySyncService(
        db,
        settings,
        audit=audit,
        token_manager=token_manager,
        contacts_factory=lambda token: remote,
        calendar_factory=lambda calendar_id: (lambda token: calendar),
    )
    app.dependency_overrides[get_sync_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestConnection:
    def test_missing_principal_is_401(self, client):
        response = client.get(f"{BASE}/status")
        assert response.status_code == 401

    def test_status(self, client, make_credential):
        make_credential("u1")

        response = client.get(f"{BASE}/status", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["connected"] is True
        assert body["account_email"] == "u1@example.com"

    def test_connect_returns_consent_url(self, client, settings):
        response = client.post(f"{BASE}/connect", headers=HEADERS)

        assert response.status_code == 200
        url = response.json()["auth_url"]
        assert url.startswith("https://accounts.google.com/")
        assert "access_type=offline" in url
        assert f"state={sign_state(settings, 'u1')}" in url

    def test_callback_success_redirects_to_frontend(self, client, settings, store):
        grant = TokenGrant(access_token="a", refresh_token="r", expires_at=utcnow() + timedelta(hours=1),
                           scopes=["https://www.googleapis.com/auth/contacts"], account_email="pm@acme.test")

        with patch("erp_sync.services.sync_service.oauth_flow.exchange_code", return_value=grant):
            response = client.get(f"{BASE}/callback", params={"code": "c", "state": sign_state(settings, "u1")},
                                  follow_redirects=False)

        assert response.status_code in (302, 307)
        assert response.headers["location"] == "http://frontend.test/integrations?google_connected=true"
        assert store.get_active("u1").access_token == "a"

    def test_callback_missing_params(self, client):
        response = client.get(f"{BASE}/callback", follow_redirects=False)
        assert response.headers["location"] == "http://frontend.test/integrations?error=missing_params"

    def test_callback_consent_denied(self, client):
        response = client.get(f"{BASE}/callback", params={"error": "access_denied"},
                              follow_redirects=False)
        assert response.headers["location"] == "http://frontend.test/integrations?error=access_denied"

    def test_configure_requires_connection(self, client):
        response = client.post(f"{BASE}/configure", json={"calendar_id": "x"}, headers=HEADERS)
        assert response.status_code == 401

    def test_configure_and_disconnect(self, client, store, make_credential):
        make_credential("u1")

        response = client.post(f"{BASE}/configure", json={"auto_sync_events": False}, headers=HEADERS)
        assert response.json() == {"success": True}
        assert store.get_settings("u1").auto_sync_events is False

        response = client.post(f"{BASE}/disconnect", headers=HEADERS)
        assert response.status_code == 200
        assert client.get(f"{BASE}/status", headers=HEADERS).json()["connected"] is False


def _grant(access_token: str) -> TokenGrant:
    return TokenGrant(access_token=access_token, refresh_token=f"{access_token}-rt",
                      expires_at=utcnow() + timedelta(hours=1),
                      scopes=["https://www.googleapis.com/auth/contacts"])


class TestCallbackState:
    def test_get_callback_rejects_unsigned_state(self, client, store, make_credential):
        make_credential("victim", access_token="victim-token")

        with patch("erp_sync.services.sync_service.oauth_flow.exchange_code",
                   return_value=_grant("attacker")) as exchange:
            response = client.get(f"{BASE}/callback", params={"code": "c", "state": "victim"},
                                  follow_redirects=False)

        assert response.headers["location"] == "http://frontend.test/integrations?error=Invalid%20OAuth%20state"
        exchange.assert_not_called()
        assert store.get_active("victim").access_token == "victim-token"

    def test_get_callback_rejects_tampered_signature(self, client, settings, store, make_credential):
        make_credential("victim", access_token="victim-token")
        state = sign_state(settings, "attacker").replace("attacker.", "victim.")

        with patch("erp_sync.services.sync_service.oauth_flow.exchange_code",
                   return_value=_grant("attacker")):
            response = client.get(f"{BASE}/callback", params={"code": "c", "state": state},
                                  follow_redirects=False)

        assert "error=" in response.headers["location"]
        assert store.get_active("victim").access_token == "victim-token"

    def test_post_callback_rejects_state_of_another_principal(self, client, settings, store, make_credential):
        make_credential("victim", access_token="victim-token")

        with patch("erp_sync.services.sync_service.oauth_flow.exchange_code",
                   return_value=_grant("attacker")) as exchange:
            response = client.post(f"{BASE}/callback",
                                   json={"code": "c", "state": sign_state(settings, "victim")},
                                   headers={"X-User-Id": "attacker"})

        assert response.status_code == 403
        exchange.assert_not_called()
        assert store.get_active("victim").access_token == "victim-token"
        assert store.get("attacker") is None

    def test_post_callback_rejects_unsigned_state(self, client, store, make_credential):
        make_credential("victim", access_token="victim-token")

        response = client.post(f"{BASE}/callback", json={"code": "c", "state": "victim"},
                               headers={"X-User-Id": "attacker"})

        assert response.status_code == 403
        assert store.get_active("victim").access_token == "victim-token"

    def test_post_callback_stores_credential_for_caller(self, client, settings, store):
        with patch("erp_sync.services.sync_service.oauth_flow.exchange_code",
                   return_value=_grant("mine")):
            response = client.post(f"{BASE}/callback",
                                   json={"code": "c", "state": sign_state(settings, "u1")},
                                   headers=HEADERS)

        assert response.json() == {"success": True}
        assert store.get_active("u1").access_token == "mine"

    def test_post_callback_without_state_uses_caller(self, client, store):
        with patch("erp_sync.services.sync_service.oauth_flow.exchange_code",
                   return_value=_grant("mine")):
            client.post(f"{BASE}/callback", json={"code": "c"}, headers=HEADERS)

        assert store.get_active("u1").access_token == "mine"


class TestContactSync:
    def test_sync_single_contact(self, db, client, remote, make_credential, make_contact):
        make_credential("u1")
        contact = make_contact(id="c1")

        response = client.post(f"{BASE}/contacts/client_contact/c1/sync", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["remote_id"] == "people/c1"
        db.refresh(contact)
        assert contact.sync_status == SyncStatus.SYNCED.value

        record = db.query(AuditLog).one()
        assert record.user_id == "u1"
        assert record.user_agent == "erp-web/1.0"

    def test_failed_sync_is_200_with_failure_body(self, client, remote, make_credential, make_contact):
        make_credential("u1")
        make_contact(id="c1")
        remote.failures["create"] = RemoteApiError("Google API error 500: oops")

        response = client.post(f"{BASE}/contacts/client_contact/c1/sync", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"] == "Google API error 500: oops"

    def test_unknown_kind_is_rejected(self, client):
        response = client.post(f"{BASE}/contacts/invoice/c1/sync", headers=HEADERS)
        assert response.status_code == 422

    def test_bulk_sync(self, client, make_credential, make_contact):
        make_credential("u1")
        make_contact(id="a")
        make_contact(id="b")

        response = client.post(f"{BASE}/contacts/client_contact/sync",
                               json={"entity_ids": ["a", "b"]}, headers=HEADERS)

        assert response.json()["total"] == 2
        assert response.json()["synced"] == 2

    def test_bulk_sync_unknown_id_is_404(self, client, make_credential):
        make_credential("u1")

        response = client.post(f"{BASE}/contacts/client_contact/sync",
                               json={"entity_ids": ["ghost"]}, headers=HEADERS)

        assert response.status_code == 404

    def test_organization_sync(self, client, make_credential, make_contact):
        make_credential("u1")
        make_contact(organization="Acme Builders")

        response = client.post(f"{BASE}/contacts/client_contact/organization/sync",
                               json={"organization": "Acme Builders"}, headers=HEADERS)

        assert response.json()["synced"] == 1

    def test_delete_remote_copy(self, client, remote, make_credential, make_contact):
        make_credential("u1")
        make_contact(id="c1")
        client.post(f"{BASE}/contacts/client_contact/c1/sync", headers=HEADERS)

        response = client.delete(f"{BASE}/contacts/client_contact/c1/remote", headers=HEADERS)

        assert response.json()["success"] is True
        assert remote.objects == {}


class TestCalendarSync:
    def test_sync_pending_events(self, client, calendar, make_credential, make_event):
        make_credential("u1")
        make_event()

        response = client.post(f"{BASE}/calendar/sync", headers=HEADERS)

        assert response.json()["synced"] == 1
        assert calendar.ops() == ["create"]

    def test_sync_single_event_without_credential(self, client, make_event):
        event = make_event()

        response = client.post(f"{BASE}/calendar/events/{event.id}/sync", headers=HEADERS)

        assert response.json()["success"] is False
        assert response.json()["error"] == "Google account not linked"


class TestSyncEnabled:
    def test_disable_and_enable(self, client, make_contact):
        make_contact(id="c1", sync_status="SYNCED")

        response = client.put(f"{BASE}/client_contact/c1/sync-enabled",
                              json={"enabled": False}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["sync_status"] == "DISABLED"

        response = client.put(f"{BASE}/client_contact/c1/sync-enabled",
                              json={"enabled": True}, headers=HEADERS)
        assert response.json()["sync_status"] == "PENDING"

    def test_unknown_record_is_404(self, client):
        response = client.put(f"{BASE}/event/nope/sync-enabled",
                              json={"enabled": False}, headers=HEADERS)
        assert response.status_code == 404
