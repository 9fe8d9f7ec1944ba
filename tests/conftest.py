"""Shared fixtures: a file-backed SQLite database, settings and a fake Google API."""

import os

# Must be set before erp_sync.database creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import timedelta
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from erp_sync.config import Settings
from erp_sync.database import Base
from erp_sync.errors import RemoteNotFound, RemotePreconditionFailed
from erp_sync.models import ClientContact, Credential, CalendarEvent
from erp_sync.services.audit import AuditRecorder
from erp_sync.services.credential_store import CredentialStore
from erp_sync.services.google_clients import RemoteDirectoryClient
from erp_sync.services.reconciler import SyncReconciler
from erp_sync.services.token_manager import TokenLifecycleManager
from erp_sync.utils import utcnow


class FakeDirectory(RemoteDirectoryClient):
    """
    In-memory stand-in for a Google API.

    ``failures`` maps an operation name ("get", "create", "update",
    "delete") to an exception raised on the next call(s), and
    ``fail_for`` maps a local ERP id to an exception raised on create/update
    of that record only.
    """

    def __init__(self, prefix: str = "people/c"):
        self.prefix = prefix
        self.objects: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.fail_for: dict[str, Exception] = {}
        self._ids = count(1)
        self._etags = count(1)

    def _erp_id(self, representation: dict) -> str | None:
        for tag in representation.get("userDefined", []):
            if tag["key"] == "ERP ID":
                return tag["value"]
        return representation.get("extendedProperties", {}).get("private", {}).get("erp_id")

    def _maybe_fail(self, op: str, representation: dict | None = None):
        if op in self.failures:
            raise self.failures[op]
        if representation is not None:
            erp_id = self._erp_id(representation)
            if erp_id in self.fail_for:
                raise self.fail_for[erp_id]

    def get(self, resource_id):
        self.calls.append(("get", resource_id))
        self._maybe_fail("get")
        if resource_id not in self.objects:
            raise RemoteNotFound()
        return self.objects[resource_id]

    def create(self, representation):
        self.calls.append(("create", representation))
        self._maybe_fail("create", representation)
        resource_id = f"{self.prefix}{next(self._ids)}"
        self.objects[resource_id] = {**representation, "etag": f"etag-{next(self._etags)}"}
        return resource_id

    def update(self, resource_id, representation, precondition):
        self.calls.append(("update", resource_id, precondition))
        self._maybe_fail("update", representation)
        if resource_id not in self.objects:
            raise RemoteNotFound()
        if self.objects[resource_id]["etag"] != precondition:
            raise RemotePreconditionFailed()
        self.objects[resource_id] = {**representation, "etag": f"etag-{next(self._etags)}"}
        return resource_id

    def delete(self, resource_id):
        self.calls.append(("delete", resource_id))
        self._maybe_fail("delete")
        if resource_id not in self.objects:
            raise RemoteNotFound()
        del self.objects[resource_id]

    def ops(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        google_client_id="client-id",
        google_client_secret="client-secret",
        google_redirect_uri="http://testserver/api/v1/integrations/google/callback",
        google_token_uri="https://oauth2.googleapis.com/token",
        google_revoke_uri="https://oauth2.googleapis.com/revoke",
        frontend_url="http://frontend.test",
        bulk_error_limit=50,
    )


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sync.db'}",
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def audit(session_factory):
    return AuditRecorder(session_factory)


@pytest.fixture
def store(db):
    return CredentialStore(db)


@pytest.fixture
def refresh_calls():
    return []


@pytest.fixture
def token_manager(store, settings, refresh_calls):
    def refresh_handler(credential, _settings):
        refresh_calls.append(credential.principal_id)
        return f"refreshed-{len(refresh_calls)}", utcnow() + timedelta(hours=1)

    return TokenLifecycleManager(
        store,
        settings,
        refresh_handler=refresh_handler,
        revoke_handler=lambda token, _settings: None,
    )


@pytest.fixture
def remote():
    return FakeDirectory()


@pytest.fixture
def factory_calls():
    return []


@pytest.fixture
def reconciler(db, token_manager, remote, audit, factory_calls):
    def client_factory(access_token):
        factory_calls.append(access_token)
        return remote

    return SyncReconciler(db, token_manager, client_factory, audit,
                          representation_options={"source_label": "ERP"})


@pytest.fixture
def make_credential(db):
    def _make(principal_id="u1", expires_in=timedelta(hours=1), refresh_token="refresh-1",
              active=True, access_token="access-1"):
        credential = Credential(
            principal_id=principal_id,
            account_email=f"{principal_id}@example.com",
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=utcnow() + expires_in,
            scopes="https://www.googleapis.com/auth/contacts",
            active=active,
        )
        db.add(credential)
        db.commit()
        return credential

    return _make


@pytest.fixture
def make_contact(db):
    def _make(model=ClientContact, **fields):
        values = {"full_name": "Chen Wei", "organization": "Acme Builders",
                  "phone": "02-1234-5678", "mobile": "0912-345-678"}
        values.update(fields)
        contact = model(**values)
        db.add(contact)
        db.commit()
        return contact

    return _make


@pytest.fixture
def make_event(db):
    def _make(**fields):
        start = utcnow().replace(microsecond=0) + timedelta(days=1)
        values = {"title": "Site inspection", "start_time": start,
                  "end_time": start + timedelta(hours=2)}
        values.update(fields)
        event = CalendarEvent(**values)
        db.add(event)
        db.commit()
        return event

    return _make
