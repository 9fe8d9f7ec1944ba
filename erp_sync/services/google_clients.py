"""
Remote directory clients for Google People (contacts) and Calendar (events).

Both implement the same four operations the reconciler needs:
get / create / update (guarded by an etag precondition) / delete.
Google errors are translated into the sync error taxonomy here, so callers
never see googleapiclient or httplib2 exceptions.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Callable

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from erp_sync.errors import RemoteApiError, RemoteNotFound, RemotePreconditionFailed

logger = logging.getLogger(__name__)

PERSON_FIELDS = "names,emailAddresses,phoneNumbers,organizations,biographies,userDefined"

PRECONDITION_REASONS = ("failedPrecondition", "FAILED_PRECONDITION", "conditionNotMet")


class RemoteDirectoryClient(ABC):
    """Capability interface over a remote directory/calendar. Stateless."""

    @abstractmethod
    def get(self, resource_id: str) -> dict:
        """Fetch the remote object; its ``etag`` is the update precondition."""

    @abstractmethod
    def create(self, representation: dict) -> str:
        """Create the remote object and return its resource id."""

    @abstractmethod
    def update(self, resource_id: str, representation: dict, precondition: str | None) -> str:
        """Overwrite the remote object if it still matches ``precondition``."""

    @abstractmethod
    def delete(self, resource_id: str) -> None:
        """Delete the remote object."""


# ============ ERROR TRANSLATION ============

def _error_content(error: HttpError) -> str:
    content = error.content
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="ignore")
    return content or ""


def _error_message(error: HttpError) -> str:
    """Best human-readable message from a Google JSON error body."""
    try:
        payload = json.loads(_error_content(error))
        return payload["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return error.reason or str(error)


def translate_http_error(error: HttpError) -> RemoteApiError:
    status = int(error.resp.status) if error.resp is not None else None
    message = _error_message(error)
    content = _error_content(error)

    if status == 412 or (status == 400 and any(r in content for r in PRECONDITION_REASONS)):
        return RemotePreconditionFailed(
            f"Remote record was modified concurrently: {message}", status=status
        )
    if status in (404, 410):
        return RemoteNotFound(f"Remote record not found: {message}", status=status)
    return RemoteApiError(f"Google API error {status}: {message}", status=status)


def _execute(request):
    """Execute a googleapiclient request, translating every failure."""
    try:
        return request.execute()
    except HttpError as e:
        raise translate_http_error(e) from e
    except (httplib2.HttpLib2Error, GoogleAuthError, OSError) as e:
        # OSError covers socket timeouts and connection resets
        raise RemoteApiError(f"Google API request failed: {e}") from e


def build_service(api: str, version: str, access_token: str, timeout: int = 30):
    """Authenticated discovery client with a bounded per-request timeout."""
    creds = Credentials(token=access_token)
    http = AuthorizedHttp(creds, http=httplib2.Http(timeout=timeout))
    return build(api, version, http=http, cache_discovery=False)


# ============ PEOPLE API ============

class GoogleContactsClient(RemoteDirectoryClient):
    """Google Contacts via People API v1; resource ids are ``people/...`` names."""

    def __init__(self, service):
        self.service = service

    @classmethod
    def for_token(cls, access_token: str, timeout: int = 30) -> "GoogleContactsClient":
        return cls(build_service("people", "v1", access_token, timeout))

    def get(self, resource_id: str) -> dict:
        return _execute(self.service.people().get(
            resourceName=resource_id,
            personFields=PERSON_FIELDS
        ))

    def create(self, representation: dict) -> str:
        response = _execute(self.service.people().createContact(body=representation))
        resource_name = response.get("resourceName")
        if not resource_name:
            raise RemoteApiError("Google did not return a resource name for the new contact")
        logger.info("Created Google contact %s", resource_name)
        return resource_name

    def update(self, resource_id: str, representation: dict, precondition: str | None) -> str:
        # People API takes the etag in the body and rejects stale ones
        body = dict(representation)
        body["etag"] = precondition
        response = _execute(self.service.people().updateContact(
            resourceName=resource_id,
            updatePersonFields=PERSON_FIELDS,
            body=body
        ))
        return response.get("resourceName") or resource_id

    def delete(self, resource_id: str) -> None:
        _execute(self.service.people().deleteContact(resourceName=resource_id))
        logger.info("Deleted Google contact %s", resource_id)


# ============ CALENDAR API ============

class GoogleCalendarClient(RemoteDirectoryClient):
    """Google Calendar v3 events of a single calendar; resource ids are event ids."""

    def __init__(self, service, calendar_id: str = "primary"):
        self.service = service
        self.calendar_id = calendar_id

    @classmethod
    def for_token(cls, access_token: str, calendar_id: str = "primary",
                  timeout: int = 30) -> "GoogleCalendarClient":
        return cls(build_service("calendar", "v3", access_token, timeout), calendar_id)

    def get(self, resource_id: str) -> dict:
        return _execute(self.service.events().get(
            calendarId=self.calendar_id,
            eventId=resource_id
        ))

    def create(self, representation: dict) -> str:
        response = _execute(self.service.events().insert(
            calendarId=self.calendar_id,
            body=representation
        ))
        event_id = response.get("id")
        if not event_id:
            raise RemoteApiError("Google did not return an id for the new event")
        logger.info("Created Google Calendar event %s in %s", event_id, self.calendar_id)
        return event_id

    def update(self, resource_id: str, representation: dict, precondition: str | None) -> str:
        request = self.service.events().update(
            calendarId=self.calendar_id,
            eventId=resource_id,
            body=representation
        )
        if precondition:
            # Calendar answers 412 when the etag no longer matches
            request.headers["If-Match"] = precondition
        response = _execute(request)
        return response.get("id") or resource_id

    def delete(self, resource_id: str) -> None:
        _execute(self.service.events().delete(
            calendarId=self.calendar_id,
            eventId=resource_id
        ))
        logger.info("Deleted Google Calendar event %s", resource_id)


ClientFactory = Callable[[str], RemoteDirectoryClient]


def contacts_client_factory(timeout: int = 30) -> ClientFactory:
    return lambda token: GoogleContactsClient.for_token(token, timeout=timeout)


def calendar_client_factory(calendar_id: str, timeout: int = 30) -> ClientFactory:
    return lambda token: GoogleCalendarClient.for_token(token, calendar_id=calendar_id, timeout=timeout)
