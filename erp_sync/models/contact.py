"""
Client and vendor contacts that can be mirrored to Google Contacts.

Both tables share the same columns and People API representation; they only
differ in table name and the provenance "Type" tag.
"""

import uuid

from sqlalchemy import Column, String, Text, DateTime, Boolean
from sqlalchemy.sql import func

from erp_sync.database import Base
from erp_sync.errors import RepresentationError
from erp_sync.models.sync_link import SyncLinkMixin


def _new_id() -> str:
    return str(uuid.uuid4())


class ContactMixin(SyncLinkMixin):
    """Columns and People API mapping shared by client and vendor contacts."""

    contact_type_label = "Contact"
    synced_fields = (
        "full_name", "organization", "phone", "mobile",
        "email", "title", "department", "note",
    )

    id = Column(String(36), primary_key=True, default=_new_id)

    # ============ PERSON ============
    full_name = Column(String(100), nullable=False)
    organization = Column(String(255), index=True)  # client / vendor name
    title = Column(String(100))
    department = Column(String(100))

    # ============ REACHABILITY ============
    phone = Column(String(50))   # work
    mobile = Column(String(50))
    email = Column(String(255))

    note = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def phone_numbers(self) -> list[dict]:
        phones = []
        if self.phone:
            phones.append({"value": self.phone, "type": "work"})
        if self.mobile:
            phones.append({"value": self.mobile, "type": "mobile"})
        return phones

    def to_remote_representation(self, source_label: str = "ERP", **options) -> dict:
        """Build a People API ``Person`` body from the current fields."""
        name = (self.full_name or "").strip()
        if not name:
            raise RepresentationError(f"Contact {self.id} has no name")

        return {
            "names": [{"givenName": name}],
            "emailAddresses": [{"value": self.email, "type": "work"}] if self.email else [],
            "phoneNumbers": self.phone_numbers(),
            "organizations": [{
                "name": self.organization or f"Unknown {self.contact_type_label}",
                "title": self.title or "",
                "department": self.department or "",
            }],
            "biographies": [{"value": self.note, "contentType": "TEXT_PLAIN"}] if self.note else [],
            # Provenance tags allow reverse lookup of the local record
            "userDefined": [
                {"key": "Source", "value": source_label},
                {"key": "Type", "value": f"{self.contact_type_label} Contact"},
                {"key": "ERP ID", "value": str(self.id)},
            ],
        }

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, name={self.full_name}, status={self.sync_status})>"


class ClientContact(ContactMixin, Base):
    __tablename__ = "client_contacts"

    entity_type = "ClientContact"
    contact_type_label = "Client"


class VendorContact(ContactMixin, Base):
    __tablename__ = "vendor_contacts"

    entity_type = "VendorContact"
    contact_type_label = "Vendor"
