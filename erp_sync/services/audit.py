"""
Audit trail writer.

Appending is fire-and-forget: the record is written through its own session
and any failure is logged, never raised into the sync operation.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from erp_sync.models.audit_log import AuditLog
from erp_sync.schemas import AuditContext

logger = logging.getLogger(__name__)


def detect_changed_fields(before: dict | None, after: dict | None) -> list[str]:
    before = before or {}
    after = after or {}
    return sorted(
        key for key in set(before) | set(after)
        if before.get(key) != after.get(key)
    )


class AuditRecorder:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def append(
        self,
        entity_type: str,
        entity_id: str,
        before: dict | None,
        after: dict | None,
        context: Optional[AuditContext] = None,
    ) -> None:
        context = context or AuditContext()
        db = None
        try:
            db = self.session_factory()
            db.add(AuditLog(
                entity_type=entity_type,
                entity_id=str(entity_id),
                action="UPDATE",
                old_values=before,
                new_values=after,
                changed_fields=detect_changed_fields(before, after),
                user_id=context.user_id,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            ))
            db.commit()
        except Exception as e:
            logger.error("Failed to append audit record for %s %s: %s", entity_type, entity_id, e)
            if db is not None:
                db.rollback()
        finally:
            if db is not None:
                db.close()
