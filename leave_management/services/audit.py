from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from leave_management.models.audit_log import AuditLog
from leave_management.services.base import BaseService


def _sanitize(obj: Any) -> Any:
    """Make nested values JSON-storable."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        details: Optional[dict] = None,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None,
        actor_id: Optional[int] = None,
        actor_role: Optional[str] = None,
    ) -> AuditLog:
        """
        Append an audit entry to the current transaction.
        Not committed here: the entry lands or rolls back with the action it describes.
        """
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id if actor_id is not None else self.actor_id,
            actor_role=actor_role or self.actor_role,
            details=_sanitize(details),
            before_state=_sanitize(before_state),
            after_state=_sanitize(after_state),
        )
        self.db.add(entry)
        return entry

    # Static wrapper for call sites without a service instance
    @staticmethod
    def log(db, principal=None, **kwargs) -> AuditLog:
        return AuditService(db, principal).log_action(**kwargs)
