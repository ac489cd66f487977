import logging
from datetime import date, datetime
from enum import Enum
from typing import Optional, Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def snapshot(row, fields) -> Dict[str, Any]:
    """Plain-dict copy of selected columns, suitable for the JSON audit columns."""
    return {field: _jsonable(getattr(row, field, None)) for field in fields}


class AuditLogger:
    """Writes admin mutations to the audit_logs table.

    Entries are committed on the caller's session right after the mutation.
    A failed write is rolled back and logged; it never fails the admin action.
    """

    def log(
        self,
        db: Session,
        actor,
        action: models.AuditAction,
        entity_type: str,
        entity_id: Optional[Any] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> Optional[models.AuditLog]:
        action_value = action.value if isinstance(action, models.AuditAction) else str(action)
        try:
            entry = models.AuditLog(
                admin_id=getattr(actor, "id", None),
                admin_username=getattr(actor, "username", None),
                action=action_value,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                old_values=_jsonable(old_values) if old_values is not None else None,
                new_values=_jsonable(new_values) if new_values is not None else None,
                ip_address=getattr(actor, "ip_address", None),
                user_agent=getattr(actor, "user_agent", None),
            )
            db.add(entry)
            db.commit()
            return entry
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to write audit log {action_value} {entity_type}:{entity_id}: {e}")
            return None


audit_logger = AuditLogger()
