# slot_booking/services/admin_user_service.py
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..audit import audit_logger, snapshot
from ..core.errors import Conflict, NotFound, ValidationFailed
from ..models import AuditAction
from ..security import get_password_hash

logger = structlog.get_logger(__name__)

USER_FIELDS = ("id", "username", "full_name", "role")
RECENT_REGISTRATION_DAYS = 30


def list_users(db: Session, role: Optional[models.AdminRole] = None, search: Optional[str] = None,
               limit: int = 50, offset: int = 0) -> Tuple[List[models.AdminUser], int]:
    return crud.get_admin_users(db, role=role, search=search, limit=limit, offset=offset)


def user_stats(db: Session) -> schemas.AdminUserStats:
    since = datetime.now(timezone.utc) - timedelta(days=RECENT_REGISTRATION_DAYS)
    return schemas.AdminUserStats(**crud.get_admin_user_stats(db, since))


def get_user(db: Session, user_id: int) -> models.AdminUser:
    admin = crud.get_admin_user(db, user_id)
    if admin is None:
        raise NotFound("User not found")
    return admin


def create_user(db: Session, actor, payload: schemas.AdminUserCreate) -> models.AdminUser:
    if crud.get_admin_by_username(db, payload.username):
        raise Conflict("Username already exists")
    try:
        admin = crud.create_admin_user(
            db,
            username=payload.username,
            password_hash=get_password_hash(payload.password),
            full_name=payload.full_name,
            role=payload.role,
        )
    except crud.DuplicateError:
        raise Conflict("Username already exists")

    logger.info("admin_user_created", user_id=admin.id, username=admin.username, role=admin.role.value)
    audit_logger.log(db, actor, AuditAction.CREATE_USER, "admin_user", admin.id,
                     new_values=snapshot(admin, USER_FIELDS))
    return admin


def update_role(db: Session, actor, user_id: int, role: models.AdminRole) -> models.AdminUser:
    admin = get_user(db, user_id)
    old_values = snapshot(admin, ("role",))
    admin = crud.update_admin_user(db, admin, {"role": role})
    audit_logger.log(db, actor, AuditAction.UPDATE_USER_ROLE, "admin_user", admin.id,
                     old_values=old_values, new_values=snapshot(admin, ("role",)))
    return admin


def delete_user(db: Session, actor, user_id: int) -> None:
    if user_id == actor.id:
        raise ValidationFailed("You cannot delete your own account")
    admin = get_user(db, user_id)
    old_values = snapshot(admin, USER_FIELDS)
    crud.delete_admin_user(db, admin)
    logger.info("admin_user_deleted", user_id=user_id, username=old_values["username"])
    audit_logger.log(db, actor, AuditAction.DELETE_USER, "admin_user", user_id, old_values=old_values)
