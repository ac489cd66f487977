# Ensures the default administrator exists on startup.
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import crud, models
from .config import get_settings
from .database import SessionLocal

logger = logging.getLogger(__name__)


def ensure_default_admin(db: Session, username: str, password: Optional[str], full_name: str) -> Optional[models.AdminUser]:
    """Create the default ADMIN account, or resync its password and role with the environment."""
    from .security import get_password_hash, verify_password

    if not password:
        logger.warning("ADMIN_DEFAULT_PASSWORD not set. Skipping default admin setup.")
        return None

    admin = crud.get_admin_by_username(db, username)
    if admin is None:
        admin = crud.create_admin_user(
            db,
            username=username,
            password_hash=get_password_hash(password),
            full_name=full_name,
            role=models.AdminRole.ADMIN,
        )
        logger.info(f"Default admin '{username}' created.")
        return admin

    fields = {}
    if not verify_password(password, admin.password_hash):
        fields["password_hash"] = get_password_hash(password)
    if admin.role != models.AdminRole.ADMIN:
        fields["role"] = models.AdminRole.ADMIN
    if fields:
        admin = crud.update_admin_user(db, admin, fields)
        logger.info(f"Default admin '{username}' updated to match environment.")
    return admin


def create_or_update_admin() -> None:
    settings = get_settings()
    db = SessionLocal()
    try:
        ensure_default_admin(
            db,
            settings.admin_default_username,
            settings.admin_default_password,
            settings.admin_default_full_name,
        )
        purged = crud.purge_expired_sessions(db)
        if purged:
            logger.info(f"Purged {purged} expired admin session(s).")
    except crud.CRUDError as e:
        logger.error(f"CRITICAL: Error during admin user initialization: {e}")
    finally:
        db.close()
