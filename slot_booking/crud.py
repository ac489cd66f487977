# slot_booking/crud.py
import logging
from datetime import datetime, timedelta, date, time, timezone
from typing import Optional, List, Dict, Tuple, Any

from sqlalchemy import or_, desc, func, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


class CRUDError(Exception):
    pass


class DuplicateError(CRUDError):
    """A unique constraint rejected the write."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dialect_insert(db: Session):
    """INSERT construct supporting ``on_conflict_do_update`` for the bound dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise CRUDError(f"Upsert not supported on dialect '{dialect}'")


def _slot_lock_key(target_date: date, time_slot: str) -> int:
    hours, minutes = time_slot[:5].split(":")
    return target_date.toordinal() * 10000 + int(hours) * 100 + int(minutes)


def lock_time_slot(db: Session, target_date: date, time_slot: str) -> None:
    """Serialize capacity checks for one (date, time slot) until the transaction ends.

    No-op outside PostgreSQL.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    try:
        db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": _slot_lock_key(target_date, time_slot)})
    except SQLAlchemyError as e:
        logger.error(f"Error locking slot {target_date} {time_slot}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


# ==================== SLOT CONFIGURATIONS ====================

def get_slot_configuration(db: Session, config_id: int) -> Optional[models.SlotConfiguration]:
    try:
        return db.query(models.SlotConfiguration).filter(models.SlotConfiguration.id == config_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching slot configuration {config_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_slot_configuration_by_date(db: Session, target_date: date, for_update: bool = False) -> Optional[models.SlotConfiguration]:
    """Explicit configuration for a date. ``for_update`` locks the row until commit."""
    try:
        query = db.query(models.SlotConfiguration).filter(models.SlotConfiguration.date == target_date)
        if for_update:
            query = query.with_for_update()
        return query.first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching slot configuration for {target_date}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_slot_configurations(db: Session, start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[models.SlotConfiguration]:
    try:
        query = db.query(models.SlotConfiguration)
        if start_date:
            query = query.filter(models.SlotConfiguration.date >= start_date)
        if end_date:
            query = query.filter(models.SlotConfiguration.date <= end_date)
        return query.order_by(models.SlotConfiguration.date).all()
    except SQLAlchemyError as e:
        logger.error(f"Error listing slot configurations: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_slot_configurations_by_date(db: Session, start_date: date, end_date: date) -> Dict[date, models.SlotConfiguration]:
    return {c.date: c for c in get_slot_configurations(db, start_date, end_date)}


def upsert_slot_configuration(
    db: Session,
    target_date: date,
    status: models.SlotStatus,
    max_slots: int,
    reason: Optional[str],
    created_by: Optional[int] = None,
) -> models.SlotConfiguration:
    """Insert or replace the configuration for one date in a single statement."""
    insert = _dialect_insert(db)
    now = _utcnow()
    stmt = insert(models.SlotConfiguration).values(
        date=target_date,
        status=status,
        max_slots=max_slots,
        reason=reason,
        created_by=created_by,
        created_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[models.SlotConfiguration.date],
        set_={
            "status": stmt.excluded.status,
            "max_slots": stmt.excluded.max_slots,
            "reason": stmt.excluded.reason,
            "updated_at": now,
        },
    )
    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error upserting slot configuration for {target_date}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

    config = get_slot_configuration_by_date(db, target_date)
    db.refresh(config)
    return config


def update_slot_configuration(db: Session, config: models.SlotConfiguration, fields: Dict[str, Any]) -> models.SlotConfiguration:
    try:
        for key, value in fields.items():
            setattr(config, key, value)
        config.updated_at = _utcnow()
        db.commit()
        db.refresh(config)
        return config
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating slot configuration {config.id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def delete_slot_configuration(db: Session, config: models.SlotConfiguration) -> None:
    try:
        db.delete(config)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting slot configuration {config.id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


# ==================== RECURRING RULES ====================

def get_recurring_rule(db: Session, rule_id: int) -> Optional[models.RecurringSlotRule]:
    try:
        return db.query(models.RecurringSlotRule).filter(models.RecurringSlotRule.id == rule_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching recurring rule {rule_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_recurring_rules(db: Session, active_only: bool = False) -> List[models.RecurringSlotRule]:
    try:
        query = db.query(models.RecurringSlotRule)
        if active_only:
            query = query.filter(models.RecurringSlotRule.is_active.is_(True))
        return query.order_by(desc(models.RecurringSlotRule.created_at), desc(models.RecurringSlotRule.id)).all()
    except SQLAlchemyError as e:
        logger.error(f"Error listing recurring rules: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_active_rules_for_window(db: Session, start_date: date, end_date: date) -> List[models.RecurringSlotRule]:
    """Active rules whose window overlaps ``[start_date, end_date]``, newest first."""
    try:
        return (
            db.query(models.RecurringSlotRule)
            .filter(
                models.RecurringSlotRule.is_active.is_(True),
                models.RecurringSlotRule.start_date <= end_date,
                or_(models.RecurringSlotRule.end_date.is_(None), models.RecurringSlotRule.end_date >= start_date),
            )
            .order_by(desc(models.RecurringSlotRule.created_at), desc(models.RecurringSlotRule.id))
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching active recurring rules: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def create_recurring_rule(db: Session, **fields) -> models.RecurringSlotRule:
    try:
        rule = models.RecurringSlotRule(**fields)
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating recurring rule: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def update_recurring_rule(db: Session, rule: models.RecurringSlotRule, fields: Dict[str, Any]) -> models.RecurringSlotRule:
    try:
        for key, value in fields.items():
            setattr(rule, key, value)
        rule.updated_at = _utcnow()
        db.commit()
        db.refresh(rule)
        return rule
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating recurring rule {rule.id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def delete_recurring_rule(db: Session, rule: models.RecurringSlotRule) -> None:
    try:
        db.delete(rule)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting recurring rule {rule.id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


# ==================== BOOKINGS ====================

def _active_bookings(db: Session):
    return db.query(models.Booking).filter(models.Booking.status != models.BookingStatus.cancelled)


def get_booked_time_slots(db: Session, target_date: date) -> List[str]:
    """Time labels of every non-cancelled booking on a date, one entry per booking."""
    try:
        rows = _active_bookings(db).with_entities(models.Booking.time_slot).filter(
            models.Booking.date == target_date
        ).all()
        return [row.time_slot for row in rows]
    except SQLAlchemyError as e:
        logger.error(f"Error fetching booked slots for {target_date}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def count_bookings_for_date(db: Session, target_date: date) -> int:
    try:
        return _active_bookings(db).filter(models.Booking.date == target_date).count()
    except SQLAlchemyError as e:
        logger.error(f"Error counting bookings for {target_date}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def count_bookings_by_date(db: Session, start_date: date, end_date: date) -> Dict[date, int]:
    try:
        rows = (
            _active_bookings(db)
            .with_entities(models.Booking.date, func.count(models.Booking.id))
            .filter(models.Booking.date >= start_date, models.Booking.date <= end_date)
            .group_by(models.Booking.date)
            .all()
        )
        return {row[0]: row[1] for row in rows}
    except SQLAlchemyError as e:
        logger.error(f"Error counting bookings for {start_date}..{end_date}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def count_phone_bookings_between(db: Session, phone: str, start_date: date, end_date: date) -> int:
    try:
        return _active_bookings(db).filter(
            models.Booking.phone == phone,
            models.Booking.date >= start_date,
            models.Booking.date <= end_date,
        ).count()
    except SQLAlchemyError as e:
        logger.error(f"Error counting weekly bookings: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def create_booking(db: Session, fields: Dict[str, Any]) -> models.Booking:
    """Insert a booking. Raises DuplicateError when the weekly unique index rejects it."""
    try:
        booking = models.Booking(**fields)
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Booking rejected by constraint for phone {fields.get('phone')}: {str(e.orig)}")
        raise DuplicateError("Booking conflicts with an existing booking")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating booking: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_booking(db: Session, booking_id: int) -> Optional[models.Booking]:
    try:
        return db.query(models.Booking).filter(models.Booking.id == booking_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching booking {booking_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_bookings(db: Session, start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[models.Booking]:
    try:
        query = db.query(models.Booking)
        if start_date:
            query = query.filter(models.Booking.date >= start_date)
        if end_date:
            query = query.filter(models.Booking.date <= end_date)
        return query.order_by(desc(models.Booking.created_at), desc(models.Booking.id)).all()
    except SQLAlchemyError as e:
        logger.error(f"Error listing bookings: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_bookings_by_ids(db: Session, ids: List[int]) -> List[models.Booking]:
    try:
        return db.query(models.Booking).filter(models.Booking.id.in_(ids)).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching bookings {ids}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def update_booking_status(db: Session, booking: models.Booking, status: models.BookingStatus) -> models.Booking:
    try:
        booking.status = status
        db.commit()
        db.refresh(booking)
        return booking
    except IntegrityError as e:
        # Reactivating a cancelled booking can collide with the weekly index
        db.rollback()
        logger.warning(f"Status change rejected for booking {booking.id}: {str(e.orig)}")
        raise DuplicateError("Phone already has an active booking this week")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating booking {booking.id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def delete_bookings(db: Session, bookings: List[models.Booking]) -> None:
    try:
        for booking in bookings:
            db.delete(booking)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting bookings: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def count_bookings_grouped(db: Session, column, target_date: Optional[date] = None,
                           include_cancelled: bool = True) -> Dict[str, int]:
    """``{value: count}`` of bookings grouped by one column."""
    try:
        query = db.query(column, func.count(models.Booking.id))
        if not include_cancelled:
            query = query.filter(models.Booking.status != models.BookingStatus.cancelled)
        if target_date is not None:
            query = query.filter(models.Booking.date == target_date)
        rows = query.group_by(column).all()
        result = {}
        for key, count in rows:
            if hasattr(key, "value"):
                key = key.value
            elif isinstance(key, date):
                key = key.isoformat()
            result[str(key)] = count
        return result
    except SQLAlchemyError as e:
        logger.error(f"Error aggregating bookings: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def count_all_bookings(db: Session) -> int:
    try:
        return db.query(func.count(models.Booking.id)).scalar() or 0
    except SQLAlchemyError as e:
        logger.error(f"Error counting bookings: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


# ==================== PUBLIC PROFILES ====================

def get_profile(db: Session, army_number: str) -> Optional[models.UserProfile]:
    try:
        return db.query(models.UserProfile).filter(models.UserProfile.army_number == army_number).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching profile {army_number}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def upsert_profile(db: Session, army_number: str, name: str, mobile: str) -> models.UserProfile:
    insert = _dialect_insert(db)
    now = _utcnow()
    stmt = insert(models.UserProfile).values(army_number=army_number, name=name, mobile=mobile, created_at=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=[models.UserProfile.army_number],
        set_={"name": stmt.excluded.name, "mobile": stmt.excluded.mobile, "updated_at": now},
    )
    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving profile {army_number}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

    profile = get_profile(db, army_number)
    db.refresh(profile)
    return profile


def delete_profile(db: Session, profile: models.UserProfile) -> None:
    try:
        db.delete(profile)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting profile {profile.army_number}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


# ==================== ADMIN USERS & SESSIONS ====================

def get_admin_user(db: Session, admin_id: int) -> Optional[models.AdminUser]:
    try:
        return db.query(models.AdminUser).filter(models.AdminUser.id == admin_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching admin {admin_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_admin_by_username(db: Session, username: str) -> Optional[models.AdminUser]:
    try:
        return db.query(models.AdminUser).filter(models.AdminUser.username == username).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching admin '{username}': {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_admin_users(db: Session, role: Optional[models.AdminRole] = None, search: Optional[str] = None,
                    limit: int = 50, offset: int = 0) -> Tuple[List[models.AdminUser], int]:
    try:
        query = db.query(models.AdminUser)
        if role:
            query = query.filter(models.AdminUser.role == role)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(models.AdminUser.username.ilike(pattern), models.AdminUser.full_name.ilike(pattern)))
        total = query.count()
        users = query.order_by(desc(models.AdminUser.created_at), desc(models.AdminUser.id)).offset(offset).limit(limit).all()
        return users, total
    except SQLAlchemyError as e:
        logger.error(f"Error listing admin users: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def create_admin_user(db: Session, username: str, password_hash: str, full_name: str, role: models.AdminRole) -> models.AdminUser:
    try:
        admin = models.AdminUser(username=username, password_hash=password_hash, full_name=full_name, role=role)
        db.add(admin)
        db.commit()
        db.refresh(admin)
        return admin
    except IntegrityError:
        db.rollback()
        raise DuplicateError("Username already exists")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating admin '{username}': {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def update_admin_user(db: Session, admin: models.AdminUser, fields: Dict[str, Any]) -> models.AdminUser:
    try:
        for key, value in fields.items():
            setattr(admin, key, value)
        admin.updated_at = _utcnow()
        db.commit()
        db.refresh(admin)
        return admin
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating admin {admin.id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def delete_admin_user(db: Session, admin: models.AdminUser) -> None:
    try:
        db.delete(admin)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting admin {admin.id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_admin_user_stats(db: Session, since: datetime) -> Dict[str, Any]:
    try:
        total = db.query(func.count(models.AdminUser.id)).scalar() or 0
        by_role = {
            (role.value if hasattr(role, "value") else str(role)): count
            for role, count in db.query(models.AdminUser.role, func.count(models.AdminUser.id)).group_by(models.AdminUser.role).all()
        }
        recent = db.query(func.count(models.AdminUser.id)).filter(models.AdminUser.created_at >= since).scalar() or 0
        return {"total_users": total, "by_role": by_role, "recent_registrations": recent}
    except SQLAlchemyError as e:
        logger.error(f"Error computing admin stats: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def create_admin_session(db: Session, admin_id: int, token: str, expires_at: datetime) -> models.AdminSession:
    try:
        session = models.AdminSession(admin_id=admin_id, token=token, expires_at=expires_at)
        db.add(session)
        db.commit()
        db.refresh(session)
        return session
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating session for admin {admin_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_active_session(db: Session, token: str) -> Optional[models.AdminSession]:
    try:
        return db.query(models.AdminSession).filter(
            models.AdminSession.token == token,
            models.AdminSession.expires_at > _utcnow(),
        ).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching admin session: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def delete_session(db: Session, token: str) -> bool:
    try:
        deleted = db.query(models.AdminSession).filter(models.AdminSession.token == token).delete()
        db.commit()
        return deleted > 0
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting admin session: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def purge_expired_sessions(db: Session) -> int:
    try:
        deleted = db.query(models.AdminSession).filter(models.AdminSession.expires_at <= _utcnow()).delete()
        db.commit()
        return deleted
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error purging admin sessions: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


# ==================== AUDIT LOGS ====================

def _audit_query(db: Session, start_date: Optional[date] = None, end_date: Optional[date] = None,
                 action: Optional[str] = None, entity_type: Optional[str] = None, admin_id: Optional[int] = None):
    query = db.query(models.AuditLog)
    if start_date:
        query = query.filter(models.AuditLog.created_at >= _day_start(start_date))
    if end_date:
        query = query.filter(models.AuditLog.created_at < _day_start(end_date + timedelta(days=1)))
    if action:
        query = query.filter(models.AuditLog.action == action)
    if entity_type:
        query = query.filter(models.AuditLog.entity_type == entity_type)
    if admin_id is not None:
        query = query.filter(models.AuditLog.admin_id == admin_id)
    return query


def get_audit_logs(db: Session, limit: Optional[int] = 50, offset: int = 0, **filters) -> Tuple[List[models.AuditLog], int]:
    try:
        query = _audit_query(db, **filters)
        total = query.count()
        query = query.order_by(desc(models.AuditLog.created_at), desc(models.AuditLog.id)).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all(), total
    except SQLAlchemyError as e:
        logger.error(f"Error listing audit logs: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_audit_log_stats(db: Session, recent: int = 10, **filters) -> Dict[str, Any]:
    try:
        base = _audit_query(db, **filters)
        total = base.count()
        by_action = dict(
            base.with_entities(models.AuditLog.action, func.count(models.AuditLog.id)).group_by(models.AuditLog.action).all()
        )
        by_entity = dict(
            base.with_entities(models.AuditLog.entity_type, func.count(models.AuditLog.id)).group_by(models.AuditLog.entity_type).all()
        )
        latest = base.order_by(desc(models.AuditLog.created_at), desc(models.AuditLog.id)).limit(recent).all()
        return {
            "total_actions": total,
            "actions_by_type": by_action,
            "actions_by_entity": by_entity,
            "recent_actions": latest,
        }
    except SQLAlchemyError as e:
        logger.error(f"Error computing audit stats: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")
