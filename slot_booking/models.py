# slot_booking/models.py
import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, JSON, Index, UniqueConstraint, CheckConstraint, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class SlotStatus(str, enum.Enum):
    open = "open"
    half_day_pre = "half_day_pre"
    half_day_post = "half_day_post"
    closed = "closed"

    @property
    def is_half_day(self) -> bool:
        return self in (SlotStatus.half_day_pre, SlotStatus.half_day_post)


class BookingStatus(str, enum.Enum):
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"
    no_show = "no_show"


class AdminRole(str, enum.Enum):
    ADMIN = "ADMIN"
    JCO = "JCO"
    CO = "CO"


# Shared so both tables use one database enum type
slot_status_enum = SQLAlchemyEnum(SlotStatus, name="slot_status")


class RecurrenceType(str, enum.Enum):
    weekly = "weekly"
    monthly = "monthly"


class AuditAction(str, enum.Enum):
    CREATE_SLOT_CONFIG = "CREATE_SLOT_CONFIG"
    UPDATE_SLOT_CONFIG = "UPDATE_SLOT_CONFIG"
    DELETE_SLOT_CONFIG = "DELETE_SLOT_CONFIG"
    BULK_SLOT_CONFIG = "BULK_SLOT_CONFIG"
    CREATE_RECURRING_RULE = "CREATE_RECURRING_RULE"
    UPDATE_RECURRING_RULE = "UPDATE_RECURRING_RULE"
    DELETE_RECURRING_RULE = "DELETE_RECURRING_RULE"
    APPLY_RECURRING_RULE = "APPLY_RECURRING_RULE"
    UPDATE_BOOKING_STATUS = "UPDATE_BOOKING_STATUS"
    DELETE_BOOKING = "DELETE_BOOKING"
    DELETE_BOOKING_BULK = "DELETE_BOOKING_BULK"
    CREATE_USER = "CREATE_USER"
    UPDATE_USER_ROLE = "UPDATE_USER_ROLE"
    DELETE_USER = "DELETE_USER"
    EXPORT = "EXPORT"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"


# Admin identity
class AdminUser(Base):
    """Back-office account that can manage slots, bookings and other admins"""
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(120), nullable=False)
    role = Column(SQLAlchemyEnum(AdminRole, name="admin_role"), default=AdminRole.CO, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    sessions = relationship("AdminSession", back_populates="admin", cascade="all, delete-orphan")


class AdminSession(Base):
    """Opaque bearer token issued on admin login"""
    __tablename__ = "admin_sessions"
    __table_args__ = (
        Index("idx_admin_sessions_token_expiry", "token", "expires_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(128), unique=True, nullable=False)
    admin_id = Column(Integer, ForeignKey("admin_users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    admin = relationship("AdminUser", back_populates="sessions")


# Capacity configuration
class SlotConfiguration(Base):
    """Per-date override of status and capacity. One row per date at most."""
    __tablename__ = "slot_configurations"
    __table_args__ = (
        UniqueConstraint("date", name="uq_slot_configurations_date"),
        CheckConstraint("max_slots >= 0", name="ck_slot_configurations_max_slots"),
    )

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False)
    status = Column(slot_status_enum, default=SlotStatus.open, nullable=False)
    max_slots = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)


class RecurringSlotRule(Base):
    """Template that applies a status/capacity to every matching date in a window"""
    __tablename__ = "recurring_slot_rules"
    __table_args__ = (
        Index("idx_recurring_rules_active_window", "is_active", "start_date", "end_date"),
        CheckConstraint("max_slots >= 0", name="ck_recurring_rules_max_slots"),
    )

    id = Column(Integer, primary_key=True, index=True)
    rule_type = Column(SQLAlchemyEnum(RecurrenceType, name="recurrence_type"), nullable=False)
    day_of_week = Column(Integer, nullable=True)  # 0=Monday, 6=Sunday
    day_of_month = Column(Integer, nullable=True)  # 1..31
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    status = Column(slot_status_enum, nullable=False)
    max_slots = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_by = Column(Integer, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)


# Bookings
class Booking(Base):
    """A reservation of one time slot on one date"""
    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_bookings_date_status", "date", "status"),
        Index("idx_bookings_phone_date", "phone", "date"),
        # One active booking per phone per ISO week
        Index(
            "uq_bookings_phone_week_active", "phone", "week_start", unique=True,
            postgresql_where=text("status != 'cancelled'"),
            sqlite_where=text("status != 'cancelled'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(20), nullable=False)
    army_number = Column(String(50), nullable=True, index=True)
    date = Column(Date, nullable=False)
    time_slot = Column(String(5), nullable=False)  # HH:MM
    purpose = Column(String(255), nullable=False)
    location = Column(String(255), nullable=False)
    status = Column(SQLAlchemyEnum(BookingStatus, name="booking_status"), default=BookingStatus.confirmed, nullable=False)
    week_start = Column(Date, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class UserProfile(Base):
    """Contact cache keyed by army number; not an identity record"""
    __tablename__ = "public_profiles"

    id = Column(Integer, primary_key=True, index=True)
    army_number = Column(String(50), unique=True, nullable=False)
    name = Column(String(120), nullable=False)
    mobile = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)


class AuditLog(Base):
    """Append-only trail of admin mutations"""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_admin_date", "admin_id", "created_at"),
        Index("idx_audit_action_date", "action", "created_at"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, nullable=True)  # no FK: entries outlive deleted admins
    admin_username = Column(String(50), nullable=True)
    action = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
