# slot_booking/schemas.py
import re
from datetime import datetime, date
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import SlotStatus, BookingStatus, AdminRole, RecurrenceType

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
TIME_SLOT_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def normalize_phone(raw: str) -> str:
    """Strip a query-string phone, restoring a leading "+" decoded as a space."""
    if raw[:1] == " " and raw.lstrip()[:1].isdigit():
        raw = "+" + raw.lstrip()
    return raw.strip()


# --- Base Schemas ---
class BaseSchema(BaseModel):
    """Stored rows, serialized with their column names."""
    model_config = ConfigDict(from_attributes=True)


class CamelSchema(BaseModel):
    """Request/response bodies the front end exchanges in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageResponse(BaseModel):
    message: str


# --- Slot Configuration ---
class SlotConfigurationCreate(CamelSchema):
    date: date
    status: SlotStatus
    max_slots: Optional[int] = Field(None, ge=0, description="Full-day figure; halved for half days")
    reason: Optional[str] = None


class SlotConfigurationUpdate(CamelSchema):
    status: SlotStatus
    max_slots: Optional[int] = Field(None, ge=0)
    reason: Optional[str] = None


class BulkSlotConfigurationCreate(CamelSchema):
    start_date: date
    end_date: date
    status: SlotStatus
    max_slots: Optional[int] = Field(None, ge=0)
    reason: Optional[str] = None


class SlotConfigurationResponse(BaseSchema):
    id: int
    date: date
    status: SlotStatus
    max_slots: int
    reason: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DateFailure(CamelSchema):
    date: date
    error: str


class BulkConfigurationResult(CamelSchema):
    requested: int
    succeeded: List[date] = Field(default_factory=list)
    failed: List[DateFailure] = Field(default_factory=list)


# --- Recurring Rules ---
class RecurringRuleCreate(CamelSchema):
    rule_type: RecurrenceType
    day_of_week: Optional[int] = Field(None, ge=0, le=6, description="0=Monday, 6=Sunday")
    day_of_month: Optional[int] = Field(None, ge=1, le=31)
    start_date: date
    end_date: Optional[date] = None
    status: SlotStatus
    max_slots: Optional[int] = Field(None, ge=0)
    reason: Optional[str] = None

    @model_validator(mode="after")
    def check_trigger(self):
        if self.rule_type == RecurrenceType.weekly and self.day_of_week is None:
            raise ValueError("dayOfWeek is required for weekly rules")
        if self.rule_type == RecurrenceType.monthly and self.day_of_month is None:
            raise ValueError("dayOfMonth is required for monthly rules")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class RecurringRuleUpdate(CamelSchema):
    is_active: Optional[bool] = None
    status: Optional[SlotStatus] = None
    max_slots: Optional[int] = Field(None, ge=0)
    reason: Optional[str] = None
    end_date: Optional[date] = None


class RecurringRuleApply(CamelSchema):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    overwrite: bool = False


class RecurringRuleResponse(BaseSchema):
    id: int
    rule_type: RecurrenceType
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None
    status: SlotStatus
    max_slots: int
    reason: Optional[str] = None
    is_active: bool
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RuleApplyResult(CamelSchema):
    rule_id: int
    applied: List[date] = Field(default_factory=list)
    skipped: List[date] = Field(default_factory=list)
    failed: List[DateFailure] = Field(default_factory=list)


# --- Availability ---
class SlotState(CamelSchema):
    time: str
    booking_count: int
    max_capacity: int
    is_available: bool
    is_fully_booked: bool
    available_spots: int


class SlotAvailabilityResponse(CamelSchema):
    date: date
    status: SlotStatus
    reason: Optional[str] = None
    source: str
    slot_status: List[SlotState]
    available_slots: List[str]
    fully_booked_slots: List[str]
    all_slots: List[str]
    total_bookings: int
    max_bookings: int


class OverallSlotStatus(CamelSchema):
    date: date
    status: SlotStatus
    total_bookings: int
    max_slots: int
    available_slots: int
    reason: Optional[str] = None


class DayAvailability(CamelSchema):
    date: date
    status: SlotStatus
    max_slots: int
    booked_slots: int
    available_slots: int
    reason: Optional[str] = None


class WeeklyStatusResponse(CamelSchema):
    has_booked_this_week: bool
    bookings_this_week: int
    week_start: date
    week_end: date


# --- Bookings ---
class BookingCreate(BaseModel):
    name: str = Field(..., max_length=120)
    phone: str
    army_number: Optional[str] = Field(None, max_length=50)
    date: date
    time_slot: str
    purpose: str = Field(..., max_length=255)
    location: str = Field(..., max_length=255)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        v = v.strip()
        if not PHONE_PATTERN.match(v):
            raise ValueError("Invalid phone number")
        return v

    @field_validator("purpose", "location")
    @classmethod
    def validate_not_empty(cls, v, info):
        v = v.strip()
        if not v:
            raise ValueError(f"{info.field_name.capitalize()} is required")
        return v

    @field_validator("time_slot")
    @classmethod
    def validate_time_slot(cls, v):
        v = v.strip()
        if not TIME_SLOT_PATTERN.match(v):
            raise ValueError("Invalid time slot format")
        hours, minutes = v.split(":")
        return f"{int(hours):02d}:{minutes}"

    @field_validator("army_number")
    @classmethod
    def blank_army_number(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v


class BookingResponse(BaseSchema):
    id: int
    name: str
    phone: str
    army_number: Optional[str] = None
    date: date
    time_slot: str
    purpose: str
    location: str
    status: BookingStatus
    created_at: Optional[datetime] = None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BulkDeleteRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)


class AdminStats(CamelSchema):
    date: date
    status: SlotStatus
    total_bookings: int
    max_bookings: int
    available_bookings: int
    by_status: Dict[str, int]


class BookingAnalytics(CamelSchema):
    total_bookings: int
    by_status: Dict[str, int]
    by_purpose: Dict[str, int]
    by_location: Dict[str, int]
    by_time_slot: Dict[str, int]
    daily_trend: Dict[str, int]


# --- Public profile ---
class ProfileSave(CamelSchema):
    army_number: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=120)
    mobile: str = Field(..., min_length=1, max_length=20)


class ProfileResponse(CamelSchema):
    army_number: str
    name: str
    mobile: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileSaveResponse(BaseModel):
    message: str
    profile: ProfileResponse


class UserLogin(CamelSchema):
    mobile: str = Field(..., min_length=1, max_length=20)
    army_number: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=120)


class UserLoginResponse(BaseModel):
    success: bool = True
    user: ProfileResponse


# --- Admin authentication / users ---
class AdminLogin(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class AdminIdentity(BaseSchema):
    id: int
    username: str
    role: AdminRole
    full_name: str


class AdminLoginResponse(BaseModel):
    success: bool = True
    token: str
    expires_at: datetime
    admin: AdminIdentity


class AdminVerifyResponse(BaseModel):
    success: bool = True
    admin: AdminIdentity


class AdminUserCreate(CamelSchema):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1, max_length=120)
    role: AdminRole = AdminRole.CO


class AdminUserRoleUpdate(BaseModel):
    role: AdminRole


class AdminUserResponse(BaseSchema):
    id: int
    username: str
    full_name: str
    role: AdminRole
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AdminUserList(BaseModel):
    users: List[AdminUserResponse]
    total: int
    limit: int
    offset: int


class AdminUserStats(CamelSchema):
    total_users: int
    by_role: Dict[str, int]
    recent_registrations: int


# --- Audit logs ---
class AuditLogResponse(BaseSchema):
    id: int
    admin_id: Optional[int] = None
    admin_username: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    old_values: Optional[Any] = None
    new_values: Optional[Any] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None


class AuditLogList(BaseModel):
    logs: List[AuditLogResponse]
    total: int
    limit: int
    offset: int


class AuditLogStats(CamelSchema):
    total_actions: int
    actions_by_type: Dict[str, int]
    actions_by_entity: Dict[str, int]
    recent_actions: List[AuditLogResponse]
