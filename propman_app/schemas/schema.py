from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional, Union

import phonenumbers
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated

from core.date_helper import to_naive_utc
from core.validate_enum import validate_enum, validate_enum_list
from models.enums import (
    AuditAction,
    AuditStatus,
    BillingPeriod,
    FrequencyType,
    InviteStatus,
    LeaseStatus,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    Priority,
    PropertyRole,
    PropertyType,
    RegistrationStatus,
    RequestCategory,
    RequestStatus,
    ResourceType,
    TemplateStatus,
    UnitStatus,
    UserRole,
    UtilityResponsibility,
)

UTCDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]
Money = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]
CurrencyCode = Annotated[str, Field(min_length=3, max_length=3)]
SELF_REGISTER_ROLES = {
    UserRole.TENANT,
    UserRole.LANDLORD,
    UserRole.PROPERTY_MANAGER,
    UserRole.VENDOR,
}


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def check_password_policy(v: str) -> str:
    errors = []
    if len(v) < 8:
        errors.append("at least 8 characters")
    if not re.search(r"[A-Z]", v):
        errors.append("uppercase letter")
    if not re.search(r"[a-z]", v):
        errors.append("lowercase letter")
    if not re.search(r"\d", v):
        errors.append("number")
    if not re.search(r"[^A-Za-z0-9]", v):
        errors.append("special character")
    if errors:
        raise ValueError("Password must contain: " + ", ".join(errors))
    return v


def check_phone(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    try:
        parsed = phonenumbers.parse(value, None)
    except phonenumbers.NumberParseException:
        raise ValueError("Invalid phone number format. Use e.g. +256700000000")
    if not phonenumbers.is_valid_number(parsed):
        raise ValueError("Invalid phone number. Use full international format.")
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def reject_legacy_name(data: Any) -> Any:
    if isinstance(data, dict) and "name" in data:
        raise ValueError("'name' is not accepted; send firstName and lastName")
    return data


# ---------------------------------------------------------------- users


class RegisterIn(CamelModel):
    email: EmailStr
    password: str = Field(..., json_schema_extra={"format": "password"})
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None
    role: UserRole = UserRole.TENANT

    @model_validator(mode="before")
    @classmethod
    def reject_name(cls, data):
        return reject_legacy_name(data)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str):
        return check_password_policy(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return check_phone(v)

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v):
        role = validate_enum(v, UserRole, field="role")
        if role not in SELF_REGISTER_ROLES:
            raise ValueError(f"Role {role.value} cannot self-register")
        return role

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_names(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginIn(CamelModel):
    email: EmailStr
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower() if isinstance(value, str) else value


class UserUpdateIn(CamelModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def reject_name(cls, data):
        return reject_legacy_name(data)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return check_phone(v)


class UserRoleIn(CamelModel):
    role: UserRole

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v):
        return validate_enum(v, UserRole, field="role")


class UserOut(CamelModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole
    registration_status: RegistrationStatus
    last_login: Optional[datetime] = None
    created_at: datetime

    @computed_field
    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class TokenOut(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class AssociationIn(CamelModel):
    user_id: uuid.UUID
    property_id: uuid.UUID
    unit_id: Optional[uuid.UUID] = None
    roles: List[PropertyRole] = Field(..., min_length=1)

    @field_validator("roles", mode="before")
    @classmethod
    def validate_roles(cls, v):
        return validate_enum_list(v or [], PropertyRole, field="roles")

    @model_validator(mode="after")
    def tenant_needs_unit(self):
        if PropertyRole.TENANT in self.roles and not self.unit_id:
            raise ValueError("A tenant association requires a unit")
        return self


class AssociationOut(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    property_id: uuid.UUID
    unit_id: Optional[uuid.UUID] = None
    roles: List[str]
    is_active: bool
    invited_by_id: Optional[uuid.UUID] = None
    created_at: datetime


# ---------------------------------------------------------------- properties


class AddressIn(CamelModel):
    street: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = Field(..., min_length=1)


class LocationIn(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class PropertyCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    address: AddressIn
    property_type: PropertyType = PropertyType.RESIDENTIAL
    year_built: Optional[int] = Field(None, ge=1800, le=2100)
    amenities: List[str] = Field(default_factory=list)
    location: Optional[LocationIn] = None
    landlord_id: Optional[uuid.UUID] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class PropertyUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    address: Optional[AddressIn] = None
    property_type: Optional[PropertyType] = None
    year_built: Optional[int] = Field(None, ge=1800, le=2100)
    amenities: Optional[List[str]] = None
    location: Optional[LocationIn] = None
    is_active: Optional[bool] = None


class AddressOut(CamelModel):
    street: Optional[str] = None
    city: str
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str


class PropertyOut(CamelModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    address: AddressOut
    property_type: PropertyType
    year_built: Optional[int] = None
    amenities: List[str] = []
    location: Optional[LocationIn] = None
    is_active: bool
    created_by_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def from_row(cls, data):
        if isinstance(data, dict):
            return data
        location = None
        if data.latitude is not None and data.longitude is not None:
            location = {"latitude": data.latitude, "longitude": data.longitude}
        return {
            "id": data.id,
            "name": data.name,
            "description": data.description,
            "address": {
                "street": data.street,
                "city": data.city,
                "state": data.state,
                "zip_code": data.zip_code,
                "country": data.country,
            },
            "property_type": data.property_type,
            "year_built": data.year_built,
            "amenities": data.amenities or [],
            "location": location,
            "is_active": data.is_active,
            "created_by_id": data.created_by_id,
            "created_at": data.created_at,
            "updated_at": data.updated_at,
        }


class UnitCreate(CamelModel):
    unit_name: str = Field(..., min_length=1, max_length=100)
    floor: Optional[str] = None
    details: Optional[str] = None
    num_bedrooms: Optional[int] = Field(None, ge=0)
    num_bathrooms: Optional[int] = Field(None, ge=0)
    square_footage: Optional[int] = Field(None, ge=0)
    rent_amount: Optional[Money] = None
    deposit_amount: Optional[Money] = None
    status: UnitStatus = UnitStatus.VACANT
    utility_responsibility: UtilityResponsibility = UtilityResponsibility.TENANT_PAYS_ALL


class UnitUpdate(CamelModel):
    unit_name: Optional[str] = Field(None, min_length=1, max_length=100)
    floor: Optional[str] = None
    details: Optional[str] = None
    num_bedrooms: Optional[int] = Field(None, ge=0)
    num_bathrooms: Optional[int] = Field(None, ge=0)
    square_footage: Optional[int] = Field(None, ge=0)
    rent_amount: Optional[Money] = None
    deposit_amount: Optional[Money] = None
    status: Optional[UnitStatus] = None
    utility_responsibility: Optional[UtilityResponsibility] = None


class UnitOut(CamelModel):
    id: uuid.UUID
    property_id: uuid.UUID
    unit_name: str
    floor: Optional[str] = None
    details: Optional[str] = None
    num_bedrooms: Optional[int] = None
    num_bathrooms: Optional[int] = None
    square_footage: Optional[int] = None
    rent_amount: Optional[Decimal] = None
    deposit_amount: Optional[Decimal] = None
    status: UnitStatus
    utility_responsibility: UtilityResponsibility
    is_active: bool
    created_at: datetime


# ---------------------------------------------------------------- leases & rent


class LeaseCreate(CamelModel):
    unit_id: uuid.UUID
    tenant_id: uuid.UUID
    start_date: date
    end_date: date
    monthly_rent: Money
    currency: Optional[CurrencyCode] = None
    payment_due_day: int = Field(1, ge=1, le=31)
    security_deposit: Money = Decimal("0")
    terms: Optional[str] = None
    status: LeaseStatus = LeaseStatus.ACTIVE
    create_rent_schedule: bool = False

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper() if v else v

    @field_validator("status")
    @classmethod
    def initial_status(cls, v):
        if v not in (LeaseStatus.ACTIVE, LeaseStatus.DRAFT):
            raise ValueError("A new lease must be active or draft")
        return v

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("endDate must be after startDate")
        return self


class LeaseUpdate(CamelModel):
    end_date: Optional[date] = None
    monthly_rent: Optional[Money] = None
    payment_due_day: Optional[int] = Field(None, ge=1, le=31)
    security_deposit: Optional[Money] = None
    terms: Optional[str] = None
    status: Optional[LeaseStatus] = None

    @field_validator("status")
    @classmethod
    def allowed_status(cls, v):
        if v in (LeaseStatus.TERMINATED,):
            raise ValueError("Use the terminate endpoint to end a lease")
        return v


class LeaseTerminateIn(CamelModel):
    reason: Optional[str] = Field(None, max_length=1000)


class LeaseRenewIn(CamelModel):
    new_end_date: date
    monthly_rent: Optional[Money] = None


class LeaseOut(CamelModel):
    id: uuid.UUID
    property_id: uuid.UUID
    unit_id: uuid.UUID
    tenant_id: uuid.UUID
    start_date: date
    end_date: date
    monthly_rent: Decimal
    currency: str
    payment_due_day: int
    security_deposit: Decimal
    terms: Optional[str] = None
    status: LeaseStatus
    terminated_at: Optional[datetime] = None
    termination_reason: Optional[str] = None
    renewal_notice_sent: bool = False
    created_at: datetime
    updated_at: datetime


class RentScheduleCreate(CamelModel):
    lease_id: uuid.UUID
    amount: Optional[Money] = None
    currency: Optional[CurrencyCode] = None
    due_date_day: Optional[int] = Field(None, ge=1, le=31)
    billing_period: BillingPeriod = BillingPeriod.MONTHLY
    effective_start_date: Optional[date] = None
    effective_end_date: Optional[date] = None
    auto_generate: bool = True
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self):
        if (
            self.effective_start_date
            and self.effective_end_date
            and self.effective_end_date < self.effective_start_date
        ):
            raise ValueError("effectiveEndDate cannot precede effectiveStartDate")
        return self


class RentScheduleUpdate(CamelModel):
    amount: Optional[Money] = None
    due_date_day: Optional[int] = Field(None, ge=1, le=31)
    effective_end_date: Optional[date] = None
    auto_generate: Optional[bool] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class RentScheduleOut(CamelModel):
    id: uuid.UUID
    lease_id: uuid.UUID
    tenant_id: uuid.UUID
    property_id: uuid.UUID
    unit_id: uuid.UUID
    amount: Decimal
    currency: str
    due_date_day: int
    billing_period: BillingPeriod
    effective_start_date: date
    effective_end_date: Optional[date] = None
    auto_generate: bool
    last_generated_date: Optional[date] = None
    is_active: bool
    notes: Optional[str] = None
    created_at: datetime


class RentCreate(CamelModel):
    lease_id: uuid.UUID
    billing_period: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    amount_due: Optional[Money] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class PaymentIn(CamelModel):
    amount_paid: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payment_date: Optional[UTCDatetime] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    transaction_id: Optional[str] = Field(None, max_length=120)
    proof_media_ref: Optional[str] = Field(None, max_length=512)
    notes: Optional[str] = None


class RentWaiveIn(CamelModel):
    reason: Optional[str] = None


class RentOut(CamelModel):
    id: uuid.UUID
    lease_id: uuid.UUID
    tenant_id: uuid.UUID
    property_id: uuid.UUID
    unit_id: uuid.UUID
    billing_period: str
    amount_due: Decimal
    amount_paid: Decimal
    currency: str
    due_date: date
    status: PaymentStatus
    payment_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    transaction_id: Optional[str] = None
    proof_media_ref: Optional[str] = None
    notes: Optional[str] = None
    reminder_sent: bool = False
    last_reminder_date: Optional[datetime] = None
    created_at: datetime

    @computed_field
    @property
    def balance(self) -> Decimal:
        return max(self.amount_due - self.amount_paid, Decimal("0"))


# ---------------------------------------------------------------- vendors


class VendorCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=150)
    phone: str
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    services: List[RequestCategory] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        phone = check_phone(v)
        if not phone:
            raise ValueError("Phone is required")
        return phone


class VendorUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    services: Optional[List[RequestCategory]] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return check_phone(v)


class VendorOut(CamelModel):
    id: uuid.UUID
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    services: List[str] = []
    notes: Optional[str] = None
    is_active: bool
    created_by_id: Optional[uuid.UUID] = None
    created_at: datetime


# ---------------------------------------------------------------- requests


class UserAssignee(CamelModel):
    kind: Literal["User"] = "User"
    id: uuid.UUID


class VendorAssignee(CamelModel):
    kind: Literal["Vendor"] = "Vendor"
    id: uuid.UUID


Assignee = Annotated[Union[UserAssignee, VendorAssignee], Field(discriminator="kind")]


def assignee_from_row(row) -> Optional[dict]:
    if row.assigned_to_id is None or row.assigned_kind is None:
        return None
    return {"kind": row.assigned_kind.value, "id": row.assigned_to_id}


class RequestCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: RequestCategory
    priority: Priority = Priority.MEDIUM
    property_id: uuid.UUID
    unit_id: Optional[uuid.UUID] = None
    media_refs: List[str] = Field(default_factory=list)


class RequestUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[RequestCategory] = None
    priority: Optional[Priority] = None
    media_refs: Optional[List[str]] = None


class AssignIn(CamelModel):
    assignee: Assignee


class StatusChangeIn(CamelModel):
    status: RequestStatus
    comment: Optional[str] = Field(None, max_length=2000)


class FeedbackIn(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)


class PublicLinkIn(CamelModel):
    expires_in_days: int = Field(7, ge=1, le=90)


class PublicLinkOut(CamelModel):
    public_token: str
    public_url: str
    expires_at: datetime


class CommentIn(CamelModel):
    message: str = Field(..., min_length=1, max_length=2000)
    is_internal_note: bool = False
    media_refs: List[str] = Field(default_factory=list)


class CommentOut(CamelModel):
    id: uuid.UUID
    sender_id: Optional[uuid.UUID] = None
    sender_name: str
    message: str
    is_internal_note: bool
    is_external: bool
    external_phone: Optional[str] = None
    media_refs: List[str] = []
    created_at: datetime


class FeedbackOut(CamelModel):
    rating: int
    comment: Optional[str] = None
    submitted_at: Optional[datetime] = None


class RequestOut(CamelModel):
    id: uuid.UUID
    title: str
    description: str
    category: RequestCategory
    priority: Priority
    property_id: uuid.UUID
    unit_id: Optional[uuid.UUID] = None
    created_by_id: Optional[uuid.UUID] = None
    assigned_to: Optional[Assignee] = None
    assigned_at: Optional[datetime] = None
    status: RequestStatus
    resolved_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    feedback: Optional[FeedbackOut] = None
    public_link_enabled: bool = False
    public_link_expires_at: Optional[datetime] = None
    media_refs: List[str] = []
    generated_from_scheduled_maintenance_id: Optional[uuid.UUID] = None
    scheduled_fire_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def from_row(cls, data):
        if isinstance(data, dict):
            return data
        feedback = None
        if data.feedback_rating is not None:
            feedback = {
                "rating": data.feedback_rating,
                "comment": data.feedback_comment,
                "submitted_at": data.feedback_submitted_at,
            }
        return {
            **{
                key: getattr(data, key)
                for key in (
                    "id",
                    "title",
                    "description",
                    "category",
                    "priority",
                    "property_id",
                    "unit_id",
                    "created_by_id",
                    "assigned_at",
                    "status",
                    "resolved_at",
                    "verified_at",
                    "public_link_enabled",
                    "public_link_expires_at",
                    "generated_from_scheduled_maintenance_id",
                    "scheduled_fire_at",
                    "created_at",
                    "updated_at",
                )
            },
            "media_refs": data.media_refs or [],
            "assigned_to": assignee_from_row(data),
            "feedback": feedback,
        }


class PublicIdentityIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=150)
    phone: str = Field(..., min_length=5, max_length=20)

    @field_validator("name", "phone", mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("phone")
    @classmethod
    def phone_digits(cls, v):
        if not re.match(r"^\+?[0-9][0-9\s-]{4,19}$", v):
            raise ValueError("Invalid phone number")
        return re.sub(r"[\s-]", "", v)


class PublicUpdateIn(PublicIdentityIn):
    status: Optional[RequestStatus] = None
    comment_message: Optional[str] = Field(None, max_length=2000)

    @field_validator("status")
    @classmethod
    def public_statuses(cls, v):
        if v is not None and v not in (RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED):
            raise ValueError("Status may only be in_progress or completed")
        return v

    @model_validator(mode="after")
    def something_to_do(self):
        if self.status is None and not self.comment_message:
            raise ValueError("Provide a status or a commentMessage")
        return self


class PublicCommentIn(PublicIdentityIn):
    message: str = Field(..., min_length=1, max_length=2000)


class PublicCommentOut(CamelModel):
    sender_name: str
    message: str
    timestamp: datetime


class PublicRequestView(CamelModel):
    id: uuid.UUID
    title: str
    description: str
    category: RequestCategory
    priority: Priority
    status: RequestStatus
    property_name: Optional[str] = None
    unit_name: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None
    comments: List[PublicCommentOut] = []


# ---------------------------------------------------------------- scheduled maintenance


class FrequencyIn(CamelModel):
    type: FrequencyType
    interval: int = Field(1, ge=1)
    day_of_week: List[int] = Field(default_factory=list)
    day_of_month: Optional[int] = Field(None, ge=1, le=31)
    month_of_year: Optional[int] = Field(None, ge=1, le=12)
    custom_days: List[int] = Field(default_factory=list)
    end_date: Optional[date] = None
    occurrences: Optional[int] = Field(None, ge=1)

    @field_validator("day_of_week")
    @classmethod
    def check_weekdays(cls, v):
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("dayOfWeek values must be between 0 (Sunday) and 6")
        return sorted(set(v))

    @field_validator("custom_days")
    @classmethod
    def check_custom_days(cls, v):
        if any(d < 1 for d in v):
            raise ValueError("customDays values must be positive")
        return v

    @model_validator(mode="after")
    def check_consistency(self):
        if self.end_date is not None and self.occurrences is not None:
            raise ValueError("endDate and occurrences are mutually exclusive")
        if self.type == FrequencyType.CUSTOM_DAYS and not self.custom_days:
            raise ValueError("customDays is required for custom_days frequency")
        if self.day_of_week and self.type != FrequencyType.WEEKLY:
            raise ValueError("dayOfWeek only applies to weekly frequency")
        if self.month_of_year and self.type != FrequencyType.YEARLY:
            raise ValueError("monthOfYear only applies to yearly frequency")
        if self.day_of_month and self.type not in (
            FrequencyType.MONTHLY,
            FrequencyType.QUARTERLY,
            FrequencyType.YEARLY,
        ):
            raise ValueError("dayOfMonth only applies to monthly, quarterly or yearly")
        return self

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TemplateCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: RequestCategory = RequestCategory.SCHEDULED
    priority: Priority = Priority.MEDIUM
    property_id: uuid.UUID
    unit_id: Optional[uuid.UUID] = None
    scheduled_date: UTCDatetime
    recurring: bool = False
    frequency: Optional[FrequencyIn] = None
    assignee: Optional[Assignee] = None
    media_refs: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def recurring_needs_frequency(self):
        if self.recurring and self.frequency is None:
            raise ValueError("frequency is required for recurring maintenance")
        if not self.recurring:
            self.frequency = None
        return self


class TemplateUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[RequestCategory] = None
    priority: Optional[Priority] = None
    scheduled_date: Optional[UTCDatetime] = None
    recurring: Optional[bool] = None
    frequency: Optional[FrequencyIn] = None
    assignee: Optional[Assignee] = None


class TemplateOut(CamelModel):
    id: uuid.UUID
    title: str
    description: str
    category: RequestCategory
    priority: Priority
    property_id: uuid.UUID
    unit_id: Optional[uuid.UUID] = None
    created_by_id: Optional[uuid.UUID] = None
    scheduled_date: datetime
    recurring: bool
    frequency: Optional[dict] = None
    status: TemplateStatus
    assigned_to: Optional[Assignee] = None
    next_due_date: datetime
    last_executed_at: Optional[datetime] = None
    last_generated_request_id: Optional[uuid.UUID] = None
    occurrence_count: int
    public_link_enabled: bool = False
    public_link_expires_at: Optional[datetime] = None
    media_refs: List[str] = []
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def from_row(cls, data):
        if isinstance(data, dict):
            return data
        values = {
            key: getattr(data, key)
            for key in cls.model_fields
            if key not in ("assigned_to", "media_refs")
        }
        values["assigned_to"] = assignee_from_row(data)
        values["media_refs"] = data.media_refs or []
        return values


class PublicTemplateView(CamelModel):
    id: uuid.UUID
    title: str
    description: str
    category: RequestCategory
    status: TemplateStatus
    property_name: Optional[str] = None
    unit_name: Optional[str] = None
    scheduled_date: datetime
    next_due_date: datetime
    comments: List[PublicCommentOut] = []


class PublicTemplateUpdateIn(PublicIdentityIn):
    status: Optional[RequestStatus] = None
    comment_message: Optional[str] = Field(None, max_length=2000)

    @field_validator("status")
    @classmethod
    def public_statuses(cls, v):
        if v is not None and v not in (RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED):
            raise ValueError("Status may only be in_progress or completed")
        return v


# ---------------------------------------------------------------- invites


class InviteCreate(CamelModel):
    email: EmailStr
    roles: List[PropertyRole] = Field(..., min_length=1)
    property_id: Optional[uuid.UUID] = None
    unit_id: Optional[uuid.UUID] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("roles", mode="before")
    @classmethod
    def validate_roles(cls, v):
        if isinstance(v, str):
            v = [v]
        return validate_enum_list(v or [], PropertyRole, field="roles")

    @model_validator(mode="after")
    def check_scope(self):
        if PropertyRole.TENANT in self.roles and not self.unit_id:
            raise ValueError("A tenant invite requires a unit")
        if self.unit_id and not self.property_id:
            raise ValueError("A unit invite requires its property")
        return self


class InviteOut(CamelModel):
    id: uuid.UUID
    email: str
    roles: List[str]
    property_id: Optional[uuid.UUID] = None
    unit_id: Optional[uuid.UUID] = None
    generated_by_id: Optional[uuid.UUID] = None
    status: InviteStatus
    expires_at: datetime
    accepted_by_id: Optional[uuid.UUID] = None
    accepted_at: Optional[datetime] = None
    revoked_by_id: Optional[uuid.UUID] = None
    revoked_at: Optional[datetime] = None
    decline_reason: Optional[str] = None
    resend_count: int
    last_resend_at: Optional[datetime] = None
    created_at: datetime


class InviteIssuedOut(CamelModel):
    invite: InviteOut
    invite_token: str
    invite_link: str


class InviteVerifyOut(CamelModel):
    email: str
    roles: List[str]
    property_id: Optional[uuid.UUID] = None
    property_name: Optional[str] = None
    unit_id: Optional[uuid.UUID] = None
    unit_name: Optional[str] = None
    expires_at: datetime
    user_exists: bool


class InviteAcceptIn(CamelModel):
    email: EmailStr
    password: Optional[str] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def reject_name(cls, data):
        return reject_legacy_name(data)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return check_password_policy(v) if v is not None else v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return check_phone(v)


class InviteDeclineIn(CamelModel):
    email: Optional[EmailStr] = None
    reason: Optional[str] = Field(None, max_length=1000)


class InviteCancelIn(CamelModel):
    reason: Optional[str] = Field(None, max_length=1000)


class InviteAcceptedOut(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
    association: AssociationOut


# ---------------------------------------------------------------- audit & notifications


class AuditLogOut(CamelModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    action: AuditAction
    resource_type: ResourceType
    resource_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    old_value: Optional[dict] = None
    new_value: Optional[dict] = None
    status: AuditStatus
    error_message: Optional[str] = None
    ip_address: Optional[str] = None
    external_actor: Optional[dict] = None
    created_at: datetime


class NotificationOut(CamelModel):
    id: uuid.UUID
    type: NotificationType
    message: str
    link: Optional[str] = None
    related_resource_type: Optional[ResourceType] = None
    related_resource_id: Optional[uuid.UUID] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class RecurrenceRunOut(CamelModel):
    rent_records_created: int = 0
    requests_created: int = 0
    templates_completed: int = 0


class SideEffectDrainOut(CamelModel):
    delivered: int = 0
    retried: int = 0
    failed: int = 0
