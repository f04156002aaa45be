import re
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from bcrypt import checkpw, gensalt, hashpw
from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from core.date_helper import utcnow
from core.get_db import Base

from .enums import (
    AssigneeKind,
    AuditAction,
    AuditStatus,
    BillingPeriod,
    InviteStatus,
    LeaseStatus,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    Priority,
    PropertyType,
    RegistrationStatus,
    RequestCategory,
    RequestStatus,
    ResourceType,
    SideEffectKind,
    SideEffectStatus,
    TemplateStatus,
    UnitStatus,
    UserRole,
    UtilityResponsibility,
)
from .utils import normalize_email, str_enum

ACTIVE_ONLY = text("is_active = 1")
ACTIVE_LEASE_ONLY = text("status = 'active'")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(str_enum(UserRole), nullable=False)
    registration_status: Mapped[RegistrationStatus] = mapped_column(
        str_enum(RegistrationStatus),
        nullable=False,
        default=RegistrationStatus.ACTIVE,
        index=True,
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    associations: Mapped[List["PropertyUser"]] = relationship(
        "PropertyUser",
        back_populates="user",
        foreign_keys="PropertyUser.user_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def set_password(self, raw_password: str):
        salt = gensalt()
        self.hashed_password = hashpw(raw_password.encode("utf-8"), salt).decode(
            "utf-8"
        )

    def check_password(self, raw_password: str) -> bool:
        if not self.hashed_password:
            return False
        return checkpw(
            raw_password.encode("utf-8"), self.hashed_password.encode("utf-8")
        )

    def normalize(self) -> None:
        self.email = normalize_email(self.email)
        self.first_name = self.first_name.strip()
        self.last_name = self.last_name.strip()

    @property
    def is_active(self) -> bool:
        return self.registration_status == RegistrationStatus.ACTIVE

    @hybrid_property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def __repr__(self):
        return f"<User {self.email} ({self.id})>"


class Property(TimestampMixin, Base):
    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    street: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    zip_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    property_type: Mapped[PropertyType] = mapped_column(
        str_enum(PropertyType), nullable=False, default=PropertyType.RESIDENTIAL
    )
    year_built: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    amenities: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    units: Mapped[List["Unit"]] = relationship(
        "Unit",
        back_populates="property",
        order_by="Unit.unit_name",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @validates("year_built")
    def validate_year_built(self, key, value):
        if value is not None and not 1800 <= value <= utcnow().year + 5:
            raise ValueError("Year built is out of range.")
        return value


class Unit(TimestampMixin, Base):
    __tablename__ = "units"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unit_name: Mapped[str] = mapped_column(String(100), nullable=False)
    floor: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    num_bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    num_bathrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    square_footage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rent_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    deposit_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    status: Mapped[UnitStatus] = mapped_column(
        str_enum(UnitStatus), nullable=False, default=UnitStatus.VACANT, index=True
    )
    utility_responsibility: Mapped[UtilityResponsibility] = mapped_column(
        str_enum(UtilityResponsibility),
        nullable=False,
        default=UtilityResponsibility.TENANT_PAYS_ALL,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    property: Mapped["Property"] = relationship("Property", back_populates="units")

    __table_args__ = (
        UniqueConstraint("property_id", "unit_name", name="uq_unit_name_per_property"),
    )

    @validates("num_bedrooms", "num_bathrooms", "square_footage")
    def validate_counts(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"{key} cannot be negative.")
        return value


class PropertyUser(TimestampMixin, Base):
    __tablename__ = "property_users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("units.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # unit_id rendered as text ("" when absent) so the partial unique index
    # also covers property-level associations
    unit_key: Mapped[str] = mapped_column(String(36), nullable=False, default="")
    roles: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    invited_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    user: Mapped["User"] = relationship(
        "User", back_populates="associations", foreign_keys=[user_id]
    )
    property: Mapped["Property"] = relationship("Property")
    unit: Mapped[Optional["Unit"]] = relationship("Unit")

    __table_args__ = (
        Index(
            "uq_active_property_user",
            "user_id",
            "property_id",
            "unit_key",
            unique=True,
            sqlite_where=ACTIVE_ONLY,
            postgresql_where=text("is_active"),
        ),
    )


class Lease(TimestampMixin, Base):
    __tablename__ = "leases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("units.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="UGX")
    payment_due_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    security_deposit: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[LeaseStatus] = mapped_column(
        str_enum(LeaseStatus), nullable=False, default=LeaseStatus.ACTIVE, index=True
    )
    terminated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    termination_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    renewal_notice_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    renewal_notice_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )

    property: Mapped["Property"] = relationship("Property")
    unit: Mapped["Unit"] = relationship("Unit")
    tenant: Mapped["User"] = relationship("User", foreign_keys=[tenant_id])

    __table_args__ = (
        Index(
            "uq_active_lease_per_unit",
            "unit_id",
            unique=True,
            sqlite_where=ACTIVE_LEASE_ONLY,
            postgresql_where=ACTIVE_LEASE_ONLY,
        ),
    )

    @validates("payment_due_day")
    def validate_due_day(self, key, value):
        if value is not None and not 1 <= value <= 31:
            raise ValueError("Payment due day must be between 1 and 31.")
        return value

    @validates("monthly_rent", "security_deposit")
    def validate_amount(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"{key} cannot be negative.")
        return value


class RentSchedule(TimestampMixin, Base):
    __tablename__ = "rent_schedules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lease_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("leases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("units.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="UGX")
    due_date_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    billing_period: Mapped[BillingPeriod] = mapped_column(
        str_enum(BillingPeriod), nullable=False, default=BillingPeriod.MONTHLY
    )
    effective_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    effective_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    auto_generate: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_generated_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    lease: Mapped["Lease"] = relationship("Lease")

    @validates("due_date_day")
    def validate_due_day(self, key, value):
        if not 1 <= value <= 31:
            raise ValueError("Due date day must be between 1 and 31.")
        return value


class RentRecord(TimestampMixin, Base):
    __tablename__ = "rent_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lease_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("leases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rent_schedule_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("rent_schedules.id", ondelete="SET NULL"), nullable=True
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("units.id", ondelete="CASCADE"), nullable=False
    )
    billing_period: Mapped[str] = mapped_column(String(10), nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="UGX")
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[PaymentStatus] = mapped_column(
        str_enum(PaymentStatus), nullable=False, default=PaymentStatus.DUE, index=True
    )
    payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        str_enum(PaymentMethod), nullable=True
    )
    transaction_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    proof_media_ref: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    last_reminder_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    recorded_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    lease: Mapped["Lease"] = relationship("Lease")

    __table_args__ = (
        UniqueConstraint("lease_id", "billing_period", name="uq_rent_lease_period"),
    )

    @validates("billing_period")
    def validate_billing_period(self, key, value):
        if not re.match(r"^\d{4}-(0[1-9]|1[0-2])(-\d{2})?$", value or ""):
            raise ValueError("Billing period must be YYYY-MM or YYYY-MM-DD.")
        return value


class Vendor(TimestampMixin, Base):
    __tablename__ = "vendors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_person: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    services: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )


class PublicLinkMixin:
    public_token_hash: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, nullable=True
    )
    public_link_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    public_link_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )

    def public_link_usable(self, now: datetime) -> bool:
        return bool(
            self.public_link_enabled
            and self.public_token_hash
            and self.public_link_expires_at
            and self.public_link_expires_at > now
        )


class MaintenanceRequest(TimestampMixin, PublicLinkMixin, Base):
    __tablename__ = "maintenance_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[RequestCategory] = mapped_column(
        str_enum(RequestCategory), nullable=False, index=True
    )
    priority: Mapped[Priority] = mapped_column(
        str_enum(Priority), nullable=False, default=Priority.MEDIUM
    )
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("units.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # polymorphic reference: a users.id or vendors.id depending on assigned_kind
    assigned_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True
    )
    assigned_kind: Mapped[Optional[AssigneeKind]] = mapped_column(
        str_enum(AssigneeKind), nullable=True
    )
    assigned_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[RequestStatus] = mapped_column(
        str_enum(RequestStatus), nullable=False, default=RequestStatus.NEW, index=True
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    verified_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    feedback_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    feedback_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    feedback_submitted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    media_refs: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    generated_from_scheduled_maintenance_id: Mapped[Optional[uuid.UUID]] = (
        mapped_column(
            Uuid,
            ForeignKey("scheduled_maintenances.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        )
    )
    scheduled_fire_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )

    property: Mapped["Property"] = relationship("Property")
    unit: Mapped[Optional["Unit"]] = relationship("Unit")

    __table_args__ = (
        UniqueConstraint(
            "generated_from_scheduled_maintenance_id",
            "scheduled_fire_at",
            name="uq_request_per_template_fire",
        ),
    )

    @validates("feedback_rating")
    def validate_rating(self, key, value):
        if value is not None and not 1 <= value <= 5:
            raise ValueError("Rating must be between 1 and 5.")
        return value


class ScheduledMaintenance(TimestampMixin, PublicLinkMixin, Base):
    __tablename__ = "scheduled_maintenances"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[RequestCategory] = mapped_column(
        str_enum(RequestCategory), nullable=False
    )
    priority: Mapped[Priority] = mapped_column(
        str_enum(Priority), nullable=False, default=Priority.MEDIUM
    )
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("units.id", ondelete="SET NULL"), nullable=True
    )
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    scheduled_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    frequency: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    status: Mapped[TemplateStatus] = mapped_column(
        str_enum(TemplateStatus),
        nullable=False,
        default=TemplateStatus.ACTIVE,
        index=True,
    )
    assigned_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    assigned_kind: Mapped[Optional[AssigneeKind]] = mapped_column(
        str_enum(AssigneeKind), nullable=True
    )
    next_due_date: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, index=True
    )
    last_executed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    last_generated_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True
    )
    occurrence_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    media_refs: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    property: Mapped["Property"] = relationship("Property")


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    context_type: Mapped[ResourceType] = mapped_column(
        str_enum(ResourceType), nullable=False
    )
    context_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    sender_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    external_name: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    external_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal_note: Mapped[bool] = mapped_column(Boolean, default=False)
    is_external: Mapped[bool] = mapped_column(Boolean, default=False)
    media_refs: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    sender: Mapped[Optional["User"]] = relationship("User", lazy="selectin")

    @property
    def sender_name(self) -> str:
        if self.is_external or not self.sender:
            return self.external_name or "External"
        return self.sender.full_name


class Invite(TimestampMixin, Base):
    __tablename__ = "invites"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    roles: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    property_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=True, index=True
    )
    unit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("units.id", ondelete="SET NULL"), nullable=True
    )
    hashed_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    generated_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[InviteStatus] = mapped_column(
        str_enum(InviteStatus), nullable=False, default=InviteStatus.PENDING, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    accepted_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    revoked_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    decline_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resend_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_resend_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    property: Mapped[Optional["Property"]] = relationship("Property")
    generated_by: Mapped[Optional["User"]] = relationship(
        "User", foreign_keys=[generated_by_id]
    )

    @validates("email")
    def validate_email(self, key, value):
        return normalize_email(value)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    action: Mapped[AuditAction] = mapped_column(
        str_enum(AuditAction, length=60), nullable=False, index=True
    )
    resource_type: Mapped[ResourceType] = mapped_column(
        str_enum(ResourceType), nullable=False, index=True
    )
    resource_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    old_value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    status: Mapped[AuditStatus] = mapped_column(
        str_enum(AuditStatus), nullable=False, default=AuditStatus.SUCCESS, index=True
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    external_actor: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class SideEffect(Base):
    __tablename__ = "side_effects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[SideEffectKind] = mapped_column(
        str_enum(SideEffectKind), nullable=False
    )
    template: Mapped[str] = mapped_column(String(60), nullable=False)
    recipient: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    recipient_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    resource_type: Mapped[Optional[ResourceType]] = mapped_column(
        str_enum(ResourceType), nullable=True
    )
    resource_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    status: Mapped[SideEffectStatus] = mapped_column(
        str_enum(SideEffectStatus),
        nullable=False,
        default=SideEffectStatus.PENDING,
        index=True,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    available_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[NotificationType] = mapped_column(
        str_enum(NotificationType), nullable=False, default=NotificationType.GENERAL
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    related_resource_type: Mapped[Optional[ResourceType]] = mapped_column(
        str_enum(ResourceType), nullable=True
    )
    related_resource_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True
    )
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


from . import event_listener  # noqa: E402,F401
