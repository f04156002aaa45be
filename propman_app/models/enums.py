from enum import Enum


class UserRole(str, Enum):
    TENANT = "tenant"
    LANDLORD = "landlord"
    ADMIN = "admin"
    PROPERTY_MANAGER = "propertymanager"
    VENDOR = "vendor"


class RegistrationStatus(str, Enum):
    PENDING_INVITE_ACCEPTANCE = "pending_invite_acceptance"
    PENDING_ADMIN_APPROVAL = "pending_admin_approval"
    PENDING_EMAIL_VERIFICATION = "pending_email_verification"
    ACTIVE = "active"
    DEACTIVATED = "deactivated"


class PropertyRole(str, Enum):
    LANDLORD = "landlord"
    PROPERTY_MANAGER = "propertymanager"
    TENANT = "tenant"
    VENDOR_ACCESS = "vendor_access"
    ADMIN_ACCESS = "admin_access"


MANAGEMENT_ROLES = frozenset(
    {PropertyRole.LANDLORD, PropertyRole.PROPERTY_MANAGER, PropertyRole.ADMIN_ACCESS}
)


class PropertyType(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    MULTI_FAMILY = "multi_family"
    SINGLE_FAMILY = "single_family"
    CONDO = "condo"
    TOWNHOUSE = "townhouse"
    DUPLEX = "duplex"
    OTHER = "other"


class UnitStatus(str, Enum):
    OCCUPIED = "occupied"
    VACANT = "vacant"
    UNDER_MAINTENANCE = "under_maintenance"
    UNAVAILABLE = "unavailable"
    LEASED = "leased"


class UtilityResponsibility(str, Enum):
    ALL_INCLUDED = "all_included"
    TENANT_PAYS_ALL = "tenant_pays_all"
    PARTIAL_INCLUDED = "partial_included"


class LeaseStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    PENDING_RENEWAL = "pending_renewal"
    TERMINATED = "terminated"
    DRAFT = "draft"


class BillingPeriod(str, Enum):
    WEEKLY = "weekly"
    BI_WEEKLY = "bi_weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BI_ANNUALLY = "bi_annually"
    ANNUALLY = "annually"


BILLING_PERIOD_MONTHS = {
    BillingPeriod.MONTHLY: 1,
    BillingPeriod.QUARTERLY: 3,
    BillingPeriod.BI_ANNUALLY: 6,
    BillingPeriod.ANNUALLY: 12,
}

BILLING_PERIOD_DAYS = {
    BillingPeriod.WEEKLY: 7,
    BillingPeriod.BI_WEEKLY: 14,
}


class PaymentStatus(str, Enum):
    DUE = "due"
    PAID = "paid"
    OVERDUE = "overdue"
    PARTIALLY_PAID = "partially_paid"
    WAIVED = "waived"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    CARD = "card"
    CHEQUE = "cheque"
    OTHER = "other"


class RequestCategory(str, Enum):
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    HVAC = "hvac"
    APPLIANCE = "appliance"
    STRUCTURAL = "structural"
    LANDSCAPING = "landscaping"
    OTHER = "other"
    SECURITY = "security"
    PEST_CONTROL = "pest_control"
    CLEANING = "cleaning"
    SCHEDULED = "scheduled"
    PAINTING = "painting"
    ROOFING = "roofing"
    CARPENTRY = "carpentry"
    GENERAL_REPAIR = "general_repair"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"


class RequestStatus(str, Enum):
    NEW = "new"
    TRIAGED = "triaged"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    VERIFIED = "verified"
    REOPENED = "reopened"
    CANCELED = "canceled"
    ARCHIVED = "archived"


class AssigneeKind(str, Enum):
    USER = "User"
    VENDOR = "Vendor"


class TemplateStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELED = "canceled"


class FrequencyType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BI_WEEKLY = "bi_weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM_DAYS = "custom_days"


class InviteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    DECLINED = "declined"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ARCHIVE = "ARCHIVE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    REGISTER = "REGISTER"
    USER_APPROVED = "USER_APPROVED"
    USER_DEACTIVATED = "USER_DEACTIVATED"
    USER_ROLE_CHANGED = "USER_ROLE_CHANGED"
    PROPERTY_USER_ASSOCIATION_CREATED = "PROPERTY_USER_ASSOCIATION_CREATED"
    PROPERTY_USER_ASSOCIATION_DEACTIVATED = "PROPERTY_USER_ASSOCIATION_DEACTIVATED"
    LEASE_TERMINATED = "LEASE_TERMINATED"
    LEASE_RENEWED = "LEASE_RENEWED"
    RENT_GENERATED = "RENT_GENERATED"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    RENT_WAIVED = "RENT_WAIVED"
    REQUEST_ASSIGNED = "REQUEST_ASSIGNED"
    REQUEST_STATUS_CHANGED = "REQUEST_STATUS_CHANGED"
    REQUEST_FEEDBACK_SUBMITTED = "REQUEST_FEEDBACK_SUBMITTED"
    PUBLIC_LINK_ENABLED = "PUBLIC_LINK_ENABLED"
    PUBLIC_LINK_DISABLED = "PUBLIC_LINK_DISABLED"
    PUBLIC_UPDATE = "PUBLIC_UPDATE"
    COMMENT_ADDED = "COMMENT_ADDED"
    SCHEDULED_MAINTENANCE_PAUSED = "SCHEDULED_MAINTENANCE_PAUSED"
    SCHEDULED_MAINTENANCE_RESUMED = "SCHEDULED_MAINTENANCE_RESUMED"
    SCHEDULED_MAINTENANCE_GENERATED_REQUEST = "SCHEDULED_MAINTENANCE_GENERATED_REQUEST"
    INVITE_SENT = "INVITE_SENT"
    INVITE_RESENT = "INVITE_RESENT"
    INVITE_ACCEPTED = "INVITE_ACCEPTED"
    INVITE_DECLINED = "INVITE_DECLINED"
    INVITE_REVOKED = "INVITE_REVOKED"
    INVITE_EXPIRED = "INVITE_EXPIRED"
    SIDE_EFFECT_FAILED = "SIDE_EFFECT_FAILED"


class ResourceType(str, Enum):
    USER = "User"
    PROPERTY = "Property"
    UNIT = "Unit"
    REQUEST = "Request"
    SCHEDULED_MAINTENANCE = "ScheduledMaintenance"
    VENDOR = "Vendor"
    INVITE = "Invite"
    COMMENT = "Comment"
    LEASE = "Lease"
    RENT = "Rent"
    RENT_SCHEDULE = "RentSchedule"
    PROPERTY_USER = "PropertyUser"
    NOTIFICATION = "Notification"
    AUDIT_LOG = "AuditLog"
    SYSTEM = "System"


class SideEffectKind(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    NOTIFICATION = "notification"


class SideEffectStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class NotificationType(str, Enum):
    NEW_REQUEST = "new_request"
    STATUS_UPDATE = "status_update"
    ASSIGNMENT = "assignment"
    NEW_COMMENT = "new_comment"
    RENT_DUE = "rent_due"
    PAYMENT_RECEIVED = "payment_received"
    LEASE_EXPIRING = "lease_expiring"
    INVITE = "invite"
    GENERAL = "general"
