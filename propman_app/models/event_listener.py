from sqlalchemy import event

from .enums import PaymentStatus, PropertyRole
from .models import Lease, PropertyUser, RentRecord, RentSchedule, User


@event.listens_for(User, "before_insert")
@event.listens_for(User, "before_update")
def normalize_user(mapper, connection, target: User):
    target.normalize()


@event.listens_for(PropertyUser, "before_insert")
@event.listens_for(PropertyUser, "before_update")
def sync_unit_key(mapper, connection, target: PropertyUser):
    if PropertyRole.TENANT.value in (target.roles or []) and not target.unit_id:
        raise ValueError("A tenant association requires a unit.")
    target.unit_key = str(target.unit_id) if target.unit_id else ""


@event.listens_for(Lease, "before_insert")
@event.listens_for(Lease, "before_update")
def check_lease_dates(mapper, connection, target: Lease):
    if target.end_date <= target.start_date:
        raise ValueError("Lease end date must be after start date.")
    if target.currency:
        target.currency = target.currency.upper()


@event.listens_for(RentSchedule, "before_insert")
@event.listens_for(RentSchedule, "before_update")
def check_schedule_window(mapper, connection, target: RentSchedule):
    if (
        target.effective_end_date is not None
        and target.effective_end_date < target.effective_start_date
    ):
        raise ValueError("Effective end date cannot precede the start date.")
    if target.currency:
        target.currency = target.currency.upper()


@event.listens_for(RentRecord, "before_insert")
@event.listens_for(RentRecord, "before_update")
def check_payment_consistency(mapper, connection, target: RentRecord):
    paid = target.amount_paid or 0
    if target.status == PaymentStatus.PAID and paid < target.amount_due:
        raise ValueError("A paid rent record must be paid in full.")
    if target.status == PaymentStatus.PARTIALLY_PAID and not (
        0 < paid < target.amount_due
    ):
        raise ValueError("A partially paid record must carry a partial amount.")
