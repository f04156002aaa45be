"""Date arithmetic for recurring obligations.

``next_occurrence`` drives scheduled-maintenance templates and
``billing_periods`` drives rent schedules. Both are pure: callers own the
persistence and the "emit exactly once" bookkeeping.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional

from dateutil.relativedelta import relativedelta

from models.enums import (
    BILLING_PERIOD_DAYS,
    BILLING_PERIOD_MONTHS,
    BillingPeriod,
    FrequencyType,
)

from .date_helper import clamp_day, day_key, month_key, sunday_based_weekday


@dataclass(frozen=True)
class Frequency:
    type: FrequencyType
    interval: int = 1
    day_of_week: List[int] = field(default_factory=list)
    day_of_month: Optional[int] = None
    month_of_year: Optional[int] = None
    custom_days: List[int] = field(default_factory=list)
    end_date: Optional[date] = None
    occurrences: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict | None) -> Optional["Frequency"]:
        if not data or not data.get("type"):
            return None
        end_date = data.get("endDate")
        if isinstance(end_date, str):
            end_date = date.fromisoformat(end_date[:10])
        elif isinstance(end_date, datetime):
            end_date = end_date.date()
        return cls(
            type=FrequencyType(data["type"]),
            interval=int(data.get("interval") or 1),
            day_of_week=list(data.get("dayOfWeek") or []),
            day_of_month=data.get("dayOfMonth"),
            month_of_year=data.get("monthOfYear"),
            custom_days=list(data.get("customDays") or []),
            end_date=end_date,
            occurrences=data.get("occurrences"),
        )


def _with_day(value: datetime, year: int, month: int, day: int) -> datetime:
    clamped = clamp_day(year, month, day)
    return value.replace(year=clamped.year, month=clamped.month, day=clamped.day)


def _add_months(base: datetime, months: int, day_of_month: Optional[int]) -> datetime:
    shifted = base + relativedelta(months=months)
    if day_of_month:
        return _with_day(shifted, shifted.year, shifted.month, day_of_month)
    return shifted


def _next_weekly(base: datetime, freq: Frequency) -> Optional[datetime]:
    candidate = base + timedelta(days=7 * freq.interval)
    if not freq.day_of_week:
        return candidate
    wanted = set(freq.day_of_week)
    for offset in range(7):
        snapped = candidate + timedelta(days=offset)
        if sunday_based_weekday(snapped.date()) in wanted:
            return snapped
    return None


def next_occurrence(base: datetime, freq: Frequency) -> Optional[datetime]:
    """Fire time following ``base``, or None once the recurrence has ended.

    The occurrence cap is not checked here; the caller counts emissions.
    """
    interval = max(freq.interval, 1)

    if freq.type == FrequencyType.DAILY:
        candidate = base + timedelta(days=interval)
    elif freq.type == FrequencyType.WEEKLY:
        candidate = _next_weekly(base, freq)
    elif freq.type == FrequencyType.BI_WEEKLY:
        candidate = base + timedelta(days=14 * interval)
    elif freq.type == FrequencyType.MONTHLY:
        candidate = _add_months(base, interval, freq.day_of_month)
    elif freq.type == FrequencyType.QUARTERLY:
        candidate = _add_months(base, 3 * interval, freq.day_of_month)
    elif freq.type == FrequencyType.YEARLY:
        year = base.year + interval
        month = freq.month_of_year or base.month
        day = freq.day_of_month or base.day
        candidate = _with_day(base, year, month, day)
    elif freq.type == FrequencyType.CUSTOM_DAYS:
        if not freq.custom_days:
            return None
        candidate = base + timedelta(days=freq.custom_days[0])
    else:
        return None

    if candidate is None:
        return None
    if freq.end_date and candidate.date() > freq.end_date:
        return None
    return candidate


@dataclass(frozen=True)
class BillingSlot:
    key: str
    period_start: date
    due_date: date


def billing_periods(
    *,
    billing_period: BillingPeriod,
    due_date_day: int,
    effective_start: date,
    effective_end: Optional[date],
    lease_end: Optional[date],
    until: date,
) -> Iterator[BillingSlot]:
    """Billing slots whose due date falls on or before ``until``.

    Month-based periods are keyed ``YYYY-MM`` by the month they start in and
    fall due on ``due_date_day`` clamped to month end (never before
    ``effective_start``). Week-based periods are keyed by their due date.
    """
    months = BILLING_PERIOD_MONTHS.get(billing_period)
    days = BILLING_PERIOD_DAYS.get(billing_period)
    step = 0

    while True:
        if months:
            anchor = date(effective_start.year, effective_start.month, 1)
            month_start = anchor + relativedelta(months=step * months)
            period_start = max(month_start, effective_start)
            due = clamp_day(month_start.year, month_start.month, due_date_day)
            if due < effective_start:
                due = effective_start
            key = month_key(month_start)
        else:
            period_start = effective_start + timedelta(days=step * days)
            due = period_start
            key = day_key(due)

        if effective_end is not None and period_start > effective_end:
            return
        if lease_end is not None and period_start >= lease_end:
            return
        if due > until:
            return

        yield BillingSlot(key=key, period_start=period_start, due_date=due)
        step += 1
