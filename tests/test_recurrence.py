"""Date arithmetic behind scheduled maintenance and rent schedules."""

from datetime import date, datetime

from core.recurrence import Frequency, billing_periods, next_occurrence
from models.enums import BillingPeriod, FrequencyType


def monthly(day=None, **kw):
    return Frequency(type=FrequencyType.MONTHLY, day_of_month=day, **kw)


class TestNextOccurrence:
    def test_daily_interval(self):
        freq = Frequency(type=FrequencyType.DAILY, interval=3)
        assert next_occurrence(datetime(2025, 1, 30, 9), freq) == datetime(2025, 2, 2, 9)

    def test_weekly_snaps_to_requested_weekday(self):
        # dayOfWeek is Sunday-based: 1 is Monday
        freq = Frequency(type=FrequencyType.WEEKLY, day_of_week=[1])
        assert next_occurrence(datetime(2025, 7, 7), freq) == datetime(2025, 7, 14)

    def test_weekly_from_off_day_lands_on_weekday(self):
        freq = Frequency(type=FrequencyType.WEEKLY, day_of_week=[1])
        # Wednesday + 7 days is a Wednesday; next Monday after that
        assert next_occurrence(datetime(2025, 7, 9), freq) == datetime(2025, 7, 21)

    def test_bi_weekly(self):
        freq = Frequency(type=FrequencyType.BI_WEEKLY)
        assert next_occurrence(datetime(2025, 7, 7), freq) == datetime(2025, 7, 21)

    def test_monthly_day_31_clamps_to_short_month(self):
        freq = monthly(31)
        assert next_occurrence(datetime(2025, 3, 31), freq) == datetime(2025, 4, 30)
        assert next_occurrence(datetime(2025, 1, 31), freq) == datetime(2025, 2, 28)
        assert next_occurrence(datetime(2024, 1, 31), freq) == datetime(2024, 2, 29)

    def test_monthly_day_31_recovers_after_short_month(self):
        freq = monthly(31)
        assert next_occurrence(datetime(2025, 2, 28), freq) == datetime(2025, 3, 31)

    def test_quarterly(self):
        freq = Frequency(type=FrequencyType.QUARTERLY, day_of_month=15)
        assert next_occurrence(datetime(2025, 11, 15), freq) == datetime(2026, 2, 15)

    def test_yearly_leap_day_falls_back_to_feb_28(self):
        freq = Frequency(type=FrequencyType.YEARLY)
        assert next_occurrence(datetime(2024, 2, 29, 8), freq) == datetime(2025, 2, 28, 8)

    def test_yearly_month_of_year(self):
        freq = Frequency(type=FrequencyType.YEARLY, month_of_year=6, day_of_month=1)
        assert next_occurrence(datetime(2025, 1, 10), freq) == datetime(2026, 6, 1)

    def test_custom_days(self):
        freq = Frequency(type=FrequencyType.CUSTOM_DAYS, custom_days=[10])
        assert next_occurrence(datetime(2025, 1, 1), freq) == datetime(2025, 1, 11)

    def test_custom_days_without_values_ends(self):
        freq = Frequency(type=FrequencyType.CUSTOM_DAYS)
        assert next_occurrence(datetime(2025, 1, 1), freq) is None

    def test_end_date_stops_recurrence(self):
        freq = Frequency(type=FrequencyType.DAILY, end_date=date(2025, 1, 31))
        assert next_occurrence(datetime(2025, 1, 30), freq) == datetime(2025, 1, 31)
        assert next_occurrence(datetime(2025, 1, 31), freq) is None


class TestFrequencyFromDict:
    def test_reads_camel_case_storage(self):
        freq = Frequency.from_dict(
            {
                "type": "weekly",
                "interval": 2,
                "dayOfWeek": [1, 3],
                "endDate": "2025-12-31",
            }
        )
        assert freq.type == FrequencyType.WEEKLY
        assert freq.interval == 2
        assert freq.day_of_week == [1, 3]
        assert freq.end_date == date(2025, 12, 31)

    def test_missing_type_is_none(self):
        assert Frequency.from_dict({}) is None
        assert Frequency.from_dict(None) is None


class TestBillingPeriods:
    def slots(self, **overrides):
        args = dict(
            billing_period=BillingPeriod.MONTHLY,
            due_date_day=5,
            effective_start=date(2025, 1, 1),
            effective_end=None,
            lease_end=date(2026, 1, 1),
            until=date(2025, 3, 10),
        )
        args.update(overrides)
        return list(billing_periods(**args))

    def test_monthly_slots_up_to_today(self):
        slots = self.slots()
        assert [s.key for s in slots] == ["2025-01", "2025-02", "2025-03"]
        assert [s.due_date for s in slots] == [
            date(2025, 1, 5),
            date(2025, 2, 5),
            date(2025, 3, 5),
        ]

    def test_due_day_clamped_to_month_end(self):
        slots = self.slots(due_date_day=31, until=date(2025, 3, 1))
        assert [s.due_date for s in slots] == [date(2025, 1, 31), date(2025, 2, 28)]

    def test_first_due_date_never_precedes_start(self):
        slots = self.slots(effective_start=date(2025, 1, 20), until=date(2025, 1, 31))
        assert len(slots) == 1
        assert slots[0].key == "2025-01"
        assert slots[0].due_date == date(2025, 1, 20)

    def test_stops_at_lease_end(self):
        slots = self.slots(lease_end=date(2025, 2, 1), until=date(2025, 6, 1))
        assert [s.key for s in slots] == ["2025-01"]

    def test_stops_at_effective_end(self):
        slots = self.slots(effective_end=date(2025, 2, 15), until=date(2025, 6, 1))
        assert [s.key for s in slots] == ["2025-01", "2025-02"]

    def test_quarterly(self):
        slots = self.slots(billing_period=BillingPeriod.QUARTERLY, until=date(2025, 12, 31))
        assert [s.key for s in slots] == ["2025-01", "2025-04", "2025-07", "2025-10"]

    def test_weekly_keyed_by_date(self):
        slots = self.slots(
            billing_period=BillingPeriod.WEEKLY,
            effective_start=date(2025, 1, 6),
            until=date(2025, 1, 20),
        )
        assert [s.key for s in slots] == ["2025-01-06", "2025-01-13", "2025-01-20"]

    def test_nothing_before_first_due_date(self):
        assert self.slots(until=date(2025, 1, 4)) == []
