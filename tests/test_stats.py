"""Unit tests for admin statistics.

Run with: pytest tests/test_stats.py -v
"""

import json
from datetime import date

import pytest

from errors import InvalidInputError
from stats import compute_admin_stats, is_valid_booking, one_month_before, visitor_count

TODAY = date(2024, 5, 15)


def doc(day="2024-05-15", time="10:00", museum="National Museum", amount=100, **visitors):
    return {
        "date": day,
        "time": time,
        "museum": {"id": museum.lower().replace(" ", "-"), "name": museum},
        "visitors": visitors or {"adult": 1},
        "total_amount": amount,
    }


class TestVisitorCount:
    """Tests for the per-booking visitor sum."""

    def test_sums_all_categories(self):
        assert visitor_count({"visitors": {"adult": 2, "child": 1, "senior": 1, "tourist": 3}}) == 7

    def test_non_numeric_values_count_as_zero(self):
        assert visitor_count({"visitors": {"adult": "3", "child": None, "senior": True, "tourist": 2}}) == 2

    def test_missing_mapping_is_zero(self):
        assert visitor_count({}) == 0


class TestValidity:
    """Tests for the record validity filter."""

    @pytest.mark.parametrize("field", ["date", "visitors", "total_amount"])
    def test_missing_required_field_is_invalid(self, field):
        record = doc()
        del record[field]
        assert is_valid_booking(record) is False

    def test_visitors_must_be_a_mapping(self):
        record = doc()
        record["visitors"] = [1, 2]
        assert is_valid_booking(record) is False

    def test_complete_record_is_valid(self):
        assert is_valid_booking(doc()) is True


class TestTotals:
    """Tests for totals and today's figures."""

    def test_total_revenue_is_independent_of_order(self):
        records = [doc(amount=100), doc(amount=250), doc(day="2024-01-01", amount=75)]
        forward = compute_admin_stats(records, today=TODAY)
        backward = compute_admin_stats(list(reversed(records)), today=TODAY)
        assert forward.total_revenue == 425
        assert backward.total_revenue == forward.total_revenue
        assert forward.total_bookings == 3

    def test_malformed_records_are_excluded(self):
        bad_date = doc()
        del bad_date["date"]
        bad_visitors = doc()
        del bad_visitors["visitors"]
        bad_amount = doc()
        del bad_amount["total_amount"]
        stats = compute_admin_stats([doc(amount=40), bad_date, bad_visitors, bad_amount, "junk"], today=TODAY)
        assert stats.total_bookings == 1
        assert stats.total_revenue == 40
        assert stats.total_visitors == 1

    def test_non_finite_numbers_do_not_break_the_batch(self):
        nan_visitors = doc(amount=10)
        nan_visitors["visitors"] = json.loads('{"adult": NaN, "child": 2}')
        inf_amount = doc(amount=float("inf"))
        stats = compute_admin_stats([doc(amount=40), nan_visitors, inf_amount], today=TODAY)
        assert stats.total_bookings == 2
        assert stats.total_revenue == 50
        assert stats.total_visitors == 3

    def test_unhashable_time_and_museum_name_are_not_ranked(self):
        odd_time = doc(time=["10:00"])
        odd_museum = doc()
        odd_museum["museum"] = {"id": "x", "name": ["x"]}
        stats = compute_admin_stats([doc(), odd_time, odd_museum], today=TODAY)
        assert stats.total_bookings == 3
        assert [(p.time, p.count) for p in stats.peak_times] == [("10:00", 2)]
        assert [(m.name, m.count) for m in stats.popular_museums] == [("National Museum", 2)]

    def test_today_uses_exact_date_match(self):
        records = [doc(amount=100, adult=2), doc(day="2024-05-14", amount=50)]
        stats = compute_admin_stats(records, today=TODAY)
        assert stats.today_bookings == 1
        assert stats.today_revenue == 100
        assert stats.visitor_metrics.daily == 2

    def test_accepts_booking_models(self, make_booking):
        stats = compute_admin_stats([make_booking(adult=3)], today=date(2024, 5, 1))
        assert stats.total_revenue == 600
        assert stats.today_bookings == 1

    @pytest.mark.parametrize("bad_input", [None, 42, "bookings", {"date": "2024-05-15"}])
    def test_non_sequence_input_raises(self, bad_input):
        with pytest.raises(InvalidInputError):
            compute_admin_stats(bad_input, today=TODAY)

    def test_empty_list_gives_zeroes(self):
        stats = compute_admin_stats([], today=TODAY)
        assert stats.total_bookings == 0
        assert stats.peak_times == []
        assert stats.popular_museums == []


class TestVisitorWindows:
    """Tests for daily/weekly/monthly visitor rollups."""

    def test_weekly_window_is_inclusive(self):
        records = [doc(day="2024-05-08", adult=1), doc(day="2024-05-07", adult=10)]
        stats = compute_admin_stats(records, today=TODAY)
        assert stats.visitor_metrics.weekly == 1

    def test_monthly_window_is_one_calendar_month(self):
        records = [doc(day="2024-04-15", adult=2), doc(day="2024-04-14", adult=20), doc(adult=3)]
        stats = compute_admin_stats(records, today=TODAY)
        assert stats.visitor_metrics.monthly == 5

    def test_future_bookings_are_outside_windows(self):
        stats = compute_admin_stats([doc(day="2024-05-16", adult=4)], today=TODAY)
        assert stats.visitor_metrics.weekly == 0
        assert stats.visitor_metrics.monthly == 0

    def test_one_month_before_clamps_to_month_end(self):
        assert one_month_before(date(2024, 3, 31)) == date(2024, 2, 29)
        assert one_month_before(date(2024, 1, 10)) == date(2023, 12, 10)


class TestRankings:
    """Tests for peak times and popular museums."""

    def test_peak_times_top_five_descending(self):
        times = ["09:00"] * 1 + ["10:00"] * 4 + ["11:00"] * 2 + ["12:00"] * 6 + ["13:00"] * 3 + ["14:00"] * 5
        stats = compute_admin_stats([doc(time=t) for t in times], today=TODAY)
        assert [(p.time, p.count) for p in stats.peak_times] == [
            ("12:00", 6), ("14:00", 5), ("10:00", 4), ("13:00", 3), ("11:00", 2),
        ]

    def test_ties_keep_first_seen_order(self):
        records = [doc(time="16:00"), doc(time="10:00"), doc(time="10:00"), doc(time="16:00")]
        stats = compute_admin_stats(records, today=TODAY)
        assert [p.time for p in stats.peak_times] == ["16:00", "10:00"]

    def test_popular_museums_are_ranked_by_booking_count(self):
        names = ["A"] * 2 + ["B"] * 3 + ["C", "D", "E", "F"]
        stats = compute_admin_stats([doc(museum=n) for n in names], today=TODAY)
        assert len(stats.popular_museums) == 5
        assert stats.popular_museums[0].name == "B"
        assert stats.popular_museums[0].count == 3
        counts = [m.count for m in stats.popular_museums]
        assert counts == sorted(counts, reverse=True)

    def test_monthly_trend_groups_by_month(self):
        records = [doc(day="2024-04-02", amount=10), doc(amount=20, adult=2), doc(day="2024-05-01", amount=5)]
        stats = compute_admin_stats(records, today=TODAY)
        assert [(t.month, t.bookings, t.visitors, t.revenue) for t in stats.monthly_trend] == [
            ("2024-04", 1, 1, 10), ("2024-05", 2, 3, 25),
        ]
