"""Admin dashboard statistics derived from the booking collection.

Nothing here is cached: every call recomputes from the documents it is given.
Malformed documents are skipped rather than failing the whole batch.
"""

import calendar
import logging
import math
from collections import Counter
from collections.abc import Sequence
from datetime import date, timedelta
from numbers import Number
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from errors import InvalidInputError
from schemas import AdminStats, MonthlyTrend, PeakTime, PopularMuseum, VisitorMetrics

logger = logging.getLogger(__name__)

TOP_N = 5


def _is_number(value: Any) -> bool:
    if not isinstance(value, Number) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except TypeError:
        return False


def _is_label(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def visitor_count(booking: Dict[str, Any]) -> int:
    """Sum of all category counts; non-numeric entries count as zero."""
    visitors = booking.get("visitors")
    if not isinstance(visitors, dict):
        return 0
    return sum(int(v) for v in visitors.values() if _is_number(v))


def is_valid_booking(booking: Any) -> bool:
    return (
        isinstance(booking, dict)
        and bool(booking.get("date"))
        and isinstance(booking.get("visitors"), dict)
        and _is_number(booking.get("total_amount"))
    )


def _parse_date(value: Any) -> Optional[date]:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def one_month_before(day: date) -> date:
    """Same day of the previous month, clamped to that month's last day."""
    year, month = (day.year - 1, 12) if day.month == 1 else (day.year, day.month - 1)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def top_counts(values: List[str], limit: int = TOP_N) -> List[Tuple[str, int]]:
    """Most frequent values, highest first; ties keep first-seen order."""
    counts = Counter(values)
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]


def _as_documents(bookings: Any) -> List[Any]:
    if isinstance(bookings, (str, bytes, dict)) or not isinstance(bookings, Sequence):
        raise InvalidInputError("Booking list must be a sequence of booking records")
    return [b.model_dump() if isinstance(b, BaseModel) else b for b in bookings]


def compute_admin_stats(bookings: Any, today: Optional[date] = None) -> AdminStats:
    """Aggregate totals, visitor windows, peak slots and popular museums."""
    docs = _as_documents(bookings)
    valid = [b for b in docs if is_valid_booking(b)]
    if len(valid) != len(docs):
        logger.debug("Skipped %d malformed booking records", len(docs) - len(valid))

    today = today or date.today()
    today_str = today.isoformat()
    week_start = today - timedelta(days=7)
    month_start = one_month_before(today)

    todays = [b for b in valid if b["date"] == today_str]
    daily = weekly = monthly = 0
    trend: Dict[str, Dict[str, float]] = {}
    for b in valid:
        visitors = visitor_count(b)
        if b["date"] == today_str:
            daily += visitors
        day = _parse_date(b["date"])
        if day is None:
            continue
        if week_start <= day <= today:
            weekly += visitors
        if month_start <= day <= today:
            monthly += visitors
        bucket = trend.setdefault(day.strftime("%Y-%m"), {"bookings": 0, "visitors": 0, "revenue": 0})
        bucket["bookings"] += 1
        bucket["visitors"] += visitors
        bucket["revenue"] += b["total_amount"]

    peak_times = top_counts([b["time"] for b in valid if _is_label(b.get("time"))])
    museum_names = [
        b["museum"]["name"] for b in valid
        if isinstance(b.get("museum"), dict) and _is_label(b["museum"].get("name"))
    ]
    popular = top_counts(museum_names)

    return AdminStats(
        total_bookings=len(valid),
        total_visitors=sum(visitor_count(b) for b in valid),
        total_revenue=sum(b["total_amount"] for b in valid),
        today_bookings=len(todays),
        today_revenue=sum(b["total_amount"] for b in todays),
        visitor_metrics=VisitorMetrics(daily=daily, weekly=weekly, monthly=monthly),
        peak_times=[PeakTime(time=t, count=c) for t, c in peak_times],
        popular_museums=[PopularMuseum(name=n, count=c) for n, c in popular],
        monthly_trend=[
            MonthlyTrend(month=m, bookings=v["bookings"], visitors=v["visitors"], revenue=v["revenue"])
            for m, v in sorted(trend.items())
        ],
    )


def get_booking_stats(store, today: Optional[date] = None) -> AdminStats:
    return compute_admin_stats(store.list_documents(), today=today)
