"""Admin booking search and CSV export."""

import csv
import io
from datetime import date
from typing import Iterable, List, Optional

from errors import InvalidInputError
from schemas import Booking

CSV_HEADER = ["Ticket Number", "Name", "Email", "Museum", "Date", "Time", "Amount", "Status"]
STATUS_FILTERS = ("all", "completed", "pending")


def filter_bookings(bookings: Iterable[Booking], search: str = "", status: str = "all") -> List[Booking]:
    """Case-insensitive match on name, email or ticket number, plus a payment status filter."""
    if status not in STATUS_FILTERS:
        raise InvalidInputError(f"Unknown status filter: {status}")
    term = search.strip().lower()
    matched = []
    for booking in bookings:
        haystack = (booking.name or "", booking.email or "", booking.ticket_number or "")
        if term and not any(term in field.lower() for field in haystack):
            continue
        if status != "all" and booking.payment_status != status:
            continue
        matched.append(booking)
    return matched


def _row(booking: Booking) -> List[str]:
    return [
        booking.ticket_number or "",
        booking.name or "",
        booking.email or "",
        booking.museum.name if booking.museum else "",
        booking.date or "",
        booking.time or "",
        str(booking.total_amount) if booking.total_amount is not None else "",
        booking.payment_status or "",
    ]


def bookings_to_csv(bookings: Iterable[Booking]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for booking in bookings:
        writer.writerow(_row(booking))
    return buf.getvalue()


def export_filename(today: Optional[date] = None) -> str:
    return f"bookings-{(today or date.today()).isoformat()}.csv"
