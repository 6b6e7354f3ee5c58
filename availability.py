"""Remaining capacity per time slot for one museum on one date."""

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Union

from schemas import Booking, Museum, TimeSlot
from stats import visitor_count

logger = logging.getLogger(__name__)


def calculate_time_slots(museum: Museum, bookings: Iterable[Union[Booking, Dict[str, Any]]]) -> List[TimeSlot]:
    """Build the slot list for a museum from bookings already filtered to one date.

    Every configured slot is returned, in configured order. Bookings for slot
    labels the museum does not define are ignored. `available` is the true
    remainder and goes negative when a slot is overbooked.
    """
    booked: Dict[str, int] = defaultdict(int)
    for booking in bookings:
        doc = booking.model_dump() if isinstance(booking, Booking) else booking
        time = doc.get("time")
        if time and isinstance(time, str):
            booked[time] += visitor_count(doc)

    capacity = museum.capacity
    slots = []
    for time in museum.time_slots:
        available = capacity - booked.get(time, 0)
        slots.append(TimeSlot(time=time, available=available, total=capacity, is_available=available > 0))
    return slots


def get_available_time_slots(store, date: str, museum: Museum) -> List[TimeSlot]:
    """Query the store for the museum's bookings on `date` and compute slot availability."""
    docs = store.list_documents(date=date, museum_id=museum.id)
    slots = calculate_time_slots(museum, docs)
    logger.debug("Availability for %s on %s: %s", museum.id, date,
                 {s.time: s.available for s in slots})
    return slots


def find_slot(slots: List[TimeSlot], time: str) -> Optional[TimeSlot]:
    for slot in slots:
        if slot.time == time:
            return slot
    return None
