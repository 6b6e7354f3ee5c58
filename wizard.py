"""Chat-style booking wizard.

A forward-only state machine:

    initial -> name -> museum -> date -> time -> visitors -> payment -> complete

Each action that moves the wizard forward appends exactly one bot prompt for
the new stage. Input the current stage cannot accept (empty name, full slot,
zero visitors, a failed write) re-prompts and leaves the stage unchanged.
Calling an action out of order raises InvalidTransitionError.

Presentation code subscribes with `subscribe()` and renders each message.
"""

import logging
import secrets
import time as _time
from dataclasses import dataclass, field
from datetime import date as _date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from availability import find_slot, get_available_time_slots
from errors import (
    BackendUnavailableError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    SlotUnavailableError,
)
from schemas import VISITOR_CATEGORIES, Booking, Museum, TimeSlot, VisitorCounts

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    INITIAL = "initial"
    NAME = "name"
    MUSEUM = "museum"
    DATE = "date"
    TIME = "time"
    VISITORS = "visitors"
    PAYMENT = "payment"
    COMPLETE = "complete"


@dataclass
class ChatMessage:
    role: str  # "bot" | "user"
    text: str
    component: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[["BookingWizard", ChatMessage], None]


def generate_ticket_number() -> str:
    """Millisecond timestamp plus a random suffix, e.g. TKT1714550400000482."""
    return f"TKT{int(_time.time() * 1000)}{secrets.randbelow(1000):03d}"


class BookingWizard:
    def __init__(self, store, catalog, recheck_capacity: bool = False) -> None:
        self.store = store
        self.catalog = catalog
        self.recheck_capacity = recheck_capacity

        self.stage = Stage.INITIAL
        self.messages: List[ChatMessage] = []
        self.user_name = ""
        self.email: Optional[str] = None
        self.museum: Optional[Museum] = None
        self.date: Optional[str] = None
        self.time: Optional[str] = None
        self.slots: List[TimeSlot] = []
        self.visitors = VisitorCounts()
        self.booking: Optional[Booking] = None
        self.error: Optional[str] = None
        self._listeners: List[Listener] = []

    # ---- presentation hooks ----

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _post(self, role: str, text: str, component: Optional[str] = None, **data: Any) -> ChatMessage:
        message = ChatMessage(role=role, text=text, component=component, data=data)
        self.messages.append(message)
        for listener in list(self._listeners):
            listener(self, message)
        return message

    def _prompt(self, text: str, component: Optional[str] = None, **data: Any) -> ChatMessage:
        return self._post("bot", text, component, **data)

    def _advance(self, stage: Stage) -> None:
        logger.debug("Wizard %s -> %s", self.stage.value, stage.value)
        self.stage = stage
        self.error = None

    def _expect(self, action: str, stage: Stage) -> None:
        if self.stage != stage:
            raise InvalidTransitionError(action, self.stage.value)

    # ---- actions ----

    def start(self) -> ChatMessage:
        self._expect("start", Stage.INITIAL)
        self._advance(Stage.NAME)
        return self._prompt(
            "Hello! Welcome to the Museum Ticket Booking Assistant. What name should the booking be under?",
            "initial",
        )

    def submit_name(self, name: str, email: Optional[str] = None) -> ChatMessage:
        self._expect("submit a name", Stage.NAME)
        name = (name or "").strip()
        self._post("user", name)
        if not name:
            return self._prompt("Please tell me your name to continue.", "initial")
        self.user_name = name
        self.email = email or None
        museums = self.catalog.list()
        self._advance(Stage.MUSEUM)
        return self._prompt(
            f"Nice to meet you, {name}! Please select a museum to visit:",
            "museumSelection",
            museums=[m.model_dump() for m in museums],
        )

    def select_museum(self, museum_id: str) -> ChatMessage:
        self._expect("select a museum", Stage.MUSEUM)
        try:
            museum = self.catalog.get(museum_id)
        except NotFoundError:
            return self._prompt("I couldn't find that museum. Please select one from the list:",
                                "museumSelection")
        self._post("user", museum.name)
        self.museum = museum
        self._advance(Stage.DATE)
        return self._prompt("For which date would you like to book your visit?", "dateSelection")

    def select_date(self, visit_date: str) -> ChatMessage:
        self._expect("select a date", Stage.DATE)
        try:
            visit_date = _date.fromisoformat(visit_date).isoformat()
        except (TypeError, ValueError):
            return self._prompt("Please pick a date in YYYY-MM-DD format.", "dateSelection")
        self._post("user", visit_date)
        try:
            slots = get_available_time_slots(self.store, visit_date, self.museum)
        except BackendUnavailableError as exc:
            self.error = exc.message
            return self._prompt("Sorry, I couldn't check availability right now. Please try again.",
                                "dateSelection")
        self.date = visit_date
        self.slots = slots
        self._advance(Stage.TIME)
        return self._prompt("Please select your preferred time:", "timeSelection",
                            slots=[s.model_dump() for s in slots])

    def select_time(self, time: str) -> ChatMessage:
        self._expect("select a time", Stage.TIME)
        slot = find_slot(self.slots, time)
        if slot is None or not slot.is_available:
            return self._prompt(f"The {time} slot is not available. Please choose another time:",
                                "timeSelection", slots=[s.model_dump() for s in self.slots])
        self._post("user", time)
        self.time = time
        self._advance(Stage.VISITORS)
        return self._prompt("Select number of visitors:", "visitorSelection",
                            pricing=self.museum.pricing.model_dump())

    def set_visitors(self, category: str, count: int) -> VisitorCounts:
        """Adjust one category count. Does not change the stage."""
        self._expect("change visitors", Stage.VISITORS)
        if category not in VISITOR_CATEGORIES:
            raise InvalidInputError(f"Unknown visitor category: {category}")
        if count < 0:
            raise InvalidInputError("Visitor count cannot be negative")
        self.visitors = self.visitors.model_copy(update={category: count})
        return self.visitors

    def set_visitor_counts(self, counts: Dict[str, int]) -> VisitorCounts:
        """Apply several category counts at once; nothing changes if any is invalid."""
        self._expect("change visitors", Stage.VISITORS)
        for category, count in counts.items():
            if category not in VISITOR_CATEGORIES:
                raise InvalidInputError(f"Unknown visitor category: {category}")
            if count < 0:
                raise InvalidInputError("Visitor count cannot be negative")
        self.visitors = self.visitors.model_copy(update=dict(counts))
        return self.visitors

    def total_amount(self) -> int:
        if self.museum is None:
            return 0
        return self.museum.price_for(self.visitors)

    def confirm_visitors(self) -> ChatMessage:
        self._expect("confirm visitors", Stage.VISITORS)
        if self.visitors.total() <= 0:
            return self._prompt("Please select at least one visitor", "visitorSelection")
        total = self.total_amount()
        self._post("user", f"{self.visitors.total()} visitor(s)")
        self._advance(Stage.PAYMENT)
        return self._prompt(f"Total amount: ₹{total}", "payment", total=total,
                            visitors=self.visitors.model_dump())

    def confirm_payment(self) -> ChatMessage:
        self._expect("confirm payment", Stage.PAYMENT)
        if self.recheck_capacity:
            try:
                fresh = find_slot(get_available_time_slots(self.store, self.date, self.museum), self.time)
            except BackendUnavailableError as exc:
                return self._payment_failed(exc.message)
            if fresh is None or fresh.available < self.visitors.total():
                self.error = SlotUnavailableError(self.time).message
                return self._prompt(
                    "Sorry, this time slot has just filled up. Please start a new booking.", "payment")

        booking = Booking(
            ticket_number=generate_ticket_number(),
            name=self.user_name,
            email=self.email,
            museum=self.museum.snapshot(),
            date=self.date,
            time=self.time,
            visitors=self.visitors,
            total_amount=self.total_amount(),
            payment_status="completed",
            created_at=datetime.now(timezone.utc),
        )
        try:
            self.booking = self.store.create(booking)
        except BackendUnavailableError as exc:
            return self._payment_failed(exc.message)
        self._advance(Stage.COMPLETE)
        return self._prompt(
            f"Payment successful! Your booking is confirmed. Ticket number: {self.booking.ticket_number}",
            "bookingConfirmation",
            booking=self.booking.model_dump(mode="json"),
        )

    def _payment_failed(self, reason: str) -> ChatMessage:
        logger.warning("Booking for %s not saved: %s", self.user_name, reason)
        self.error = reason
        return self._prompt("Sorry, there was an error processing your booking. Please try again.",
                            "payment", retry=True)

    def handle_text(self, text: str) -> ChatMessage:
        """Free-text input from the chat box."""
        if self.stage == Stage.INITIAL:
            return self.start()
        if self.stage == Stage.NAME:
            return self.submit_name(text)
        self._post("user", text)
        return self._prompt("I'm not sure how to help with that. Please use the options above.")
