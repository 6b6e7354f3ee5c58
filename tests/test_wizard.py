"""Unit tests for the chat booking wizard.

Run with: pytest tests/test_wizard.py -v
"""

import re

import pytest

from errors import InvalidInputError, InvalidTransitionError
from wizard import BookingWizard, Stage, generate_ticket_number


def bot_count(wizard):
    return sum(1 for m in wizard.messages if m.role == "bot")


@pytest.fixture
def wizard(store, catalog):
    return BookingWizard(store, catalog)


def walk_to(wizard, stage, adults=3):
    """Drive the wizard forward to `stage` with the default test choices."""
    steps = [
        (Stage.NAME, lambda: wizard.start()),
        (Stage.MUSEUM, lambda: wizard.submit_name("Asha", email="asha@example.com")),
        (Stage.DATE, lambda: wizard.select_museum("m1")),
        (Stage.TIME, lambda: wizard.select_date("2024-05-01")),
        (Stage.VISITORS, lambda: wizard.select_time("10:00")),
        (Stage.PAYMENT, lambda: (wizard.set_visitors("adult", adults), wizard.confirm_visitors())),
        (Stage.COMPLETE, lambda: wizard.confirm_payment()),
    ]
    order = list(Stage)
    for reached, step in steps:
        if order.index(wizard.stage) >= order.index(stage):
            return
        if order.index(reached) <= order.index(wizard.stage):
            continue
        step()
        assert wizard.stage == reached


class TestHappyPath:
    """Tests for a complete booking conversation."""

    def test_each_transition_emits_one_prompt(self, wizard):
        """Every forward step adds exactly one bot message."""
        order = [Stage.NAME, Stage.MUSEUM, Stage.DATE, Stage.TIME, Stage.VISITORS, Stage.PAYMENT, Stage.COMPLETE]
        for stage in order:
            before = bot_count(wizard)
            walk_to(wizard, stage)
            assert bot_count(wizard) == before + 1

    def test_complete_booking_is_persisted(self, wizard, store):
        walk_to(wizard, Stage.COMPLETE)
        saved = store.list(date="2024-05-01", museum_id="m1")
        assert len(saved) == 1
        booking = saved[0]
        assert booking == wizard.booking
        assert booking.name == "Asha"
        assert booking.email == "asha@example.com"
        assert booking.time == "10:00"
        assert booking.visitors.adult == 3
        assert booking.total_amount == 600
        assert booking.payment_status == "completed"
        assert booking.ticket_number in wizard.messages[-1].text

    def test_time_prompt_carries_slot_availability(self, wizard, store, make_booking):
        store.create(make_booking(adult=10))
        walk_to(wizard, Stage.TIME)
        slots = {s["time"]: s["available"] for s in wizard.messages[-1].data["slots"]}
        assert slots == {"10:00": 90, "14:00": 100}

    def test_payment_prompt_shows_total(self, wizard):
        walk_to(wizard, Stage.PAYMENT, adults=2)
        assert wizard.messages[-1].data["total"] == 400
        assert "₹400" in wizard.messages[-1].text


class TestGuards:
    """Tests for input that re-prompts without advancing."""

    def test_zero_visitors_reprompts(self, wizard):
        walk_to(wizard, Stage.VISITORS)
        before = bot_count(wizard)
        wizard.confirm_visitors()
        assert wizard.stage == Stage.VISITORS
        assert bot_count(wizard) == before + 1
        assert wizard.messages[-1].text == "Please select at least one visitor"

    def test_full_slot_cannot_be_selected(self, wizard, store, make_booking):
        store.create(make_booking(adult=100))
        walk_to(wizard, Stage.TIME)
        wizard.select_time("10:00")
        assert wizard.stage == Stage.TIME
        wizard.select_time("14:00")
        assert wizard.stage == Stage.VISITORS

    def test_unknown_slot_cannot_be_selected(self, wizard):
        walk_to(wizard, Stage.TIME)
        wizard.select_time("23:00")
        assert wizard.stage == Stage.TIME

    def test_blank_name_reprompts(self, wizard):
        wizard.start()
        wizard.submit_name("   ")
        assert wizard.stage == Stage.NAME

    def test_unknown_museum_reprompts(self, wizard):
        walk_to(wizard, Stage.MUSEUM)
        wizard.select_museum("nowhere")
        assert wizard.stage == Stage.MUSEUM

    def test_bad_date_reprompts(self, wizard):
        walk_to(wizard, Stage.DATE)
        wizard.select_date("01/05/2024")
        assert wizard.stage == Stage.DATE

    def test_unknown_category_is_rejected(self, wizard):
        walk_to(wizard, Stage.VISITORS)
        with pytest.raises(InvalidInputError):
            wizard.set_visitors("student", 1)

    def test_negative_count_is_rejected(self, wizard):
        walk_to(wizard, Stage.VISITORS)
        with pytest.raises(InvalidInputError):
            wizard.set_visitors("adult", -1)

    def test_counts_apply_together_or_not_at_all(self, wizard):
        walk_to(wizard, Stage.VISITORS)
        wizard.set_visitor_counts({"adult": 2, "child": 1})
        with pytest.raises(InvalidInputError):
            wizard.set_visitor_counts({"adult": 5, "student": 1})
        with pytest.raises(InvalidInputError):
            wizard.set_visitor_counts({"senior": 4, "child": -1})
        assert wizard.visitors.model_dump() == {"adult": 2, "child": 1, "senior": 0, "tourist": 0}


class TestTransitions:
    """Tests for forward-only ordering."""

    def test_actions_out_of_order_raise(self, wizard):
        with pytest.raises(InvalidTransitionError):
            wizard.select_museum("m1")

    def test_no_backward_transitions(self, wizard):
        walk_to(wizard, Stage.TIME)
        with pytest.raises(InvalidTransitionError):
            wizard.select_museum("m1")

    def test_nothing_after_complete(self, wizard):
        walk_to(wizard, Stage.COMPLETE)
        with pytest.raises(InvalidTransitionError):
            wizard.confirm_payment()

    def test_free_text_starts_and_names(self, wizard):
        wizard.handle_text("hi")
        assert wizard.stage == Stage.NAME
        wizard.handle_text("Ravi")
        assert wizard.stage == Stage.MUSEUM
        assert wizard.user_name == "Ravi"
        wizard.handle_text("what now?")
        assert wizard.stage == Stage.MUSEUM


class TestPaymentFailures:
    """Tests for persistence failures during payment."""

    def test_write_failure_stays_at_payment(self, wizard, backend, store):
        walk_to(wizard, Stage.PAYMENT)
        backend.fail_writes = True
        wizard.confirm_payment()
        assert wizard.stage == Stage.PAYMENT
        assert wizard.error
        assert wizard.messages[-1].data.get("retry") is True
        assert store.list() == []

    def test_retry_after_recovery_completes(self, wizard, backend):
        walk_to(wizard, Stage.PAYMENT)
        backend.fail_writes = True
        wizard.confirm_payment()
        backend.fail_writes = False
        wizard.confirm_payment()
        assert wizard.stage == Stage.COMPLETE
        assert wizard.error is None

    def test_availability_failure_stays_at_date(self, wizard, backend):
        walk_to(wizard, Stage.DATE)
        backend.fail_reads = True
        wizard.select_date("2024-05-01")
        assert wizard.stage == Stage.DATE
        assert wizard.error

    def test_capacity_recheck_blocks_overbooking(self, store, catalog, make_booking):
        wizard = BookingWizard(store, catalog, recheck_capacity=True)
        walk_to(wizard, Stage.PAYMENT, adults=5)
        store.create(make_booking(adult=97))
        wizard.confirm_payment()
        assert wizard.stage == Stage.PAYMENT
        assert len(store.list()) == 1
        assert wizard.error == "Time slot 10:00 is not available"

    def test_without_recheck_the_slot_can_overbook(self, wizard, store, make_booking):
        walk_to(wizard, Stage.PAYMENT, adults=5)
        store.create(make_booking(adult=97))
        wizard.confirm_payment()
        assert wizard.stage == Stage.COMPLETE


class TestSubscription:
    """Tests for presentation listeners."""

    def test_listener_sees_every_message(self, wizard):
        seen = []
        wizard.subscribe(lambda w, message: seen.append((w.stage, message.role)))
        wizard.start()
        wizard.submit_name("Asha")
        assert seen == [(Stage.NAME, "bot"), (Stage.NAME, "user"), (Stage.MUSEUM, "bot")]

    def test_unsubscribe_stops_delivery(self, wizard):
        seen = []
        unsubscribe = wizard.subscribe(lambda w, message: seen.append(message))
        unsubscribe()
        wizard.start()
        assert seen == []


def test_ticket_numbers_look_like_tickets():
    numbers = {generate_ticket_number() for _ in range(50)}
    assert all(re.fullmatch(r"TKT\d{16}", n) for n in numbers)
    assert len(numbers) > 1
