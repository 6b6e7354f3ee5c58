"""Pytest configuration and shared fixtures."""

import pytest
from fastapi.testclient import TestClient

from errors import BackendUnavailableError
from main import create_app
from museums import seed_museums
from schemas import Booking, Museum, Pricing, VisitorCounts
from session import MemoryKeyValueStore, SessionContext
from storage import BookingStore, LocalBookingBackend, LocalMuseumBackend, MuseumCatalog


class FlakyBackend(LocalBookingBackend):
    """Local backend that can be told to fail reads or writes."""

    def __init__(self, store):
        super().__init__(store)
        self.fail_reads = False
        self.fail_writes = False

    def _load(self):
        if self.fail_reads:
            raise BackendUnavailableError("load")
        return super()._load()

    def _save(self, docs):
        if self.fail_writes:
            raise BackendUnavailableError("save")
        super()._save(docs)


@pytest.fixture
def museum() -> Museum:
    return Museum(
        id="m1",
        name="Test Museum",
        location="Somewhere",
        state="Delhi",
        time_slots=["10:00", "14:00"],
        pricing=Pricing(adult=200, child=0, senior=0, tourist=0),
        capacity=100,
    )


@pytest.fixture
def session() -> SessionContext:
    return SessionContext(MemoryKeyValueStore())


@pytest.fixture
def backend(session) -> FlakyBackend:
    return FlakyBackend(session.store)


@pytest.fixture
def store(backend, session) -> BookingStore:
    return BookingStore(backend, session)


@pytest.fixture
def catalog(museum, session) -> MuseumCatalog:
    return MuseumCatalog(LocalMuseumBackend([museum] + seed_museums()), session)


@pytest.fixture
def make_booking(museum):
    def _make(date="2024-05-01", time="10:00", adult=1, child=0, senior=0, tourist=0,
              name="Asha", email=None, ticket_number="TKT1", status="completed", target=None):
        target = target or museum
        visitors = VisitorCounts(adult=adult, child=child, senior=senior, tourist=tourist)
        return Booking(
            ticket_number=ticket_number,
            name=name,
            email=email,
            museum=target.snapshot(),
            date=date,
            time=time,
            visitors=visitors,
            total_amount=target.price_for(visitors),
            payment_status=status,
        )
    return _make


@pytest.fixture
def app(backend, museum, session):
    return create_app(
        booking_backend=backend,
        museum_backend=LocalMuseumBackend([museum] + seed_museums()),
        session=session,
    )


@pytest.fixture
def api_client(app) -> TestClient:
    with TestClient(app) as client:
        yield client


@pytest.fixture
def admin_client(api_client) -> TestClient:
    api_client.post("/api/admin/login")
    return api_client
