import logging
import os
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import date
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, EmailStr, Field, ValidationError
from starlette.concurrency import run_in_threadpool

import database
from availability import find_slot, get_available_time_slots
from errors import DomainError, ErrorCode, InvalidInputError, NotFoundError, SlotUnavailableError
from export import bookings_to_csv, export_filename, filter_bookings
from museums import seed_museums
from schemas import AdminStats, Booking, BookingUpdate, Museum, MuseumUpdate, TimeSlot, VisitorCounts
from session import FileKeyValueStore, MemoryKeyValueStore, SessionContext
from stats import get_booking_stats
from storage import (
    BookingBackend,
    BookingStore,
    LocalBookingBackend,
    LocalMuseumBackend,
    MongoBookingBackend,
    MongoMuseumBackend,
    MuseumBackend,
    MuseumCatalog,
)
from wizard import BookingWizard, Stage, generate_ticket_number

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_CODES = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.INVALID_TRANSITION: 400,
    ErrorCode.SLOT_UNAVAILABLE: 409,
    ErrorCode.NOT_AUTHENTICATED: 401,
    ErrorCode.BACKEND_UNAVAILABLE: 503,
}

DEGRADED_HEADER = "X-Degraded-Mode"

# Abandoned chats beyond this many are dropped, oldest first.
MAX_OPEN_CHATS = 1000


def default_backend_name() -> str:
    configured = os.getenv("STORAGE_BACKEND")
    if configured:
        return configured.lower()
    return "mongo" if database.db is not None else "local"


def create_app(
    booking_backend: Optional[BookingBackend] = None,
    museum_backend: Optional[MuseumBackend] = None,
    session: Optional[SessionContext] = None,
    recheck_capacity: bool = False,
) -> FastAPI:
    """Build the API around one storage backend, chosen here and nowhere else."""
    if session is None:
        path = os.getenv("LOCAL_STORE_PATH")
        session = SessionContext(FileKeyValueStore(path) if path else MemoryKeyValueStore())

    if booking_backend is None or museum_backend is None:
        name = default_backend_name()
        if name == "mongo":
            booking_backend = booking_backend or MongoBookingBackend()
            museum_backend = museum_backend or MongoMuseumBackend()
        elif name == "local":
            booking_backend = booking_backend or LocalBookingBackend(session.store)
            museum_backend = museum_backend or LocalMuseumBackend(seed_museums())
        else:
            raise ValueError(f"Unknown STORAGE_BACKEND: {name}")

    # Seeds the museum collection on first start; a no-op once it has data.
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(app.state.catalog.initialize)
        yield

    app = FastAPI(title="Museum Ticket Booking API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.session = session
    app.state.bookings = BookingStore(booking_backend, session)
    app.state.catalog = MuseumCatalog(museum_backend, session)
    app.state.chats = OrderedDict()
    app.state.recheck_capacity = recheck_capacity
    logger.info("Using %s booking backend", getattr(booking_backend, "name", type(booking_backend).__name__))

    @app.middleware("http")
    async def degraded_notices(request: Request, call_next):
        with session.collect_notices() as notices:
            response = await call_next(request)
        if notices:
            response.headers[DEGRADED_HEADER] = " | ".join(notices)
        return response

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        status = STATUS_CODES.get(exc.code, 400)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"code": exc.code.value, "detail": exc.message})

    app.include_router(build_router())
    return app


# ------------------------------------------------------------
# Dependencies
# ------------------------------------------------------------

def get_session(request: Request) -> SessionContext:
    return request.app.state.session


def get_bookings(request: Request) -> BookingStore:
    return request.app.state.bookings


def get_catalog(request: Request) -> MuseumCatalog:
    return request.app.state.catalog


def require_admin(session: SessionContext = Depends(get_session)) -> SessionContext:
    session.require_admin()
    return session


def parse_date(value: str) -> str:
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise InvalidInputError("Date must be in YYYY-MM-DD format")


# ------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------

class CreateBookingRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    museum_id: str
    date: str
    time: str
    visitors: Dict[str, int]
    payment_status: Literal["pending", "completed"] = "pending"


class LanguageRequest(BaseModel):
    language: str


class ChatAction(BaseModel):
    action: Literal[
        "text", "name", "museum", "date", "time", "visitors", "confirm_visitors", "pay",
    ]
    value: Optional[str] = None
    email: Optional[EmailStr] = None
    visitors: Optional[Dict[str, int]] = None


def build_router() -> APIRouter:
    router = APIRouter()

    @router.get("/")
    def read_root():
        return {"message": "Museum Ticket Booking API"}

    @router.get("/test")
    def test_database(bookings: BookingStore = Depends(get_bookings)):
        response = {
            "backend": "✅ Running",
            "storage": bookings.backend.name,
            "database": "❌ Not Available",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": database.DATABASE_NAME,
            "connection_status": "Not Connected",
            "collections": [],
        }
        if database.db is None:
            return response
        try:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
        except Exception as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        return response

    # Museums

    @router.post("/seed-museums")
    def seed_museum_collection(catalog: MuseumCatalog = Depends(get_catalog)):
        count = catalog.initialize()
        return {"seeded": count > 0, "count": count}

    @router.get("/api/museums", response_model=List[Museum])
    def list_museums(state: Optional[str] = None, catalog: MuseumCatalog = Depends(get_catalog)):
        if state:
            return catalog.by_state(state)
        return catalog.list()

    @router.get("/api/museums/{museum_id}", response_model=Museum)
    def get_museum(museum_id: str, catalog: MuseumCatalog = Depends(get_catalog)):
        return catalog.get(museum_id)

    @router.patch("/api/museums/{museum_id}", response_model=Museum)
    def update_museum(museum_id: str, req: MuseumUpdate, catalog: MuseumCatalog = Depends(get_catalog),
                      _: SessionContext = Depends(require_admin)):
        return catalog.update(museum_id, req)

    @router.get("/api/museums/{museum_id}/availability", response_model=List[TimeSlot])
    def museum_availability(museum_id: str, date: str,
                            catalog: MuseumCatalog = Depends(get_catalog),
                            bookings: BookingStore = Depends(get_bookings)):
        museum = catalog.get(museum_id)
        return get_available_time_slots(bookings, parse_date(date), museum)

    # Bookings

    @router.post("/api/bookings", response_model=Booking, status_code=201)
    def create_booking(req: CreateBookingRequest, request: Request,
                       catalog: MuseumCatalog = Depends(get_catalog),
                       bookings: BookingStore = Depends(get_bookings)):
        museum = catalog.get(req.museum_id)
        if req.time not in museum.time_slots:
            raise InvalidInputError(f"{museum.name} has no {req.time} slot")
        unknown = set(req.visitors) - set(VisitorCounts.model_fields)
        if unknown:
            raise InvalidInputError(f"Unknown visitor categories: {', '.join(sorted(unknown))}")
        try:
            visitors = VisitorCounts(**req.visitors)
        except ValidationError:
            raise InvalidInputError("Visitor counts must be non-negative integers")
        if visitors.total() <= 0:
            raise InvalidInputError("At least one visitor is required")
        if request.app.state.recheck_capacity:
            slot = find_slot(get_available_time_slots(bookings, parse_date(req.date), museum), req.time)
            if slot.available < visitors.total():
                raise SlotUnavailableError(req.time)
        booking = Booking(
            ticket_number=generate_ticket_number(),
            name=req.name,
            email=req.email,
            museum=museum.snapshot(),
            date=parse_date(req.date),
            time=req.time,
            visitors=visitors,
            total_amount=museum.price_for(visitors),
            payment_status=req.payment_status,
        )
        return bookings.create(booking)

    @router.get("/api/bookings", response_model=List[Booking])
    def list_bookings(date: Optional[str] = None, museum_id: Optional[str] = None,
                      bookings: BookingStore = Depends(get_bookings)):
        return bookings.list(date=parse_date(date) if date else None, museum_id=museum_id)

    @router.get("/api/bookings/recent", response_model=List[Booking])
    def recent_bookings(limit: int = 10, bookings: BookingStore = Depends(get_bookings)):
        return bookings.recent(limit)

    @router.get("/api/bookings/{booking_id}", response_model=Booking)
    def get_booking(booking_id: str, bookings: BookingStore = Depends(get_bookings)):
        return bookings.get(booking_id)

    @router.patch("/api/bookings/{booking_id}", response_model=Booking)
    def update_booking(booking_id: str, req: BookingUpdate,
                       bookings: BookingStore = Depends(get_bookings),
                       _: SessionContext = Depends(require_admin)):
        return bookings.update(booking_id, req)

    @router.delete("/api/bookings/{booking_id}")
    def delete_booking(booking_id: str, bookings: BookingStore = Depends(get_bookings),
                       _: SessionContext = Depends(require_admin)):
        return {"id": bookings.delete(booking_id)}

    # Admin

    @router.post("/api/admin/login")
    def admin_login(session: SessionContext = Depends(get_session)):
        session.login_admin()
        return {"authenticated": True}

    @router.post("/api/admin/logout")
    def admin_logout(session: SessionContext = Depends(get_session)):
        session.logout_admin()
        return {"authenticated": False}

    @router.get("/api/admin/stats", response_model=AdminStats)
    def admin_stats(bookings: BookingStore = Depends(get_bookings),
                    _: SessionContext = Depends(require_admin)):
        return get_booking_stats(bookings)

    @router.get("/api/admin/bookings")
    def admin_bookings(search: str = "", status: str = "all",
                       bookings: BookingStore = Depends(get_bookings),
                       session: SessionContext = Depends(require_admin)):
        rows = filter_bookings(bookings.list(), search=search, status=status)
        return {
            "bookings": [b.model_dump(mode="json") for b in rows],
            "notices": session.notices,
        }

    @router.get("/api/admin/export")
    def admin_export(search: str = "", status: str = "all",
                     bookings: BookingStore = Depends(get_bookings),
                     _: SessionContext = Depends(require_admin)):
        rows = filter_bookings(bookings.list(), search=search, status=status)
        return Response(
            content=bookings_to_csv(rows),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
        )

    # Language

    @router.get("/api/language")
    def get_language(session: SessionContext = Depends(get_session)):
        return {"language": session.language}

    @router.put("/api/language")
    def set_language(req: LanguageRequest, session: SessionContext = Depends(get_session)):
        try:
            session.language = req.language
        except ValueError as e:
            raise InvalidInputError(str(e))
        return {"language": session.language}

    # Chat wizard

    def chat_state(chat_id: str, wizard: BookingWizard) -> dict:
        return {
            "id": chat_id,
            "stage": wizard.stage.value,
            "error": wizard.error,
            "visitors": wizard.visitors.model_dump(),
            "total": wizard.total_amount(),
            "messages": [
                {"role": m.role, "text": m.text, "component": m.component, "data": m.data}
                for m in wizard.messages
            ],
        }

    def get_chat(request: Request, chat_id: str) -> BookingWizard:
        wizard = request.app.state.chats.get(chat_id)
        if wizard is None:
            raise NotFoundError("chat", chat_id)
        return wizard

    @router.post("/api/chat", status_code=201)
    def start_chat(request: Request,
                   catalog: MuseumCatalog = Depends(get_catalog),
                   bookings: BookingStore = Depends(get_bookings)):
        chat_id = uuid.uuid4().hex
        wizard = BookingWizard(bookings, catalog, recheck_capacity=request.app.state.recheck_capacity)
        wizard.start()
        chats = request.app.state.chats
        chats[chat_id] = wizard
        while len(chats) > MAX_OPEN_CHATS:
            chats.popitem(last=False)
        return chat_state(chat_id, wizard)

    @router.get("/api/chat/{chat_id}")
    def read_chat(request: Request, chat_id: str):
        return chat_state(chat_id, get_chat(request, chat_id))

    @router.post("/api/chat/{chat_id}")
    def chat_action(request: Request, chat_id: str, req: ChatAction):
        wizard = get_chat(request, chat_id)
        if req.action == "text":
            wizard.handle_text(req.value or "")
        elif req.action == "name":
            wizard.submit_name(req.value or "", email=req.email)
        elif req.action == "museum":
            wizard.select_museum(req.value or "")
        elif req.action == "date":
            wizard.select_date(req.value or "")
        elif req.action == "time":
            wizard.select_time(req.value or "")
        elif req.action == "visitors":
            wizard.set_visitor_counts(req.visitors or {})
        elif req.action == "confirm_visitors":
            wizard.confirm_visitors()
        elif req.action == "pay":
            wizard.confirm_payment()
        state = chat_state(chat_id, wizard)
        if wizard.stage == Stage.COMPLETE:
            request.app.state.chats.pop(chat_id, None)
        return state

    return router


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
