"""
Database Schemas

MongoDB collection schemas for the museum ticket booking backend.
Each Pydantic model below that maps to a collection notes its name:
- Museum -> "museum" collection
- Booking -> "booking" collection

TimeSlot, VisitorMetrics and AdminStats are derived views and are never stored.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

VISITOR_CATEGORIES = ("adult", "child", "senior", "tourist")

PaymentStatus = Literal["pending", "completed"]


class VisitorCounts(BaseModel):
    """Visitors per category for one booking."""
    adult: int = Field(0, ge=0)
    child: int = Field(0, ge=0)
    senior: int = Field(0, ge=0)
    tourist: int = Field(0, ge=0)

    def total(self) -> int:
        return self.adult + self.child + self.senior + self.tourist


class Pricing(BaseModel):
    """Ticket price per visitor category, in rupees."""
    adult: int = Field(..., ge=0)
    child: int = Field(..., ge=0)
    senior: int = Field(..., ge=0)
    tourist: int = Field(..., ge=0)


class Museum(BaseModel):
    """
    Bookable museums
    Collection name: "museum" (document _id is the museum id)
    """
    id: str = Field(..., description="Unique museum identifier")
    name: str
    location: str
    state: str
    description: str = ""
    image_url: Optional[str] = None
    opening_hours: str = Field("", description="Display string, e.g. 10:00 AM - 6:00 PM")
    time_slots: List[str] = Field(..., description="Ordered slot labels, e.g. 10:00")
    pricing: Pricing
    capacity: int = Field(..., ge=0, description="Visitors per time slot")
    current_visitors: int = Field(0, ge=0, description="Advisory only")

    def price_for(self, visitors: VisitorCounts) -> int:
        return sum(
            getattr(visitors, category) * getattr(self.pricing, category)
            for category in VISITOR_CATEGORIES
        )

    def snapshot(self) -> "MuseumRef":
        return MuseumRef(id=self.id, name=self.name, location=self.location, state=self.state)


class MuseumUpdate(BaseModel):
    capacity: Optional[int] = Field(None, ge=0)
    pricing: Optional[Pricing] = None
    opening_hours: Optional[str] = None
    time_slots: Optional[List[str]] = None
    current_visitors: Optional[int] = Field(None, ge=0)


class MuseumRef(BaseModel):
    """Denormalized museum snapshot stored on each booking."""
    id: str
    name: str
    location: str = ""
    state: str = ""


class Booking(BaseModel):
    """
    Ticket bookings
    Collection name: "booking"
    """
    id: Optional[str] = Field(None, description="Assigned by the persistence layer")
    ticket_number: str
    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    museum: MuseumRef
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$", description="YYYY-MM-DD")
    time: str = Field(..., description="One of the museum's slot labels")
    visitors: VisitorCounts
    total_amount: int = Field(..., ge=0)
    payment_status: PaymentStatus = "pending"
    created_at: Optional[datetime] = None


class BookingUpdate(BaseModel):
    """Fields an administrator may change on an existing booking."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    date: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    time: Optional[str] = None
    visitors: Optional[VisitorCounts] = None
    total_amount: Optional[int] = Field(None, ge=0)
    payment_status: Optional[PaymentStatus] = None


class TimeSlot(BaseModel):
    time: str
    available: int = Field(..., description="May be negative when overbooked")
    total: int
    is_available: bool


class VisitorMetrics(BaseModel):
    daily: int = 0
    weekly: int = 0
    monthly: int = 0


class PeakTime(BaseModel):
    time: str
    count: int


class PopularMuseum(BaseModel):
    name: str
    count: int


class MonthlyTrend(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    bookings: int
    visitors: int
    revenue: float


class AdminStats(BaseModel):
    total_bookings: int = 0
    total_visitors: int = 0
    total_revenue: float = 0
    today_bookings: int = 0
    today_revenue: float = 0
    visitor_metrics: VisitorMetrics = Field(default_factory=VisitorMetrics)
    peak_times: List[PeakTime] = Field(default_factory=list)
    popular_museums: List[PopularMuseum] = Field(default_factory=list)
    monthly_trend: List[MonthlyTrend] = Field(default_factory=list)


class BookingFilter(BaseModel):
    date: Optional[str] = None
    museum_id: Optional[str] = None

    def matches(self, doc: Dict) -> bool:
        if self.date is not None and doc.get("date") != self.date:
            return False
        if self.museum_id is not None and (doc.get("museum") or {}).get("id") != self.museum_id:
            return False
        return True
