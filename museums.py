"""
Museum Seed Data

Static museum configuration. Written to the "museum" collection the first time
the catalog is initialized, and served directly whenever the store is down.
"""

from typing import List

from schemas import Museum, Pricing

DEFAULT_TIME_SLOTS = ["10:00", "12:00", "14:00", "16:00"]

MUSEUMS: List[Museum] = [
    Museum(
        id="national-museum-delhi",
        name="National Museum",
        location="Janpath, New Delhi",
        state="Delhi",
        description="India's largest museum, spanning five thousand years of art and archaeology.",
        image_url="https://images.unsplash.com/photo-1584037618503-6140c67e9edc",
        opening_hours="10:00 AM - 6:00 PM (Closed on Mondays)",
        time_slots=DEFAULT_TIME_SLOTS,
        pricing=Pricing(adult=200, child=0, senior=100, tourist=650),
        capacity=100,
    ),
    Museum(
        id="indian-museum-kolkata",
        name="Indian Museum",
        location="Park Street, Kolkata",
        state="West Bengal",
        description="The oldest museum in India, founded in 1814 by the Asiatic Society.",
        image_url="https://images.unsplash.com/photo-1566127444979-b3d2b654e3d7",
        opening_hours="10:00 AM - 5:00 PM (Closed on Mondays)",
        time_slots=["10:00", "11:30", "13:00", "14:30", "16:00"],
        pricing=Pricing(adult=50, child=20, senior=20, tourist=500),
        capacity=150,
    ),
    Museum(
        id="salar-jung-hyderabad",
        name="Salar Jung Museum",
        location="Darushifa, Hyderabad",
        state="Telangana",
        description="One of the largest one-man collections of antiques in the world.",
        image_url="https://images.unsplash.com/photo-1582555172866-f73bb12a2ab3",
        opening_hours="10:00 AM - 5:00 PM (Closed on Fridays)",
        time_slots=DEFAULT_TIME_SLOTS,
        pricing=Pricing(adult=50, child=20, senior=30, tourist=500),
        capacity=120,
    ),
    Museum(
        id="csmvs-mumbai",
        name="Chhatrapati Shivaji Maharaj Vastu Sangrahalaya",
        location="Fort, Mumbai",
        state="Maharashtra",
        description="Indo-Saracenic landmark housing art, archaeology and natural history.",
        image_url="https://images.unsplash.com/photo-1570168007204-dfb528c6958f",
        opening_hours="10:15 AM - 6:00 PM",
        time_slots=["10:15", "12:00", "14:00", "16:30"],
        pricing=Pricing(adult=150, child=50, senior=75, tourist=700),
        capacity=80,
    ),
    Museum(
        id="government-museum-chennai",
        name="Government Museum",
        location="Egmore, Chennai",
        state="Tamil Nadu",
        description="Second oldest museum in India, known for its bronze gallery.",
        image_url="https://images.unsplash.com/photo-1599661046289-e31897846e41",
        opening_hours="9:30 AM - 5:00 PM (Closed on Fridays)",
        time_slots=["09:30", "11:00", "13:00", "15:00"],
        pricing=Pricing(adult=15, child=10, senior=10, tourist=250),
        capacity=60,
    ),
]


def seed_museums() -> List[Museum]:
    """Fresh copies, so callers can mutate without touching the module data."""
    return [museum.model_copy(deep=True) for museum in MUSEUMS]
