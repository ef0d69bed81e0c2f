"""Response shapes. Built from ORM rows with model_validate(from_attributes)."""
from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict


class _FromRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class BookingOut(_FromRow):
    id: str
    customer_id: str
    barber_id: str
    service_id: str
    appointment_date: date
    appointment_time: time
    status: str
    total_price: int
    deposit_paid: bool
    payment_intent_ref: str | None = None
    created_at: datetime | None = None


class ServiceOut(_FromRow):
    id: str
    barber_id: str
    name: str
    description: str | None = None
    price: int
    duration_minutes: int
    is_active: bool


class BarberOut(BaseModel):
    id: str
    full_name: str
    bio: str | None = None
    instagram_handle: str | None = None
    rating: float
    total_reviews: int


class BarberDetailOut(BarberOut):
    services: list[ServiceOut]


class AvailabilityOut(_FromRow):
    barber_id: str
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool


class WaitlistOut(_FromRow):
    id: str
    customer_id: str
    barber_id: str
    preferred_date: date
    preferred_time_range: str
    notified: bool


class ReviewOut(_FromRow):
    id: str
    booking_id: str
    customer_id: str
    barber_id: str
    rating: int
    comment: str | None = None


class SlotOut(BaseModel):
    time: str
    available: bool


class SlotsOut(BaseModel):
    barber_id: str
    date: date
    slots: list[str]
    board: list[SlotOut]
