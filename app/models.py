import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Date, Time, DateTime, Boolean, ForeignKey, Text,
    CheckConstraint, UniqueConstraint, Index, text,
)

from app.db import Base

# Booking statuses
PENDING = "pending"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"

ACTIVE_STATUSES = (PENDING, CONFIRMED)
TERMINAL_STATUSES = (COMPLETED, CANCELLED)

_ACTIVE_SQL = "status IN ('pending','confirmed')"


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Contact record for barbers and customers (identity lives elsewhere)."""
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=new_id)
    role = Column(String, nullable=False)  # barber|customer
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True)
    phone = Column(String)
    # Public profile, barbers only
    bio = Column(Text)
    instagram_handle = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("role in ('barber','customer')", name="user_role_valid"),
    )

class AvailabilityRule(Base):
    __tablename__ = "barber_availability"
    id = Column(Integer, primary_key=True, autoincrement=True)
    barber_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="availability_day_valid"),
        UniqueConstraint("barber_id", "day_of_week", name="uniq_barber_day"),
    )

class Service(Base):
    __tablename__ = "services"
    id = Column(String, primary_key=True, default=new_id)
    barber_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text)
    price = Column(Integer, nullable=False)  # minor currency units
    duration_minutes = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("price > 0", name="service_price_positive"),
        CheckConstraint("duration_minutes > 0", name="service_duration_positive"),
    )

class Booking(Base):
    __tablename__ = "bookings"
    id = Column(String, primary_key=True, default=new_id)
    customer_id = Column(String, ForeignKey("users.id"), nullable=False)
    barber_id = Column(String, ForeignKey("users.id"), nullable=False)
    service_id = Column(String, ForeignKey("services.id"), nullable=False)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default=PENDING)
    total_price = Column(Integer, nullable=False)  # snapshot of Service.price
    deposit_paid = Column(Boolean, nullable=False, default=False)
    payment_intent_ref = Column(String, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "status in ('pending','confirmed','completed','cancelled')", name="booking_status_valid"
        ),
        # At most one live booking per barber slot; enforced by the store itself
        Index(
            "uniq_active_barber_slot",
            "barber_id", "appointment_date", "appointment_time",
            unique=True,
            sqlite_where=text(_ACTIVE_SQL),
            postgresql_where=text(_ACTIVE_SQL),
        ),
    )

    @property
    def appointment_at(self) -> datetime:
        return datetime.combine(self.appointment_date, self.appointment_time)

class WaitlistEntry(Base):
    __tablename__ = "waitlist"
    id = Column(String, primary_key=True, default=new_id)
    customer_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    barber_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    preferred_date = Column(Date, nullable=False)
    preferred_time_range = Column(String, nullable=False)  # e.g. "morning" or "09:00-12:00"
    notified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

class Review(Base):
    __tablename__ = "reviews"
    id = Column(String, primary_key=True, default=new_id)
    booking_id = Column(String, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    customer_id = Column(String, ForeignKey("users.id"), nullable=False)
    barber_id = Column(String, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="review_rating_valid"),
    )
