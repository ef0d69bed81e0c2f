"""Barber-owned catalog data: profiles, weekly availability and services."""
import logging
from datetime import time

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import SLOT_GRID_MINUTES
from app.exceptions import BarberNotFoundError, NotAuthorizedError, ServiceNotFoundError, ValidationError
from app.models import AvailabilityRule, Review, Service, User
from app.slots import is_grid_aligned

logger = logging.getLogger(__name__)

DEFAULT_OPEN = time(9, 0)
DEFAULT_CLOSE = time(17, 0)


def list_availability(db: Session, barber_id: str) -> list[AvailabilityRule]:
    return (
        db.query(AvailabilityRule)
        .filter(AvailabilityRule.barber_id == barber_id)
        .order_by(AvailabilityRule.day_of_week)
        .all()
    )


def upsert_availability(db: Session, barber_id: str, day_of_week: int,
                        start_time: time | None = None, end_time: time | None = None,
                        is_available: bool | None = None) -> AvailabilityRule:
    """
    One rule per (barber, weekday): update it in place, or create it with
    09:00-17:00 defaults for anything not given. Rules are toggled, never deleted.
    """
    if not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday).")

    rule = (
        db.query(AvailabilityRule)
        .filter(AvailabilityRule.barber_id == barber_id, AvailabilityRule.day_of_week == day_of_week)
        .first()
    )
    if rule is None:
        rule = AvailabilityRule(
            barber_id=barber_id, day_of_week=day_of_week,
            start_time=DEFAULT_OPEN, end_time=DEFAULT_CLOSE, is_available=True,
        )
        db.add(rule)
    if start_time is not None:
        rule.start_time = start_time
    if end_time is not None:
        rule.end_time = end_time
    if is_available is not None:
        rule.is_available = is_available

    for t in (rule.start_time, rule.end_time):
        if not is_grid_aligned(t):
            db.rollback()
            raise ValidationError(f"Opening hours must be on a {SLOT_GRID_MINUTES}-minute grid.")
    if rule.is_available and rule.start_time >= rule.end_time:
        db.rollback()
        raise ValidationError("start_time must be before end_time.")

    db.commit()
    db.refresh(rule)
    logger.info("Availability for %s day %s saved", barber_id, day_of_week)
    return rule


def list_services(db: Session, barber_id: str, include_inactive: bool = False) -> list[Service]:
    q = db.query(Service).filter(Service.barber_id == barber_id)
    if not include_inactive:
        q = q.filter(Service.is_active.is_(True))
    return q.order_by(Service.name).all()


def create_service(db: Session, barber_id: str, name: str, price: int, duration_minutes: int,
                   description: str | None = None) -> Service:
    if price <= 0:
        raise ValidationError("Price must be positive.")
    if duration_minutes <= 0 or duration_minutes % SLOT_GRID_MINUTES:
        raise ValidationError(f"Duration must be a positive multiple of {SLOT_GRID_MINUTES} minutes.")
    service = Service(
        barber_id=barber_id, name=name, description=description,
        price=price, duration_minutes=duration_minutes, is_active=True,
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def set_service_active(db: Session, service_id: str, barber_id: str, is_active: bool) -> Service:
    service = db.get(Service, service_id)
    if service is None:
        raise ServiceNotFoundError()
    if service.barber_id != barber_id:
        raise NotAuthorizedError("Service not found or not accessible.")
    service.is_active = is_active
    db.commit()
    db.refresh(service)
    return service


def _review_stats(db: Session) -> dict[str, tuple[float, int]]:
    rows = (
        db.query(Review.barber_id, func.avg(Review.rating), func.count(Review.id))
        .group_by(Review.barber_id)
        .all()
    )
    return {barber_id: (round(float(avg), 2), count) for barber_id, avg, count in rows}


def _profile(barber: User, stats: dict) -> dict:
    rating, total_reviews = stats.get(barber.id, (0.0, 0))
    return {
        "id": barber.id,
        "full_name": barber.full_name,
        "bio": barber.bio,
        "instagram_handle": barber.instagram_handle,
        "rating": rating,
        "total_reviews": total_reviews,
    }


def list_barbers(db: Session) -> list[dict]:
    """Barber directory, best rated first."""
    barbers = db.query(User).filter(User.role == "barber").all()
    stats = _review_stats(db)
    profiles = [_profile(b, stats) for b in barbers]
    return sorted(profiles, key=lambda p: (-p["rating"], p["full_name"]))


def _barber(db: Session, barber_id: str) -> User:
    barber = db.get(User, barber_id)
    if barber is None or barber.role != "barber":
        raise BarberNotFoundError()
    return barber


def get_barber(db: Session, barber_id: str) -> dict:
    profile = _profile(_barber(db, barber_id), _review_stats(db))
    profile["services"] = list_services(db, barber_id)
    return profile


def update_barber_profile(db: Session, barber_id: str, full_name: str | None = None, phone: str | None = None,
                          bio: str | None = None, instagram_handle: str | None = None) -> dict:
    barber = _barber(db, barber_id)
    if full_name is not None:
        if not full_name.strip():
            raise ValidationError("Name must not be empty.")
        barber.full_name = full_name.strip()
    if phone is not None:
        barber.phone = phone or None
    if bio is not None:
        barber.bio = bio or None
    if instagram_handle is not None:
        barber.instagram_handle = instagram_handle.lstrip("@") or None
    db.commit()
    db.refresh(barber)
    logger.info("Profile for barber %s updated", barber_id)
    return get_barber(db, barber_id)
