from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import NotAuthorizedError, ReviewNotAllowedError, ValidationError
from app.models import COMPLETED, Booking, Review


def create_review(db: Session, booking_id: str, customer_id: str, rating: int, comment: str | None = None) -> Review:
    """One review per completed booking, written by the booking's customer."""
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5.")

    booking = db.get(Booking, booking_id)
    if booking is None or booking.customer_id != customer_id:
        raise NotAuthorizedError()
    if booking.status != COMPLETED:
        raise ReviewNotAllowedError("Only completed bookings can be reviewed.")

    review = Review(
        booking_id=booking.id, customer_id=customer_id, barber_id=booking.barber_id,
        rating=rating, comment=comment or None,
    )
    db.add(review)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ReviewNotAllowedError("Already reviewed this booking.")
    db.refresh(review)
    return review
