"""Request-scoped collaborators. Overridden in tests via app.dependency_overrides."""
from datetime import datetime

from fastapi import Depends
from sqlalchemy.orm import Session

from app.booking_service import BookingService
from app.db import get_db
from app.notifier import Notifier
from app.payments import StripeGateway
from app.waitlist import WaitlistMatcher


def get_payment_gateway():
    return StripeGateway()

def get_notifier():
    return Notifier()

def get_clock():
    return datetime.now

def get_booking_service(
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
    clock=Depends(get_clock),
) -> BookingService:
    return BookingService(db, gateway, notifier, clock=clock)

def get_waitlist(db: Session = Depends(get_db), notifier=Depends(get_notifier)) -> WaitlistMatcher:
    return WaitlistMatcher(db, notifier)
