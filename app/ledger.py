"""Booking ledger: the authoritative store of bookings and their status.

Conflict detection and status changes go through here. A status change is a
single conditional UPDATE (``WHERE status IN (...)``) so two writers can never
both move the same booking; a new pending booking relies on the
``uniq_active_barber_slot`` partial unique index so two concurrent inserts for
the same barber slot cannot both land.
"""
import logging
from datetime import date, time

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import InvalidTransitionError, SlotTakenError, StaleStateError
from app.models import (
    ACTIVE_STATUSES, CANCELLED, COMPLETED, CONFIRMED, PENDING, Booking,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    (PENDING, CONFIRMED),   # payment succeeded
    (PENDING, CANCELLED),   # payment failed / customer cancel
    (CONFIRMED, CANCELLED), # customer cancel
    (PENDING, COMPLETED),   # barber marks done
    (CONFIRMED, COMPLETED),
}


class BookingLedger:
    def __init__(self, db: Session):
        self.db = db

    def get(self, booking_id: str) -> Booking | None:
        return self.db.get(Booking, booking_id)

    def find_conflict(self, barber_id: str, appointment_date: date, appointment_time: time) -> Booking | None:
        """Any live (pending/confirmed) booking holding this exact barber slot."""
        return (
            self.db.query(Booking)
            .filter(
                Booking.barber_id == barber_id,
                Booking.appointment_date == appointment_date,
                Booking.appointment_time == appointment_time,
                Booking.status.in_(ACTIVE_STATUSES),
            )
            .first()
        )

    def occupied_times(self, barber_id: str, appointment_date: date) -> set[time]:
        rows = (
            self.db.query(Booking.appointment_time)
            .filter(
                Booking.barber_id == barber_id,
                Booking.appointment_date == appointment_date,
                Booking.status.in_(ACTIVE_STATUSES),
            )
            .all()
        )
        return {r.appointment_time for r in rows}

    def find_by_payment_ref(self, payment_intent_ref: str) -> Booking | None:
        return (
            self.db.query(Booking)
            .filter(Booking.payment_intent_ref == payment_intent_ref)
            .order_by(Booking.created_at.desc())
            .first()
        )

    def list_for(self, customer_id: str | None = None, barber_id: str | None = None) -> list[Booking]:
        q = self.db.query(Booking)
        if customer_id:
            q = q.filter(Booking.customer_id == customer_id)
        if barber_id:
            q = q.filter(Booking.barber_id == barber_id)
        return q.order_by(Booking.appointment_date.desc(), Booking.appointment_time.desc()).all()

    def insert_pending(self, **fields) -> Booking:
        """
        Insert a new pending booking. The store rejects a second live booking
        for the same barber/date/time; that surfaces as SlotTakenError.
        """
        booking = Booking(status=PENDING, deposit_paid=False, **fields)
        self.db.add(booking)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Slot %s %s %s taken concurrently", fields.get("barber_id"),
                fields.get("appointment_date"), fields.get("appointment_time"),
            )
            raise SlotTakenError()
        self.db.refresh(booking)
        return booking

    def transition(self, booking_id: str, from_statuses, to_status: str, **values) -> Booking:
        """
        Move a booking to to_status if and only if its current status is one of
        from_statuses. Extra column values are written in the same statement.
        """
        from_statuses = tuple(from_statuses)
        if not from_statuses or any((s, to_status) not in ALLOWED_TRANSITIONS for s in from_statuses):
            raise InvalidTransitionError()

        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.status.in_(from_statuses))
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        res = self.db.execute(stmt)
        if res.rowcount != 1:
            self.db.rollback()
            raise StaleStateError()
        self.db.commit()

        booking = self.get(booking_id)
        self.db.refresh(booking)
        logger.info("Booking %s -> %s", booking_id, to_status)
        return booking
