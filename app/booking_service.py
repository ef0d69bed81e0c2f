"""
Booking lifecycle orchestration.

Ties the slot generator, the booking ledger, the payment gateway and the
waitlist together:

  create_booking   -> conflict check, deposit checkout session, pending row
  confirm_payment  -> pending -> confirmed (gateway success callback)
  fail_payment     -> pending -> cancelled (gateway failure callback)
  cancel_booking   -> customer cancel, refund if 24h+ notice, waitlist match
  complete_booking -> barber marks the appointment done

Callbacks find their booking by the booking_id stamped into the checkout
metadata, never by slot, so a late event for an abandoned checkout cannot
touch a newer booking of the same slot. They are idempotent: a replay that
finds the booking already moved is a success. Refunds and notifications are
best-effort and never fail the status change they follow.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import (
    APP_URL, CANCELLATION_NOTICE_HOURS, DEFAULT_SLOT_MINUTES, PAYMENT_CURRENCY, REMINDER_LEAD_HOURS,
)
from app.exceptions import (
    BookingPersistenceError, InvalidTransitionError, NotAuthorizedError, NotCancellableError,
    PaymentSetupError, ServiceNotFoundError, SlotTakenError, StaleStateError, ValidationError,
)
from app.ledger import BookingLedger
from app.models import (
    ACTIVE_STATUSES, CANCELLED, COMPLETED, CONFIRMED, PENDING,
    AvailabilityRule, Booking, Service, User, new_id,
)
from app.payments import GatewayError, calculate_deposit
from app.slots import day_of_week, format_hhmm, generate_slots, is_grid_aligned, parse_time
from app.waitlist import WaitlistMatcher

logger = logging.getLogger(__name__)


@dataclass
class Slot:
    time: time
    available: bool


@dataclass
class BookingCreated:
    booking: Booking
    payment_session_ref: str
    checkout_url: str | None


@dataclass
class Cancellation:
    booking: Booking
    refunded: bool


class BookingService:
    def __init__(self, db: Session, gateway, notifier, clock=datetime.now, waitlist: WaitlistMatcher | None = None):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier
        self.clock = clock
        self.ledger = BookingLedger(db)
        self.waitlist = waitlist or WaitlistMatcher(db, notifier)

    # ── Slots ─────────────────────────────────────────

    def _active_service(self, barber_id: str, service_id: str) -> Service:
        service = self.db.get(Service, service_id)
        if service is None or service.barber_id != barber_id or not service.is_active:
            raise ServiceNotFoundError()
        return service

    def get_slot_board(self, barber_id: str, on_date: date, service_id: str | None = None) -> list[Slot]:
        """Every candidate slot for the day with whether it is still free."""
        duration = DEFAULT_SLOT_MINUTES
        if service_id:
            duration = self._active_service(barber_id, service_id).duration_minutes

        rule = (
            self.db.query(AvailabilityRule)
            .filter(AvailabilityRule.barber_id == barber_id, AvailabilityRule.day_of_week == day_of_week(on_date))
            .first()
        )
        if rule is None or not rule.is_available:
            return []

        taken = self.ledger.occupied_times(barber_id, on_date)
        return [Slot(t, t not in taken) for t in generate_slots(rule.start_time, rule.end_time, duration)]

    def get_available_slots(self, barber_id: str, on_date: date, service_id: str | None = None) -> list[time]:
        return [s.time for s in self.get_slot_board(barber_id, on_date, service_id) if s.available]

    def booked_times(self, barber_id: str, on_date: date) -> list[time]:
        """Start times held by pending or confirmed bookings, ascending."""
        return sorted(self.ledger.occupied_times(barber_id, on_date))

    # ── Create ────────────────────────────────────────

    def create_booking(self, barber_id: str, service_id: str, customer_id: str,
                       appointment_date: date, appointment_time, total_price: int | None = None) -> BookingCreated:
        service = self._active_service(barber_id, service_id)
        if total_price is None:
            total_price = service.price
        elif total_price != service.price:
            raise ValidationError("Total price does not match the service price.")

        try:
            appointment_time = parse_time(appointment_time)
        except ValueError as e:
            raise ValidationError(str(e))
        if not is_grid_aligned(appointment_time):
            raise ValidationError("Appointment time is not on the booking grid.")
        if datetime.combine(appointment_date, appointment_time) <= self.clock():
            raise ValidationError("Appointment time is in the past.")

        # Fast path only; the unique index on insert is what actually guarantees it
        if self.ledger.find_conflict(barber_id, appointment_date, appointment_time):
            raise SlotTakenError()

        booking_id = new_id()
        deposit = calculate_deposit(total_price)
        metadata = {
            "booking_id": booking_id,
            "barber_id": barber_id,
            "service_id": service_id,
            "customer_id": customer_id,
            "appointment_date": appointment_date.isoformat(),
            "appointment_time": format_hhmm(appointment_time),
            "total_price": str(total_price),
        }
        try:
            session = self.gateway.create_checkout_session(
                amount=deposit,
                currency=PAYMENT_CURRENCY,
                metadata=metadata,
                description=f"{service.name} - Deposit ({appointment_date.isoformat()} {format_hhmm(appointment_time)})",
                success_url=f"{APP_URL}/bookings?success=true",
                cancel_url=f"{APP_URL}/book?barberId={barber_id}&cancelled=true",
            )
        except GatewayError as e:
            logger.error("Checkout session for %s failed: %s", metadata, e)
            raise PaymentSetupError()

        try:
            booking = self.ledger.insert_pending(
                id=booking_id,
                customer_id=customer_id,
                barber_id=barber_id,
                service_id=service_id,
                appointment_date=appointment_date,
                appointment_time=appointment_time,
                total_price=total_price,
                payment_intent_ref=session.reference,
            )
        except SlotTakenError:
            logger.warning("Checkout session %s abandoned: slot taken concurrently", session.id)
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Booking insert failed, checkout session %s abandoned: %s", session.id, e)
            raise BookingPersistenceError()

        logger.info("Booking %s pending for %s %s", booking.id, appointment_date, appointment_time)
        return BookingCreated(booking=booking, payment_session_ref=session.id, checkout_url=session.url)

    # ── Gateway callbacks ─────────────────────────────

    def _booking_for_checkout(self, metadata: dict) -> Booking | None:
        """The booking a checkout was opened for, keyed by the id stamped into its metadata."""
        booking_id = metadata.get("booking_id") if isinstance(metadata, dict) else None
        if not booking_id:
            raise ValidationError("Malformed checkout metadata: no booking_id")
        booking = self.ledger.get(booking_id)
        if booking is None:
            return None
        customer_id = metadata.get("customer_id")
        if customer_id and customer_id != booking.customer_id:
            logger.warning("Checkout for booking %s names customer %s; ignored", booking_id, customer_id)
            return None
        return booking

    def confirm_payment(self, metadata: dict, payment_intent_ref: str | None = None) -> Booking | None:
        booking = self._booking_for_checkout(metadata)
        if booking is None:
            logger.warning("No booking for paid checkout %s", metadata)
            return None
        if booking.status == CONFIRMED:
            logger.info("Booking %s already confirmed; replay ignored", booking.id)
            return booking
        if booking.status != PENDING:
            logger.warning("Payment arrived for %s booking %s; left unchanged", booking.status, booking.id)
            return booking

        try:
            booking = self.ledger.transition(
                booking.id, {PENDING}, CONFIRMED,
                deposit_paid=True,
                payment_intent_ref=payment_intent_ref or booking.payment_intent_ref,
            )
        except StaleStateError:
            booking = self.ledger.get(booking.id)
            logger.info("Booking %s moved to %s before confirmation", booking.id, booking.status)
            return booking

        self._schedule_reminder(booking)
        return booking

    def fail_payment(self, payment_intent_ref: str | None, metadata: dict | None = None) -> Booking | None:
        if metadata and metadata.get("booking_id"):
            booking = self._booking_for_checkout(metadata)
        elif payment_intent_ref:
            booking = self.ledger.find_by_payment_ref(payment_intent_ref)
        else:
            booking = None
        if booking is None:
            logger.warning("No booking for failed payment %s", payment_intent_ref)
            return None
        if booking.status != PENDING:
            return booking
        try:
            return self.ledger.transition(booking.id, {PENDING}, CANCELLED)
        except StaleStateError:
            return self.ledger.get(booking.id)

    # ── Customer / barber actions ─────────────────────

    def cancel_booking(self, booking_id: str, customer_id: str) -> Cancellation:
        booking = self.ledger.get(booking_id)
        if booking is None or booking.customer_id != customer_id:
            raise NotAuthorizedError()
        if booking.status not in ACTIVE_STATUSES:
            raise NotCancellableError()

        hours_until = (booking.appointment_at - self.clock()).total_seconds() / 3600
        eligible = hours_until >= CANCELLATION_NOTICE_HOURS and booking.deposit_paid and bool(booking.payment_intent_ref)
        payment_ref = booking.payment_intent_ref

        booking = self.ledger.transition(booking_id, ACTIVE_STATUSES, CANCELLED)

        refunded = False
        if eligible:
            refunded = self._refund(booking, payment_ref)

        try:
            self.waitlist.on_slot_freed(booking.barber_id, booking.appointment_date, booking.appointment_time)
        except Exception as e:
            logger.error("Waitlist match after cancelling %s failed: %s", booking_id, e)

        return Cancellation(booking=booking, refunded=refunded)

    def complete_booking(self, booking_id: str, barber_id: str) -> Booking:
        booking = self.ledger.get(booking_id)
        if booking is None or booking.barber_id != barber_id:
            raise NotAuthorizedError()
        if booking.status not in ACTIVE_STATUSES:
            raise InvalidTransitionError()
        return self.ledger.transition(booking_id, ACTIVE_STATUSES, COMPLETED)

    def list_bookings(self, customer_id: str | None = None, barber_id: str | None = None) -> list[Booking]:
        return self.ledger.list_for(customer_id=customer_id, barber_id=barber_id)

    # ── Best-effort side effects ──────────────────────

    def _refund(self, booking: Booking, payment_ref: str) -> bool:
        try:
            intent = self.gateway.retrieve_payment_intent(payment_ref)
            if not intent.charge_ref:
                logger.warning("Booking %s has no charge to refund", booking.id)
                return False
            refund_id = self.gateway.create_refund(intent.charge_ref, idempotency_key=f"refund-{booking.id}")
        except Exception as e:
            logger.error("Refund for booking %s failed: %s", booking.id, e)
            return False
        logger.info("Booking %s refunded (%s)", booking.id, refund_id)
        return True

    def _schedule_reminder(self, booking: Booking) -> None:
        try:
            customer = self.db.get(User, booking.customer_id)
            if customer is None:
                logger.warning("No contact record for customer %s; reminder skipped", booking.customer_id)
                return
            barber = self.db.get(User, booking.barber_id)
            service = self.db.get(Service, booking.service_id)
            self.notifier.send_reminder(
                booking, customer,
                send_at=booking.appointment_at - timedelta(hours=REMINDER_LEAD_HOURS),
                now=self.clock(),
                service_name=service.name if service else "Your appointment",
                barber_name=barber.full_name if barber else "your barber",
            )
        except Exception as e:
            logger.error("Reminder for booking %s failed: %s", booking.id, e)
