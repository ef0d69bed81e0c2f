from datetime import date, datetime, time, timedelta

import pytest

from app.exceptions import (
    InvalidTransitionError, NotAuthorizedError, NotCancellableError, PaymentSetupError,
    ServiceNotFoundError, SlotTakenError, ValidationError,
)
from app.models import Booking, CANCELLED, COMPLETED, CONFIRMED, PENDING
from app.payments import calculate_deposit
from conftest import MONDAY


def _create(service, customer_id="c-1", at="09:00"):
    return service.create_booking("b-1", "svc-1", customer_id, MONDAY, at)

def _checkout_metadata(gateway, n=-1):
    return gateway.sessions[n]["metadata"]


def test_deposit_is_half_rounded_half_up():
    assert calculate_deposit(4000) == 2000
    assert calculate_deposit(1999) == 1000
    assert calculate_deposit(25) == 13


# create

def test_create_booking_starts_pending_checkout(booking_service, shop, gateway):
    created = _create(booking_service)

    booking = created.booking
    assert booking.status == PENDING
    assert booking.deposit_paid is False
    assert booking.total_price == 4000
    assert booking.appointment_time == time(9, 0)
    assert created.payment_session_ref == "cs_test_1"
    assert booking.payment_intent_ref == "cs_test_1"

    sent = gateway.sessions[0]
    assert sent["amount"] == 2000
    assert sent["currency"] == "usd"
    assert sent["metadata"]["appointment_time"] == "09:00"
    assert sent["metadata"]["customer_id"] == "c-1"

def test_second_create_for_same_slot_is_rejected_before_payment(booking_service, shop, gateway):
    _create(booking_service)
    with pytest.raises(SlotTakenError):
        _create(booking_service, customer_id="c-2", at="09:00:00")
    assert len(gateway.sessions) == 1

def test_concurrent_creates_both_past_the_check_only_one_lands(booking_service, shop, gateway, monkeypatch, test_db_session):
    # Both requests see a free slot; the store decides
    monkeypatch.setattr(booking_service.ledger, "find_conflict", lambda *a: None)
    _create(booking_service)
    with pytest.raises(SlotTakenError):
        _create(booking_service, customer_id="c-2")

    assert len(gateway.sessions) == 2
    live = test_db_session.query(Booking).filter(Booking.status.in_([PENDING, CONFIRMED])).all()
    assert [b.customer_id for b in live] == ["c-1"]

def test_gateway_failure_creates_nothing(booking_service, shop, gateway, test_db_session):
    gateway.fail_checkout = True
    with pytest.raises(PaymentSetupError):
        _create(booking_service)
    assert test_db_session.query(Booking).count() == 0

def test_create_rejects_inactive_or_foreign_service(booking_service, shop, make_service):
    make_service("svc-off", is_active=False)
    make_service("svc-other", barber_id="b-2")
    with pytest.raises(ServiceNotFoundError):
        booking_service.create_booking("b-1", "svc-off", "c-1", MONDAY, "09:00")
    with pytest.raises(ServiceNotFoundError):
        booking_service.create_booking("b-1", "svc-other", "c-1", MONDAY, "09:00")

@pytest.mark.parametrize("kwargs", [
    {"appointment_time": "09:10"},
    {"appointment_time": "nine"},
    {"appointment_date": date(2029, 12, 31)},
    {"total_price": 3000},
])
def test_create_rejects_bad_requests(booking_service, shop, kwargs):
    args = {"barber_id": "b-1", "service_id": "svc-1", "customer_id": "c-1",
            "appointment_date": MONDAY, "appointment_time": "09:00"}
    args.update(kwargs)
    with pytest.raises(ValidationError):
        booking_service.create_booking(**args)


# payment callbacks

def test_checkout_metadata_carries_booking_id(booking_service, shop, gateway):
    created = _create(booking_service)
    assert _checkout_metadata(gateway)["booking_id"] == created.booking.id

def test_confirm_payment_confirms_and_schedules_reminder(booking_service, shop, gateway, notifier):
    booking_id = _create(booking_service).booking.id

    booking = booking_service.confirm_payment(_checkout_metadata(gateway), "pi_123")

    assert booking.id == booking_id
    assert booking.status == CONFIRMED
    assert booking.deposit_paid is True
    assert booking.payment_intent_ref == "pi_123"
    assert notifier.reminders == [
        {"booking_id": booking_id, "to": "c-1", "send_at": datetime(2030, 1, 6, 9, 0)}
    ]

def test_confirm_payment_replay_is_a_noop(booking_service, shop, gateway, notifier):
    _create(booking_service)
    first = booking_service.confirm_payment(_checkout_metadata(gateway), "pi_123")
    again = booking_service.confirm_payment(_checkout_metadata(gateway), "pi_123")

    assert again.id == first.id
    assert again.status == CONFIRMED
    assert len(notifier.reminders) == 1

def test_reminder_failure_does_not_undo_confirmation(booking_service, shop, gateway, notifier):
    notifier.fail = True
    _create(booking_service)
    booking = booking_service.confirm_payment(_checkout_metadata(gateway), "pi_123")
    assert booking.status == CONFIRMED

def test_confirm_for_unknown_checkout_returns_none(booking_service, shop):
    assert booking_service.confirm_payment({"booking_id": "bk-missing", "customer_id": "c-1"}, "pi_x") is None

def test_confirm_with_malformed_metadata(booking_service, shop):
    with pytest.raises(ValidationError):
        booking_service.confirm_payment({"barber_id": "b-1"}, "pi_x")

def test_confirm_ignores_metadata_naming_another_customer(booking_service, shop, gateway):
    _create(booking_service)
    metadata = dict(_checkout_metadata(gateway), customer_id="c-2")
    assert booking_service.confirm_payment(metadata, "pi_x") is None
    assert booking_service.list_bookings(customer_id="c-1")[0].status == PENDING

def test_late_confirm_for_cancelled_checkout_leaves_rebooked_slot_alone(booking_service, shop, gateway):
    first = _create(booking_service)
    first_metadata = _checkout_metadata(gateway)
    booking_service.cancel_booking(first.booking.id, "c-1")
    second = _create(booking_service)

    late = booking_service.confirm_payment(first_metadata, "pi_first")

    assert late.id == first.booking.id
    assert late.status == CANCELLED
    rebooked = booking_service.ledger.get(second.booking.id)
    assert rebooked.status == PENDING
    assert rebooked.deposit_paid is False
    assert rebooked.payment_intent_ref == "cs_test_2"

def test_fail_payment_cancels_pending_and_is_idempotent(booking_service, shop):
    created = _create(booking_service)

    once = booking_service.fail_payment(created.booking.payment_intent_ref)
    twice = booking_service.fail_payment(created.booking.payment_intent_ref)

    assert once.status == CANCELLED
    assert twice.status == CANCELLED
    assert twice.id == once.id
    # Slot is free again
    assert time(9, 0) in booking_service.get_available_slots("b-1", MONDAY, "svc-1")

def test_fail_payment_matches_on_metadata_booking_id(booking_service, shop, gateway):
    created = _create(booking_service)
    booking = booking_service.fail_payment("pi_unknown", _checkout_metadata(gateway))
    assert booking.id == created.booking.id
    assert booking.status == CANCELLED

def test_replayed_failure_does_not_cancel_rebooked_slot(booking_service, shop, gateway):
    _create(booking_service)
    first_metadata = _checkout_metadata(gateway)
    booking_service.fail_payment("pi_first", first_metadata)
    second = _create(booking_service)

    booking_service.fail_payment("pi_first", first_metadata)

    assert booking_service.ledger.get(second.booking.id).status == PENDING
    assert time(9, 0) not in booking_service.get_available_slots("b-1", MONDAY, "svc-1")

def test_fail_payment_leaves_confirmed_booking_alone(booking_service, shop, make_booking):
    make_booking(status="confirmed", deposit_paid=True, payment_intent_ref="pi_ok")
    assert booking_service.fail_payment("pi_ok").status == CONFIRMED
    assert booking_service.fail_payment("pi_nothing") is None
    assert booking_service.fail_payment(None) is None

def test_booked_times_lists_live_bookings_only(booking_service, shop, make_booking):
    make_booking("bk-1", at=time(10, 0))
    make_booking("bk-2", at=time(9, 0), status="confirmed")
    make_booking("bk-3", at=time(11, 0), status="cancelled")
    assert booking_service.booked_times("b-1", MONDAY) == [time(9, 0), time(10, 0)]


# cancel

def _paid_booking(make_booking):
    return make_booking(status="confirmed", deposit_paid=True, payment_intent_ref="pi_paid")

def test_cancel_exactly_24h_ahead_refunds(booking_service, shop, make_booking, clock, gateway):
    _paid_booking(make_booking)
    clock.now = datetime(2030, 1, 6, 9, 0)

    result = booking_service.cancel_booking("bk-1", "c-1")

    assert result.refunded is True
    assert result.booking.status == CANCELLED
    assert gateway.refunds == [("ch_pi_paid", "refund-bk-1")]

def test_cancel_just_inside_24h_does_not_refund(booking_service, shop, make_booking, clock, gateway):
    _paid_booking(make_booking)
    clock.now = datetime(2030, 1, 7, 9, 0) - timedelta(hours=23, minutes=59)

    result = booking_service.cancel_booking("bk-1", "c-1")

    assert result.refunded is False
    assert result.booking.status == CANCELLED
    assert gateway.refunds == []

def test_cancel_with_short_notice_still_runs_waitlist(booking_service, shop, make_booking, make_waitlist_entry, clock, notifier):
    _paid_booking(make_booking)
    make_waitlist_entry()
    clock.now = datetime(2030, 1, 6, 23, 0)  # 10 hours before

    result = booking_service.cancel_booking("bk-1", "c-1")

    assert result.booking.status == CANCELLED
    assert result.refunded is False
    assert notifier.waitlist_alerts == [{"entry_id": "w-1", "date": MONDAY, "time": time(9, 0)}]

def test_refund_failure_still_cancels_and_matches_waitlist(booking_service, shop, make_booking, make_waitlist_entry, gateway, notifier):
    _paid_booking(make_booking)
    make_waitlist_entry()
    gateway.fail_refund = True

    result = booking_service.cancel_booking("bk-1", "c-1")

    assert result.refunded is False
    assert result.booking.status == CANCELLED
    assert len(notifier.waitlist_alerts) == 1

def test_unpaid_pending_cancel_does_not_refund(booking_service, shop, make_booking, gateway):
    make_booking(status="pending")
    result = booking_service.cancel_booking("bk-1", "c-1")
    assert result.refunded is False
    assert gateway.refunds == []

def test_cancel_someone_elses_or_missing_booking(booking_service, shop, make_booking):
    make_booking()
    with pytest.raises(NotAuthorizedError):
        booking_service.cancel_booking("bk-1", "c-2")
    with pytest.raises(NotAuthorizedError):
        booking_service.cancel_booking("nope", "c-1")

@pytest.mark.parametrize("status", ["completed", "cancelled"])
def test_cancel_terminal_booking(booking_service, shop, make_booking, status):
    make_booking(status=status)
    with pytest.raises(NotCancellableError):
        booking_service.cancel_booking("bk-1", "c-1")


# complete

def test_barber_completes_booking(booking_service, shop, make_booking):
    make_booking(status="confirmed")
    assert booking_service.complete_booking("bk-1", "b-1").status == COMPLETED

def test_other_barber_cannot_complete(booking_service, shop, make_booking):
    make_booking()
    with pytest.raises(NotAuthorizedError):
        booking_service.complete_booking("bk-1", "b-2")

def test_completing_cancelled_booking_is_invalid(booking_service, shop, make_booking):
    make_booking(status="cancelled")
    with pytest.raises(InvalidTransitionError):
        booking_service.complete_booking("bk-1", "b-1")
