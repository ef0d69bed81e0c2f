# tests/conftest.py
import json
import os
import tempfile
from datetime import date, datetime, time

os.environ["SKIP_DB_INIT"] = "1"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.booking_service import BookingService
from app.db import get_db
from app.deps import get_clock, get_notifier, get_payment_gateway
from app.main import app
from app.models import Base, AvailabilityRule, Booking, Service, User, WaitlistEntry
from app.payments import (
    CheckoutSession, GatewayError, PaymentGateway, PaymentIntent, WebhookSignatureError,
)

# Tuesday; the Monday below is six days ahead
NOW = datetime(2030, 1, 1, 9, 0)
MONDAY = date(2030, 1, 7)


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


class FakeGateway(PaymentGateway):
    def __init__(self):
        self.sessions = []
        self.refunds = []
        self.fail_checkout = False
        self.fail_refund = False

    def create_checkout_session(self, amount, currency, metadata, description, success_url, cancel_url):
        if self.fail_checkout:
            raise GatewayError("gateway unavailable")
        n = len(self.sessions) + 1
        session = CheckoutSession(id=f"cs_test_{n}", url=f"https://checkout.test/{n}", payment_intent=None)
        self.sessions.append({"amount": amount, "currency": currency, "metadata": metadata, "session": session})
        return session

    def retrieve_payment_intent(self, ref):
        return PaymentIntent(id=ref, charge_ref=f"ch_{ref}")

    def create_refund(self, charge_ref, idempotency_key=None):
        if self.fail_refund:
            raise GatewayError("refund failed")
        self.refunds.append((charge_ref, idempotency_key))
        return f"re_{len(self.refunds)}"

    def construct_event(self, payload, signature):
        if signature != "valid":
            raise WebhookSignatureError("bad signature")
        return json.loads(payload)


class FakeNotifier:
    def __init__(self):
        self.reminders = []
        self.waitlist_alerts = []
        self.fail = False

    def send_reminder(self, booking, recipient, send_at, now, service_name="", barber_name=""):
        if self.fail:
            raise RuntimeError("notifier down")
        self.reminders.append({"booking_id": booking.id, "to": recipient.id, "send_at": send_at})
        return {"email_sent": True, "sms_sent": False}

    def send_waitlist_alert(self, entry, recipient, slot_date, slot_time, barber_name=""):
        if self.fail:
            raise RuntimeError("notifier down")
        self.waitlist_alerts.append({"entry_id": entry.id, "date": slot_date, "time": slot_time})
        return {"email_sent": True, "sms_sent": False}


@pytest.fixture(scope="function")
def test_db_session():
    # temp DB
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_url = f"sqlite:///{tmp.name}"

    # test engine / Session
    engine = create_engine(db_url, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
        os.unlink(tmp.name)

@pytest.fixture
def gateway():
    return FakeGateway()

@pytest.fixture
def notifier():
    return FakeNotifier()

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def booking_service(test_db_session, gateway, notifier, clock):
    return BookingService(test_db_session, gateway, notifier, clock=clock)

@pytest.fixture(scope="function")
def client(test_db_session, gateway, notifier, clock):
    def override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()

# Factories
@pytest.fixture
def make_user(test_db_session):
    def _make_user(user_id="c-1", role="customer", full_name="Customer One", email=None, phone=None):
        u = User(id=user_id, role=role, full_name=full_name, email=email or f"{user_id}@example.com", phone=phone)
        test_db_session.add(u)
        test_db_session.commit()
        return u
    return _make_user

@pytest.fixture
def make_service(test_db_session):
    def _make_service(service_id="svc-1", barber_id="b-1", price=4000, duration_minutes=30, is_active=True):
        s = Service(id=service_id, barber_id=barber_id, name="Haircut", price=price,
                    duration_minutes=duration_minutes, is_active=is_active)
        test_db_session.add(s)
        test_db_session.commit()
        return s
    return _make_service

@pytest.fixture
def make_availability(test_db_session):
    def _make_availability(barber_id="b-1", day_of_week=1, start=time(9, 0), end=time(17, 0), is_available=True):
        r = AvailabilityRule(barber_id=barber_id, day_of_week=day_of_week,
                             start_time=start, end_time=end, is_available=is_available)
        test_db_session.add(r)
        test_db_session.commit()
        return r
    return _make_availability

@pytest.fixture
def shop(make_user, make_service, make_availability):
    """Barber b-1 open 09:00-17:00 on Mondays with a 30 minute, 4000 cent haircut; customers c-1 and c-2."""
    make_user("b-1", role="barber", full_name="Barber One")
    make_user("c-1")
    make_user("c-2", full_name="Customer Two")
    make_service()
    make_availability()
    return {"barber_id": "b-1", "service_id": "svc-1", "customer_id": "c-1"}

@pytest.fixture
def make_booking(test_db_session):
    def _make_booking(booking_id="bk-1", customer_id="c-1", barber_id="b-1", service_id="svc-1",
                      on=MONDAY, at=time(9, 0), status="pending", deposit_paid=False,
                      payment_intent_ref="pi_test_1", total_price=4000):
        b = Booking(id=booking_id, customer_id=customer_id, barber_id=barber_id, service_id=service_id,
                    appointment_date=on, appointment_time=at, status=status, deposit_paid=deposit_paid,
                    payment_intent_ref=payment_intent_ref, total_price=total_price)
        test_db_session.add(b)
        test_db_session.commit()
        return b
    return _make_booking

@pytest.fixture
def make_waitlist_entry(test_db_session):
    def _make_entry(entry_id="w-1", customer_id="c-2", barber_id="b-1", preferred_date=MONDAY,
                    created_at=None, notified=False):
        e = WaitlistEntry(id=entry_id, customer_id=customer_id, barber_id=barber_id,
                          preferred_date=preferred_date, preferred_time_range="any",
                          notified=notified, created_at=created_at or NOW)
        test_db_session.add(e)
        test_db_session.commit()
        return e
    return _make_entry
