"""
Outbound notifications (email via Resend, SMS via Twilio).

Everything here is fire-and-forget: each send returns a result dict with
email_sent / sms_sent and the error text, and never raises for delivery
problems. Email goes through the Resend SDK; SMS calls are bounded by
NOTIFIER_TIMEOUT_SECONDS.
"""
import logging
from datetime import date, datetime, time

import httpx
import requests
import resend
from resend.exceptions import ResendError

from app.config import (
    APP_URL, EMAIL_FROM_ADDRESS, NOTIFIER_TIMEOUT_SECONDS, RESEND_API_KEY,
    TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER,
)
from app.slots import format_hhmm

logger = logging.getLogger(__name__)

TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def _pretty_date(d: date) -> str:
    return d.strftime("%A, %B %d").replace(" 0", " ")


class Notifier:
    def __init__(self, resend_api_key: str | None = RESEND_API_KEY,
                 from_address: str = EMAIL_FROM_ADDRESS,
                 twilio_sid: str | None = TWILIO_ACCOUNT_SID,
                 twilio_token: str | None = TWILIO_AUTH_TOKEN,
                 twilio_phone: str | None = TWILIO_PHONE_NUMBER,
                 timeout: float = NOTIFIER_TIMEOUT_SECONDS,
                 transport: httpx.BaseTransport | None = None):
        self.resend_api_key = resend_api_key
        self.from_address = from_address
        self.twilio_sid = twilio_sid
        self.twilio_token = twilio_token
        self.twilio_phone = twilio_phone
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def _send_email(self, to: str, subject: str, html: str, scheduled_at: datetime | None = None):
        if not self.resend_api_key:
            return False, "RESEND_API_KEY not configured"
        email_data = {"from": self.from_address, "to": [to], "subject": subject, "html": html}
        if scheduled_at is not None:
            email_data["scheduled_at"] = scheduled_at.isoformat()
        resend.api_key = self.resend_api_key
        try:
            resend.Emails.send(email_data)
        except (ResendError, requests.RequestException) as e:
            return False, str(e)
        return True, None

    def _send_sms(self, to: str, message: str):
        if not (self.twilio_sid and self.twilio_token and self.twilio_phone):
            return False, "Twilio not configured"
        try:
            with self._client() as client:
                response = client.post(
                    TWILIO_URL.format(sid=self.twilio_sid),
                    auth=(self.twilio_sid, self.twilio_token),
                    data={"From": self.twilio_phone, "To": to, "Body": message},
                )
            response.raise_for_status()
        except httpx.HTTPError as e:
            return False, str(e)
        return True, None

    def _deliver(self, kind: str, recipient, email: tuple | None, sms: str | None) -> dict:
        result = {"email_sent": False, "sms_sent": False, "email_error": None, "sms_error": None}
        if email and recipient.email:
            ok, err = self._send_email(recipient.email, *email)
            result["email_sent"], result["email_error"] = ok, err
            if ok:
                logger.info("%s email sent to %s", kind, recipient.email)
            else:
                logger.error("Failed to send %s email to %s: %s", kind, recipient.email, err)
        if sms and recipient.phone:
            ok, err = self._send_sms(recipient.phone, sms)
            result["sms_sent"], result["sms_error"] = ok, err
            if ok:
                logger.info("%s SMS sent to %s", kind, recipient.phone)
            else:
                logger.error("Failed to send %s SMS to %s: %s", kind, recipient.phone, err)
        return result

    def send_reminder(self, booking, recipient, send_at: datetime, now: datetime,
                      service_name: str = "Your appointment", barber_name: str = "your barber") -> dict:
        """Reminder for a confirmed booking, scheduled for send_at when that is still ahead."""
        when = format_hhmm(booking.appointment_time)
        subject = f"Reminder: your appointment on {_pretty_date(booking.appointment_date)} at {when}"
        html = (
            f"<p>Hi {recipient.full_name},</p>"
            f"<p>This is a reminder of your appointment:</p>"
            f"<p><strong>Service:</strong> {service_name}<br>"
            f"<strong>Barber:</strong> {barber_name}<br>"
            f"<strong>Date:</strong> {_pretty_date(booking.appointment_date)}<br>"
            f"<strong>Time:</strong> {when}</p>"
            f"<p>If you need to cancel, please do so at least 24 hours in advance for a refund.</p>"
        )
        due = send_at <= now
        sms = None
        if due:
            sms = (
                f"BarberBook Reminder: {service_name} with {barber_name} on "
                f"{booking.appointment_date.isoformat()} at {when}."
            )
        return self._deliver("reminder", recipient, (subject, html, None if due else send_at), sms)

    def send_waitlist_alert(self, entry, recipient, slot_date: date, slot_time: time,
                            barber_name: str = "your barber") -> dict:
        when = format_hhmm(slot_time)
        subject = f"A slot just opened up with {barber_name}!"
        html = (
            f"<p>Hi {recipient.full_name},</p>"
            f"<p>A time slot you've been waiting for just became available:</p>"
            f"<p><strong>Barber:</strong> {barber_name}<br>"
            f"<strong>Date:</strong> {_pretty_date(slot_date)}<br>"
            f"<strong>Time:</strong> {when}</p>"
            f'<p><a href="{APP_URL}/book?barberId={entry.barber_id}">Book now</a> '
            f"before someone else does!</p>"
        )
        sms = f"BarberBook: a slot with {barber_name} opened on {slot_date.isoformat()} at {when}."
        return self._deliver("waitlist", recipient, (subject, html, None), sms)
