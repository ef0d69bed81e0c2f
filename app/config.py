import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./barber_booking.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Public base URL used for checkout redirects and links in notifications
APP_URL = os.getenv("APP_URL", "http://localhost:3000")

# Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))

# Booking policy
DEPOSIT_PERCENTAGE = float(os.getenv("DEPOSIT_PERCENTAGE", "0.5"))
CANCELLATION_NOTICE_HOURS = float(os.getenv("CANCELLATION_NOTICE_HOURS", "24"))
REMINDER_LEAD_HOURS = float(os.getenv("REMINDER_LEAD_HOURS", "24"))
SLOT_GRID_MINUTES = int(os.getenv("SLOT_GRID_MINUTES", "15"))
DEFAULT_SLOT_MINUTES = int(os.getenv("DEFAULT_SLOT_MINUTES", "30"))

# Notifications (Resend email + Twilio SMS)
NOTIFIER_TIMEOUT_SECONDS = float(os.getenv("NOTIFIER_TIMEOUT_SECONDS", "5"))
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "BarberBook <notifications@barberbook.com>")
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
