import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import LOG_LEVEL
from app.db import init_db
from app.exceptions import BookingError
from routers import barbers, bookings, payments, reviews, slots, waitlist

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("stripe").setLevel(logging.WARNING)

app = FastAPI(title="Barber Booking API", version="0.1.0")

app.include_router(slots.router, prefix="/slots", tags=["slots"])
app.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])
app.include_router(barbers.router, prefix="/barbers", tags=["barbers"])
app.include_router(waitlist.router, prefix="/waitlist", tags=["waitlist"])
app.include_router(reviews.router, prefix="/reviews", tags=["reviews"])

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})

@app.on_event("startup")
def on_startup():
    if os.getenv("SKIP_DB_INIT") == "1":
        return
    init_db()

@app.get("/")
def root():
    return {"ok": True, "service": "barber-booking-api"}
