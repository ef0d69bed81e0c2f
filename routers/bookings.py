from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.booking_service import BookingService
from app.deps import get_booking_service
from app.schemas import BookingOut

router = APIRouter()

class CreateBookingBody(BaseModel):
    barber_id: str
    service_id: str
    customer_id: str
    appointment_date: date
    appointment_time: str  # "HH:MM"
    total_price: int | None = None

class CancelBody(BaseModel):
    customer_id: str

class CompleteBody(BaseModel):
    barber_id: str

@router.post("", status_code=201)
def create_booking(body: CreateBookingBody, service: BookingService = Depends(get_booking_service)):
    """
    Reserve a slot and start the deposit checkout:
      - 409 if a pending/confirmed booking already holds the slot
      - 502 if the payment session cannot be created (nothing is stored)
    The booking stays pending until the payment webhook confirms it.
    """
    created = service.create_booking(
        barber_id=body.barber_id,
        service_id=body.service_id,
        customer_id=body.customer_id,
        appointment_date=body.appointment_date,
        appointment_time=body.appointment_time,
        total_price=body.total_price,
    )
    return {
        "booking_id": created.booking.id,
        "status": created.booking.status,
        "payment_session_ref": created.payment_session_ref,
        "checkout_url": created.checkout_url,
    }

@router.get("", response_model=list[BookingOut])
def list_bookings(
    customer_id: str | None = Query(default=None),
    barber_id: str | None = Query(default=None),
    service: BookingService = Depends(get_booking_service),
):
    return [BookingOut.model_validate(b) for b in service.list_bookings(customer_id, barber_id)]

@router.post("/{booking_id}/cancel")
def cancel_booking(booking_id: str, body: CancelBody, service: BookingService = Depends(get_booking_service)):
    """Cancel as the customer. Refunds the deposit with 24h+ notice."""
    result = service.cancel_booking(booking_id, body.customer_id)
    return {"booking_id": booking_id, "status": result.booking.status, "refunded": result.refunded}

@router.post("/{booking_id}/complete")
def complete_booking(booking_id: str, body: CompleteBody, service: BookingService = Depends(get_booking_service)):
    booking = service.complete_booking(booking_id, body.barber_id)
    return {"booking_id": booking_id, "status": booking.status}
