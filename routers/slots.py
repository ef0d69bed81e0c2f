from datetime import date

from fastapi import APIRouter, Depends, Query

from app.booking_service import BookingService
from app.deps import get_booking_service
from app.schemas import SlotOut, SlotsOut
from app.slots import format_hhmm

router = APIRouter()

@router.get("", response_model=SlotsOut)
def list_slots(
    barber_id: str = Query(...),
    on_date: date = Query(..., alias="date", description="ISO calendar date"),
    service_id: str | None = Query(default=None),
    service: BookingService = Depends(get_booking_service),
):
    """
    Candidate slots for a barber on a date, sized by the service duration:
      - slots: free start times only, ascending ("HH:MM")
      - board: every candidate with available true/false

    Empty when the barber has no open hours that weekday.
    """
    board = service.get_slot_board(barber_id, on_date, service_id)
    return SlotsOut(
        barber_id=barber_id,
        date=on_date,
        slots=[format_hhmm(s.time) for s in board if s.available],
        board=[SlotOut(time=format_hhmm(s.time), available=s.available) for s in board],
    )

@router.get("/booked")
def list_booked(
    barber_id: str = Query(...),
    on_date: date = Query(..., alias="date"),
    service: BookingService = Depends(get_booking_service),
):
    # Times held by pending or confirmed bookings
    taken = service.booked_times(barber_id, on_date)
    return {"booked_slots": [t.strftime("%H:%M:%S") for t in taken]}
