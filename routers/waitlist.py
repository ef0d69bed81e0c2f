from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.deps import get_waitlist
from app.schemas import WaitlistOut
from app.waitlist import WaitlistMatcher

router = APIRouter()

class JoinWaitlistBody(BaseModel):
    customer_id: str
    barber_id: str
    preferred_date: date
    preferred_time_range: str = "any"

@router.post("", status_code=201, response_model=WaitlistOut)
def join_waitlist(body: JoinWaitlistBody, waitlist: WaitlistMatcher = Depends(get_waitlist)):
    """Ask to be alerted when a slot with this barber frees up on preferred_date."""
    entry = waitlist.join(body.customer_id, body.barber_id, body.preferred_date, body.preferred_time_range)
    return WaitlistOut.model_validate(entry)
