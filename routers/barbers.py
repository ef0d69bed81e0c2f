from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app import catalog
from app.db import get_db
from app.exceptions import ValidationError
from app.schemas import AvailabilityOut, BarberDetailOut, BarberOut, ServiceOut
from app.slots import parse_time

router = APIRouter()

class AvailabilityBody(BaseModel):
    start_time: str | None = None  # "HH:MM"
    end_time: str | None = None
    is_available: bool | None = None

class CreateServiceBody(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    price: int = Field(..., description="Price in minor currency units")
    duration_minutes: int

class ServiceActiveBody(BaseModel):
    is_active: bool

class ProfileBody(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    bio: str | None = None
    instagram_handle: str | None = None

def _time_or_none(value: str | None):
    if value is None:
        return None
    try:
        return parse_time(value)
    except ValueError as e:
        raise ValidationError(str(e))

def _detail(profile: dict) -> BarberDetailOut:
    services = [ServiceOut.model_validate(s) for s in profile.pop("services")]
    return BarberDetailOut(**profile, services=services)

@router.get("", response_model=list[BarberOut])
def list_barbers(db: Session = Depends(get_db)):
    """Barber directory, highest rated first."""
    return [BarberOut(**p) for p in catalog.list_barbers(db)]

@router.get("/{barber_id}", response_model=BarberDetailOut)
def get_barber(barber_id: str, db: Session = Depends(get_db)):
    return _detail(catalog.get_barber(db, barber_id))

@router.put("/{barber_id}/profile", response_model=BarberDetailOut)
def put_profile(barber_id: str, body: ProfileBody, db: Session = Depends(get_db)):
    # Omitted fields are left as they are; an empty string clears phone/bio/instagram
    profile = catalog.update_barber_profile(
        db, barber_id,
        full_name=body.full_name, phone=body.phone, bio=body.bio, instagram_handle=body.instagram_handle,
    )
    return _detail(profile)

@router.get("/{barber_id}/availability", response_model=list[AvailabilityOut])
def get_availability(barber_id: str, db: Session = Depends(get_db)):
    return [AvailabilityOut.model_validate(r) for r in catalog.list_availability(db, barber_id)]

@router.put("/{barber_id}/availability/{day_of_week}", response_model=AvailabilityOut)
def put_availability(barber_id: str, day_of_week: int, body: AvailabilityBody, db: Session = Depends(get_db)):
    """Upsert the barber's hours for one weekday (0=Sunday .. 6=Saturday)."""
    rule = catalog.upsert_availability(
        db, barber_id, day_of_week,
        start_time=_time_or_none(body.start_time),
        end_time=_time_or_none(body.end_time),
        is_available=body.is_available,
    )
    return AvailabilityOut.model_validate(rule)

@router.get("/{barber_id}/services", response_model=list[ServiceOut])
def get_services(
    barber_id: str,
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    return [ServiceOut.model_validate(s) for s in catalog.list_services(db, barber_id, include_inactive)]

@router.post("/{barber_id}/services", status_code=201, response_model=ServiceOut)
def post_service(barber_id: str, body: CreateServiceBody, db: Session = Depends(get_db)):
    service = catalog.create_service(
        db, barber_id, body.name, body.price, body.duration_minutes, description=body.description,
    )
    return ServiceOut.model_validate(service)

@router.post("/{barber_id}/services/{service_id}/active", response_model=ServiceOut)
def set_service_active(barber_id: str, service_id: str, body: ServiceActiveBody, db: Session = Depends(get_db)):
    # Deactivated services stay for history but cannot be booked
    service = catalog.set_service_active(db, service_id, barber_id, body.is_active)
    return ServiceOut.model_validate(service)
