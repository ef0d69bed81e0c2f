from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.db import get_db
from app.reviews import create_review
from app.schemas import ReviewOut

router = APIRouter()

class CreateReviewBody(BaseModel):
    booking_id: str
    customer_id: str
    rating: int
    comment: str | None = None

@router.post("", status_code=201, response_model=ReviewOut)
def post_review(body: CreateReviewBody, db: Session = Depends(get_db)):
    review = create_review(db, body.booking_id, body.customer_id, body.rating, body.comment)
    return ReviewOut.model_validate(review)
