import logging
from datetime import time

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from app.config import DATABASE_URL

logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    # Import models here to create tables
    from app.models import User, Service, AvailabilityRule
    Base.metadata.create_all(bind=engine)

    # Seed minimal data if empty
    from sqlalchemy.orm import Session
    db: Session = SessionLocal()
    try:
        if not db.query(User).first():
            db.add_all([
                User(id="u-demo", role="customer", full_name="Demo Customer", email="demo@example.com"),
                User(id="b-demo", role="barber", full_name="Demo Barber", email="barber@example.com",
                     bio="Classic cuts and beard trims."),
            ])
            db.flush()
        if not db.query(Service).first():
            db.add_all([
                Service(id="svc-cut", barber_id="b-demo", name="Haircut", price=4000, duration_minutes=30),
                Service(id="svc-beard", barber_id="b-demo", name="Beard Trim", price=2000, duration_minutes=15),
            ])
        if not db.query(AvailabilityRule).first():
            # Monday (1) through Friday (5), 09:00-17:00
            db.add_all([
                AvailabilityRule(
                    barber_id="b-demo", day_of_week=day,
                    start_time=time(9, 0), end_time=time(17, 0), is_available=True,
                )
                for day in range(1, 6)
            ])
        db.commit()
        logger.info("Database initialised")
    finally:
        db.close()
