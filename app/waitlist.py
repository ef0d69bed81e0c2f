import logging
from datetime import date, time

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.exceptions import ValidationError
from app.models import User, WaitlistEntry

logger = logging.getLogger(__name__)


class WaitlistMatcher:
    """
    Hands a freed slot to the oldest un-notified waitlist entry for that
    barber and date. One entry per freed slot; the entry is marked notified
    before the alert goes out and stays marked even if delivery fails.
    """

    def __init__(self, db: Session, notifier):
        self.db = db
        self.notifier = notifier

    def join(self, customer_id: str, barber_id: str, preferred_date: date, preferred_time_range: str) -> WaitlistEntry:
        existing = (
            self.db.query(WaitlistEntry)
            .filter(
                WaitlistEntry.customer_id == customer_id,
                WaitlistEntry.barber_id == barber_id,
                WaitlistEntry.preferred_date == preferred_date,
                WaitlistEntry.notified.is_(False),
            )
            .first()
        )
        if existing:
            raise ValidationError("You are already on the waitlist for this date.")
        entry = WaitlistEntry(
            customer_id=customer_id, barber_id=barber_id,
            preferred_date=preferred_date, preferred_time_range=preferred_time_range,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def _claim_oldest(self, barber_id: str, freed_date: date) -> WaitlistEntry | None:
        candidates = (
            self.db.query(WaitlistEntry.id)
            .filter(
                WaitlistEntry.barber_id == barber_id,
                WaitlistEntry.preferred_date == freed_date,
                WaitlistEntry.notified.is_(False),
            )
            .order_by(WaitlistEntry.created_at.asc())
            .limit(5)
            .all()
        )
        for (entry_id,) in candidates:
            res = self.db.execute(
                update(WaitlistEntry)
                .where(WaitlistEntry.id == entry_id, WaitlistEntry.notified.is_(False))
                .values(notified=True)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 1:
                self.db.commit()
                return self.db.get(WaitlistEntry, entry_id)
            # Claimed by a concurrent matcher; try the next one
            self.db.rollback()
        return None

    def on_slot_freed(self, barber_id: str, freed_date: date, freed_time: time) -> WaitlistEntry | None:
        entry = self._claim_oldest(barber_id, freed_date)
        if entry is None:
            return None
        self.db.refresh(entry)
        logger.info("Waitlist entry %s notified for %s %s", entry.id, freed_date, freed_time)

        try:
            customer = self.db.get(User, entry.customer_id)
            barber = self.db.get(User, barber_id)
            if customer is None:
                logger.warning("Waitlist entry %s has no contact record", entry.id)
            else:
                self.notifier.send_waitlist_alert(
                    entry, customer, freed_date, freed_time,
                    barber_name=barber.full_name if barber else "your barber",
                )
        except Exception as e:
            logger.error("Waitlist alert for entry %s failed: %s", entry.id, e)
        return entry
