from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ..models import Calf, Feeding, User

logger = logging.getLogger(__name__)

AM = "AM"
PM = "PM"

def feeding_period(moment: datetime) -> str:
    return AM if moment.hour < 12 else PM

def feeding_slot(now: Optional[datetime] = None) -> Tuple[date, str]:
    """(local calendar date, AM/PM) key of the feeding slot containing `now`.

    Every read and write of "this slot's feeding" goes through here so the
    dedup key is derived one way only.
    """
    now = now or datetime.now()
    return now.date(), feeding_period(now)

def current_feeding(db: Session, calf: Calf, now: Optional[datetime] = None) -> Optional[Feeding]:
    day, period = feeding_slot(now)
    return (
        db.query(Feeding)
        .filter(Feeding.calf_id == calf.id)
        .filter(Feeding.feeding_date == day)
        .filter(Feeding.period == period)
        .first()
    )

def record_feeding(
    db: Session,
    calf: Calf,
    consumption: int,
    user: User,
    now: Optional[datetime] = None,
) -> Tuple[Feeding, bool]:
    """Upsert the calf's feeding for the current slot. Returns (feeding, created)."""
    now = now or datetime.now()
    existing = current_feeding(db, calf, now)

    if existing:
        existing.consumption = consumption
        existing.timestamp = now
        db.commit()
        logger.info("Feeding updated: calf #%s %s %s -> %s%%", calf.number, existing.feeding_date, existing.period, consumption)
        return existing, False

    day, period = feeding_slot(now)
    feeding = Feeding(
        calf_id=calf.id,
        calf_number=calf.number,
        calf_name=calf.name,
        timestamp=now,
        feeding_date=day,
        period=period,
        consumption=consumption,
        notes=None,
        treatment=False,
        user_id=user.id,
        user_name=user.name,
    )
    db.add(feeding)
    db.commit()
    logger.info("Feeding recorded: calf #%s %s %s %s%% by %s", calf.number, day, period, consumption, user.name)
    return feeding, True

def update_current_notes(db: Session, calf: Calf, notes: Optional[str], now: Optional[datetime] = None) -> Feeding:
    existing = current_feeding(db, calf, now)
    if not existing:
        raise LookupError(f"No feeding recorded for calf #{calf.number} this period.")
    existing.notes = notes.strip() if notes and notes.strip() else None
    db.commit()
    return existing

def toggle_current_treatment(db: Session, calf: Calf, now: Optional[datetime] = None) -> Feeding:
    existing = current_feeding(db, calf, now)
    if not existing:
        raise LookupError(f"No feeding recorded for calf #{calf.number} this period.")
    existing.treatment = not existing.treatment
    db.commit()
    return existing
