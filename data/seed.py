from __future__ import annotations

import random
from datetime import datetime, timedelta
from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from calf_tracker.db import Base, engine, SessionLocal
from calf_tracker.models import Calf, Feeding, Protocol, Setting, User
from calf_tracker.services.feedings import feeding_period
from calf_tracker.services.settings import FarmSettings

random.seed(42)

DEFAULT_PROTOCOLS = [
    ("Colostrum", "feedings", 3),
    ("Bottles", "days", 5),
    ("Regular", "days", 35),
    ("PM Only", "days", 40),
    ("Weaned", "days", 41),
]

def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

def seed_protocols(db: Session):
    for i, (name, kind, value) in enumerate(DEFAULT_PROTOCOLS, start=1):
        db.add(Protocol(name=name, threshold_type=kind, threshold_value=value, order=i))

def seed_settings(db: Session, next_number: int):
    store = FarmSettings(next_calf_number=next_number).as_store()
    for key, value in store.items():
        db.add(Setting(key=key, value=value))

def seed_users(db: Session):
    db.add(User(name="Admin", role="admin", pin="1234"))
    db.add(User(name="Maria", role="user"))
    db.add(User(name="Tom", role="user"))
    db.commit()

def add_feeding(db: Session, calf: Calf, user: User, at: datetime, consumption: int, notes=None, treatment=False):
    db.add(Feeding(
        calf_id=calf.id,
        calf_number=calf.number,
        calf_name=calf.name,
        timestamp=at,
        feeding_date=at.date(),
        period=feeding_period(at),
        consumption=int(min(100, max(0, consumption))),
        notes=notes,
        treatment=treatment,
        user_id=user.id,
        user_name=user.name,
    ))

def feeding_times(birth: datetime, now: datetime):
    """07:00 and 17:00 slots from the day after birth up to now."""
    day = (birth + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    while day <= now:
        for hour in (7, 17):
            at = day + timedelta(hours=hour, minutes=random.randint(0, 40))
            if at <= now:
                yield at
        day += timedelta(days=1)

def seed_scenarios(db: Session, first_number: int) -> int:
    now = datetime.now()
    users = db.query(User).all()

    # Fixed demo calves, one per protocol plus flag scenarios
    demo_calves = [
        # A) newborn on colostrum
        dict(name="Daisy", age=timedelta(hours=20), scenario="healthy"),
        # B) bottle calf drinking well
        dict(name=None, age=timedelta(days=3), scenario="healthy"),
        # C) regular calf with two low feedings in a row
        dict(name="Clover", age=timedelta(days=12), scenario="low"),
        # D) regular calf with a note on the latest feeding
        dict(name=None, age=timedelta(days=20), scenario="note"),
        # E) PM-only calf nobody has fed since yesterday
        dict(name="Buttercup", age=timedelta(days=38), scenario="missed"),
        # F) weaned
        dict(name=None, age=relativedelta(months=2), scenario="healthy"),
    ]

    number = first_number
    for c in demo_calves:
        calf = Calf(
            number=number,
            name=c["name"],
            birth_date=now - c["age"],
            birth_notes="Assisted birth" if c["scenario"] == "low" else None,
            status="active",
        )
        db.add(calf)
        db.commit()
        number += 1

        times = list(feeding_times(calf.birth_date, now))
        if c["scenario"] == "missed":
            times = [t for t in times if t <= now - timedelta(hours=20)]

        for i, at in enumerate(times):
            consumption = random.choice([75, 100, 100])
            notes = None
            treatment = False
            last_two = i >= len(times) - 2

            if c["scenario"] == "low" and last_two:
                consumption = random.choice([0, 25, 50])
                treatment = i == len(times) - 1
            elif c["scenario"] == "note" and i == len(times) - 1:
                notes = "Loose stool, watch closely"

            add_feeding(db, calf, random.choice(users), at, consumption, notes, treatment)

    # one archived calf so the status filter has something to show
    db.add(Calf(number=number, name="Sold", birth_date=now - timedelta(days=90), status="archived"))
    number += 1

    db.commit()
    return number

def main():
    reset_db()
    db = SessionLocal()
    try:
        seed_protocols(db)
        seed_users(db)
        next_number = seed_scenarios(db, first_number=3041)
        seed_settings(db, next_number)
        db.commit()
        print("Seed complete: protocols, users and demo calves created.")
        print("Users: Admin (PIN 1234), Maria, Tom")
        print(f"Next calf number: {next_number}")
    finally:
        db.close()

if __name__ == "__main__":
    main()
