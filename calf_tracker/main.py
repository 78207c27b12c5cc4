from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Depends, Header, HTTPException, Query, Response
from sqlalchemy.orm import Session
from sqlalchemy import desc

from .db import Base, engine, get_db
from .models import Calf, Feeding, Protocol, Setting, User
from .schemas import (
    CalfCreate,
    CalfUpdate,
    FeedingCreate,
    FeedingNotes,
    ProtocolList,
    ProtocolUpdate,
    SettingsUpdate,
    UserCreate,
    UserSelect,
    UserUpdate,
)
from .services.feedings import current_feeding, record_feeding, toggle_current_treatment, update_current_notes
from .services.herd import FILTER_ALL, feeding_dict, load_farm_settings, load_snapshot
from .services.settings import NEXT_CALF_NUMBER, SettingsError, parse_setting

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Calf Tracker", version="0.5.0")
Base.metadata.create_all(bind=engine)

def calf_or_404(db: Session, number: int) -> Calf:
    calf = db.query(Calf).filter(Calf.number == number).first()
    if not calf:
        raise HTTPException(status_code=404, detail="Calf not found.")
    return calf

def user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found.")
    return user

def require_admin(
    x_user_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    # operator id only, the PIN check happens at selection time
    if x_user_id is None:
        raise HTTPException(status_code=403, detail="Admin user required.")
    user = db.query(User).filter(User.id == x_user_id).first()
    if not user or user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin user required.")
    return user

def put_setting(db: Session, key: str, value: str) -> None:
    row = db.query(Setting).filter(Setting.key == key).first()
    if row:
        row.value = value
    else:
        db.add(Setting(key=key, value=value))

def calf_dict(c: Calf) -> dict:
    return {
        "id": c.id,
        "number": c.number,
        "name": c.name,
        "birth_date": c.birth_date.isoformat(),
        "birth_notes": c.birth_notes,
        "status": c.status,
    }

def protocol_dict(p: Protocol) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "threshold_type": p.threshold_type,
        "threshold_value": p.threshold_value,
        "order": p.order,
    }

def user_dict(u: User) -> dict:
    return {"id": u.id, "name": u.name, "role": u.role, "has_pin": bool(u.pin)}

@app.get("/")
def root():
    return {"service": "Calf Tracker API", "docs": "/docs", "health": "/health"}

@app.get("/health")
def health():
    return {"ok": True}

# ---------------------------
# Calves
# ---------------------------
@app.get("/calves")
def list_calves(
    status: Optional[str] = Query(default=None, description="Filter by active/archived"),
    db: Session = Depends(get_db),
):
    q = db.query(Calf)
    if status is not None:
        q = q.filter(Calf.status == status)
    return [calf_dict(c) for c in q.order_by(Calf.birth_date).all()]

@app.post("/calves", status_code=201)
def create_calf(payload: CalfCreate, db: Session = Depends(get_db)):
    settings = load_farm_settings(db)
    number = payload.number if payload.number is not None else settings.next_calf_number

    existing = db.query(Calf).filter(Calf.number == number).first()
    if existing:
        raise HTTPException(status_code=409, detail=f"Calf number {number} already exists.")

    calf = Calf(
        number=number,
        name=(payload.name or "").strip() or None,
        birth_date=payload.birth_date or datetime.now(),
        birth_notes=(payload.birth_notes or "").strip() or None,
        status="active",
    )
    db.add(calf)

    # custom numbers leave the counter alone unless they used it up
    if number == settings.next_calf_number:
        put_setting(db, NEXT_CALF_NUMBER, str(number + 1))
    db.commit()

    logger.info("Calf created: #%s%s", calf.number, f" ({calf.name})" if calf.name else "")
    return calf_dict(calf)

@app.patch("/calves/{number}")
def update_calf(number: int, payload: CalfUpdate, db: Session = Depends(get_db)):
    calf = calf_or_404(db, number)
    if payload.name is not None:
        calf.name = payload.name.strip() or None
    if payload.status is not None and payload.status != calf.status:
        logger.info("Calf #%s status %s -> %s", calf.number, calf.status, payload.status)
        calf.status = payload.status
    db.commit()
    return calf_dict(calf)

@app.get("/calves/{number}/feedings")
def calf_feedings(number: int, limit: int = Query(default=30, ge=1, le=500), db: Session = Depends(get_db)):
    calf = calf_or_404(db, number)
    recs = (
        db.query(Feeding)
        .filter(Feeding.calf_id == calf.id)
        .order_by(desc(Feeding.timestamp))
        .limit(limit)
        .all()
    )
    return [feeding_dict(f) for f in recs]

# ---------------------------
# Feedings (current AM/PM slot)
# ---------------------------
@app.post("/feedings")
def post_feeding(payload: FeedingCreate, response: Response, db: Session = Depends(get_db)):
    calf = calf_or_404(db, payload.calf_number)
    if calf.status != "active":
        raise HTTPException(status_code=409, detail="Calf is archived.")
    user = user_or_404(db, payload.user_id)

    feeding, created = record_feeding(db, calf, payload.consumption, user)
    response.status_code = 201 if created else 200
    return {"created": created, "feeding": feeding_dict(feeding)}

@app.get("/feedings/current/{number}")
def get_current_feeding(number: int, db: Session = Depends(get_db)):
    calf = calf_or_404(db, number)
    feeding = current_feeding(db, calf)
    if not feeding:
        raise HTTPException(status_code=404, detail="No feeding recorded this period.")
    return feeding_dict(feeding)

@app.put("/feedings/current/{number}/notes")
def put_current_notes(number: int, payload: FeedingNotes, db: Session = Depends(get_db)):
    calf = calf_or_404(db, number)
    try:
        feeding = update_current_notes(db, calf, payload.notes)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return feeding_dict(feeding)

@app.post("/feedings/current/{number}/treatment")
def post_current_treatment(number: int, db: Session = Depends(get_db)):
    calf = calf_or_404(db, number)
    try:
        feeding = toggle_current_treatment(db, calf)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return feeding_dict(feeding)

# ---------------------------
# Herd view + dashboard
# ---------------------------
@app.get("/herd")
def herd(
    protocol: str = Query(default=FILTER_ALL, description="all, flagged, or a protocol name"),
    db: Session = Depends(get_db),
):
    snapshot = load_snapshot(db)
    return [snapshot.calf_view(c) for c in snapshot.filtered(protocol)]

@app.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    snapshot = load_snapshot(db)
    counts = snapshot.protocol_counts()
    return {
        "protocols": [
            {
                "name": r.name,
                "threshold_type": r.threshold_type,
                "threshold_value": r.threshold_value,
                "count": counts.get(r.name, 0),
            }
            for r in snapshot.protocols.rows
        ],
        "active_count": len(snapshot.active_calves()),
        "flagged_count": snapshot.flagged_count(),
    }

# ---------------------------
# Protocols (admin)
# ---------------------------
@app.get("/protocols")
def list_protocols(db: Session = Depends(get_db)):
    return [protocol_dict(p) for p in db.query(Protocol).order_by(Protocol.order, Protocol.id).all()]

@app.put("/protocols")
def replace_protocols(payload: ProtocolList, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    names = [p.name for p in payload.protocols]
    if len(set(names)) != len(names):
        raise HTTPException(status_code=422, detail="Protocol names must be unique.")

    db.query(Protocol).delete()
    for i, p in enumerate(payload.protocols, start=1):
        db.add(Protocol(name=p.name, threshold_type=p.threshold_type, threshold_value=p.threshold_value, order=i))
    db.commit()

    logger.info("Protocols replaced by %s: %s", admin.name, ", ".join(names))
    return list_protocols(db)

@app.patch("/protocols/{protocol_id}")
def update_protocol(
    protocol_id: int,
    payload: ProtocolUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    p = db.query(Protocol).filter(Protocol.id == protocol_id).first()
    if not p:
        raise HTTPException(status_code=404, detail="Protocol not found.")

    if payload.name is not None:
        name = payload.name
        clash = db.query(Protocol).filter(Protocol.name == name, Protocol.id != p.id).first()
        if clash:
            raise HTTPException(status_code=409, detail="Protocol name already exists.")
        p.name = name
    if payload.threshold_type is not None:
        p.threshold_type = payload.threshold_type
    if payload.threshold_value is not None:
        p.threshold_value = payload.threshold_value
    if payload.order is not None:
        p.order = payload.order
    db.commit()

    logger.info("Protocol %s updated by %s", p.name, admin.name)
    return protocol_dict(p)

# ---------------------------
# Users
# ---------------------------
@app.get("/users")
def list_users(db: Session = Depends(get_db)):
    return [user_dict(u) for u in db.query(User).order_by(User.name).all()]

@app.post("/users/{user_id}/select")
def select_user(user_id: int, payload: UserSelect, db: Session = Depends(get_db)):
    user = user_or_404(db, user_id)
    # plain equality, not a security boundary
    if user.pin and payload.pin != user.pin:
        raise HTTPException(status_code=403, detail="Incorrect PIN.")
    return user_dict(user)

@app.post("/users", status_code=201)
def create_user(payload: UserCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    name = payload.name
    if db.query(User).filter(User.name == name).first():
        raise HTTPException(status_code=409, detail="User name already exists.")

    user = User(name=name, role=payload.role, pin=payload.pin)
    db.add(user)
    db.commit()
    logger.info("User %s (%s) added by %s", user.name, user.role, admin.name)
    return user_dict(user)

@app.patch("/users/{user_id}")
def update_user(user_id: int, payload: UserUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = user_or_404(db, user_id)
    if payload.name is not None:
        name = payload.name
        if db.query(User).filter(User.name == name, User.id != user.id).first():
            raise HTTPException(status_code=409, detail="User name already exists.")
        user.name = name
    if payload.role is not None:
        user.role = payload.role
    if payload.clear_pin:
        user.pin = None
    elif payload.pin is not None:
        user.pin = payload.pin
    db.commit()
    return user_dict(user)

@app.delete("/users/{user_id}")
def delete_user(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = user_or_404(db, user_id)
    name = user.name
    # feedings keep user_name for display
    db.query(Feeding).filter(Feeding.user_id == user.id).update({Feeding.user_id: None})
    db.delete(user)
    db.commit()
    logger.info("User %s deleted by %s", name, admin.name)
    return {"deleted": True, "id": user_id}

# ---------------------------
# Settings
# ---------------------------
def settings_dict(db: Session) -> dict:
    s = load_farm_settings(db)
    return {
        "next_calf_number": s.next_calf_number,
        "flag_feeding_count": s.thresholds.feeding_count,
        "flag_percentage": s.thresholds.low_percentage,
        "missed_feeding_hours": s.thresholds.missed_feeding_hours,
    }

@app.get("/settings")
def get_settings(db: Session = Depends(get_db)):
    return settings_dict(db)

@app.put("/settings")
def put_settings(payload: SettingsUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    changes = {k: v for k, v in payload.model_dump().items() if v is not None}

    parsed = {}
    for key, raw in changes.items():
        try:
            parsed[key] = parse_setting(key, raw)
        except SettingsError as e:
            logger.warning("Rejected setting from %s: %s", admin.name, e)
            raise HTTPException(status_code=422, detail=str(e))

    for key, value in parsed.items():
        put_setting(db, key, "off" if value is None else str(value))
    db.commit()

    if parsed:
        logger.info("Settings updated by %s: %s", admin.name, parsed)
    return settings_dict(db)
