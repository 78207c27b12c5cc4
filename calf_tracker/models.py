from __future__ import annotations

from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, ForeignKey, UniqueConstraint, Index
from .db import Base

class Calf(Base):
    __tablename__ = "calves"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(Integer, unique=True, index=True, nullable=False)  # operator-facing tag number

    name = Column(String, nullable=True)
    birth_date = Column(DateTime, nullable=False)
    birth_notes = Column(Text, nullable=True)

    status = Column(String, nullable=False, default="active")  # active | archived

class Feeding(Base):
    __tablename__ = "feedings"

    id = Column(Integer, primary_key=True, index=True)
    calf_id = Column(Integer, ForeignKey("calves.id"), nullable=False)

    # display copies, the join key is calf_id
    calf_number = Column(Integer, nullable=False)
    calf_name = Column(String, nullable=True)

    timestamp = Column(DateTime, nullable=False)
    feeding_date = Column(Date, nullable=False)
    period = Column(String(2), nullable=False)  # AM | PM

    consumption = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)
    treatment = Column(Boolean, nullable=False, default=False)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    user_name = Column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("calf_id", "feeding_date", "period", name="uix_calf_slot"),
        Index("idx_feeding_calf_time", "calf_id", "timestamp"),
    )

class Protocol(Base):
    __tablename__ = "protocols"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)

    threshold_type = Column(String, nullable=False)  # feedings | days
    threshold_value = Column(Integer, nullable=False)

    order = Column(Integer, nullable=False, default=0)

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False, default="user")  # admin | user
    pin = Column(String(4), nullable=True)

class Setting(Base):
    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=True)
