from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel, Field, StringConstraints, field_validator
from typing import Annotated, Optional, List, Literal

Role = Literal["admin", "user"]
CalfStatus = Literal["active", "archived"]
ThresholdType = Literal["feedings", "days"]

# stripped before the length check, so "   " is rejected
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

PIN_PATTERN = r"^\d{4}$"

class CalfCreate(BaseModel):
    number: Optional[int] = Field(default=None, ge=1)  # omitted -> next auto number
    name: Optional[str] = Field(default=None, max_length=80)
    birth_date: Optional[datetime] = None
    birth_notes: Optional[str] = None

    @field_validator("birth_date")
    @classmethod
    def naive_local_time(cls, v: Optional[datetime]) -> Optional[datetime]:
        # stored naive, on the same clock as datetime.now()
        if v is not None and v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v

class CalfUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=80)
    status: Optional[CalfStatus] = None

class FeedingCreate(BaseModel):
    calf_number: int = Field(..., ge=1)
    consumption: int = Field(..., ge=0, le=100)
    user_id: int

class FeedingNotes(BaseModel):
    notes: Optional[str] = None

class ProtocolIn(BaseModel):
    name: Name
    threshold_type: ThresholdType
    threshold_value: int = Field(..., ge=0)

class ProtocolUpdate(BaseModel):
    name: Optional[Name] = None
    threshold_type: Optional[ThresholdType] = None
    threshold_value: Optional[int] = Field(default=None, ge=0)
    order: Optional[int] = None

class ProtocolList(BaseModel):
    protocols: List[ProtocolIn] = Field(..., min_length=1)

class UserCreate(BaseModel):
    name: Name
    role: Role = "user"
    pin: Optional[str] = Field(default=None, pattern=PIN_PATTERN)

class UserUpdate(BaseModel):
    name: Optional[Name] = None
    role: Optional[Role] = None
    pin: Optional[str] = Field(default=None, pattern=PIN_PATTERN)
    clear_pin: bool = False

class UserSelect(BaseModel):
    pin: Optional[str] = None

class SettingsUpdate(BaseModel):
    # raw strings, validated by services.settings.parse_setting
    next_calf_number: Optional[str] = None
    flag_feeding_count: Optional[str] = None
    flag_percentage: Optional[str] = None
    missed_feeding_hours: Optional[str] = None
