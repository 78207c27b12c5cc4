from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import Calf, Feeding, Protocol, Setting
from .feedings import feeding_slot
from .flagging import FlagThresholds, consumption_level, flag_summary, most_recent, should_flag
from .protocols import ProtocolRow, ProtocolTable, age_in_days
from .settings import FarmSettings, load_settings

FILTER_ALL = "all"
FILTER_FLAGGED = "flagged"

RECENT_DISPLAY_COUNT = 3

def load_protocol_table(db: Session) -> ProtocolTable:
    rows = db.query(Protocol).order_by(Protocol.order, Protocol.id).all()
    return ProtocolTable(
        ProtocolRow(
            name=r.name,
            threshold_type=r.threshold_type,
            threshold_value=r.threshold_value,
            order=r.order,
        )
        for r in rows
    )

def load_farm_settings(db: Session) -> FarmSettings:
    return load_settings((s.key, s.value) for s in db.query(Setting).all())

@dataclass
class HerdSnapshot:
    """Loaded calves, feedings, protocols and thresholds at one instant.

    Classification and flagging are computed from this snapshot on every call;
    nothing is cached between requests.
    """
    calves: List[Calf]
    feedings_by_calf: Dict[int, List[Feeding]]
    protocols: ProtocolTable
    thresholds: FlagThresholds
    now: datetime = field(default_factory=datetime.now)

    def feedings_for(self, calf: Calf) -> List[Feeding]:
        return self.feedings_by_calf.get(calf.id, [])

    def classify(self, calf: Calf) -> str:
        return self.protocols.classify(calf.birth_date, len(self.feedings_for(calf)), now=self.now)

    def should_flag(self, calf: Calf) -> Optional[str]:
        return should_flag(self.feedings_for(calf), self.thresholds, now=self.now)

    def active_calves(self) -> List[Calf]:
        active = [c for c in self.calves if c.status == "active"]
        return sorted(active, key=lambda c: c.birth_date)

    def protocol_counts(self) -> Dict[str, int]:
        return self.protocols.counts(self.classify(c) for c in self.active_calves())

    def flagged_count(self) -> int:
        return sum(1 for c in self.active_calves() if self.should_flag(c))

    def filtered(self, protocol: str = FILTER_ALL) -> List[Calf]:
        calves = self.active_calves()
        if protocol == FILTER_ALL:
            return calves
        if protocol == FILTER_FLAGGED:
            return [c for c in calves if self.should_flag(c)]
        return [c for c in calves if self.classify(c) == protocol]

    def current_feeding(self, calf: Calf) -> Optional[Feeding]:
        day, period = feeding_slot(self.now)
        for f in self.feedings_for(calf):
            if f.feeding_date == day and f.period == period:
                return f
        return None

    def calf_view(self, calf: Calf) -> Dict[str, Any]:
        recent = list(reversed(most_recent(self.feedings_for(calf), RECENT_DISPLAY_COUNT)))
        latest = recent[-1] if recent else None
        current = self.current_feeding(calf)

        row = {
            "number": calf.number,
            "name": calf.name,
            "birth_date": calf.birth_date.isoformat(),
            "age_days": age_in_days(calf.birth_date, self.now),
            "protocol": self.classify(calf),
            "feeding_count": len(self.feedings_for(calf)),
            "recent_feedings": [
                {
                    "timestamp": f.timestamp.isoformat(),
                    "period": f.period,
                    "consumption": f.consumption,
                    "level": consumption_level(f.consumption),
                }
                for f in recent
            ],
            "latest_note": latest.notes if latest else None,
            "current_feeding": feeding_dict(current) if current else None,
        }
        row.update(flag_summary(self.should_flag(calf)))
        return row

def load_snapshot(db: Session, now: Optional[datetime] = None) -> HerdSnapshot:
    calves = db.query(Calf).order_by(Calf.birth_date).all()
    grouped: Dict[int, List[Feeding]] = defaultdict(list)
    for f in db.query(Feeding).order_by(Feeding.timestamp.desc()).all():
        grouped[f.calf_id].append(f)

    return HerdSnapshot(
        calves=calves,
        feedings_by_calf=dict(grouped),
        protocols=load_protocol_table(db),
        thresholds=load_farm_settings(db).thresholds,
        now=now or datetime.now(),
    )

def feeding_dict(f: Feeding) -> Dict[str, Any]:
    return {
        "id": f.id,
        "calf_number": f.calf_number,
        "calf_name": f.calf_name,
        "timestamp": f.timestamp.isoformat(),
        "feeding_date": f.feeding_date.isoformat(),
        "period": f.period,
        "consumption": f.consumption,
        "notes": f.notes,
        "treatment": bool(f.treatment),
        "user_name": f.user_name,
    }
