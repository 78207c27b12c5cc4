from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

UNKNOWN_PROTOCOL = "Unknown"

THRESHOLD_FEEDINGS = "feedings"
THRESHOLD_DAYS = "days"

@dataclass(frozen=True)
class ProtocolRow:
    name: str
    threshold_type: str
    threshold_value: int
    order: int = 0

def age_in_days(birth_date: datetime, now: Optional[datetime] = None) -> int:
    now = now or datetime.now()
    return (now - birth_date) // timedelta(days=1)

def classify(
    birth_date: datetime,
    feeding_count: int,
    protocols: Sequence[ProtocolRow],
    now: Optional[datetime] = None,
) -> str:
    """Return the name of the first protocol whose threshold the calf has not reached.

    Protocols are scanned in the order given. A calf past every threshold stays in
    the last protocol.
    """
    if not protocols:
        return UNKNOWN_PROTOCOL

    age = age_in_days(birth_date, now)
    for p in protocols:
        if p.threshold_type == THRESHOLD_FEEDINGS and feeding_count < p.threshold_value:
            return p.name
        if p.threshold_type == THRESHOLD_DAYS and age < p.threshold_value:
            return p.name

    return protocols[-1].name

class ProtocolTable:
    def __init__(self, rows: Iterable[ProtocolRow]):
        self.rows: List[ProtocolRow] = list(rows)

    def names(self) -> List[str]:
        return [r.name for r in self.rows]

    def classify(self, birth_date: datetime, feeding_count: int, now: Optional[datetime] = None) -> str:
        return classify(birth_date, feeding_count, self.rows, now=now)

    def counts(self, stages: Iterable[str]) -> Dict[str, int]:
        counts = {name: 0 for name in self.names()}
        for stage in stages:
            counts[stage] = counts.get(stage, 0) + 1
        return counts
