from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

FLAG_LOW_CONSUMPTION = "low-consumption"
FLAG_HAS_NOTES = "has-notes"
FLAG_MISSED_FEEDING = "missed-feeding"

FLAG_LABELS = {
    FLAG_LOW_CONSUMPTION: "Low consumption",
    FLAG_HAS_NOTES: "Has notes",
    FLAG_MISSED_FEEDING: "Missed feeding",
}

FLAG_ACTIONS = {
    FLAG_LOW_CONSUMPTION: [
        "Check the calf for scours, fever or dehydration.",
        "Confirm milk replacer mix rate and temperature.",
    ],
    FLAG_HAS_NOTES: [
        "Read the latest feeding note and follow up.",
    ],
    FLAG_MISSED_FEEDING: [
        "No feeding recorded recently: confirm the calf was fed.",
    ],
}

@dataclass(frozen=True)
class FlagThresholds:
    feeding_count: int = 2
    low_percentage: int = 50
    missed_feeding_hours: Optional[int] = 12  # None disables the missed-feeding rule

def most_recent(feedings: Iterable[Any], count: int) -> List[Any]:
    """Newest-first slice of the `count` most recent feedings."""
    ordered = sorted(feedings, key=lambda f: f.timestamp, reverse=True)
    return ordered[:count]

def should_flag(
    feedings: Iterable[Any],
    thresholds: FlagThresholds,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Decide whether a calf needs attention and why.

    `feedings` is the calf's feeding history in any order; each item needs
    `timestamp`, `consumption` and `notes`. Rules are checked in priority order
    and only the first match is reported.
    """
    n = max(1, thresholds.feeding_count)
    recent = most_recent(feedings, n)
    if len(recent) < n:
        return None

    if all(f.consumption <= thresholds.low_percentage for f in recent):
        return FLAG_LOW_CONSUMPTION

    latest = recent[0]
    if latest.notes and latest.notes.strip():
        return FLAG_HAS_NOTES

    if thresholds.missed_feeding_hours is not None:
        now = now or datetime.now()
        hours_since = (now - latest.timestamp).total_seconds() / 3600.0
        if hours_since > thresholds.missed_feeding_hours:
            return FLAG_MISSED_FEEDING

    return None

def consumption_level(pct: int) -> str:
    if pct < 50:
        return "low"
    if pct < 75:
        return "fair"
    return "good"

def flag_summary(reason: Optional[str]) -> Dict[str, Any]:
    return {
        "flag": reason,
        "flag_label": FLAG_LABELS.get(reason, "") if reason else "",
        "actions": list(FLAG_ACTIONS.get(reason, [])) if reason else [],
    }
