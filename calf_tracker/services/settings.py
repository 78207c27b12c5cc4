from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from .flagging import FlagThresholds

logger = logging.getLogger(__name__)

NEXT_CALF_NUMBER = "next_calf_number"
FLAG_FEEDING_COUNT = "flag_feeding_count"
FLAG_PERCENTAGE = "flag_percentage"
MISSED_FEEDING_HOURS = "missed_feeding_hours"

DEFAULT_NEXT_CALF_NUMBER = 3047

# key -> (min, max); max None means unbounded
RANGES: Dict[str, Tuple[int, Optional[int]]] = {
    NEXT_CALF_NUMBER: (1, None),
    FLAG_FEEDING_COUNT: (1, 20),
    FLAG_PERCENTAGE: (0, 100),
    MISSED_FEEDING_HOURS: (1, 168),
}

DISABLED_VALUES = {"", "off", "none"}

class SettingsError(ValueError):
    pass

@dataclass(frozen=True)
class FarmSettings:
    next_calf_number: int = DEFAULT_NEXT_CALF_NUMBER
    thresholds: FlagThresholds = field(default_factory=FlagThresholds)

    def as_store(self) -> Dict[str, str]:
        hours = self.thresholds.missed_feeding_hours
        return {
            NEXT_CALF_NUMBER: str(self.next_calf_number),
            FLAG_FEEDING_COUNT: str(self.thresholds.feeding_count),
            FLAG_PERCENTAGE: str(self.thresholds.low_percentage),
            MISSED_FEEDING_HOURS: "off" if hours is None else str(hours),
        }

def parse_setting(key: str, raw: Optional[str]) -> Optional[int]:
    """Parse one stored value. Only `missed_feeding_hours` may be switched off (None)."""
    if key not in RANGES:
        raise SettingsError(f"Unknown setting: {key}")

    text = (raw or "").strip()
    if key == MISSED_FEEDING_HOURS and text.lower() in DISABLED_VALUES:
        return None

    try:
        value = int(text)
    except ValueError:
        raise SettingsError(f"{key} must be a whole number, got {raw!r}") from None

    lo, hi = RANGES[key]
    if value < lo or (hi is not None and value > hi):
        bound = f"between {lo} and {hi}" if hi is not None else f"at least {lo}"
        raise SettingsError(f"{key} must be {bound}, got {value}")
    return value

def load_settings(rows: Iterable[Tuple[str, Optional[str]]]) -> FarmSettings:
    defaults = FarmSettings()
    values = {
        NEXT_CALF_NUMBER: defaults.next_calf_number,
        FLAG_FEEDING_COUNT: defaults.thresholds.feeding_count,
        FLAG_PERCENTAGE: defaults.thresholds.low_percentage,
        MISSED_FEEDING_HOURS: defaults.thresholds.missed_feeding_hours,
    }

    for key, raw in rows:
        if key not in RANGES:
            continue
        try:
            values[key] = parse_setting(key, raw)
        except SettingsError as e:
            logger.warning("Ignoring stored setting, using default %r: %s", values[key], e)

    return FarmSettings(
        next_calf_number=values[NEXT_CALF_NUMBER],
        thresholds=FlagThresholds(
            feeding_count=values[FLAG_FEEDING_COUNT],
            low_percentage=values[FLAG_PERCENTAGE],
            missed_feeding_hours=values[MISSED_FEEDING_HOURS],
        ),
    )
