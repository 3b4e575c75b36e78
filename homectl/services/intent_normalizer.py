"""
HomeCtl - Intent Normalizer
=============================
Maps loosely spoken room, door, and device names onto the closed
AreaId / DeviceType vocabularies. Order of the keyword table matters.
"""
import re
from typing import List, Optional, Pattern, Tuple

from homectl.models import ALL_AREAS, DeviceType


DEFAULT_AREA = "mainhall"

# "all" is matched on word boundaries: "main hall" must not read as "all"
_ALL_PATTERN = re.compile(r"\b(all|every|everywhere|whole|entire)\b", re.IGNORECASE)

# (area, pattern) checked top to bottom
AREA_PATTERNS: List[Tuple[str, Pattern]] = [
    ("kitchen", re.compile(r"kitchen", re.IGNORECASE)),
    ("bedroom2", re.compile(r"bedroom\s*2|room\s*2|second\s+bedroom|bedroom\s+two", re.IGNORECASE)),
    ("bedroom1", re.compile(r"bedroom\s*1|room\s*1|first\s+bedroom|bedroom\s+one|bedroom", re.IGNORECASE)),
    ("mainhall", re.compile(r"main|hall|living", re.IGNORECASE)),
]

DEVICE_ALIASES = {
    "fan": DeviceType.FAN,
    "fans": DeviceType.FAN,
    "ac": DeviceType.AC,
    "a/c": DeviceType.AC,
    "airconditioner": DeviceType.AC,
    "air-conditioner": DeviceType.AC,
    "air conditioner": DeviceType.AC,
    "aircon": DeviceType.AC,
}


def _match_area(value: str) -> Optional[str]:
    for area, pattern in AREA_PATTERNS:
        if pattern.search(value):
            return area
    return None


def normalize_room(room: Optional[str]) -> str:
    """Return a configured AreaId, ``"all"``, or the main hall by default."""
    value = (room or "").strip()
    if not value:
        return DEFAULT_AREA
    if _ALL_PATTERN.search(value):
        return ALL_AREAS
    return _match_area(value) or DEFAULT_AREA


def normalize_door(door: Optional[str]) -> str:
    """Like normalize_room, without the whole-house target."""
    return _match_area((door or "").strip()) or DEFAULT_AREA


def normalize_device_type(device: Optional[str]) -> DeviceType:
    return DEVICE_ALIASES.get((device or "").strip().lower(), DeviceType.LIGHT)


def normalize_value(value: Optional[str]) -> str:
    return "off" if (value or "on").strip().lower() == "off" else "on"


def is_all_target(value: Optional[str]) -> bool:
    return bool(value) and bool(_ALL_PATTERN.search(value))
