"""
HomeCtl - Local Command Parser
================================
Offline keyword parser for what the user said (not what the assistant
replied). Used when no assistant is configured or the assistant call fails.
"""
import re
from dataclasses import asdict, dataclass
from typing import Dict, List, Mapping, Optional, Pattern, Tuple

from loguru import logger

from homectl.config import DEFAULT_AREA_LABELS
from homectl.models import ALL_AREAS, CommandAction
from homectl.services.intent_normalizer import DEFAULT_AREA


GREETING_REPLY = ("Hello! I'm your smart home assistant. "
                  "You can ask me to control lights, fans, AC, or doors.")
HELP_REPLY = ("I can control your lights, fans, air conditioning, and door locks. "
              "Try saying 'turn on all lights' or 'lock the bedroom door'.")
FALLBACK_REPLY = ("I'm not sure what you'd like me to do. Try saying 'turn on all lights', "
                  "'lock the kitchen door', or 'turn off bedroom fan'.")

DEVICE_PLURALS = {"light": "lights", "fan": "fans", "ac": "air conditioners"}


def _words(*phrases: str) -> Pattern:
    return re.compile(r"\b(?:" + "|".join(phrases) + r")\b", re.IGNORECASE)


# Checked top to bottom; first hit wins
DEVICE_KEYWORDS: List[Tuple[str, Pattern]] = [
    ("light", _words(r"lights?", r"lamps?", r"lighting")),
    ("fan", _words(r"fans?", r"ventilation")),
    ("ac", _words(r"ac", r"a/c", r"air\s+condition(?:er|ing)", r"cooling", r"aircon")),
]

ROOM_KEYWORDS: List[Tuple[str, Pattern]] = [
    (ALL_AREAS, _words(r"all", r"every", r"everywhere", r"entire", r"whole\s+(?:house|home)")),
    ("kitchen", _words(r"kitchen")),
    ("bedroom2", _words(r"bedroom\s*2", r"bedroom\s+two", r"second\s+bedroom", r"room\s*2")),
    ("bedroom1", _words(r"bedroom\s*1", r"bedroom\s+one", r"first\s+bedroom", r"room\s*1", r"bedroom")),
    ("mainhall", _words(r"main\s*hall", r"hall", r"living\s+room", r"main", r"front")),
]

# unlock before lock and off before on, so the longer word is not read as the shorter
ACTION_KEYWORDS: List[Tuple[str, Pattern]] = [
    ("unlock", _words(r"unlock", r"open", r"unsecure")),
    ("lock", _words(r"lock", r"secure", r"close")),
    ("off", _words(r"off", r"deactivate", r"disable", r"stop")),
    ("on", _words(r"on", r"activate", r"enable", r"start")),
]

_GREETING_RE = _words(r"hello", r"hi", r"hey")
_HELP_RE = re.compile(r"\bhelp\b|what can you do", re.IGNORECASE)
_DOOR_RE = _words(r"doors?", r"lock", r"unlock")
_ALL_DOORS_RE = re.compile(r"\b(?:all|every)\s+doors?\b", re.IGNORECASE)


@dataclass
class LocalCommand:
    success: bool
    action: str
    say: str
    room: Optional[str] = None
    device: Optional[str] = None
    value: Optional[str] = None
    door: Optional[str] = None

    def to_dict(self) -> Dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _find(text: str, table: List[Tuple[str, Pattern]]) -> Optional[str]:
    for key, pattern in table:
        if pattern.search(text):
            return key
    return None


def _room_label(area: str, labels: Mapping[str, str]) -> str:
    return labels.get(area, area)


def _door_reply(action: str, door: Optional[str], labels: Mapping[str, str]) -> str:
    verb = "Locking" if action in ("door.lock", "door.lock_all") else "Unlocking"
    if door is None or door == ALL_AREAS:
        return f"{verb} all doors for you."
    return f"{verb} the {_room_label(door, labels)} door."


def parse_local_command(text: Optional[str], labels: Optional[Mapping[str, str]] = None) -> LocalCommand:
    """Keyword-match user speech into a command. ``labels`` maps area ids to spoken names."""
    labels = DEFAULT_AREA_LABELS if labels is None else labels
    normalized = (text or "").strip().lower()
    if not normalized:
        return LocalCommand(success=False, action=CommandAction.NONE.value, say=FALLBACK_REPLY)

    if _GREETING_RE.search(normalized):
        return LocalCommand(success=True, action=CommandAction.NONE.value, say=GREETING_REPLY)
    if _HELP_RE.search(normalized):
        return LocalCommand(success=True, action=CommandAction.NONE.value, say=HELP_REPLY)

    action = _find(normalized, ACTION_KEYWORDS)

    # ---- Doors ----
    if _DOOR_RE.search(normalized) and action in ("lock", "unlock"):
        if _ALL_DOORS_RE.search(normalized):
            name = "door.lock_all" if action == "lock" else "door.unlock_all"
            result = LocalCommand(success=True, action=name, say=_door_reply(name, None, labels))
        else:
            door = _find(normalized, ROOM_KEYWORDS)
            door = door if door and door != ALL_AREAS else DEFAULT_AREA
            name = "door.lock" if action == "lock" else "door.unlock"
            result = LocalCommand(success=True, action=name, say=_door_reply(name, door, labels), door=door)
        logger.debug(f"Local parse: '{normalized}' -> {result.action}")
        return result

    # ---- Devices ----
    device = _find(normalized, DEVICE_KEYWORDS)
    if action in ("on", "off") and device:
        room = _find(normalized, ROOM_KEYWORDS) or DEFAULT_AREA
        if room == ALL_AREAS:
            say = f"Turning {action} all {DEVICE_PLURALS[device]} in your home."
        else:
            say = f"Turning {action} the {device} in the {_room_label(room, labels)}."
        logger.debug(f"Local parse: '{normalized}' -> device.set {room}/{device}={action}")
        return LocalCommand(success=True, action=CommandAction.DEVICE_SET.value, say=say,
                            room=room, device=device, value=action)

    logger.debug(f"Local parse: no command in '{normalized}'")
    return LocalCommand(success=False, action=CommandAction.NONE.value, say=FALLBACK_REPLY)
