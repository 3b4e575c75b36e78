"""
HomeCtl - Domain Models
=========================
Shared value types: roles, device types, commands, door events.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


ALL_AREAS = "all"


class Role(str, Enum):
    OWNER = "owner"
    MEMBER = "member"
    ADMIN = "admin"


class DeviceType(str, Enum):
    LIGHT = "light"
    FAN = "fan"
    AC = "ac"


class CommandAction(str, Enum):
    DEVICE_SET = "device.set"
    DOOR_LOCK = "door.lock"
    DOOR_UNLOCK = "door.unlock"
    DOOR_LOCK_ALL = "door.lock_all"
    DOOR_UNLOCK_ALL = "door.unlock_all"
    NONE = "none"

    @classmethod
    def parse(cls, value: Optional[str]) -> "CommandAction":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.NONE


class DoorEventType(str, Enum):
    LOCK = "lock"
    UNLOCK = "unlock"
    LOCK_ALL = "lockAll"
    UNLOCK_ALL = "unlockAll"
    DENIED = "denied"


@dataclass(frozen=True)
class DeviceDescriptor:
    id: str
    area_id: str
    device_type: DeviceType


@dataclass
class Command:
    """A normalized assistant directive, ready for the orchestrator."""
    action: CommandAction = CommandAction.NONE
    say: str = ""
    room: Optional[str] = None
    device: Optional[DeviceType] = None
    value: Optional[str] = None  # "on" | "off"
    door: Optional[str] = None


@dataclass
class DoorEvent:
    type: DoorEventType
    door_id: str
    actor_id: Optional[str]
    success: bool
    reason: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "type": self.type.value,
            "door_id": self.door_id,
            "actor_id": self.actor_id,
            "success": self.success,
            "reason": self.reason,
        }
