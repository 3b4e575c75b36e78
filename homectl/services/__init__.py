"""
HomeCtl - Services Package
"""
from homectl.services.actuation_service import ActuationOutcome, ActuationResult, ActuationService
from homectl.services.assistant_service import AssistantService
from homectl.services.device_service import DeviceCatalog, DeviceStateCache
from homectl.services.door_lock_service import DoorLockService, DoorResult
from homectl.services.member_registry import Member, MemberRegistry
from homectl.services.policy_engine import Policy, PolicyEngine
from homectl.services.power_service import PowerService
from homectl.services.remote_client import RemoteDeviceClient
from homectl.services.storage import JsonFileStore, KeyValueStore, MemoryStore, SqlStore

__all__ = [
    "ActuationOutcome",
    "ActuationResult",
    "ActuationService",
    "AssistantService",
    "DeviceCatalog",
    "DeviceStateCache",
    "DoorLockService",
    "DoorResult",
    "Member",
    "MemberRegistry",
    "Policy",
    "PolicyEngine",
    "PowerService",
    "RemoteDeviceClient",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "SqlStore",
]
