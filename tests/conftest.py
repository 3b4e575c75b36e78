"""
Shared fixtures: an in-memory household with a signed-in owner and a fake
remote backend.
"""
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from homectl.config import HomeSettings
from homectl.services.actuation_service import ActuationService
from homectl.services.device_service import DeviceCatalog, DeviceStateCache
from homectl.services.door_lock_service import DoorLockService
from homectl.services.member_registry import MemberRegistry
from homectl.services.policy_engine import PolicyEngine
from homectl.services.remote_client import RemoteDeviceClient
from homectl.services.storage import MemoryStore


@pytest.fixture
def home_settings(tmp_path):
    return HomeSettings(
        REMOTE_API_BASE="",
        STORAGE_BACKEND="memory",
        DATA_DIR=str(tmp_path),
        LOGS_DIR=str(tmp_path / "logs"),
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def registry(store, home_settings):
    return MemberRegistry(store, home_settings.AREAS)


@pytest.fixture
def policy(registry):
    return PolicyEngine(registry)


@pytest_asyncio.fixture
async def owner(registry):
    """First registered member, signed in."""
    member = await registry.register("Alex", pin="1234")
    registry.set_current(member.id)
    return member


@pytest_asyncio.fixture
async def member(registry, owner):
    """A plain member (lock but not unlock, main hall lights only), signed in."""
    sam = await registry.add_member(
        "Sam",
        pin="5678",
        policies={"areas": {"mainhall": {"light": True, "door": True}}},
    )
    registry.set_current(sam.id)
    return sam


@pytest.fixture
def doors(policy, store, home_settings):
    return DoorLockService(policy, store, home_settings.DOORS,
                           event_log_size=home_settings.DOOR_EVENT_LOG_SIZE)


@pytest.fixture
def catalog(home_settings):
    return DeviceCatalog(home_settings.DEVICES)


@pytest.fixture
def device_states(catalog):
    return DeviceStateCache(catalog)


@pytest.fixture
def remote(home_settings):
    """Fake remote backend: every door locked, every write accepted."""
    fake = AsyncMock(spec=RemoteDeviceClient)
    fake.enabled = True
    fake.get_doors.return_value = {door: True for door in home_settings.DOORS}
    fake.toggle_door.return_value = {"locked": False}
    fake.set_device_state.return_value = {"ok": True}
    fake.lock_all_doors.return_value = {"ok": True}
    fake.unlock_all_doors.return_value = {"ok": True}
    fake.get_device_states.return_value = {}
    return fake


@pytest.fixture
def make_actuation(policy, doors, catalog, device_states, home_settings):
    """Factory so each test picks local-only or remote mode."""
    def _make(remote=None):
        return ActuationService(
            policy,
            doors,
            catalog,
            device_states,
            areas=home_settings.AREAS,
            area_labels=home_settings.AREA_LABELS,
            remote=remote,
        )
    return _make
