"""
HomeCtl - Household
=====================
Builds one instance of every service and wires them together.
Nothing else in the package constructs services or reaches for globals.
"""
from typing import Optional

from loguru import logger

from homectl.config import HomeSettings
from homectl.services.actuation_service import ActuationService
from homectl.services.assistant_service import AssistantService, TextSource
from homectl.services.device_service import DeviceCatalog, DeviceStateCache
from homectl.services.door_lock_service import DoorLockService
from homectl.services.member_registry import MemberRegistry
from homectl.services.policy_engine import PolicyEngine
from homectl.services.power_service import PowerService
from homectl.services.remote_client import RemoteDeviceClient
from homectl.services.storage import KeyValueStore, create_store


class Household:
    """Long-lived container for the household's services."""

    def __init__(self, settings: HomeSettings, store: KeyValueStore, remote: RemoteDeviceClient,
                 text_source: Optional[TextSource] = None):
        self.settings = settings
        self.store = store
        self.remote = remote

        self.registry = MemberRegistry(store, settings.AREAS)
        self.policy = PolicyEngine(self.registry)
        self.doors = DoorLockService(self.policy, store, settings.DOORS,
                                     event_log_size=settings.DOOR_EVENT_LOG_SIZE)
        self.catalog = DeviceCatalog(settings.DEVICES)
        self.device_states = DeviceStateCache(self.catalog)
        self.actuation = ActuationService(
            self.policy,
            self.doors,
            self.catalog,
            self.device_states,
            areas=settings.AREAS,
            area_labels=settings.AREA_LABELS,
            remote=remote,
        )
        self.power = PowerService(self.policy)
        self.assistant = AssistantService(self.policy, self.actuation, text_source=text_source,
                                          history_size=settings.CONVERSATION_HISTORY_SIZE,
                                          area_labels=settings.AREA_LABELS)
        self._started = False

    async def start(self):
        """Load persisted state and pull what the remote backend knows."""
        if self._started:
            return
        await self.registry.load()
        await self.doors.load()
        if self.remote.enabled:
            try:
                await self.doors.set_states(await self.remote.get_doors())
            except Exception as e:
                logger.warning(f"Could not sync doors from remote, keeping local states: {e}")
            await self.device_states.refresh(self.remote)
        self._started = True
        logger.info(f"Household ready: {len(self.registry.list_members())} member(s), "
                    f"{len(self.doors.door_ids)} door(s), {len(self.catalog.all_ids())} device(s)")

    async def stop(self):
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()
        self._started = False


def build_household(settings: HomeSettings, store: Optional[KeyValueStore] = None,
                    remote: Optional[RemoteDeviceClient] = None,
                    text_source: Optional[TextSource] = None) -> Household:
    if store is None:
        store = create_store(settings.STORAGE_BACKEND, settings.DATA_DIR,
                             settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    if remote is None:
        remote = RemoteDeviceClient(settings.REMOTE_API_BASE, timeout=settings.REMOTE_TIMEOUT)
    return Household(settings, store, remote, text_source=text_source)
