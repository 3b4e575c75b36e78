"""
HomeCtl - Devices
===================
Static device catalog (which devices live in which area) and the local
on/off cache the UI and the orchestrator update optimistically.
"""
from typing import Dict, List, Mapping

from loguru import logger

from homectl.models import DeviceDescriptor, DeviceType


class DeviceCatalog:
    """Configured devices grouped by area and type."""

    def __init__(self, devices: Mapping[str, Mapping[str, List[str]]]):
        self._devices: List[DeviceDescriptor] = []
        for area, by_type in devices.items():
            for type_name, ids in by_type.items():
                device_type = DeviceType(type_name)
                for device_id in ids:
                    self._devices.append(DeviceDescriptor(device_id, area, device_type))
        logger.info(f"Device catalog loaded with {len(self._devices)} devices")

    def ids_for(self, area: str, device_type: DeviceType) -> List[str]:
        device_type = DeviceType(device_type)
        return [d.id for d in self._devices if d.area_id == area and d.device_type == device_type]

    def all_ids(self) -> List[str]:
        return [d.id for d in self._devices]

    def descriptors(self) -> List[DeviceDescriptor]:
        return list(self._devices)


class DeviceStateCache:
    """Local device on/off states. Every device starts off."""

    def __init__(self, catalog: DeviceCatalog):
        self._catalog = catalog
        self._states: Dict[str, bool] = {device_id: False for device_id in catalog.all_ids()}

    def get(self, device_id: str) -> bool:
        return self._states.get(device_id, False)

    def snapshot(self) -> Dict[str, bool]:
        return dict(self._states)

    def apply(self, device_ids: List[str], on: bool) -> Dict[str, bool]:
        """Set devices and return their previous values."""
        previous = {device_id: self.get(device_id) for device_id in device_ids}
        for device_id in device_ids:
            self._states[device_id] = on
        return previous

    def restore(self, previous: Mapping[str, bool]):
        self._states.update(previous)

    async def refresh(self, remote) -> bool:
        """Pull device states from the remote API; keep local values on failure."""
        if remote is None or not remote.enabled:
            return False
        try:
            states = await remote.get_device_states(self._catalog.all_ids())
        except Exception as e:
            logger.warning(f"Failed to load device states, keeping local values: {e}")
            return False
        for device_id in self._catalog.all_ids():
            entry = states.get(device_id)
            self._states[device_id] = bool(entry and entry.get("value"))
        logger.info(f"Device states refreshed for {len(states)} device(s)")
        return True
