"""
HomeCtl - Actuation Service
=============================
Executes a normalized Command end to end:

    authorize -> dispatch (local and/or remote) -> aggregate one message

Device commands fan out over areas. Each permitted area is updated
optimistically in the local cache, then confirmed remotely; an area whose
remote call fails is rolled back on its own without affecting the others.

Door commands go through the door lock service. With a remote backend the
current remote state is read first, at most one toggle is issued, and the
returned state is verified before the local state is reconciled.
"""
import asyncio
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional

from loguru import logger

from homectl.errors import error_message
from homectl.models import ALL_AREAS, Command, CommandAction, DeviceType
from homectl.services.device_service import DeviceCatalog, DeviceStateCache
from homectl.services.door_lock_service import DoorLockService


DEVICE_PLURALS = {
    DeviceType.LIGHT: "lights",
    DeviceType.FAN: "fans",
    DeviceType.AC: "air conditioners",
}


class ActuationOutcome(str, Enum):
    ALL_SUCCEEDED = "all_succeeded"
    PARTIAL_FAILURE = "partial_failure"
    UNCONFIRMED = "unconfirmed"
    DENIED = "denied"
    FAILED = "failed"
    NOTHING_TO_DO = "nothing_to_do"


@dataclass
class ActuationResult:
    outcome: ActuationOutcome
    message: str
    denied: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome in (ActuationOutcome.ALL_SUCCEEDED, ActuationOutcome.NOTHING_TO_DO)

    def to_dict(self) -> Dict:
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "success": self.success,
            "denied": self.denied,
            "errors": self.errors,
            "succeeded": self.succeeded,
        }


@dataclass
class Attempt:
    """One area's optimistic update: what was asked, what it replaced, how it went."""
    area: str
    device_ids: List[str]
    desired: bool
    previous: Dict[str, bool]
    ok: Optional[bool] = None
    error: Optional[str] = None


def rollback(attempt: Attempt) -> Mapping[str, bool]:
    """States to restore for a failed attempt."""
    return dict(attempt.previous)


class ActuationService:
    """Top-level coordinator between policy, doors, devices and the remote API."""

    def __init__(self, policy, doors: DoorLockService, catalog: DeviceCatalog,
                 device_states: DeviceStateCache, areas: List[str],
                 area_labels: Optional[Mapping[str, str]] = None, remote=None):
        self._policy = policy
        self._doors = doors
        self._catalog = catalog
        self._device_states = device_states
        self._areas = list(areas)
        self._labels = dict(area_labels or {})
        self._remote = remote
        self._door_mutexes: Dict[str, asyncio.Lock] = {}
        logger.info(f"Actuation service initialized (remote: {self.remote_enabled})")

    @property
    def remote_enabled(self) -> bool:
        return bool(self._remote is not None and self._remote.enabled)

    def label(self, area: str) -> str:
        return self._labels.get(area, area)

    def _labels_for(self, areas: List[str]) -> str:
        names = [self.label(a) for a in areas]
        if len(names) <= 1:
            return "".join(names)
        return ", ".join(names[:-1]) + " and " + names[-1]

    # ================================================================
    # Entry Point
    # ================================================================
    async def execute(self, command: Command) -> ActuationResult:
        try:
            if command.action == CommandAction.DEVICE_SET:
                return await self.set_devices(command)
            if command.action in (CommandAction.DOOR_LOCK, CommandAction.DOOR_UNLOCK):
                return await self.set_door(command)
            if command.action in (CommandAction.DOOR_LOCK_ALL, CommandAction.DOOR_UNLOCK_ALL):
                return await self.set_all_doors(command)
        except Exception as e:
            logger.exception(f"Unexpected failure executing {command.action.value}: {e}")
            return ActuationResult(ActuationOutcome.FAILED, "Sorry, something went wrong with that command.")
        return ActuationResult(ActuationOutcome.NOTHING_TO_DO, command.say or "Okay.")

    # ================================================================
    # Devices
    # ================================================================
    async def set_devices(self, command: Command) -> ActuationResult:
        device_type = DeviceType(command.device or DeviceType.LIGHT)
        value = command.value or "on"
        desired = value == "on"
        room = command.room or self._areas[0]
        targets = list(self._areas) if room == ALL_AREAS else [room]

        denied: List[str] = []
        attempts: List[Attempt] = []
        for area in targets:
            if area not in self._areas:
                logger.warning(f"Ignoring unknown area '{area}'")
                continue
            if not self._policy.can_device(area, device_type):
                denied.append(area)
                continue
            device_ids = self._catalog.ids_for(area, device_type)
            if not device_ids:
                continue
            previous = self._device_states.apply(device_ids, desired)
            attempts.append(Attempt(area, device_ids, desired, previous))

        if self.remote_enabled and attempts:
            await asyncio.gather(*(self._dispatch(a) for a in attempts))
            for attempt in attempts:
                if not attempt.ok:
                    self._device_states.restore(rollback(attempt))
                    logger.warning(f"Rolled back {device_type.value} in {attempt.area}: {attempt.error}")
        else:
            for attempt in attempts:
                attempt.ok = True

        errors = [a.area for a in attempts if not a.ok]
        succeeded = [a.area for a in attempts if a.ok]
        logger.info(f"device.set {device_type.value}={value} room={room}: "
                    f"denied={denied} errors={errors} succeeded={succeeded}")

        if denied:
            return ActuationResult(
                ActuationOutcome.DENIED,
                f"You are not allowed to control the {device_type.value} in the {self._labels_for(denied)}.",
                denied=denied, errors=errors, succeeded=succeeded,
            )
        if errors:
            message = f"Failed to turn {value} the {device_type.value} in the {self._labels_for(errors)}."
            if succeeded:
                message += f" It was turned {value} in the {self._labels_for(succeeded)}."
            return ActuationResult(ActuationOutcome.PARTIAL_FAILURE, message,
                                   errors=errors, succeeded=succeeded)
        if command.say:
            message = command.say
        elif room == ALL_AREAS:
            message = f"Turning {value} all {DEVICE_PLURALS[device_type]}."
        else:
            message = f"Turning {value} the {device_type.value} in the {self.label(room)}."
        return ActuationResult(ActuationOutcome.ALL_SUCCEEDED, message, succeeded=succeeded)

    async def _dispatch(self, attempt: Attempt):
        """Send one area's devices to the remote API concurrently. Never raises."""
        value = 1 if attempt.desired else 0
        results = await asyncio.gather(
            *(self._remote.set_device_state(device_id, value) for device_id in attempt.device_ids),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        attempt.ok = not failures
        if failures:
            attempt.error = error_message(failures[0])

    # ================================================================
    # Doors
    # ================================================================
    def _door_mutex(self, door_id: str) -> asyncio.Lock:
        if door_id not in self._door_mutexes:
            self._door_mutexes[door_id] = asyncio.Lock()
        return self._door_mutexes[door_id]

    async def set_door(self, command: Command) -> ActuationResult:
        desired = command.action == CommandAction.DOOR_LOCK
        verb = "lock" if desired else "unlock"
        door = command.door or self._areas[0]
        if not self._doors.has_door(door):
            return ActuationResult(ActuationOutcome.FAILED, "Unknown door", errors=[door])

        async with self._door_mutex(door):
            denied = self._doors.authorize(door, desired)
            if denied:
                return ActuationResult(ActuationOutcome.DENIED,
                                       f"You are not allowed to {verb} the {self.label(door)} door.",
                                       denied=[door])
            if self.remote_enabled:
                result = await self._set_door_remote(door, desired)
                if result is not None:
                    return result
            else:
                result = await self._set_door_local(door, desired)
                if result is not None:
                    return result

        message = command.say or ("Door locked." if desired else "Door unlocked.")
        return ActuationResult(ActuationOutcome.ALL_SUCCEEDED, message, succeeded=[door])

    async def _set_door_local(self, door: str, desired: bool) -> Optional[ActuationResult]:
        if self._doors.get_state(door) == desired:
            return None
        res = await self._doors.toggle(door)
        if not res.success:
            return ActuationResult(ActuationOutcome.DENIED, res.error or "Door action not allowed.",
                                   denied=[door])
        if res.locked != desired:
            return ActuationResult(ActuationOutcome.UNCONFIRMED, "Door state could not be updated.",
                                   errors=[door])
        return None

    async def _set_door_remote(self, door: str, desired: bool) -> Optional[ActuationResult]:
        try:
            snapshot = await self._remote.get_doors()
            current = snapshot.get(door)
            if isinstance(current, bool) and current == desired:
                locked = current
                logger.info(f"Door {door} already {'locked' if desired else 'unlocked'} remotely")
            else:
                response = await self._remote.toggle_door(door)
                locked = response.get("locked") if isinstance(response, dict) else None
                if not isinstance(locked, bool) or locked != desired:
                    logger.warning(f"Door {door} toggle returned {locked!r}, wanted {desired}")
                    if isinstance(locked, bool):
                        await self._doors.set_state(door, locked)
                    return ActuationResult(ActuationOutcome.UNCONFIRMED,
                                           "The door state could not be confirmed.", errors=[door])
        except Exception as e:
            logger.error(f"Remote door update for {door} failed: {e}")
            return ActuationResult(ActuationOutcome.FAILED, "Failed to update the door state.",
                                   errors=[door])
        await self._doors.set_state(door, locked)
        return None

    async def set_all_doors(self, command: Command) -> ActuationResult:
        desired = command.action == CommandAction.DOOR_LOCK_ALL
        verb = "lock" if desired else "unlock"
        async with AsyncExitStack() as stack:
            for door in sorted(self._doors.door_ids):
                await stack.enter_async_context(self._door_mutex(door))

            denied = self._doors.authorize_all(desired)
            if denied:
                return ActuationResult(ActuationOutcome.DENIED,
                                       f"You are not allowed to {verb} all doors.",
                                       denied=self._doors.door_ids)
            if self.remote_enabled:
                try:
                    if desired:
                        await self._remote.lock_all_doors()
                    else:
                        await self._remote.unlock_all_doors()
                except Exception as e:
                    logger.error(f"Remote {verb} all failed: {e}")
                    return ActuationResult(ActuationOutcome.FAILED, f"Failed to {verb} all doors.",
                                           errors=self._doors.door_ids)
                await self._doors.set_all(desired)
            else:
                res = await (self._doors.lock_all() if desired else self._doors.unlock_all())
                if not res.success:
                    return ActuationResult(ActuationOutcome.DENIED,
                                           res.error or f"{verb.capitalize()} all action not allowed.",
                                           denied=self._doors.door_ids)

        message = command.say or ("All doors locked." if desired else "All doors unlocked.")
        return ActuationResult(ActuationOutcome.ALL_SUCCEEDED, message, succeeded=self._doors.door_ids)
