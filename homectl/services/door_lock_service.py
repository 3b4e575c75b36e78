"""
HomeCtl - Door Lock Service
=============================
The authoritative locked/unlocked state of every door.

Each door has exactly two states. Transitions are authorized through the
policy engine, recorded in a bounded audit log, persisted per door, and
announced to subscribers as a full snapshot of all doors.
"""
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger

from homectl.models import DoorEvent, DoorEventType
from homectl.services.storage import KeyValueStore


NAMESPACE = "doors"
ALL_DOORS = "*"

Snapshot = Dict[str, bool]
Listener = Callable[[Snapshot], None]


@dataclass
class DoorResult:
    success: bool
    locked: Optional[bool] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {"success": self.success}
        if self.locked is not None:
            data["locked"] = self.locked
        if self.error:
            data["error"] = self.error
        return data


class DoorLockService:
    """Per-door state machine with change notification and persistence."""

    def __init__(self, policy, store: Optional[KeyValueStore], door_ids: Iterable[str],
                 event_log_size: int = 200):
        self._policy = policy
        self._store = store
        self._locks: Dict[str, bool] = {door: True for door in door_ids}
        self._events: deque = deque(maxlen=event_log_size)
        self._listeners: List[Listener] = []
        logger.info(f"Door lock service initialized with {len(self._locks)} doors")

    # ================================================================
    # Persistence
    # ================================================================
    async def load(self):
        """Restore persisted door states; seed storage when it is empty."""
        if self._store is None:
            return
        try:
            stored = await self._store.get_all(NAMESPACE)
        except Exception as e:
            logger.error(f"Failed to load door states, using defaults: {e}")
            return
        if not stored:
            for door, locked in self._locks.items():
                await self._persist(door, locked)
            return
        for door, locked in stored.items():
            if door in self._locks:
                self._locks[door] = bool(locked)
        logger.info(f"Door states restored: {self.snapshot()}")

    async def _persist(self, door_id: str, locked: bool):
        if self._store is None:
            return
        try:
            await self._store.put(NAMESPACE, door_id, locked)
        except Exception as e:
            logger.warning(f"Door {door_id} state held in memory only: {e}")

    # ================================================================
    # Queries
    # ================================================================
    @property
    def door_ids(self) -> List[str]:
        return list(self._locks.keys())

    def has_door(self, door_id: str) -> bool:
        return door_id in self._locks

    def get_state(self, door_id: str) -> Optional[bool]:
        return self._locks.get(door_id)

    def snapshot(self) -> Snapshot:
        return dict(self._locks)

    def get_events(self, limit: Optional[int] = None) -> List[DoorEvent]:
        """Newest first."""
        events = list(reversed(self._events))
        return events[:limit] if limit else events

    # ================================================================
    # Notification
    # ================================================================
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; it receives the current snapshot right away."""
        self._listeners.append(listener)
        try:
            listener(self.snapshot())
        except Exception as e:
            logger.error(f"Door listener error: {e}")

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self):
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Door listener error: {e}")

    # ================================================================
    # Audit Log
    # ================================================================
    def _log_event(self, event_type: DoorEventType, door_id: str, success: bool,
                   reason: Optional[str] = None):
        self._events.append(DoorEvent(
            type=event_type,
            door_id=door_id,
            actor_id=self._policy.actor_id,
            success=success,
            reason=reason,
        ))

    def record_denied(self, door_id: str, reason: str):
        self._log_event(DoorEventType.DENIED, door_id, False, reason)
        logger.warning(f"Door action denied on {door_id}: {reason}")

    def authorize(self, door_id: str, locked: bool) -> Optional[DoorResult]:
        """Check a move of ``door_id`` to ``locked``. Returns a failure result or None."""
        if not self.has_door(door_id):
            return DoorResult(success=False, error="Unknown door")
        unlocking = not locked
        if not self._policy.can_door_action(door_id, unlocking):
            self.record_denied(door_id, "unlock" if unlocking else "lock")
            return DoorResult(success=False, error="Not allowed")
        return None

    def authorize_all(self, locked: bool) -> Optional[DoorResult]:
        action = "door.lockAll" if locked else "door.unlockAll"
        if not self._policy.can(action):
            self.record_denied(ALL_DOORS, action)
            return DoorResult(success=False, error="Not allowed")
        return None

    # ================================================================
    # Transitions
    # ================================================================
    async def toggle(self, door_id: str) -> DoorResult:
        if not self.has_door(door_id):
            return DoorResult(success=False, error="Unknown door")
        desired = not self._locks[door_id]
        denied = self.authorize(door_id, desired)
        if denied:
            return denied
        self._locks[door_id] = desired
        self._log_event(DoorEventType.LOCK if desired else DoorEventType.UNLOCK, door_id, True)
        await self._persist(door_id, desired)
        logger.info(f"Door {door_id}: {'LOCKED' if desired else 'UNLOCKED'}")
        self._emit()
        return DoorResult(success=True, locked=desired)

    async def lock_all(self) -> DoorResult:
        return await self._set_all_authorized(True)

    async def unlock_all(self) -> DoorResult:
        return await self._set_all_authorized(False)

    async def _set_all_authorized(self, locked: bool) -> DoorResult:
        denied = self.authorize_all(locked)
        if denied:
            return denied
        await self.set_all(locked)
        return DoorResult(success=True, locked=locked)

    async def set_all(self, locked: bool, log: bool = True, persist: bool = True, emit: bool = True):
        """Move every door to ``locked`` with one aggregate event and one notification."""
        changed = [door for door, value in self._locks.items() if value != locked]
        for door in self._locks:
            self._locks[door] = locked
        if log:
            self._log_event(DoorEventType.LOCK_ALL if locked else DoorEventType.UNLOCK_ALL, ALL_DOORS, True)
        if persist:
            for door in changed:
                await self._persist(door, locked)
        logger.info(f"All doors {'LOCKED' if locked else 'UNLOCKED'} ({len(changed)} changed)")
        if emit:
            self._emit()

    async def set_state(self, door_id: str, locked: bool, force: bool = False,
                        log: bool = True, persist: bool = True, emit: bool = True) -> DoorResult:
        """Low-level write with no authorization, used to reconcile confirmed states."""
        if not self.has_door(door_id):
            return DoorResult(success=False, error="Unknown door")
        if self._locks[door_id] == locked and not force:
            return DoorResult(success=True, locked=locked)
        self._locks[door_id] = locked
        if log:
            self._log_event(DoorEventType.LOCK if locked else DoorEventType.UNLOCK, door_id, True)
        if persist:
            await self._persist(door_id, locked)
        if emit:
            self._emit()
        return DoorResult(success=True, locked=locked)

    async def set_states(self, states: Dict[str, bool], log: bool = False, persist: bool = True,
                         emit: bool = True):
        """Reconcile a snapshot (e.g. from the remote API) with one notification."""
        changed = False
        for door_id, locked in states.items():
            if not self.has_door(door_id) or self._locks[door_id] == bool(locked):
                continue
            await self.set_state(door_id, bool(locked), log=log, persist=persist, emit=False)
            changed = True
        if emit and changed:
            self._emit()
