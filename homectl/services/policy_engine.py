"""
HomeCtl - Policy Engine
=========================
Answers "may the current member do this?" against a capability matrix of
global switches and per-area device/door permissions.

Policies are always complete: any area or control missing from a stored or
partial policy is filled in from the role defaults, and updates merge into
the existing policy instead of replacing it.
"""
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from loguru import logger
from pydantic import BaseModel, Field

from homectl.models import DeviceType, Role


class AreaPermissions(BaseModel):
    light: bool = False
    fan: bool = False
    ac: bool = False
    door: bool = False


class Controls(BaseModel):
    devices: bool = False
    doors: bool = False
    unlock_doors: bool = False
    voice: bool = False
    power: bool = False


class Policy(BaseModel):
    controls: Controls = Field(default_factory=Controls)
    areas: Dict[str, AreaPermissions] = Field(default_factory=dict)


# Global action name -> controls flag
ACTION_CONTROLS = {
    "devices": "devices",
    "device.toggle": "devices",
    "doors": "doors",
    "door.lock": "doors",
    "door.lockAll": "doors",
    "unlock_doors": "unlock_doors",
    "unlockDoors": "unlock_doors",
    "door.unlock": "unlock_doors",
    "door.unlockAll": "unlock_doors",
    "voice": "voice",
    "voice.use": "voice",
    "power": "power",
    "power.view": "power",
}

_CONTROL_ALIASES = {"unlockDoors": "unlock_doors"}

PolicyUpdate = Union[Policy, Mapping[str, Any]]


def _coerce_role(role: Union[Role, str, None]) -> Role:
    try:
        return Role(role) if role else Role.MEMBER
    except ValueError:
        return Role.MEMBER


def default_policy(role: Union[Role, str, None], areas: Iterable[str]) -> Policy:
    """Fully populated policy for a role: owners and admins get everything."""
    role = _coerce_role(role)
    privileged = role in (Role.OWNER, Role.ADMIN)
    controls = Controls(
        devices=True,
        doors=True,
        unlock_doors=privileged,
        voice=True,
        power=True,
    )
    perms = {
        area: AreaPermissions(light=privileged, fan=privileged, ac=privileged, door=privileged)
        for area in areas
    }
    return Policy(controls=controls, areas=perms)


def _as_update_dict(update: Optional[PolicyUpdate]) -> Dict[str, Any]:
    if update is None:
        return {}
    if isinstance(update, Policy):
        return update.model_dump()
    return dict(update)


def merge_policy(existing: Policy, update: Optional[PolicyUpdate], areas: Iterable[str]) -> Policy:
    """Shallow-merge controls and merge areas key by key.

    A permission the update does not mention keeps its existing value.
    Areas outside the configured set are ignored.
    """
    areas = list(areas)
    data = _as_update_dict(update)

    controls = existing.controls.model_dump()
    for key, value in (data.get("controls") or {}).items():
        key = _CONTROL_ALIASES.get(key, key)
        if key in controls and value is not None:
            controls[key] = bool(value)

    merged_areas = {area: perms.model_copy() for area, perms in existing.areas.items() if area in areas}
    for area, perms in (data.get("areas") or {}).items():
        if area not in areas:
            logger.warning(f"Ignoring policy update for unknown area '{area}'")
            continue
        if isinstance(perms, AreaPermissions):
            perms = perms.model_dump()
        current = merged_areas.get(area, AreaPermissions()).model_dump()
        for key, value in (perms or {}).items():
            if key in current and value is not None:
                current[key] = bool(value)
        merged_areas[area] = AreaPermissions(**current)

    return Policy(controls=Controls(**controls), areas=merged_areas)


def complete_policy(policy: Optional[PolicyUpdate], role: Union[Role, str, None],
                    areas: Iterable[str]) -> Policy:
    """Backfill a possibly partial policy from the role defaults."""
    areas = list(areas)
    return merge_policy(default_policy(role, areas), policy, areas)


class PolicyEngine:
    """Authorization predicates over the registry's current member."""

    def __init__(self, registry):
        self._registry = registry
        logger.info("Policy engine initialized")

    @property
    def current_member(self):
        return self._registry.current_member

    @property
    def actor_id(self) -> Optional[str]:
        member = self.current_member
        return member.id if member else None

    def _policy(self) -> Optional[Policy]:
        member = self.current_member
        if member is None:
            return None
        return member.policies

    def can(self, action: str) -> bool:
        policy = self._policy()
        if policy is None:
            return False
        flag = ACTION_CONTROLS.get(action)
        if flag is None:
            logger.warning(f"Unknown global action '{action}' denied")
            return False
        return bool(getattr(policy.controls, flag))

    def can_device(self, area: str, device_type: Union[DeviceType, str]) -> bool:
        policy = self._policy()
        if policy is None or not policy.controls.devices:
            return False
        perms = policy.areas.get(area)
        if perms is None:
            return False
        return bool(getattr(perms, DeviceType(device_type).value, False))

    def can_door_action(self, area: str, unlocking: bool) -> bool:
        policy = self._policy()
        if policy is None or not policy.controls.doors:
            return False
        if unlocking and not policy.controls.unlock_doors:
            return False
        perms = policy.areas.get(area)
        return bool(perms and perms.door)
