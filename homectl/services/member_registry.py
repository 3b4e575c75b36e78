"""
HomeCtl - Member Registry
===========================
Household members, their policies, and the one member currently signed in.
The first member to register becomes the owner.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from loguru import logger
from pydantic import BaseModel, Field

from homectl.errors import UnknownMemberError
from homectl.models import Role
from homectl.services.policy_engine import Policy, complete_policy, default_policy, merge_policy
from homectl.services.storage import KeyValueStore


NAMESPACE = "members"


class Member(BaseModel):
    id: str
    name: str = ""
    email: str = ""
    role: Role = Role.MEMBER
    pin: str = ""
    policies: Policy = Field(default_factory=Policy)
    registered_at: str = Field(default_factory=lambda: datetime.now().isoformat())

    def public_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data.pop("pin", None)
        return data


class MemberRegistry:
    """Owns members and the current session."""

    def __init__(self, store: Optional[KeyValueStore], areas: Iterable[str]):
        self._store = store
        self._areas = list(areas)
        self._members: Dict[str, Member] = {}
        self._current_id: Optional[str] = None
        logger.info("Member registry initialized")

    # ================================================================
    # Persistence
    # ================================================================
    async def load(self):
        """Load persisted members, backfilling any incomplete policy."""
        if self._store is None:
            return
        try:
            rows = await self._store.get_all(NAMESPACE)
        except Exception as e:
            logger.error(f"Failed to load members, starting empty: {e}")
            return
        for member_id, raw in rows.items():
            try:
                member = Member(**{**raw, "id": member_id, "policies": Policy()})
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable member record {member_id}: {e}")
                continue
            member.policies = complete_policy(raw.get("policies"), member.role, self._areas)
            self._members[member.id] = member
        logger.info(f"Loaded {len(self._members)} member(s)")

    async def _persist(self, member: Member):
        if self._store is None:
            return
        try:
            await self._store.put(NAMESPACE, member.id, member.model_dump(mode="json"))
        except Exception as e:
            logger.warning(f"Member {member.id} kept in memory only: {e}")

    async def _forget(self, member_id: str):
        if self._store is None:
            return
        try:
            await self._store.delete(NAMESPACE, member_id)
        except Exception as e:
            logger.warning(f"Failed to delete stored member {member_id}: {e}")

    # ================================================================
    # Lifecycle
    # ================================================================
    async def register(self, name: str, pin: str = "", role: Role = Role.MEMBER, email: str = "") -> Member:
        """Register a member; the first one in an empty household becomes owner."""
        if not self._members:
            role = Role.OWNER
        return await self.add_member(name=name, pin=pin, role=role, email=email)

    async def add_member(self, name: str, pin: str = "", role: Role = Role.MEMBER,
                         email: str = "", policies: Optional[Mapping[str, Any]] = None) -> Member:
        role = Role(role)
        member = Member(
            id=uuid.uuid4().hex[:12],
            name=name,
            email=email,
            role=role,
            pin=pin,
            policies=merge_policy(default_policy(role, self._areas), policies, self._areas),
        )
        self._members[member.id] = member
        await self._persist(member)
        logger.info(f"Member added: {member.name} ({member.role.value})")
        return member

    async def update_member(self, member_id: str, updates: Mapping[str, Any]) -> Member:
        member = self.get(member_id)
        if member is None:
            raise UnknownMemberError(f"Member not found: {member_id}")
        fields = {k: v for k, v in updates.items() if k in ("name", "email", "pin", "role")}
        updated = member.model_copy(update=fields)
        if "role" in fields:
            updated.role = Role(fields["role"])
        if updates.get("policies") is not None:
            updated.policies = merge_policy(member.policies, updates["policies"], self._areas)
        self._members[member_id] = updated
        await self._persist(updated)
        logger.info(f"Member updated: {updated.name}")
        return updated

    async def remove_member(self, member_id: str) -> bool:
        member = self._members.pop(member_id, None)
        if member is None:
            return False
        if self._current_id == member_id:
            self._current_id = None
        await self._forget(member_id)
        logger.info(f"Member removed: {member.name}")
        return True

    # ================================================================
    # Lookup
    # ================================================================
    def get(self, member_id: str) -> Optional[Member]:
        return self._members.get(member_id)

    def list_members(self) -> List[Member]:
        return list(self._members.values())

    def has_owner(self) -> bool:
        return any(m.role == Role.OWNER for m in self._members.values())

    # ================================================================
    # Session
    # ================================================================
    @property
    def current_member(self) -> Optional[Member]:
        if self._current_id is None:
            return None
        return self._members.get(self._current_id)

    def authenticate_by_pin(self, pin: str) -> Optional[Member]:
        if not pin:
            return None
        for member in self._members.values():
            if member.pin and member.pin == pin:
                self._current_id = member.id
                logger.info(f"Signed in: {member.name}")
                return member
        logger.warning("PIN authentication failed")
        return None

    def set_current(self, member_id: Optional[str]):
        if member_id is not None and member_id not in self._members:
            raise UnknownMemberError(f"Member not found: {member_id}")
        self._current_id = member_id

    def logout(self):
        self._current_id = None
