"""
HomeCtl - Remote Device-State Client
======================================
HTTP client for the household backend that owns real door and device state.
Every call raises RemoteError on failure; callers decide what that means.
"""
from typing import Dict, Iterable, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from homectl.errors import RemoteError


def normalize_base(base: Optional[str]) -> str:
    if not base:
        return ""
    return base.strip().rstrip("/")


class RemoteDeviceClient:
    """Door and device endpoints of the backend API."""

    def __init__(self, base_url: Optional[str], timeout: float = 5.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = normalize_base(base_url)
        self.timeout = timeout
        self._transport = transport
        if self.enabled:
            logger.info(f"Remote device API: {self.base_url}")
        else:
            logger.info("Remote device API not configured; running local-only")

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _url(self, path: str) -> str:
        if not self.enabled:
            raise RemoteError("API base not configured")
        path = path if path.startswith("/") else f"/{path}"
        if self.base_url.endswith("/api") and path.startswith("/api"):
            path = path[4:]
        return f"{self.base_url}{path}"

    async def _request(self, method: str, path: str, **kwargs) -> Dict:
        url = self._url(path)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteError(f"{method} {path} failed: {e}") from e
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            message = data.get("error") if isinstance(data, dict) else None
            raise RemoteError(message or f"{method} {path} returned {resp.status_code}",
                              status=resp.status_code)
        return data if isinstance(data, dict) else {}

    # ================================================================
    # Doors
    # ================================================================
    async def get_doors(self) -> Dict[str, bool]:
        data = await self._request("GET", "/api/door")
        return {door: bool(locked) for door, locked in data.items()
                if isinstance(locked, (bool, int))}

    async def toggle_door(self, door: str) -> Dict:
        return await self._request("POST", "/api/door/toggle", json={"door": door})

    async def lock_all_doors(self) -> Dict:
        return await self._request("POST", "/api/door/lock_all", json={})

    async def unlock_all_doors(self) -> Dict:
        return await self._request("POST", "/api/door/unlock_all", json={})

    # ================================================================
    # Devices
    # ================================================================
    async def set_device_state(self, device_id: str, value: int) -> Dict:
        return await self._request("POST", f"/api/devices/{quote(device_id, safe='')}/state",
                                   json={"value": 1 if value else 0})

    async def get_device_states(self, device_ids: Optional[Iterable[str]] = None) -> Dict[str, Dict]:
        params = {}
        ids = list(device_ids or [])
        if ids:
            params["ids"] = ",".join(ids)
        data = await self._request("GET", "/api/devices/state", params=params)
        states = {}
        for device_id, raw in (data.get("states") or {}).items():
            raw = raw if isinstance(raw, dict) else {}
            try:
                value = 1 if int(raw.get("value") or 0) else 0
            except (TypeError, ValueError):
                value = 0
            states[device_id] = {
                "device_id": device_id,
                "value": value,
                "recorded_at": raw.get("recordedAt"),
            }
        return states
