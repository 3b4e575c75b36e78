"""
HomeCtl - API Routes
======================
FastAPI REST + WebSocket endpoints over a Household.

Usage:
    uvicorn homectl.api:app --host 0.0.0.0 --port 8100
"""
import asyncio
import json
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel

from homectl.config import settings
from homectl.errors import UnknownMemberError
from homectl.household import Household, build_household
from homectl.models import Command, CommandAction, Role
from homectl.services.intent_normalizer import normalize_device_type, normalize_room, normalize_value
from homectl.services.power_service import Sector


# ================================================================
# Request Bodies
# ================================================================
class PinLogin(BaseModel):
    pin: str


class MemberCreate(BaseModel):
    name: str
    pin: str = ""
    email: str = ""
    role: Role = Role.MEMBER
    policies: Optional[Dict[str, Any]] = None


class MemberUpdate(BaseModel):
    name: Optional[str] = None
    pin: Optional[str] = None
    email: Optional[str] = None
    role: Optional[Role] = None
    policies: Optional[Dict[str, Any]] = None


class DeviceSet(BaseModel):
    room: str = "mainhall"
    device: str = "light"
    value: str = "on"


class AssistantText(BaseModel):
    text: str


class PowerEstimate(BaseModel):
    kwh: Optional[float] = None
    rate_halala: Optional[float] = None
    sector: Sector = Sector.RESIDENTIAL


# ================================================================
# WebSocket Manager
# ================================================================
class WSManager:
    def __init__(self):
        self.connections: List[WebSocket] = []

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self.connections.append(ws)

    def disconnect(self, ws: WebSocket):
        if ws in self.connections:
            self.connections.remove(ws)

    async def broadcast(self, message: dict):
        dead = []
        for ws in self.connections:
            try:
                await ws.send_json(message)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)


def create_app(household: Optional[Household] = None) -> FastAPI:
    """Build the API around ``household`` (a default one from settings if omitted)."""
    home = household or build_household(settings)
    ws_manager = WSManager()

    app = FastAPI(
        title=home.settings.APP_NAME,
        description="Household automation: members, door locks, devices and the voice assistant",
        version=home.settings.APP_VERSION,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.household = home
    app.state.ws_manager = ws_manager

    def require_admin():
        """Member management is open until someone registers, then owner/admin only."""
        if not home.registry.list_members():
            return
        member = home.registry.current_member
        if member is None or member.role not in (Role.OWNER, Role.ADMIN):
            raise HTTPException(403, "Only the owner or an admin can manage members")

    # ================================================================
    # Lifecycle
    # ================================================================
    @app.on_event("startup")
    async def startup():
        logger.info("HomeCtl API server starting...")
        await home.start()

        def on_doors(snapshot):
            if ws_manager.connections:
                asyncio.create_task(ws_manager.broadcast({"type": "doors", "data": snapshot}))

        app.state.unsubscribe_doors = home.doors.subscribe(on_doors)

    @app.on_event("shutdown")
    async def shutdown():
        unsubscribe = getattr(app.state, "unsubscribe_doors", None)
        if unsubscribe:
            unsubscribe()
        await home.stop()
        logger.info("HomeCtl API server stopped")

    # ================================================================
    # System Routes
    # ================================================================
    @app.get("/")
    async def root():
        return {"name": home.settings.APP_NAME, "version": home.settings.APP_VERSION}

    @app.get("/health")
    async def health():
        return {"status": "ok", "remote": home.remote.enabled}

    # ================================================================
    # Auth Routes
    # ================================================================
    @app.post("/api/auth/pin")
    async def login_pin(data: PinLogin):
        member = home.registry.authenticate_by_pin(data.pin)
        if member is None:
            raise HTTPException(401, "Invalid PIN")
        return {"member": member.public_dict()}

    @app.post("/api/auth/logout")
    async def logout():
        home.registry.logout()
        return {"status": "logged_out"}

    @app.get("/api/auth/me")
    async def me():
        member = home.registry.current_member
        return {
            "member": member.public_dict() if member else None,
            "setup_required": not home.registry.has_owner(),
        }

    # ================================================================
    # Member Routes
    # ================================================================
    @app.get("/api/members")
    async def list_members():
        return {"members": [m.public_dict() for m in home.registry.list_members()]}

    @app.post("/api/members")
    async def create_member(data: MemberCreate):
        require_admin()
        if not home.registry.list_members():
            member = await home.registry.register(data.name, pin=data.pin, role=data.role, email=data.email)
        else:
            member = await home.registry.add_member(data.name, pin=data.pin, role=data.role,
                                                    email=data.email, policies=data.policies)
        return {"member": member.public_dict()}

    @app.patch("/api/members/{member_id}")
    async def update_member(member_id: str, data: MemberUpdate):
        require_admin()
        updates = data.model_dump(exclude_none=True)
        try:
            member = await home.registry.update_member(member_id, updates)
        except UnknownMemberError:
            raise HTTPException(404, "Member not found")
        return {"member": member.public_dict()}

    @app.delete("/api/members/{member_id}")
    async def delete_member(member_id: str):
        require_admin()
        if not await home.registry.remove_member(member_id):
            raise HTTPException(404, "Member not found")
        return {"status": "deleted"}

    # ================================================================
    # Door Routes
    # ================================================================
    @app.get("/api/doors")
    async def get_doors():
        return {"doors": home.doors.snapshot()}

    @app.get("/api/doors/events")
    async def door_events(limit: int = Query(50, ge=1, le=500)):
        return {"events": [e.to_dict() for e in home.doors.get_events(limit)]}

    @app.post("/api/doors/lock_all")
    async def lock_all():
        result = await home.actuation.execute(Command(action=CommandAction.DOOR_LOCK_ALL))
        return {**result.to_dict(), "doors": home.doors.snapshot()}

    @app.post("/api/doors/unlock_all")
    async def unlock_all():
        result = await home.actuation.execute(Command(action=CommandAction.DOOR_UNLOCK_ALL))
        return {**result.to_dict(), "doors": home.doors.snapshot()}

    @app.post("/api/doors/{door_id}/toggle")
    async def toggle_door(door_id: str):
        if not home.doors.has_door(door_id):
            raise HTTPException(404, "Unknown door")
        action = CommandAction.DOOR_UNLOCK if home.doors.get_state(door_id) else CommandAction.DOOR_LOCK
        result = await home.actuation.execute(Command(action=action, door=door_id))
        return {**result.to_dict(), "locked": home.doors.get_state(door_id)}

    # ================================================================
    # Device Routes
    # ================================================================
    @app.get("/api/devices")
    async def get_devices():
        return {
            "devices": [
                {
                    "id": d.id,
                    "area": d.area_id,
                    "type": d.device_type.value,
                    "on": home.device_states.get(d.id),
                }
                for d in home.catalog.descriptors()
            ]
        }

    @app.post("/api/devices/set")
    async def set_devices(data: DeviceSet):
        command = Command(
            action=CommandAction.DEVICE_SET,
            room=normalize_room(data.room),
            device=normalize_device_type(data.device),
            value=normalize_value(data.value),
        )
        result = await home.actuation.execute(command)
        return {**result.to_dict(), "states": home.device_states.snapshot()}

    # ================================================================
    # Power Routes
    # ================================================================
    @app.get("/api/power/sectors")
    async def power_sectors():
        return {"sectors": home.power.sectors(), "available": home.power.can_view()}

    @app.post("/api/power/estimate")
    async def power_estimate(data: PowerEstimate):
        estimate = home.power.estimate(data.kwh, data.rate_halala, data.sector)
        if estimate.denied:
            raise HTTPException(403, estimate.error)
        if not estimate.success:
            raise HTTPException(400, estimate.error)
        return estimate.to_dict()

    # ================================================================
    # Assistant Routes
    # ================================================================
    @app.post("/api/assistant/reply")
    async def assistant_reply(data: AssistantText):
        """Execute a raw assistant reply (text plus directive)."""
        turn = await home.assistant.handle_assistant_reply(data.text)
        return turn.to_dict()

    @app.post("/api/assistant/command")
    async def assistant_command(data: AssistantText):
        """One conversational turn for what the user said."""
        turn = await home.assistant.handle_user_text(data.text)
        return turn.to_dict()

    @app.get("/api/assistant/history")
    async def assistant_history():
        return {"history": [m.to_dict() for m in home.assistant.history]}

    # ================================================================
    # WebSocket
    # ================================================================
    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        await ws_manager.connect(ws)
        logger.info("WebSocket client connected")

        await ws.send_json({"type": "doors", "data": home.doors.snapshot()})

        try:
            while True:
                data = await ws.receive_text()
                try:
                    msg = json.loads(data)
                except ValueError:
                    await ws.send_json({"type": "error", "data": {"error": "Invalid JSON"}})
                    continue

                if msg.get("type") == "command":
                    turn = await home.assistant.handle_user_text(msg.get("text", ""))
                    await ws.send_json({"type": "command_response", "data": turn.to_dict()})

                elif msg.get("type") == "ping":
                    await ws.send_json({"type": "pong"})

        except WebSocketDisconnect:
            ws_manager.disconnect(ws)
            logger.info("WebSocket client disconnected")
        except Exception as e:
            ws_manager.disconnect(ws)
            logger.error(f"WebSocket error: {e}")

    return app


app = create_app()
