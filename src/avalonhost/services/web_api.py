"""FastAPI application exposing rooms over HTTP and pushing updates over WebSockets."""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import orjson
import structlog
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from .. import __version__
from ..config.settings import HostConfig
from ..core.errors import GameError, RoomNotFoundError, SchemaValidationError
from ..core.rulesets import RULESETS
from .rooms import RoomDirectory

LOGGER = structlog.get_logger(__name__)


class RoomCreate(BaseModel):
    """Payload for opening a room or joining one."""

    nickname: str = Field(..., min_length=1, max_length=32, description="Display name, unique within the room")


class ActionSubmit(BaseModel):
    """Payload carrying one player action."""

    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(..., alias="playerId")
    action: Dict[str, Any]


class LeaveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(..., alias="playerId")


STATUS_BY_KIND = {
    RoomNotFoundError.kind: 404,
    SchemaValidationError.kind: 422,
}


def _status_for(kind: Optional[str]) -> int:
    return STATUS_BY_KIND.get(kind or "", 409)


def _http_error(exc: GameError) -> HTTPException:
    return HTTPException(status_code=_status_for(exc.kind), detail=exc.to_payload())


class ConnectionHub:
    """Tracks open WebSockets per room and implements the room broadcaster."""

    def __init__(self) -> None:
        self._connections: Dict[str, Dict[str, WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def register(self, room_code: str, player_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            previous = self._connections.setdefault(room_code, {}).get(player_id)
            self._connections[room_code][player_id] = websocket
        if previous is not None and previous is not websocket:
            # A player reconnecting from a new tab replaces the old socket.
            with contextlib.suppress(RuntimeError):
                await previous.close(code=4000)

    async def unregister(self, room_code: str, player_id: str, websocket: WebSocket) -> bool:
        """Forget ``websocket``; returns False if a newer socket already replaced it."""
        async with self._lock:
            sockets = self._connections.get(room_code, {})
            current = sockets.get(player_id) is websocket
            if current:
                del sockets[player_id]
            if not sockets:
                self._connections.pop(room_code, None)
        return current

    async def connected(self, room_code: str) -> Dict[str, WebSocket]:
        async with self._lock:
            return dict(self._connections.get(room_code, {}))

    async def notify(self, room_code: str, event: str, payload: Dict[str, Any]) -> None:
        message = _encode(event, payload)
        for player_id, websocket in (await self.connected(room_code)).items():
            await self._send(room_code, player_id, websocket, message)

    async def send_to(self, room_code: str, player_id: str, event: str, payload: Dict[str, Any]) -> None:
        websocket = (await self.connected(room_code)).get(player_id)
        if websocket is not None:
            await self._send(room_code, player_id, websocket, _encode(event, payload))

    async def _send(self, room_code: str, player_id: str, websocket: WebSocket, message: str) -> None:
        try:
            await websocket.send_text(message)
        except (WebSocketDisconnect, RuntimeError) as exc:
            LOGGER.warning("broadcast.failed", room=room_code, player=player_id, error=str(exc))
            await self.unregister(room_code, player_id, websocket)


def _encode(event: str, payload: Dict[str, Any]) -> str:
    return orjson.dumps({"event": event, "data": payload}).decode("utf-8")


async def _sweep_forever(directory: RoomDirectory, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        await directory.sweep_idle()


def _serialize_rulesets() -> Dict[str, Any]:
    return {
        "rulesets": [
            {
                "players": ruleset.players,
                "good": ruleset.good,
                "evil": ruleset.evil,
                "roles": [role.value for role in ruleset.roles],
                "missionSizes": list(ruleset.mission_sizes),
                "doubleFailRound": ruleset.double_fail_round,
            }
            for _, ruleset in sorted(RULESETS.items())
        ]
    }


def create_app(
    config: Optional[HostConfig] = None,
    *,
    directory: Optional[RoomDirectory] = None,
    hub: Optional[ConnectionHub] = None,
) -> FastAPI:
    """Build the web application around a room directory."""

    config = config or HostConfig()
    hub = hub or ConnectionHub()
    directory = directory or RoomDirectory(
        broadcaster=hub,
        code_length=config.room_code_length,
        idle_ttl=config.idle_room_ttl,
        seed=config.seed,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        sweeper = asyncio.create_task(_sweep_forever(directory, config.cleanup_interval))
        LOGGER.info("server.start", cleanup_interval=config.cleanup_interval, idle_ttl=config.idle_room_ttl)
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            LOGGER.info("server.stop")

    app = FastAPI(title="Avalon Room Host", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.directory = directory
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/config/rulesets")
    async def get_rulesets() -> Dict[str, Any]:
        """Return every supported table size with its roles and mission sizes."""
        return _serialize_rulesets()

    @app.post("/api/rooms")
    async def create_room(payload: RoomCreate) -> Dict[str, Any]:
        """Open a new room; the creator becomes host."""

        room, member = await directory.create_room(payload.nickname)
        return {"roomCode": room.code, "playerId": member.player_id}

    @app.post("/api/rooms/{code}/players")
    async def join_room(code: str, payload: RoomCreate) -> Dict[str, Any]:
        try:
            room, member = await directory.join_room(code, payload.nickname)
        except GameError as exc:
            raise _http_error(exc) from exc
        return {"roomCode": room.code, "playerId": member.player_id}

    @app.get("/api/rooms/{code}")
    async def get_room(code: str) -> Dict[str, Any]:
        """Fetch the lobby and the public game snapshot for a room."""

        try:
            view = await directory.describe(code)
        except GameError as exc:
            raise _http_error(exc) from exc
        return view.to_wire()

    @app.post("/api/rooms/{code}/leave")
    async def leave_room(code: str, payload: LeaveRequest) -> Dict[str, Any]:
        try:
            await directory.leave_room(code, payload.player_id)
        except GameError as exc:
            raise _http_error(exc) from exc
        return {"status": "left"}

    @app.delete("/api/rooms/{code}")
    async def delete_room(code: str, player_id: str = Query(..., alias="playerId")) -> Dict[str, Any]:
        """Close a room. Only the host may do this."""

        try:
            await directory.delete_room(code, player_id)
        except GameError as exc:
            raise _http_error(exc) from exc
        return {"status": "deleted", "roomCode": code}

    @app.post("/api/rooms/{code}/actions")
    async def submit_action(code: str, payload: ActionSubmit) -> JSONResponse:
        """Apply a player action. Refusals come back to the caller only."""

        result = await directory.dispatch(code, payload.player_id, payload.action)
        if result.ok:
            return JSONResponse(result.to_wire())

        return JSONResponse(result.to_wire(), status_code=_status_for((result.error or {}).get("kind")))

    @app.websocket("/ws/{code}/{player_id}")
    async def room_socket(websocket: WebSocket, code: str, player_id: str) -> None:
        await websocket.accept()
        try:
            room = await directory.get(code)
            room.member(player_id)
        except GameError as exc:
            await websocket.send_text(_encode("error", exc.to_payload()))
            await websocket.close(code=4404)
            return

        await hub.register(code, player_id, websocket)
        try:
            await directory.mark_online(code, player_id)
            while True:
                message = await websocket.receive_text()
                try:
                    action = orjson.loads(message)
                except orjson.JSONDecodeError as exc:
                    error = SchemaValidationError("unknown", [{"loc": [], "msg": str(exc), "type": "json_invalid"}])
                    await hub.send_to(code, player_id, "error", error.to_payload())
                    continue

                result = await directory.dispatch(code, player_id, action)
                if not result.ok:
                    await hub.send_to(code, player_id, "error", result.error or {})
                elif result.reveal is not None:
                    await hub.send_to(code, player_id, "roleInfo", result.reveal.to_wire())
        except WebSocketDisconnect:
            LOGGER.info("socket.closed", room=code, player=player_id)
        finally:
            if await hub.unregister(code, player_id, websocket):
                try:
                    await directory.disconnect(code, player_id)
                except GameError as exc:
                    # The room may have been deleted while the socket was open.
                    LOGGER.info("socket.orphaned", room=code, player=player_id, kind=exc.kind)

    if config.static_dir is not None and config.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(config.static_dir), html=True), name="static")

    return app


app = create_app()
"""Default application used by ``uvicorn avalonhost.services.web_api:app``."""
