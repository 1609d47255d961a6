"""Room directory, presence tracking and per-room action dispatch."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import structlog

from ..core.errors import (
    GameError,
    GameInProgressError,
    GameNotStartedError,
    NicknameTakenError,
    NotHostError,
    NotInRoomError,
    RoomNotFoundError,
)
from ..core.fsm import GameMachine, Seat
from ..core.schemas import (
    ActionPayload,
    ActionResult,
    ActionType,
    AssassinateAction,
    ConfirmTeamAction,
    MemberView,
    Phase,
    ReturnToLobbyAction,
    RoomStatus,
    RoomView,
    StartGameAction,
    ToggleTeamMemberAction,
    ViewRoleAction,
    VoteMissionAction,
    VoteTeamAction,
    validate_action,
)
from ..utils.rng import build_rng, generate_room_code

LOGGER = structlog.get_logger(__name__)

MAX_CODE_ATTEMPTS = 100


class Broadcaster(Protocol):
    """Transport hook used to push room events to connected players."""

    async def notify(self, room_code: str, event: str, payload: Dict[str, Any]) -> None:
        ...

    async def send_to(self, room_code: str, player_id: str, event: str, payload: Dict[str, Any]) -> None:
        ...


class NullBroadcaster:
    """Broadcaster that drops everything; used when no transport is attached."""

    async def notify(self, room_code: str, event: str, payload: Dict[str, Any]) -> None:
        return None

    async def send_to(self, room_code: str, player_id: str, event: str, payload: Dict[str, Any]) -> None:
        return None


@dataclass(slots=True)
class Member:
    """A person connected to a room, seated in the current game or not."""

    player_id: str
    nickname: str
    online: bool = True


@dataclass
class Room:
    """One lobby and, while playing, the game machine that owns its session."""

    code: str
    host_id: str
    members: List[Member] = field(default_factory=list)
    status: RoomStatus = RoomStatus.LOBBY
    machine: Optional[GameMachine] = None
    created_at: float = field(default_factory=time.time)
    touched_at: float = field(default_factory=time.time)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def host(self) -> Member:
        return self.member(self.host_id)

    @property
    def all_offline(self) -> bool:
        return all(not member.online for member in self.members)

    def member(self, player_id: str) -> Member:
        for member in self.members:
            if member.player_id == player_id:
                return member
        raise NotInRoomError("Player is not a member of this room", {"room": self.code, "playerId": player_id})

    def has_nickname(self, nickname: str) -> bool:
        return any(member.nickname == nickname for member in self.members)

    def roster(self) -> List[Seat]:
        return [Seat(player_id=member.player_id, name=member.nickname) for member in self.members]

    def view(self) -> RoomView:
        seated = set()
        if self.machine is not None:
            seated = {player.player_id for player in self.machine.state.players}
        return RoomView(
            code=self.code,
            host=self.host.nickname,
            status=self.status,
            members=tuple(
                MemberView(
                    nickname=member.nickname,
                    online=member.online,
                    is_host=member.player_id == self.host_id,
                    in_game=member.player_id in seated,
                )
                for member in self.members
            ),
            game=self.machine.snapshot() if self.machine is not None else None,
        )


class RoomDirectory:
    """Registry of live rooms. One :class:`GameMachine` per playing room.

    All mutations of a room happen while holding that room's lock, so
    concurrent actions in one room are applied one at a time and none are
    lost; different rooms never wait on each other.
    """

    def __init__(
        self,
        *,
        broadcaster: Optional[Broadcaster] = None,
        code_length: int = 6,
        idle_ttl: float = 3600.0,
        seed: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.broadcaster: Broadcaster = broadcaster or NullBroadcaster()
        self.code_length = code_length
        self.idle_ttl = idle_ttl
        self._rooms: Dict[str, Room] = {}
        self._lock = asyncio.Lock()
        self._rng = build_rng(seed=seed)
        self._clock = clock

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    async def create_room(self, nickname: str) -> Tuple[Room, Member]:
        """Open a new lobby with ``nickname`` as its host."""
        nickname = nickname.strip()
        member = Member(player_id=uuid.uuid4().hex, nickname=nickname)
        async with self._lock:
            code = self._new_code()
            now = self._clock()
            room = Room(code=code, host_id=member.player_id, members=[member], created_at=now, touched_at=now)
            self._rooms[code] = room
        LOGGER.info("room.created", room=code, host=nickname)
        return room, member

    async def join_room(self, code: str, nickname: str) -> Tuple[Room, Member]:
        nickname = nickname.strip()
        room = await self.get(code)
        async with room.lock:
            if room.status != RoomStatus.LOBBY:
                raise GameInProgressError("The game has already started", {"room": code})
            if room.has_nickname(nickname):
                raise NicknameTakenError(f"Nickname {nickname!r} is already in use", {"nickname": nickname})
            member = Member(player_id=uuid.uuid4().hex, nickname=nickname)
            room.members.append(member)
            room.touched_at = self._clock()
            await self.broadcaster.notify(code, "roomUpdate", room.view().to_wire())
        LOGGER.info("room.joined", room=code, nickname=nickname)
        return room, member

    async def get(self, code: str) -> Room:
        async with self._lock:
            room = self._rooms.get(code)
        if room is None:
            raise RoomNotFoundError("Room does not exist", {"room": code})
        return room

    async def describe(self, code: str) -> RoomView:
        room = await self.get(code)
        async with room.lock:
            return room.view()

    async def list_rooms(self) -> List[Room]:
        async with self._lock:
            return list(self._rooms.values())

    async def leave_room(self, code: str, player_id: str) -> None:
        """Remove a member from a lobby, handing the host role on if needed."""
        room = await self.get(code)
        async with room.lock:
            member = room.member(player_id)
            if room.status != RoomStatus.LOBBY:
                raise GameInProgressError("Players cannot leave during a game", {"room": code})
            room.members.remove(member)
            room.touched_at = self._clock()
            LOGGER.info("room.left", room=code, nickname=member.nickname)

            if not room.members:
                await self._remove(code)
                LOGGER.info("room.deleted", room=code, reason="empty")
                return

            if member.player_id == room.host_id:
                successor = next((m for m in room.members if m.online), room.members[0])
                room.host_id = successor.player_id
                LOGGER.info("room.host_transferred", room=code, host=successor.nickname)
            await self.broadcaster.notify(code, "roomUpdate", room.view().to_wire())

    async def delete_room(self, code: str, caller_id: str) -> None:
        room = await self.get(code)
        async with room.lock:
            room.member(caller_id)
            if caller_id != room.host_id:
                raise NotHostError("Only the host can delete the room", {"playerId": caller_id})
            await self.broadcaster.notify(code, "roomDeleted", {"code": code})
            await self._remove(code)
        LOGGER.info("room.deleted", room=code, reason="host")

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    async def mark_online(self, code: str, player_id: str) -> None:
        room = await self.get(code)
        async with room.lock:
            member = room.member(player_id)
            member.online = True
            room.touched_at = self._clock()
            await self.broadcaster.notify(code, "roomUpdate", room.view().to_wire())
        LOGGER.info("player.online", room=code, nickname=member.nickname)

    async def disconnect(self, code: str, player_id: str) -> None:
        """Mark a member offline; a lobby whose host leaves everyone offline is closed."""
        room = await self.get(code)
        async with room.lock:
            member = room.member(player_id)
            member.online = False
            room.touched_at = self._clock()
            LOGGER.info("player.offline", room=code, nickname=member.nickname)

            if player_id == room.host_id and room.status == RoomStatus.LOBBY and room.all_offline:
                await self._remove(code)
                LOGGER.info("room.deleted", room=code, reason="all_offline")
                return
            await self.broadcaster.notify(code, "roomUpdate", room.view().to_wire())

    async def sweep_idle(self, now: Optional[float] = None) -> List[str]:
        """Delete lobbies where everyone is offline and nothing happened for ``idle_ttl`` seconds."""
        now = self._clock() if now is None else now
        removed: List[str] = []
        for room in await self.list_rooms():
            async with room.lock:
                idle = now - room.touched_at > self.idle_ttl
                if room.status == RoomStatus.LOBBY and room.all_offline and idle:
                    await self._remove(room.code)
                    removed.append(room.code)
        if removed:
            LOGGER.info("room.swept", rooms=removed)
        return removed

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def dispatch(self, code: str, player_id: str, action: Any) -> ActionResult:
        """Apply one player action and broadcast the outcome.

        Refused actions are logged and returned to the caller only; nothing
        is broadcast and the room is left as it was.
        """
        log = LOGGER.bind(room=code, player=player_id)
        action_type: Optional[ActionType] = None
        try:
            payload = validate_action(action)
            action_type = payload.type
            room = await self.get(code)
            async with room.lock:
                room.member(player_id)
                result, event = self._apply(room, player_id, payload)
                room.touched_at = self._clock()
                if event is not None:
                    await self.broadcaster.notify(code, event, room.view().to_wire())
        except GameError as exc:
            log.warning("action.rejected", action=getattr(action_type, "value", None), kind=exc.kind, error=exc.message)
            return ActionResult(ok=False, action=action_type, error=exc.to_payload())

        log.debug("action.applied", action=action_type.value)
        return result

    def _apply(self, room: Room, player_id: str, payload: ActionPayload) -> Tuple[ActionResult, Optional[str]]:
        if isinstance(payload, StartGameAction):
            return self._start_game(room, player_id, payload.player_count), "gameStart"

        if isinstance(payload, ReturnToLobbyAction):
            return self._return_to_lobby(room, player_id), "returnToLobby"

        machine = room.machine
        if machine is None:
            raise GameNotStartedError("No game is running in this room", {"room": room.code})

        if isinstance(payload, ViewRoleAction):
            reveal = machine.view_role(player_id)
            return ActionResult(ok=True, action=payload.type, reveal=reveal), None

        before = machine.state.phase
        if isinstance(payload, ToggleTeamMemberAction):
            snapshot = machine.toggle_team_member(player_id, payload.candidate)
        elif isinstance(payload, ConfirmTeamAction):
            snapshot = machine.confirm_team(player_id)
        elif isinstance(payload, VoteTeamAction):
            snapshot = machine.vote_team(player_id, payload.approve)
        elif isinstance(payload, VoteMissionAction):
            snapshot = machine.vote_mission(player_id, payload.success)
        elif isinstance(payload, AssassinateAction):
            snapshot = machine.assassinate(player_id, payload.target)
        else:  # pragma: no cover - validate_action only yields the types above
            raise TypeError(f"Unhandled action {payload!r}")

        if snapshot.phase == Phase.GAME_OVER and before != Phase.GAME_OVER:
            LOGGER.info("game.finished", room=room.code, winner=snapshot.winner.value, round=snapshot.round)
        return ActionResult(ok=True, action=payload.type, game=snapshot), "gameUpdate"

    def _start_game(self, room: Room, player_id: str, player_count: int) -> ActionResult:
        if room.status != RoomStatus.LOBBY:
            raise GameInProgressError("A game is already running", {"room": room.code})
        seed = self._rng.randrange(2**32)
        room.machine = GameMachine.start(
            room.roster(),
            host_id=room.host_id,
            caller_id=player_id,
            player_count=player_count,
            seed=seed,
        )
        room.status = RoomStatus.PLAYING
        LOGGER.info("game.started", room=room.code, players=player_count, seed=seed)
        return ActionResult(ok=True, action=ActionType.START_GAME, game=room.machine.snapshot())

    def _return_to_lobby(self, room: Room, player_id: str) -> ActionResult:
        if player_id != room.host_id:
            raise NotHostError("Only the host can return the room to the lobby", {"playerId": player_id})
        if room.machine is None:
            raise GameNotStartedError("No game is running in this room", {"room": room.code})
        room.machine = None
        room.status = RoomStatus.LOBBY
        LOGGER.info("game.reset", room=room.code)
        return ActionResult(ok=True, action=ActionType.RETURN_TO_LOBBY)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_room_code(self._rng, self.code_length)
            if code not in self._rooms:
                return code
        raise RuntimeError("Could not allocate a free room code")

    async def _remove(self, code: str) -> None:
        async with self._lock:
            self._rooms.pop(code, None)
