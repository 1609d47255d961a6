import asyncio
import string

import pytest

from avalonhost.core.errors import (
    GameInProgressError,
    NicknameTakenError,
    NotHostError,
    NotInRoomError,
    RoomNotFoundError,
)
from avalonhost.core.roles import Role
from avalonhost.core.schemas import ActionType, Phase, RoomStatus
from avalonhost.services.rooms import RoomDirectory


class RecordingBroadcaster:
    def __init__(self):
        self.events = []
        self.private = []

    async def notify(self, room_code, event, payload):
        self.events.append((room_code, event, payload))

    async def send_to(self, room_code, player_id, event, payload):
        self.private.append((room_code, player_id, event, payload))

    def names(self):
        return [event for _, event, _ in self.events]


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_directory(**kwargs):
    broadcaster = RecordingBroadcaster()
    kwargs.setdefault("seed", 7)
    return RoomDirectory(broadcaster=broadcaster, **kwargs), broadcaster


async def open_room(directory, count):
    room, host = await directory.create_room("Host")
    members = [host]
    for index in range(1, count):
        _, member = await directory.join_room(room.code, f"Guest{index}")
        members.append(member)
    return room, members


async def start(directory, room, members, player_count=None):
    return await directory.dispatch(
        room.code,
        members[0].player_id,
        {"type": "startGame", "playerCount": player_count or len(members)},
    )


def leader_of(room):
    state = room.machine.state
    return state.player_by_name(state.leader).player_id


def run(coro):
    return asyncio.run(coro)


class TestDirectory:
    def test_create_room(self):
        async def scenario():
            directory, _ = make_directory()
            room, host = await directory.create_room("  Alice ")
            view = await directory.describe(room.code)
            return room, host, view

        room, host, view = run(scenario())
        assert len(room.code) == 6
        assert set(room.code) <= set(string.ascii_uppercase + string.digits)
        assert host.nickname == "Alice"
        assert view.host == "Alice"
        assert view.status == RoomStatus.LOBBY
        assert view.game is None
        assert [m.is_host for m in view.members] == [True]

    def test_join_broadcasts_and_rejects_duplicates(self):
        async def scenario():
            directory, broadcaster = make_directory()
            room, _ = await directory.create_room("Alice")
            await directory.join_room(room.code, "Bob")
            with pytest.raises(NicknameTakenError):
                await directory.join_room(room.code, "Bob")
            with pytest.raises(RoomNotFoundError):
                await directory.join_room("NOPE00", "Carl")
            return broadcaster

        broadcaster = run(scenario())
        assert broadcaster.names() == ["roomUpdate"]
        payload = broadcaster.events[0][2]
        assert [m["nickname"] for m in payload["members"]] == ["Alice", "Bob"]

    def test_cannot_join_running_game(self):
        async def scenario():
            directory, _ = make_directory()
            room, members = await open_room(directory, 5)
            await start(directory, room, members)
            with pytest.raises(GameInProgressError):
                await directory.join_room(room.code, "Late")

        run(scenario())

    def test_leave_transfers_host(self):
        async def scenario():
            directory, _ = make_directory()
            room, members = await open_room(directory, 3)
            await directory.leave_room(room.code, members[0].player_id)
            return await directory.describe(room.code)

        view = run(scenario())
        assert view.host == "Guest1"
        assert [m.nickname for m in view.members] == ["Guest1", "Guest2"]

    def test_last_member_leaving_closes_room(self):
        async def scenario():
            directory, _ = make_directory()
            room, host = await directory.create_room("Alice")
            await directory.leave_room(room.code, host.player_id)
            with pytest.raises(RoomNotFoundError):
                await directory.get(room.code)

        run(scenario())

    def test_cannot_leave_during_game(self):
        async def scenario():
            directory, _ = make_directory()
            room, members = await open_room(directory, 5)
            await start(directory, room, members)
            with pytest.raises(GameInProgressError):
                await directory.leave_room(room.code, members[2].player_id)

        run(scenario())

    def test_only_host_deletes(self):
        async def scenario():
            directory, broadcaster = make_directory()
            room, members = await open_room(directory, 2)
            with pytest.raises(NotHostError):
                await directory.delete_room(room.code, members[1].player_id)
            with pytest.raises(NotInRoomError):
                await directory.delete_room(room.code, "stranger")
            await directory.delete_room(room.code, members[0].player_id)
            assert await directory.list_rooms() == []
            return broadcaster

        broadcaster = run(scenario())
        assert broadcaster.names()[-1] == "roomDeleted"


class TestPresence:
    def test_host_disconnect_keeps_room_while_others_online(self):
        async def scenario():
            directory, _ = make_directory()
            room, members = await open_room(directory, 2)
            await directory.disconnect(room.code, members[0].player_id)
            return await directory.describe(room.code)

        view = run(scenario())
        assert [m.online for m in view.members] == [False, True]

    def test_host_disconnect_closes_empty_lobby(self):
        async def scenario():
            directory, _ = make_directory()
            room, members = await open_room(directory, 2)
            await directory.disconnect(room.code, members[1].player_id)
            await directory.disconnect(room.code, members[0].player_id)
            return await directory.list_rooms()

        assert run(scenario()) == []

    def test_reconnect_marks_online(self):
        async def scenario():
            directory, _ = make_directory()
            room, members = await open_room(directory, 2)
            await directory.disconnect(room.code, members[1].player_id)
            await directory.mark_online(room.code, members[1].player_id)
            return await directory.describe(room.code)

        view = run(scenario())
        assert all(m.online for m in view.members)

    def test_sweep_removes_idle_offline_lobbies(self):
        clock = FakeClock()

        async def scenario():
            directory, _ = make_directory(clock=clock, idle_ttl=60)
            idle, idle_members = await open_room(directory, 2)
            # Host first, so the lobby survives the last disconnect.
            await directory.disconnect(idle.code, idle_members[0].player_id)
            await directory.disconnect(idle.code, idle_members[1].player_id)
            busy, _ = await open_room(directory, 1)

            kept = await directory.sweep_idle(clock.now + 30)
            removed = await directory.sweep_idle(clock.now + 61)
            remaining = [room.code for room in await directory.list_rooms()]
            return idle.code, busy.code, kept, removed, remaining

        idle_code, busy_code, kept, removed, remaining = run(scenario())
        assert kept == []
        assert removed == [idle_code]
        assert remaining == [busy_code]

    def test_sweep_leaves_running_games(self):
        clock = FakeClock()

        async def scenario():
            directory, _ = make_directory(clock=clock, idle_ttl=60)
            room, members = await open_room(directory, 5)
            await start(directory, room, members)
            for member in members:
                await directory.disconnect(room.code, member.player_id)
            return await directory.sweep_idle(clock.now + 3600)

        assert run(scenario()) == []


class TestDispatch:
    def test_start_game_broadcasts_snapshot(self):
        async def scenario():
            directory, broadcaster = make_directory()
            room, members = await open_room(directory, 6)
            result = await start(directory, room, members, player_count=5)
            return room, result, broadcaster

        room, result, broadcaster = run(scenario())
        assert result.ok
        assert result.action == ActionType.START_GAME
        assert result.game.phase == Phase.TEAM_BUILDING
        assert room.status == RoomStatus.PLAYING
        assert broadcaster.names()[-1] == "gameStart"
        payload = broadcaster.events[-1][2]
        assert payload["status"] == "playing"
        assert payload["game"]["playerCount"] == 5
        assert sum(1 for m in payload["members"] if m["inGame"]) == 5
        assert all(player["role"] is None for player in payload["game"]["players"])

    def test_refusal_goes_to_caller_only(self):
        async def scenario():
            directory, broadcaster = make_directory()
            room, members = await open_room(directory, 5)
            before = len(broadcaster.events)
            result = await directory.dispatch(
                room.code, members[1].player_id, {"type": "startGame", "playerCount": 5}
            )
            return room, result, broadcaster.events[before:]

        room, result, events = run(scenario())
        assert not result.ok
        assert result.error["kind"] == "NotHost"
        assert events == []
        assert room.status == RoomStatus.LOBBY

    @pytest.mark.parametrize(
        "payload, kind",
        [
            ({"type": "dance"}, "InvalidPayload"),
            ({"type": "voteTeam"}, "InvalidPayload"),
            ("voteTeam", "InvalidPayload"),
            ({"type": "confirmTeam"}, "GameNotStarted"),
            ({"type": "startGame", "playerCount": 11}, "UnsupportedPlayerCount"),
            ({"type": "startGame", "playerCount": 7}, "InsufficientPlayers"),
        ],
    )
    def test_rejected_payloads(self, payload, kind):
        async def scenario():
            directory, _ = make_directory()
            room, members = await open_room(directory, 5)
            return await directory.dispatch(room.code, members[0].player_id, payload)

        result = run(scenario())
        assert not result.ok
        assert result.error["kind"] == kind

    def test_unknown_room_and_member(self):
        async def scenario():
            directory, _ = make_directory()
            room, _ = await open_room(directory, 1)
            missing = await directory.dispatch("ZZZZZZ", "x", {"type": "viewRole"})
            stranger = await directory.dispatch(room.code, "x", {"type": "viewRole"})
            return missing, stranger

        missing, stranger = run(scenario())
        assert missing.error["kind"] == "RoomNotFound"
        assert stranger.error["kind"] == "NotInRoom"

    def test_view_role_is_private(self):
        async def scenario():
            directory, broadcaster = make_directory()
            room, members = await open_room(directory, 5)
            await start(directory, room, members)
            before = len(broadcaster.events)
            result = await directory.dispatch(room.code, members[3].player_id, {"type": "viewRole"})
            return room, result, broadcaster.events[before:]

        room, result, events = run(scenario())
        assert result.ok
        assert result.reveal.name == "Guest3"
        assert result.reveal.role == room.machine.state.player_by_name("Guest3").role
        assert events == []

    def test_spectator_cannot_act(self):
        async def scenario():
            directory, _ = make_directory()
            room, members = await open_room(directory, 6)
            await start(directory, room, members, player_count=5)
            seated = {p.player_id for p in room.machine.state.players}
            spectator = next(m for m in members if m.player_id not in seated)
            return await directory.dispatch(room.code, spectator.player_id, {"type": "viewRole"})

        result = run(scenario())
        assert result.error["kind"] == "UnknownPlayer"

    def test_concurrent_votes_are_all_counted(self):
        async def scenario():
            directory, broadcaster = make_directory()
            room, members = await open_room(directory, 5)
            await start(directory, room, members)
            state = room.machine.state
            leader = leader_of(room)
            for name in state.leader_order[:2]:
                await directory.dispatch(room.code, leader, {"type": "toggleTeamMember", "candidate": name})
            await directory.dispatch(room.code, leader, {"type": "confirmTeam"})
            results = await asyncio.gather(
                *(
                    directory.dispatch(room.code, m.player_id, {"type": "voteTeam", "approve": True})
                    for m in members
                )
            )
            return room, results

        room, results = run(scenario())
        assert all(result.ok for result in results)
        assert room.machine.state.phase == Phase.MISSION
        assert len(room.machine.state.vote_history) == 1
        assert room.machine.state.vote_history[0].approvals == 5

    def test_full_game_and_return_to_lobby(self):
        async def scenario():
            directory, broadcaster = make_directory()
            room, members = await open_room(directory, 5)
            await start(directory, room, members)
            state = room.machine.state
            for _ in range(3):
                leader = leader_of(room)
                for name in state.leader_order[: state.current_team_size()]:
                    await directory.dispatch(room.code, leader, {"type": "toggleTeamMember", "candidate": name})
                await directory.dispatch(room.code, leader, {"type": "confirmTeam"})
                for member in members:
                    await directory.dispatch(room.code, member.player_id, {"type": "voteTeam", "approve": True})
                for name in list(state.team):
                    player = state.player_by_name(name)
                    await directory.dispatch(room.code, player.player_id, {"type": "voteMission", "success": True})

            assassin = next(p for p in state.players if p.role == Role.ASSASSIN)
            merlin = next(p for p in state.players if p.role == Role.MERLIN)
            final = await directory.dispatch(
                room.code, assassin.player_id, {"type": "assassinate", "target": merlin.name}
            )
            refused = await directory.dispatch(room.code, members[1].player_id, {"type": "returnToLobby"})
            back = await directory.dispatch(room.code, members[0].player_id, {"type": "returnToLobby"})
            return room, final, refused, back, broadcaster

        room, final, refused, back, broadcaster = run(scenario())
        assert final.game.phase == Phase.GAME_OVER
        assert final.game.winner.value == "evil"
        assert all(player.role is not None for player in final.game.players)
        assert refused.error["kind"] == "NotHost"
        assert back.ok
        assert room.status == RoomStatus.LOBBY
        assert room.machine is None
        assert broadcaster.names()[-1] == "returnToLobby"
