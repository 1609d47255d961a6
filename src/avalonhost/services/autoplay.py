"""Seeded bots that drive a :class:`GameMachine` from start to finish."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..core.fsm import GameMachine, Seat
from ..core.roles import Alignment, Role
from ..core.schemas import GameSnapshot, Phase
from ..utils.rng import build_rng

MAX_ACTIONS = 500

SnapshotObserver = Callable[[GameSnapshot], None]


class AutoplayError(RuntimeError):
    """Raised when a bot game cannot make progress."""


@dataclass(slots=True)
class BotPolicy:
    """Probabilities the bots act on."""

    approve_rate: float = 0.7
    fail_rate: float = 0.7  # chance an evil team member plays FAIL


def default_roster(players: int) -> List[Seat]:
    return [Seat(player_id=f"p{index}", name=f"Player{index + 1}") for index in range(players)]


def play_random_game(
    players: int = 5,
    *,
    seed: Optional[int] = None,
    policy: Optional[BotPolicy] = None,
    roster: Optional[Sequence[Seat]] = None,
    observer: Optional[SnapshotObserver] = None,
) -> GameMachine:
    """Play a whole game with random bots and return the finished machine.

    The same ``seed`` deals the same roles and replays the same decisions.
    ``observer`` receives every snapshot the machine returns.
    """
    policy = policy or BotPolicy()
    roster = list(roster or default_roster(players))
    rng = build_rng(seed=seed)
    machine = GameMachine.start(
        roster,
        host_id=roster[0].player_id,
        caller_id=roster[0].player_id,
        player_count=players,
        seed=seed,
        rng=rng,
    )
    if observer:
        observer(machine.snapshot())

    actions = 0
    while machine.state.phase != Phase.GAME_OVER:
        actions += 1
        if actions > MAX_ACTIONS:
            raise AutoplayError("Bot game reached the action cap without ending")
        for snapshot in _play_phase(machine, rng, policy):
            if observer:
                observer(snapshot)
    return machine


def _play_phase(machine: GameMachine, rng: random.Random, policy: BotPolicy) -> List[GameSnapshot]:
    state = machine.state
    snapshots: List[GameSnapshot] = []

    if state.phase == Phase.TEAM_BUILDING:
        leader = state.player_by_name(state.leader)
        for name in rng.sample(state.leader_order, state.current_team_size()):
            snapshots.append(machine.toggle_team_member(leader.player_id, name))
        snapshots.append(machine.confirm_team(leader.player_id))

    elif state.phase == Phase.TEAM_VOTING:
        for player in list(state.players):
            snapshots.append(machine.vote_team(player.player_id, rng.random() < policy.approve_rate))

    elif state.phase == Phase.MISSION:
        for name in list(state.team):
            player = state.player_by_name(name)
            fail = player.alignment == Alignment.EVIL and rng.random() < policy.fail_rate
            snapshots.append(machine.vote_mission(player.player_id, not fail))

    elif state.phase == Phase.ASSASSINATION:
        assassin = next(player for player in state.players if player.role == Role.ASSASSIN)
        targets = [player.name for player in state.players if player.alignment == Alignment.GOOD]
        snapshots.append(machine.assassinate(assassin.player_id, rng.choice(targets)))

    else:  # pragma: no cover - loop stops at GAME_OVER
        raise AutoplayError(f"Unhandled phase: {state.phase}")

    return snapshots
