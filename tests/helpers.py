from __future__ import annotations

from typing import Dict, List, Tuple

from avalonhost.core.fsm import GameMachine, GameState, Player, Seat
from avalonhost.core.roles import Role
from avalonhost.core.rulesets import get_ruleset

FIVE_PLAYER_DEAL: Tuple[Tuple[str, Role], ...] = (
    ("Alice", Role.MERLIN),
    ("Bob", Role.PERCIVAL),
    ("Cara", Role.LOYAL_SERVANT),
    ("Dan", Role.MORGANA),
    ("Eve", Role.ASSASSIN),
)


def make_roster(count: int) -> List[Seat]:
    return [Seat(player_id=f"id-{index}", name=f"P{index}") for index in range(count)]


def fixed_machine(deal=FIVE_PLAYER_DEAL) -> GameMachine:
    """Build a game with known seats and roles; leader order follows ``deal``."""
    players = [Player(player_id=name.lower(), name=name, role=role) for name, role in deal]
    state = GameState(
        ruleset=get_ruleset(len(players)),
        players=players,
        leader_order=[player.name for player in players],
    )
    return GameMachine(state)


def ids(machine: GameMachine) -> Dict[str, str]:
    return {player.name: player.player_id for player in machine.state.players}


def leader_id(machine: GameMachine) -> str:
    return machine.state.player_by_name(machine.state.leader).player_id


def propose(machine: GameMachine, names) -> None:
    """Have the current leader pick ``names`` and confirm them."""
    leader = leader_id(machine)
    for name in names:
        machine.toggle_team_member(leader, name)
    machine.confirm_team(leader)


def vote_all(machine: GameMachine, approve: bool) -> None:
    for player in list(machine.state.players):
        machine.vote_team(player.player_id, approve)


def play_mission(machine: GameMachine, fails: int = 0) -> None:
    """Team members vote; the first ``fails`` of them play FAIL."""
    for index, name in enumerate(list(machine.state.team)):
        machine.vote_mission(machine.state.player_by_name(name).player_id, index >= fails)
