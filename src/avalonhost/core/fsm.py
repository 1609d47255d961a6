"""Finite state machine enforcing Avalon rules for a single room.

Every transition checks all of its preconditions before touching the state,
so a refused action (raised as a :class:`~avalonhost.core.errors.GameError`)
never leaves a half-applied change behind. Successful transitions return a
frozen :class:`~avalonhost.core.schemas.GameSnapshot` for broadcasting.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..utils.rng import build_rng, shuffled
from .errors import (
    IncompleteTeamError,
    InsufficientPlayersError,
    NotAssassinError,
    NotCurrentLeaderError,
    NotHostError,
    NotTeamMemberError,
    TeamFullError,
    UnknownPlayerError,
    WrongPhaseError,
)
from .roles import Alignment, Role, alignment_of, visible_names
from .rulesets import AvalonRuleset, get_ruleset
from .schemas import (
    GameSnapshot,
    MissionOutcome,
    MissionView,
    Phase,
    PlayerView,
    RoleReveal,
    TeamVoteView,
)


@dataclass(frozen=True)
class Seat:
    """A room member eligible to be dealt into a game."""

    player_id: str
    name: str


@dataclass
class Player:
    """A seated player and the card they were dealt."""

    player_id: str
    name: str
    role: Role
    viewed: bool = False

    @property
    def alignment(self) -> Alignment:
        return alignment_of(self.role)


@dataclass
class Mission:
    """A mission execution record."""

    round_num: int
    team_size: int
    fails_required: int
    members: Tuple[str, ...] = ()
    fails: int = 0
    result: MissionOutcome = MissionOutcome.UNRESOLVED


@dataclass
class TeamVote:
    """A resolved vote on a proposed team."""

    round_num: int
    leader: str
    team: Tuple[str, ...]
    ballots: Dict[str, bool]

    @property
    def approvals(self) -> int:
        return sum(1 for value in self.ballots.values() if value)

    @property
    def rejections(self) -> int:
        return len(self.ballots) - self.approvals

    @property
    def approved(self) -> bool:
        return self.approvals * 2 > len(self.ballots)


@dataclass
class GameState:
    """Container for tracking game state."""

    ruleset: AvalonRuleset
    players: List[Player]
    leader_order: List[str]
    seed: Optional[int] = None

    phase: Phase = Phase.TEAM_BUILDING
    round_num: int = 1
    leader_index: int = 0
    rejections: int = 0

    team: List[str] = field(default_factory=list)
    team_votes: Dict[str, bool] = field(default_factory=dict)
    mission_votes: Dict[str, bool] = field(default_factory=dict)

    missions: List[Mission] = field(default_factory=list)
    current_mission: Optional[Mission] = None
    vote_history: List[TeamVote] = field(default_factory=list)
    assassin_target: Optional[str] = None
    winner: Optional[Alignment] = None
    log: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.players) != self.ruleset.players:
            raise ValueError(
                f"Ruleset is for {self.ruleset.players} players, got {len(self.players)}"
            )
        names = [player.name for player in self.players]
        if len(set(names)) != len(names):
            raise ValueError("Player names must be unique within a game")
        if len({player.player_id for player in self.players}) != len(self.players):
            raise ValueError("Player ids must be unique within a game")
        if sorted(self.leader_order) != sorted(names):
            raise ValueError("Leader order must list every player exactly once")

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def leader(self) -> str:
        return self.leader_order[self.leader_index]

    @property
    def good_missions(self) -> int:
        return sum(1 for mission in self.missions if mission.result == MissionOutcome.SUCCESS)

    @property
    def evil_missions(self) -> int:
        return sum(1 for mission in self.missions if mission.result == MissionOutcome.FAIL)

    @property
    def is_over(self) -> bool:
        return self.phase == Phase.GAME_OVER

    def current_team_size(self) -> int:
        return self.ruleset.team_size_for_round(self.round_num)

    def fails_required(self) -> int:
        return self.ruleset.fails_required(self.round_num)

    def is_good_win(self) -> bool:
        return self.good_missions >= self.ruleset.good_win_threshold

    def is_evil_win(self) -> bool:
        return self.evil_missions >= self.ruleset.evil_win_threshold

    def advance_leader(self) -> None:
        self.leader_index = (self.leader_index + 1) % len(self.leader_order)

    def player_by_id(self, player_id: str) -> Player:
        for player in self.players:
            if player.player_id == player_id:
                return player
        raise UnknownPlayerError("Player is not seated in this game", {"playerId": player_id})

    def player_by_name(self, name: str) -> Player:
        for player in self.players:
            if player.name == name:
                return player
        raise UnknownPlayerError(f"No player named {name!r} in this game", {"name": name})

    def role_assignments(self) -> Dict[str, Role]:
        """Return every player's role keyed by name, in leader order."""
        by_name = {player.name: player.role for player in self.players}
        return {name: by_name[name] for name in self.leader_order}


class GameMachine:
    """Applies player actions to one :class:`GameState`."""

    def __init__(self, state: GameState) -> None:
        self.state = state

    @classmethod
    def start(
        cls,
        roster: Sequence[Seat],
        *,
        host_id: str,
        caller_id: str,
        player_count: int,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ) -> "GameMachine":
        """Deal a new game from ``roster``.

        The roster is shuffled once and its first ``player_count`` entries are
        seated; that shuffled order is also the leader rotation. The role
        multiset for the table size is shuffled separately and dealt by
        position.
        """
        if caller_id != host_id:
            raise NotHostError("Only the host can start the game", {"playerId": caller_id})

        ruleset = get_ruleset(player_count)
        if len(roster) < player_count:
            raise InsufficientPlayersError(
                f"At least {player_count} players are needed",
                {"required": player_count, "present": len(roster)},
            )

        rng = rng or build_rng(seed=seed)
        selected = shuffled(rng, roster)[:player_count]
        roles = shuffled(rng, ruleset.roles)
        players = [
            Player(player_id=seat.player_id, name=seat.name, role=role)
            for seat, role in zip(selected, roles)
        ]
        state = GameState(
            ruleset=ruleset,
            players=players,
            leader_order=[player.name for player in players],
            seed=seed,
        )
        state.log.append("Game started")
        return cls(state)

    # ------------------------------------------------------------------
    # Precondition helpers
    # ------------------------------------------------------------------

    def _require_phase(self, *phases: Phase) -> None:
        if self.state.phase not in phases:
            raise WrongPhaseError(
                f"Action not allowed during {self.state.phase.value}",
                {"phase": self.state.phase.value, "expected": [phase.value for phase in phases]},
            )

    def _require_leader(self, caller_id: str) -> Player:
        player = self.state.player_by_id(caller_id)
        if player.name != self.state.leader:
            raise NotCurrentLeaderError(
                "Only the current leader can build the team",
                {"leader": self.state.leader, "caller": player.name},
            )
        return player

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def toggle_team_member(self, caller_id: str, candidate: str) -> GameSnapshot:
        """Add ``candidate`` to the proposed team, or remove them if already on it."""
        state = self.state
        self._require_phase(Phase.TEAM_BUILDING)
        self._require_leader(caller_id)
        name = state.player_by_name(candidate).name

        if name in state.team:
            state.team.remove(name)
        elif len(state.team) < state.current_team_size():
            state.team.append(name)
        else:
            raise TeamFullError(
                f"Round {state.round_num} team is limited to {state.current_team_size()} players",
                {"teamSize": state.current_team_size()},
            )
        return self.snapshot()

    def confirm_team(self, caller_id: str) -> GameSnapshot:
        state = self.state
        self._require_phase(Phase.TEAM_BUILDING)
        self._require_leader(caller_id)
        if len(state.team) != state.current_team_size():
            raise IncompleteTeamError(
                f"Round {state.round_num} needs a team of {state.current_team_size()}",
                {"teamSize": state.current_team_size(), "selected": len(state.team)},
            )

        state.log.append(
            f"Round {state.round_num}: leader {state.leader} proposes {', '.join(state.team)}"
        )
        state.team_votes = {}
        state.phase = Phase.TEAM_VOTING
        return self.snapshot()

    def vote_team(self, caller_id: str, approve: bool) -> GameSnapshot:
        """Record an open ballot; the vote resolves once every player has voted."""
        state = self.state
        self._require_phase(Phase.TEAM_VOTING)
        voter = state.player_by_id(caller_id)

        state.team_votes[voter.name] = bool(approve)
        if len(state.team_votes) < state.player_count:
            return self.snapshot()

        vote = TeamVote(
            round_num=state.round_num,
            leader=state.leader,
            team=tuple(state.team),
            ballots=dict(state.team_votes),
        )
        state.vote_history.append(vote)
        state.team_votes = {}
        state.log.append(
            f"Vote result: {vote.approvals} approve, {vote.rejections} reject - "
            f"{'approved' if vote.approved else 'rejected'}"
        )

        if vote.approved:
            state.rejections = 0
            state.mission_votes = {}
            state.current_mission = Mission(
                round_num=state.round_num,
                team_size=state.current_team_size(),
                fails_required=state.fails_required(),
                members=tuple(state.team),
            )
            state.phase = Phase.MISSION
            return self.snapshot()

        state.rejections += 1
        if state.rejections >= state.ruleset.max_failed_proposals:
            self._finish(
                Alignment.EVIL,
                f"{state.rejections} consecutive team rejections, evil wins",
            )
        else:
            state.advance_leader()
            state.team = []
            state.phase = Phase.TEAM_BUILDING
        return self.snapshot()

    def vote_mission(self, caller_id: str, success: bool) -> GameSnapshot:
        """Record a secret mission card from a team member."""
        state = self.state
        self._require_phase(Phase.MISSION)
        voter = state.player_by_id(caller_id)
        if voter.name not in state.team:
            raise NotTeamMemberError(
                "Only team members can vote on the mission",
                {"team": list(state.team), "caller": voter.name},
            )

        state.mission_votes[voter.name] = bool(success)
        if len(state.mission_votes) < len(state.team):
            return self.snapshot()

        mission = state.current_mission
        mission.fails = sum(1 for value in state.mission_votes.values() if not value)
        mission.result = (
            MissionOutcome.SUCCESS if mission.fails < mission.fails_required else MissionOutcome.FAIL
        )
        state.missions.append(mission)
        state.current_mission = None
        state.mission_votes = {}
        state.log.append(
            f"Round {mission.round_num} mission "
            f"{'succeeded' if mission.result == MissionOutcome.SUCCESS else 'failed'} "
            f"({mission.fails} fail{'s' if mission.fails != 1 else ''})"
        )

        if state.is_good_win():
            state.phase = Phase.ASSASSINATION
            state.log.append("Good completed 3 missions. The assassin may now strike at Merlin")
        elif state.is_evil_win():
            self._finish(Alignment.EVIL, "Evil sabotaged 3 missions, evil wins")
        else:
            state.round_num += 1
            state.advance_leader()
            state.team = []
            state.phase = Phase.TEAM_BUILDING
        return self.snapshot()

    def assassinate(self, caller_id: str, target: str) -> GameSnapshot:
        state = self.state
        self._require_phase(Phase.ASSASSINATION)
        assassin = state.player_by_id(caller_id)
        if assassin.role != Role.ASSASSIN:
            raise NotAssassinError("Only the assassin can strike", {"caller": assassin.name})
        victim = state.player_by_name(target)

        state.assassin_target = victim.name
        state.log.append(f"The assassin struck {victim.name}")
        if victim.role == Role.MERLIN:
            self._finish(Alignment.EVIL, f"{victim.name} was Merlin, evil wins")
        else:
            self._finish(Alignment.GOOD, f"{victim.name} was not Merlin, good wins")
        return self.snapshot()

    def view_role(self, caller_id: str) -> RoleReveal:
        """Mark the caller's card as seen and return what they are allowed to know."""
        state = self.state
        player = state.player_by_id(caller_id)
        player.viewed = True
        return RoleReveal(
            name=player.name,
            role=player.role,
            alignment=player.alignment,
            roster=tuple(state.leader_order),
            sees=tuple(
                visible_names(name=player.name, role=player.role, assignments=state.role_assignments())
            ),
        )

    def _finish(self, winner: Alignment, message: str) -> None:
        self.state.winner = winner
        self.state.phase = Phase.GAME_OVER
        self.state.log.append(message)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> GameSnapshot:
        """Return an immutable public view of the game."""
        state = self.state
        reveal = state.is_over
        last_vote = state.vote_history[-1] if state.vote_history else None
        by_name = {player.name: player for player in state.players}
        return GameSnapshot(
            player_count=state.player_count,
            phase=state.phase,
            round=state.round_num,
            leader_index=state.leader_index,
            leader=state.leader,
            leader_order=tuple(state.leader_order),
            team=tuple(state.team),
            team_size=state.current_team_size(),
            fails_required=state.fails_required(),
            team_votes_cast=tuple(state.team_votes),
            mission_votes_cast=len(state.mission_votes),
            last_team_vote=(
                TeamVoteView(
                    round=last_vote.round_num,
                    leader=last_vote.leader,
                    team=last_vote.team,
                    approvals=last_vote.approvals,
                    rejections=last_vote.rejections,
                    approved=last_vote.approved,
                    ballots=dict(last_vote.ballots),
                )
                if last_vote
                else None
            ),
            rejections=state.rejections,
            missions=tuple(
                MissionView(
                    round=mission.round_num,
                    team_size=mission.team_size,
                    fails_required=mission.fails_required,
                    members=mission.members,
                    result=mission.result,
                    fails=mission.fails,
                )
                for mission in state.missions
            ),
            good_missions=state.good_missions,
            evil_missions=state.evil_missions,
            assassin_target=state.assassin_target,
            winner=state.winner,
            log=tuple(state.log),
            players=tuple(
                PlayerView(
                    name=name,
                    viewed=by_name[name].viewed,
                    role=by_name[name].role if reveal else None,
                    alignment=by_name[name].alignment if reveal else None,
                )
                for name in state.leader_order
            ),
        )
