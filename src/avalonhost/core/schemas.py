"""Pydantic contracts for inbound actions and outbound game snapshots."""

from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import SchemaValidationError
from .roles import Alignment, Role


class Phase(str, Enum):
    """Game phases."""
    TEAM_BUILDING = "team_building"
    TEAM_VOTING = "team_voting"
    MISSION = "mission"
    ASSASSINATION = "assassination"
    GAME_OVER = "game_over"


class MissionOutcome(str, Enum):
    """Mission outcomes."""
    UNRESOLVED = "unresolved"
    SUCCESS = "success"
    FAIL = "fail"


class RoomStatus(str, Enum):
    LOBBY = "lobby"
    PLAYING = "playing"


class ActionType(str, Enum):
    """Actions a player can send to a room."""
    START_GAME = "startGame"
    TOGGLE_TEAM_MEMBER = "toggleTeamMember"
    CONFIRM_TEAM = "confirmTeam"
    VOTE_TEAM = "voteTeam"
    VOTE_MISSION = "voteMission"
    ASSASSINATE = "assassinate"
    VIEW_ROLE = "viewRole"
    RETURN_TO_LOBBY = "returnToLobby"


class WireModel(BaseModel):
    """Base for every model that crosses the wire; fields travel as camelCase."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Snapshot(WireModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, frozen=True)


# ----------------------------------------------------------------------
# Inbound actions
# ----------------------------------------------------------------------


class StartGameAction(WireModel):
    """Host starts a game with the given number of players."""
    type: Literal[ActionType.START_GAME] = ActionType.START_GAME
    player_count: int


class ToggleTeamMemberAction(WireModel):
    """Leader adds or removes a player from the proposed team."""
    type: Literal[ActionType.TOGGLE_TEAM_MEMBER] = ActionType.TOGGLE_TEAM_MEMBER
    candidate: str = Field(..., min_length=1)


class ConfirmTeamAction(WireModel):
    type: Literal[ActionType.CONFIRM_TEAM] = ActionType.CONFIRM_TEAM


class VoteTeamAction(WireModel):
    """Approve or reject the proposed team."""
    type: Literal[ActionType.VOTE_TEAM] = ActionType.VOTE_TEAM
    approve: bool


class VoteMissionAction(WireModel):
    """Secret mission card played by a team member."""
    type: Literal[ActionType.VOTE_MISSION] = ActionType.VOTE_MISSION
    success: bool


class AssassinateAction(WireModel):
    type: Literal[ActionType.ASSASSINATE] = ActionType.ASSASSINATE
    target: str = Field(..., min_length=1)


class ViewRoleAction(WireModel):
    type: Literal[ActionType.VIEW_ROLE] = ActionType.VIEW_ROLE


class ReturnToLobbyAction(WireModel):
    type: Literal[ActionType.RETURN_TO_LOBBY] = ActionType.RETURN_TO_LOBBY


ActionPayload = Union[
    StartGameAction,
    ToggleTeamMemberAction,
    ConfirmTeamAction,
    VoteTeamAction,
    VoteMissionAction,
    AssassinateAction,
    ViewRoleAction,
    ReturnToLobbyAction,
]

ACTION_MODELS: Dict[ActionType, type] = {
    ActionType.START_GAME: StartGameAction,
    ActionType.TOGGLE_TEAM_MEMBER: ToggleTeamMemberAction,
    ActionType.CONFIRM_TEAM: ConfirmTeamAction,
    ActionType.VOTE_TEAM: VoteTeamAction,
    ActionType.VOTE_MISSION: VoteMissionAction,
    ActionType.ASSASSINATE: AssassinateAction,
    ActionType.VIEW_ROLE: ViewRoleAction,
    ActionType.RETURN_TO_LOBBY: ReturnToLobbyAction,
}


def validate_action(payload: Any) -> ActionPayload:
    """Validate an inbound action and return the typed model or raise SchemaValidationError."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(by_alias=True)
    if not isinstance(payload, dict):
        raise SchemaValidationError("unknown", [{"loc": [], "msg": "Action must be an object", "type": "type_error"}])

    raw_type = payload.get("type")
    try:
        action_type = ActionType(raw_type)
    except ValueError:
        raise SchemaValidationError(
            str(raw_type),
            [{"loc": ["type"], "msg": f"Unknown action type {raw_type!r}", "type": "value_error"}],
        ) from None

    try:
        return ACTION_MODELS[action_type].model_validate(payload)
    except ValidationError as e:
        raise SchemaValidationError(action_type.value, e.errors(include_url=False, include_context=False)) from e


# ----------------------------------------------------------------------
# Outbound snapshots
# ----------------------------------------------------------------------


class PlayerView(Snapshot):
    """Public view of a seated player. Roles stay hidden until the game ends."""
    name: str
    viewed: bool = False
    role: Optional[Role] = None
    alignment: Optional[Alignment] = None


class MissionView(Snapshot):
    round: int
    team_size: int
    fails_required: int
    members: Tuple[str, ...]
    result: MissionOutcome
    fails: int


class TeamVoteView(Snapshot):
    """Resolved team vote. Team votes are open ballots."""
    round: int
    leader: str
    team: Tuple[str, ...]
    approvals: int
    rejections: int
    approved: bool
    ballots: Dict[str, bool]


class GameSnapshot(Snapshot):
    """Immutable copy of a session, safe to hand to every client in the room."""
    player_count: int
    phase: Phase
    round: int
    leader_index: int
    leader: str
    leader_order: Tuple[str, ...]
    team: Tuple[str, ...]
    team_size: int
    fails_required: int
    team_votes_cast: Tuple[str, ...] = ()
    mission_votes_cast: int = 0
    last_team_vote: Optional[TeamVoteView] = None
    rejections: int = 0
    missions: Tuple[MissionView, ...] = ()
    good_missions: int = 0
    evil_missions: int = 0
    assassin_target: Optional[str] = None
    winner: Optional[Alignment] = None
    log: Tuple[str, ...] = ()
    players: Tuple[PlayerView, ...] = ()


class RoleReveal(Snapshot):
    """Private answer to a player looking at their own card."""
    name: str
    role: Role
    alignment: Alignment
    roster: Tuple[str, ...]
    sees: Tuple[str, ...] = ()


class MemberView(Snapshot):
    nickname: str
    online: bool
    is_host: bool = False
    in_game: bool = False


class RoomView(Snapshot):
    code: str
    host: str
    status: RoomStatus
    members: Tuple[MemberView, ...]
    game: Optional[GameSnapshot] = None


class ActionResult(Snapshot):
    """Reply sent to the player who issued an action."""
    ok: bool
    action: Optional[ActionType] = None
    error: Optional[Dict[str, Any]] = None
    game: Optional[GameSnapshot] = None
    reveal: Optional[RoleReveal] = None
