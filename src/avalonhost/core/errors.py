"""Exceptions raised when a room or game action is refused.

Every error carries a stable ``kind`` string so transports can report it to
the acting player without parsing messages. None of them are fatal: the
offending action is dropped and shared state is left untouched.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class GameError(Exception):
    """Base class for all refused actions."""

    kind = "GameError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "details": self.details}


class NotHostError(GameError):
    kind = "NotHost"


class InsufficientPlayersError(GameError):
    kind = "InsufficientPlayers"


class UnsupportedPlayerCountError(GameError, ValueError):
    kind = "UnsupportedPlayerCount"


class WrongPhaseError(GameError):
    kind = "WrongPhase"


class NotCurrentLeaderError(GameError):
    kind = "NotCurrentLeader"


class NotTeamMemberError(GameError):
    kind = "NotTeamMember"


class NotAssassinError(GameError):
    kind = "NotAssassin"


class UnknownPlayerError(GameError):
    """Raised when an action names a player who is not in the game."""

    kind = "UnknownPlayer"


class TeamFullError(GameError):
    kind = "TeamFull"


class IncompleteTeamError(GameError):
    """Raised when the leader confirms a team smaller than the mission size."""

    kind = "IncompleteTeam"


class RoomNotFoundError(GameError, KeyError):
    kind = "RoomNotFound"

    def __str__(self) -> str:
        return GameError.__str__(self)


class NicknameTakenError(GameError):
    kind = "NicknameTaken"


class GameInProgressError(GameError):
    kind = "GameInProgress"


class GameNotStartedError(GameError):
    kind = "GameNotStarted"


class NotInRoomError(GameError):
    kind = "NotInRoom"


class SchemaValidationError(GameError):
    """Raised when an inbound payload fails schema validation."""

    kind = "InvalidPayload"

    def __init__(self, action: str, errors: list) -> None:
        self.action = action
        self.errors = errors
        super().__init__(f"Validation failed for {action} action", {"errors": errors})
