"""Real-time host for Avalon rooms: rules, game state machine and room service."""

__version__ = "0.1.0"

from .core import errors, fsm, roles, rulesets, schemas
from .core.fsm import GameMachine, GameState, Seat
from .utils import rng

__all__ = [
    "__version__",
    "errors",
    "fsm",
    "roles",
    "rulesets",
    "schemas",
    "rng",
    "GameMachine",
    "GameState",
    "Seat",
]
