"""Avalon rulesets for different player counts.

This module defines the role line-up and mission sizes used for every
supported table size, including the round that needs two FAIL votes.

>>> ruleset = get_ruleset(7)
>>> ruleset.team_size_for_round(4)
4
>>> ruleset.fails_required(4), ruleset.fails_required(3)
(2, 1)
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .errors import UnsupportedPlayerCountError
from .roles import Role, is_evil_player, is_good_player

MER = Role.MERLIN
PER = Role.PERCIVAL
SRV = Role.LOYAL_SERVANT
MOR = Role.MORGANA
ASN = Role.ASSASSIN
MDR = Role.MORDRED
OBR = Role.OBERON


@dataclass(frozen=True)
class AvalonRuleset:
    """Defines the rules for an Avalon game with a specific number of players."""

    players: int
    roles: Tuple[Role, ...]
    mission_sizes: Tuple[int, ...]
    double_fail_round: Optional[int] = None  # Round that requires 2 FAIL votes to fail
    good_win_threshold: int = 3
    evil_win_threshold: int = 3
    max_failed_proposals: int = 5

    def __post_init__(self) -> None:
        """Validate the ruleset configuration."""
        if len(self.roles) != self.players:
            raise ValueError(f"Roles ({len(self.roles)}) must equal players ({self.players})")

        if len(self.mission_sizes) != 5:
            raise ValueError("Mission sizes must contain exactly 5 rounds")

        if any(size > self.players for size in self.mission_sizes):
            raise ValueError("A mission cannot need more members than there are players")

        if self.double_fail_round is not None and not (1 <= self.double_fail_round <= 5):
            raise ValueError("Double fail round must be between 1 and 5")

    @property
    def good(self) -> int:
        return sum(1 for role in self.roles if is_good_player(role))

    @property
    def evil(self) -> int:
        return sum(1 for role in self.roles if is_evil_player(role))

    @property
    def rounds(self) -> int:
        return len(self.mission_sizes)

    def role_counts(self) -> Counter:
        """Return the role multiset as a :class:`~collections.Counter`."""
        return Counter(self.roles)

    def team_size_for_round(self, round_num: int) -> int:
        if not 1 <= round_num <= self.rounds:
            raise ValueError(f"Round must be between 1 and {self.rounds}, got {round_num}")
        return self.mission_sizes[round_num - 1]

    def requires_double_fail(self, round_num: int) -> bool:
        """True when the mission in ``round_num`` only fails on two FAIL cards."""
        return self.double_fail_round == round_num

    def fails_required(self, round_num: int) -> int:
        return 2 if self.requires_double_fail(round_num) else 1

    def get_mission_sizes_description(self) -> str:
        """Mission sizes joined with dashes, e.g. ``2-3-2-3-3``."""
        return "-".join(map(str, self.mission_sizes))


# Standard line-ups; Mordred joins at 7 players and Oberon at 8 and 10.
RULESETS: Dict[int, AvalonRuleset] = {
    5: AvalonRuleset(
        players=5,
        roles=(MER, PER, SRV, MOR, ASN),
        mission_sizes=(2, 3, 2, 3, 3),
    ),
    6: AvalonRuleset(
        players=6,
        roles=(MER, PER, SRV, SRV, MOR, ASN),
        mission_sizes=(2, 3, 4, 3, 4),
    ),
    7: AvalonRuleset(
        players=7,
        roles=(MER, PER, SRV, SRV, MOR, ASN, MDR),
        mission_sizes=(2, 3, 3, 4, 4),
        double_fail_round=4,
    ),
    8: AvalonRuleset(
        players=8,
        roles=(MER, PER, SRV, SRV, SRV, MOR, ASN, OBR),
        mission_sizes=(3, 4, 4, 5, 5),
        double_fail_round=4,
    ),
    9: AvalonRuleset(
        players=9,
        roles=(MER, PER, SRV, SRV, SRV, SRV, MOR, ASN, MDR),
        mission_sizes=(3, 4, 4, 5, 5),
        double_fail_round=4,
    ),
    10: AvalonRuleset(
        players=10,
        roles=(MER, PER, SRV, SRV, SRV, SRV, MOR, ASN, MDR, OBR),
        mission_sizes=(3, 4, 4, 5, 5),
        double_fail_round=4,
    ),
}


def get_ruleset(players: int) -> AvalonRuleset:
    """Get the ruleset for a specific number of players.

    Args:
        players: Number of players in the game

    Returns:
        The appropriate AvalonRuleset

    Raises:
        UnsupportedPlayerCountError: If no ruleset is defined for the given number of players
    """
    if players not in RULESETS:
        available = ", ".join(map(str, sorted(RULESETS.keys())))
        raise UnsupportedPlayerCountError(
            f"No ruleset defined for {players} players. Available: {available}",
            {"players": players},
        )

    return RULESETS[players]


def get_available_player_counts() -> List[int]:
    """Get all supported player counts."""
    return sorted(RULESETS.keys())


def format_rules_description(ruleset: AvalonRuleset) -> str:
    """Format a one-paragraph description of the ruleset."""
    counts = ruleset.role_counts()
    line_up = ", ".join(
        f"{role.value} x{count}" if count > 1 else role.value for role, count in counts.items()
    )
    rules_text = (
        f"{ruleset.players} players: {ruleset.good} good, {ruleset.evil} evil ({line_up}).\n"
        f"Mission team sizes: {ruleset.get_mission_sizes_description()}.\n"
    )

    if ruleset.double_fail_round:
        rules_text += f"Mission {ruleset.double_fail_round} needs two FAIL votes to fail.\n"

    return rules_text
