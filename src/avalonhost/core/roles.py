"""Avalon role definitions and the hidden knowledge each role receives."""

from enum import Enum
from typing import Dict, Iterable, List, Mapping
from dataclasses import dataclass


class Role(str, Enum):
    """Roles that can be dealt to a player."""
    MERLIN = "Merlin"
    PERCIVAL = "Percival"
    LOYAL_SERVANT = "LoyalServant"
    MORGANA = "Morgana"
    ASSASSIN = "Assassin"
    MORDRED = "Mordred"
    OBERON = "Oberon"


class Alignment(str, Enum):
    """Team a role plays for."""
    GOOD = "good"
    EVIL = "evil"


@dataclass(frozen=True)
class RoleInfo:
    """Static facts about a role."""
    role: Role
    alignment: Alignment
    hidden_from_merlin: bool = False
    hidden_from_evil: bool = False


ROLE_DEFINITIONS: Dict[Role, RoleInfo] = {
    Role.MERLIN: RoleInfo(role=Role.MERLIN, alignment=Alignment.GOOD),
    Role.PERCIVAL: RoleInfo(role=Role.PERCIVAL, alignment=Alignment.GOOD),
    Role.LOYAL_SERVANT: RoleInfo(role=Role.LOYAL_SERVANT, alignment=Alignment.GOOD),
    Role.MORGANA: RoleInfo(role=Role.MORGANA, alignment=Alignment.EVIL),
    Role.ASSASSIN: RoleInfo(role=Role.ASSASSIN, alignment=Alignment.EVIL),
    Role.MORDRED: RoleInfo(role=Role.MORDRED, alignment=Alignment.EVIL, hidden_from_merlin=True),
    Role.OBERON: RoleInfo(role=Role.OBERON, alignment=Alignment.EVIL, hidden_from_evil=True),
}


def alignment_of(role: Role) -> Alignment:
    """Return the alignment a role belongs to."""
    return ROLE_DEFINITIONS[role].alignment


def is_evil_player(role: Role) -> bool:
    return alignment_of(role) == Alignment.EVIL


def is_good_player(role: Role) -> bool:
    return alignment_of(role) == Alignment.GOOD


class RoleKnowledgeSystem:
    """Works out which other players a role is allowed to see.

    Only names are ever revealed; the seen players' roles stay hidden. Merlin
    sees the evil team except Mordred, Percival sees Merlin and Morgana without
    telling them apart, and the evil team sees itself except Oberon, who in
    turn sees nobody.
    """

    def __init__(self) -> None:
        self.knowledge_map = {
            Role.MERLIN: self._merlin_knowledge,
            Role.PERCIVAL: self._percival_knowledge,
            Role.MORGANA: self._evil_knowledge,
            Role.ASSASSIN: self._evil_knowledge,
            Role.MORDRED: self._evil_knowledge,
        }

    def visible_names(self, *, name: str, role: Role, assignments: Mapping[str, Role]) -> List[str]:
        """Return the names ``name`` may see, in seating order.

        Parameters
        ----------
        name: str
            The viewing player.
        role: Role
            The viewer's role.
        assignments: Mapping[str, Role]
            Every player's role, keyed by display name.
        """
        handler = self.knowledge_map.get(role)
        if handler is None:
            return []
        return [other for other in handler(assignments) if other != name]

    def _merlin_knowledge(self, assignments: Mapping[str, Role]) -> Iterable[str]:
        return [
            other
            for other, role in assignments.items()
            if is_evil_player(role) and not ROLE_DEFINITIONS[role].hidden_from_merlin
        ]

    def _percival_knowledge(self, assignments: Mapping[str, Role]) -> Iterable[str]:
        return [other for other, role in assignments.items() if role in (Role.MERLIN, Role.MORGANA)]

    def _evil_knowledge(self, assignments: Mapping[str, Role]) -> Iterable[str]:
        return [
            other
            for other, role in assignments.items()
            if is_evil_player(role) and not ROLE_DEFINITIONS[role].hidden_from_evil
        ]


# Global instance
ROLE_SYSTEM = RoleKnowledgeSystem()


def visible_names(*, name: str, role: Role, assignments: Mapping[str, Role]) -> List[str]:
    """Module-level shortcut for :meth:`RoleKnowledgeSystem.visible_names`."""
    return ROLE_SYSTEM.visible_names(name=name, role=role, assignments=assignments)
