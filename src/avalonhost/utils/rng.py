"""Seeded randomness helpers for deterministic games and room codes."""

import random
import string
from typing import List, Sequence, TypeVar

T = TypeVar("T")

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


def build_rng(*, seed: int | None = None) -> random.Random:
    """Return a deterministic random generator."""
    return random.Random(seed)


def shuffled(rng: random.Random, items: Sequence[T]) -> List[T]:
    """Return a shuffled copy of ``items``; the input is left untouched."""
    result = list(items)
    rng.shuffle(result)
    return result


def generate_room_code(rng: random.Random, length: int = 6, alphabet: str = ROOM_CODE_ALPHABET) -> str:
    """Draw a room code of ``length`` characters from ``alphabet``.

    Args:
        rng: Random number generator
        length: Number of characters in the code (default 6)
        alphabet: Characters to draw from (default upper-case letters and digits)

    Returns:
        The generated code
    """
    return "".join(rng.choice(alphabet) for _ in range(length))
